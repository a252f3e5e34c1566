"""create notification table

Revision ID: 4f2c9a7e1b30
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4f2c9a7e1b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'notification',
        sa.Column('id', sa.String(length=32), primary_key=True, nullable=False),
        sa.Column('recipient_id', sa.String(length=128), nullable=False),
        sa.Column('sender_id', sa.String(length=128), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.String(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('action_url', sa.String(), nullable=True),
        sa.Column('priority', sa.String(length=16), nullable=False, server_default='normal'),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('archived', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_notification_recipient_id', 'notification', ['recipient_id'], unique=False)
    op.create_index('ix_notification_type', 'notification', ['type'], unique=False)
    op.create_index('ix_notification_read', 'notification', ['read'], unique=False)
    op.create_index('ix_notification_created_at', 'notification', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_notification_created_at', table_name='notification')
    op.drop_index('ix_notification_read', table_name='notification')
    op.drop_index('ix_notification_type', table_name='notification')
    op.drop_index('ix_notification_recipient_id', table_name='notification')
    op.drop_table('notification')
