import click


def import_from_alembic():
    """Import Alembic and build its Config from the project's alembic.ini.

    Returns
    -------
    Tuple[command.Command, config.Config]
        Alembic command module and configured Config instance for executing migrations.
    """
    from alembic import command, config

    from config.base import get_settings

    settings = get_settings()
    alembic_cfg = config.Config(str(settings.base_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(settings.base_dir / "alembic"))
    return command, alembic_cfg


@click.group()
def cli():
    """Management commands for the notification service.

    Provides subcommands for database migrations, server control, operator
    announcements and project maintenance.
    """
    pass


@cli.command()
@click.option("--message", "-m", required=True, help="Migration message")
def makemigrations(message):
    """Generate a new Alembic migration from model changes.

    Parameters
    ----------
    message: str
        Descriptive message explaining the migration purpose.

    Examples
    --------
    Create migration for a new column:
        $ python manage.py makemigrations -m "Add expires_at to notification"
    """
    command, alembic_cfg = import_from_alembic()
    command.revision(alembic_cfg, autogenerate=True, message=message)
    click.echo(f"Migration created: {message}")


@cli.command()
def migrate():
    """Apply all pending database migrations.

    Raises
    ------
    AlembicError
        If migration conflicts exist or database connection fails.
    """
    command, alembic_cfg = import_from_alembic()
    command.upgrade(alembic_cfg, "head")
    click.echo("Migrations completed")


@cli.command()
@click.option("--title", "-t", required=True, help="Announcement title")
@click.option("--message", "-m", required=True, help="Announcement body")
@click.option(
    "--recipient",
    "-r",
    "recipients",
    multiple=True,
    required=True,
    help="Recipient ID, repeat for every recipient",
)
@click.option("--target-role", default="all", show_default=True)
@click.option(
    "--priority",
    type=click.Choice(["low", "normal", "high"]),
    default="normal",
    show_default=True,
)
def announce(title, message, recipients, target_role, priority):
    """Send a system announcement to the given recipients.

    The user directory lives outside this service, so recipients are listed
    explicitly. A failure for one recipient does not stop the others.

    Examples
    --------
    Announce maintenance to two students:
        $ python manage.py announce -t "Maintenance" -m "Back at 02:00" -r s1 -r s2
    """
    import asyncio

    from config.base import get_settings
    from config.database import close_database_engine, database_session
    from core.infrastructure.factory import close_redis_service
    from core.infrastructure.logging import setup_logging
    from notifications.application.producers import system_announcement
    from notifications.application.rules import CreateNotificationsForManyRule
    from notifications.infrastructure.factory import get_notification_change_notifier
    from notifications.infrastructure.repositories import NotificationRepository

    async def send():
        change_notifier = await get_notification_change_notifier()
        try:
            async with database_session() as session:
                return await CreateNotificationsForManyRule(
                    recipient_ids=list(recipients),
                    template=system_announcement(title, message, target_role, priority),
                    notification_repository=NotificationRepository(
                        session,
                        change_notifier=change_notifier,
                        timeout_seconds=get_settings().store_timeout_seconds,
                    ),
                ).execute()
        finally:
            await close_redis_service()
            await close_database_engine()

    setup_logging()
    results = asyncio.run(send())

    for result in results:
        if result.succeeded:
            click.echo(f"{result.recipient_id}: {result.notification.id}")
        else:
            click.echo(f"{result.recipient_id}: {result.error.code}", err=True)

    failed = sum(1 for result in results if not result.succeeded)
    click.echo(f"Announced to {len(results) - failed} recipient(s), {failed} failed")


@cli.command()
def runserver():
    """Start the notification service.

    Runs `main.py` as a script, so Uvicorn picks up reload and SSL settings
    from the environment.
    """
    import runpy

    runpy.run_module("main", run_name="__main__")


@cli.command()
def clean():
    """Remove Python cache and build artifacts.

    Recursively removes __pycache__, .pytest_cache and .ruff_cache directories
    and stray .pyc files.
    """
    import os
    import shutil

    for root, dirs, files in os.walk("."):
        for dir_name in list(dirs):
            if dir_name in ("__pycache__", ".pytest_cache", ".ruff_cache"):
                shutil.rmtree(os.path.join(root, dir_name))
                dirs.remove(dir_name)
        for file_name in files:
            if file_name.endswith(".pyc"):
                os.remove(os.path.join(root, file_name))

    click.echo("Cleaned Python, pytest and Ruff cache directories.")


if __name__ == "__main__":
    """CLI entry point for direct script execution."""
    cli()
