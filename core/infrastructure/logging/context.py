import contextvars
import uuid
from typing import Any, Dict

request_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "request_context", default={}
)


class RequestContextLogger:
    """Context manager binding request information to every log record.

    Usable with both `with` and `async with`. Log records emitted inside the
    block carry the request ID plus any extra context, such as the recipient
    a notification request is for.
    """

    def __init__(self, request_id: str | None = None, **context):
        self.request_id = request_id or uuid.uuid4().hex[:8]
        self.context = {"request_id": self.request_id, **context}
        self.token = None

    def bind(self, **context) -> None:
        """Add fields to the active context, e.g. once a recipient is known."""
        self.context.update(context)
        if self.token is not None:
            request_context.set(self.context)

    def __enter__(self):
        self.token = request_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            request_context.reset(self.token)
            self.token = None

    async def __aenter__(self):
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.__exit__(exc_type, exc_val, exc_tb)
