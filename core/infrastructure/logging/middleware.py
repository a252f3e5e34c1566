import time
import uuid
from typing import Callable

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from ..factory import get_data_sanitizer
from .context import RequestContextLogger

SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "x-api-key",
    "x-auth-token",
    "x-csrf-token",
    "x-forwarded-for",
    "x-real-ip",
}


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Request tracking middleware binding a request ID and recipient to the logs.

    Every request is logged on the way in and out with its status and duration.
    The recipient named in the query string, if any, is attached to the log
    context so one recipient's activity can be followed across requests.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        sanitizer = get_data_sanitizer()

        context = {
            "client_ip": self._get_client_ip(request),
            "method": request.method,
            "path": request.url.path,
        }
        recipient_id = request.query_params.get("recipientId")
        if recipient_id:
            context["recipient_id"] = recipient_id

        with RequestContextLogger(request_id=request_id, **context):
            logger.info(
                sanitizer.sanitize_for_logging(
                    f"🔄 Incoming {request.method} request to {request.url.path}"
                )
            )

            if request.url.query:
                logger.debug(
                    sanitizer.sanitize_for_logging(
                        f"🔍 Query parameters: {request.url.query}"
                    )
                )

            logger.debug(
                f"📨 Headers: {sanitizer.sanitize_for_logging(self.safe_headers(request.headers))}"
            )

            started = time.perf_counter()
            try:
                response = await call_next(request)

            except Exception as e:
                logger.error(
                    sanitizer.sanitize_exception_for_logging(
                        f"💥 Request failed: {type(e).__name__}: {e}"
                    )
                )
                raise

            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(
                f"✅ {request.method} {request.url.path} -> "
                f"{response.status_code} in {elapsed_ms:.1f}ms"
            )
            response.headers["X-Request-ID"] = request_id

            return response

    @staticmethod
    def _get_client_ip(request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"

    @staticmethod
    def safe_headers(headers) -> dict:
        return {
            name: value
            for name, value in headers.items()
            if name.lower() not in SENSITIVE_HEADERS
        }
