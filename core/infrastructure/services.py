import re
from typing import Any, Dict, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from redis.asyncio import Redis

from config.base import Settings

MASK = "***MASKED***"

SENSITIVE_FIELD = re.compile(
    r"password|secret|token|key|auth|credential|session_?id|signature"
    r"|transaction|join_?url|certificate_?url",
    re.IGNORECASE,
)
EMAIL = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
URL_WITH_QUERY = re.compile(r"https?://[^\s\"']+\?[^\s\"']+")


class DataSanitizer:
    """Masks sensitive values before they reach a log sink.

    Notification payloads carry meeting join links, certificate links,
    transaction references and email addresses. Keys matching
    `SENSITIVE_FIELD` are masked wholesale; free text keeps its shape with
    emails and sensitive URL query parameters masked.
    """

    def __init__(self, max_depth: int = 5, max_items: int = 10, max_length: int = 1000):
        self.max_depth = max_depth
        self.max_items = max_items
        self.max_length = max_length

    def sanitize_for_logging(self, data: Any) -> Any:
        """Sanitize strings, mappings and sequences recursively.

        Parameters
        ----------
        data: Any
            Value about to be logged.

        Returns
        -------
        Any
            Copy of `data` with sensitive information masked. Sequences are cut
            to `max_items` and strings to `max_length`.
        """
        return self._clean(data, self.max_depth)

    def sanitize_sql_for_logging(self, sql: str, params: Any) -> Tuple[str, Any]:
        """Sanitize the bound parameters of a failed statement.

        Notification titles, bodies and payloads are user content, so positional
        string parameters longer than a notification ID are masked as well.

        Returns
        -------
        Tuple[str, Any]
            The statement unchanged and the sanitized parameters.
        """
        if isinstance(params, (list, tuple)):
            return sql, [
                MASK if isinstance(param, str) and len(param) > 32 else self._clean(param, 1)
                for param in params
            ]

        return sql, self._clean(params, self.max_depth)

    def sanitize_exception_for_logging(self, exception: Any) -> Any:
        """Sanitize an exception's arguments, or an already formatted message."""
        try:
            if isinstance(exception, BaseException):
                return tuple(self._clean(arg, self.max_depth) for arg in exception.args)
            return self._clean(exception, self.max_depth)
        except Exception:
            return f"***SANITIZED*** {type(exception).__name__}"

    def _clean(self, value: Any, depth: int) -> Any:
        if value is None or isinstance(value, (bool, int, float)):
            return value

        if isinstance(value, dict):
            if depth <= 0:
                return {"<max_depth_reached>": "..."}
            return self._clean_mapping(value, depth - 1)

        if isinstance(value, (list, tuple, set)):
            if depth <= 0:
                return ["<max_depth_reached>"]
            return [self._clean(item, depth - 1) for item in list(value)[: self.max_items]]

        return self._clean_text(str(value))

    def _clean_mapping(self, data: Dict[Any, Any], depth: int) -> Dict[Any, Any]:
        return {
            key: MASK if SENSITIVE_FIELD.search(str(key)) else self._clean(value, depth)
            for key, value in data.items()
        }

    def _clean_text(self, text: str) -> str:
        if len(text) > self.max_length:
            text = text[: self.max_length] + "..."

        text = EMAIL.sub(lambda match: self._mask_email(match.group()), text)
        return URL_WITH_QUERY.sub(lambda match: self._mask_query(match.group()), text)

    @staticmethod
    def _mask_email(email: str) -> str:
        # ada.lovelace@example.com -> a**********e@example.com
        local, domain = email.split("@", 1)
        if len(local) <= 2:
            return f"{'*' * len(local)}@{domain}"
        return f"{local[0]}{'*' * (len(local) - 2)}{local[-1]}@{domain}"

    @staticmethod
    def _mask_query(url: str) -> str:
        parts = urlsplit(url)
        query = [
            (name, MASK if SENSITIVE_FIELD.search(name) else value)
            for name, value in parse_qsl(parts.query, keep_blank_values=True)
        ]
        return urlunsplit(parts._replace(query=urlencode(query, safe="*")))


class RedisService:
    """Shared asynchronous Redis connection used by the notification change channel."""

    def __init__(self, settings: Settings):
        """Initializes the RedisService.

        Parameters
        ----------
        settings: Settings
            Application settings, providing Redis host, port, DB, password,
            and timeout configurations.
        """
        self._settings = settings
        self._redis: Redis | None = None

    async def _get_redis(self) -> Redis:
        """Establish and return an asynchronous Redis client instance.

        Returns
        -------
        Redis
            Asynchronous Redis client instance, created on first use.
        """
        if self._redis is None:
            self._redis = Redis(
                host=self._settings.redis_host,
                port=self._settings.redis_port,
                db=self._settings.redis_db,
                password=self._settings.redis_password,
                decode_responses=True,
                socket_connect_timeout=self._settings.redis_socket_connect_timeout,
                socket_timeout=self._settings.redis_socket_timeout,
                retry_on_timeout=True,
                health_check_interval=30,
                ssl_cert_reqs=self._settings.ssl_cert_reqs,
                ssl=self._settings.redis_use_ssl,
                max_connections=50,
            )

        return self._redis

    async def ping(self) -> bool:
        """Check that Redis answers.

        Returns
        -------
        bool
            Result of the Redis PING command.
        """
        redis_client = await self._get_redis()
        return await redis_client.ping()

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis:
            await self._redis.aclose()

            if hasattr(self._redis, "connection_pool"):
                await self._redis.connection_pool.disconnect()

            self._redis = None
