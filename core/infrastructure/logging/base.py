import logging
import sys
from functools import lru_cache

from loguru import logger

from config.base import get_settings

from .context import request_context
from .format import CustomLogFormat

NOISY_LOGGERS = ("aiosqlite", "sqlalchemy.engine", "redis", "alembic.runtime.migration")


class InterceptHandler(logging.Handler):
    """Redirect standard logging records (uvicorn, SQLAlchemy, alembic) to Loguru.

    The active request context is attached so third-party records can be
    correlated with the request that caused them.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(**request_context.get({})).opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


def _is_development(environment: str) -> bool:
    return environment.lower() in ("dev", "development", "local")


@lru_cache(maxsize=1)
def setup_logging() -> None:
    """Configure Loguru sinks for the notification service.

    Sets up a console sink, a rotating JSON file sink and a separate error file
    sink, intercepts standard logging and patches every record with the current
    request context (request ID, recipient, path).
    """
    settings = get_settings()
    is_development = _is_development(settings.environment)

    logger.remove()

    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(settings.logging_level)

    for name in list(logging.root.manager.loggerDict.keys()):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(
            logging.DEBUG if settings.debug else logging.WARNING
        )

    def context_patcher(record):
        record["extra"].update(request_context.get({}))

    def not_reload_noise(record) -> bool:
        return (
            "changes detected" not in record["message"]
            and record["function"] != "callHandlers"
        )

    error_log_file = settings.log_file.with_name(
        f"{settings.log_file.stem}_errors{settings.log_file.suffix}"
    )

    logger.configure(
        handlers=[
            {
                "sink": sys.stdout,
                "level": settings.logging_level,
                "colorize": is_development,
                "serialize": not is_development,
                "backtrace": False,
                "diagnose": settings.debug,
                "filter": not_reload_noise,
                "format": lambda record: CustomLogFormat(record).log_console_format(),
            },
            {
                "sink": settings.log_file,
                "level": "INFO",
                "serialize": True,
                "enqueue": True,
                "rotation": "10 MB",
                "retention": "10 days",
                "compression": "zip",
                "backtrace": True,
                "diagnose": False,
                "filter": not_reload_noise,
                "format": lambda record: CustomLogFormat(record).log_file_format(),
            },
            {
                "sink": error_log_file,
                "level": "ERROR",
                "serialize": True,
                "enqueue": True,
                "rotation": "10 MB",
                "retention": "60 days",
                "compression": "zip",
                "backtrace": True,
                "diagnose": False,
                "format": lambda record: CustomLogFormat(record).log_file_format(),
            },
        ],
        patcher=context_patcher,
    )
    logger.debug(f"🔧 Logging configured at {settings.logging_level} level")
