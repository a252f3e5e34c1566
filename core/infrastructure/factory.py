from functools import lru_cache

from loguru import logger

from config.base import get_settings

from .services import DataSanitizer, RedisService

_redis_service: RedisService | None = None


@lru_cache(maxsize=1)
def get_data_sanitizer() -> DataSanitizer:
    """Provide the shared `DataSanitizer`; it holds compiled patterns only."""
    return DataSanitizer()


async def get_redis_service() -> RedisService:
    """Provide the process-wide `RedisService`, creating it on first use.

    Returns
    -------
    RedisService
        Instance of `RedisService` configured from settings.
    """
    global _redis_service

    if _redis_service is None:
        settings = get_settings()
        _redis_service = RedisService(settings)
        logger.debug(
            f"🔧 Redis service configured for {settings.redis_host}:{settings.redis_port}"
        )

    return _redis_service


async def close_redis_service() -> None:
    """Close the shared Redis connection, if one was opened."""
    global _redis_service

    if _redis_service is not None:
        await _redis_service.close()
        _redis_service = None
