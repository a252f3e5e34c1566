from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration settings with environment variable integration.

    Attributes
    ----------
    debug: bool, default=False
        Enable/disable debug mode.
    logging_level: str, default="INFO"
        Logging verbosity: e.g., "INFO", "DEBUG".
    base_dir: Path, default=auto-detected
        Project base directory.
    environment: str, default="development"
        Application environment: "development", "production", "test", etc.
    database_url: str | None, optional
        Async SQLAlchemy database URL. Falls back to a SQLite file in `base_dir`.
    store_timeout_seconds: float | None, optional
        Upper bound for a single notification store call.
        A timed out call is reported as `StoreUnavailable`.
    logs_dir: Path, derived from base_dir
        Directory for log files.
    log_file: Path, derived from base_dir
        Main log file path.
    notification_list_default_limit: int, default=50
        Page size used when a listing request does not name one.
    notification_list_max_limit: int, default=100
        Hard cap applied to every notification listing.
    notification_feed_snapshot_limit: int, default=10
        Maximum number of unread notifications pushed per live snapshot.
    notification_feed_reconnect_attempts: int, default=3
        Consecutive reconnect attempts before a live feed gives up.
    notification_feed_reconnect_delay_seconds: float, default=1.0
        Pause between live feed reconnect attempts.
    redis_host: str, default="localhost"
        Redis server hostname.
    redis_port: int, default=6379
        Redis server port.
    redis_db: int, default=0
        Redis database index.
    redis_password: str | None, optional
        Redis password.
    redis_socket_connect_timeout: int, default=5
        Redis socket connect timeout in seconds.
    redis_socket_timeout: int | None, optional
        Redis socket read/write timeout in seconds.
        Left unset so idle pub/sub listeners are not disconnected.
    redis_use_ssl: bool, default=False
        Use SSL for Redis connection.
    server_port: int, default=8001
        Port Uvicorn binds to.
    ssl_cert_reqs: str | None, optional
        SSL certificate requirements for Redis.
    ssl_certfile_path: Path | None, optional
        Path to SSL certificate for Uvicorn.
    ssl_keyfile_path: Path | None, optional
        Path to SSL key for Uvicorn.

    Notes
    -----
    Paths are resolved relative to the project root.
    Credentials such as the Redis password should always be provided via
    environment variables, never committed to version control.
    """

    debug: bool = False
    logging_level: str = "INFO"
    base_dir: Path = Path(__file__).resolve().parent.parent
    environment: str = "development"
    database_url: str | None = None
    store_timeout_seconds: float | None = None
    logs_dir: Path = base_dir / "logs"
    log_file: Path = logs_dir / "notifications.log"
    notification_list_default_limit: int = 50
    notification_list_max_limit: int = 100
    notification_feed_snapshot_limit: int = 10
    notification_feed_reconnect_attempts: int = 3
    notification_feed_reconnect_delay_seconds: float = 1.0
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: str | None = None
    redis_socket_connect_timeout: int = 5
    redis_socket_timeout: int | None = None
    redis_use_ssl: bool = False
    server_port: int = 8001
    ssl_cert_reqs: str | None = None
    ssl_certfile_path: Path | None = None
    ssl_keyfile_path: Path | None = None

    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    def model_post_init(self, __context) -> None:
        """Perform post-initialization validation and directory creation.

        Ensures the log directory exists and that listing limits are coherent.

        Raises
        ------
        ValueError
            If the default listing limit exceeds the hard cap.
        """
        self.logs_dir.mkdir(parents=True, exist_ok=True)

        if self.notification_list_default_limit > self.notification_list_max_limit:
            raise ValueError(
                "Default notification limit cannot exceed the maximum limit"
            )


@lru_cache
def get_settings() -> Settings:
    """Create and cache singleton Settings instance for application use.

    Returns
    -------
    Settings
        Cached singleton instance of application settings with all
        configuration values loaded and validated.
    """
    return Settings()
