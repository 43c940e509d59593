from pathlib import Path
from typing import Literal
from urllib.parse import quote

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Environment mode: dev or prod
    ENV: Literal["dev", "prod"] = "dev"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    SLACK_WEBHOOK_URL: str | None = None

    # RabbitMQ
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USERNAME: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "instrument_exchange"
    RABBITMQ_QUEUE: str = "instrument_queue"
    RABBITMQ_ROUTING_KEY: str = "instrument.status"
    RABBITMQ_PREFETCH: int = 10  # max unacknowledged deliveries per consumer

    # Status store
    SQLITE_PATH: str = "instrument.db"
    DATABASE_URL: str | None = None  # Overrides SQLITE_PATH when set

    # Watch folders
    WATCH_FOLDER: str = "Incoming"
    WATCH_PROCESSED_FOLDER: str = "Processed"
    WATCH_FAILED_FOLDER: str = "Failed"
    WATCH_POLL_INTERVAL_MS: int = 1000
    WATCH_MAX_CONCURRENT_FILES: int = 8

    # File reads
    FILE_READ_ATTEMPTS: int = 5
    FILE_READ_BACKOFF_MS: int = 100

    # Legacy parser behaviour: replace parsed module states with random ones
    PARSER_RANDOMIZE_STATE: bool = False

    CONSUMER_SHUTDOWN_TIMEOUT_SECONDS: float = 10.0

    # Docs Configuration
    DOCS_ENABLED: bool | None = None  # Override docs setting (None = auto based on ENV)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",  # ignore unrelated keys in local .env
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENV == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENV == "dev"

    @property
    def debug_enabled(self) -> bool:
        """Debug mode is only enabled in development."""
        return self.is_development

    @property
    def docs_enabled(self) -> bool:
        """Swagger/ReDoc docs enabled based on environment or override."""
        if self.DOCS_ENABLED is not None:
            return self.DOCS_ENABLED
        return self.is_development

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL of the status store."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"sqlite:///{Path(self.SQLITE_PATH).as_posix()}"

    @property
    def broker_url(self) -> str:
        vhost = quote(self.RABBITMQ_VHOST.lstrip("/"), safe="")
        return (
            f"amqp://{quote(self.RABBITMQ_USERNAME, safe='')}:{quote(self.RABBITMQ_PASSWORD, safe='')}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}/{vhost}"
        )

    @property
    def poll_interval_seconds(self) -> float:
        return self.WATCH_POLL_INTERVAL_MS / 1000

    @property
    def read_backoff_seconds(self) -> float:
        return self.FILE_READ_BACKOFF_MS / 1000


settings = Settings()
