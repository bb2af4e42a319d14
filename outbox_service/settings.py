from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DB_HOST: str = "localhost"
    DB_PORT: str = "5432"
    DB_NAME: str = "outbox"
    DB_USER: str = "postgres"
    DB_PASS: str = "postgres"

    RABBIT_ENABLED: bool = False
    RABBIT_HOST: str = "localhost"
    RABBIT_PORT: int = 5672
    RABBIT_USER: str = "guest"
    RABBIT_PASS: str = "guest"
    RABBIT_VHOST: str = "/"

    EVENTS_QUEUE_NAME: str = "domain-events"

    OUTBOX_POLL_INTERVAL: float = 10.0
    OUTBOX_IDLE_BACKOFF_MULTIPLIER: float = 3.0
    OUTBOX_ERROR_BACKOFF_MULTIPLIER: float = 6.0
    OUTBOX_BATCH_SIZE: int = 100
    OUTBOX_MAX_RETRIES: Optional[int] = 10
    OUTBOX_HANDLER_TIMEOUT: Optional[float] = None
    OUTBOX_FAST_PATH: bool = False

    model_config = SettingsConfigDict(
        env_file=".env.example",
        env_file_encoding="utf-8",
    )


settings = Settings()
