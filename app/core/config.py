from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://sonddr:sonddr@db:5432/sonddr"
    database_echo: bool = False

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"

    # Загрузки
    uploads_dir: str = "uploads"
    max_upload_size_mb: int = 50

    # Живые подписки (SSE и чаты)
    sse_heartbeat_seconds: float = 30.0
    chat_history_limit: int = 100
    watch_buffer_size: int = 1000
    subscriber_buffer_size: int = 1000

    # Реактивные триггеры
    trigger_retry_attempts: int = 3
    trigger_retry_delay: float = 0.2
    notification_excerpt_length: int = 200

    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
