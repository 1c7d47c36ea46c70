from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    STORE_BACKEND: Literal["memory", "postgres"] = "memory"

    POSTGRES_USER: str = "dm"
    POSTGRES_PASSWORD: str = "dm"
    POSTGRES_DB: str = "dm"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300

    REDIS_URL: str = "redis://localhost:6379/0"
    STORE_CHANGES_CHANNEL: str = "dm.store.changes"

    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"

    CORS_ORIGINS: list[str] = ["*"]

    WS_HEARTBEAT_SECONDS: int = 30

    MESSAGE_MAX_LENGTH: int = 4000
    PREVIEW_MAX_LENGTH: int = 100
    MEDIA_PREVIEW_PLACEHOLDER: str = "🎬 GIF"
    UNKNOWN_SENDER_NAME: str = "User"
    MEDIA_CATALOG: list[dict[str, str]] = [
        {"id": "1", "url": "https://media.giphy.com/media/3o7qDEq2bMbcbPRQ2c/giphy.gif", "title": "Applause"},
        {"id": "2", "url": "https://media.giphy.com/media/26u4cqiYI30juCOGY/giphy.gif", "title": "Happy"},
        {"id": "3", "url": "https://media.giphy.com/media/l0MYt5jPR6QX5pnqM/giphy.gif", "title": "Love"},
        {"id": "4", "url": "https://media.giphy.com/media/26ufdipQqU2lhNA4g/giphy.gif", "title": "Laugh"},
        {"id": "5", "url": "https://media.giphy.com/media/3o6Zt0hNCfak3QCqsw/giphy.gif", "title": "Dance"},
        {"id": "6", "url": "https://media.giphy.com/media/26u4lOMA8JKSnL9Uk/giphy.gif", "title": "Thinking"},
    ]

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
