from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="LionSphere API", description="Human readable service name")
    environment: str = Field(default="development", description="Deployment environment name")
    debug: bool = Field(default=False, description="Enable debug mode")

    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://localhost:5174",
            "http://127.0.0.1:5173",
        ],
        description="List of allowed CORS origins",
    )

    db_user: str = Field(default="lionsphere")
    db_password: str = Field(default="lionsphere")
    db_host: str = Field(default="db")
    db_port: int = Field(default=3306)
    db_name: str = Field(default="lionsphere")
    database_url_override: str | None = Field(
        default=None,
        validation_alias="DATABASE_URL",
        description="Full SQLAlchemy URL; takes precedence over the DB_* parts",
    )

    jwt_secret_key: str = Field(default="changeme")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60 * 24)

    cache_url: str | None = Field(
        default=None,
        description="Redis URL for the shared cache. In-process cache is used when unset.",
    )

    chat_history_default_limit: int = Field(default=20)
    chat_history_max_limit: int = Field(default=100)
    chat_message_max_length: int = Field(default=2000)
    notification_list_limit: int = Field(default=50)
    notification_dedup_window_seconds: int = Field(
        default=60,
        description="Identical notifications within this window are collapsed into one.",
    )

    websocket_keepalive_timeout_seconds: float = Field(
        default=30,
        description="Idle seconds before the server checks on a chat socket.",
    )
    websocket_keepalive_ping_interval_seconds: float = Field(
        default=25,
        description="Minimum seconds between server keepalive pings.",
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"mysql+pymysql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
