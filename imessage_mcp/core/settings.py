"""Application configuration using pydantic-settings.

Environment variables are the sole source of truth. Use `get_settings()` everywhere
so the process shares one cached instance; tests build `Settings(...)` directly.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Core
    LOG_LEVEL: str = Field("INFO", description="Application log level")
    SERVER_NAME: str = Field("imessage-mcp", description="Name advertised to tool-call clients")

    # Message store (chat.db)
    CHAT_DB_PATH: Optional[str] = Field(None, description="Override for the Messages database location")
    DB_OPEN_RETRIES: int = Field(3, ge=1, description="Attempts to open chat.db while it is locked")
    DB_BUSY_TIMEOUT_SECONDS: float = Field(5.0, gt=0, description="SQLite busy timeout")
    DEFAULT_QUERY_LIMIT: int = Field(20, ge=1, le=1000)
    RECENT_RESOURCE_LIMIT: int = Field(50, ge=1, le=1000)

    # Delivery
    MESSAGES_APP_NAME: str = "Messages"
    OSASCRIPT_PATH: str = "osascript"
    SEND_MAX_RETRIES: int = Field(2, ge=0, description="Retries after the first send attempt")
    SEND_INITIAL_BACKOFF_SECONDS: float = Field(2.0, ge=0, description="Delay before the first retry; doubles per retry")
    APP_LAUNCH_DELAY_SECONDS: int = Field(2, ge=0, description="Settle time after launching Messages.app")
    LENIENT_SEND_RESULT: bool = Field(
        True,
        description="Treat unrecognised osascript output as a delivered message",
    )
    MESSAGING_PROVIDERS: List[str] = Field(
        default_factory=lambda: ["native-imcore", "applescript"],
        description="Fallback chain order (JSON list in env)",
    )

    model_config = SettingsConfigDict(env_file=None, case_sensitive=False, extra="ignore")

    @property
    def effective_chat_db_path(self) -> str:
        if self.CHAT_DB_PATH:
            return self.CHAT_DB_PATH
        return str(Path.home() / "Library" / "Messages" / "chat.db")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
