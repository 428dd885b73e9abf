"""
Server configuration using pydantic-settings.

Environment variables (prefix: TYCOON_):
    TYCOON_HOST                       - Bind host (default: 0.0.0.0)
    TYCOON_PORT                       - Bind port (default: 8000)
    TYCOON_DATABASE_URL               - Async SQLAlchemy URL for saved games
    TYCOON_HISTORY_WINDOW             - History entries kept in a saved snapshot
    TYCOON_MIN_PLAYERS / MAX_PLAYERS  - Room size bounds
    TYCOON_MAX_ROOMS                  - Cap on concurrently open rooms
    TYCOON_ROOM_CODE_LENGTH           - Length of generated room codes
    TYCOON_AUCTION_SWEEP_INTERVAL     - Seconds between expired-auction sweeps
    TYCOON_AUTOSAVE_INTERVAL          - Seconds between autosaves (0 disables)
    TYCOON_ROOM_INACTIVITY_TIMEOUT    - Seconds before an idle waiting room is removed
    TYCOON_LOG_LEVEL                  - Root log level (default: INFO)
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """Runtime settings for the room server."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="TYCOON_",
    )

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)

    database_url: str = Field(
        default="sqlite+aiosqlite:///./tycoon.db",
        description="Async database URL (sqlite+aiosqlite:// or postgresql+asyncpg://).",
    )
    db_echo: bool = Field(default=False)

    history_window: int = Field(default=100, ge=0)
    min_players: int = Field(default=2, ge=2)
    max_players: int = Field(default=8, le=8)
    max_rooms: int = Field(default=100, ge=1)
    room_code_length: int = Field(default=6, ge=4, le=12)

    auction_sweep_interval: float = Field(default=1.0, gt=0)
    autosave_interval: float = Field(default=60.0, ge=0)
    room_inactivity_timeout: float = Field(default=3600.0, gt=0)
    outbound_queue_size: int = Field(default=256, ge=1)
    heartbeat_interval: float = Field(default=15.0, gt=0)

    log_level: str = Field(default="INFO")

    @field_validator("database_url")
    @classmethod
    def validate_async_url(cls, v: str) -> str:
        """Only async drivers can be used by the snapshot store."""
        if not v.startswith(("sqlite+aiosqlite://", "postgresql+asyncpg://")):
            raise ValueError("TYCOON_DATABASE_URL must use sqlite+aiosqlite:// or postgresql+asyncpg://")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def check_player_bounds(self) -> "ServerSettings":
        if self.min_players > self.max_players:
            raise ValueError("min_players cannot exceed max_players")
        return self


@lru_cache
def get_settings() -> ServerSettings:
    """Return cached server settings instance."""
    return ServerSettings()
