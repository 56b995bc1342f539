"""Application configuration for the signaling service."""
from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_ICE_SERVERS = [
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
    "stun:stun2.l.google.com:19302",
    "stun:stun3.l.google.com:19302",
    "stun:stun4.l.google.com:19302",
]


class Settings(BaseSettings):
    """Runtime configuration."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")
    cors_allow_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001)

    room_code_alphabet: str = Field(default="ABCDEFGHIJKLMNOPQRSTUVWXYZ", min_length=2)
    room_code_length: int = Field(default=6, ge=4, le=10)
    room_code_timeout_seconds: float = Field(default=8.0, gt=0)

    ice_servers: Annotated[list[str], NoDecode] = Field(default_factory=lambda: list(DEFAULT_ICE_SERVERS))
    notify_displaced_occupant: bool = Field(default=False)

    @field_validator("ice_servers", "cors_allow_origins", mode="before")
    @classmethod
    def _split_csv(cls, value: object) -> object:
        """Allow comma-separated env values for list settings."""

        if isinstance(value, str):
            parts = [item.strip() for item in value.split(",") if item.strip()]
            return parts
        return value

    @field_validator("room_code_alphabet")
    @classmethod
    def _upper_alphabet(cls, value: str) -> str:
        return value.strip().upper()


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
