"""
Configuration for Sunny Side.

Values come from the environment (``SUNNY_SIDE_`` prefix) or a ``.env`` file.
"""
from functools import lru_cache
from typing import List, Optional

from aiortc import RTCConfiguration, RTCIceServer
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ICE_SERVERS = [
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
    "stun:stun2.l.google.com:19302",
]


class Settings(BaseSettings):
    """Application settings."""

    # Reachability servers handed to every new peer connection
    ICE_SERVERS: List[str] = DEFAULT_ICE_SERVERS

    # Candidate gathering
    GATHER_TIMEOUT_MS: int = 5000
    GATHER_CANDIDATES: bool = True

    # Chat
    CHANNEL_LABEL: str = "chat"

    # Audio calls
    AUDIO_ENABLED: bool = True
    AUDIO_DEVICE: str = "default"
    AUDIO_FORMAT: Optional[str] = "pulse"
    PLAYBACK_DEVICE: Optional[str] = None  # None discards remote audio
    PLAYBACK_FORMAT: Optional[str] = None

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="SUNNY_SIDE_",
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("GATHER_TIMEOUT_MS")
    @classmethod
    def _positive_timeout(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("GATHER_TIMEOUT_MS must be positive")
        return value

    @property
    def gather_timeout(self) -> float:
        """Gathering timeout in seconds."""
        return self.GATHER_TIMEOUT_MS / 1000.0

    def rtc_configuration(self) -> RTCConfiguration:
        """Build the aiortc configuration for a new peer connection."""
        return RTCConfiguration(iceServers=[RTCIceServer(urls=url) for url in self.ICE_SERVERS])


@lru_cache
def get_settings() -> Settings:
    return Settings()
