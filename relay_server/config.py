"""Configuration management for the relay server.

Loads settings from environment variables (``RELAY_`` prefix) or a ``.env``
file, with validation and defaults.
"""

from pathlib import Path
from typing import Optional

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class RelaySettings(BaseSettings):
    """Settings for the relay server."""

    # Server
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=3000, description="Listen port", ge=1, le=65535)
    public_base_url: Optional[str] = Field(
        default=None,
        description="Base URL advertised for local stream links (default http://127.0.0.1:<port>)",
    )
    debug: bool = False

    # Station snapshot written by the crawler
    stations_path: Path = Field(
        default=Path("stations.json"),
        description="Path of the station directory snapshot",
    )

    # Upstream catalog
    catalog_base_url: str = Field(
        default="https://ytmsout.radio.cn",
        description="Base URL of the station catalog API",
    )
    catalog_secret: str = Field(
        default="f0fc4c668392f9f9a447e48584c214ee",
        description="Shared key used to sign catalog requests",
    )
    catalog_category_id: str = "0"
    equipment_id: str = "0000"
    platform_code: str = "WEB"
    resolver_timeout: float = Field(
        default=5.0,
        description="Timeout for one catalog lookup (seconds)",
        ge=0.5,
        le=60.0,
    )

    # Security for the control endpoints
    api_token: Optional[str] = None

    model_config = ConfigDict(
        env_prefix="RELAY_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def base_url(self) -> str:
        """Base URL used to build ``/stream/{id}`` links."""
        if self.public_base_url:
            return self.public_base_url.rstrip("/")
        return f"http://127.0.0.1:{self.port}"

    def stream_url(self, station_id: str) -> str:
        """Local relay URL for a station."""
        return f"{self.base_url}/stream/{station_id}"


def get_settings() -> RelaySettings:
    """Load relay settings from the environment.

    Returns:
        RelaySettings: Settings instance.
    """
    return RelaySettings()
