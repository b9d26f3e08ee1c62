"""Process configuration read from the environment."""

from __future__ import annotations

from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from mcp_searxng.server.transport_security import TransportSecuritySettings
from mcp_searxng.utilities.logging import LogLevel

DEFAULT_GATEWAY_PATH = "/gateway"

CommaSeparated = Annotated[list[str], NoDecode]


class Settings(BaseSettings):
    """mcp-searxng settings.

    Every field is read from the environment variable of the same name, upper
    or lower case (``SEARXNG_URL``, ``MCP_HTTP_PORT``, ``http_proxy`` ...), or
    from a ``.env`` file in the working directory. List-valued fields take a
    comma-separated string.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # SearXNG
    searxng_url: str | None = None
    auth_username: str | None = None
    auth_password: str | None = None
    http_proxy: str | None = None
    https_proxy: str | None = None
    url_read_timeout: float = Field(default=10.0, gt=0)

    # Logging
    log_level: LogLevel = "INFO"

    # HTTP gateway; stdio is used when no port is set
    mcp_http_port: int | None = Field(default=None, ge=1, le=65535)
    mcp_http_host: str = "0.0.0.0"
    mcp_http_path: str = DEFAULT_GATEWAY_PATH
    session_idle_timeout: float | None = Field(default=None, gt=0)
    """Seconds without traffic after which a session is closed; unset disables eviction."""
    max_body_bytes: int = Field(default=4 * 1024 * 1024, gt=0)
    cors_origins: CommaSeparated = ["*"]

    # Transport security settings (DNS rebinding protection)
    enable_dns_rebinding_protection: bool = False
    allowed_hosts: CommaSeparated = []
    allowed_origins: CommaSeparated = []

    @field_validator("cors_origins", "allowed_hosts", "allowed_origins", mode="before")
    @classmethod
    def _split_commas(cls, value: object) -> object:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value

    @field_validator("mcp_http_path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"

    @property
    def proxy_url(self) -> str | None:
        return self.http_proxy or self.https_proxy

    @property
    def has_auth(self) -> bool:
        return bool(self.auth_username and self.auth_password)

    @property
    def transport_security(self) -> TransportSecuritySettings:
        return TransportSecuritySettings(
            enable_dns_rebinding_protection=self.enable_dns_rebinding_protection,
            allowed_hosts=self.allowed_hosts,
            allowed_origins=self.allowed_origins,
        )
