"""DNS rebinding protection for the HTTP gateway."""

import logging
from fnmatch import fnmatchcase

from pydantic import BaseModel, Field
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)


class TransportSecuritySettings(BaseModel):
    """Host and Origin allow-lists checked before a request reaches the router.

    Patterns use shell-style wildcards: ``localhost:*`` allows any port and
    ``*.example.com`` allows every subdomain as well as ``example.com`` itself.
    """

    enable_dns_rebinding_protection: bool = False
    allowed_hosts: list[str] = Field(default_factory=list)
    allowed_origins: list[str] = Field(default_factory=list)


def _matches(value: str, patterns: list[str]) -> bool:
    value = value.lower()
    for pattern in patterns:
        pattern = pattern.lower()
        if fnmatchcase(value, pattern):
            return True
        if pattern.startswith("*.") and fnmatchcase(value, pattern[2:]):
            return True
    return False


class TransportSecurityMiddleware:
    """Validates the Host and Origin headers of gateway requests."""

    def __init__(self, settings: TransportSecuritySettings | None = None):
        self.settings = settings or TransportSecuritySettings()

    def _validate_host(self, host: str | None) -> bool:
        if not host:
            logger.warning("Missing Host header in request")
            return False
        if _matches(host, self.settings.allowed_hosts):
            return True
        logger.warning(f"Invalid Host header: {host}")
        return False

    def _validate_origin(self, origin: str | None) -> bool:
        # Same-origin requests carry no Origin header
        if not origin:
            return True
        if _matches(origin, self.settings.allowed_origins):
            return True
        logger.warning(f"Invalid Origin header: {origin}")
        return False

    async def validate_request(self, request: Request) -> Response | None:
        """Return None if the request may proceed, or the error Response to send instead."""
        if not self.settings.enable_dns_rebinding_protection:
            return None

        if not self._validate_host(request.headers.get("host")):
            return Response("Invalid Host header", status_code=421)
        if not self._validate_origin(request.headers.get("origin")):
            return Response("Invalid Origin header", status_code=403)
        return None
