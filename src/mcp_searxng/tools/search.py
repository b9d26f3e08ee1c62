"""Client for the SearXNG JSON search API."""

from __future__ import annotations

import logging
import time
from typing import Any
from urllib.parse import urlsplit

import httpx

from mcp_searxng.settings import Settings
from mcp_searxng.tools.errors import (
    ConfigurationError,
    DataError,
    JSONError,
    NetworkError,
    ServerError,
    no_results_message,
)
from mcp_searxng.tools.proxy import normalize_proxy_url

logger = logging.getLogger(__name__)

TIME_RANGES = ("day", "month", "year")
SAFESEARCH_LEVELS = ("0", "1", "2")
SEARCH_TIMEOUT = 30.0


def format_result(result: dict[str, Any]) -> str:
    score = float(result.get("score") or 0)
    return (
        f"Title: {result.get('title') or ''}\n"
        f"Description: {result.get('content') or ''}\n"
        f"URL: {result.get('url') or ''}\n"
        f"Relevance Score: {score:.3f}"
    )


def build_search_params(
    query: str,
    pageno: int = 1,
    time_range: str | None = None,
    language: str | None = "all",
    safesearch: str | int | None = None,
) -> dict[str, str]:
    """Query string for ``/search``; unsupported filter values are left out rather than rejected."""
    params = {"q": query, "format": "json", "pageno": str(pageno)}
    if time_range in TIME_RANGES:
        params["time_range"] = time_range
    if language and language != "all":
        params["language"] = language
    if safesearch is not None and str(safesearch) in SAFESEARCH_LEVELS:
        params["safesearch"] = str(safesearch)
    return params


class SearXNGClient:
    """Runs web searches against the SearXNG instance named by ``SEARXNG_URL``.

    Args:
        settings: Process settings providing the instance URL, credentials and proxy
        transport: Optional httpx transport, used instead of the network (and the proxy)
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._transport = transport

    def search_url(self) -> str:
        """``<origin of SEARXNG_URL>/search``; any path on the configured URL is ignored."""
        base = self.settings.searxng_url
        if not base:
            raise ConfigurationError(
                "Configuration Error: SEARXNG_URL not set. Set it to your SearXNG instance "
                "(e.g., http://localhost:8080 or https://search.example.com)"
            )
        parts = urlsplit(base)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ConfigurationError(
                f"Configuration Error: Invalid SEARXNG_URL format: {base}. Use format: http://localhost:8080"
            )
        host = parts.netloc.rpartition("@")[2]
        return f"{parts.scheme}://{host}/search"

    def _client(self) -> httpx.AsyncClient:
        if self._transport is not None:
            return httpx.AsyncClient(transport=self._transport, timeout=SEARCH_TIMEOUT)
        return httpx.AsyncClient(proxy=normalize_proxy_url(self.settings.proxy_url), timeout=SEARCH_TIMEOUT)

    async def search(
        self,
        query: str,
        pageno: int = 1,
        time_range: str | None = None,
        language: str | None = "all",
        safesearch: str | int | None = None,
    ) -> str:
        url = self.search_url()
        params = build_search_params(query, pageno, time_range, language, safesearch)
        auth = httpx.BasicAuth(self.settings.auth_username, self.settings.auth_password) if self.settings.has_auth else None

        started = time.monotonic()
        logger.debug(f"Searching {url} with {params}")
        try:
            async with self._client() as client:
                response = await client.get(url, params=params, auth=auth)
        except httpx.HTTPError as e:
            raise NetworkError(url, e, proxied=self.settings.proxy_url is not None) from e

        if response.is_error:
            raise ServerError(url, response.status_code, response.reason_phrase, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise JSONError(response.text) from e

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise DataError(query)
        if not results:
            logger.info(f"No results found for query: {query!r}")
            return no_results_message(query)

        logger.info(f"Search {query!r} returned {len(results)} results in {time.monotonic() - started:.2f}s")
        return "\n\n".join(format_result(result) for result in results)
