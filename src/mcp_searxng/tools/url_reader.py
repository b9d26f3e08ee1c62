"""Fetch a web page and convert it to Markdown."""

from __future__ import annotations

import functools
import logging
from urllib.parse import urlsplit

import anyio
import anyio.to_thread
import httpx
import trafilatura

from mcp_searxng.settings import Settings
from mcp_searxng.tools.errors import (
    ContentError,
    ConversionError,
    FetchTimeoutError,
    NetworkError,
    ServerError,
    URLFormatError,
    empty_content_warning,
)
from mcp_searxng.tools.proxy import normalize_proxy_url

logger = logging.getLogger(__name__)


def html_to_markdown(html: str) -> str | None:
    return trafilatura.extract(
        html,
        output_format="markdown",
        include_comments=False,
        include_links=True,
        include_tables=True,
        include_images=False,
    )


class URLReader:
    """Reads a URL through the configured proxy, giving up after ``URL_READ_TIMEOUT`` seconds.

    Args:
        settings: Process settings providing the timeout and proxy
        transport: Optional httpx transport, used instead of the network (and the proxy)
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._transport = transport

    @property
    def timeout(self) -> float:
        return self.settings.url_read_timeout

    def _client(self) -> httpx.AsyncClient:
        if self._transport is not None:
            return httpx.AsyncClient(transport=self._transport, timeout=self.timeout, follow_redirects=True)
        return httpx.AsyncClient(
            proxy=normalize_proxy_url(self.settings.proxy_url),
            timeout=self.timeout,
            follow_redirects=True,
        )

    async def read(self, url: str) -> str:
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise URLFormatError(url)

        logger.debug(f"Fetching {url}")
        try:
            with anyio.fail_after(self.timeout):
                async with self._client() as client:
                    response = await client.get(url)
        except (TimeoutError, httpx.TimeoutException) as e:
            raise FetchTimeoutError(url, self.timeout) from e
        except httpx.HTTPError as e:
            raise NetworkError(url, e, proxied=self.settings.proxy_url is not None) from e

        if response.is_error:
            raise ServerError(url, response.status_code, response.reason_phrase, response.text)

        html = response.text
        if not html.strip():
            raise ContentError(url, "Website returned empty content")

        try:
            markdown = await anyio.to_thread.run_sync(functools.partial(html_to_markdown, html))
        except Exception as e:
            raise ConversionError(url, e) from e

        if not markdown or not markdown.strip():
            logger.warning(f"Empty content after conversion: {url}")
            return empty_content_warning(url, len(html))

        logger.info(f"Converted {url} to {len(markdown)} characters of Markdown")
        return markdown
