"""Errors raised by the search and URL-reading tools.

Every message is meant to be shown to the calling model as is, so each one
names what went wrong and what the operator can do about it.
"""

from __future__ import annotations

# Longest excerpt of a remote response quoted in an error message
BODY_EXCERPT_CHARS = 200


def _excerpt(text: str, limit: int = BODY_EXCERPT_CHARS) -> str:
    text = text.strip()
    return text if len(text) <= limit else text[:limit] + "..."


class SearXNGError(Exception):
    """Base class for tool failures reported back to the client."""


class ConfigurationError(SearXNGError):
    pass


class NetworkError(SearXNGError):
    def __init__(self, url: str, cause: Exception, *, proxied: bool = False):
        hint = " through the configured proxy" if proxied else ""
        super().__init__(f"Network Error: could not reach {url}{hint} ({type(cause).__name__}: {cause})")
        self.url = url


class ServerError(SearXNGError):
    def __init__(self, url: str, status_code: int, reason: str, body: str = ""):
        message = f"Server Error: {url} answered {status_code} {reason}".rstrip()
        if status_code in (401, 403):
            message += ". Check AUTH_USERNAME and AUTH_PASSWORD"
        elif status_code == 429:
            message += ". The server is rate limiting requests, try again later"
        if body.strip():
            message += f"\nResponse: {_excerpt(body)}"
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class JSONError(SearXNGError):
    def __init__(self, body: str):
        super().__init__(
            "JSON Error: SearXNG did not return JSON. Make sure the instance enables the json format "
            f"(search.formats in settings.yml).\nResponse: {_excerpt(body)}"
        )


class DataError(SearXNGError):
    def __init__(self, query: str):
        super().__init__(f"Data Error: SearXNG response for {query!r} has no results field")


class URLFormatError(SearXNGError):
    def __init__(self, url: str):
        super().__init__(f"URL Format Error: {url!r} is not a valid http(s) URL, e.g. https://example.com/page")


class ContentError(SearXNGError):
    def __init__(self, url: str, reason: str):
        super().__init__(f"Content Error: {reason} ({url})")


class ConversionError(SearXNGError):
    def __init__(self, url: str, cause: Exception):
        super().__init__(f"Conversion Error: could not convert {url} to Markdown ({cause})")


class FetchTimeoutError(SearXNGError):
    def __init__(self, url: str, timeout: float):
        super().__init__(f"Timeout Error: {url} did not respond within {timeout:g} seconds")


def no_results_message(query: str) -> str:
    return f'No results found for "{query}". Try different search terms or check your SearXNG instance.'


def empty_content_warning(url: str, html_length: int) -> str:
    return (
        f"Content Warning: {url} returned {html_length} characters of HTML, "
        "but no readable text could be extracted. The page may require JavaScript "
        "or contain only media."
    )
