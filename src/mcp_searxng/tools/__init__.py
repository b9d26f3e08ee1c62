from mcp_searxng import types

from .search import SearXNGClient
from .url_reader import URLReader

WEB_SEARCH_TOOL = types.Tool(
    name="searxng_web_search",
    description=(
        "Performs a web search using the SearXNG API, ideal for general queries, news, articles, and online "
        "content. Use this for broad information gathering, recent events, or when you need diverse web sources."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "The search query. This is the main input for the web search"},
            "pageno": {"type": "number", "description": "Search page number (starts at 1)", "default": 1},
            "time_range": {
                "type": "string",
                "description": "Time range of search (day, month, year)",
                "enum": ["day", "month", "year"],
            },
            "language": {
                "type": "string",
                "description": "Language code for search results (e.g., 'en', 'fr', 'de'). Default is instance-dependent.",
                "default": "all",
            },
            "safesearch": {
                "type": "string",
                "description": "Safe search filter level (0: None, 1: Moderate, 2: Strict)",
                "enum": ["0", "1", "2"],
                "default": "0",
            },
        },
        "required": ["query"],
    },
)

READ_URL_TOOL = types.Tool(
    name="web_url_read",
    description=(
        "Read the content from an URL. "
        "Use this for further information retrieving to understand the content of each URL."
    ),
    input_schema={
        "type": "object",
        "properties": {"url": {"type": "string", "description": "URL"}},
        "required": ["url"],
    },
)

__all__ = ["READ_URL_TOOL", "WEB_SEARCH_TOOL", "SearXNGClient", "URLReader"]
