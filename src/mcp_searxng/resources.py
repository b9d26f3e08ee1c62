"""Static resources served by the searxng server."""

import json
import platform

from mcp_searxng import __version__, types
from mcp_searxng.settings import Settings

SERVER_NAME = "mcp-searxng"

CONFIG_URI = "config://server-config"
HELP_URI = "help://usage-guide"

RESOURCES = [
    types.Resource(
        uri=CONFIG_URI,
        name="Server Configuration",
        description="Current server configuration and environment variables",
        mime_type="application/json",
    ),
    types.Resource(
        uri=HELP_URI,
        name="Usage Guide",
        description="How to use the MCP SearXNG server effectively",
        mime_type="text/markdown",
    ),
]


def server_config(settings: Settings, log_level: types.LoggingLevel) -> str:
    """JSON summary of the running server; secrets are reported only as present or absent."""
    config = {
        "serverInfo": {
            "name": SERVER_NAME,
            "version": __version__,
            "description": "MCP server for SearXNG integration",
        },
        "environment": {
            "searxngUrl": settings.searxng_url or "(not configured)",
            "hasAuth": settings.has_auth,
            "hasProxy": settings.proxy_url is not None,
            "pythonVersion": platform.python_version(),
            "currentLogLevel": log_level,
        },
        "capabilities": {
            "tools": ["searxng_web_search", "web_url_read"],
            "logging": True,
            "resources": True,
            "transports": ["stdio", "http"] if settings.mcp_http_port else ["stdio"],
        },
    }
    return json.dumps(config, indent=2)


def usage_guide(settings: Settings) -> str:
    return f"""# SearXNG MCP Server Help

## Overview
This is a Model Context Protocol (MCP) server that provides web search capabilities through SearXNG and URL content reading functionality.

## Available Tools

### 1. searxng_web_search
Performs web searches using the configured SearXNG instance.

**Parameters:**
- `query` (required): The search query string
- `pageno` (optional): Page number (default: 1)
- `time_range` (optional): Filter by time - "day", "month", or "year"
- `language` (optional): Language code like "en", "fr", "de" (default: "all")
- `safesearch` (optional): Safe search level - "0" (none), "1" (moderate), "2" (strict)

### 2. web_url_read
Reads and converts web page content to Markdown format.

**Parameters:**
- `url` (required): The URL to fetch and convert

## Configuration

### Required Environment Variables
- `SEARXNG_URL`: URL of your SearXNG instance (e.g., http://localhost:8080)

### Optional Environment Variables
- `AUTH_USERNAME` & `AUTH_PASSWORD`: Basic authentication for SearXNG
- `HTTP_PROXY` / `HTTPS_PROXY`: Proxy server configuration
- `MCP_HTTP_PORT`: Enable the HTTP gateway on the specified port
- `MCP_HTTP_PATH`: Path of the gateway endpoint (default: {settings.mcp_http_path})
- `URL_READ_TIMEOUT`: Seconds to wait for `web_url_read` (default: 10)
- `SESSION_IDLE_TIMEOUT`: Close HTTP sessions idle for this many seconds

## Transport Modes

### STDIO (Default)
Standard input/output transport for desktop clients.

### HTTP (Optional)
Sessions are opened with an `initialize` request POSTed without a `session-id`
header; the response carries the `session-id` to send on every later request.
`GET` opens the notification stream and `DELETE` ends the session.

## Usage Examples

### Search for recent news
```
Tool: searxng_web_search
Args: {{"query": "latest AI developments", "time_range": "day"}}
```

### Read a specific article
```
Tool: web_url_read
Args: {{"url": "https://example.com/article"}}
```

## Troubleshooting

1. **"SEARXNG_URL not set"**: Configure the SEARXNG_URL environment variable
2. **Network errors**: Check if SearXNG is running and accessible
3. **Empty results**: Try different search terms or check SearXNG instance
4. **Timeout errors**: The server waits {settings.url_read_timeout:g} seconds for URL fetching

Use logging level "debug" for detailed request information.

## Current Configuration
See the "{CONFIG_URI}" resource for live settings.
"""
