"""MCP server for SearXNG web search and URL-to-Markdown reading.

The server speaks the [Model Context Protocol](https://modelcontextprotocol.io)
over stdio, or over an HTTP gateway with per-client sessions when
``MCP_HTTP_PORT`` is set:

```
SEARXNG_URL=http://localhost:8080 mcp-searxng
SEARXNG_URL=http://localhost:8080 MCP_HTTP_PORT=3000 mcp-searxng
```
"""

__version__ = "0.7.0"
