"""Starlette application hosting the HTTP gateway."""

from __future__ import annotations

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from mcp_searxng import __version__
from mcp_searxng.server.lowlevel import Server
from mcp_searxng.server.session_lifecycle import SessionLifecycleManager
from mcp_searxng.server.streamable_http import SESSION_ID_HEADER
from mcp_searxng.server.streamable_http_manager import StreamableHTTPSessionManager
from mcp_searxng.settings import Settings


class StreamableHTTPASGIApp:
    """
    ASGI application for Streamable HTTP server transport.
    """

    def __init__(self, session_manager: StreamableHTTPSessionManager):
        self.session_manager = session_manager

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.session_manager.handle_request(scope, receive, send)


async def health(request: Request) -> JSONResponse:
    return JSONResponse(
        {
            "status": "healthy",
            "server": "mcp-searxng",
            "version": __version__,
            "transport": "http",
        }
    )


def create_session_manager(server: Server, settings: Settings) -> StreamableHTTPSessionManager:
    return StreamableHTTPSessionManager(
        app=server,
        lifecycle=SessionLifecycleManager(idle_timeout=settings.session_idle_timeout),
        security_settings=settings.transport_security,
        max_body_bytes=settings.max_body_bytes,
    )


def streamable_http_app(
    server: Server,
    settings: Settings,
    session_manager: StreamableHTTPSessionManager | None = None,
) -> Starlette:
    """Return the gateway app: the session endpoint at ``settings.mcp_http_path`` plus ``/health``.

    The session manager runs for the lifespan of the app, so sessions only
    exist while the app is being served.
    """
    if session_manager is None:
        session_manager = create_session_manager(server, settings)

    routes = [
        Route(settings.mcp_http_path, endpoint=StreamableHTTPASGIApp(session_manager)),
        Route("/health", endpoint=health, methods=["GET"]),
    ]
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=["GET", "POST", "DELETE"],
            allow_headers=["Content-Type", SESSION_ID_HEADER],
            expose_headers=[SESSION_ID_HEADER],
        )
    ]

    return Starlette(
        routes=routes,
        middleware=middleware,
        lifespan=lambda app: session_manager.run(),
    )
