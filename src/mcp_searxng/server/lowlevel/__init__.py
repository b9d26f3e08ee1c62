from .server import RequestContext, Server, request_ctx

__all__ = ["RequestContext", "Server", "request_ctx"]
