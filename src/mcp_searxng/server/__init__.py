from .lowlevel import Server
from .models import InitializationOptions
from .session_lifecycle import SessionLifecycleManager
from .session_registry import Session, SessionRegistry, SessionState
from .streamable_http_manager import StreamableHTTPSessionManager

__all__: list[str] = [
    "Server",
    "InitializationOptions",
    "Session",
    "SessionLifecycleManager",
    "SessionRegistry",
    "SessionState",
    "StreamableHTTPSessionManager",
]
