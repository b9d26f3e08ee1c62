from mcp_searxng.types import ErrorData


class McpError(Exception):
    """Exception raised by a request handler to answer with a specific JSON-RPC error.

    The protocol engine turns it into an error response carrying ``error``
    verbatim instead of the generic internal-error response used for any
    other exception.

    Attributes:
        error: The ErrorData sent back to the peer
    """

    error: ErrorData

    def __init__(self, error: ErrorData):
        super().__init__(error.message)
        self.error = error


class InvalidSessionTransition(RuntimeError):
    """Raised when a session is asked to move between two states that are not adjacent."""
