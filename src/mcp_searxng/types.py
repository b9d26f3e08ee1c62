"""JSON-RPC and MCP types used by the SearXNG server."""

from typing import Annotated, Any, Final, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter

JSONRPC_VERSION: Final[str] = "2.0"
LATEST_PROTOCOL_VERSION: Final[str] = "2025-03-26"
SUPPORTED_PROTOCOL_VERSIONS: Final[tuple[str, ...]] = ("2024-11-05", "2025-03-26", "2025-06-18")

PARSE_ERROR: Final[int] = -32700
INVALID_REQUEST: Final[int] = -32600
METHOD_NOT_FOUND: Final[int] = -32601
INVALID_PARAMS: Final[int] = -32602
INTERNAL_ERROR: Final[int] = -32603

# Implementation-defined server error range; used by the HTTP gateway for
# session-level protocol errors.
SESSION_ERROR: Final[int] = -32000

RequestId = Annotated[int, Field(strict=True)] | str

LoggingLevel = Literal["debug", "info", "notice", "warning", "error", "critical", "alert", "emergency"]

LOGGING_LEVELS: Final[tuple[str, ...]] = (
    "debug",
    "info",
    "notice",
    "warning",
    "error",
    "critical",
    "alert",
    "emergency",
)


class JSONRPCBase(BaseModel):
    """Base class for all JSON-RPC messages."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION


class JSONRPCRequest(JSONRPCBase):
    """A request that expects a response."""

    id: RequestId
    method: str
    params: dict[str, Any] | None = None


class JSONRPCNotification(JSONRPCBase):
    """A notification which does not expect a response."""

    method: str
    params: dict[str, Any] | None = None


class ErrorData(BaseModel):
    """Error information in a JSON-RPC error response."""

    model_config = ConfigDict(extra="allow")

    code: int
    message: str
    data: Any | None = None


class JSONRPCResultResponse(JSONRPCBase):
    """A successful (non-error) response to a request."""

    id: RequestId
    result: dict[str, Any]


class JSONRPCErrorResponse(JSONRPCBase):
    """A response to a request that indicates an error occurred."""

    id: RequestId | None = None
    error: ErrorData


JSONRPCResponse = JSONRPCResultResponse | JSONRPCErrorResponse
JSONRPCMessage = JSONRPCRequest | JSONRPCNotification | JSONRPCResultResponse | JSONRPCErrorResponse


def _message_kind(value: Any) -> str | None:
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if not isinstance(value, dict):
        return None
    if "method" in value:
        return "request" if "id" in value else "notification"
    if "error" in value:
        return "error"
    if "result" in value:
        return "result"
    return None


_TaggedMessage = Annotated[
    Annotated[JSONRPCRequest, Tag("request")]
    | Annotated[JSONRPCNotification, Tag("notification")]
    | Annotated[JSONRPCResultResponse, Tag("result")]
    | Annotated[JSONRPCErrorResponse, Tag("error")],
    Discriminator(_message_kind),
]

jsonrpc_message_adapter: TypeAdapter[JSONRPCMessage] = TypeAdapter(_TaggedMessage)


def dump_message(message: JSONRPCMessage) -> dict[str, Any]:
    return message.model_dump(by_alias=True, exclude_none=True, mode="json")


class MCPModel(BaseModel):
    """Base class for all MCP domain types. Allows extra fields for forward compatibility."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Implementation(MCPModel):
    """Name and version of an MCP implementation."""

    name: str
    version: str


class ClientCapabilities(MCPModel):
    experimental: dict[str, Any] | None = None
    roots: dict[str, Any] | None = None
    sampling: dict[str, Any] | None = None


class ServerCapabilities(MCPModel):
    experimental: dict[str, Any] | None = None
    logging: dict[str, Any] | None = None
    resources: dict[str, Any] | None = None
    tools: dict[str, Any] | None = None


class InitializeRequestParams(MCPModel):
    """Parameters for the initialize request."""

    protocol_version: Annotated[str, Field(alias="protocolVersion")]
    capabilities: ClientCapabilities
    client_info: Annotated[Implementation, Field(alias="clientInfo")]


class InitializeRequest(JSONRPCRequest):
    """Sent from client to server when first connecting."""

    method: Literal["initialize"]
    params: InitializeRequestParams  # type: ignore[assignment]


class InitializeResult(MCPModel):
    """Server's response to an initialize request."""

    protocol_version: Annotated[str, Field(alias="protocolVersion")]
    capabilities: ServerCapabilities
    server_info: Annotated[Implementation, Field(alias="serverInfo")]
    instructions: str | None = None


class Tool(MCPModel):
    """Definition of a tool the server provides."""

    name: str
    description: str | None = None
    input_schema: Annotated[dict[str, Any], Field(alias="inputSchema")]


class TextContent(MCPModel):
    type: Literal["text"] = "text"
    text: str


class CallToolRequestParams(MCPModel):
    name: str
    arguments: dict[str, Any] | None = None


class CallToolResult(MCPModel):
    content: list[TextContent]
    is_error: Annotated[bool, Field(alias="isError")] = False


class Resource(MCPModel):
    """A known resource that the server is capable of reading."""

    uri: str
    name: str
    description: str | None = None
    mime_type: Annotated[str | None, Field(alias="mimeType")] = None


class TextResourceContents(MCPModel):
    uri: str
    mime_type: Annotated[str | None, Field(alias="mimeType")] = None
    text: str


class ReadResourceRequestParams(MCPModel):
    uri: str


class SetLevelRequestParams(MCPModel):
    level: LoggingLevel


class LoggingMessageNotificationParams(MCPModel):
    level: LoggingLevel
    logger: str | None = None
    data: Any
