"""JSON-RPC envelope and MCP payload models."""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

JSONRPC_VERSION = "2.0"
MCP_PROTOCOL_VERSION = "2024-11-05"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

RequestId = int | str | None


class JsonRpcRequest(BaseModel):
    """A JSON-RPC 2.0 request or notification."""

    model_config = ConfigDict(extra="ignore")

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    method: str = Field(min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)
    id: RequestId = None

    @property
    def is_notification(self) -> bool:
        """Messages without an `id` member get no response."""
        return "id" not in self.model_fields_set


class JsonRpcError(BaseModel):
    """A JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None


class JsonRpcResponse(BaseModel):
    """A JSON-RPC 2.0 response; exactly one of `result` / `error` is set."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: RequestId = None
    result: dict[str, Any] | None = None
    error: JsonRpcError | None = None

    def to_line(self) -> str:
        """Serialize to one compact JSON line, keeping `id` even when null."""
        payload: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.model_dump(exclude_none=True)
        else:
            payload["result"] = self.result if self.result is not None else {}
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


class ToolDefinition(BaseModel):
    """A tool as advertised by `tools/list`."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    description: str
    input_schema: dict[str, Any] = Field(alias="inputSchema")

    @property
    def required_arguments(self) -> tuple[str, ...]:
        return tuple(self.input_schema.get("required", ()))

    @property
    def properties(self) -> dict[str, Any]:
        return self.input_schema.get("properties", {})


class CallToolParams(BaseModel):
    """`tools/call` parameters."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    arguments: dict[str, Any] | None = None


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class CallToolResult(BaseModel):
    """`tools/call` result body."""

    model_config = ConfigDict(populate_by_name=True)

    content: list[TextContent]
    is_error: bool = Field(default=False, alias="isError")


class ServerInfo(BaseModel):
    name: str
    version: str


class InitializeResult(BaseModel):
    """`initialize` result body."""

    model_config = ConfigDict(populate_by_name=True)

    protocol_version: str = Field(default=MCP_PROTOCOL_VERSION, alias="protocolVersion")
    capabilities: dict[str, Any] = Field(default_factory=lambda: {"tools": {}})
    server_info: ServerInfo = Field(alias="serverInfo")
