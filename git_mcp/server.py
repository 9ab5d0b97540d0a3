"""Line-delimited JSON-RPC loop serving the tool registry over stdio."""

from __future__ import annotations

import io
import json
import logging
import sys
from typing import Any, TextIO

from pydantic import ValidationError

from git_mcp import __version__
from git_mcp.config import Settings
from git_mcp.errors import Failure
from git_mcp.github_client import GitHubClient
from git_mcp.schema import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    CallToolParams,
    CallToolResult,
    InitializeResult,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    RequestId,
    ServerInfo,
    TextContent,
)
from git_mcp.tools import ToolContext, ToolRegistry, ToolRequest, ToolResult

logger = logging.getLogger(__name__)

SERVER_NAME = "git-mcp"


def _response_id(message: Any) -> RequestId:
    """Return the id of a raw message when it is usable as a response id."""
    if not isinstance(message, dict):
        return None
    request_id = message.get("id")
    if isinstance(request_id, bool) or not isinstance(request_id, int | str):
        return None
    return request_id


def _describe_validation_error(error: ValidationError) -> str:
    details = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"]) or "params"
        details.append(f"{location}: {detail['msg']}")
    return "; ".join(details)


def _error_response(request_id: RequestId, code: int, message: str) -> JsonRpcResponse:
    return JsonRpcResponse(id=request_id, error=JsonRpcError(code=code, message=message))


def tool_result_to_payload(result: ToolResult) -> dict[str, Any]:
    """Render a tool result as an MCP `tools/call` result body."""
    if isinstance(result, Failure):
        body = CallToolResult(
            content=[TextContent(text=json.dumps(result.error.to_payload(), ensure_ascii=False))],
            is_error=True,
        )
    else:
        body = CallToolResult(
            content=[TextContent(text=json.dumps(result.value, ensure_ascii=False))]
        )
    return body.model_dump(by_alias=True)


class ProtocolHandler:
    """Turns protocol messages into registry calls.

    Requests on one connection are handled strictly in arrival order. Any
    failure, including unexpected exceptions, becomes a response; nothing
    here ends the process.
    """

    def __init__(self, registry: ToolRegistry, *, server_version: str = __version__) -> None:
        self._registry = registry
        self._server_info = ServerInfo(name=SERVER_NAME, version=server_version)

    def handle_line(self, line: str) -> str | None:
        """Handle one raw input line; return the response line, if any."""
        try:
            message = json.loads(line)
        except json.JSONDecodeError as error:
            logger.error("Invalid JSON: %s", error)
            return _error_response(None, PARSE_ERROR, f"Parse error: {error.msg}").to_line()

        response = self.handle_message(message)
        return response.to_line() if response is not None else None

    def handle_message(self, message: Any) -> JsonRpcResponse | None:
        request_id = _response_id(message)
        try:
            request = JsonRpcRequest.model_validate(message)
        except ValidationError as error:
            logger.error("Invalid request: %s", error)
            return _error_response(request_id, INVALID_REQUEST, "Invalid request.")

        if request.is_notification:
            logger.info("Notification received: %s", request.method)
            return None

        try:
            return self._dispatch(request)
        except Exception as error:  # noqa: BLE001
            logger.exception("Unhandled error while processing %s", request.method)
            return _error_response(request.id, INTERNAL_ERROR, f"Internal error: {error}")

    def _dispatch(self, request: JsonRpcRequest) -> JsonRpcResponse:
        if request.method == "initialize":
            result = InitializeResult(server_info=self._server_info)
            return JsonRpcResponse(id=request.id, result=result.model_dump(by_alias=True))

        if request.method == "ping":
            return JsonRpcResponse(id=request.id, result={})

        if request.method == "tools/list":
            tools = [
                definition.model_dump(by_alias=True)
                for definition in self._registry.definitions()
            ]
            return JsonRpcResponse(id=request.id, result={"tools": tools})

        if request.method == "tools/call":
            try:
                params = CallToolParams.model_validate(request.params)
            except ValidationError as error:
                return _error_response(
                    request.id,
                    INVALID_PARAMS,
                    f"Invalid tools/call params: {_describe_validation_error(error)}",
                )
            tool_request = ToolRequest(name=params.name, arguments=params.arguments or {})
            result = self._registry.call(tool_request)
            return JsonRpcResponse(id=request.id, result=tool_result_to_payload(result))

        return _error_response(
            request.id, METHOD_NOT_FOUND, f"Method '{request.method}' not found."
        )

    def serve(self, input_stream: TextIO, output_stream: TextIO) -> None:
        """Process lines until the input stream closes."""
        for raw_line in input_stream:
            line = raw_line.strip()
            if not line:
                continue
            try:
                response_line = self.handle_line(line)
            except Exception as error:  # noqa: BLE001
                logger.exception("Unhandled error while processing an input line")
                response_line = _error_response(
                    None, INTERNAL_ERROR, f"Internal error: {error}"
                ).to_line()
            if response_line is None:
                continue
            output_stream.write(response_line + "\n")
            output_stream.flush()
        logger.info("Input closed; shutting down.")


def build_registry(settings: Settings, client: GitHubClient) -> ToolRegistry:
    return ToolRegistry(ToolContext(client=client, settings=settings))


def run_stdio_server(settings: Settings) -> None:
    """Serve stdin/stdout until stdin closes."""
    with GitHubClient.from_settings(settings) as client:
        registry = build_registry(settings, client)
        logger.info("Serving %d tools over stdio.", len(registry.definitions()))
        input_stream = io.TextIOWrapper(sys.stdin.buffer, encoding="utf-8", errors="replace")
        ProtocolHandler(registry).serve(input_stream, sys.stdout)
