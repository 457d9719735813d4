"""A line-delimited JSON-RPC server that exposes the knowledge graph tools over stdio."""

from __future__ import annotations

import argparse
import json
import os
import sys
from collections.abc import Mapping
from contextlib import ExitStack
from typing import Any, TextIO

from . import connection_tools, knowledgebase_tools
from .connection_store import ConnectionStore
from .knowledgebase_store import KnowledgeBaseStore
from .models import StorageError
from .schema import apply_schema
from .tooling import ToolError, ToolServer

JSONRPC_VERSION = "2.0"
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

SUPPORTED_PROTOCOL_VERSIONS = ("2025-03-26", "2024-11-05")
LATEST_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[0]

SERVER_NAME = "Knowledge Graph MCP Server"
SERVER_VERSION = "1.0.0"
DEFAULT_DB_PATH = "knowledge-base.db"


class _RpcError(Exception):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": {"code": code, "message": message},
    }


def _initialize(server: ToolServer, params: Mapping[str, Any]) -> dict[str, Any]:
    requested = params.get("protocolVersion")
    version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION
    return {
        "protocolVersion": version,
        "capabilities": {"tools": {}},
        "serverInfo": {"name": server.name, "version": server.version},
    }


def _list_tools(server: ToolServer) -> dict[str, Any]:
    return {
        "tools": [
            {
                "name": tool.name,
                "description": tool.description,
                "inputSchema": tool.input_schema,
            }
            for tool in server.list_tools()
        ]
    }


def _call_tool(server: ToolServer, params: Mapping[str, Any]) -> dict[str, Any]:
    name = params.get("name")
    if not isinstance(name, str):
        raise _RpcError(INVALID_PARAMS, "tool name is required")
    if name not in {tool.name for tool in server.list_tools()}:
        raise _RpcError(INVALID_PARAMS, f"tool '{name}' not found")
    try:
        result = server.call_tool(name, params.get("arguments"))
    except ToolError as exc:
        raise _RpcError(INTERNAL_ERROR, str(exc)) from exc
    except Exception as exc:  # a failing tool must not bring the server down
        raise _RpcError(INTERNAL_ERROR, f"tool '{name}' failed: {exc}") from exc
    return {"content": result.content}


def _dispatch(server: ToolServer, method: str, params: Mapping[str, Any]) -> Any:
    if method == "initialize":
        return _initialize(server, params)
    if method == "ping":
        return {}
    if method == "tools/list":
        return _list_tools(server)
    if method == "tools/call":
        return _call_tool(server, params)
    if method.startswith("notifications/"):
        return {}
    raise _RpcError(METHOD_NOT_FOUND, f"method {method} not found")


def handle_request(server: ToolServer, request: Any) -> dict[str, Any] | None:
    """Answer one decoded JSON-RPC message; notifications get ``None``."""
    if not isinstance(request, Mapping):
        return _error(None, INVALID_REQUEST, "invalid request")
    request_id = request.get("id")
    method = request.get("method")
    if request.get("jsonrpc") != JSONRPC_VERSION or not isinstance(method, str):
        return _error(request_id, INVALID_REQUEST, "invalid request")

    is_notification = "id" not in request
    params = request.get("params")
    if params is None:
        params = {}
    try:
        if not isinstance(params, Mapping):
            raise _RpcError(INVALID_PARAMS, "params must be an object")
        result = _dispatch(server, method, params)
    except _RpcError as exc:
        return None if is_notification else _error(request_id, exc.code, exc.message)
    if is_notification:
        return None
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def serve(server: ToolServer, reader: TextIO, writer: TextIO) -> None:
    """Read one JSON message per line from ``reader`` and write answers to ``writer``."""
    for line in reader:
        line = line.strip()
        if not line:
            continue
        try:
            message = json.loads(line)
        except ValueError as exc:
            response: dict[str, Any] | None = _error(None, PARSE_ERROR, f"parse error: {exc}")
        else:
            response = handle_request(server, message)
        if response is not None:
            writer.write(json.dumps(response, ensure_ascii=False) + "\n")
            writer.flush()


def _fail(message: str) -> int:
    print(message, file=sys.stderr)
    return 1


def main(argv: list[str] | None = None) -> int:
    """Open the database, register every tool and serve requests on stdin and stdout."""
    parser = argparse.ArgumentParser(
        prog="kgmcp", description="Serve the knowledge graph tools over stdio."
    )
    parser.add_argument(
        "-db",
        "--db",
        "-database",
        "--database",
        dest="db_path",
        default=DEFAULT_DB_PATH,
        help="Path to SQLite database file",
    )
    args = parser.parse_args(argv)
    db_path: str = args.db_path

    if not db_path:
        print("Error: database path cannot be empty", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    try:
        os.stat(db_path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        return _fail(f"Failed to access database file: {exc}")

    try:
        apply_schema(db_path)
    except StorageError as exc:
        return _fail(f"Failed to run migrations: {exc}")

    with ExitStack() as stack:
        try:
            kb_store = stack.enter_context(KnowledgeBaseStore(db_path))
        except StorageError as exc:
            return _fail(f"Failed to initialize knowledgebase storage: {exc}")
        try:
            conn_store = stack.enter_context(ConnectionStore(db_path))
        except StorageError as exc:
            return _fail(f"Failed to initialize connection storage: {exc}")

        server = ToolServer(SERVER_NAME, SERVER_VERSION)
        knowledgebase_tools.register_tools(server, kb_store)
        connection_tools.register_tools(server, conn_store)
        serve(server, sys.stdin, sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())