"""Tool handlers that list connections, and registration of every connection tool."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .connection_handlers import (
    make_create_handler,
    make_delete_handler,
    make_get_handler,
    make_update_handler,
)
from .models import (
    ConnectionStorage,
    ListConnectionsRequest,
    NoteConnectionsRequest,
    StorageError,
    is_valid_connection_type,
    valid_connection_types,
)
from .tooling import Handler, Tool, ToolError, ToolResult, ToolServer, parse_int, to_json

DEFAULT_LIMIT = 100
DEFAULT_OFFSET = 0
MIN_LIMIT = 1
MAX_LIMIT = 1000
MIN_STRENGTH = 1
MAX_STRENGTH = 10
DEFAULT_ORDER_BY = "id"
DEFAULT_ORDER_DIR = "asc"
ORDER_BY_FIELDS = ("id", "created_at", "updated_at", "strength", "type")
ORDER_DIRECTIONS = ("asc", "desc")


def _bracketed(values: list[str] | tuple[str, ...]) -> str:
    return "[" + " ".join(values) + "]"


def _arguments(arguments: Any) -> Mapping[str, Any]:
    if not isinstance(arguments, Mapping):
        raise ToolError("invalid arguments format")
    return arguments


def _int_argument(key: str, raw: Any) -> int:
    try:
        return parse_int(raw)
    except ValueError as exc:
        raise ToolError(f"invalid {key}: {exc}") from exc


def _limit(raw: Any) -> int:
    limit = _int_argument("limit", raw)
    if limit < MIN_LIMIT or limit > MAX_LIMIT:
        raise ToolError(f"limit must be between {MIN_LIMIT} and {MAX_LIMIT}, got: {limit}")
    return limit


def _offset(raw: Any) -> int:
    offset = _int_argument("offset", raw)
    if offset < 0:
        raise ToolError(f"offset must be non-negative, got: {offset}")
    return offset


def _strength(raw: Any) -> int:
    strength = _int_argument("strength", raw)
    if strength < MIN_STRENGTH or strength > MAX_STRENGTH:
        raise ToolError(
            f"strength must be between {MIN_STRENGTH} and {MAX_STRENGTH}, got: {strength}"
        )
    return strength


def _type_filter(args: Mapping[str, Any]) -> str | None:
    raw = args.get("type")
    if not isinstance(raw, str) or raw == "":
        return None
    if not is_valid_connection_type(raw):
        raise ToolError(
            f"invalid connection type: {raw}. "
            f"Valid types are: {_bracketed(valid_connection_types())}"
        )
    return raw


def make_list_handler(storage: ConnectionStorage) -> Handler:
    """Build the handler of the list_connections tool."""

    def handle(arguments: Mapping[str, Any]) -> ToolResult:
        args = _arguments(arguments)
        request = ListConnectionsRequest(
            limit=DEFAULT_LIMIT,
            offset=DEFAULT_OFFSET,
            order_by=DEFAULT_ORDER_BY,
            order_dir=DEFAULT_ORDER_DIR,
        )
        if "limit" in args:
            request.limit = _limit(args["limit"])
        if "offset" in args:
            request.offset = _offset(args["offset"])
        if "from_note_id" in args:
            request.from_note_id = _int_argument("from_note_id", args["from_note_id"])
        if "to_note_id" in args:
            request.to_note_id = _int_argument("to_note_id", args["to_note_id"])
        request.type = _type_filter(args)
        if "strength" in args:
            request.strength = _strength(args["strength"])

        order_by = args.get("order_by")
        if isinstance(order_by, str) and order_by != "":
            if order_by not in ORDER_BY_FIELDS:
                raise ToolError(
                    f"invalid order_by: {order_by}. "
                    f"Valid values are: {_bracketed(ORDER_BY_FIELDS)}"
                )
            request.order_by = order_by

        order_dir = args.get("order_dir")
        if isinstance(order_dir, str) and order_dir != "":
            if order_dir not in ORDER_DIRECTIONS:
                raise ToolError(
                    f"invalid order_dir: {order_dir}. Valid values are: asc, desc"
                )
            request.order_dir = order_dir

        try:
            response = storage.list(request)
        except StorageError as exc:
            raise ToolError(f"failed to list connections: {exc}") from exc

        payload = {
            "items": response.items,
            "limit": request.limit,
            "offset": request.offset,
            "total": response.total,
        }
        count = len(response.items)
        return ToolResult(
            f"Found {count} connections (showing {request.offset + 1}-"
            f"{request.offset + count} of {response.total} total):\n\n{to_json(payload)}"
        )

    return handle


def make_note_connections_handler(storage: ConnectionStorage) -> Handler:
    """Build the handler of the get_note_connections tool."""

    def handle(arguments: Mapping[str, Any]) -> ToolResult:
        args = _arguments(arguments)
        if "note_id" not in args:
            raise ToolError("note_id is required")
        note_id = _int_argument("note_id", args["note_id"])
        if note_id <= 0:
            raise ToolError("note_id must be a positive integer")

        request = NoteConnectionsRequest(
            note_id=note_id, limit=DEFAULT_LIMIT, offset=DEFAULT_OFFSET
        )
        request.type = _type_filter(args)
        if "strength" in args:
            request.strength = _strength(args["strength"])
        if "limit" in args:
            request.limit = _limit(args["limit"])
        if "offset" in args:
            request.offset = _offset(args["offset"])

        try:
            response = storage.get_note_connections(request)
        except StorageError as exc:
            raise ToolError(f"failed to get note connections: {exc}") from exc

        payload = {
            "incoming": response.incoming,
            "note_id": response.note_id,
            "outgoing": response.outgoing,
            "total_count": response.total_count,
            "types_count": response.types_count,
        }
        return ToolResult(
            f"Found connections for note {note_id}:\n"
            f"- {len(response.outgoing)} outgoing connections\n"
            f"- {len(response.incoming)} incoming connections\n"
            f"- {response.total_count} total connections\n\n{to_json(payload)}"
        )

    return handle


def _integer(description: str, **bounds: int) -> dict[str, Any]:
    return {"type": "integer", "description": description, **bounds}


def _string(description: str, enum: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "string", "description": description}
    if enum is not None:
        schema["enum"] = enum
    return schema


def _object(description: str) -> dict[str, Any]:
    return {"type": "object", "description": description}


def register_tools(server: ToolServer, storage: ConnectionStorage) -> None:
    """Register every connection tool with ``server``."""
    types = valid_connection_types()
    tools = [
        (
            Tool(
                name="create_connection",
                description="Create a new connection between two notes",
                input_schema={
                    "type": "object",
                    "properties": {
                        "from_note_id": _integer("ID of the source note"),
                        "to_note_id": _integer("ID of the target note"),
                        "type": _string(
                            "Type of connection (e.g., relates_to, references, supports, etc.)",
                            types,
                        ),
                        "description": _string("Optional description of the connection"),
                        "strength": _integer(
                            "Strength of the connection (1-10, default: 5)",
                            minimum=MIN_STRENGTH,
                            maximum=MAX_STRENGTH,
                        ),
                        "metadata": _object("Optional metadata for the connection"),
                    },
                    "required": ["from_note_id", "to_note_id", "type"],
                },
            ),
            make_create_handler(storage),
        ),
        (
            Tool(
                name="get_connection",
                description="Get a connection by ID",
                input_schema={
                    "type": "object",
                    "properties": {
                        "id": _integer("Unique identifier of the connection"),
                    },
                    "required": ["id"],
                },
            ),
            make_get_handler(storage),
        ),
        (
            Tool(
                name="update_connection",
                description="Update an existing connection",
                input_schema={
                    "type": "object",
                    "properties": {
                        "id": _integer("Unique identifier of the connection"),
                        "type": _string("Updated type of connection", types),
                        "description": _string("Updated description of the connection"),
                        "strength": _integer(
                            "Updated strength of the connection (1-10)",
                            minimum=MIN_STRENGTH,
                            maximum=MAX_STRENGTH,
                        ),
                        "metadata": _object("Updated metadata for the connection"),
                    },
                    "required": ["id"],
                },
            ),
            make_update_handler(storage),
        ),
        (
            Tool(
                name="delete_connection",
                description="Delete a connection by ID",
                input_schema={
                    "type": "object",
                    "properties": {
                        "id": _integer("Unique identifier of the connection to delete"),
                    },
                    "required": ["id"],
                },
            ),
            make_delete_handler(storage),
        ),
        (
            Tool(
                name="list_connections",
                description="List connections with optional filtering and pagination",
                input_schema={
                    "type": "object",
                    "properties": {
                        "limit": _integer(
                            "Maximum number of connections to return (default: 100)",
                            minimum=MIN_LIMIT,
                            maximum=MAX_LIMIT,
                        ),
                        "offset": _integer(
                            "Number of connections to skip (default: 0)", minimum=0
                        ),
                        "from_note_id": _integer("Filter by source note ID"),
                        "to_note_id": _integer("Filter by target note ID"),
                        "type": _string("Filter by connection type", types),
                        "strength": _integer(
                            "Filter by connection strength",
                            minimum=MIN_STRENGTH,
                            maximum=MAX_STRENGTH,
                        ),
                        "order_by": _string(
                            "Field to order by (default: id)", list(ORDER_BY_FIELDS)
                        ),
                        "order_dir": _string(
                            "Order direction (default: asc)", list(ORDER_DIRECTIONS)
                        ),
                    },
                },
            ),
            make_list_handler(storage),
        ),
        (
            Tool(
                name="get_note_connections",
                description="Get all connections for a specific note (incoming and outgoing)",
                input_schema={
                    "type": "object",
                    "properties": {
                        "note_id": _integer("ID of the note to get connections for"),
                        "type": _string("Filter by connection type", types),
                        "strength": _integer(
                            "Filter by connection strength",
                            minimum=MIN_STRENGTH,
                            maximum=MAX_STRENGTH,
                        ),
                        "limit": _integer(
                            "Maximum number of connections to return (default: 100)",
                            minimum=MIN_LIMIT,
                            maximum=MAX_LIMIT,
                        ),
                        "offset": _integer(
                            "Number of connections to skip (default: 0)", minimum=0
                        ),
                    },
                    "required": ["note_id"],
                },
            ),
            make_note_connections_handler(storage),
        ),
    ]
    for tool, handler in tools:
        server.add_tool(tool, handler)