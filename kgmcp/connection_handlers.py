"""Tool handlers that create, read, update and delete connections."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .models import (
    Connection,
    ConnectionStorage,
    CreateConnectionRequest,
    StorageError,
    UpdateConnectionRequest,
    is_valid_connection_type,
    valid_connection_types,
)
from .tooling import Handler, ToolError, ToolResult, parse_int, to_json

DEFAULT_STRENGTH = 5
MIN_STRENGTH = 1
MAX_STRENGTH = 10


def _arguments(arguments: Any) -> Mapping[str, Any]:
    if not isinstance(arguments, Mapping):
        raise ToolError("invalid arguments format")
    return arguments


def _required_int(args: Mapping[str, Any], key: str) -> int:
    if key not in args:
        raise ToolError(f"{key} is required")
    try:
        return parse_int(args[key])
    except ValueError as exc:
        raise ToolError(f"invalid {key}: {exc}") from exc


def _positive_id(args: Mapping[str, Any], key: str = "id") -> int:
    value = _required_int(args, key)
    if value <= 0:
        raise ToolError(f"{key} must be a positive integer")
    return value


def _check_type(connection_type: str) -> str:
    if not is_valid_connection_type(connection_type):
        valid = " ".join(valid_connection_types())
        raise ToolError(
            f"invalid connection type: {connection_type}. Valid types are: [{valid}]"
        )
    return connection_type


def _optional_type(args: Mapping[str, Any]) -> str | None:
    raw = args.get("type")
    if not isinstance(raw, str) or raw == "":
        return None
    return _check_type(raw)


def _strength(raw: Any) -> int:
    try:
        strength = parse_int(raw)
    except ValueError as exc:
        raise ToolError(f"invalid strength: {exc}") from exc
    if strength < MIN_STRENGTH or strength > MAX_STRENGTH:
        raise ToolError(
            f"strength must be between {MIN_STRENGTH} and {MAX_STRENGTH}, got: {strength}"
        )
    return strength


def _metadata(args: Mapping[str, Any]) -> dict[str, Any] | None:
    raw = args.get("metadata")
    if isinstance(raw, Mapping):
        return dict(raw)
    return None


def _connection_dict(conn: Connection) -> dict[str, Any]:
    return {
        "created_at": conn.created_at,
        "description": conn.description,
        "from_note_id": conn.from_note_id,
        "id": conn.id,
        "metadata": conn.metadata,
        "strength": conn.strength,
        "to_note_id": conn.to_note_id,
        "type": conn.type,
        "updated_at": conn.updated_at,
    }


def make_create_handler(storage: ConnectionStorage) -> Handler:
    """Build the handler of the create_connection tool."""

    def handle(arguments: Mapping[str, Any]) -> ToolResult:
        args = _arguments(arguments)
        from_note_id = _required_int(args, "from_note_id")
        to_note_id = _required_int(args, "to_note_id")
        if from_note_id == to_note_id:
            raise ToolError("from_note_id and to_note_id cannot be the same")

        connection_type = args.get("type")
        if not isinstance(connection_type, str) or connection_type == "":
            raise ToolError("type is required")
        _check_type(connection_type)

        strength = _strength(args["strength"]) if "strength" in args else DEFAULT_STRENGTH

        description = args.get("description")
        if not isinstance(description, str) or description == "":
            description = None

        request = CreateConnectionRequest(
            from_note_id=from_note_id,
            to_note_id=to_note_id,
            type=connection_type,
            description=description,
            strength=strength,
            metadata=_metadata(args),
        )
        try:
            conn = storage.create(request)
        except StorageError as exc:
            raise ToolError(f"failed to create connection: {exc}") from exc

        return ToolResult(
            f"Successfully created connection with ID: {conn.id}\n\n"
            f"{to_json(_connection_dict(conn))}"
        )

    return handle


def make_get_handler(storage: ConnectionStorage) -> Handler:
    """Build the handler of the get_connection tool."""

    def handle(arguments: Mapping[str, Any]) -> ToolResult:
        connection_id = _positive_id(_arguments(arguments))
        try:
            conn = storage.get(connection_id)
        except StorageError as exc:
            raise ToolError(f"failed to get connection: {exc}") from exc
        return ToolResult(f"Connection found:\n\n{to_json(_connection_dict(conn))}")

    return handle


def make_update_handler(storage: ConnectionStorage) -> Handler:
    """Build the handler of the update_connection tool."""

    def handle(arguments: Mapping[str, Any]) -> ToolResult:
        args = _arguments(arguments)
        connection_id = _positive_id(args)

        request = UpdateConnectionRequest(type=_optional_type(args))
        description = args.get("description")
        if isinstance(description, str):
            request.description = description
        if "strength" in args:
            request.strength = _strength(args["strength"])
        request.metadata = _metadata(args)

        try:
            conn = storage.update(connection_id, request)
        except StorageError as exc:
            raise ToolError(f"failed to update connection: {exc}") from exc

        return ToolResult(
            f"Successfully updated connection with ID: {conn.id}\n\n"
            f"{to_json(_connection_dict(conn))}"
        )

    return handle


def make_delete_handler(storage: ConnectionStorage) -> Handler:
    """Build the handler of the delete_connection tool."""

    def handle(arguments: Mapping[str, Any]) -> ToolResult:
        connection_id = _positive_id(_arguments(arguments))
        try:
            storage.delete(connection_id)
        except StorageError as exc:
            raise ToolError(f"failed to delete connection: {exc}") from exc
        return ToolResult(f"Successfully deleted connection with ID: {connection_id}")

    return handle