"""Tool handlers that expose knowledge base storage through a ToolServer."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from .models import (
    CreateRequest,
    KnowledgeBase,
    KnowledgeBaseStorage,
    ListRequest,
    StorageError,
    UpdateRequest,
)
from .tooling import Handler, Tool, ToolError, ToolResult, ToolServer, parse_int, to_json

DEFAULT_LIMIT = 100
DEFAULT_OFFSET = 0


def _arguments(arguments: Any) -> Mapping[str, Any]:
    if not isinstance(arguments, Mapping):
        raise ToolError("invalid arguments format")
    return arguments


def _parse_id(arguments: Mapping[str, Any]) -> int:
    raw = arguments.get("id")
    if not isinstance(raw, str) or raw == "":
        raise ToolError("id is required")
    try:
        return parse_int(raw)
    except ValueError as exc:
        raise ToolError(f"invalid id format: {exc}") from exc


def _string_list(raw: Any) -> list[str] | None:
    if not isinstance(raw, (list, tuple)):
        return None
    return [item for item in raw if isinstance(item, str)]


def _number(raw: Any, default: int) -> int:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return default
    if isinstance(raw, float) and not math.isfinite(raw):
        return default
    return int(raw)


def _entry_dict(kb: KnowledgeBase) -> dict[str, Any]:
    return {
        "created_at": kb.created_at,
        "description": kb.description,
        "id": kb.id,
        "name": kb.name,
        "tags": kb.tags,
        "updated_at": kb.updated_at,
    }


def make_create_handler(storage: KnowledgeBaseStorage) -> Handler:
    """Build the handler of the create_knowledge_base tool."""

    def handle(arguments: Mapping[str, Any]) -> ToolResult:
        args = _arguments(arguments)
        name = args.get("name")
        if not isinstance(name, str) or name == "":
            raise ToolError("name is required")
        description = args.get("description")
        if not isinstance(description, str):
            description = ""
        tags = _string_list(args.get("tags")) or []

        request = CreateRequest(name=name, description=description, tags=tags)
        try:
            kb = storage.create(request)
        except StorageError as exc:
            raise ToolError(f"failed to create knowledge base: {exc}") from exc

        return ToolResult(
            f"Successfully created knowledge base entry with ID: {kb.id}\n\n"
            f"{to_json(_entry_dict(kb))}"
        )

    return handle


def make_get_handler(storage: KnowledgeBaseStorage) -> Handler:
    """Build the handler of the get_knowledge_base tool."""

    def handle(arguments: Mapping[str, Any]) -> ToolResult:
        kb_id = _parse_id(_arguments(arguments))
        try:
            kb = storage.get(kb_id)
        except StorageError as exc:
            raise ToolError(f"failed to get knowledge base: {exc}") from exc
        if kb is None:
            return ToolResult(f"Knowledge base entry with ID {kb_id} not found")
        return ToolResult(to_json(_entry_dict(kb)))

    return handle


def make_update_handler(storage: KnowledgeBaseStorage) -> Handler:
    """Build the handler of the update_knowledge_base tool."""

    def handle(arguments: Mapping[str, Any]) -> ToolResult:
        args = _arguments(arguments)
        kb_id = _parse_id(args)

        request = UpdateRequest()
        name = args.get("name")
        if isinstance(name, str) and name != "":
            request.name = name
        description = args.get("description")
        if isinstance(description, str):
            request.description = description
        request.tags = _string_list(args.get("tags"))

        try:
            kb = storage.update(kb_id, request)
        except StorageError as exc:
            raise ToolError(f"failed to update knowledge base: {exc}") from exc
        if kb is None:
            return ToolResult(f"Knowledge base entry with ID {kb_id} not found")
        return ToolResult(
            f"Successfully updated knowledge base entry with ID: {kb.id}\n\n"
            f"{to_json(_entry_dict(kb))}"
        )

    return handle


def make_delete_handler(storage: KnowledgeBaseStorage) -> Handler:
    """Build the handler of the delete_knowledge_base tool."""

    def handle(arguments: Mapping[str, Any]) -> ToolResult:
        kb_id = _parse_id(_arguments(arguments))
        try:
            storage.delete(kb_id)
        except StorageError as exc:
            raise ToolError(f"failed to delete knowledge base: {exc}") from exc
        return ToolResult(f"Successfully deleted knowledge base entry with ID: {kb_id}")

    return handle


def make_list_handler(storage: KnowledgeBaseStorage) -> Handler:
    """Build the handler of the list_knowledge_bases tool."""

    def handle(arguments: Mapping[str, Any]) -> ToolResult:
        args = _arguments(arguments)
        request = ListRequest(
            limit=_number(args.get("limit"), DEFAULT_LIMIT),
            offset=_number(args.get("offset"), DEFAULT_OFFSET),
        )
        search = args.get("search")
        if isinstance(search, str):
            request.search = search
        tags = _string_list(args.get("tags"))
        if tags is not None:
            request.tags = tags

        try:
            response = storage.list(request)
        except StorageError as exc:
            raise ToolError(f"failed to list knowledge bases: {exc}") from exc

        if not response.items:
            return ToolResult("No knowledge base entries found")
        entries = [_entry_dict(kb) for kb in response.items]
        return ToolResult(
            f"Found {len(response.items)} knowledge base entries:\n\n{to_json(entries)}"
        )

    return handle


def _tag_array(description: str) -> dict[str, Any]:
    return {"type": "array", "description": description, "items": {"type": "string"}}


def _id_property(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


def register_tools(server: ToolServer, storage: KnowledgeBaseStorage) -> None:
    """Register every knowledge base tool with ``server``."""
    tools = [
        (
            Tool(
                name="create_knowledge_base",
                description="Create a new knowledge base entry",
                input_schema={
                    "type": "object",
                    "properties": {
                        "name": {
                            "type": "string",
                            "description": "Name of the knowledge base entry",
                        },
                        "description": {
                            "type": "string",
                            "description": "Description of the knowledge base entry",
                        },
                        "tags": _tag_array("Tags associated with the knowledge base entry"),
                    },
                    "required": ["name"],
                },
            ),
            make_create_handler(storage),
        ),
        (
            Tool(
                name="get_knowledge_base",
                description="Get a knowledge base entry by ID",
                input_schema={
                    "type": "object",
                    "properties": {
                        "id": _id_property("Unique identifier of the knowledge base entry"),
                    },
                    "required": ["id"],
                },
            ),
            make_get_handler(storage),
        ),
        (
            Tool(
                name="update_knowledge_base",
                description="Update an existing knowledge base entry",
                input_schema={
                    "type": "object",
                    "properties": {
                        "id": _id_property("Unique identifier of the knowledge base entry"),
                        "name": {
                            "type": "string",
                            "description": "Updated name of the knowledge base entry",
                        },
                        "description": {
                            "type": "string",
                            "description": "Updated description of the knowledge base entry",
                        },
                        "tags": _tag_array(
                            "Updated tags associated with the knowledge base entry"
                        ),
                    },
                    "required": ["id"],
                },
            ),
            make_update_handler(storage),
        ),
        (
            Tool(
                name="delete_knowledge_base",
                description="Delete a knowledge base entry by ID",
                input_schema={
                    "type": "object",
                    "properties": {
                        "id": _id_property(
                            "Unique identifier of the knowledge base entry to delete"
                        ),
                    },
                    "required": ["id"],
                },
            ),
            make_delete_handler(storage),
        ),
        (
            Tool(
                name="list_knowledge_bases",
                description="List all knowledge base entries with optional filtering",
                input_schema={
                    "type": "object",
                    "properties": {
                        "limit": {
                            "type": "integer",
                            "description": "Maximum number of entries to return (default: 100)",
                            "minimum": 1,
                            "maximum": 1000,
                        },
                        "offset": {
                            "type": "integer",
                            "description": "Number of entries to skip (default: 0)",
                            "minimum": 0,
                        },
                        "tags": _tag_array(
                            "Filter by tags (returns entries that have any of the "
                            "specified tags)"
                        ),
                        "search": {
                            "type": "string",
                            "description": "Search term to filter entries by name or description",
                        },
                    },
                },
            ),
            make_list_handler(storage),
        ),
    ]
    for tool, handler in tools:
        server.add_tool(tool, handler)