"""A small tool registry and the helpers the tool handlers share."""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime, timezone
from typing import Any

_INT_LITERAL = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class ToolError(Exception):
    """Raised when a tool call cannot be carried out."""


@dataclass(frozen=True)
class Tool:
    """A tool's name, description and JSON schema for its arguments."""

    name: str
    description: str
    input_schema: dict[str, Any] = field(default_factory=lambda: {"type": "object"})


@dataclass(frozen=True)
class ToolResult:
    """The text a tool returns."""

    text: str

    @property
    def content(self) -> list[dict[str, str]]:
        """The result as a list of protocol content items."""
        return [{"type": "text", "text": self.text}]


Handler = Callable[[Mapping[str, Any]], ToolResult]


class ToolServer:
    """Holds registered tools and dispatches calls to their handlers."""

    def __init__(self, name: str = "Knowledge Graph MCP Server", version: str = "1.0.0") -> None:
        self.name = name
        self.version = version
        self._tools: dict[str, tuple[Tool, Handler]] = {}

    def add_tool(self, tool: Tool, handler: Handler) -> None:
        """Register ``tool``; a tool of the same name is replaced."""
        self._tools[tool.name] = (tool, handler)

    def list_tools(self) -> list[Tool]:
        """Return the registered tools in registration order."""
        return [tool for tool, _ in self._tools.values()]

    def call_tool(self, name: str, arguments: Any) -> ToolResult:
        """Run the handler of tool ``name`` with ``arguments``."""
        try:
            _, handler = self._tools[name]
        except KeyError:
            raise ToolError(f"tool '{name}' not found") from None
        if not isinstance(arguments, Mapping):
            raise ToolError("invalid arguments format")
        return handler(arguments)


def parse_int(value: Any) -> int:
    """Convert an int, a float (truncated) or a decimal string to an int.

    Raises ValueError for anything else.
    """
    if isinstance(value, bool):
        raise ValueError("cannot convert bool to int")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"cannot convert {value} to int")
        return int(value)
    if isinstance(value, str):
        if not _INT_LITERAL.fullmatch(value):
            raise ValueError(f"invalid integer literal: {value!r}")
        number = int(value)
        if not _INT64_MIN <= number <= _INT64_MAX:
            raise ValueError(f"integer out of range: {value}")
        return number
    raise ValueError(f"cannot convert {type(value).__name__} to int")


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset()
    if not offset:
        return text + "Z"
    total_minutes = int(offset.total_seconds()) // 60
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{text}{sign}{hours:02d}:{minutes:02d}"


def _encode(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return _format_time(obj)
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in fields(obj)}
    raise TypeError(f"cannot encode {type(obj).__name__} as JSON")


def to_json(value: Any) -> str:
    """Render ``value`` as indented JSON; datetimes and records are converted."""
    return json.dumps(value, indent=2, ensure_ascii=False, default=_encode)