"""Domain models, request objects and storage interfaces for the knowledge graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class StorageError(Exception):
    """Raised when a storage operation fails."""


class NotFoundError(StorageError):
    """Raised when the requested record does not exist."""


class ConnectionType(str, Enum):
    """The kinds of relationship one note can have with another."""

    RELATES_TO = "relates_to"
    REFERENCES = "references"
    SUPPORTS = "supports"
    CONTRADICTS = "contradicts"
    INFLUENCES = "influences"
    DEPENDS_ON = "depends_on"
    SIMILAR_TO = "similar_to"
    PART_OF = "part_of"
    CITES = "cites"
    FOLLOWS = "follows"
    PRECEDES = "precedes"


def valid_connection_types() -> list[str]:
    """Return the names of all valid connection types, in their canonical order."""
    return [member.value for member in ConnectionType]


def is_valid_connection_type(connection_type: str) -> bool:
    """Tell whether ``connection_type`` names a known connection type."""
    return connection_type in valid_connection_types()


@dataclass
class Connection:
    """A typed, weighted link from one note to another."""

    id: int
    from_note_id: int
    to_note_id: int
    type: str
    description: str | None = None
    strength: int = 5
    metadata: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the record as a mapping; absent description and empty metadata are left out."""
        result: dict[str, Any] = {
            "id": self.id,
            "from_note_id": self.from_note_id,
            "to_note_id": self.to_note_id,
            "type": self.type,
        }
        if self.description is not None:
            result["description"] = self.description
        result["strength"] = self.strength
        if self.metadata:
            result["metadata"] = self.metadata
        result["created_at"] = self.created_at
        result["updated_at"] = self.updated_at
        return result


@dataclass
class CreateConnectionRequest:
    """Fields needed to create a connection."""

    from_note_id: int
    to_note_id: int
    type: str
    description: str | None = None
    strength: int = 5
    metadata: dict[str, Any] | None = None


@dataclass
class UpdateConnectionRequest:
    """Fields of a connection to change; ``None`` leaves a field as it is."""

    type: str | None = None
    description: str | None = None
    strength: int | None = None
    metadata: dict[str, Any] | None = None


@dataclass
class ListConnectionsRequest:
    """Pagination, filters and ordering for listing connections."""

    limit: int = 100
    offset: int = 0
    from_note_id: int | None = None
    to_note_id: int | None = None
    type: str | None = None
    strength: int | None = None
    order_by: str = ""
    order_dir: str = ""


@dataclass
class ListConnectionsResponse:
    """One page of connections and the total number that matched."""

    items: list[Connection] = field(default_factory=list)
    total: int = 0


@dataclass
class NoteConnectionsRequest:
    """Selects the connections of a single note."""

    note_id: int
    type: str | None = None
    strength: int | None = None
    limit: int = 100
    offset: int = 0


@dataclass
class NoteConnectionsResponse:
    """Outgoing and incoming connections of a note, with counts by type."""

    note_id: int
    outgoing: list[Connection] = field(default_factory=list)
    incoming: list[Connection] = field(default_factory=list)
    total_count: int = 0
    types_count: dict[str, int] = field(default_factory=dict)


@dataclass
class ConnectionPath:
    """A chain of connections leading from one note to another."""

    from_note_id: int
    to_note_id: int
    path: list[Connection] = field(default_factory=list)
    length: int = 0
    strength: int = 0


@dataclass
class NoteConnection:
    """A note together with how many connections touch it."""

    note_id: int
    incoming_count: int = 0
    outgoing_count: int = 0
    total_count: int = 0


@dataclass
class ConnectionStats:
    """Aggregate figures over all connections."""

    total_connections: int = 0
    connections_by_type: dict[str, int] = field(default_factory=dict)
    connections_by_strength: dict[int, int] = field(default_factory=dict)
    most_connected_notes: list[NoteConnection] = field(default_factory=list)


@dataclass
class KnowledgeBase:
    """A named, tagged knowledge base entry."""

    id: int
    name: str
    description: str | None = None
    tags: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the record as a mapping; absent description and empty tags are left out."""
        result: dict[str, Any] = {"id": self.id, "name": self.name}
        if self.description is not None:
            result["description"] = self.description
        if self.tags:
            result["tags"] = self.tags
        result["created_at"] = self.created_at
        result["updated_at"] = self.updated_at
        return result


@dataclass
class CreateRequest:
    """Fields needed to create a knowledge base entry."""

    name: str
    description: str | None = None
    tags: list[str] = field(default_factory=list)


@dataclass
class UpdateRequest:
    """Fields of a knowledge base entry to change; ``None`` leaves a field as it is."""

    name: str | None = None
    description: str | None = None
    tags: list[str] | None = None


@dataclass
class ListRequest:
    """Pagination and filters for listing knowledge base entries."""

    limit: int = 100
    offset: int = 0
    search: str = ""
    tags: list[str] = field(default_factory=list)


@dataclass
class ListResponse:
    """One page of knowledge base entries and the total number that matched."""

    items: list[KnowledgeBase] = field(default_factory=list)
    total: int = 0


@runtime_checkable
class ConnectionStorage(Protocol):
    """Operations a connection store provides."""

    def create(self, req: CreateConnectionRequest) -> Connection:
        """Create a connection and return it as stored."""

    def get(self, connection_id: int) -> Connection:
        """Return the connection with the given id."""

    def update(self, connection_id: int, req: UpdateConnectionRequest) -> Connection:
        """Apply the changes in ``req`` and return the updated connection."""

    def delete(self, connection_id: int) -> None:
        """Remove the connection with the given id."""

    def list(self, req: ListConnectionsRequest) -> ListConnectionsResponse:
        """Return a filtered, ordered page of connections."""

    def get_note_connections(self, req: NoteConnectionsRequest) -> NoteConnectionsResponse:
        """Return the outgoing and incoming connections of a note."""

    def get_connections_by_type(
        self, connection_type: str, req: ListConnectionsRequest
    ) -> ListConnectionsResponse:
        """Return a page of connections of one type."""

    def get_bidirectional_connections(self, note_id: int) -> NoteConnectionsResponse:
        """Return both directions of connections for a note."""

    def get_connection_stats(self) -> ConnectionStats:
        """Return aggregate statistics over all connections."""

    def find_connection_paths(
        self, from_note_id: int, to_note_id: int, max_depth: int
    ) -> list[ConnectionPath]:
        """Return paths of connections leading between two notes."""


@runtime_checkable
class KnowledgeBaseStorage(Protocol):
    """Operations a knowledge base store provides."""

    def create(self, req: CreateRequest) -> KnowledgeBase:
        """Create an entry and return it as stored."""

    def get(self, kb_id: int) -> KnowledgeBase | None:
        """Return the entry with the given id."""

    def update(self, kb_id: int, req: UpdateRequest) -> KnowledgeBase | None:
        """Apply the changes in ``req`` and return the updated entry."""

    def delete(self, kb_id: int) -> None:
        """Remove the entry with the given id."""

    def list(self, req: ListRequest) -> ListResponse:
        """Return a filtered page of entries."""