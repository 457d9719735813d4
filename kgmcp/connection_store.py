"""SQLite-backed storage for connections between notes."""

from __future__ import annotations

import dataclasses
import json
import os
import sqlite3
from collections import Counter
from datetime import datetime, timezone
from typing import Any

from .models import (
    Connection,
    ConnectionPath,
    ConnectionStats,
    CreateConnectionRequest,
    ListConnectionsRequest,
    ListConnectionsResponse,
    NoteConnection,
    NoteConnectionsRequest,
    NoteConnectionsResponse,
    NotFoundError,
    StorageError,
    UpdateConnectionRequest,
    is_valid_connection_type,
)

_COLUMNS = (
    "id, from_note_id, to_note_id, type, description, strength, metadata, "
    "created_at, updated_at"
)
_ORDER_COLUMNS = frozenset({"id", "created_at", "updated_at", "strength", "type"})
_MAX_DESCRIPTION_BYTES = 500
_BIDIRECTIONAL_LIMIT = 1000

_MOST_CONNECTED_QUERY = """
SELECT
    note_id,
    SUM(incoming_count) AS incoming_count,
    SUM(outgoing_count) AS outgoing_count,
    SUM(incoming_count + outgoing_count) AS total_count
FROM (
    SELECT from_note_id AS note_id, COUNT(*) AS outgoing_count, 0 AS incoming_count
    FROM connections
    GROUP BY from_note_id
    UNION ALL
    SELECT to_note_id AS note_id, 0 AS outgoing_count, COUNT(*) AS incoming_count
    FROM connections
    GROUP BY to_note_id
)
GROUP BY note_id
ORDER BY total_count DESC
LIMIT 10
"""


def _parse_time(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        text = str(value).strip().replace("T", " ")
        if text.endswith("Z"):
            text = text[:-1]
        moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _dump_metadata(metadata: dict[str, Any] | None) -> str:
    try:
        return json.dumps(
            metadata if metadata is not None else {},
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False,
        )
    except (TypeError, ValueError) as exc:
        raise StorageError(f"failed to marshal metadata: {exc}") from exc


def _load_metadata(raw: str | None) -> dict[str, Any] | None:
    if raw is None:
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StorageError(f"failed to unmarshal metadata: {exc}") from exc


def _row_to_connection(row: tuple[Any, ...]) -> Connection:
    (conn_id, from_id, to_id, conn_type, description, strength, metadata,
     created_at, updated_at) = row
    return Connection(
        id=conn_id,
        from_note_id=from_id,
        to_note_id=to_id,
        type=conn_type,
        description=description,
        strength=strength,
        metadata=_load_metadata(metadata),
        created_at=_parse_time(created_at),
        updated_at=_parse_time(updated_at),
    )


def _check_strength(strength: int) -> None:
    if strength < 1 or strength > 10:
        raise StorageError(f"strength must be between 1 and 10, got: {strength}")


def _check_description(description: str) -> None:
    if len(description.encode("utf-8")) > _MAX_DESCRIPTION_BYTES:
        raise StorageError("description must be 500 characters or less")


class ConnectionStore:
    """Stores connections in the ``connections`` table of a SQLite file."""

    def __init__(self, db_path: str | os.PathLike[str]) -> None:
        try:
            self._db: sqlite3.Connection | None = sqlite3.connect(db_path, isolation_level=None)
            self._db.execute("PRAGMA foreign_keys = ON")
            self._db.execute("SELECT 1")
        except sqlite3.Error as exc:
            raise StorageError(f"failed to open database: {exc}") from exc

    def __enter__(self) -> ConnectionStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def _conn(self) -> sqlite3.Connection:
        if self._db is None:
            raise StorageError("storage is closed")
        return self._db

    def close(self) -> None:
        """Close the database connection; closing twice is harmless."""
        if self._db is not None:
            self._db.close()
            self._db = None

    def _query(self, query: str, args: list[Any] | tuple[Any, ...]) -> list[Connection]:
        rows = self._conn.execute(query, args).fetchall()
        return [_row_to_connection(row) for row in rows]

    def create(self, req: CreateConnectionRequest) -> Connection:
        """Insert a new connection after validating it, and return it as stored."""
        if not is_valid_connection_type(req.type):
            raise StorageError(f"invalid connection type: {req.type}")
        _check_strength(req.strength)
        if req.description is not None:
            _check_description(req.description)
        metadata = _dump_metadata(req.metadata)

        try:
            cur = self._conn.execute(
                "INSERT INTO connections "
                "(from_note_id, to_note_id, type, description, strength, metadata) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (req.from_note_id, req.to_note_id, req.type, req.description,
                 req.strength, metadata),
            )
        except sqlite3.Error as exc:
            message = str(exc)
            if "FOREIGN KEY constraint failed" in message:
                raise StorageError(
                    "invalid note ID: one or both notes do not exist"
                ) from exc
            if "UNIQUE constraint failed" in message:
                raise StorageError(
                    "connection already exists between these notes with this type"
                ) from exc
            if "Self-connections are not allowed" in message:
                raise StorageError("self-connections are not allowed") from exc
            raise StorageError(f"failed to create connection: {exc}") from exc
        return self.get(cur.lastrowid)

    def get(self, connection_id: int) -> Connection:
        """Return the connection with ``connection_id``; raise NotFoundError if absent."""
        try:
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM connections WHERE id = ?", (connection_id,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to get connection: {exc}") from exc
        if row is None:
            raise NotFoundError(f"connection not found: {connection_id}")
        return _row_to_connection(row)

    def update(self, connection_id: int, req: UpdateConnectionRequest) -> Connection:
        """Change the fields set in ``req`` and return the updated connection."""
        changes: dict[str, Any] = {}
        if req.type is not None:
            if not is_valid_connection_type(req.type):
                raise StorageError(f"invalid connection type: {req.type}")
            changes["type"] = req.type
        if req.description is not None:
            _check_description(req.description)
            changes["description"] = req.description
        if req.strength is not None:
            _check_strength(req.strength)
            changes["strength"] = req.strength
        if req.metadata is not None:
            changes["metadata"] = _dump_metadata(req.metadata)
        if not changes:
            return self.get(connection_id)

        assignments = ", ".join(f"{column} = ?" for column in changes)
        query = (
            f"UPDATE connections SET {assignments}, updated_at = CURRENT_TIMESTAMP "
            "WHERE id = ?"
        )
        try:
            cur = self._conn.execute(query, (*changes.values(), connection_id))
        except sqlite3.Error as exc:
            if "UNIQUE constraint failed" in str(exc):
                raise StorageError(
                    "connection already exists between these notes with this type"
                ) from exc
            raise StorageError(f"failed to update connection: {exc}") from exc
        if cur.rowcount == 0:
            raise NotFoundError(f"connection not found: {connection_id}")
        return self.get(connection_id)

    def delete(self, connection_id: int) -> None:
        """Remove the connection with ``connection_id``; raise NotFoundError if absent."""
        try:
            cur = self._conn.execute("DELETE FROM connections WHERE id = ?", (connection_id,))
        except sqlite3.Error as exc:
            raise StorageError(f"failed to delete connection: {exc}") from exc
        if cur.rowcount == 0:
            raise NotFoundError(f"connection not found: {connection_id}")

    def list(self, req: ListConnectionsRequest) -> ListConnectionsResponse:
        """Return a filtered page of connections; newest first unless an order is given."""
        filters = {
            "from_note_id": req.from_note_id,
            "to_note_id": req.to_note_id,
            "type": req.type,
            "strength": req.strength,
        }
        conditions = [f"{column} = ?" for column, value in filters.items() if value is not None]
        args: list[Any] = [value for value in filters.values() if value is not None]
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        try:
            (total,) = self._conn.execute(
                f"SELECT COUNT(*) FROM connections {where}", args
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to count connections: {exc}") from exc

        if req.order_by:
            if req.order_by not in _ORDER_COLUMNS:
                raise StorageError(f"invalid order_by: {req.order_by}")
            direction = "DESC" if req.order_dir == "desc" else "ASC"
            order = f"ORDER BY {req.order_by} {direction}"
        else:
            order = "ORDER BY created_at DESC"

        query = f"SELECT {_COLUMNS} FROM connections {where} {order} LIMIT ? OFFSET ?"
        try:
            items = self._query(query, [*args, req.limit, req.offset])
        except sqlite3.Error as exc:
            raise StorageError(f"failed to query connections: {exc}") from exc
        return ListConnectionsResponse(items=items, total=total)

    def get_note_connections(self, req: NoteConnectionsRequest) -> NoteConnectionsResponse:
        """Return the outgoing and incoming connections of a note, newest first."""
        extra: list[str] = []
        extra_args: list[Any] = []
        if req.type is not None:
            extra.append("type = ?")
            extra_args.append(req.type)
        if req.strength is not None:
            extra.append("strength = ?")
            extra_args.append(req.strength)
        suffix = "".join(f" AND {condition}" for condition in extra)

        def fetch(direction_column: str, label: str) -> list[Connection]:
            query = (
                f"SELECT {_COLUMNS} FROM connections WHERE {direction_column} = ?{suffix} "
                "ORDER BY created_at DESC LIMIT ? OFFSET ?"
            )
            try:
                return self._query(query, [req.note_id, *extra_args, req.limit, req.offset])
            except sqlite3.Error as exc:
                raise StorageError(f"failed to get {label} connections: {exc}") from exc

        outgoing = fetch("from_note_id", "outgoing")
        incoming = fetch("to_note_id", "incoming")
        types_count = Counter(conn.type for conn in [*outgoing, *incoming])
        return NoteConnectionsResponse(
            note_id=req.note_id,
            outgoing=outgoing,
            incoming=incoming,
            total_count=len(outgoing) + len(incoming),
            types_count=dict(types_count),
        )

    def get_connections_by_type(
        self, connection_type: str, req: ListConnectionsRequest
    ) -> ListConnectionsResponse:
        """Return a page of connections of one type."""
        return self.list(dataclasses.replace(req, type=connection_type))

    def get_bidirectional_connections(self, note_id: int) -> NoteConnectionsResponse:
        """Return up to 1000 connections in each direction for a note."""
        return self.get_note_connections(
            NoteConnectionsRequest(note_id=note_id, limit=_BIDIRECTIONAL_LIMIT, offset=0)
        )

    def get_connection_stats(self) -> ConnectionStats:
        """Return totals by type and strength and the ten most connected notes."""
        try:
            (total,) = self._conn.execute("SELECT COUNT(*) FROM connections").fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to get total connections: {exc}") from exc
        try:
            by_type = dict(
                self._conn.execute("SELECT type, COUNT(*) FROM connections GROUP BY type")
            )
        except sqlite3.Error as exc:
            raise StorageError(f"failed to get connections by type: {exc}") from exc
        try:
            by_strength = dict(
                self._conn.execute(
                    "SELECT strength, COUNT(*) FROM connections GROUP BY strength"
                )
            )
        except sqlite3.Error as exc:
            raise StorageError(f"failed to get connections by strength: {exc}") from exc
        try:
            most_connected = [
                NoteConnection(
                    note_id=note_id,
                    incoming_count=incoming,
                    outgoing_count=outgoing,
                    total_count=count,
                )
                for note_id, incoming, outgoing, count in self._conn.execute(
                    _MOST_CONNECTED_QUERY
                )
            ]
        except sqlite3.Error as exc:
            raise StorageError(f"failed to get most connected notes: {exc}") from exc
        return ConnectionStats(
            total_connections=total,
            connections_by_type=by_type,
            connections_by_strength=by_strength,
            most_connected_notes=most_connected,
        )

    def find_connection_paths(
        self, from_note_id: int, to_note_id: int, max_depth: int
    ) -> list[ConnectionPath]:
        """Return one single-step path for each direct connection between the notes."""
        query = f"SELECT {_COLUMNS} FROM connections WHERE from_note_id = ? AND to_note_id = ?"
        try:
            direct = self._query(query, (from_note_id, to_note_id))
        except sqlite3.Error as exc:
            raise StorageError(f"failed to find direct connections: {exc}") from exc
        return [
            ConnectionPath(
                from_note_id=from_note_id,
                to_note_id=to_note_id,
                path=[conn],
                length=1,
                strength=conn.strength,
            )
            for conn in direct
        ]