"""SQLite-backed storage for knowledge base entries."""

from __future__ import annotations

import json
import os
import sqlite3
from datetime import datetime, timezone
from typing import Any

from .models import (
    CreateRequest,
    KnowledgeBase,
    ListRequest,
    ListResponse,
    NotFoundError,
    StorageError,
    UpdateRequest,
)

_COLUMNS = "id, name, description, tags, created_at, updated_at"


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


def _dump_tags(tags: list[str] | None) -> str:
    return json.dumps(list(tags or []), separators=(",", ":"), ensure_ascii=False)


def _load_tags(raw: str | None) -> list[str]:
    if raw is None:
        return []
    try:
        tags = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StorageError(f"failed to unmarshal tags: {exc}") from exc
    return list(tags or [])


def _row_to_entry(row: tuple[Any, ...]) -> KnowledgeBase:
    kb_id, name, description, tags, created_at, updated_at = row
    return KnowledgeBase(
        id=kb_id,
        name=name,
        description=description,
        tags=_load_tags(tags),
        created_at=_parse_time(created_at),
        updated_at=_parse_time(updated_at),
    )


class KnowledgeBaseStore:
    """Stores knowledge base entries in the ``knowledge_base`` table of a SQLite file."""

    def __init__(self, db_path: str | os.PathLike[str]) -> None:
        try:
            self._db: sqlite3.Connection | None = sqlite3.connect(db_path, isolation_level=None)
            self._db.execute("SELECT 1")
        except sqlite3.Error as exc:
            raise StorageError(f"failed to open database: {exc}") from exc

    def __enter__(self) -> KnowledgeBaseStore:
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

    def create(self, req: CreateRequest) -> KnowledgeBase:
        """Insert a new entry and return it as stored."""
        try:
            cur = self._conn.execute(
                "INSERT INTO knowledge_base (name, description, tags) VALUES (?, ?, ?)",
                (req.name, req.description, _dump_tags(req.tags)),
            )
        except sqlite3.Error as exc:
            raise StorageError(f"failed to create knowledge base: {exc}") from exc
        return self.get(cur.lastrowid)

    def get(self, kb_id: int) -> KnowledgeBase:
        """Return the entry with ``kb_id``; raise NotFoundError if there is none."""
        try:
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM knowledge_base WHERE id = ?", (kb_id,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to get knowledge base: {exc}") from exc
        if row is None:
            raise NotFoundError(f"knowledge base not found: {kb_id}")
        return _row_to_entry(row)

    def update(self, kb_id: int, req: UpdateRequest) -> KnowledgeBase:
        """Change the fields set in ``req`` and return the updated entry."""
        changes: dict[str, Any] = {}
        if req.name is not None:
            changes["name"] = req.name
        if req.description is not None:
            changes["description"] = req.description
        if req.tags is not None:
            changes["tags"] = _dump_tags(req.tags)
        if not changes:
            return self.get(kb_id)

        assignments = ", ".join(f"{column} = ?" for column in changes)
        query = (
            f"UPDATE knowledge_base SET {assignments}, updated_at = CURRENT_TIMESTAMP "
            "WHERE id = ?"
        )
        try:
            cur = self._conn.execute(query, (*changes.values(), kb_id))
        except sqlite3.Error as exc:
            raise StorageError(f"failed to update knowledge base: {exc}") from exc
        if cur.rowcount == 0:
            raise NotFoundError(f"knowledge base not found: {kb_id}")
        return self.get(kb_id)

    def delete(self, kb_id: int) -> None:
        """Remove the entry with ``kb_id``; raise NotFoundError if there is none."""
        try:
            cur = self._conn.execute("DELETE FROM knowledge_base WHERE id = ?", (kb_id,))
        except sqlite3.Error as exc:
            raise StorageError(f"failed to delete knowledge base: {exc}") from exc
        if cur.rowcount == 0:
            raise NotFoundError(f"knowledge base not found: {kb_id}")

    def list(self, req: ListRequest) -> ListResponse:
        """Return a page of entries, newest first, matching the search and every tag."""
        conditions: list[str] = []
        args: list[Any] = []
        if req.search:
            pattern = f"%{req.search}%"
            conditions.append("(name LIKE ? OR description LIKE ?)")
            args += [pattern, pattern]
        for tag in req.tags or []:
            conditions.append("tags LIKE ?")
            args.append(f'%"{tag}"%')
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        try:
            (total,) = self._conn.execute(
                f"SELECT COUNT(*) FROM knowledge_base {where}", args
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to count knowledge bases: {exc}") from exc

        query = (
            f"SELECT {_COLUMNS} FROM knowledge_base {where} "
            "ORDER BY created_at DESC LIMIT ? OFFSET ?"
        )
        try:
            rows = self._conn.execute(query, [*args, req.limit, req.offset]).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to query knowledge bases: {exc}") from exc
        return ListResponse(items=[_row_to_entry(row) for row in rows], total=total)