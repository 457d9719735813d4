"""Database schema for the knowledge graph and a function that applies it."""

from __future__ import annotations

import os
import sqlite3
from collections.abc import Iterator
from contextlib import closing
from dataclasses import dataclass

from .models import StorageError, valid_connection_types

_TIMESTAMPS = (
    ("created_at", "DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP"),
    ("updated_at", "DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP"),
)


def _type_check() -> str:
    allowed = ", ".join(f"'{name}'" for name in valid_connection_types())
    return f"TEXT NOT NULL CHECK (type IN ({allowed}))"


@dataclass(frozen=True)
class _Table:
    name: str
    columns: tuple[tuple[str, str], ...]
    constraints: tuple[str, ...] = ()
    touch_on_update: bool = False

    def ddl(self) -> str:
        parts = [f"{column} {spec}" for column, spec in self.columns]
        parts.extend(self.constraints)
        body = ",\n  ".join(parts)
        return f"CREATE TABLE IF NOT EXISTS {self.name} (\n  {body}\n)"


@dataclass(frozen=True)
class _Index:
    table: str
    columns: str
    suffix: str
    unique: bool = False

    def ddl(self) -> str:
        kind = "UNIQUE INDEX" if self.unique else "INDEX"
        return (
            f"CREATE {kind} IF NOT EXISTS idx_{self.table}_{self.suffix} "
            f"ON {self.table}({self.columns})"
        )


def _tables() -> tuple[_Table, ...]:
    note_fk = "FOREIGN KEY ({col}) REFERENCES notes(id) ON DELETE CASCADE"
    return (
        _Table(
            "knowledge_base",
            (
                ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
                ("name", "TEXT NOT NULL"),
                ("description", "TEXT"),
                ("tags", "TEXT"),
                *_TIMESTAMPS,
            ),
            touch_on_update=True,
        ),
        _Table(
            "notes",
            (
                ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
                ("title", "TEXT NOT NULL"),
                ("content", "TEXT NOT NULL"),
                ("type", "TEXT NOT NULL"),
                ("tags", "TEXT"),
                ("metadata", "TEXT"),
                *_TIMESTAMPS,
            ),
        ),
        _Table(
            "connections",
            (
                ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
                ("from_note_id", "INTEGER NOT NULL"),
                ("to_note_id", "INTEGER NOT NULL"),
                ("type", _type_check()),
                ("description", "TEXT"),
                (
                    "strength",
                    "INTEGER NOT NULL CHECK (strength BETWEEN 1 AND 10) DEFAULT 5",
                ),
                ("metadata", "TEXT"),
                *_TIMESTAMPS,
            ),
            constraints=(
                note_fk.format(col="from_note_id"),
                note_fk.format(col="to_note_id"),
            ),
            touch_on_update=True,
        ),
    )


_INDEXES = (
    _Index("knowledge_base", "name", "name"),
    _Index("knowledge_base", "created_at DESC", "created_at"),
    _Index("connections", "from_note_id, to_note_id, type", "unique", unique=True),
    _Index("connections", "from_note_id", "from_note_id"),
    _Index("connections", "to_note_id", "to_note_id"),
    _Index("connections", "type", "type"),
    _Index("connections", "strength", "strength"),
    _Index("connections", "created_at DESC", "created_at"),
)


def _touch_trigger(table: str) -> str:
    return (
        f"CREATE TRIGGER IF NOT EXISTS update_{table}_updated_at "
        f"AFTER UPDATE ON {table} FOR EACH ROW BEGIN "
        f"UPDATE {table} SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id; "
        "END"
    )


_SELF_CONNECTION_TRIGGER = (
    "CREATE TRIGGER IF NOT EXISTS prevent_self_connection "
    "BEFORE INSERT ON connections FOR EACH ROW "
    "WHEN NEW.from_note_id = NEW.to_note_id BEGIN "
    "SELECT RAISE(ABORT, 'Self-connections are not allowed'); "
    "END"
)


def _statements() -> Iterator[str]:
    tables = _tables()
    for table in tables:
        yield table.ddl()
    for index in _INDEXES:
        yield index.ddl()
    for table in tables:
        if table.touch_on_update:
            yield _touch_trigger(table.name)
    yield _SELF_CONNECTION_TRIGGER


def apply_schema(db_path: str | os.PathLike[str]) -> None:
    """Create every table, index and trigger the stores need; safe to run again."""
    try:
        with closing(sqlite3.connect(db_path)) as db:
            with db:
                for statement in _statements():
                    db.execute(statement)
    except sqlite3.Error as exc:
        raise StorageError(f"failed to apply schema: {exc}") from exc