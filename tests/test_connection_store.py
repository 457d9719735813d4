import sqlite3
from contextlib import closing

import pytest

from kgmcp.connection_store import ConnectionStore
from kgmcp.models import (
    CreateConnectionRequest,
    ListConnectionsRequest,
    NoteConnectionsRequest,
    NotFoundError,
    StorageError,
    UpdateConnectionRequest,
)
from kgmcp.schema import apply_schema


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "test.db"
    apply_schema(path)
    return path


@pytest.fixture
def notes(db_path):
    ids = []
    with closing(sqlite3.connect(db_path)) as db:
        for title, content, note_type in [
            ("Test Note 1", "Content of test note 1", "text"),
            ("Test Note 2", "Content of test note 2", "markdown"),
            ("Test Note 3", "Content of test note 3", "text"),
        ]:
            cur = db.execute(
                "INSERT INTO notes (title, content, type, tags, metadata) VALUES (?, ?, ?, ?, ?)",
                (title, content, note_type, "[]", "{}"),
            )
            ids.append(cur.lastrowid)
        db.commit()
    return tuple(ids)


@pytest.fixture
def store(db_path, notes):
    with ConnectionStore(db_path) as s:
        yield s


def _seed(store, specs):
    for from_id, to_id, conn_type, strength in specs:
        store.create(CreateConnectionRequest(from_id, to_id, conn_type, strength=strength))


def test_create_with_all_fields(store, notes):
    n1, n2, _ = notes
    conn = store.create(
        CreateConnectionRequest(
            from_note_id=n1,
            to_note_id=n2,
            type="relates_to",
            description="Test connection description",
            strength=8,
            metadata={"key": "value"},
        )
    )
    assert conn.id > 0
    assert conn.from_note_id == n1
    assert conn.to_note_id == n2
    assert conn.type == "relates_to"
    assert conn.description == "Test connection description"
    assert conn.strength == 8
    assert conn.metadata["key"] == "value"
    assert conn.created_at is not None and conn.created_at.year > 2000
    assert conn.updated_at is not None and conn.updated_at.year > 2000


def test_create_with_required_fields_only(store, notes):
    n1, _, n3 = notes
    conn = store.create(CreateConnectionRequest(n1, n3, "references", strength=5))
    assert conn.id > 0
    assert conn.from_note_id == n1
    assert conn.to_note_id == n3
    assert conn.type == "references"
    assert conn.description is None
    assert conn.strength == 5
    assert conn.metadata == {}


@pytest.mark.parametrize(
    "conn_type, strength, match",
    [
        ("invalid_type", 5, "invalid connection type"),
        ("relates_to", 0, "strength must be between 1 and 10"),
        ("relates_to", 11, "strength must be between 1 and 10"),
    ],
)
def test_create_rejects_invalid_values(store, notes, conn_type, strength, match):
    n1, n2, _ = notes
    with pytest.raises(StorageError, match=match):
        store.create(CreateConnectionRequest(n1, n2, conn_type, strength=strength))


def test_create_with_non_existing_from_note(store, notes):
    _, n2, _ = notes
    with pytest.raises(StorageError, match="one or both notes do not exist"):
        store.create(CreateConnectionRequest(99999, n2, "relates_to", strength=5))


def test_create_with_non_existing_to_note(store, notes):
    n1, _, _ = notes
    with pytest.raises(StorageError, match="one or both notes do not exist"):
        store.create(CreateConnectionRequest(n1, 99999, "relates_to", strength=5))


def test_create_self_connection(store, notes):
    n1, _, _ = notes
    with pytest.raises(StorageError, match="self-connections are not allowed"):
        store.create(CreateConnectionRequest(n1, n1, "relates_to", strength=5))


def test_create_duplicate_connection(store, notes):
    n1, n2, _ = notes
    store.create(CreateConnectionRequest(n1, n2, "relates_to", strength=5))
    with pytest.raises(StorageError, match="connection already exists"):
        store.create(CreateConnectionRequest(n1, n2, "relates_to", strength=3))


def test_create_rejects_long_description(store, notes):
    n1, n2, _ = notes
    with pytest.raises(StorageError, match="500 characters or less"):
        store.create(
            CreateConnectionRequest(n1, n2, "relates_to", description="x" * 501, strength=5)
        )


def test_get_existing_connection(store, notes):
    n1, n2, _ = notes
    conn = store.create(
        CreateConnectionRequest(
            n1, n2, "supports", description="Test get connection", strength=7,
            metadata={"test": "get"},
        )
    )
    got = store.get(conn.id)
    assert got.id == conn.id
    assert got.from_note_id == conn.from_note_id
    assert got.to_note_id == conn.to_note_id
    assert got.type == conn.type
    assert got.metadata == {"test": "get"}


def test_get_non_existing_connection(store):
    with pytest.raises(NotFoundError, match="connection not found: 99999"):
        store.get(99999)


@pytest.fixture
def original(store, notes):
    _, n2, n3 = notes
    return store.create(
        CreateConnectionRequest(
            n2, n3, "influences", description="Original description", strength=6,
            metadata={"original": "value"},
        )
    )


def test_update_type_only(store, original):
    updated = store.update(original.id, UpdateConnectionRequest(type="depends_on"))
    assert updated.type == "depends_on"
    assert updated.description == "Original description"
    assert updated.strength == 6


def test_update_all_fields(store, original):
    updated = store.update(
        original.id,
        UpdateConnectionRequest(
            type="contradicts",
            description="Updated description",
            strength=9,
            metadata={"updated": "value"},
        ),
    )
    assert updated.type == "contradicts"
    assert updated.description == "Updated description"
    assert updated.strength == 9
    assert updated.metadata["updated"] == "value"


def test_update_with_no_changes_returns_current(store, original):
    unchanged = store.update(original.id, UpdateConnectionRequest())
    assert unchanged.type == "influences"
    assert unchanged.strength == 6


def test_update_with_invalid_type(store, original):
    with pytest.raises(StorageError, match="invalid connection type"):
        store.update(original.id, UpdateConnectionRequest(type="invalid_type"))


def test_update_with_invalid_strength(store, original):
    with pytest.raises(StorageError, match="strength must be between 1 and 10"):
        store.update(original.id, UpdateConnectionRequest(strength=15))


def test_update_non_existing_connection(store):
    with pytest.raises(NotFoundError, match="connection not found: 99999"):
        store.update(99999, UpdateConnectionRequest(type="relates_to"))


def test_update_into_duplicate(store, notes, original):
    _, n2, n3 = notes
    store.create(CreateConnectionRequest(n2, n3, "cites", strength=4))
    with pytest.raises(StorageError, match="connection already exists"):
        store.update(original.id, UpdateConnectionRequest(type="cites"))


def test_delete_existing_connection(store, notes):
    n1, _, n3 = notes
    conn = store.create(CreateConnectionRequest(n1, n3, "cites", strength=4))
    store.delete(conn.id)
    with pytest.raises(NotFoundError):
        store.get(conn.id)


def test_delete_non_existing_connection(store):
    with pytest.raises(NotFoundError, match="connection not found: 99999"):
        store.delete(99999)


@pytest.fixture
def listed(store, notes):
    n1, n2, n3 = notes
    _seed(store, [
        (n1, n2, "relates_to", 5),
        (n1, n3, "references", 7),
        (n2, n3, "supports", 8),
        (n2, n1, "contradicts", 3),
        (n3, n1, "influences", 6),
    ])
    return notes


@pytest.mark.parametrize(
    "make_request, want_total, want_items",
    [
        (lambda n: ListConnectionsRequest(limit=10, offset=0), 5, 5),
        (lambda n: ListConnectionsRequest(limit=3, offset=0), 5, 3),
        (lambda n: ListConnectionsRequest(limit=10, offset=3), 5, 2),
        (lambda n: ListConnectionsRequest(limit=10, from_note_id=n[0]), 2, 2),
        (lambda n: ListConnectionsRequest(limit=10, to_note_id=n[2]), 2, 2),
        (lambda n: ListConnectionsRequest(limit=10, type="supports"), 1, 1),
        (lambda n: ListConnectionsRequest(limit=10, strength=7), 1, 1),
    ],
)
def test_list(store, listed, make_request, want_total, want_items):
    response = store.list(make_request(listed))
    assert response.total == want_total
    assert len(response.items) == want_items
    stamps = [item.created_at for item in response.items]
    assert all(a >= b for a, b in zip(stamps, stamps[1:]))


def test_list_with_explicit_order(store, listed):
    response = store.list(ListConnectionsRequest(limit=10, order_by="strength", order_dir="desc"))
    assert [item.strength for item in response.items] == [8, 7, 6, 5, 3]
    ascending = store.list(ListConnectionsRequest(limit=10, order_by="strength", order_dir="asc"))
    assert [item.strength for item in ascending.items] == [3, 5, 6, 7, 8]


def test_list_rejects_unknown_order_column(store, listed):
    with pytest.raises(StorageError, match="invalid order_by"):
        store.list(ListConnectionsRequest(order_by="name; DROP TABLE connections"))


@pytest.fixture
def note_links(store, notes):
    n1, n2, n3 = notes
    _seed(store, [
        (n1, n2, "relates_to", 5),
        (n1, n3, "references", 7),
        (n2, n1, "supports", 8),
        (n3, n1, "influences", 6),
    ])
    return notes


@pytest.mark.parametrize(
    "type_filter, strength_filter, want_out, want_in, want_total",
    [
        (None, None, 2, 2, 4),
        ("relates_to", None, 1, 0, 1),
        (None, 7, 1, 0, 1),
    ],
)
def test_get_note_connections(
    store, note_links, type_filter, strength_filter, want_out, want_in, want_total
):
    n1 = note_links[0]
    response = store.get_note_connections(
        NoteConnectionsRequest(
            note_id=n1, type=type_filter, strength=strength_filter, limit=10, offset=0
        )
    )
    assert response.note_id == n1
    assert len(response.outgoing) == want_out
    assert len(response.incoming) == want_in
    assert response.total_count == want_total
    assert sum(response.types_count.values()) == want_total


def test_get_note_connections_counts_types(store, note_links):
    response = store.get_note_connections(NoteConnectionsRequest(note_id=note_links[0], limit=10))
    assert response.types_count == {
        "relates_to": 1, "references": 1, "supports": 1, "influences": 1,
    }


@pytest.mark.parametrize(
    "conn_type, want_total",
    [("relates_to", 2), ("supports", 1), ("non_existing", 0)],
)
def test_get_connections_by_type(store, notes, conn_type, want_total):
    n1, n2, n3 = notes
    _seed(store, [
        (n1, n2, "relates_to", 5),
        (n1, n3, "relates_to", 7),
        (n2, n3, "supports", 8),
    ])
    request = ListConnectionsRequest(limit=10, offset=0)
    response = store.get_connections_by_type(conn_type, request)
    assert response.total == want_total
    assert len(response.items) == want_total
    assert all(item.type == conn_type for item in response.items)
    assert request.type is None


def test_get_bidirectional_connections(store, notes):
    n1, n2, n3 = notes
    _seed(store, [
        (n1, n2, "relates_to", 5),
        (n2, n1, "relates_to", 5),
        (n1, n3, "references", 7),
    ])
    response = store.get_bidirectional_connections(n1)
    assert response.note_id == n1
    assert len(response.outgoing) == 2
    assert len(response.incoming) == 1
    assert response.total_count == 3


def test_get_connection_stats(store, notes):
    n1, n2, n3 = notes
    _seed(store, [
        (n1, n2, "relates_to", 5),
        (n1, n3, "relates_to", 7),
        (n2, n3, "supports", 8),
        (n2, n1, "contradicts", 3),
        (n3, n1, "influences", 6),
        (n3, n2, "supports", 9),
    ])
    stats = store.get_connection_stats()
    assert stats.total_connections == 6
    assert stats.connections_by_type["relates_to"] == 2
    assert stats.connections_by_type["supports"] == 2
    assert stats.connections_by_type["contradicts"] == 1
    assert stats.connections_by_type["influences"] == 1
    for strength in (3, 5, 6, 7, 8, 9):
        assert stats.connections_by_strength[strength] == 1
    assert len(stats.most_connected_notes) == 3
    for note in stats.most_connected_notes:
        assert note.total_count > 0
        assert note.incoming_count + note.outgoing_count == note.total_count


def test_get_connection_stats_empty(store):
    stats = store.get_connection_stats()
    assert stats.total_connections == 0
    assert stats.connections_by_type == {}
    assert stats.most_connected_notes == []


@pytest.fixture
def path_links(store, notes):
    n1, n2, n3 = notes
    _seed(store, [
        (n1, n2, "relates_to", 5),
        (n1, n2, "supports", 8),
        (n2, n3, "references", 7),
    ])
    return notes


def test_find_direct_connection_paths(store, path_links):
    n1, n2, _ = path_links
    paths = store.find_connection_paths(n1, n2, 1)
    assert len(paths) == 2
    for path in paths:
        assert path.from_note_id == n1
        assert path.to_note_id == n2
        assert path.length == 1
        assert len(path.path) == 1
        assert path.strength in (5, 8)


def test_find_no_direct_connection(store, path_links):
    n1, _, n3 = path_links
    assert store.find_connection_paths(n1, n3, 1) == []


def test_find_paths_with_non_existing_note(store, path_links):
    assert store.find_connection_paths(99999, path_links[1], 1) == []


def test_closed_store_raises(db_path, notes):
    store = ConnectionStore(db_path)
    store.close()
    store.close()
    with pytest.raises(StorageError, match="closed"):
        store.get(1)