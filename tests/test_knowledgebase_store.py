import pytest

from kgmcp.knowledgebase_store import KnowledgeBaseStore
from kgmcp.models import (
    CreateRequest,
    ListRequest,
    NotFoundError,
    StorageError,
    UpdateRequest,
)
from kgmcp.schema import apply_schema


@pytest.fixture
def store(tmp_path):
    path = tmp_path / "test.db"
    apply_schema(path)
    with KnowledgeBaseStore(path) as kb_store:
        yield kb_store


def test_create_with_all_fields(store):
    kb = store.create(
        CreateRequest(name="Test Knowledge Base", description="Test description", tags=["tag1", "tag2"])
    )
    assert kb.id > 0
    assert kb.name == "Test Knowledge Base"
    assert kb.description == "Test description"
    assert kb.tags == ["tag1", "tag2"]
    assert kb.created_at is not None
    assert kb.updated_at is not None


def test_create_with_required_fields_only(store):
    kb = store.create(CreateRequest(name="Minimal Knowledge Base"))
    assert kb.id > 0
    assert kb.name == "Minimal Knowledge Base"
    assert kb.description is None
    assert kb.tags == []


def test_create_with_empty_name(store):
    kb = store.create(CreateRequest(name=""))
    assert kb.id > 0
    assert kb.name == ""


def test_get_existing(store):
    created = store.create(CreateRequest(name="Test Get", description="Test description", tags=["test"]))
    got = store.get(created.id)
    assert got.id == created.id
    assert got == created


def test_get_non_existing(store):
    with pytest.raises(NotFoundError, match="knowledge base not found: 99999"):
        store.get(99999)


def _original(store):
    return store.create(
        CreateRequest(name="Original Name", description="Original description", tags=["original"])
    )


def test_update_name_only(store):
    kb = _original(store)
    updated = store.update(kb.id, UpdateRequest(name="Updated Name"))
    assert updated.name == "Updated Name"
    assert updated.description == "Original description"
    assert updated.tags == ["original"]


def test_update_all_fields(store):
    kb = _original(store)
    updated = store.update(
        kb.id, UpdateRequest(name="Fully Updated", description="New description", tags=["new", "tags"])
    )
    assert updated.name == "Fully Updated"
    assert updated.description == "New description"
    assert updated.tags == ["new", "tags"]


def test_update_nothing_returns_current(store):
    kb = _original(store)
    assert store.update(kb.id, UpdateRequest()) == store.get(kb.id)


def test_update_non_existing(store):
    with pytest.raises(NotFoundError):
        store.update(99999, UpdateRequest(name="Should fail"))


def test_delete_existing(store):
    kb = store.create(CreateRequest(name="To Delete"))
    store.delete(kb.id)
    with pytest.raises(NotFoundError):
        store.get(kb.id)


def test_delete_non_existing(store):
    with pytest.raises(NotFoundError):
        store.delete(99999)


@pytest.fixture
def populated(store):
    for i in range(1, 6):
        store.create(CreateRequest(name=f"Test KB {i}", description=f"Description {i}", tags=[f"tag{i}"]))
    store.create(CreateRequest(name="Special KB", description="Special description", tags=["special", "test"]))
    return store


@pytest.mark.parametrize(
    ("req", "want_total", "want_items"),
    [
        (ListRequest(limit=10, offset=0), 6, 6),
        (ListRequest(limit=3, offset=0), 6, 3),
        (ListRequest(limit=10, offset=3), 6, 3),
        (ListRequest(limit=10, offset=0, search="Special"), 1, 1),
        (ListRequest(limit=10, offset=0, tags=["special"]), 1, 1),
    ],
)
def test_list(populated, req, want_total, want_items):
    response = populated.list(req)
    assert response.total == want_total
    assert len(response.items) == want_items
    for newer, older in zip(response.items, response.items[1:]):
        assert newer.created_at >= older.created_at


def test_list_tags_must_all_match(populated):
    assert populated.list(ListRequest(tags=["special", "test"])).total == 1
    assert populated.list(ListRequest(tags=["special", "tag1"])).total == 0


def test_closed_store_raises(tmp_path):
    path = tmp_path / "closed.db"
    apply_schema(path)
    kb_store = KnowledgeBaseStore(path)
    kb_store.close()
    kb_store.close()
    with pytest.raises(StorageError):
        kb_store.get(1)


def test_missing_table_raises_storage_error(tmp_path):
    with KnowledgeBaseStore(tmp_path / "empty.db") as kb_store:
        with pytest.raises(StorageError, match="failed to create knowledge base"):
            kb_store.create(CreateRequest(name="x"))