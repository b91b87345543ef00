# frontend/test_store_sqlite.py
# Store semantics against the local SQLite store

import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from domains.project.models.project import ProjectFields, ProjectStatus
from domains.project.models.history_entry import HistorySnapshot
from frontend.errors import BackendError, NotFoundError
from frontend.store import SQLiteProjectStore, fetch_project_with_history, get_store, STORE_KEY
from frontend.view_helpers import group_by_status


@pytest.fixture
def store(tmp_path):
    return SQLiteProjectStore(str(tmp_path / "tracker.db"))


def _fields(**overrides):
    data = {
        "client": "Acme",
        "fuzzr_number": "F-100",
        "job": "Jingle",
        "start_date": "2024-01-01",
        "last_status_date": "2024-01-01",
        "status": "Kickoff",
        "current_owner": "Fuzzr",
    }
    data.update(overrides)
    return ProjectFields(**data)


def test_create_then_get_matches_submitted_fields(store):
    fields = _fields(drive_link="https://drive.example/acme", music_producer="Leo")
    created = store.create_project(fields)

    fetched = store.get_project(created.id)
    for name, value in fields.to_row().items():
        assert getattr(fetched, name) == value
    assert fetched.created_at


def test_list_is_newest_first(store):
    first = store.create_project(_fields(client="First"))
    second = store.create_project(_fields(client="Second"))

    ids = [p.id for p in store.list_projects()]
    assert ids == [second.id, first.id]


def test_update_changes_only_updated_fields(store):
    created = store.create_project(_fields(scope="Two spots"))
    store.create_project(_fields(client="Other"))

    store.update_project(created.id, _fields(scope="Two spots", status="Online", coordinator="Ana"))

    fetched = store.get_project(created.id)
    assert fetched.status == "Online"
    assert fetched.coordinator == "Ana"
    assert fetched.scope == "Two spots"
    assert fetched.client == "Acme"
    assert fetched.created_at == created.created_at
    # Other rows untouched
    other = [p for p in store.list_projects() if p.id != created.id][0]
    assert other.status == "Kickoff"


def test_delete_then_get_raises_not_found(store):
    created = store.create_project(_fields())
    store.delete_project(created.id)

    with pytest.raises(NotFoundError):
        store.get_project(created.id)
    assert store.list_projects() == []


def test_unknown_id_raises_not_found(store):
    with pytest.raises(NotFoundError):
        store.get_project("missing")
    with pytest.raises(NotFoundError):
        store.update_project("missing", _fields())
    with pytest.raises(NotFoundError):
        store.delete_project("missing")


def test_append_history_does_not_mutate_project(store):
    project = store.create_project(_fields(status="PPM", observations="Brief received"))
    before = store.get_project(project.id)

    entry = store.append_history(project.id, "Kickoff call done", HistorySnapshot.of(before))

    assert store.get_project(project.id) == before
    history = store.list_history(project.id)
    assert len(history) == 1
    assert history[0].id == entry.id
    assert history[0].snapshot.tracked_values() == before.tracked_values()


def test_history_is_newest_first_and_per_project(store):
    a = store.create_project(_fields(client="A"))
    b = store.create_project(_fields(client="B"))
    snapshot = HistorySnapshot.of(a)

    store.append_history(a.id, "first", snapshot)
    store.append_history(a.id, "second", snapshot)
    store.append_history(b.id, "other project", HistorySnapshot.of(b))

    assert [h.description for h in store.list_history(a.id)] == ["second", "first"]
    assert [h.description for h in store.list_history(b.id)] == ["other project"]


def test_append_history_rejects_blank_description(store):
    project = store.create_project(_fields())
    with pytest.raises(ValueError):
        store.append_history(project.id, "   ", HistorySnapshot.of(project))
    assert store.list_history(project.id) == []


def test_delete_removes_project_history(store):
    project = store.create_project(_fields())
    store.append_history(project.id, "Kickoff call", HistorySnapshot.of(project))

    store.delete_project(project.id)

    assert store.list_history(project.id) == []


def test_append_history_to_unknown_project_fails(store):
    with pytest.raises(BackendError):
        store.append_history("missing", "Orphan note", HistorySnapshot(status="PPM"))
    assert store.list_history("missing") == []


def test_fetch_project_with_history_not_found(store):
    with pytest.raises(NotFoundError):
        fetch_project_with_history(store, "missing")


def test_unreadable_database_raises_backend_error(tmp_path):
    # A directory cannot be opened as a database file
    with pytest.raises(BackendError):
        SQLiteProjectStore(str(tmp_path))


def test_get_store_is_cached_in_session_state(tmp_path, monkeypatch):
    monkeypatch.setattr("frontend.store.STORE_BACKEND", "sqlite")
    monkeypatch.setattr("frontend.store.LOCAL_DB_PATH", str(tmp_path / "cached.db"))
    ss = {}

    store = get_store(ss)

    assert isinstance(store, SQLiteProjectStore)
    assert ss[STORE_KEY] is store
    assert get_store(ss) is store


def test_project_lifecycle_scenario(store):
    """Create, move across the board, log history, delete."""
    project = store.create_project(_fields())

    board = group_by_status(store.list_projects())
    assert [p.id for p in board.columns[ProjectStatus.KICKOFF]] == [project.id]
    assert board.total() == 1

    store.update_project(project.id, _fields(status="Online"))
    board = group_by_status(store.list_projects())
    assert board.columns[ProjectStatus.KICKOFF] == []
    assert [p.id for p in board.columns[ProjectStatus.ONLINE]] == [project.id]

    loaded, history = fetch_project_with_history(store, project.id)
    assert history == []
    store.append_history(project.id, "Sent first draft", HistorySnapshot.of(loaded))
    _, history = fetch_project_with_history(store, project.id)
    assert len(history) == 1
    assert history[0].snapshot.status == "Online"

    store.delete_project(project.id)
    assert store.list_projects() == []
    with pytest.raises(NotFoundError):
        fetch_project_with_history(store, project.id)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
