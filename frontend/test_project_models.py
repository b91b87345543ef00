# frontend/test_project_models.py
# Unit tests for the project and history models

import json
import pytest
import sys
from pathlib import Path

from pydantic import ValidationError

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from domains.project.models.project import (
    Project,
    ProjectFields,
    ProjectOwner,
    ProjectStatus,
    TRACKED_FIELDS,
    owner_values,
    status_values,
)
from domains.project.models.history_entry import (
    SNAPSHOT_SCHEMA_VERSION,
    HistoryEntry,
    HistorySnapshot,
)


def _fields(**overrides):
    data = {
        "client": "Acme",
        "fuzzr_number": "F-001",
        "job": "Jingle",
        "start_date": "2024-01-01",
        "last_status_date": "2024-01-01",
        "status": "Kickoff",
        "current_owner": "Fuzzr",
    }
    data.update(overrides)
    return ProjectFields(**data)


def test_status_values_in_board_order():
    assert status_values() == [
        "Kickoff", "PPM", "Offline", "Aguardando Retorno", "Online", "Stand-by", "Finalizado",
    ]
    assert owner_values() == ["Fuzzr", "Cliente"]


def test_status_parse_out_of_set_is_none():
    assert ProjectStatus.parse("PPM") is ProjectStatus.PPM
    assert ProjectStatus.parse(ProjectStatus.ONLINE) is ProjectStatus.ONLINE
    assert ProjectStatus.parse("Archived") is None
    assert ProjectStatus.parse(None) is None
    assert ProjectOwner.parse("Cliente") is ProjectOwner.CLIENT
    assert ProjectOwner.parse("Agency") is None


def test_fields_optional_default_to_empty():
    fields = _fields()
    assert fields.drive_link == ""
    assert fields.observations == ""
    assert _fields(scope=None).scope == ""


def test_fields_to_row_stores_enum_values():
    row = _fields(status=ProjectStatus.AWAITING_REPLY, current_owner="Cliente").to_row()
    assert row["status"] == "Aguardando Retorno"
    assert row["current_owner"] == "Cliente"
    assert "id" not in row
    assert "created_at" not in row


@pytest.mark.parametrize("name", ["client", "fuzzr_number", "job", "start_date", "last_status_date"])
def test_fields_required_text(name):
    with pytest.raises(ValidationError) as exc:
        _fields(**{name: "   "})
    assert exc.value.errors()[0]["loc"] == (name,)


def test_fields_reject_out_of_set_status_and_owner():
    with pytest.raises(ValidationError):
        _fields(status="Archived")
    with pytest.raises(ValidationError):
        _fields(current_owner="Agency")


def test_project_reads_out_of_set_values():
    """Rows written elsewhere may hold unknown statuses; reading must not fail."""
    project = Project.model_validate({
        "id": 7,
        "client": "Acme",
        "status": "Archived",
        "current_owner": None,
        "scope": None,
    })
    assert project.id == "7"
    assert project.status == "Archived"
    assert project.known_status is None
    assert project.current_owner == ""
    assert project.known_owner is None
    assert project.scope == ""


def test_project_tracked_values_has_exactly_tracked_keys():
    project = Project(id="p1", status="PPM", current_owner="Fuzzr", coordinator="Ana")
    values = project.tracked_values()
    assert tuple(values) == TRACKED_FIELDS
    assert values["coordinator"] == "Ana"


def test_snapshot_of_project_copies_tracked_fields():
    project = Project(
        id="p1",
        status="Online",
        current_owner="Cliente",
        project_management="Bia",
        scope="Two spots",
        observations="Waiting on legal",
    )
    snapshot = HistorySnapshot.of(project)

    assert snapshot.schema_version == SNAPSHOT_SCHEMA_VERSION
    assert snapshot.tracked_values() == project.tracked_values()


def test_snapshot_serialized_keys():
    stored = json.loads(HistorySnapshot(status="PPM").to_changes())
    assert set(stored) == set(TRACKED_FIELDS) | {"schema_version"}
    assert stored["schema_version"] == 1


def test_snapshot_from_legacy_changes_without_version():
    legacy = json.dumps({
        "status": "Kickoff",
        "current_owner": "Fuzzr",
        "project_management": "",
        "coordinator": "",
        "music_producer": "Leo",
        "scope": "",
        "observations": "",
    })
    snapshot = HistorySnapshot.from_changes(legacy)
    assert snapshot is not None
    assert snapshot.schema_version == 1
    assert snapshot.music_producer == "Leo"


def test_snapshot_from_decoded_object_does_not_mutate_it():
    raw = {"status": "PPM", "current_owner": "Fuzzr"}
    snapshot = HistorySnapshot.from_changes(raw)
    assert snapshot.status == "PPM"
    assert "schema_version" not in raw


@pytest.mark.parametrize("raw", [None, "", "not json", "[1, 2]", "42"])
def test_snapshot_from_unreadable_changes_is_none(raw):
    assert HistorySnapshot.from_changes(raw) is None


def test_history_entry_accepts_decoded_jsonb():
    entry = HistoryEntry.model_validate({
        "id": 1,
        "project_id": 2,
        "date": "2024-03-01T10:15:00+00:00",
        "description": "Sent mix v2",
        "changes": {"status": "Online", "current_owner": "Cliente"},
    })
    assert entry.id == "1"
    assert entry.project_id == "2"
    assert isinstance(entry.changes, str)
    assert entry.snapshot.current_owner == "Cliente"


def test_history_entry_without_changes_has_no_snapshot():
    entry = HistoryEntry(id="h1", project_id="p1", date="2024-03-01", description="Call")
    assert entry.snapshot is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
