import json
from pydantic import BaseModel, Field, ValidationError, field_validator
from typing import Any, Dict, Optional

from domains.project.models.project import TRACKED_FIELDS, Project

SNAPSHOT_SCHEMA_VERSION = 1


class HistorySnapshot(BaseModel):
    """
    Point-in-time copy of the tracked project fields.
    Stored in `history.changes` as a JSON object.
    """

    schema_version: int = Field(
        SNAPSHOT_SCHEMA_VERSION,
        description="Layout version of the serialized snapshot. Rows without it are version 1.",
    )
    status: str = ""
    current_owner: str = ""
    project_management: str = ""
    coordinator: str = ""
    music_producer: str = ""
    scope: str = ""
    observations: str = ""

    @field_validator(*TRACKED_FIELDS, mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @classmethod
    def of(cls, project: Project) -> "HistorySnapshot":
        """Capture the tracked fields of an already loaded project."""
        return cls(**project.tracked_values())

    @classmethod
    def from_changes(cls, raw: Any) -> Optional["HistorySnapshot"]:
        """
        Parse a stored `changes` value.

        Accepts the JSON string written by this client or an already decoded
        object. Returns None when the value is empty or unreadable.
        """
        if raw is None or raw == "":
            return None
        data = raw
        if isinstance(raw, str):
            try:
                data = json.loads(raw)
            except ValueError:
                return None
        if not isinstance(data, dict):
            return None
        data = dict(data)
        data.setdefault("schema_version", SNAPSHOT_SCHEMA_VERSION)
        try:
            return cls.model_validate(data)
        except ValidationError:
            return None

    def to_changes(self) -> str:
        return json.dumps(self.model_dump(), ensure_ascii=False)

    def tracked_values(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in TRACKED_FIELDS}


class HistoryEntry(BaseModel):
    """An immutable, timestamped note attached to a project."""

    id: str
    project_id: str
    date: str
    description: str = ""
    changes: Optional[str] = None
    created_at: Optional[str] = None

    @field_validator("id", "project_id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @field_validator("changes", mode="before")
    @classmethod
    def _changes_as_text(cls, value: Any) -> Any:
        # jsonb columns come back decoded
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False)
        return value

    @property
    def snapshot(self) -> Optional[HistorySnapshot]:
        return HistorySnapshot.from_changes(self.changes)
