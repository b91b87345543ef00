from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional
from enum import Enum


class ProjectStatus(str, Enum):
    """
    Project lifecycle status.
    Values are the strings stored in the `projects.status` column.
    Member order is the display order of the kanban board.
    """

    KICKOFF = "Kickoff"
    PPM = "PPM"
    OFFLINE = "Offline"
    AWAITING_REPLY = "Aguardando Retorno"
    ONLINE = "Online"
    STAND_BY = "Stand-by"
    FINALIZED = "Finalizado"

    @classmethod
    def parse(cls, value: Any) -> Optional["ProjectStatus"]:
        """Return the matching status, or None for values outside the fixed set."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class ProjectOwner(str, Enum):
    """Which party currently holds the action item for a project."""

    INTERNAL = "Fuzzr"
    CLIENT = "Cliente"

    @classmethod
    def parse(cls, value: Any) -> Optional["ProjectOwner"]:
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


# Tracked fields captured by a history snapshot
TRACKED_FIELDS = (
    "status",
    "current_owner",
    "project_management",
    "coordinator",
    "music_producer",
    "scope",
    "observations",
)

REQUIRED_FIELDS = (
    "client",
    "fuzzr_number",
    "job",
    "start_date",
    "last_status_date",
    "status",
    "current_owner",
)


class ProjectFields(BaseModel):
    """
    Editable field set of a project.
    This is what the form sends to the store on create and update.
    """

    # Identity
    client: str
    fuzzr_number: str = Field(..., description="External job/reference number")
    job: str

    # Dates (date-only ISO strings, e.g. 2024-01-01)
    start_date: str
    last_status_date: str

    # Lifecycle
    status: ProjectStatus = ProjectStatus.KICKOFF
    current_owner: ProjectOwner = ProjectOwner.INTERNAL

    # Free text
    drive_link: str = ""
    scope: str = ""
    project_management: str = ""
    coordinator: str = ""
    music_producer: str = ""
    observations: str = ""

    @field_validator("client", "fuzzr_number", "job", "start_date", "last_status_date")
    @classmethod
    def _required_text(cls, value: str) -> str:
        if not value or not str(value).strip():
            raise ValueError("field is required")
        return value

    @field_validator(
        "drive_link", "scope", "project_management", "coordinator",
        "music_producer", "observations", mode="before",
    )
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    def to_row(self) -> Dict[str, Any]:
        """Serialize to a `projects` row payload (enum members as stored strings)."""
        return self.model_dump(mode="json")


class Project(BaseModel):
    """
    A project row as read from the store.

    Status and owner stay plain strings here: rows written by other clients
    may hold values outside the fixed sets, and reading them must not fail.
    """

    id: str
    client: str = ""
    fuzzr_number: str = ""
    job: str = ""
    start_date: str = ""
    drive_link: str = ""
    scope: str = ""
    project_management: str = ""
    coordinator: str = ""
    music_producer: str = ""
    last_status_date: str = ""
    status: str = ""
    current_owner: str = ""
    observations: str = ""
    created_at: Optional[str] = None

    @field_validator(
        "client", "fuzzr_number", "job", "start_date", "drive_link", "scope",
        "project_management", "coordinator", "music_producer",
        "last_status_date", "status", "current_owner", "observations",
        mode="before",
    )
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @property
    def known_status(self) -> Optional[ProjectStatus]:
        return ProjectStatus.parse(self.status)

    @property
    def known_owner(self) -> Optional[ProjectOwner]:
        return ProjectOwner.parse(self.current_owner)

    def tracked_values(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in TRACKED_FIELDS}


def status_values() -> List[str]:
    return [s.value for s in ProjectStatus]


def owner_values() -> List[str]:
    return [o.value for o in ProjectOwner]
