# frontend/view_helpers.py
# Pure logic behind the Streamlit views: routing, kanban grouping, status
# colors, form defaults, date formatting and history expansion state.
# Nothing here touches st.* so it can be unit tested with plain data.

from __future__ import annotations

import html
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from domains.project.models.project import (
    Project,
    ProjectOwner,
    ProjectStatus,
)
from domains.project.models.history_entry import HistorySnapshot

# --------------------------------------------------------------------
# Routing
# --------------------------------------------------------------------

VIEW_LIST = "list"
VIEW_NEW = "new"
VIEW_DETAIL = "detail"
VIEW_EDIT = "edit"


@dataclass(frozen=True)
class Route:
    view: str
    project_id: Optional[str] = None

    @property
    def path(self) -> str:
        if self.view == VIEW_NEW:
            return "/new"
        if self.view == VIEW_DETAIL and self.project_id:
            return f"/project/{self.project_id}"
        if self.view == VIEW_EDIT and self.project_id:
            return f"/project/{self.project_id}/edit"
        return "/"


LIST_ROUTE = Route(VIEW_LIST)


def parse_route(path: Optional[str]) -> Route:
    """
    Map a client-side path to a Route.

    /                    -> list
    /new                 -> create form
    /project/<id>        -> detail
    /project/<id>/edit   -> edit form
    anything else        -> list
    """
    if not path:
        return LIST_ROUTE
    parts = [p for p in path.strip().split("/") if p]
    if not parts:
        return LIST_ROUTE
    if parts == ["new"]:
        return Route(VIEW_NEW)
    if parts[0] == "project" and len(parts) == 2:
        return Route(VIEW_DETAIL, parts[1])
    if parts[0] == "project" and len(parts) == 3 and parts[2] == "edit":
        return Route(VIEW_EDIT, parts[1])
    return LIST_ROUTE


# --------------------------------------------------------------------
# Status colors
# --------------------------------------------------------------------

# (background, text) per status
STATUS_COLORS: Dict[ProjectStatus, Tuple[str, str]] = {
    ProjectStatus.KICKOFF: ("#f3e8ff", "#6b21a8"),
    ProjectStatus.PPM: ("#dbeafe", "#1e40af"),
    ProjectStatus.OFFLINE: ("#ffedd5", "#9a3412"),
    ProjectStatus.AWAITING_REPLY: ("#fef9c3", "#854d0e"),
    ProjectStatus.ONLINE: ("#e0e7ff", "#3730a3"),
    ProjectStatus.STAND_BY: ("#f3f4f6", "#1f2937"),
    ProjectStatus.FINALIZED: ("#dcfce7", "#166534"),
}
FALLBACK_COLOR = ("#f3f4f6", "#1f2937")


def status_color(status: Any) -> Tuple[str, str]:
    known = ProjectStatus.parse(status)
    if known is None:
        return FALLBACK_COLOR
    return STATUS_COLORS[known]


def status_badge_html(status: Any) -> str:
    bg, fg = status_color(status)
    label = html.escape(str(status.value if isinstance(status, ProjectStatus) else status or "-"))
    return (
        f'<span style="background-color:{bg};color:{fg};padding:2px 10px;'
        f'border-radius:999px;font-size:0.85rem;font-weight:500;">{label}</span>'
    )


# --------------------------------------------------------------------
# Kanban grouping
# --------------------------------------------------------------------


@dataclass
class KanbanBoard:
    """One column per fixed status (all present, possibly empty), in display order."""

    columns: Dict[ProjectStatus, List[Project]]
    unrecognized: List[Project] = field(default_factory=list)

    def counts(self) -> Dict[ProjectStatus, int]:
        return {status: len(items) for status, items in self.columns.items()}

    def total(self) -> int:
        return sum(len(items) for items in self.columns.values())


def group_by_status(projects: Iterable[Project]) -> KanbanBoard:
    """
    Bucket projects by status, preserving store order inside each column.

    Projects whose status is outside the fixed set land in `unrecognized`
    and in no column.
    """
    columns: Dict[ProjectStatus, List[Project]] = {status: [] for status in ProjectStatus}
    unrecognized: List[Project] = []
    for project in projects:
        status = project.known_status
        if status is None:
            unrecognized.append(project)
        else:
            columns[status].append(project)
    return KanbanBoard(columns=columns, unrecognized=unrecognized)


def status_summary(projects: Iterable[Project]) -> pd.DataFrame:
    """Project count per status in board order, plus an "Other" row when needed."""
    board = group_by_status(projects)
    rows = [{"status": s.value, "projects": n} for s, n in board.counts().items()]
    if board.unrecognized:
        rows.append({"status": "Other", "projects": len(board.unrecognized)})
    return pd.DataFrame(rows, columns=["status", "projects"])


def projects_to_df(projects: Iterable[Project]) -> pd.DataFrame:
    columns = ["client", "fuzzr_number", "job", "status", "current_owner", "start_date", "last_status_date"]
    records = [p.model_dump(include=set(columns)) for p in projects]
    if not records:
        return pd.DataFrame(columns=columns)
    df = pd.DataFrame(records, columns=columns)
    for col in ("start_date", "last_status_date"):
        df[col] = df[col].map(parse_date)
    return df


# --------------------------------------------------------------------
# Dates + form
# --------------------------------------------------------------------


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO date or datetime string; aware values are converted to UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip().replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def normalize_date(value: Any) -> str:
    """Date-only representation (YYYY-MM-DD) of a stored date/timestamp, "" if unreadable."""
    parsed = parse_timestamp(value)
    return parsed.date().isoformat() if parsed else ""


def parse_date(value: Any) -> Optional[date]:
    parsed = parse_timestamp(value)
    return parsed.date() if parsed else None


def format_date(value: Any, with_time: bool = False) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        return "-"
    return parsed.strftime("%d/%m/%Y %H:%M" if with_time else "%d/%m/%Y")


def display_or_dash(value: Optional[str]) -> str:
    return value if value else "-"


def blank_form(today: Optional[date] = None) -> Dict[str, str]:
    """Defaults for the create form."""
    today_str = (today or date.today()).isoformat()
    return {
        "client": "",
        "fuzzr_number": "",
        "job": "",
        "start_date": today_str,
        "drive_link": "",
        "scope": "",
        "project_management": "",
        "coordinator": "",
        "music_producer": "",
        "last_status_date": today_str,
        "status": ProjectStatus.KICKOFF.value,
        "current_owner": ProjectOwner.INTERNAL.value,
        "observations": "",
    }


def form_from_project(project: Project) -> Dict[str, str]:
    """Edit form values: every editable field, both dates reduced to YYYY-MM-DD."""
    values = {name: getattr(project, name) for name in blank_form()}
    values["start_date"] = normalize_date(project.start_date)
    values["last_status_date"] = normalize_date(project.last_status_date)
    return values


LEGACY_SUFFIX = " (legacy)"


def select_choices(options: List[str], value: Optional[str]) -> Tuple[List[str], int]:
    """
    Selectbox choices and preselected index for a stored value.

    A stored value outside the fixed set is appended as an extra choice and
    preselected, so opening the edit form never changes it silently.
    """
    if value in options:
        return list(options), options.index(value)  # type: ignore[arg-type]
    return list(options) + [value or ""], len(options)


def is_legacy_choice(options: List[str], value: Optional[str]) -> bool:
    return value not in options


def choice_label(options: List[str]):
    """format_func for select_choices(): marks out-of-set values."""
    def _label(value: str) -> str:
        if value in options:
            return value
        return f"{value or '(empty)'}{LEGACY_SUFFIX}"
    return _label


# --------------------------------------------------------------------
# History
# --------------------------------------------------------------------


def toggle_expanded(expanded: Dict[str, bool], entry_id: str) -> bool:
    """Flip one entry's expansion flag; returns the new state."""
    expanded[entry_id] = not expanded.get(entry_id, False)
    return expanded[entry_id]


def is_expanded(expanded: Dict[str, bool], entry_id: str) -> bool:
    return bool(expanded.get(entry_id, False))


def snapshot_lines(snapshot: HistorySnapshot) -> List[Tuple[str, str]]:
    """Label/value pairs shown when a history entry is expanded."""
    lines = [
        ("Status", snapshot.status or "-"),
        ("Current owner", snapshot.current_owner or "-"),
        ("Project manager", display_or_dash(snapshot.project_management)),
        ("Coordinator", display_or_dash(snapshot.coordinator)),
        ("Music producer", display_or_dash(snapshot.music_producer)),
    ]
    if snapshot.scope:
        lines.append(("Scope", snapshot.scope))
    if snapshot.observations:
        lines.append(("Observations", snapshot.observations))
    return lines
