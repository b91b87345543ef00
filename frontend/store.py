"""
frontend/store.py
Project Store Client: reads and writes the `projects` and `history` tables.

Two implementations share one contract:
- SupabaseProjectStore: PostgREST endpoints of the hosted Supabase project
  (staging/production)
- SQLiteProjectStore: local file database for development without a project

Errors:
- BackendError for any transport, HTTP or SQL failure
- NotFoundError when a single project is requested/updated/deleted and absent

Nothing is cached; callers re-fetch after every successful write.
"""

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, MutableMapping, Optional, Sequence, Tuple, Type, TypeVar

import streamlit as st
from pydantic import ValidationError

from domains.project.models.project import Project, ProjectFields
from domains.project.models.history_entry import HistoryEntry, HistorySnapshot

try:
    from frontend.config import STORE_BACKEND, LOCAL_DB_PATH, REQUEST_TIMEOUT, ENABLE_VERBOSE_LOGGING
    from frontend.api_client import api_request, raise_for_status
    from frontend.auth import AuthProvider, get_auth_provider
    from frontend.errors import AuthError, BackendError, NotFoundError
except ModuleNotFoundError:
    from config import STORE_BACKEND, LOCAL_DB_PATH, REQUEST_TIMEOUT, ENABLE_VERBOSE_LOGGING
    from api_client import api_request, raise_for_status
    from auth import AuthProvider, get_auth_provider
    from errors import AuthError, BackendError, NotFoundError


M = TypeVar("M", Project, HistoryEntry)


STORE_KEY = "_project_store"

PROJECTS_PATH = "/rest/v1/projects"
HISTORY_PATH = "/rest/v1/history"
RETURN_REPRESENTATION = {"Prefer": "return=representation"}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_description(description: str) -> str:
    if not description or not description.strip():
        raise ValueError("History description cannot be empty")
    return description


def _parse_rows(model: Type[M], rows: Sequence[Any], operation: str) -> List[M]:
    """Validate rows one by one; malformed rows are logged and skipped."""
    parsed: List[M] = []
    for row in rows:
        try:
            parsed.append(model.model_validate(dict(row)))
        except (ValidationError, TypeError) as e:
            row_id = row.get("id", "?") if isinstance(row, dict) else "?"
            print(f"[STORE] {operation}: skipping malformed {model.__name__} row {row_id}: {e}")
    return parsed


def _to_projects(rows: Sequence[Any], operation: str) -> List[Project]:
    return _parse_rows(Project, rows, operation)


def _to_history(rows: Sequence[Any], operation: str) -> List[HistoryEntry]:
    return _parse_rows(HistoryEntry, rows, operation)


def _first(items: List[M], operation: str) -> M:
    """The single row a one-row operation returned; a malformed one is a BackendError."""
    if not items:
        raise BackendError("Malformed row in backend response", operation=operation)
    return items[0]


def _log_write(operation: str, detail: str) -> None:
    if ENABLE_VERBOSE_LOGGING:
        print(f"[STORE] {operation}: {detail}")


class ProjectStore:
    """Store contract shared by the Supabase and SQLite implementations."""

    def list_projects(self) -> List[Project]:
        """All projects, newest first (created_at descending)."""
        raise NotImplementedError

    def get_project(self, project_id: str) -> Project:
        raise NotImplementedError

    def list_history(self, project_id: str) -> List[HistoryEntry]:
        """History of one project, newest entry date first."""
        raise NotImplementedError

    def create_project(self, fields: ProjectFields) -> Project:
        raise NotImplementedError

    def update_project(self, project_id: str, fields: ProjectFields) -> Project:
        """Full-row update of the editable fields."""
        raise NotImplementedError

    def delete_project(self, project_id: str) -> None:
        raise NotImplementedError

    def append_history(self, project_id: str, description: str, snapshot: HistorySnapshot) -> HistoryEntry:
        raise NotImplementedError


# --------------------------------------------------------------------
# Supabase (PostgREST)
# --------------------------------------------------------------------


class SupabaseProjectStore(ProjectStore):
    def __init__(self, auth: AuthProvider, timeout: int = REQUEST_TIMEOUT):
        self._auth = auth
        self.timeout = timeout

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        _retry: bool = True,
    ) -> Any:
        """
        Issue one PostgREST call and return the decoded body.

        A 401 triggers one session refresh and one retry; _retry prevents loops.
        """
        resp = api_request(
            method,  # type: ignore[arg-type]
            path,
            json=json,
            params=params,
            headers=headers,
            access_token=self._auth.access_token(),
            timeout=self.timeout,
        )

        if resp.status_code == 401 and _retry:
            if ENABLE_VERBOSE_LOGGING:
                print(f"[STORE] 401 on {operation}, attempting session refresh...")
            try:
                refreshed = self._auth.refresh_session()
            except AuthError as e:
                raise BackendError("Session expired. Please log in again.", status_code=401, operation=operation) from e
            if refreshed is not None:
                return self._request(method, path, operation, json=json, params=params, headers=headers, _retry=False)

        raise_for_status(resp, operation)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise BackendError("Invalid JSON in backend response", status_code=resp.status_code, operation=operation) from e

    def list_projects(self) -> List[Project]:
        rows = self._request(
            "GET", PROJECTS_PATH, "list_projects",
            params={"select": "*", "order": "created_at.desc"},
        )
        return _to_projects(rows or [], "list_projects")

    def get_project(self, project_id: str) -> Project:
        rows = self._request(
            "GET", PROJECTS_PATH, "get_project",
            params={"select": "*", "id": f"eq.{project_id}", "limit": "1"},
        )
        if not rows:
            raise NotFoundError("Project", project_id)
        return _first(_to_projects(rows, "get_project"), "get_project")

    def list_history(self, project_id: str) -> List[HistoryEntry]:
        rows = self._request(
            "GET", HISTORY_PATH, "list_history",
            params={"select": "*", "project_id": f"eq.{project_id}", "order": "date.desc"},
        )
        return _to_history(rows or [], "list_history")

    def create_project(self, fields: ProjectFields) -> Project:
        rows = self._request(
            "POST", PROJECTS_PATH, "create_project",
            json=[fields.to_row()],
            headers=RETURN_REPRESENTATION,
        )
        if not rows:
            raise BackendError("Insert returned no row", operation="create_project")
        project = _first(_to_projects(rows, "create_project"), "create_project")
        _log_write("create_project", project.id)
        return project

    def update_project(self, project_id: str, fields: ProjectFields) -> Project:
        rows = self._request(
            "PATCH", PROJECTS_PATH, "update_project",
            json=fields.to_row(),
            params={"id": f"eq.{project_id}"},
            headers=RETURN_REPRESENTATION,
        )
        if not rows:
            raise NotFoundError("Project", project_id)
        _log_write("update_project", project_id)
        return _first(_to_projects(rows, "update_project"), "update_project")

    def delete_project(self, project_id: str) -> None:
        rows = self._request(
            "DELETE", PROJECTS_PATH, "delete_project",
            params={"id": f"eq.{project_id}"},
            headers=RETURN_REPRESENTATION,
        )
        if not rows:
            raise NotFoundError("Project", project_id)
        _log_write("delete_project", project_id)

    def append_history(self, project_id: str, description: str, snapshot: HistorySnapshot) -> HistoryEntry:
        _require_description(description)
        rows = self._request(
            "POST", HISTORY_PATH, "append_history",
            json=[{
                "project_id": project_id,
                "description": description,
                "date": now_iso(),
                "changes": snapshot.to_changes(),
            }],
            headers=RETURN_REPRESENTATION,
        )
        if not rows:
            raise BackendError("Insert returned no row", operation="append_history")
        entry = _first(_to_history(rows, "append_history"), "append_history")
        _log_write("append_history", f"{project_id} -> {entry.id}")
        return entry


# --------------------------------------------------------------------
# SQLite (local development)
# --------------------------------------------------------------------

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        client TEXT NOT NULL,
        fuzzr_number TEXT NOT NULL,
        job TEXT NOT NULL,
        start_date TEXT NOT NULL,
        drive_link TEXT NOT NULL DEFAULT '',
        scope TEXT NOT NULL DEFAULT '',
        project_management TEXT NOT NULL DEFAULT '',
        coordinator TEXT NOT NULL DEFAULT '',
        music_producer TEXT NOT NULL DEFAULT '',
        last_status_date TEXT NOT NULL,
        status TEXT NOT NULL,
        current_owner TEXT NOT NULL,
        observations TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS history (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
        date TEXT NOT NULL,
        description TEXT NOT NULL,
        changes TEXT,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_history_project ON history(project_id, date)",
)

PROJECT_COLUMNS = (
    "client", "fuzzr_number", "job", "start_date", "drive_link", "scope",
    "project_management", "coordinator", "music_producer", "last_status_date",
    "status", "current_owner", "observations",
)


class SQLiteProjectStore(ProjectStore):
    def __init__(self, db_path: str = LOCAL_DB_PATH):
        self.db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connect(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            # Off by default in SQLite; history rows cascade with their project
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
        finally:
            conn.close()

    def _execute(
        self, operation: str, query: str, params: Sequence[Any] = (), commit: bool = False
    ) -> Tuple[List[sqlite3.Row], int]:
        try:
            with self._connect() as conn:
                cur = conn.execute(query, tuple(params))
                rows = cur.fetchall()
                if commit:
                    conn.commit()
                return rows, cur.rowcount
        except sqlite3.Error as e:
            raise BackendError(f"SQLite error: {e}", operation=operation) from e

    def _ensure_schema(self) -> None:
        try:
            with self._connect() as conn:
                for statement in SCHEMA:
                    conn.execute(statement)
                conn.commit()
        except sqlite3.Error as e:
            raise BackendError(f"SQLite error: {e}", operation="init_schema") from e

    def list_projects(self) -> List[Project]:
        rows, _ = self._execute(
            "list_projects", "SELECT * FROM projects ORDER BY created_at DESC, rowid DESC"
        )
        return _to_projects(rows, "list_projects")

    def get_project(self, project_id: str) -> Project:
        rows, _ = self._execute("get_project", "SELECT * FROM projects WHERE id = ?", (project_id,))
        if not rows:
            raise NotFoundError("Project", project_id)
        return _first(_to_projects(rows, "get_project"), "get_project")

    def list_history(self, project_id: str) -> List[HistoryEntry]:
        rows, _ = self._execute(
            "list_history",
            "SELECT * FROM history WHERE project_id = ? ORDER BY date DESC, rowid DESC",
            (project_id,),
        )
        return _to_history(rows, "list_history")

    def create_project(self, fields: ProjectFields) -> Project:
        row = fields.to_row()
        project_id = str(uuid.uuid4())
        columns = ("id",) + PROJECT_COLUMNS + ("created_at",)
        values = [project_id] + [row[c] for c in PROJECT_COLUMNS] + [now_iso()]
        self._execute(
            "create_project",
            f"INSERT INTO projects ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
            values,
            commit=True,
        )
        _log_write("create_project", project_id)
        return self.get_project(project_id)

    def update_project(self, project_id: str, fields: ProjectFields) -> Project:
        row = fields.to_row()
        assignments = ", ".join(f"{c} = ?" for c in PROJECT_COLUMNS)
        _, rowcount = self._execute(
            "update_project",
            f"UPDATE projects SET {assignments} WHERE id = ?",
            [row[c] for c in PROJECT_COLUMNS] + [project_id],
            commit=True,
        )
        if rowcount == 0:
            raise NotFoundError("Project", project_id)
        _log_write("update_project", project_id)
        return self.get_project(project_id)

    def delete_project(self, project_id: str) -> None:
        _, rowcount = self._execute(
            "delete_project", "DELETE FROM projects WHERE id = ?", (project_id,), commit=True
        )
        if rowcount == 0:
            raise NotFoundError("Project", project_id)
        _log_write("delete_project", project_id)

    def append_history(self, project_id: str, description: str, snapshot: HistorySnapshot) -> HistoryEntry:
        _require_description(description)
        entry_id = str(uuid.uuid4())
        timestamp = now_iso()
        self._execute(
            "append_history",
            "INSERT INTO history (id, project_id, date, description, changes, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (entry_id, project_id, timestamp, description, snapshot.to_changes(), timestamp),
            commit=True,
        )
        _log_write("append_history", f"{project_id} -> {entry_id}")
        return HistoryEntry(
            id=entry_id,
            project_id=project_id,
            date=timestamp,
            description=description,
            changes=snapshot.to_changes(),
            created_at=timestamp,
        )


# --------------------------------------------------------------------
# Factory + combined fetch
# --------------------------------------------------------------------


def get_store(session_state: Optional[MutableMapping] = None) -> ProjectStore:
    """Return this browser session's store, creating it on first use."""
    ss = st.session_state if session_state is None else session_state
    store = ss.get(STORE_KEY)
    if store is None:
        if STORE_BACKEND == "sqlite":
            store = SQLiteProjectStore(LOCAL_DB_PATH)
        else:
            store = SupabaseProjectStore(get_auth_provider(ss))
        ss[STORE_KEY] = store
    return store


def fetch_project_with_history(store: ProjectStore, project_id: str) -> Tuple[Project, List[HistoryEntry]]:
    """
    Detail view fetch: the project, then its history.

    The two calls form one operation; a failure of either (NotFoundError or
    BackendError) propagates and the caller shows neither.
    """
    project = store.get_project(project_id)
    history = store.list_history(project_id)
    return project, history
