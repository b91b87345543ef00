# frontend/app.py
# Tailor Made – project tracker (list, kanban board, forms, history)
#
# Run from repo root: streamlit run frontend/app.py

from __future__ import annotations

import html
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

import streamlit as st
from pydantic import ValidationError

# Repo root on the path so `domains` resolves when not installed
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from domains.project.models.project import Project, ProjectFields, owner_values, status_values
from domains.project.models.history_entry import HistoryEntry, HistorySnapshot

# Import environment config (robust fallback for different run contexts)
try:
    from frontend.config import ENV, IS_DEV, ENABLE_DEBUG_UI, STORE_BACKEND, LOCAL_AUTH_EMAIL, LOCAL_AUTH_PASSWORD
except ModuleNotFoundError:
    from config import ENV, IS_DEV, ENABLE_DEBUG_UI, STORE_BACKEND, LOCAL_AUTH_EMAIL, LOCAL_AUTH_PASSWORD

try:
    from frontend.auth import Session, SessionGate, get_session_gate, init_auth_state, teardown_session_gate
    from frontend.errors import AuthError, BackendError, NotFoundError
    from frontend.store import ProjectStore, fetch_project_with_history, get_store
except ModuleNotFoundError:
    from auth import Session, SessionGate, get_session_gate, init_auth_state, teardown_session_gate
    from errors import AuthError, BackendError, NotFoundError
    from store import ProjectStore, fetch_project_with_history, get_store

try:
    from frontend.view_helpers import (
        LIST_ROUTE, VIEW_DETAIL, VIEW_EDIT, VIEW_NEW, Route,
        blank_form, display_or_dash, form_from_project, format_date, group_by_status,
        is_expanded, is_legacy_choice, parse_date, parse_route, projects_to_df, select_choices,
        choice_label, snapshot_lines, status_badge_html, status_color, status_summary, toggle_expanded,
    )
    from frontend.dev_observability import (
        clear_debug_history, detect_state_changes, export_snapshot_json,
        get_cause_tag, set_cause_tag, track_event, update_fingerprint,
    )
except ModuleNotFoundError:
    from view_helpers import (
        LIST_ROUTE, VIEW_DETAIL, VIEW_EDIT, VIEW_NEW, Route,
        blank_form, display_or_dash, form_from_project, format_date, group_by_status,
        is_expanded, is_legacy_choice, parse_date, parse_route, projects_to_df, select_choices,
        choice_label, snapshot_lines, status_badge_html, status_color, status_summary, toggle_expanded,
    )
    from dev_observability import (
        clear_debug_history, detect_state_changes, export_snapshot_json,
        get_cause_tag, set_cause_tag, track_event, update_fingerprint,
    )

# --------------------------------------------------------------------
# DEV Observability - Keys to track
# --------------------------------------------------------------------

KEYS_OF_INTEREST = [
    "route",
    "list_view_mode",
    "auth_session",
    "expanded_history",
    "_flash",
    "_confirm_delete",
    "_clear_login_fields",
]

VIEW_MODES = ["Grid", "Kanban"]

# --------------------------------------------------------------------
# State helpers
# --------------------------------------------------------------------

ss = st.session_state


def init_state() -> None:
    # Auth keys first; they must exist on every rerun
    init_auth_state()

    ss.setdefault("route", None)
    ss.setdefault("list_view_mode", VIEW_MODES[0])
    # History entry id -> expanded flag (detail view)
    ss.setdefault("expanded_history", {})


def apply_pending_actions() -> None:
    """Apply deferred actions before any widget is created."""
    if ss.pop("_clear_login_fields", False):
        ss.pop("login_email", None)
        ss.pop("login_password", None)


def flash(kind: str, message: str) -> None:
    """Queue a toast for the next run (toasts raised right before st.rerun() are lost)."""
    ss["_flash"] = (kind, message)


def show_flash() -> None:
    pending = ss.pop("_flash", None)
    if pending:
        kind, message = pending
        st.toast(message, icon="✅" if kind == "success" else "⚠️")


def report_error(operation: str, error: Exception, message: str) -> None:
    print(f"[APP] {operation} failed: {type(error).__name__}: {error}")
    if IS_DEV:
        track_event(ss, "operation_failed", {"operation": operation, "error": str(error)})
    st.toast(f"{message}: {error}", icon="❌")


# --------------------------------------------------------------------
# Navigation helper (single source of truth)
# --------------------------------------------------------------------


def current_route() -> Route:
    path = ss.get("route")
    if path is None:
        # First run: honor a bookmarked ?page=/project/<id>
        path = st.query_params.get("page", "/")
        ss["route"] = path
    return parse_route(path)


def go_to(route: Route) -> None:
    """
    Deterministic navigation helper - the ONLY way views change pages.

    Stores the path in session state, mirrors it to ?page= and reruns.
    """
    ss["route"] = route.path
    st.query_params["page"] = route.path
    if IS_DEV:
        track_event(ss, "route_changed", {"path": route.path})
    st.rerun()


# --------------------------------------------------------------------
# Login + navbar
# --------------------------------------------------------------------


def render_login(gate: SessionGate) -> None:
    st.header("Tailor Made · Sign in")

    if STORE_BACKEND == "sqlite":
        st.caption(f"Local mode: sign in as **{LOCAL_AUTH_EMAIL}** / **{LOCAL_AUTH_PASSWORD}**")

    with st.form("login_form"):
        email = st.text_input("Email", key="login_email")
        password = st.text_input("Password", type="password", key="login_password")
        submitted = st.form_submit_button("Sign in", type="primary")

    if not submitted:
        return
    if not email or not password:
        st.error("Please enter email and password.")
        return

    try:
        gate.provider.sign_in_with_password(email.strip(), password)
    except AuthError as e:
        print(f"[AUTH] Login failed: {e}")
        st.error(f"Login failed: {e}")
        return

    if IS_DEV:
        set_cause_tag(ss, "login")
        track_event(ss, "login_success", {"user": email})
    ss["_clear_login_fields"] = True
    flash("success", "Signed in")
    st.rerun()


def handle_sign_out(gate: SessionGate) -> None:
    try:
        gate.provider.sign_out()
        flash("success", "Signed out")
    except AuthError as e:
        print(f"[AUTH] Sign-out failed at provider: {e}")
        flash("error", f"Sign-out error: {e}")

    # Shell is torn down: release the session subscription
    teardown_session_gate(ss)
    ss["route"] = LIST_ROUTE.path
    ss["expanded_history"] = {}
    ss.pop("_confirm_delete", None)
    st.query_params.clear()
    if IS_DEV:
        set_cause_tag(ss, "logout")
    st.rerun()


def render_sidebar(gate: SessionGate, session: Session) -> None:
    with st.sidebar:
        st.markdown("## 🎵 Tailor Made")
        st.caption(f"Signed in as **{session.email or 'unknown'}**")

        if st.button("📋 Projects", width="stretch", key="nav_projects_btn"):
            go_to(LIST_ROUTE)
        if st.button("➕ New project", width="stretch", key="nav_new_btn"):
            go_to(Route(VIEW_NEW))
        if st.button("🚪 Sign out", width="stretch", key="nav_sign_out_btn"):
            handle_sign_out(gate)

        st.markdown("---")
        st.caption(f"**Environment:** {ENV} · **Store:** {STORE_BACKEND}")

        if ENABLE_DEBUG_UI:
            with st.expander("🛠 State debug"):
                st.code(export_snapshot_json(ss, KEYS_OF_INTEREST), language="json")
                if st.button("Clear debug history", key="clear_debug_btn"):
                    clear_debug_history(ss)
                    st.rerun()


def render_not_found() -> None:
    st.subheader("Project not found")
    if st.button("Back to the list", key="not_found_back_btn"):
        go_to(LIST_ROUTE)


# --------------------------------------------------------------------
# List / Board
# --------------------------------------------------------------------


def load_projects(store: ProjectStore) -> List[Project]:
    try:
        return store.list_projects()
    except BackendError as e:
        report_error("list_projects", e, "Failed to load projects")
        return []


def render_project_card(project: Project, key_prefix: str) -> None:
    with st.container(border=True):
        st.markdown(
            f"📁 <strong>{html.escape(project.client)}</strong> &nbsp; {status_badge_html(project.status)}",
            unsafe_allow_html=True,
        )
        st.markdown(
            f"**Fuzzr #:** {project.fuzzr_number}  \n"
            f"**Job:** {project.job}  \n"
            f"**Start:** {format_date(project.start_date)}  \n"
            f"**Current owner:** {display_or_dash(project.current_owner)}"
        )
        st.caption(
            f"Manager: {display_or_dash(project.project_management)} · "
            f"Coordinator: {display_or_dash(project.coordinator)} · "
            f"Producer: {display_or_dash(project.music_producer)}"
        )

        c1, c2, c3, c4 = st.columns(4)
        if c1.button("Details", key=f"{key_prefix}_details_{project.id}"):
            go_to(Route(VIEW_DETAIL, project.id))
        if c2.button("Edit", key=f"{key_prefix}_edit_{project.id}"):
            go_to(Route(VIEW_EDIT, project.id))
        if project.drive_link:
            c3.link_button("Drive", project.drive_link)
        if c4.button("🗑", key=f"{key_prefix}_delete_{project.id}", help="Delete project"):
            ss["_confirm_delete"] = project.id
            st.rerun()


def render_delete_confirmation(store: ProjectStore, projects: List[Project]) -> None:
    """Second step of the delete flow; nothing is deleted without it."""
    pending = ss.get("_confirm_delete")
    if not pending:
        return

    target = next((p for p in projects if p.id == pending), None)
    label = target.client if target else pending
    st.warning(f"Delete project **{label}**? This cannot be undone.")

    c1, c2, _ = st.columns([1, 1, 4])
    if c1.button("Confirm delete", type="primary", key="confirm_delete_btn"):
        ss.pop("_confirm_delete", None)
        try:
            store.delete_project(pending)
        except (BackendError, NotFoundError) as e:
            # List stays as loaded
            report_error("delete_project", e, "Failed to delete project")
            return
        if IS_DEV:
            set_cause_tag(ss, "project_deleted")
            track_event(ss, "store_write", {"operation": "delete_project", "project_id": pending})
        flash("success", "Project deleted")
        st.rerun()
    if c2.button("Cancel", key="cancel_delete_btn"):
        ss.pop("_confirm_delete", None)
        st.rerun()


def render_kanban(projects: List[Project]) -> None:
    board = group_by_status(projects)

    columns = st.columns(len(board.columns))
    for col, (status, items) in zip(columns, board.columns.items()):
        bg, fg = status_color(status)
        with col:
            st.markdown(
                f'<div style="background-color:{bg};color:{fg};padding:8px 10px;border-radius:8px;margin-bottom:8px;">'
                f"<strong>{html.escape(status.value)}</strong><br/>"
                f"<small>{len(items)} project{'s' if len(items) != 1 else ''}</small></div>",
                unsafe_allow_html=True,
            )
            for project in items:
                render_project_card(project, key_prefix="kanban")

    if board.unrecognized:
        clients = ", ".join(p.client or p.id for p in board.unrecognized)
        st.caption(
            f"{len(board.unrecognized)} project(s) with an unrecognized status are not on the board: {clients}"
        )


def render_project_list(store: ProjectStore) -> None:
    head_left, head_right = st.columns([3, 1])
    head_left.header("Projects")
    head_right.radio("View", VIEW_MODES, horizontal=True, key="list_view_mode", label_visibility="collapsed")

    with st.spinner("Loading projects..."):
        projects = load_projects(store)

    render_delete_confirmation(store, projects)

    if not projects:
        st.info("No projects yet. Use **New project** in the sidebar to create one.")
        return

    with st.expander(f"Summary · {len(projects)} project(s)"):
        st.dataframe(status_summary(projects), hide_index=True, width="stretch")
        st.download_button(
            "Download CSV",
            projects_to_df(projects).to_csv(index=False),
            file_name="projects.csv",
            mime="text/csv",
            key="projects_csv_btn",
        )

    if ss.get("list_view_mode") == "Kanban":
        render_kanban(projects)
        return

    grid = st.columns(3)
    for i, project in enumerate(projects):
        with grid[i % 3]:
            render_project_card(project, key_prefix="grid")


# --------------------------------------------------------------------
# Create / edit form
# --------------------------------------------------------------------


def _missing_fields(error: ValidationError) -> List[str]:
    return sorted({str(err["loc"][0]) for err in error.errors() if err.get("loc")})


def render_project_form(store: ProjectStore, project_id: Optional[str]) -> None:
    is_editing = project_id is not None

    if st.button("← Back", key="form_back_btn"):
        go_to(LIST_ROUTE)
    st.header("Edit project" if is_editing else "New project")

    values = blank_form()
    if is_editing:
        try:
            values = form_from_project(store.get_project(project_id))
        except NotFoundError:
            render_not_found()
            return
        except BackendError as e:
            report_error("get_project", e, "Failed to load the project")
            return

    statuses = status_values()
    owners = owner_values()
    status_choices, status_index = select_choices(statuses, values["status"])
    owner_choices, owner_index = select_choices(owners, values["current_owner"])

    legacy = [
        f"{label} '{value}'"
        for label, options, value in (
            ("status", statuses, values["status"]),
            ("current owner", owners, values["current_owner"]),
        )
        if is_legacy_choice(options, value)
    ]
    if legacy:
        st.warning(f"Stored {' and '.join(legacy)} is no longer a valid option. Pick a new value before saving.")

    with st.form(f"project_form_{project_id or 'new'}"):
        c1, c2 = st.columns(2)
        client = c1.text_input("Client *", value=values["client"])
        fuzzr_number = c2.text_input("Fuzzr number *", value=values["fuzzr_number"])
        job = c1.text_input("Job *", value=values["job"])
        start_date = c2.date_input(
            "Start date *", value=parse_date(values["start_date"]) or date.today(), format="DD/MM/YYYY"
        )
        drive_link = c1.text_input("Drive link", value=values["drive_link"])
        last_status_date = c2.date_input(
            "Last status date *", value=parse_date(values["last_status_date"]) or date.today(), format="DD/MM/YYYY"
        )
        status = c1.selectbox(
            "Status *", status_choices, index=status_index, format_func=choice_label(statuses)
        )
        current_owner = c2.selectbox(
            "Current owner *", owner_choices, index=owner_index, format_func=choice_label(owners)
        )
        project_management = c1.text_input("Project management", value=values["project_management"])
        coordinator = c2.text_input("Coordinator / finisher", value=values["coordinator"])
        music_producer = c1.text_input("Music producer", value=values["music_producer"])
        scope = st.text_area("Scope", value=values["scope"])
        observations = st.text_area("Observations", value=values["observations"])
        submitted = st.form_submit_button("💾 Save", type="primary")

    if not submitted:
        return
    if is_legacy_choice(statuses, status) or is_legacy_choice(owners, current_owner):
        st.error("Choose a valid status and current owner; legacy values cannot be saved.")
        return

    try:
        fields = ProjectFields(
            client=client.strip(),
            fuzzr_number=fuzzr_number.strip(),
            job=job.strip(),
            start_date=start_date.isoformat() if start_date else "",
            last_status_date=last_status_date.isoformat() if last_status_date else "",
            status=status,
            current_owner=current_owner,
            drive_link=drive_link.strip(),
            scope=scope,
            project_management=project_management,
            coordinator=coordinator,
            music_producer=music_producer,
            observations=observations,
        )
    except ValidationError as e:
        st.error(f"Please fill in the required fields: {', '.join(_missing_fields(e))}")
        return

    try:
        if is_editing:
            store.update_project(project_id, fields)
            message = "Project updated"
        else:
            store.create_project(fields)
            message = "Project created"
    except (BackendError, NotFoundError) as e:
        report_error("save_project", e, "Failed to save the project")
        return

    if IS_DEV:
        set_cause_tag(ss, "project_saved")
        track_event(ss, "store_write", {"operation": "update_project" if is_editing else "create_project"})
    flash("success", message)
    go_to(LIST_ROUTE)


# --------------------------------------------------------------------
# Detail + history
# --------------------------------------------------------------------


def render_history_form(store: ProjectStore, project: Project) -> None:
    with st.form(f"history_form_{project.id}", clear_on_submit=True):
        description = st.text_input("New history entry", placeholder="Add a new history entry...")
        submitted = st.form_submit_button("➕ Add")

    if not submitted:
        return
    if not description.strip():
        st.warning("Write a description before adding an entry.")
        return

    try:
        # Snapshot of the project this run loaded above, taken before the write
        store.append_history(project.id, description, HistorySnapshot.of(project))
    except BackendError as e:
        report_error("append_history", e, "Failed to add history entry")
        return

    if IS_DEV:
        track_event(ss, "store_write", {"operation": "append_history", "project_id": project.id})
    flash("success", "History entry added")
    st.rerun()


def render_history_list(history: List[HistoryEntry]) -> None:
    if not history:
        st.caption("No history recorded")
        return

    expanded = ss["expanded_history"]
    for entry in history:
        c1, c2, c3 = st.columns([1, 12, 3])
        arrow = "▾" if is_expanded(expanded, entry.id) else "▸"
        if c1.button(arrow, key=f"toggle_history_{entry.id}"):
            toggle_expanded(expanded, entry.id)
            st.rerun()
        c2.write(entry.description)
        c3.caption(format_date(entry.date, with_time=True))

        if not is_expanded(expanded, entry.id):
            continue
        snapshot = entry.snapshot
        if snapshot is None:
            c2.caption("No snapshot recorded for this entry.")
            continue
        for label, value in snapshot_lines(snapshot):
            if "\n" in value:
                c2.markdown(f"**{label}:**")
                c2.text(value)
            else:
                c2.markdown(f"**{label}:** {value}")


def render_project_details(store: ProjectStore, project_id: str) -> None:
    if st.button("← Back", key="details_back_btn"):
        go_to(LIST_ROUTE)

    with st.spinner("Loading project..."):
        try:
            project, history = fetch_project_with_history(store, project_id)
        except NotFoundError:
            render_not_found()
            return
        except BackendError as e:
            report_error("fetch_project_with_history", e, "Failed to load the project data")
            render_not_found()
            return

    title, actions = st.columns([3, 2])
    title.markdown(
        f"## {html.escape(project.client)} &nbsp; {status_badge_html(project.status)}",
        unsafe_allow_html=True,
    )
    a1, a2 = actions.columns(2)
    if project.drive_link:
        a1.link_button("🔗 Google Drive", project.drive_link)
    if a2.button("✏️ Edit", key="details_edit_btn"):
        go_to(Route(VIEW_EDIT, project.id))

    basics, team = st.columns(2)
    with basics:
        st.subheader("Basic information")
        st.markdown(
            f"**Fuzzr number:** {project.fuzzr_number}  \n"
            f"**Job:** {project.job}  \n"
            f"**Start date:** {format_date(project.start_date)}  \n"
            f"**Last status:** {format_date(project.last_status_date)}  \n"
            f"**Current owner:** {display_or_dash(project.current_owner)}"
        )
    with team:
        st.subheader("Team")
        st.markdown(
            f"**Project management:** {display_or_dash(project.project_management)}  \n"
            f"**Coordinator / finisher:** {display_or_dash(project.coordinator)}  \n"
            f"**Music producer:** {display_or_dash(project.music_producer)}"
        )

    st.subheader("Scope")
    st.text(display_or_dash(project.scope))
    st.subheader("Observations")
    st.text(display_or_dash(project.observations))

    st.divider()
    st.subheader("History")
    render_history_form(store, project)
    render_history_list(history)


# --------------------------------------------------------------------
# Main
# --------------------------------------------------------------------


def render_shell(gate: SessionGate, session: Session, route: Route) -> None:
    store = get_store(ss)
    render_sidebar(gate, session)

    if route.view == VIEW_NEW:
        render_project_form(store, None)
    elif route.view == VIEW_EDIT:
        render_project_form(store, route.project_id)
    elif route.view == VIEW_DETAIL:
        render_project_details(store, route.project_id)
    else:
        render_project_list(store)


def main() -> None:
    st.set_page_config(page_title="Tailor Made", page_icon="🎵", layout="wide")

    init_state()
    apply_pending_actions()

    # DEV Observability: diff-based change detection (signal-only logging)
    if IS_DEV:
        changed, old_fp, new_fp = detect_state_changes(ss)
        if changed:
            track_event(ss, "state_changed", {
                "cause": get_cause_tag(ss, default="navigation"),
                "old_fp": old_fp,
                "new_fp": new_fp,
            })
            update_fingerprint(ss)

    show_flash()

    # Gate mounts (subscribes) once per browser session; re-checked every rerun
    gate = get_session_gate(ss)
    gate.check()

    route = current_route()
    print(f"[ROUTING] path={route.path} | session_present={gate.is_authenticated}")

    gate.render(
        lambda: render_login(gate),
        lambda session: render_shell(gate, session, route),
    )


if __name__ == "__main__":
    main()
