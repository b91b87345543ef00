# frontend/dev_observability.py
# DEV-only session state observability for the project tracker

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

# Sensitive keys that must be redacted
SENSITIVE_KEYS = {
    "auth_session",
    "access_token",
    "refresh_token",
    "password",
    "login_password",
    "apikey",
    "anon_key",
    "secret",
    "token",
    "_auth_provider",
}

MAX_EVENTS = 100

# Deferred keys consumed at the top of the next rerun
DEFERRED_KEYS = ("_flash", "_confirm_delete", "_clear_login_fields")


def redact_value(key: str, value: Any) -> Any:
    """
    Redact sensitive values.
    - If key is sensitive: return "[REDACTED]"
    - If key names an id: return last 4 chars (e.g., "…a9f2")
    - Otherwise: return actual value
    """
    key_lower = key.lower()

    if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
        return "[REDACTED]"

    if "id" in key_lower and isinstance(value, str) and len(value) > 4:
        return f"…{value[-4:]}"

    return value


def now_iso() -> str:
    """Return current timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def compute_state_fingerprint(session_state: dict) -> str:
    """
    Compute a stable fingerprint of routing/auth state for change detection.

    Includes the current route, list view mode, whether a session exists and
    which user it belongs to, and the presence of deferred keys. Never the
    tokens themselves.

    Returns:
        Short hash string (first 12 chars of SHA256)
    """
    auth_session = session_state.get("auth_session")
    user_id = None
    if isinstance(auth_session, dict):
        user_id = (auth_session.get("user") or {}).get("id")

    fingerprint_data = {
        "route": session_state.get("route"),
        "list_view_mode": session_state.get("list_view_mode"),
        "has_session": bool(auth_session),
        "user_id": user_id,
    }
    for key in DEFERRED_KEYS:
        fingerprint_data[f"has{key}"] = key in session_state

    json_str = json.dumps(fingerprint_data, sort_keys=True, default=str)
    return hashlib.sha256(json_str.encode()).hexdigest()[:12]


def detect_state_changes(session_state: dict) -> Tuple[bool, Optional[str], Optional[str]]:
    """
    Detect if session state has changed since the last update_fingerprint().

    Returns:
        (changed, old_fingerprint, new_fingerprint)
    """
    new_fingerprint = compute_state_fingerprint(session_state)
    old_fingerprint = session_state.get("_debug_last_fingerprint")

    if old_fingerprint is None:
        return True, None, new_fingerprint

    return new_fingerprint != old_fingerprint, old_fingerprint, new_fingerprint


def update_fingerprint(session_state: dict) -> None:
    session_state["_debug_last_fingerprint"] = compute_state_fingerprint(session_state)
    session_state["_debug_last_change_time"] = now_iso()


def get_cause_tag(session_state: dict, default: str = "navigation") -> str:
    """Get and clear the one-time cause tag for this state change."""
    return session_state.pop("_debug_cause", default)


def set_cause_tag(session_state: dict, cause: str) -> None:
    """
    Set a cause tag before a state-changing action.

    Call BEFORE st.rerun() (e.g., "login", "project_saved", "project_deleted").
    """
    session_state["_debug_cause"] = cause


def track_event(session_state: dict, event_name: str, details: Optional[Dict[str, Any]] = None) -> None:
    """
    Append an event to the session event timeline.

    Args:
        session_state: Streamlit session_state (or any dict)
        event_name: Short name (e.g., "store_write", "route_changed")
        details: Optional context; values are redacted by key
    """
    events = session_state.setdefault("_dev_events", [])

    event: Dict[str, Any] = {"ts": now_iso(), "name": event_name}
    if details:
        event["details"] = {k: redact_value(k, v) for k, v in details.items()}
    events.append(event)

    if len(events) > MAX_EVENTS:
        session_state["_dev_events"] = events[-MAX_EVENTS:]


def snapshot_state(session_state: dict, keys_of_interest: List[str]) -> Dict[str, Any]:
    """Redacted view of the given keys; missing keys are reported as absent."""
    snapshot: Dict[str, Any] = {}
    for key in keys_of_interest:
        if key in session_state:
            snapshot[key] = {"exists": True, "value": redact_value(key, session_state[key])}
        else:
            snapshot[key] = {"exists": False}
    return snapshot


def get_recent_events(session_state: dict, limit: int = 30) -> List[Dict[str, Any]]:
    """Most recent events first."""
    events = session_state.get("_dev_events", [])
    return list(reversed(events[-limit:]))


def clear_debug_history(session_state: dict) -> None:
    if "_dev_events" in session_state:
        session_state["_dev_events"] = []


def export_snapshot_json(session_state: dict, keys_of_interest: List[str]) -> str:
    """Full diagnostic snapshot (state, recent events, change detection) as JSON."""
    changed, old_fp, new_fp = detect_state_changes(session_state)
    export = {
        "timestamp": now_iso(),
        "state": snapshot_state(session_state, keys_of_interest),
        "recent_events": get_recent_events(session_state, limit=50),
        "change_detection": {
            "changed_since_last": changed,
            "old_fingerprint": old_fp,
            "new_fingerprint": new_fp,
            "last_change_time": session_state.get("_debug_last_change_time"),
            "pending_cause": session_state.get("_debug_cause", "none"),
        },
    }
    return json.dumps(export, indent=2, default=str)
