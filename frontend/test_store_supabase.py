# frontend/test_store_supabase.py
# Supabase store and API client, with requests mocked

import json
import pytest
import sys
from pathlib import Path
from unittest import mock

import requests

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from domains.project.models.project import ProjectFields
from domains.project.models.history_entry import HistorySnapshot
from frontend.api_client import api_request, error_message, is_public_endpoint
from frontend.errors import AuthError, BackendError, NotFoundError
from frontend.store import SupabaseProjectStore

BASE_URL = "https://tracker.supabase.co"
ANON_KEY = "anon-key"

PROJECT_ROW = {
    "id": "p1",
    "client": "Acme",
    "fuzzr_number": "F-100",
    "job": "Jingle",
    "start_date": "2024-01-01",
    "drive_link": None,
    "scope": None,
    "project_management": None,
    "coordinator": None,
    "music_producer": None,
    "last_status_date": "2024-01-01",
    "status": "Kickoff",
    "current_owner": "Fuzzr",
    "observations": None,
    "created_at": "2024-01-01T12:00:00+00:00",
}


def _response(status_code=200, body=None):
    resp = mock.MagicMock()
    resp.status_code = status_code
    resp.content = b"" if body is None else json.dumps(body).encode()
    resp.text = resp.content.decode()
    if body is None:
        resp.json.side_effect = ValueError("no body")
    else:
        resp.json.return_value = body
    return resp


@pytest.fixture(autouse=True)
def supabase_config():
    with mock.patch("frontend.api_client.get_supabase_url", return_value=BASE_URL), \
         mock.patch("frontend.api_client.get_supabase_anon_key", return_value=ANON_KEY):
        yield


@pytest.fixture
def auth():
    provider = mock.MagicMock()
    provider.access_token.return_value = "user-token"
    return provider


def _fields():
    return ProjectFields(
        client="Acme",
        fuzzr_number="F-100",
        job="Jingle",
        start_date="2024-01-01",
        last_status_date="2024-01-01",
        status="Kickoff",
        current_owner="Fuzzr",
    )


# --------------------------------------------------------------------
# api_client
# --------------------------------------------------------------------


def test_public_endpoints():
    assert is_public_endpoint("/auth/v1/token")
    assert is_public_endpoint("/auth/v1/token?grant_type=password")
    assert not is_public_endpoint("/auth/v1/logout")
    assert not is_public_endpoint("/rest/v1/projects")


def test_api_request_sends_apikey_and_user_token():
    with mock.patch("frontend.api_client.requests.get", return_value=_response(200, [])) as get:
        api_request("GET", "/rest/v1/projects", params={"select": "*"}, access_token="user-token")

    url = get.call_args.args[0]
    headers = get.call_args.kwargs["headers"]
    assert url == f"{BASE_URL}/rest/v1/projects"
    assert headers["apikey"] == ANON_KEY
    assert headers["Authorization"] == "Bearer user-token"
    assert get.call_args.kwargs["params"] == {"select": "*"}


def test_api_request_public_endpoint_uses_anon_key():
    with mock.patch("frontend.api_client.requests.post", return_value=_response(200, {})) as post:
        api_request("POST", "/auth/v1/token", json={"email": "a"}, access_token="user-token")

    assert post.call_args.kwargs["headers"]["Authorization"] == f"Bearer {ANON_KEY}"


def test_api_request_timeout_becomes_backend_error():
    with mock.patch("frontend.api_client.requests.get", side_effect=requests.exceptions.Timeout()):
        with pytest.raises(BackendError) as exc:
            api_request("GET", "/rest/v1/projects", timeout=3)
    assert "timed out" in str(exc.value)


def test_api_request_connection_error_becomes_backend_error():
    with mock.patch("frontend.api_client.requests.get", side_effect=requests.exceptions.ConnectionError()):
        with pytest.raises(BackendError):
            api_request("GET", "/rest/v1/projects")


def test_api_request_missing_config_becomes_backend_error():
    with mock.patch("frontend.api_client.get_supabase_url", side_effect=RuntimeError("not configured")):
        with pytest.raises(BackendError) as exc:
            api_request("GET", "/rest/v1/projects")
    assert "Configuration error" in str(exc.value)


def test_error_message_reads_postgrest_and_gotrue_bodies():
    assert error_message(_response(400, {"message": "bad filter", "code": "PGRST100"})) == "bad filter"
    assert error_message(_response(400, {"error_description": "Invalid login credentials"})) == "Invalid login credentials"
    assert error_message(_response(500, [])) == "HTTP 500"


# --------------------------------------------------------------------
# SupabaseProjectStore
# --------------------------------------------------------------------


def test_list_projects_orders_newest_first(auth):
    store = SupabaseProjectStore(auth)
    with mock.patch("frontend.api_client.requests.get", return_value=_response(200, [PROJECT_ROW])) as get:
        projects = store.list_projects()

    assert get.call_args.kwargs["params"]["order"] == "created_at.desc"
    assert len(projects) == 1
    assert projects[0].client == "Acme"
    assert projects[0].scope == ""


def test_get_project_empty_result_is_not_found(auth):
    store = SupabaseProjectStore(auth)
    with mock.patch("frontend.api_client.requests.get", return_value=_response(200, [])) as get:
        with pytest.raises(NotFoundError):
            store.get_project("missing")
    assert get.call_args.kwargs["params"]["id"] == "eq.missing"


def test_list_history_filters_by_project(auth):
    store = SupabaseProjectStore(auth)
    row = {
        "id": "h1",
        "project_id": "p1",
        "date": "2024-03-01T10:00:00+00:00",
        "description": "Sent mix",
        "changes": {"status": "Online"},
        "created_at": "2024-03-01T10:00:00+00:00",
    }
    with mock.patch("frontend.api_client.requests.get", return_value=_response(200, [row])) as get:
        history = store.list_history("p1")

    params = get.call_args.kwargs["params"]
    assert params["project_id"] == "eq.p1"
    assert params["order"] == "date.desc"
    assert history[0].snapshot.status == "Online"


def test_create_project_posts_row_with_representation(auth):
    store = SupabaseProjectStore(auth)
    with mock.patch("frontend.api_client.requests.post", return_value=_response(201, [PROJECT_ROW])) as post:
        project = store.create_project(_fields())

    kwargs = post.call_args.kwargs
    assert kwargs["json"][0]["status"] == "Kickoff"
    assert kwargs["headers"]["Prefer"] == "return=representation"
    assert project.id == "p1"


def test_update_project_without_match_is_not_found(auth):
    store = SupabaseProjectStore(auth)
    with mock.patch("frontend.api_client.requests.patch", return_value=_response(200, [])):
        with pytest.raises(NotFoundError):
            store.update_project("missing", _fields())


def test_delete_project_filters_by_id(auth):
    store = SupabaseProjectStore(auth)
    with mock.patch("frontend.api_client.requests.delete", return_value=_response(200, [PROJECT_ROW])) as delete:
        store.delete_project("p1")
    assert delete.call_args.kwargs["params"] == {"id": "eq.p1"}


def test_append_history_sends_snapshot(auth):
    store = SupabaseProjectStore(auth)
    snapshot = HistorySnapshot(status="Online", current_owner="Cliente")
    returned = {
        "id": "h1",
        "project_id": "p1",
        "date": "2024-03-01T10:00:00+00:00",
        "description": "Sent first draft",
        "changes": snapshot.to_changes(),
    }
    with mock.patch("frontend.api_client.requests.post", return_value=_response(201, [returned])) as post:
        entry = store.append_history("p1", "Sent first draft", snapshot)

    sent = post.call_args.kwargs["json"][0]
    assert sent["project_id"] == "p1"
    assert json.loads(sent["changes"])["status"] == "Online"
    assert entry.snapshot == snapshot


def test_http_error_becomes_backend_error(auth):
    store = SupabaseProjectStore(auth)
    with mock.patch("frontend.api_client.requests.get", return_value=_response(500, {"message": "boom"})):
        with pytest.raises(BackendError) as exc:
            store.list_projects()
    assert exc.value.status_code == 500
    assert exc.value.operation == "list_projects"


def test_malformed_row_is_skipped_in_lists(auth, capsys):
    store = SupabaseProjectStore(auth)
    rows = [{"client": "no id"}, PROJECT_ROW]
    with mock.patch("frontend.api_client.requests.get", return_value=_response(200, rows)):
        projects = store.list_projects()

    assert [p.id for p in projects] == ["p1"]
    assert "[STORE] list_projects: skipping malformed Project row" in capsys.readouterr().out


def test_malformed_history_row_keeps_the_rest(auth):
    store = SupabaseProjectStore(auth)
    rows = [
        {"id": "h1", "project_id": "p1", "date": None, "description": "broken"},
        {"id": "h2", "project_id": "p1", "date": "2024-03-01T10:00:00+00:00", "description": "ok"},
    ]
    with mock.patch("frontend.api_client.requests.get", return_value=_response(200, rows)):
        history = store.list_history("p1")

    assert [h.id for h in history] == ["h2"]


def test_malformed_single_row_becomes_backend_error(auth):
    store = SupabaseProjectStore(auth)
    with mock.patch("frontend.api_client.requests.get", return_value=_response(200, [{"client": "no id"}])):
        with pytest.raises(BackendError):
            store.get_project("p1")


def test_401_refreshes_once_and_retries(auth):
    auth.access_token.side_effect = ["expired-token", "fresh-token"]
    store = SupabaseProjectStore(auth)
    responses = [_response(401, {"message": "JWT expired"}), _response(200, [PROJECT_ROW])]

    with mock.patch("frontend.api_client.requests.get", side_effect=responses) as get:
        projects = store.list_projects()

    assert auth.refresh_session.call_count == 1
    assert get.call_count == 2
    assert get.call_args.kwargs["headers"]["Authorization"] == "Bearer fresh-token"
    assert projects[0].id == "p1"


def test_401_after_retry_is_backend_error(auth):
    store = SupabaseProjectStore(auth)
    responses = [_response(401, {"message": "JWT expired"}), _response(401, {"message": "JWT expired"})]

    with mock.patch("frontend.api_client.requests.get", side_effect=responses) as get:
        with pytest.raises(BackendError) as exc:
            store.list_projects()

    assert get.call_count == 2
    assert auth.refresh_session.call_count == 1
    assert exc.value.status_code == 401


def test_401_with_failed_refresh_is_backend_error(auth):
    auth.refresh_session.side_effect = AuthError("Invalid refresh token", status_code=400)
    store = SupabaseProjectStore(auth)

    with mock.patch("frontend.api_client.requests.get", return_value=_response(401, {"message": "JWT expired"})):
        with pytest.raises(BackendError) as exc:
            store.list_projects()
    assert exc.value.status_code == 401


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
