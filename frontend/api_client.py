"""
frontend/api_client.py
Centralized HTTP client for all requests to the hosted Supabase project.

This module ensures:
1. Every call carries the project `apikey` header and the right Bearer token
2. Transport failures surface as BackendError (never a raw requests exception)
3. The project URL comes from config.py (dev/staging/prod rules applied)
4. No duplicate request logic scattered across the store and auth modules
"""

from typing import Any, Dict, Optional, Literal
import requests

# Import config (robust fallback for different run contexts)
try:
    from frontend.config import get_supabase_url, get_supabase_anon_key, ENABLE_VERBOSE_LOGGING, REQUEST_TIMEOUT
    from frontend.errors import BackendError
except ModuleNotFoundError:
    from config import get_supabase_url, get_supabase_anon_key, ENABLE_VERBOSE_LOGGING, REQUEST_TIMEOUT
    from errors import BackendError


__all__ = ["api_request", "error_message", "raise_for_status", "is_public_endpoint"]

METHODS = ("GET", "POST", "PATCH", "DELETE")


def is_public_endpoint(path: str) -> bool:
    """
    Check if endpoint is public (authenticated with the anon key only).

    Public endpoints:
    - /auth/v1/token (password and refresh_token grants)
    - /auth/v1/signup

    Everything under /rest/v1 and /auth/v1/logout uses the user's access token
    when a session exists.

    Args:
        path: API endpoint path (e.g., "/auth/v1/token")

    Returns:
        True if public, False if protected
    """
    public_paths = ["/auth/v1/token", "/auth/v1/signup"]
    return path.split("?", 1)[0] in public_paths


def api_request(
    method: Literal["GET", "POST", "PATCH", "DELETE"],
    path: str,
    json: Any = None,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    access_token: Optional[str] = None,
    timeout: int = REQUEST_TIMEOUT,
) -> requests.Response:
    """
    Make a request to the Supabase project.

    Features:
    - Attaches `apikey` on every request
    - Attaches Authorization: Bearer <access token> for protected endpoints,
      falling back to the anon key when there is no session
    - Connection/timeout errors become BackendError with safe messages

    Security:
    - Never logs tokens, keys or request headers

    Args:
        method: HTTP method (GET, POST, PATCH, DELETE)
        path: Endpoint path (e.g., "/rest/v1/projects")
        json: JSON body for POST/PATCH requests
        params: Query parameters (PostgREST filters, ordering)
        headers: Extra headers (e.g., Prefer)
        access_token: Session access token, if any
        timeout: Request timeout in seconds

    Returns:
        Response object, whatever its status code. Callers decide what a
        status means (raise_for_status covers the common case).

    Raises:
        BackendError: configuration error, timeout or connection failure
    """
    try:
        base_url = get_supabase_url()
        anon_key = get_supabase_anon_key()
    except (RuntimeError, ValueError) as e:
        raise BackendError(f"Configuration error: {e}", operation=f"{method} {path}") from e

    url = f"{base_url}{path}"

    request_headers = {"Accept": "application/json", "apikey": anon_key}
    if json is not None:
        request_headers["Content-Type"] = "application/json"

    bearer = anon_key
    if access_token and not is_public_endpoint(path):
        bearer = access_token
    if bearer:
        request_headers["Authorization"] = f"Bearer {bearer}"

    if headers:
        request_headers.update(headers)

    try:
        if method == "GET":
            resp = requests.get(url, headers=request_headers, params=params, timeout=timeout)
        elif method == "POST":
            resp = requests.post(url, json=json, headers=request_headers, params=params, timeout=timeout)
        elif method == "PATCH":
            resp = requests.patch(url, json=json, headers=request_headers, params=params, timeout=timeout)
        elif method == "DELETE":
            resp = requests.delete(url, headers=request_headers, params=params, timeout=timeout)
        else:
            raise ValueError(f"Unsupported HTTP method: {method}")

    except requests.exceptions.Timeout as e:
        if ENABLE_VERBOSE_LOGGING:
            print(f"[API] Timeout on {method} {path}")
        raise BackendError(f"Request timed out after {timeout}s", operation=f"{method} {path}") from e

    except requests.exceptions.ConnectionError as e:
        if ENABLE_VERBOSE_LOGGING:
            print(f"[API] Connection error on {method} {path}")
        raise BackendError(f"Cannot connect to backend at {base_url}", operation=f"{method} {path}") from e

    except requests.exceptions.RequestException as e:
        # Exception text can echo request details; keep only the type
        if ENABLE_VERBOSE_LOGGING:
            print(f"[API] Unexpected error on {method} {path}: {type(e).__name__}")
        raise BackendError(f"Unexpected request error: {type(e).__name__}", operation=f"{method} {path}") from e

    if ENABLE_VERBOSE_LOGGING:
        print(f"[API] {method} {path} -> {resp.status_code}")
    return resp


def error_message(resp: requests.Response) -> str:
    """
    Extract a readable message from a PostgREST or GoTrue error body.

    PostgREST answers {"message": ..., "code": ..., "details": ...};
    GoTrue answers {"error_description": ...} or {"msg": ...}.
    """
    try:
        data = resp.json()
    except ValueError:
        return (resp.text or f"HTTP {resp.status_code}")[:200]
    if isinstance(data, dict):
        for key in ("message", "error_description", "msg", "error"):
            if data.get(key):
                return str(data[key])[:200]
    return f"HTTP {resp.status_code}"


def raise_for_status(resp: requests.Response, operation: str) -> None:
    """Raise BackendError for any status >= 400."""
    if resp.status_code >= 400:
        raise BackendError(error_message(resp), status_code=resp.status_code, operation=operation)
