# frontend/config.py
# Environment-aware configuration for the Tailor Made project tracker

import os
from typing import Literal

# Environment detection - normalize to lowercase
_raw_env = os.environ.get("ENV", "production").lower()
ENV: Literal["local", "staging", "production"] = _raw_env if _raw_env in ("local", "staging", "production") else "production"  # type: ignore

# Environment flags (using normalized ENV)
IS_LOCAL = (ENV == "local")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "production")

IS_DEV = IS_LOCAL


def get_env() -> Literal["local", "staging", "production"]:
    """
    Get current environment with normalization.

    Returns:
        "local", "staging", or "production" (default)
    """
    return ENV


def validate_supabase_url(url: str, env: str) -> None:
    """
    Validate the Supabase project URL according to environment security rules.

    Args:
        url: The project URL to validate
        env: Current environment ("local", "staging", "production")

    Raises:
        ValueError: If URL violates security constraints for the environment
    """
    if not url:
        raise ValueError("Supabase URL cannot be empty")

    # Production/staging must use HTTPS and never localhost
    if env in ("staging", "production"):
        if not url.startswith("https://"):
            raise ValueError(f"Production/staging must use HTTPS. Got: {url}")
        if "127.0.0.1" in url or "localhost" in url:
            raise ValueError(f"Production/staging cannot use localhost URLs. Got: {url}")


def get_supabase_url() -> str:
    """
    Get the Supabase project URL with validation.

    Priority:
    1. SUPABASE_URL environment variable
    2. Local stack default (http://127.0.0.1:54321) ONLY if ENV == "local"
    3. Raise error if production/staging with no configured URL

    Returns:
        Validated project URL with trailing slash removed

    Raises:
        RuntimeError: If production/staging environment has no configured URL
        ValueError: If the configured URL breaks the environment rules
    """
    supabase_url = os.environ.get("SUPABASE_URL", "").strip()
    if supabase_url:
        url = supabase_url.rstrip("/")
        validate_supabase_url(url, ENV)
        return url

    if ENV == "local":
        return "http://127.0.0.1:54321"

    raise RuntimeError(
        f"Supabase URL not configured for {ENV.upper()} environment. "
        f"Set SUPABASE_URL (and SUPABASE_ANON_KEY) to your project's values."
    )


def get_supabase_anon_key() -> str:
    """
    Get the public anon key sent as `apikey` on every request.

    Raises:
        RuntimeError: If no key is configured outside local
    """
    key = os.environ.get("SUPABASE_ANON_KEY", "").strip()
    if key or ENV == "local":
        return key
    raise RuntimeError(f"SUPABASE_ANON_KEY not configured for {ENV.upper()} environment.")


def get_store_backend() -> Literal["supabase", "sqlite"]:
    """
    Select the store/auth implementation.

    STORE_BACKEND wins when set to a known value; otherwise local runs without
    a SUPABASE_URL use the SQLite store and everything else uses Supabase.
    """
    raw = os.environ.get("STORE_BACKEND", "").strip().lower()
    if raw in ("supabase", "sqlite"):
        return raw  # type: ignore
    if ENV == "local" and not os.environ.get("SUPABASE_URL", "").strip():
        return "sqlite"
    return "supabase"


STORE_BACKEND = get_store_backend()

# Local development store + auth
LOCAL_DB_PATH = os.environ.get("LOCAL_DB_PATH", "tracker.db")
LOCAL_AUTH_EMAIL = os.environ.get("LOCAL_AUTH_EMAIL", "dev@localhost")
LOCAL_AUTH_PASSWORD = os.environ.get("LOCAL_AUTH_PASSWORD", "dev")

# HTTP timeout for every backend round trip (seconds)
REQUEST_TIMEOUT = int(os.environ.get("REQUEST_TIMEOUT", "20"))

# Feature flags
ENABLE_DEBUG_UI = IS_DEV  # Show debug panel only in dev
ENABLE_VERBOSE_LOGGING = IS_DEV or IS_STAGING

try:
    _url_for_log = get_supabase_url() if STORE_BACKEND == "supabase" else LOCAL_DB_PATH
except (RuntimeError, ValueError) as e:
    # Surfaced again on the first request as a BackendError
    print(f"[CONFIG] CRITICAL: {e}")
    _url_for_log = ""

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Store: {STORE_BACKEND} ({_url_for_log})")
print(f"[CONFIG] Debug UI: {'enabled' if ENABLE_DEBUG_UI else 'disabled'}")
