"""
frontend/auth.py
Centralized authentication state management for the project tracker.

Authentication is delegated to an external identity provider (Supabase
GoTrue in staging/production, a single-user local provider in local dev).
This module wraps the provider behind one contract and keeps the session
in Streamlit session state so it survives reruns:

- AuthProvider: get_current_session(), on_session_change(), sign_in_with_password(),
  sign_out(), refresh_session()
- SessionGate: owns the session-change subscription for the lifetime of the
  authenticated shell and decides between the login surface and the shell
- init_auth_state() / is_authenticated() / get_current_user():
  small helpers over session state for the rest of the app

Session state keys written here:
- "auth_session": serialized Session dict or None
- "_auth_provider": the AuthProvider instance for this browser session
- "_session_gate": the SessionGate instance for this browser session
"""

import secrets
import time
import uuid
from typing import Any, Callable, Dict, MutableMapping, Optional

import jwt
import streamlit as st
from pydantic import BaseModel, Field

try:
    from frontend.config import (
        STORE_BACKEND, ENABLE_VERBOSE_LOGGING, REQUEST_TIMEOUT,
        LOCAL_AUTH_EMAIL, LOCAL_AUTH_PASSWORD,
    )
    from frontend.api_client import api_request, error_message
    from frontend.errors import AuthError, BackendError
except ModuleNotFoundError:
    from config import (
        STORE_BACKEND, ENABLE_VERBOSE_LOGGING, REQUEST_TIMEOUT,
        LOCAL_AUTH_EMAIL, LOCAL_AUTH_PASSWORD,
    )
    from api_client import api_request, error_message
    from errors import AuthError, BackendError


SESSION_KEY = "auth_session"
PROVIDER_KEY = "_auth_provider"
GATE_KEY = "_session_gate"

# Session-change events
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

# Treat tokens this close to expiry as expired
EXPIRY_LEEWAY_SECONDS = 30

SessionCallback = Callable[[str, Optional["Session"]], None]


def _state(session_state: Optional[MutableMapping]) -> MutableMapping:
    return st.session_state if session_state is None else session_state


# --------------------------------------------------------------------
# Session model
# --------------------------------------------------------------------


class Session(BaseModel):
    access_token: str
    refresh_token: str = ""
    expires_at: Optional[int] = Field(None, description="Access token expiry, epoch seconds")
    user: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_token_response(cls, data: Dict[str, Any]) -> "Session":
        """
        Build a session from a GoTrue token response.

        expires_at comes from the response when present, otherwise from the
        access token's `exp` claim, otherwise from expires_in.

        Raises:
            AuthError: response has no access_token
        """
        access_token = data.get("access_token")
        if not access_token:
            raise AuthError("Token response missing access_token")

        expires_at = data.get("expires_at") or token_expiry(access_token)
        if expires_at is None and data.get("expires_in"):
            expires_at = int(time.time()) + int(data["expires_in"])

        user = data.get("user") or {}
        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or "",
            expires_at=int(expires_at) if expires_at is not None else None,
            user={"id": user.get("id"), "email": user.get("email")},
        )

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return now >= self.expires_at - EXPIRY_LEEWAY_SECONDS

    @property
    def email(self) -> Optional[str]:
        return self.user.get("email")


def token_expiry(access_token: str) -> Optional[int]:
    """
    Read the `exp` claim of a JWT without verifying its signature.

    The identity provider is the authority on validity; the client only needs
    to know when to refresh.
    """
    try:
        claims = jwt.decode(access_token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    exp = claims.get("exp")
    return int(exp) if exp is not None else None


# --------------------------------------------------------------------
# Subscriptions + providers
# --------------------------------------------------------------------


class Subscription:
    """Handle returned by on_session_change(); unsubscribe() is idempotent."""

    def __init__(self, provider: "AuthProvider", listener_id: int):
        self._provider = provider
        self._listener_id = listener_id
        self.active = True

    def unsubscribe(self) -> None:
        self._provider._listeners.pop(self._listener_id, None)
        self.active = False


class AuthProvider:
    """
    Base provider: session persistence in session state plus listener bookkeeping.

    Subclasses implement the three grants against their identity backend:
    _password_grant(), _refresh_grant() and _revoke().
    """

    def __init__(self, storage: MutableMapping):
        self._storage = storage
        self._listeners: Dict[int, SessionCallback] = {}
        self._next_listener_id = 0

    # Storage -----------------------------------------------------------

    def _load(self) -> Optional[Session]:
        raw = self._storage.get(SESSION_KEY)
        if not raw:
            return None
        return Session.model_validate(raw)

    def _save(self, session: Session) -> None:
        self._storage[SESSION_KEY] = session.model_dump()

    def _clear(self) -> None:
        self._storage[SESSION_KEY] = None

    def _emit(self, event: str, session: Optional[Session]) -> None:
        if ENABLE_VERBOSE_LOGGING:
            print(f"[AUTH] {event} ({len(self._listeners)} listener(s))")
        for callback in list(self._listeners.values()):
            callback(event, session)

    # Contract ----------------------------------------------------------

    def on_session_change(self, callback: SessionCallback) -> Subscription:
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = callback
        return Subscription(self, listener_id)

    def listener_count(self) -> int:
        return len(self._listeners)

    def access_token(self) -> Optional[str]:
        session = self._load()
        return session.access_token if session else None

    def get_current_session(self) -> Optional[Session]:
        """
        Return the stored session, refreshing it once if the access token expired.

        A failed refresh clears the stored session and yields None.
        """
        session = self._load()
        if session is None or not session.is_expired():
            return session
        try:
            return self.refresh_session()
        except AuthError as e:
            print(f"[AUTH] Session refresh failed: {e}")
            return None

    def refresh_session(self) -> Optional[Session]:
        """
        Exchange the refresh token for a new session.

        Returns None when there is nothing to refresh.

        Raises:
            AuthError: the provider rejected the refresh (session cleared, SIGNED_OUT emitted)
        """
        session = self._load()
        if session is None or not session.refresh_token:
            return None
        try:
            new_session = self._refresh_grant(session.refresh_token)
        except AuthError:
            self._clear()
            self._emit(SIGNED_OUT, None)
            raise
        self._save(new_session)
        self._emit(TOKEN_REFRESHED, new_session)
        return new_session

    def sign_in_with_password(self, email: str, password: str) -> Session:
        if not email or not password:
            raise AuthError("Email and password are required")
        session = self._password_grant(email, password)
        self._save(session)
        self._emit(SIGNED_IN, session)
        return session

    def sign_out(self) -> None:
        """
        Sign out locally and at the provider.

        The local session is always cleared and SIGNED_OUT always emitted; a
        provider-side failure is raised afterwards.
        """
        session = self._load()
        failure: Optional[AuthError] = None
        if session is not None:
            try:
                self._revoke(session)
            except AuthError as e:
                failure = e
        self._clear()
        self._emit(SIGNED_OUT, None)
        if failure is not None:
            raise failure

    # Grants ------------------------------------------------------------

    def _password_grant(self, email: str, password: str) -> Session:
        raise NotImplementedError

    def _refresh_grant(self, refresh_token: str) -> Session:
        raise NotImplementedError

    def _revoke(self, session: Session) -> None:
        raise NotImplementedError


class SupabaseAuthProvider(AuthProvider):
    """GoTrue endpoints of the hosted Supabase project."""

    def __init__(self, storage: MutableMapping, timeout: int = REQUEST_TIMEOUT):
        super().__init__(storage)
        self.timeout = timeout

    def _token_request(self, grant_type: str, payload: Dict[str, Any]) -> Session:
        try:
            resp = api_request(
                "POST",
                "/auth/v1/token",
                json=payload,
                params={"grant_type": grant_type},
                timeout=self.timeout,
            )
        except BackendError as e:
            raise AuthError(str(e)) from e

        if resp.status_code != 200:
            raise AuthError(error_message(resp), status_code=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise AuthError("Invalid token response") from e
        return Session.from_token_response(data)

    def _password_grant(self, email: str, password: str) -> Session:
        return self._token_request("password", {"email": email, "password": password})

    def _refresh_grant(self, refresh_token: str) -> Session:
        return self._token_request("refresh_token", {"refresh_token": refresh_token})

    def _revoke(self, session: Session) -> None:
        try:
            resp = api_request(
                "POST", "/auth/v1/logout", access_token=session.access_token, timeout=self.timeout
            )
        except BackendError as e:
            raise AuthError(str(e)) from e
        # 401 means the token is already invalid, which is what we wanted
        if resp.status_code >= 400 and resp.status_code != 401:
            raise AuthError(error_message(resp), status_code=resp.status_code)


class LocalAuthProvider(AuthProvider):
    """
    Single-user provider for local development with the SQLite store.

    Issues short-lived HS256 tokens signed with a per-process secret.
    """

    ALGORITHM = "HS256"

    def __init__(
        self,
        storage: MutableMapping,
        email: str = LOCAL_AUTH_EMAIL,
        password: str = LOCAL_AUTH_PASSWORD,
        token_minutes: int = 60,
        secret: Optional[str] = None,
    ):
        super().__init__(storage)
        self.email = email
        self.password = password
        self.token_minutes = token_minutes
        self.secret = secret or secrets.token_hex(32)
        self.user_id = str(uuid.uuid5(uuid.NAMESPACE_DNS, email))
        # Only the most recently issued refresh token is accepted
        self._refresh_token: Optional[str] = None

    def _issue(self) -> Session:
        now = int(time.time())
        expires_at = now + self.token_minutes * 60
        self._refresh_token = secrets.token_urlsafe(24)
        access_token = jwt.encode(
            {"sub": self.user_id, "email": self.email, "iat": now, "exp": expires_at},
            self.secret,
            algorithm=self.ALGORITHM,
        )
        return Session(
            access_token=access_token,
            refresh_token=self._refresh_token,
            expires_at=expires_at,
            user={"id": self.user_id, "email": self.email},
        )

    def _password_grant(self, email: str, password: str) -> Session:
        if email.strip().lower() != self.email.lower() or password != self.password:
            raise AuthError("Invalid login credentials", status_code=400)
        return self._issue()

    def _refresh_grant(self, refresh_token: str) -> Session:
        if self._refresh_token is None or refresh_token != self._refresh_token:
            raise AuthError("Invalid refresh token", status_code=400)
        return self._issue()

    def _revoke(self, session: Session) -> None:
        self._refresh_token = None


# --------------------------------------------------------------------
# Session gate
# --------------------------------------------------------------------


class SessionGate:
    """
    Top-level owner of the session and of the session-change subscription.

    mount() subscribes (once) and queries the provider; unmount() releases
    the subscription when the authenticated shell is torn down.
    """

    def __init__(self, provider: AuthProvider):
        self.provider = provider
        self.session: Optional[Session] = None
        self.last_event: Optional[str] = None
        self._subscription: Optional[Subscription] = None

    @property
    def is_mounted(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    def mount(self) -> Optional[Session]:
        if not self.is_mounted:
            self._subscription = self.provider.on_session_change(self._on_session_change)
        return self.check()

    def check(self) -> Optional[Session]:
        """Query the provider again; a failed query means no session."""
        try:
            self.session = self.provider.get_current_session()
        except AuthError as e:
            print(f"[AUTH] Session query failed, treating as signed out: {e}")
            self.session = None
        return self.session

    def unmount(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def render(self, render_login: Callable[[], Any], render_shell: Callable[[Session], Any]) -> Any:
        if self.session is None:
            return render_login()
        return render_shell(self.session)

    def _on_session_change(self, event: str, session: Optional[Session]) -> None:
        self.last_event = event
        self.session = session


# --------------------------------------------------------------------
# Session-state helpers
# --------------------------------------------------------------------


def init_auth_state(session_state: Optional[MutableMapping] = None) -> None:
    """
    Initialize authentication-related session state keys.

    MUST be called at the top of main() so the keys exist on every rerun.
    Idempotent.
    """
    ss = _state(session_state)
    ss.setdefault(SESSION_KEY, None)


def get_auth_provider(session_state: Optional[MutableMapping] = None) -> AuthProvider:
    """Return this browser session's provider, creating it on first use."""
    ss = _state(session_state)
    provider = ss.get(PROVIDER_KEY)
    if provider is None:
        if STORE_BACKEND == "sqlite":
            provider = LocalAuthProvider(ss)
        else:
            provider = SupabaseAuthProvider(ss)
        ss[PROVIDER_KEY] = provider
    return provider


def get_session_gate(session_state: Optional[MutableMapping] = None) -> SessionGate:
    """Return the mounted gate for this browser session, mounting it on first use."""
    ss = _state(session_state)
    gate = ss.get(GATE_KEY)
    if gate is None:
        gate = SessionGate(get_auth_provider(ss))
        gate.mount()
        ss[GATE_KEY] = gate
    return gate


def teardown_session_gate(session_state: Optional[MutableMapping] = None) -> None:
    """Release the gate's subscription and drop it; the next run mounts a fresh one."""
    ss = _state(session_state)
    gate = ss.pop(GATE_KEY, None)
    if gate is not None:
        gate.unmount()


def is_authenticated(session_state: Optional[MutableMapping] = None) -> bool:
    return bool(_state(session_state).get(SESSION_KEY))


def get_current_user(session_state: Optional[MutableMapping] = None) -> Optional[Dict[str, Any]]:
    """
    Get current user dict ({"id", "email"}) from session state.

    Returns:
        User dict if authenticated, None otherwise
    """
    raw = _state(session_state).get(SESSION_KEY)
    if not raw:
        return None
    return raw.get("user")
