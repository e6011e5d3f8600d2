"""
StackRail - Session Manager

Keeps the local session file coherent with whatever the identity
backend last asserted. The CLI is short-lived, so the file is the
only carrier of a login between invocations:

- Absent      -> "no saved session", no backend call
- Valid       -> backend accepts it unchanged, nothing written
- Refreshed   -> backend rotated the access token, file rewritten
- Invalid     -> backend rejects it (or blows up), file deleted
- Logged out  -> file deleted unconditionally

Expected failures never raise past this class: callers get a bool
and the diagnostics are already on the console.
"""
from typing import Any, Dict, Optional

from rich.console import Console
from supabase import AuthError

from ..storage.local_store import LocalStateStore
from ..utils import logging as sr_log
from .types import StoreErrorKind, StoreResult

NO_SESSION_MESSAGE = "No saved session found. Please login: `stackrail login`"
INVALID_SESSION_MESSAGE = "Saved session is invalid or expired. Please login: `stackrail login`"


def session_to_dict(session: Any) -> Optional[Dict[str, Any]]:
    """Plain JSON-ready dict for a session (SDK pydantic model or dict)."""
    if session is None:
        return None
    if isinstance(session, dict):
        return dict(session)
    if hasattr(session, "model_dump"):
        return session.model_dump(mode="json")
    return dict(vars(session))


def describe_error(exc: BaseException) -> str:
    """Backend message for an SDK exception, falling back to str()."""
    return getattr(exc, "message", None) or str(exc) or exc.__class__.__name__


class SessionManager:
    """
    Owns the single persisted session slot.

    The backend client is injected so tests can hand in a fake;
    only `client.auth.set_session` is used here.
    """

    def __init__(self, client: Any, store: LocalStateStore, console: Console, debug: bool = False):
        self.client = client
        self.store = store
        self.console = console
        self.debug = debug

    # ─── Persistence ──────────────────────────────────────────────────────

    def load_session(self) -> Optional[Dict[str, Any]]:
        return self.store.load_session()

    def save_session_result(self, session: Any) -> StoreResult:
        """Write the session wholesale and report exactly what went wrong, if anything."""
        data = session_to_dict(session)
        if data is None:
            return StoreResult.failure(StoreErrorKind.NOT_FOUND, "No session to save")
        return self.store.write_session(data)

    def save_session(self, session: Any) -> bool:
        result = self.save_session_result(session)
        if not result.ok:
            sr_log.print_debug(self.console, f"session write failed ({result.kind.value}): {result.detail}",
                               self.debug)
        return result.ok

    def clear_session(self) -> bool:
        """Delete the session file. Already gone counts as success."""
        result = self.store.delete_session()
        return result.ok or result.kind == StoreErrorKind.NOT_FOUND

    def _discard_session(self):
        """Best-effort removal of a session the backend no longer honours."""
        result = self.store.delete_session()
        if not result.ok and result.kind != StoreErrorKind.NOT_FOUND:
            sr_log.print_debug(self.console, f"could not delete session file: {result.detail}", self.debug)

    # ─── Authentication ───────────────────────────────────────────────────

    async def authenticate_session(self) -> bool:
        """
        Restore the saved session on the backend client.

        Returns True when the client is authenticated. On any rejection
        or unexpected error the local session is deleted and False is
        returned, so there is never a half-valid state on disk.
        """
        saved = self.load_session()
        if saved is None:
            sr_log.print_error(self.console, NO_SESSION_MESSAGE)
            return False

        access_token = saved.get("access_token")
        refresh_token = saved.get("refresh_token")
        if not access_token or not refresh_token:
            self._discard_session()
            sr_log.print_warning(self.console, INVALID_SESSION_MESSAGE)
            return False

        try:
            response = await self.client.auth.set_session(access_token, refresh_token)
        except AuthError as e:
            self._discard_session()
            sr_log.print_debug(self.console, f"set_session rejected: {describe_error(e)}", self.debug)
            sr_log.print_warning(self.console, INVALID_SESSION_MESSAGE)
            return False
        except Exception as e:
            self._discard_session()
            sr_log.print_error(self.console, f"Unexpected error during session setup: {describe_error(e)}")
            return False

        session = session_to_dict(getattr(response, "session", None))
        if not session:
            self._discard_session()
            sr_log.print_warning(self.console, INVALID_SESSION_MESSAGE)
            return False

        if session.get("access_token") != access_token:
            sr_log.print_debug(self.console, "access token rotated, saving refreshed session", self.debug)
            if not self.save_session(session):
                sr_log.print_warning(self.console, "Could not save the refreshed session; you may need to login again.")
        return True
