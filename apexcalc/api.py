"""Single-argument call surface backed by a process-wide default session."""

from __future__ import annotations

import atexit

from .session.config import SessionConfig
from .session.manager import CoprocessSession

_default_session: CoprocessSession | None = None


def get_default_session() -> CoprocessSession:
    """Return the shared session, creating it from the environment on first use."""
    global _default_session
    if _default_session is None:
        _default_session = CoprocessSession(session_id="default", config=SessionConfig.from_env())
        atexit.register(_default_session.teardown)
    return _default_session


def apex(expression: str) -> str:
    """Evaluate ``expression`` in the default session.

    Pass ``"close"`` to stop the worker; the next call starts a new one.
    """
    return get_default_session().evaluate(expression)
