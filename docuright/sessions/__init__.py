"""Authenticated session lifecycle."""

from docuright.sessions.manager import TokenLifecycleManager
from docuright.sessions.models import (
    Credentials,
    Profile,
    Session,
    SessionState,
    SessionView,
    User,
)

__all__ = [
    "Credentials",
    "Profile",
    "Session",
    "SessionState",
    "SessionView",
    "TokenLifecycleManager",
    "User",
]
