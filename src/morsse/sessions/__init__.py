"""
Cookie-backed, server-side sessions.

    Session         one browser's server-side state + the cookie carrying its token
    SessionManager  thread-safe token → Session registry with lazy expiry
"""

from .session import Session
from .manager import SessionManager, DEFAULT_COOKIE_NAME, DEFAULT_TTL

__all__ = [
    "Session",
    "SessionManager",
    "DEFAULT_COOKIE_NAME",
    "DEFAULT_TTL",
]
