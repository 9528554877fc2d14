"""
=============================================================================
SESSION MANAGER
=============================================================================

Process-wide registry of live sessions, keyed by token.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     get_or_create(request cookies)                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   session_id cookie present?                                        │
    │        │                                                            │
    │        ├── no ──────────────────────────────────► create()          │
    │        │                                                            │
    │        └── yes → token in registry?                                 │
    │                     │                                               │
    │                     ├── no (forged, destroyed) ─► create()          │
    │                     │                                               │
    │                     └── yes → now >= expires_at?                    │
    │                                  │                                  │
    │                                  ├── yes → evict ─► create()        │
    │                                  │                                  │
    │                                  └── no ──────────► same Session    │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

An unknown or forged token is never an error: the request simply becomes
anonymous. Authorization is the controllers' job (they check
``session.data["userId"]``); this is bookkeeping, not authentication.

=============================================================================
CONCURRENCY
=============================================================================

Worker threads look up, create and destroy sessions at the same time. One
re-entrant lock guards the token → Session mapping; every read and write of
the mapping happens under it. Sessions are tiny and operations are O(1),
so contention is not a concern.

Expired entries are evicted lazily on lookup. Sessions that are never looked
up again (first visits from bots and one-off clients) are reclaimed by
create(), which sweeps the registry at most once per ttl. sweep() removes
them in bulk on demand and start_sweeper() runs it on a daemon thread.

=============================================================================
"""

import logging
import secrets
import threading
import time
from typing import Callable, Dict, Iterable, Optional

from ..http.cookies import Cookie
from .session import Session


logger = logging.getLogger(__name__)

DEFAULT_COOKIE_NAME = "session_id"
DEFAULT_TTL = 24 * 60 * 60  # seconds


class SessionManager:
    """
    Token → Session registry with lazy expiry.

    Construct one per server and hand it to every request; tests build a
    fresh one each time.

    Usage:
        sessions = SessionManager(ttl=3600)

        session = sessions.get_or_create(request.cookies)
        session.data["userId"] = 1
        response.set_cookie(session.cookie)
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        cookie_name: str = DEFAULT_COOKIE_NAME,
        clock: Callable[[], float] = time.time,
        token_bytes: int = 32,
    ):
        """
        Args:
            ttl: Server-side lifetime of a session in seconds.
            cookie_name: Name of the cookie that carries the token.
            clock: Source of "now" in epoch seconds (tests inject a fake).
            token_bytes: Random bytes per token; at least 16 (128 bits).
        """
        if ttl <= 0:
            raise ValueError("Session ttl must be > 0")
        if token_bytes < 16:
            raise ValueError("Session tokens need at least 128 bits of entropy")

        self.ttl = ttl
        self.cookie_name = cookie_name
        self.token_bytes = token_bytes
        self._clock = clock

        self._sessions: Dict[str, Session] = {}
        self._lock = threading.RLock()
        self._last_sweep = clock()

        self._sweeper: Optional[threading.Thread] = None
        self._sweeper_stop = threading.Event()

    def now(self) -> float:
        return self._clock()

    # =========================================================================
    # LOOKUP / CREATION
    # =========================================================================

    def get_or_create(self, cookies: Iterable[Cookie]) -> Session:
        """
        Resolve the session for a request.

        Every cookie named ``cookie_name`` is tried in order (browsers can
        send duplicates for different paths); the first live one wins.
        Otherwise a brand-new empty session is created.
        """
        for cookie in cookies:
            if cookie.name != self.cookie_name:
                continue
            session = self.get(cookie.value)
            if session is not None:
                return session

        return self.create()

    def get(self, token: str) -> Optional[Session]:
        """
        Look up a live session by token.

        Returns None for unknown tokens and for expired sessions, which are
        evicted on the spot.
        """
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None

            if session.is_expired(self.now()):
                self._remove(session)
                logger.debug(f"Session {token[:6]}... expired, evicted")
                return None

            # The browser sent it back, so it is no longer new
            session.is_new = False
            return session

    def create(self) -> Session:
        """Create, register and return a new empty session."""
        now = self.now()

        with self._lock:
            if now - self._last_sweep >= self.ttl:
                self._sweep_expired(now)

            token = secrets.token_urlsafe(self.token_bytes)
            while token in self._sessions:
                token = secrets.token_urlsafe(self.token_bytes)

            session = Session(
                token=token,
                cookie=self._make_cookie(token),
                created_at=now,
                expires_at=now + self.ttl,
                _manager=self,
            )
            self._sessions[token] = session

        logger.debug(f"Session {token[:6]}... created")
        return session

    def _make_cookie(self, token: str) -> Cookie:
        return Cookie(
            self.cookie_name,
            token,
            http_only=True,
            same_site="Lax",
        )

    # =========================================================================
    # DESTRUCTION
    # =========================================================================

    def destroy(self, session: Session) -> None:
        """
        Remove a session from the registry.

        The object stays readable for whoever still holds it, but its token
        no longer resolves. Safe to call twice.
        """
        with self._lock:
            self._remove(session)

        logger.debug(f"Session {session.token[:6]}... destroyed")

    def _remove(self, session: Session) -> None:
        # Caller holds the lock
        if self._sessions.get(session.token) is session:
            del self._sessions[session.token]
        session._destroyed = True

    def sweep(self) -> int:
        """
        Evict every expired session now.

        Returns:
            Number of sessions removed.
        """
        with self._lock:
            return self._sweep_expired(self.now())

    def _sweep_expired(self, now: float) -> int:
        # Caller holds the lock
        expired = [s for s in self._sessions.values() if s.is_expired(now)]
        for session in expired:
            self._remove(session)
        self._last_sweep = now

        if expired:
            logger.debug(f"Swept {len(expired)} expired sessions")
        return len(expired)

    # =========================================================================
    # BACKGROUND SWEEP
    # =========================================================================

    def start_sweeper(self, interval: float) -> None:
        """Run sweep() every ``interval`` seconds on a daemon thread."""
        if self._sweeper is not None:
            return

        self._sweeper_stop.clear()

        def run():
            while not self._sweeper_stop.wait(interval):
                self.sweep()

        self._sweeper = threading.Thread(target=run, name="SessionSweeper", daemon=True)
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper_stop.set()
        self._sweeper.join(timeout=2.0)
        self._sweeper = None

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._sessions
