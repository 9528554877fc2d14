"""
Server-side session record.

A Session is the state the server keeps for one browser: who is logged in
(``data["userId"]``), display preferences (``data["darkmode"]``), and so on.
The browser only ever holds the opaque token, carried by ``session.cookie``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TYPE_CHECKING
import time

from ..http.cookies import Cookie

if TYPE_CHECKING:
    from .manager import SessionManager


@dataclass(eq=False)
class Session:
    """
    One server-side session.

    Sessions compare by identity: two lookups of the same token return the
    very same object, and the registry never holds two Sessions for one
    token.

    Attributes:
        token:      Opaque, unguessable identifier (also the cookie value)
        cookie:     The cookie that carries the token to the browser
        created_at: Creation time, epoch seconds
        expires_at: Absolute server-side expiry, epoch seconds
        data:       Application state; plain scalars only
        is_new:     True until a later request presents this token again
    """

    token: str
    cookie: Cookie
    created_at: float
    expires_at: float
    data: Dict[str, Any] = field(default_factory=dict)
    is_new: bool = True

    _manager: Optional["SessionManager"] = field(default=None, repr=False)
    _destroyed: bool = field(default=False, repr=False)

    def __post_init__(self):
        if self.cookie.value != self.token:
            raise ValueError("Session cookie must carry the session token")

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Expired sessions are treated exactly like missing ones."""
        return (time.time() if now is None else now) >= self.expires_at

    @property
    def is_destroyed(self) -> bool:
        """True once the session has left its manager's registry."""
        return self._destroyed

    @property
    def is_live(self) -> bool:
        return not self._destroyed and not self.is_expired(
            self._manager.now() if self._manager else None
        )

    def destroy(self) -> None:
        """
        End this session (logout, account deletion).

        Removes the token from the registry and expires the cookie in
        place. The caller still has to queue ``session.cookie`` on the
        response so the browser drops it:

            session.destroy()
            res.set_cookie(session.cookie)

        The data stays readable on this object; later requests presenting
        the old token get a fresh, empty session.
        """
        if self._manager is not None:
            self._manager.destroy(self)
        else:
            self._destroyed = True

        self.cookie.set_expires()
