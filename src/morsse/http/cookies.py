"""
=============================================================================
HTTP COOKIES
=============================================================================

One cookie, both directions of the wire:

    Browser ──► server    Cookie: session_id=3Fq...; email=a@b.c
                          ────────────────────────────────────────
                          Cookie.parse(header) → [Cookie, Cookie]

    Server ──► browser    Set-Cookie: email=a@b.c; Max-Age=2592000;
                                      Expires=Sat, 18 Nov 2026 ...; Path=/
                          ────────────────────────────────────────
                          cookie.serialize()

=============================================================================
LIFETIME RULES
=============================================================================

    max_age_ms > 0           Persistent cookie. Emits Max-Age (seconds,
                             floor-divided) and Expires (now + max_age_ms).

    max_age_ms == 0          Session-lifetime cookie. No Max-Age/Expires;
                             the browser drops it when it closes.

    set_expires() called     "Delete me". Emits Expires at the epoch and
                             Max-Age=0 so the browser removes it at once.

set_expires() is the only mutation a cookie exposes. Controllers typically
read a flash cookie ("registered", "unauthorized"), expire it in place and
queue it on the response so it is shown exactly once.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import time

from .dates import EPOCH, EPOCH_HTTP_DATE, format_http_date


# Characters that may never appear in a cookie name or value on the wire.
_NAME_FORBIDDEN = set(" \t\r\n;,=")
_VALUE_FORBIDDEN = set("\r\n;")


@dataclass
class Cookie:
    """
    A single HTTP cookie.

    Attributes:
        name:       Cookie name ("session_id", "email", ...)
        value:      Cookie value, transmitted as-is
        max_age_ms: Lifetime in milliseconds; 0 = session-lifetime cookie
        path:       Path attribute; "/" so every route sees the cookie
        http_only:  Hide from JavaScript (session cookies set this)
        same_site:  SameSite attribute ("Lax", "Strict", "None") or None
        secure:     Only send over HTTPS
    """

    name: str
    value: str
    max_age_ms: int = 0
    path: Optional[str] = "/"
    http_only: bool = False
    same_site: Optional[str] = None
    secure: bool = False

    _expired: bool = field(default=False, repr=False)

    def __post_init__(self):
        if not self.name or any(ch in _NAME_FORBIDDEN for ch in self.name):
            raise ValueError(f"Invalid cookie name: {self.name!r}")

        self.value = str(self.value)
        if any(ch in _VALUE_FORBIDDEN for ch in self.value):
            raise ValueError(f"Invalid value for cookie {self.name!r}")

        if self.max_age_ms < 0:
            raise ValueError("max_age_ms must be >= 0")

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def expired(self) -> bool:
        """True once set_expires() has been called."""
        return self._expired

    def set_expires(self) -> "Cookie":
        """
        Turn this cookie into a deletion marker, in place.

        Any lifetime it had is dropped; serialize() will now emit an
        Expires date at the epoch. Returns self so the call can be chained
        into response.set_cookie().
        """
        self.max_age_ms = 0
        self._expired = True
        return self

    def expires_at(self, now: Optional[float] = None) -> Optional[datetime]:
        """
        Absolute expiry of this cookie as seen by the browser.

        Args:
            now: Reference time (epoch seconds). Defaults to time.time().

        Returns:
            The epoch for expired cookies, now + max_age_ms for persistent
            cookies, None for session-lifetime cookies.
        """
        if self._expired:
            return EPOCH

        if self.max_age_ms > 0:
            base = datetime.fromtimestamp(
                time.time() if now is None else now, tz=timezone.utc
            )
            return base + timedelta(milliseconds=self.max_age_ms)

        return None

    # =========================================================================
    # WIRE FORMAT
    # =========================================================================

    def serialize(self, now: Optional[float] = None) -> str:
        """
        Render the value of a Set-Cookie header.

        Example:
            Cookie("email", "a@b.c", 2592000000).serialize()
            → "email=a@b.c; Max-Age=2592000; Expires=...; Path=/"
        """
        parts = [f"{self.name}={self.value}"]

        if self._expired:
            parts.append(f"Expires={EPOCH_HTTP_DATE}")
            parts.append("Max-Age=0")
        elif self.max_age_ms > 0:
            parts.append(f"Max-Age={self.max_age_ms // 1000}")
            parts.append(f"Expires={format_http_date(self.expires_at(now))}")

        if self.path:
            parts.append(f"Path={self.path}")
        if self.secure:
            parts.append("Secure")
        if self.http_only:
            parts.append("HttpOnly")
        if self.same_site:
            parts.append(f"SameSite={self.same_site}")

        return "; ".join(parts)

    @classmethod
    def parse(cls, header: Optional[str]) -> List["Cookie"]:
        """
        Parse a Cookie request header into Cookie objects.

        =====================================================================
        LENIENT PARSING
        =====================================================================

            "a=1; b=x=y;junk; =2;  c = 3 "
              │     │     │    │     │
              │     │     │    │     └── c="3"   (whitespace trimmed)
              │     │     │    └──────── skipped (empty name)
              │     │     └───────────── skipped (no "=")
              │     └─────────────────── b="x=y" (split on FIRST "=")
              └───────────────────────── a="1"

        Malformed fragments are dropped, never raised.
        =====================================================================
        """
        cookies: List[Cookie] = []
        if not header:
            return cookies

        for pair in header.split(";"):
            pair = pair.strip()
            if "=" not in pair:
                continue

            name, _, value = pair.partition("=")
            name = name.strip()
            value = value.strip()

            # RFC 6265 allows the value to be wrapped in double quotes
            if len(value) >= 2 and value[0] == value[-1] == '"':
                value = value[1:-1]

            try:
                cookies.append(cls(name, value))
            except ValueError:
                continue

        return cookies
