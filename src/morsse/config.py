"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

One dataclass holds every knob of the server: network, HTTP, worker pool,
logging and sessions.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION SOURCES                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   Priority (highest to lowest):                                     │
    │                                                                     │
    │   1. Command-line arguments                                         │
    │      └── python -m morsse --port 3000 --session-ttl 3600            │
    │                                                                     │
    │   2. Environment variables                                          │
    │      └── MORSSE_PORT=3000 python -m morsse                          │
    │                                                                     │
    │   3. Defaults (in this dataclass)                                   │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

Configuration is validated once at startup. A bad value stops the server
before it binds a socket.
=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional

from .sessions import DEFAULT_COOKIE_NAME, DEFAULT_TTL


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK     host, port, backlog, buffer_size, timeout
    HTTP        keep_alive, keep_alive_timeout, max_request_size
    THREADING   min_workers, max_workers
    LOGGING     log_level, log_format
    SESSIONS    session_cookie_name, session_ttl, session_sweep_interval,
                eager_sessions

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """"127.0.0.1" for local development, "0.0.0.0" in a container."""

    port: int = 8080

    backlog: int = 128
    """Maximum number of connections waiting in the accept queue."""

    buffer_size: int = 8192
    """Bytes per recv() call."""

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds. None blocks forever."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True

    keep_alive_timeout: float = 5.0
    """Idle seconds before a keep-alive connection is closed."""

    max_request_size: int = 10 * 1024 * 1024  # 10 MB

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"

    log_format: str = "text"
    """'text' (Apache-like access lines) or 'json' (one object per line)."""

    # ─────────────────────────────────────────────────────────────────────
    # SESSIONS
    # ─────────────────────────────────────────────────────────────────────

    session_cookie_name: str = DEFAULT_COOKIE_NAME

    session_ttl: float = DEFAULT_TTL
    """Server-side lifetime of a session in seconds."""

    session_sweep_interval: float = 0
    """
    Seconds between bulk evictions of expired sessions. 0 disables the
    sweeper; expired sessions are still evicted when looked up.
    """

    eager_sessions: bool = True
    """
    Resolve a session for every request, so a first visit to any page
    leaves a session cookie in the browser.
    """

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "morsse/1.0"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        MORSSE_HOST            Server host (default: 127.0.0.1)
        MORSSE_PORT            Server port (default: 8080)
        MORSSE_WORKERS         Max worker threads (default: 16)
        MORSSE_TIMEOUT         Socket timeout in seconds (default: 30)
        MORSSE_LOG_LEVEL       Logging level (default: INFO)
        MORSSE_SESSION_TTL     Session lifetime in seconds (default: 86400)
        MORSSE_SESSION_COOKIE  Session cookie name (default: session_id)

        =====================================================================
        """
        workers = int(os.getenv("MORSSE_WORKERS", "16"))

        return cls(
            host=os.getenv("MORSSE_HOST", "127.0.0.1"),
            port=int(os.getenv("MORSSE_PORT", "8080")),
            min_workers=min(4, workers),
            max_workers=workers,
            timeout=float(os.getenv("MORSSE_TIMEOUT", "30")),
            log_level=os.getenv("MORSSE_LOG_LEVEL", "INFO").upper(),
            session_ttl=float(os.getenv("MORSSE_SESSION_TTL", str(DEFAULT_TTL))),
            session_cookie_name=os.getenv("MORSSE_SESSION_COOKIE", DEFAULT_COOKIE_NAME),
        )

    def validate(self) -> None:
        """
        Fail fast on values the server cannot run with.

        Raises:
            ValueError: Describing the first invalid setting.
        """
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 1-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {LOG_FORMATS}")

        if not self.session_cookie_name.strip():
            raise ValueError("session_cookie_name must not be empty")

        if self.session_ttl <= 0:
            raise ValueError("session_ttl must be > 0")

        if self.session_sweep_interval < 0:
            raise ValueError("session_sweep_interval must be >= 0")
