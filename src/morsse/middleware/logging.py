"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One log line per request, on the "morsse.access" logger:

    text:  127.0.0.1 - 1 [19/Oct/2026:12:00:00 +0000] "POST /login" 200 57 3.12ms
                       │
                       └── session userId, "-" when anonymous

    json:  {"request_id": "a1b2c3d4", "method": "POST", "path": "/login",
            "status_code": 200, "user_id": 1, ...}

Every response also gets an X-Request-ID header so a user reporting a
problem can quote the id that appears in the log.

Session tokens never appear in access logs; only the userId a controller
stored in the session does.
=============================================================================
"""

import time
import json
import uuid
import logging
from typing import Any, Dict, Optional
from dataclasses import dataclass, asdict

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import Response


logger = logging.getLogger("morsse.access")


@dataclass
class RequestLog:
    """Structured access log entry."""

    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    user_id: Optional[Any]
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        """Apache-style line with the session user in the "remote user" slot."""
        user = "-" if self.user_id is None else self.user_id
        return (
            f'{self.client_ip} - {user} [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Add it first so it times the full request and sees requests that other
    middleware short-circuit:

        server.use(LoggingMiddleware(log_format="json"))

    Args:
        log_format: "text" or "json".
        include_request_id: Add the X-Request-ID response header.
        log_level: Level of the access log records.
        skip_paths: Paths that are not logged (e.g. "/favicon.ico").
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[list[str]] = None,
    ):
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def __call__(self, request: HTTPRequest, response: Response, next: NextHandler) -> None:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        # Headers set after next() would miss responses the server
        # finishes on the handler's behalf
        if self.include_request_id:
            response.set_header("X-Request-ID", request_id)

        try:
            next(request, response)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"[{request_id}] Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        if request.path in self.skip_paths:
            return

        log_entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            query=str(request.query_params) if request.query_params else "",
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            user_id=request.session.data.get("userId") if request.has_session else None,
            status_code=int(response.status) if response.status is not None else 0,
            content_length=response.content_length,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(log_entry.to_dict(), default=str))
        else:
            logger.log(self.log_level, log_entry.to_text())
