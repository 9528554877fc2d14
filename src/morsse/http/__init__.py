"""
=============================================================================
HTTP LAYER
=============================================================================

Everything between raw request bytes and a handler call:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │   bytes ──► RequestParser ──► HTTPRequest ──► Router.handle()       │
    │                                   │                 │               │
    │                         cookies, body, session      ▼               │
    │                                              handler(req, res)      │
    │                                                     │               │
    │   bytes ◄── HTTPResponse.to_bytes() ◄── Response.build()            │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

Modules:
    cookies.py       Cookie header parsing, Set-Cookie serialization
    request.py       HTTPRequest, SearchParams, RequestParser
    response.py      Response (send-once), SendOptions, HTTPResponse
    router.py        Router with :param patterns and ambiguity checks
    status_codes.py  HTTPStatus
    dates.py         HTTP-date formatting
=============================================================================
"""

from .cookies import Cookie
from .dates import format_http_date, EPOCH_HTTP_DATE
from .request import HTTPRequest, RequestParser, HTTPParseError, SearchParams, parse_request
from .response import (
    HTTPResponse,
    Response,
    ResponseAlreadySentError,
    ResponseBuilder,
    SendOptions,
    send_error,
)
from .router import Router, Route, RouteMatch, RouteAmbiguity, Segment
from .status_codes import HTTPStatus


__all__ = [
    # Cookies
    "Cookie",
    "format_http_date",
    "EPOCH_HTTP_DATE",

    # Request
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "SearchParams",
    "parse_request",

    # Response
    "HTTPResponse",
    "Response",
    "ResponseAlreadySentError",
    "ResponseBuilder",
    "SendOptions",
    "send_error",

    # Routing
    "Router",
    "Route",
    "RouteMatch",
    "RouteAmbiguity",
    "Segment",

    # Status codes
    "HTTPStatus",
]
