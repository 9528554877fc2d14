"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes the web core transmits, with their reason phrases.

Handlers choose the status; the core only has to carry it to the wire. The
set below covers what the lesson/registration/login controllers use plus
the codes the transport layer emits on its own (timeouts, overload,
malformed requests).

    ┌────────┬─────────────────────────────────────────────────────────────┐
    │  2xx   │ 200 OK, 201 Created, 204 No Content                         │
    │  3xx   │ 302 Found, 303 See Other (redirect after a form POST)       │
    │  4xx   │ 400, 401, 403, 404, 408, 413                                │
    │  5xx   │ 500, 503, 505                                               │
    └────────┴─────────────────────────────────────────────────────────────┘

Handlers may pass plain integers; HTTPStatus.of() turns them into members
so the status line always gets a reason phrase.
=============================================================================
"""

from enum import IntEnum
from typing import Union


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so members compare equal to their integer value:

        >>> HTTPStatus.CREATED == 201
        True
        >>> HTTPStatus.CREATED.phrase
        'Created'
    """

    # 1xx
    CONTINUE = 100

    # 2xx
    OK = 200
    CREATED = 201
    ACCEPTED = 202
    NO_CONTENT = 204

    # 3xx
    MOVED_PERMANENTLY = 301
    FOUND = 302
    SEE_OTHER = 303
    NOT_MODIFIED = 304
    TEMPORARY_REDIRECT = 307
    PERMANENT_REDIRECT = 308

    # 4xx
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    CONFLICT = 409
    PAYLOAD_TOO_LARGE = 413
    UNPROCESSABLE_ENTITY = 422
    TOO_MANY_REQUESTS = 429

    # 5xx
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    @classmethod
    def of(cls, code: Union[int, "HTTPStatus"]) -> "HTTPStatus":
        """
        Coerce an integer status code into an HTTPStatus member.

        Raises:
            ValueError: If the code is not a known status.
        """
        if isinstance(code, cls):
            return code
        return cls(int(code))

    @property
    def phrase(self) -> str:
        """
        Reason phrase for the status line.

            HTTP/1.1 303 See Other
                     ─── ─────────
                      │      └── phrase
                      └───────── status code
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_informational(self) -> bool:
        return 100 <= self < 200

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300

    @property
    def is_redirect(self) -> bool:
        """True for 3xx codes that carry a Location (304 does not)."""
        return 300 <= self < 400 and self != HTTPStatus.NOT_MODIFIED

    @property
    def is_client_error(self) -> bool:
        return 400 <= self < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self < 600

    @property
    def is_error(self) -> bool:
        return self >= 400


_STATUS_PHRASES = {
    HTTPStatus.CONTINUE: "Continue",

    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.ACCEPTED: "Accepted",
    HTTPStatus.NO_CONTENT: "No Content",

    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.SEE_OTHER: "See Other",
    HTTPStatus.NOT_MODIFIED: "Not Modified",
    HTTPStatus.TEMPORARY_REDIRECT: "Temporary Redirect",
    HTTPStatus.PERMANENT_REDIRECT: "Permanent Redirect",

    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.UNAUTHORIZED: "Unauthorized",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.CONFLICT: "Conflict",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.UNPROCESSABLE_ENTITY: "Unprocessable Entity",
    HTTPStatus.TOO_MANY_REQUESTS: "Too Many Requests",

    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}


def reason_phrase(code: Union[int, HTTPStatus]) -> str:
    """Reason phrase for any integer code; "Unknown" for codes not listed above."""
    try:
        return HTTPStatus.of(code).phrase
    except ValueError:
        return "Unknown"


def is_redirect_code(code: Union[int, HTTPStatus]) -> bool:
    return 300 <= int(code) < 400 and int(code) != HTTPStatus.NOT_MODIFIED
