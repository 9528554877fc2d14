"""
=============================================================================
HTTP RESPONSE
=============================================================================

Two layers:

    Response        What a controller writes to. One send() per request,
                    any number of set_cookie() calls.

    HTTPResponse    The wire form: status line, headers, Set-Cookie lines
                    and body bytes, produced by Response.build() and
                    serialized with to_bytes().

=============================================================================
WHAT send() EMITS
=============================================================================

    ┌──────────────────────┬──────────────────────────────────────────────┐
    │ options              │ browser client          │ JSON client        │
    ├──────────────────────┼─────────────────────────┼────────────────────┤
    │ redirect="/login"    │ 3xx + Location, no body │                    │
    │ template="LoginView" │ renderer(template, ctx) │ {"message": ...,   │
    │ neither              │ payload as JSON         │  "payload": ...}   │
    │                      │                         │ with status_code   │
    └──────────────────────┴─────────────────────────┴────────────────────┘

A JSON client (see HTTPRequest.wants_json) never gets redirected or handed
HTML; it sees the real status code, so an API caller can tell a 201 from
a 400 without following Location headers.

=============================================================================
SET-COOKIE ORDER
=============================================================================

    res.set_cookie(registered.set_expires())   ──►  Set-Cookie: registered=...
    res.set_cookie(email_cookie)               ──►  Set-Cookie: email=...
    res.set_cookie(session.cookie)             ──►  Set-Cookie: session_id=...

One header line per queued cookie, in queue order. Cookies are serialized
at build() time, so a cookie expired after it was queued goes out expired.

=============================================================================
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union, TYPE_CHECKING
import json
import logging

from .cookies import Cookie
from .dates import format_http_date
from .status_codes import HTTPStatus, is_redirect_code, reason_phrase

if TYPE_CHECKING:
    from ..rendering import Renderer
    from .request import HTTPRequest


logger = logging.getLogger(__name__)

SERVER_NAME = "morsse/1.0"

ERROR_TEMPLATE = "ErrorView"

StatusLike = Union[HTTPStatus, int]


class ResponseAlreadySentError(RuntimeError):
    """
    send() was called twice on one Response.

    A programming error in a handler: the first send() already decided
    what the client gets. The server answers that request with a 500 and
    carries on with the others.
    """


# =============================================================================
# SEND OPTIONS
# =============================================================================

@dataclass(frozen=True)
class SendOptions:
    """
    Everything a handler can say in one send() call.

    Attributes:
        status_code: Status to transmit (redirects fall back to 302 when
                     this is not a 3xx code)
        message:     Human-readable outcome ("Logged in successfully!")
        payload:     JSON-serializable mapping; JSON body or render context
        redirect:    Path to send the browser to
        template:    View name handed to the renderer

    Raises:
        ValueError: If both redirect and template are set, or the status
                    code is outside 100-599.
    """

    status_code: StatusLike = HTTPStatus.OK
    message: str = ""
    payload: Optional[Dict[str, Any]] = None
    redirect: Optional[str] = None
    template: Optional[str] = None

    def __post_init__(self):
        if self.redirect is not None and self.template is not None:
            raise ValueError("send() takes a redirect or a template, not both")

        if not 100 <= int(self.status_code) <= 599:
            raise ValueError(f"Invalid status code: {self.status_code}")


# =============================================================================
# WIRE FORM
# =============================================================================

@dataclass
class HTTPResponse:
    """
    A complete HTTP response, ready to serialize.

        HTTPResponse(                    HTTP/1.1 302 Found\\r\\n
          status=302,             ─►     Location: /login\\r\\n
          headers={"Location": ...},     Set-Cookie: session_id=...\\r\\n
          cookies=["session_id=..."],    Content-Length: 0\\r\\n
        )                                ...
    """

    status: StatusLike = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"
    cookies: List[str] = field(default_factory=list)

    @property
    def status_line(self) -> str:
        """"HTTP/1.1 303 See Other" """
        return f"{self.version} {int(self.status)} {reason_phrase(self.status)}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def to_bytes(self, server_name: str = SERVER_NAME) -> bytes:
        """
        Serialize for socket.sendall().

        Content-Length, Date and Server are added when missing. Each
        queued cookie becomes its own Set-Cookie line.
        """
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")

        # Set-Cookie is the one header that cannot be folded into a list
        for cookie in self.cookies:
            lines.append(f"Set-Cookie: {cookie}")

        lines.append("")
        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"

        return header_bytes + self.body


class ResponseBuilder:
    """
    Fluent builder for responses the transport layer produces on its own
    (malformed requests, timeouts, overload), where no handler is involved.

        response = (ResponseBuilder()
            .status(HTTPStatus.BAD_REQUEST)
            .text("Bad Request")
            .close_connection()
            .build())
    """

    def __init__(self, server_name: str = SERVER_NAME):
        self._status: StatusLike = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""
        self._cookies: List[str] = []
        self._server_name = server_name

    def status(self, status: StatusLike) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def html(self, html: str) -> "ResponseBuilder":
        return self.text(html, "text/html; charset=utf-8")

    def json(self, data: Any) -> "ResponseBuilder":
        # ensure_ascii=False keeps lesson titles like "Übung" readable
        self._body = json.dumps(data, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    def redirect(self, location: str, status: StatusLike = HTTPStatus.FOUND) -> "ResponseBuilder":
        self._status = status
        self._headers["Location"] = location
        return self

    def cookie(self, cookie: Cookie) -> "ResponseBuilder":
        self._cookies.append(cookie.serialize())
        return self

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
            cookies=list(self._cookies),
        )

    def to_bytes(self) -> bytes:
        return self.build().to_bytes(self._server_name)


# =============================================================================
# HANDLER-FACING RESPONSE
# =============================================================================

class Response:
    """
    The response a handler writes to.

    =========================================================================
    LIFECYCLE
    =========================================================================

        Response()                     created by the server per request
            │
            ├── set_cookie(...)        any number, any time before build()
            │
            ├── send(...)              exactly once
            │     └── second call ──► ResponseAlreadySentError
            │
            └── build()                server turns it into an HTTPResponse

    =========================================================================

    Attributes:
        json_client:   Negotiate JSON answers (no redirects, no HTML)
        renderer:      Template renderer; None means templates cannot be used
        context:       Callable returning extra render context (the server
                       supplies the live session data through it)
    """

    def __init__(
        self,
        json_client: bool = False,
        renderer: Optional["Renderer"] = None,
        context: Optional[Callable[[], Dict[str, Any]]] = None,
    ):
        self.json_client = json_client
        self.renderer = renderer
        self.context = context

        self.headers: Dict[str, str] = {}
        self.status: Optional[StatusLike] = None
        self.options: Optional[SendOptions] = None
        self._body: bytes = b""
        self._cookies: List[Cookie] = []
        self._sent = False

    @property
    def sent(self) -> bool:
        return self._sent

    @property
    def cookies(self) -> List[Cookie]:
        """Queued cookies, in queue order."""
        return list(self._cookies)

    @property
    def content_length(self) -> int:
        return len(self._body)

    def has_cookie(self, name: str) -> bool:
        return any(cookie.name == name for cookie in self._cookies)

    def set_cookie(self, cookie: Cookie) -> "Response":
        """Queue a Set-Cookie header. Repeated calls queue repeated headers."""
        self._cookies.append(cookie)
        return self

    def set_header(self, name: str, value: str) -> "Response":
        self.headers[name] = value
        return self

    # =========================================================================
    # SEND
    # =========================================================================

    def send(self, options: Optional[SendOptions] = None, **fields: Any) -> None:
        """
        Decide the outcome of this request.

        Accepts a SendOptions, keyword fields, or both (fields override):

            res.send(status_code=HTTPStatus.SEE_OTHER, message="Saved",
                     redirect="/lessons")

        Raises:
            ResponseAlreadySentError: On the second call.
            ValueError: If the options are invalid (see SendOptions).
        """
        if self._sent:
            raise ResponseAlreadySentError("send() already called for this response")

        if options is None:
            options = SendOptions(**fields)
        elif fields:
            options = replace(options, **fields)

        self._sent = True
        self.options = options

        if self.json_client:
            self._finish_json(
                options.status_code,
                {"message": options.message, "payload": options.payload or {}},
            )
        elif options.redirect is not None:
            self._finish_redirect(options.status_code, options.redirect)
        elif options.template is not None:
            self._finish_template(options)
        else:
            self._finish_json(options.status_code, options.payload or {})

    def send_text(self, text: str, status_code: StatusLike = HTTPStatus.OK) -> None:
        """Plain-text variant of send(); counts as this response's one send."""
        if self._sent:
            raise ResponseAlreadySentError("send() already called for this response")

        self._sent = True
        self._finish(status_code, text.encode("utf-8"), "text/plain; charset=utf-8")

    def _send_page(self, options: SendOptions, fallback_text: str) -> None:
        """
        send() a template, degrading to ``fallback_text`` at the same status
        when it cannot be rendered.
        """
        if self._sent:
            raise ResponseAlreadySentError("send() already called for this response")

        self._sent = True
        self.options = options
        self._finish_template(options, fallback_text)

    def _finish(self, status: StatusLike, body: bytes, content_type: Optional[str]) -> None:
        self.status = status
        self._body = body
        if content_type is not None:
            self.headers["Content-Type"] = content_type

    def _finish_json(self, status: StatusLike, data: Any) -> None:
        body = json.dumps(data, ensure_ascii=False, default=str).encode("utf-8")
        self._finish(status, body, "application/json; charset=utf-8")

    def _finish_redirect(self, status: StatusLike, location: str) -> None:
        if not is_redirect_code(status):
            status = HTTPStatus.FOUND
        self.headers["Location"] = location
        self._finish(status, b"", None)

    def _finish_template(self, options: SendOptions, fallback_text: Optional[str] = None) -> None:
        render_context: Dict[str, Any] = dict(options.payload or {})
        render_context["message"] = options.message
        if self.context is not None:
            render_context.update(self.context())

        try:
            if self.renderer is None:
                raise RuntimeError("No renderer configured")
            html = self.renderer(options.template, render_context)
        except Exception:
            # Rendering failures never leak into the page
            logger.exception(f"Rendering {options.template!r} failed")
            if fallback_text is not None:
                self._finish(
                    options.status_code,
                    fallback_text.encode("utf-8"),
                    "text/plain; charset=utf-8",
                )
                return
            self._finish(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                b"Internal Server Error",
                "text/plain; charset=utf-8",
            )
            return

        self._finish(options.status_code, html.encode("utf-8"), "text/html; charset=utf-8")

    # =========================================================================
    # BUILD
    # =========================================================================

    def build(self, now: Optional[float] = None) -> HTTPResponse:
        """
        Produce the wire form.

        Raises:
            RuntimeError: If send() was never called.
        """
        if not self._sent:
            raise RuntimeError("Response was never sent")

        return HTTPResponse(
            status=self.status,
            headers=dict(self.headers),
            body=self._body,
            cookies=[cookie.serialize(now) for cookie in self._cookies],
        )


def send_error(
    request: "HTTPRequest",
    response: Response,
    status: StatusLike,
    message: Optional[str] = None,
) -> None:
    """
    Send an error outcome the way the client expects it.

        JSON client       {"message": "Not Found", "payload": {}}
        renderer present  ErrorView with {"statusCode": 404, "message": ...}
        otherwise         plain text "404 Not Found"

    The status never changes: when the renderer has no ErrorView (or it
    fails), the plain-text form goes out instead.
    """
    message = message or reason_phrase(status)
    text = f"{int(status)} {message}"

    if response.json_client:
        response.send(status_code=status, message=message)
    elif response.renderer is not None:
        response._send_page(
            SendOptions(
                status_code=status,
                message=message,
                payload={"statusCode": int(status), "message": message},
                template=ERROR_TEMPLATE,
            ),
            fallback_text=text,
        )
    else:
        response.send_text(text, status)

    logger.debug(f"{request.method} {request.path} -> {int(status)} {message}")
