"""
=============================================================================
HTTP REQUEST
=============================================================================

Parses raw HTTP/1.1 request bytes into HTTPRequest objects and gives
controllers one normalized view of everything a browser or API client sent.

=============================================================================
WHAT A CONTROLLER SEES
=============================================================================

    POST /login?next=%2Flessons HTTP/1.1
    Content-Type: application/x-www-form-urlencoded
    Cookie: session_id=3Fq...; email=a@b.c

    usernameEmail=alice&password=secret&remember=on

        │
        ▼

    request.body                 {"usernameEmail": "alice",
                                  "password": "secret", "remember": "on"}
    request.get_search_params()  SearchParams({"next": ["/lessons"]})
    request.find_cookie("email") Cookie("email", "a@b.c")
    request.get_session()        Session (resolved once, then cached)
    request.get_id()             int(path_params["id"]) or None

=============================================================================
PARSE TIMING
=============================================================================

    EAGER    request line, headers, cookies     (at construction)
    LAZY     body mapping                        (first access of .body)
    LAZY     session                             (first get_session())

The body mapping is normalized to string keys and string values whether
the payload was form-encoded or JSON. A payload that cannot be parsed
yields an empty mapping; validation downstream then reports the missing
fields the same way it would for an empty form.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, TYPE_CHECKING
from urllib.parse import parse_qs, parse_qsl, urlparse, unquote
import json
import logging
import re

from .cookies import Cookie

if TYPE_CHECKING:
    from ..sessions import Session, SessionManager


logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"

# Methods an HTML form can ask for through a hidden "_method" field
OVERRIDABLE_METHODS = {"PUT", "PATCH", "DELETE"}

ID_PATTERN = re.compile(r"-?[0-9]+")


class HTTPParseError(Exception):
    """
    Raised when the raw request cannot be parsed.

    Carries the status code to answer with:

        400 Bad Request                - Malformed request syntax
        405 Method Not Allowed         - Unknown method
        413 Payload Too Large          - Request exceeds size limit
        505 HTTP Version Not Supported - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class SearchParams(Mapping[str, str]):
    """
    Read-only accessor for query string parameters.

    Indexing and get() return the FIRST value of a repeated parameter;
    get_all() returns every value.

        # /lessons?sortBy=difficulty&tag=a&tag=b
        params = request.get_search_params()
        params.get("sortBy")     # "difficulty"
        params.get("reversed")   # None
        params.get_all("tag")    # ["a", "b"]
    """

    def __init__(self, values: Optional[Dict[str, List[str]]] = None):
        self._values: Dict[str, List[str]] = dict(values or {})

    def __getitem__(self, name: str) -> str:
        values = self._values[name]
        if not values:
            raise KeyError(name)
        return values[0]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def get_all(self, name: str) -> List[str]:
        return list(self._values.get(name, []))

    def __repr__(self) -> str:
        return f"SearchParams({self._values!r})"


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request, as handed to route handlers.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:          HTTP method as sent on the wire (GET, POST, ...)
        path:            Percent-decoded path, no query string
        raw_path:        Path exactly as sent (still percent-encoded);
                         the router matches on this so "%2F" inside a
                         parameter does not split a segment
        version:         "HTTP/1.1" or "HTTP/1.0"
        headers:         Header dict with LOWERCASE keys
        query_params:    "?a=1&a=2" → {"a": ["1", "2"]}
        content:         Raw body bytes
        path_params:     Filled in by the router: {"id": "42"}
        client_address:  (ip, port) of the client
        session_manager: Registry used by get_session(); None for requests
                         built outside a server (get_session() then fails)
        cookies:         Parsed from the Cookie header at construction

    =========================================================================
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    content: bytes = b""
    raw_path: str = ""

    path_params: Dict[str, str] = field(default_factory=dict)

    client_address: tuple[str, int] = ("", 0)
    session_manager: Optional["SessionManager"] = field(default=None, repr=False)

    cookies: List[Cookie] = field(init=False, default_factory=list)

    # Request-scoped caches, filled on first access
    _body: Optional[Dict[str, str]] = field(default=None, init=False, repr=False)
    _session: Optional["Session"] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        if not self.raw_path:
            self.raw_path = self.path
        self.cookies = Cookie.parse(self.headers.get("cookie"))

    # =========================================================================
    # HEADER-DERIVED PROPERTIES
    # =========================================================================

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters ("application/json; charset=utf-8" → "application/json")."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_json(self) -> bool:
        """True when the body is declared as JSON."""
        return self.content_type == JSON_CONTENT_TYPE

    @property
    def wants_json(self) -> bool:
        """
        True for API clients, False for browsers.

        A client that sends JSON or asks for JSON first gets JSON answers:
        no redirects, no HTML, just {"message": ..., "payload": ...} with
        the real status code.
        """
        accept = self.headers.get("accept", "").lower()
        return self.is_json or accept.startswith(JSON_CONTENT_TYPE)

    @property
    def is_keep_alive(self) -> bool:
        """
        HTTP/1.1 keeps the connection unless "Connection: close";
        HTTP/1.0 closes it unless "Connection: keep-alive".
        """
        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    # =========================================================================
    # BODY
    # =========================================================================

    @property
    def body(self) -> Dict[str, str]:
        """
        The request payload as a flat string → string mapping.

        Parsed on first access and cached for the rest of the request.
        Never raises: malformed payloads give an empty mapping.
        """
        if self._body is None:
            self._body = self._parse_body()
        return self._body

    def _parse_body(self) -> Dict[str, str]:
        if not self.content:
            return {}

        try:
            text = self.content.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug(f"Undecodable body on {self.method} {self.path}")
            return {}

        if self.is_json:
            return _parse_json_body(text)

        if self.content_type in (None, FORM_CONTENT_TYPE):
            # First value wins for repeated form fields
            form: Dict[str, str] = {}
            for name, value in parse_qsl(text, keep_blank_values=True):
                form.setdefault(name, value)
            return form

        return {}

    @property
    def effective_method(self) -> str:
        """
        The method used for routing.

        HTML forms can only GET or POST, so a POST carrying a hidden
        ``_method`` field of PUT, PATCH or DELETE is routed as that method.
        """
        if self.method == "POST":
            override = self.body.get("_method", "").upper()
            if override in OVERRIDABLE_METHODS:
                return override
        return self.method

    # =========================================================================
    # QUERY / COOKIES / PATH PARAMS
    # =========================================================================

    def get_search_params(self) -> SearchParams:
        return SearchParams(self.query_params)

    def find_cookie(self, name: str) -> Optional[Cookie]:
        """First cookie sent under ``name``, or None."""
        for cookie in self.cookies:
            if cookie.name == name:
                return cookie
        return None

    def get_id(self) -> Optional[int]:
        """
        The route's ``:id`` parameter as an integer.

        Returns None when the route has no id or it is not an integer
        ("/users/abc"); callers must check before using it.
        """
        raw = self.path_params.get("id")
        # int() alone would also take " 42", "1_0" and non-ASCII digits
        if raw is None or not ID_PATTERN.fullmatch(raw):
            return None
        return int(raw)

    # =========================================================================
    # SESSION
    # =========================================================================

    def get_session(self) -> "Session":
        """
        The session for this request.

        Resolved through the session manager on first call and cached, so
        every call during one request returns the same Session object.
        A missing, forged or expired session cookie yields a new, empty
        session rather than an error.

        Raises:
            RuntimeError: If the request was built without a session manager.
        """
        if self._session is None:
            if self.session_manager is None:
                raise RuntimeError("Request has no session manager attached")
            self._session = self.session_manager.get_or_create(self.cookies)
        return self._session

    @property
    def session(self) -> "Session":
        return self.get_session()

    @property
    def has_session(self) -> bool:
        """True once get_session() has resolved a session for this request."""
        return self._session is not None


def _parse_json_body(text: str) -> Dict[str, str]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return {}

    if not isinstance(data, dict):
        return {}

    return {
        str(name): _stringify(value)
        for name, value in data.items()
        if value is not None
    }


def _stringify(value: Any) -> str:
    # 36 → "36", True → "true", nested objects → their JSON text
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    ==========================================================================
    PARSER STEPS
    ==========================================================================

        Raw bytes
          │
          ├─ 1. Size check ................ too large → 413
          ├─ 2. Find \\r\\n\\r\\n ............ missing → 400
          ├─ 3. Request line .............. bad → 400 / 405 / 505
          ├─ 4. Headers ................... lowercase names, merged dupes
          ├─ 5. Body ...................... exactly Content-Length bytes
          └─ 6. HTTPRequest(..., session_manager=...)

    ==========================================================================
    """

    VALID_METHODS = {
        "GET", "POST", "PUT", "DELETE", "PATCH",
        "HEAD", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(
        self,
        max_request_size: int = 10 * 1024 * 1024,
        session_manager: Optional["SessionManager"] = None,
    ):
        """
        Args:
            max_request_size: Larger requests are rejected with 413.
            session_manager: Attached to every parsed request so handlers
                             can resolve their session.
        """
        self.max_request_size = max_request_size
        self.session_manager = session_manager

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, raw_path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        # Trust Content-Length only; extra bytes belong to the next request
        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            raw_path=raw_path,
            version=version,
            headers=headers,
            query_params=query_params,
            content=body[:content_length],
            client_address=client_address,
            session_manager=self.session_manager,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, str, Dict[str, List[str]], str]:
        """
        Parse "METHOD SP REQUEST-URI SP HTTP-VERSION".

        Returns:
            (method, decoded path, raw path, query_params, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505
            )

        parsed = urlparse(uri)
        raw_path = parsed.path or "/"
        path = unquote(raw_path)
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        # "GET /../../etc/passwd" never reaches a handler
        if ".." in path.split("/"):
            raise HTTPParseError("Invalid path: contains ..", status_code=400)

        return method, path, raw_path, query_params, version

    def _parse_headers(self, lines: List[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Continuation lines (leading whitespace) extend the previous header,
        repeated headers are joined with ", ", malformed lines are skipped.
        Repeated Cookie headers are joined with "; " so they still parse.
        """
        headers: Dict[str, str] = {}
        current_name: Optional[str] = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                separator = "; " if name == "cookie" else ", "
                headers[name] += separator + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024,
    session_manager: Optional["SessionManager"] = None,
) -> HTTPRequest:
    """One-shot helper: build a RequestParser and parse ``data``."""
    parser = RequestParser(max_request_size=max_size, session_manager=session_manager)
    return parser.parse(data, client_address)
