"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Callable, Generator, List, Optional

import pytest

from morsse import HTTPServer, ServerConfig
from morsse.http import Cookie, HTTPRequest, HTTPStatus, Response, Router
from morsse.rendering import StringTemplateRenderer
from morsse.sessions import SessionManager


class FakeClock:
    """Controllable time source for session expiry tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sessions(clock: FakeClock) -> SessionManager:
    """Fresh session registry per test, on a fake clock, one-hour TTL."""
    return SessionManager(ttl=3600, clock=clock)


@pytest.fixture
def make_request(sessions: SessionManager) -> Callable[..., HTTPRequest]:
    """
    Build an HTTPRequest without going through the wire parser.

        make_request("POST", "/login", body=b"email=a%40b.c",
                     cookies=[session.cookie])
    """
    def _make(
        method: str = "GET",
        path: str = "/",
        body: bytes = b"",
        content_type: Optional[str] = None,
        cookies: Optional[List[Cookie]] = None,
        headers: Optional[dict] = None,
        query: Optional[dict] = None,
    ) -> HTTPRequest:
        all_headers = {k.lower(): v for k, v in (headers or {}).items()}
        if content_type:
            all_headers["content-type"] = content_type
        if cookies:
            all_headers["cookie"] = "; ".join(f"{c.name}={c.value}" for c in cookies)
        if body:
            all_headers["content-length"] = str(len(body))

        return HTTPRequest(
            method=method,
            path=path,
            headers=all_headers,
            query_params=query or {},
            content=body,
            session_manager=sessions,
        )

    return _make


@pytest.fixture
def sample_get_request() -> bytes:
    """Browser GET with a query string and two cookies."""
    return (
        b"GET /lessons?sortBy=difficulty&tag=a&tag=b HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: text/html\r\n"
        b"Cookie: session_id=abc123; email=alice@example.com\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_form_request() -> bytes:
    """Login form submission."""
    body = b"usernameEmail=alice%40example.com&password=s3cret&remember=on"
    return (
        b"POST /login HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/x-www-form-urlencoded\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def sample_json_request() -> bytes:
    """API client creating a lesson."""
    body = b'{"title": "Home row", "difficulty": 2, "draft": false, "notes": null}'
    return (
        b"POST /lessons HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"\r\n"
    ) + body


@pytest.fixture
def renderer() -> StringTemplateRenderer:
    return StringTemplateRenderer({
        "LoginFormView": "<h1>$message</h1><p>$error</p>",
        "ErrorView": "<h1>$statusCode</h1><p>$message</p>",
        "BrokenView": "<h1>$missing</h1>",
    })


class AuthController:
    """Login/logout flow used by the dispatch and live-server tests."""

    def register_routes(self, router: Router) -> None:
        router.get("/login", self.get_login_form)
        router.post("/login", self.login)
        router.get("/logout", self.logout)
        router.get("/me", self.me)

    def get_login_form(self, request: HTTPRequest, response: Response) -> None:
        message = None
        registered = request.find_cookie("registered")
        if registered:
            message = "User registered successfully!"
            response.set_cookie(registered.set_expires())

        response.send(
            status_code=HTTPStatus.OK,
            message="Login Form Retrieved",
            payload={"error": message},
            template="LoginFormView",
        )

    def login(self, request: HTTPRequest, response: Response) -> None:
        if not request.body.get("email"):
            response.send(
                status_code=HTTPStatus.BAD_REQUEST,
                message="Email is required.",
                redirect="/login?error=missing_email",
            )
            return

        session = request.get_session()
        session.data["userId"] = 1
        response.set_cookie(session.cookie)
        response.send(status_code=HTTPStatus.OK, message="Logged in successfully!")

    def logout(self, request: HTTPRequest, response: Response) -> None:
        session = request.get_session()
        session.destroy()
        response.set_cookie(session.cookie)
        response.send(status_code=HTTPStatus.SEE_OTHER, message="Logged out", redirect="/")

    def me(self, request: HTTPRequest, response: Response) -> None:
        user_id = request.get_session().data.get("userId")
        if user_id is None:
            response.send(status_code=HTTPStatus.UNAUTHORIZED, message="Unauthorized")
            return
        response.send(message="Me", payload={"userId": user_id})


@pytest.fixture
def config() -> ServerConfig:
    return ServerConfig(
        host="127.0.0.1",
        port=8080,
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        log_level="WARNING",
    )


@pytest.fixture
def app(config: ServerConfig, sessions: SessionManager, renderer) -> HTTPServer:
    """Server with the auth controller registered; not listening."""
    server = HTTPServer(config, renderer=renderer, session_manager=sessions)
    server.register(AuthController())
    return server


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class LiveServer:
    """Runs an HTTPServer on a background thread."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.stop()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)


@pytest.fixture
def live_server(free_port: int, renderer) -> Generator[LiveServer, None, None]:
    server = HTTPServer(
        ServerConfig(
            host="127.0.0.1",
            port=free_port,
            min_workers=2,
            max_workers=4,
            timeout=5.0,
            keep_alive_timeout=1.0,
            log_level="WARNING",
        ),
        renderer=renderer,
    )
    server.register(AuthController())

    live = LiveServer(server)
    live.start()

    yield live

    live.stop()
