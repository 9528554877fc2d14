"""
Tests for HTTPServer.dispatch(): middleware, routing, sessions and error
isolation, without sockets.
"""

import json
import logging

import pytest

from morsse import HTTPServer, ServerConfig, create_app
from morsse.http import Cookie, HTTPRequest, HTTPStatus, parse_request
from morsse.middleware import LoggingMiddleware, middleware
from morsse.rendering import StringTemplateRenderer
from morsse.sessions import SessionManager


def cookie_pairs(http_response):
    """[(name, full header value), ...] in Set-Cookie order."""
    return [(c.split("=", 1)[0], c) for c in http_response.cookies]


def session_token(http_response, name="session_id"):
    for cookie_name, header in cookie_pairs(http_response):
        if cookie_name == name:
            return header.split(";")[0].split("=", 1)[1]
    return None


def json_body(http_response):
    return json.loads(http_response.body.decode("utf-8"))


@pytest.fixture
def logged_in(app, make_request):
    """Token of a session that has logged in as user 1."""
    response = app.dispatch(make_request("POST", "/login", body=b"email=a%40b.c"))
    return session_token(response)


class TestLoginFlow:
    """The login / me / logout round trip through one SessionManager."""

    def test_login_sets_session_cookie(self, app, make_request):
        response = app.dispatch(make_request("POST", "/login", body=b"email=a%40b.c"))

        assert response.status == 200
        names = [name for name, _ in cookie_pairs(response)]
        assert names == ["session_id"]
        assert "HttpOnly" in response.cookies[0]

    def test_session_survives_requests(self, app, make_request, logged_in):
        response = app.dispatch(
            make_request("GET", "/me", cookies=[Cookie("session_id", logged_in)])
        )

        assert response.status == 200
        assert json_body(response) == {"userId": 1}
        assert response.cookies == []

    def test_anonymous_me(self, app, make_request):
        response = app.dispatch(make_request("GET", "/me"))

        assert response.status == 401
        assert json_body(response) == {}

    def test_logout_expires_cookie(self, app, make_request, logged_in):
        response = app.dispatch(
            make_request("GET", "/logout", cookies=[Cookie("session_id", logged_in)])
        )

        assert response.status == 303
        assert response.headers["Location"] == "/"
        assert len(response.cookies) == 1
        assert response.cookies[0].startswith(f"session_id={logged_in};")
        assert "Max-Age=0" in response.cookies[0]
        assert "Expires=Thu, 01 Jan 1970 00:00:00 GMT" in response.cookies[0]

    def test_old_token_after_logout(self, app, make_request, sessions, logged_in):
        """A replayed token after logout is just an anonymous visitor."""
        old = [Cookie("session_id", logged_in)]
        app.dispatch(make_request("GET", "/logout", cookies=old))

        response = app.dispatch(make_request("GET", "/me", cookies=old))

        assert response.status == 401
        new_token = session_token(response)
        assert new_token is not None
        assert new_token != logged_in
        assert logged_in not in sessions

    def test_missing_email_redirects_browser(self, app, make_request):
        response = app.dispatch(make_request("POST", "/login", body=b"password=x"))

        assert response.status == 302
        assert response.headers["Location"] == "/login?error=missing_email"

    def test_missing_email_json_client(self, app, make_request):
        response = app.dispatch(
            make_request("POST", "/login", body=b"{}", content_type="application/json")
        )

        assert response.status == 400
        assert "Location" not in response.headers
        assert json_body(response) == {"message": "Email is required.", "payload": {}}

    def test_wire_request(self, app, sessions, sample_form_request):
        """Requests parsed from raw bytes dispatch the same way."""
        request = parse_request(sample_form_request, session_manager=sessions)

        response = app.dispatch(request)

        # The fixture form uses "usernameEmail", not "email"
        assert response.status == 302


class TestSessionCookieIssuing:
    """A new session is announced exactly once."""

    def test_first_visit_gets_one_cookie(self, app, make_request):
        response = app.dispatch(make_request("GET", "/login"))

        names = [name for name, _ in cookie_pairs(response)]
        assert names.count("session_id") == 1

    def test_returning_visit_gets_none(self, app, make_request):
        first = app.dispatch(make_request("GET", "/login"))
        token = session_token(first)

        second = app.dispatch(
            make_request("GET", "/login", cookies=[Cookie("session_id", token)])
        )

        assert second.cookies == []

    def test_forged_token_replaced(self, app, make_request):
        response = app.dispatch(
            make_request("GET", "/login", cookies=[Cookie("session_id", "forged")])
        )

        token = session_token(response)
        assert token is not None
        assert token != "forged"

    def test_flash_cookie_shown_once(self, app, make_request):
        """The flash cookie is expired in place and queued before the session cookie."""
        response = app.dispatch(
            make_request("GET", "/login", cookies=[Cookie("registered", "true")])
        )

        assert b"User registered successfully!" in response.body
        names = [name for name, _ in cookie_pairs(response)]
        assert names == ["registered", "session_id"]
        assert "Max-Age=0" in response.cookies[0]

    def test_lazy_sessions(self, config, sessions, make_request):
        """With eager_sessions off, pages that never touch the session set no cookie."""
        config.eager_sessions = False
        server = HTTPServer(config, session_manager=sessions)
        server.get("/", lambda request, response: response.send(message="Homepage!"))

        response = server.dispatch(make_request("GET", "/"))

        assert response.cookies == []
        assert len(sessions) == 0

    def test_manager_attached_when_missing(self, app, sessions):
        request = HTTPRequest(method="GET", path="/login")

        app.dispatch(request)

        assert request.session_manager is sessions

    def test_injected_empty_manager_is_used(self, config, clock):
        """A fresh registry is still the one the server and parser use."""
        sessions = SessionManager(ttl=60, cookie_name="sid", clock=clock)
        assert len(sessions) == 0

        server = HTTPServer(config, session_manager=sessions)
        server.get("/", lambda request, response: response.send(message="Homepage!"))
        response = server.dispatch(HTTPRequest(method="GET", path="/"))

        assert server.sessions is sessions
        assert len(sessions) == 1
        assert session_token(response, "sid") in sessions

    def test_abandoned_sessions_reclaimed(self, config, clock):
        """One-off visitors never come back; their sessions still go away."""
        sessions = SessionManager(ttl=3600, clock=clock)
        server = HTTPServer(config, session_manager=sessions)
        server.get("/", lambda request, response: response.send(message="Homepage!"))

        for _ in range(50):
            server.dispatch(HTTPRequest(method="GET", path="/missing"))
        assert len(sessions) == 50

        clock.advance(10 * 24 * 3600)
        response = server.dispatch(HTTPRequest(method="GET", path="/"))

        assert len(sessions) == 1
        assert session_token(response) in sessions


class TestErrorIsolation:
    """Handler faults become a 500 for that request only."""

    def test_handler_exception(self, app, make_request):
        def boom(request, response):
            raise ValueError("database unreachable")

        app.get("/boom", boom)

        response = app.dispatch(make_request("GET", "/boom"))

        assert response.status == 500
        assert response.body == b"<h1>500</h1><p>Internal Server Error</p>"
        assert b"database" not in response.body

        # Next request is unaffected
        assert app.dispatch(make_request("GET", "/login")).status == 200

    def test_double_send(self, app, make_request):
        def twice(request, response):
            response.send(message="one")
            response.send(message="two")

        app.get("/twice", twice)

        assert app.dispatch(make_request("GET", "/twice")).status == 500

    def test_never_sent(self, app, make_request):
        app.get("/silent", lambda request, response: None)

        assert app.dispatch(make_request("GET", "/silent")).status == 500

    def test_handler_cookies_discarded_on_error(self, app, make_request):
        def fails_late(request, response):
            response.set_cookie(Cookie("half", "done"))
            raise RuntimeError("oops")

        app.get("/late", fails_late)

        response = app.dispatch(make_request("GET", "/late"))

        assert "half" not in [name for name, _ in cookie_pairs(response)]

    def test_json_client_error(self, app, make_request):
        def boom(request, response):
            raise ValueError("nope")

        app.get("/boom", boom)

        response = app.dispatch(
            make_request("GET", "/boom", headers={"Accept": "application/json"})
        )

        assert response.status == 500
        assert json_body(response) == {"message": "Internal Server Error", "payload": {}}

    def test_logged(self, app, make_request, caplog):
        def boom(request, response):
            raise ValueError("nope")

        app.get("/boom", boom)

        with caplog.at_level(logging.ERROR, logger="morsse.server"):
            app.dispatch(make_request("GET", "/boom"))

        assert "Handler error on GET /boom" in caplog.text


class TestNotFound:
    def test_error_view(self, app, make_request):
        response = app.dispatch(make_request("GET", "/missing"))

        assert response.status == 404
        assert response.body == b"<h1>404</h1><p>Not Found</p>"

    def test_wrong_method(self, app, make_request):
        assert app.dispatch(make_request("DELETE", "/login")).status == 404

    def test_json_client(self, app, make_request):
        response = app.dispatch(
            make_request("GET", "/missing", headers={"Accept": "application/json"})
        )

        assert json_body(response) == {"message": "Not Found", "payload": {}}

    def test_renderer_without_error_view(self, config, sessions, make_request):
        """An app renderer with no ErrorView still yields 404 and 500, not a render failure."""
        server = HTTPServer(
            config,
            renderer=StringTemplateRenderer({"HomeView": "<h1>$message</h1>"}),
            session_manager=sessions,
        )
        server.get("/boom", lambda request, response: 1 / 0)

        missing = server.dispatch(make_request("GET", "/nope"))
        fault = server.dispatch(make_request("GET", "/boom"))

        assert missing.status == 404
        assert missing.body == b"404 Not Found"
        assert fault.status == 500
        assert fault.body == b"500 Internal Server Error"


class TestMiddleware:
    def test_order(self, app, make_request):
        calls = []

        @middleware
        def outer(request, response, next):
            calls.append("outer-in")
            next(request, response)
            calls.append("outer-out")

        @middleware
        def inner(request, response, next):
            calls.append("inner-in")
            next(request, response)
            calls.append("inner-out")

        app.use(outer).use(inner)
        app.dispatch(make_request("GET", "/login"))

        assert calls == ["outer-in", "inner-in", "inner-out", "outer-out"]

    def test_short_circuit(self, app, make_request):
        @middleware
        def require_login(request, response, next):
            if request.path == "/me" and "userId" not in request.get_session().data:
                response.set_cookie(Cookie("unauthorized", "true"))
                response.send(
                    status_code=HTTPStatus.UNAUTHORIZED,
                    message="Unauthorized",
                    redirect="/login",
                )
                return
            next(request, response)

        app.use(require_login)

        response = app.dispatch(make_request("GET", "/me"))

        assert response.status == 302
        assert response.headers["Location"] == "/login"
        assert [name for name, _ in cookie_pairs(response)] == ["unauthorized", "session_id"]

    def test_request_id_header(self, app, make_request):
        app.use(LoggingMiddleware())

        response = app.dispatch(make_request("GET", "/login"))

        assert len(response.headers["X-Request-ID"]) == 8

    def test_request_id_kept_on_error(self, app, make_request):
        app.use(LoggingMiddleware())
        app.get("/boom", lambda request, response: 1 / 0)

        response = app.dispatch(make_request("GET", "/boom"))

        assert response.status == 500
        assert "X-Request-ID" in response.headers

    def test_access_log_shows_user(self, app, make_request, logged_in, caplog):
        app.use(LoggingMiddleware())

        with caplog.at_level(logging.INFO, logger="morsse.access"):
            app.dispatch(make_request("GET", "/me", cookies=[Cookie("session_id", logged_in)]))

        assert '- 1 [' in caplog.text
        assert '"GET /me" 200' in caplog.text
        assert logged_in not in caplog.text

    def test_access_log_json(self, app, make_request, caplog):
        app.use(LoggingMiddleware(log_format="json", skip_paths=["/login"]))

        with caplog.at_level(logging.INFO, logger="morsse.access"):
            app.dispatch(make_request("GET", "/login"))
            app.dispatch(make_request("GET", "/me"))

        records = [json.loads(r.getMessage()) for r in caplog.records if r.name == "morsse.access"]
        assert [r["path"] for r in records] == ["/me"]
        assert records[0]["status_code"] == 401
        assert records[0]["user_id"] is None


class TestRenderContext:
    def test_session_in_context(self, config, sessions, make_request):
        seen = {}

        def render(template, context):
            seen.update(context)
            return "<html></html>"

        server = HTTPServer(config, renderer=render, session_manager=sessions)

        @server.get("/")
        def home(request, response):
            request.get_session().data["darkmode"] = "true"
            response.send(message="Homepage!", payload={"lessons": []}, template="HomeView")

        response = server.dispatch(make_request("GET", "/"))

        assert response.status == 200
        assert seen["session"] == {"darkmode": "true"}
        assert seen["message"] == "Homepage!"
        assert seen["lessons"] == []

    def test_destroyed_session_context_is_empty(self, config, sessions, make_request):
        seen = {}

        def render(template, context):
            seen.update(context)
            return ""

        server = HTTPServer(config, renderer=render, session_manager=sessions)

        @server.get("/bye")
        def bye(request, response):
            session = request.get_session()
            session.data["userId"] = 1
            session.destroy()
            response.set_cookie(session.cookie)
            response.send(template="GoodbyeView")

        server.dispatch(make_request("GET", "/bye"))

        assert seen["session"] == {}


class TestCreateApp:
    def test_registers_in_order(self, config, make_request):
        class First:
            def register_routes(self, router):
                router.get("/x", lambda request, response: response.send(payload={"by": "first"}))

        class Second:
            def register_routes(self, router):
                router.get("/x", lambda request, response: response.send(payload={"by": "second"}))
                router.get("/y", lambda request, response: response.send())

        server = create_app(config, None, First(), Second())

        assert [r.path for r in server.router.routes()] == ["/x", "/x", "/y"]
        response = server.dispatch(make_request("GET", "/x"))
        assert json_body(response) == {"by": "first"}

    def test_invalid_config_rejected(self):
        with pytest.raises(ValueError):
            HTTPServer(ServerConfig(port=0))
