"""
Unit tests for configuration, the command line and the demo app.
"""

import pytest

from morsse import HTTPServer, ServerConfig
from morsse.__main__ import main, parse_config
from morsse.demo import DemoController, demo_renderer
from morsse.http import Cookie


class TestServerConfig:
    def test_defaults_valid(self):
        ServerConfig().validate()

    @pytest.mark.parametrize("overrides", [
        {"port": 0},
        {"port": 70000},
        {"min_workers": 0},
        {"min_workers": 8, "max_workers": 4},
        {"buffer_size": 10},
        {"timeout": 0},
        {"log_level": "LOUD"},
        {"log_format": "xml"},
        {"session_cookie_name": "  "},
        {"session_ttl": 0},
        {"session_sweep_interval": -1},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            ServerConfig(**overrides).validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("MORSSE_HOST", "0.0.0.0")
        monkeypatch.setenv("MORSSE_PORT", "3000")
        monkeypatch.setenv("MORSSE_WORKERS", "2")
        monkeypatch.setenv("MORSSE_LOG_LEVEL", "debug")
        monkeypatch.setenv("MORSSE_SESSION_TTL", "600")
        monkeypatch.setenv("MORSSE_SESSION_COOKIE", "sid")

        config = ServerConfig.from_env()

        assert config.host == "0.0.0.0"
        assert config.port == 3000
        assert (config.min_workers, config.max_workers) == (2, 2)
        assert config.log_level == "DEBUG"
        assert config.session_ttl == 600
        assert config.session_cookie_name == "sid"
        config.validate()

    def test_server_uses_session_settings(self):
        server = HTTPServer(ServerConfig(session_ttl=60, session_cookie_name="sid"))

        assert server.sessions.ttl == 60
        assert server.sessions.cookie_name == "sid"


class TestCommandLine:
    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in ("MORSSE_HOST", "MORSSE_PORT", "MORSSE_WORKERS", "MORSSE_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

    def test_defaults(self):
        config = parse_config([])

        assert config.port == 8080
        assert config.log_level == "INFO"

    def test_flags(self):
        config = parse_config([
            "--port", "3000", "--workers", "3", "--log-level", "debug",
            "--log-format", "json", "--session-ttl", "120",
        ])

        assert config.port == 3000
        assert (config.min_workers, config.max_workers) == (3, 6)
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"
        assert config.session_ttl == 120

    def test_flags_beat_env(self, monkeypatch):
        monkeypatch.setenv("MORSSE_PORT", "4000")

        assert parse_config([]).port == 4000
        assert parse_config(["-p", "5000"]).port == 5000

    def test_invalid_config_exit_code(self, capsys):
        assert main(["--port", "0"]) == 2
        assert "Invalid configuration" in capsys.readouterr().err


def token_of(http_response, name):
    for header in http_response.cookies:
        if header.startswith(name + "="):
            return header.split(";")[0].split("=", 1)[1]
    return None


class TestDemoApp:
    @pytest.fixture
    def demo(self, config, sessions):
        server = HTTPServer(config, renderer=demo_renderer(), session_manager=sessions)
        server.register(DemoController())
        return server

    def test_visit_counter(self, demo, make_request):
        first = demo.dispatch(make_request("GET", "/"))
        token = token_of(first, "session_id")

        second = demo.dispatch(make_request("GET", "/", cookies=[Cookie("session_id", token)]))

        assert b"Visits this session: 1" in first.body
        assert b"Visits this session: 2" in second.body

    def test_login_remember_me(self, demo, make_request):
        response = demo.dispatch(
            make_request("POST", "/login", body=b"email=a%40b.c&remember=on")
        )

        assert response.status == 200
        assert response.cookies[0].startswith("email=a@b.c; Max-Age=2592000;")
        assert response.cookies[1].startswith("session_id=")

    def test_login_without_remember(self, demo, make_request):
        response = demo.dispatch(make_request("POST", "/login", body=b"email=a%40b.c"))

        assert "Max-Age" not in response.cookies[0]

    def test_greeting_after_login(self, demo, make_request):
        login = demo.dispatch(make_request("POST", "/login", body=b"email=a%40b.c"))
        cookies = [Cookie("session_id", token_of(login, "session_id"))]

        home = demo.dispatch(make_request("GET", "/", cookies=cookies))

        assert b"Logged in as user 1." in home.body

    def test_logout_flash(self, demo, make_request):
        login = demo.dispatch(make_request("POST", "/login", body=b"email=a%40b.c"))
        token = token_of(login, "session_id")

        logout = demo.dispatch(
            make_request("GET", "/logout", cookies=[Cookie("session_id", token)])
        )
        assert logout.status == 303
        assert token_of(logout, "logged_out") == "true"

        home = demo.dispatch(make_request("GET", "/", cookies=[
            Cookie("session_id", token),
            Cookie("logged_out", "true"),
        ]))

        assert b"Logged out successfully." in home.body
        assert any(c.startswith("logged_out=true; Expires=") for c in home.cookies)

    def test_login_requires_email(self, demo, make_request):
        response = demo.dispatch(make_request("POST", "/login", body=b"email=%20"))

        assert response.status == 302
        assert response.headers["Location"] == "/"
