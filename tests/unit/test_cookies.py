"""
Unit tests for cookie parsing and serialization.
"""

from datetime import datetime, timezone
import time

import pytest

from morsse.http.cookies import Cookie
from morsse.http.dates import EPOCH_HTTP_DATE, format_http_date


# 2026-01-01 00:00:00 UTC
NOW = datetime(2026, 1, 1, tzinfo=timezone.utc).timestamp()


class TestCookieParse:
    """Tests for Cookie.parse()."""

    def test_parse_single(self):
        """A single pair parses into one cookie."""
        cookies = Cookie.parse("session_id=abc123")

        assert len(cookies) == 1
        assert cookies[0].name == "session_id"
        assert cookies[0].value == "abc123"

    def test_parse_multiple_preserves_order(self):
        """Pairs come back in header order."""
        cookies = Cookie.parse("a=1; b=2;c=3")

        assert [(c.name, c.value) for c in cookies] == [("a", "1"), ("b", "2"), ("c", "3")]

    def test_parse_trims_whitespace(self):
        cookies = Cookie.parse("  email = alice@example.com  ;  theme=dark ")

        assert cookies[0].name == "email"
        assert cookies[0].value == "alice@example.com"
        assert cookies[1].value == "dark"

    def test_parse_splits_on_first_equals(self):
        """Values may themselves contain '='."""
        cookies = Cookie.parse("token=a=b==")

        assert cookies[0].value == "a=b=="

    def test_parse_skips_malformed_pairs(self):
        """Fragments without '=' or with an empty name are dropped, not fatal."""
        cookies = Cookie.parse("a=1; junk; =2; b=")

        assert [(c.name, c.value) for c in cookies] == [("a", "1"), ("b", "")]

    def test_parse_strips_quotes(self):
        cookies = Cookie.parse('pref="compact"')

        assert cookies[0].value == "compact"

    @pytest.mark.parametrize("header", [None, "", ";;;", "   "])
    def test_parse_empty(self, header):
        assert Cookie.parse(header) == []

    def test_parsed_cookies_are_session_lifetime(self):
        """The Cookie request header carries no attributes."""
        cookie = Cookie.parse("email=a@b.c")[0]

        assert cookie.max_age_ms == 0
        assert cookie.expired is False


class TestCookieSerialize:
    """Tests for Cookie.serialize()."""

    def test_session_cookie(self):
        """max_age_ms == 0 emits neither Max-Age nor Expires."""
        header = Cookie("session_id", "abc").serialize(NOW)

        assert header == "session_id=abc; Path=/"
        assert "Expires" not in header
        assert "Max-Age" not in header

    def test_persistent_cookie(self):
        """Max-Age is whole seconds, Expires is now + max age."""
        header = Cookie("email", "a@b.c", 2592000000).serialize(NOW)

        assert header.startswith("email=a@b.c; Max-Age=2592000; ")
        assert "Expires=Sat, 31 Jan 2026 00:00:00 GMT" in header

    def test_max_age_floor_divides(self):
        header = Cookie("short", "x", 1999).serialize(NOW)

        assert "Max-Age=1;" in header

    def test_attributes(self):
        cookie = Cookie("session_id", "t", http_only=True, same_site="Lax", secure=True)

        assert cookie.serialize() == "session_id=t; Path=/; Secure; HttpOnly; SameSite=Lax"

    def test_round_trip_name_value(self):
        """serialize(parse(s)) keeps the name=value pair."""
        original = "registered=true"

        cookie = Cookie.parse(original)[0]

        assert cookie.serialize().split(";")[0] == original


class TestSetExpires:
    """Tests for the 'delete me' transition."""

    def test_set_expires_emits_past_expiry(self):
        """An expired cookie carries the epoch, strictly before its creation."""
        cookie = Cookie("registered", "true")
        created = time.time()

        header = cookie.set_expires().serialize()

        assert f"Expires={EPOCH_HTTP_DATE}" in header
        assert "Max-Age=0" in header
        assert cookie.expires_at().timestamp() < created

    def test_set_expires_drops_persistent_lifetime(self):
        cookie = Cookie("email", "a@b.c", 2592000000)

        cookie.set_expires()

        assert cookie.max_age_ms == 0
        assert cookie.expired is True
        assert "Max-Age=2592000" not in cookie.serialize()

    def test_set_expires_mutates_in_place(self):
        """A cookie expired after being handed out is seen expired by every holder."""
        cookie = Cookie("unauthorized", "true")
        queued = [cookie]

        returned = cookie.set_expires()

        assert returned is cookie
        assert queued[0].expired is True

    def test_expires_at(self):
        assert Cookie("a", "1").expires_at(NOW) is None
        assert Cookie("a", "1", 1000).expires_at(NOW).timestamp() == NOW + 1


class TestCookieValidation:
    """Cookies that cannot be written to a header are rejected."""

    @pytest.mark.parametrize("name", ["", "bad name", "semi;colon", "a=b", "new\nline"])
    def test_invalid_names(self, name):
        with pytest.raises(ValueError):
            Cookie(name, "value")

    @pytest.mark.parametrize("value", ["a;b", "line\r\nbreak"])
    def test_invalid_values(self, value):
        with pytest.raises(ValueError):
            Cookie("name", value)

    def test_negative_max_age(self):
        with pytest.raises(ValueError):
            Cookie("name", "value", -1)

    def test_value_coerced_to_string(self):
        assert Cookie("userId", 42).value == "42"


class TestHttpDate:
    def test_format(self):
        dt = datetime(2026, 1, 1, 12, 30, 5, tzinfo=timezone.utc)

        assert format_http_date(dt) == "Thu, 01 Jan 2026 12:30:05 GMT"

    def test_epoch(self):
        assert EPOCH_HTTP_DATE == "Thu, 01 Jan 1970 00:00:00 GMT"
