"""Tests for security helpers."""

import pytest

from src.idbridge.core.security import (
    constant_time_equals,
    generate_pkce_pair,
    generate_state,
    pkce_challenge,
    sanitize_return_url,
    sign_value,
    unsign_value,
)


class TestTokens:
    def test_state_values_are_unique(self):
        assert len({generate_state() for _ in range(50)}) == 50

    def test_pkce_pair(self):
        verifier, challenge = generate_pkce_pair()
        assert 43 <= len(verifier) <= 128
        assert challenge == pkce_challenge(verifier)
        assert "=" not in challenge

    def test_pkce_challenge_rfc7636_vector(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert pkce_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_constant_time_equals(self):
        assert constant_time_equals("abc", "abc")
        assert not constant_time_equals("abc", "abd")
        assert not constant_time_equals(None, "abc")
        assert not constant_time_equals("abc", None)


class TestSignedValues:
    def test_round_trip(self):
        signed = sign_value("token-123", "secret")
        assert signed != "token-123"
        assert unsign_value(signed, "secret") == "token-123"

    def test_tampered_value_rejected(self):
        signed = sign_value("token-123", "secret")
        value, _, signature = signed.rpartition(".")
        assert unsign_value(f"other.{signature}", "secret") is None
        assert unsign_value(signed, "another-secret") is None

    def test_unsigned_value_rejected_when_secret_set(self):
        assert unsign_value("token-123", "secret") is None

    def test_without_secret_values_pass_through(self):
        assert sign_value("token", None) == "token"
        assert unsign_value("token", None) == "token"

    def test_empty_value(self):
        assert unsign_value(None, "secret") is None
        assert unsign_value("", "secret") is None


class TestSanitizeReturnUrl:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (None, "/"),
            ("", "/"),
            ("/dashboard?tab=1", "/dashboard?tab=1"),
            ("//evil.example/path", "/"),
            ("https://evil.example/", "/"),
            ("/path\\with\\backslash", "/"),
            ("javascript:alert(1)", "/"),
        ],
    )
    def test_relative_only_by_default(self, raw, expected):
        assert sanitize_return_url(raw) == expected

    def test_allowed_absolute_host(self):
        url = "https://app.example/after-login"
        assert sanitize_return_url(url, ["app.example"]) == url
        assert sanitize_return_url("https://other.example/", ["app.example"]) == "/"
