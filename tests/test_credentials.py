"""Tests for the Credential Provider."""

from __future__ import annotations

import json

import httpx

from apiwatch.health.credentials import AuthFailure, Credential, CredentialProvider

BASE_URL = "http://monitored.test/api"


def _provider(handler) -> CredentialProvider:
    return CredentialProvider(
        BASE_URL, "probe@test", "secret", transport=httpx.MockTransport(handler),
    )


class TestCredentialProvider:
    def test_login_posts_credentials(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"token": "tok-1"})

        outcome = _provider(handler).ensure_credential()

        assert isinstance(outcome, Credential)
        assert outcome.token == "tok-1"
        assert outcome.header == {"Authorization": "Bearer tok-1"}
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/api/auth/login"
        assert json.loads(seen[0].content) == {"email": "probe@test", "password": "secret"}

    def test_credential_is_cached(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(200, json={"token": f"tok-{len(calls)}"})

        provider = _provider(handler)
        first = provider.ensure_credential()
        second = provider.ensure_credential()
        assert first is second
        assert len(calls) == 1

    def test_invalidate_forces_new_login(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(200, json={"token": f"tok-{len(calls)}"})

        provider = _provider(handler)
        provider.ensure_credential()
        provider.invalidate()
        assert provider.cached is None
        renewed = provider.ensure_credential()
        assert renewed.token == "tok-2"

    def test_rejected_login(self) -> None:
        provider = _provider(lambda r: httpx.Response(401, json={"error": "Invalid credentials"}))
        outcome = provider.ensure_credential()
        assert isinstance(outcome, AuthFailure)
        assert "401" in outcome.reason
        assert provider.cached is None

    def test_failure_is_not_cached(self) -> None:
        responses = iter([
            httpx.Response(500),
            httpx.Response(200, json={"token": "tok-ok"}),
        ])
        provider = _provider(lambda r: next(responses))
        assert isinstance(provider.ensure_credential(), AuthFailure)
        assert provider.ensure_credential().token == "tok-ok"

    def test_missing_token(self) -> None:
        outcome = _provider(lambda r: httpx.Response(200, json={"user": {}})).ensure_credential()
        assert isinstance(outcome, AuthFailure)
        assert "token" in outcome.reason

    def test_non_json_body(self) -> None:
        outcome = _provider(lambda r: httpx.Response(200, text="<html>")).ensure_credential()
        assert isinstance(outcome, AuthFailure)

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("slow", request=request)

        outcome = _provider(handler).ensure_credential()
        assert isinstance(outcome, AuthFailure)
        assert "timed out" in outcome.reason

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        outcome = _provider(handler).ensure_credential()
        assert isinstance(outcome, AuthFailure)
        assert "refused" in outcome.reason
