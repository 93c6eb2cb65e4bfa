"""Credential provider: logs in once and caches a bearer token for protected probes.

The token lives for the process lifetime. A probe that sees 401/403 calls
``invalidate()`` and the next cycle logs in again; there is no proactive
refresh. Failures come back as ``AuthFailure`` values instead of exceptions.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from .models import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    token: str
    obtained_at: datetime = field(default_factory=utc_now)

    @property
    def header(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@dataclass(frozen=True)
class AuthFailure:
    reason: str


class CredentialProvider:
    """Obtains, caches and invalidates the probe account's bearer token."""

    def __init__(
        self,
        base_url: str,
        email: str,
        password: str,
        login_path: str = "/auth/login",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._login_url = f"{base_url.rstrip('/')}{login_path}"
        self._email = email
        self._password = password
        self._timeout = timeout
        self._transport = transport
        self._credential: Credential | None = None
        self._lock = threading.Lock()

    @property
    def cached(self) -> Credential | None:
        return self._credential

    def ensure_credential(self) -> Credential | AuthFailure:
        """Return the cached credential, logging in first if there is none."""
        with self._lock:
            if self._credential is not None:
                return self._credential
            outcome = self._login()
            if isinstance(outcome, Credential):
                self._credential = outcome
            return outcome

    def invalidate(self) -> None:
        """Drop the cached token; the next ensure_credential() logs in again."""
        with self._lock:
            if self._credential is not None:
                logger.info("Probe credential invalidated")
            self._credential = None

    def _login(self) -> Credential | AuthFailure:
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                resp = client.post(
                    self._login_url,
                    json={"email": self._email, "password": self._password},
                )
        except httpx.TimeoutException:
            return self._fail("Login request timed out")
        except httpx.HTTPError as e:
            return self._fail(f"Login request failed: {e}")

        if resp.status_code >= 400:
            return self._fail(f"Authentication failed: {resp.status_code}")

        try:
            token = resp.json().get("token")
        except Exception:
            token = None
        if not token:
            return self._fail("Login response did not contain a token")

        logger.info("Obtained probe credential for %s", self._email)
        return Credential(token=token)

    @staticmethod
    def _fail(reason: str) -> AuthFailure:
        logger.warning("Probe authentication unavailable: %s", reason)
        return AuthFailure(reason)
