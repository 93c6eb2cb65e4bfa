"""Probe executor: issues one HTTP request per registry entry and records the outcome.

A probe never raises: timeouts, connection errors, bad statuses and missing
credentials all come back as a FAIL CheckResult with ``failure`` set, so one
bad endpoint cannot abort the batch.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import httpx

from apiwatch.registry.endpoints import EndpointDescriptor, EndpointRegistry

from .credentials import AuthFailure, Credential, CredentialProvider
from .models import (
    AUTH_UNAVAILABLE_MESSAGE,
    BatchSummary,
    CheckResult,
    FailureKind,
    Status,
)
from .recorder import ResultRecorder

logger = logging.getLogger(__name__)

AUTH_FAILURE_STATUSES = (401, 403)


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 400


def _body_reason(body: Any) -> str | None:
    """Pull a human-readable failure reason out of a JSON error body."""
    if not isinstance(body, dict):
        return None
    for key in ("error", "message", "detail"):
        value = body.get(key)
        if isinstance(value, dict):
            value = value.get("message") or value.get("code")
        if isinstance(value, str) and value:
            return value
    return None


class ProbeExecutor:
    """Probes every GET endpoint of the registry with bounded parallelism."""

    def __init__(
        self,
        registry: EndpointRegistry,
        recorder: ResultRecorder,
        base_url: str,
        credentials: CredentialProvider | None = None,
        timeout: float = 10.0,
        max_workers: int = 4,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.registry = registry
        self.recorder = recorder
        self.credentials = credentials
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_workers = max(1, max_workers)
        self._transport = transport
        self._clock = clock

    # ── Single probe ──────────────────────────────────────────────────────

    def check_endpoint(
        self,
        descriptor: EndpointDescriptor,
        credential: Credential | AuthFailure | None = None,
    ) -> CheckResult:
        """Probe one endpoint. Never raises."""
        headers: dict[str, str] = {}
        if descriptor.requires_auth:
            if credential is None:
                credential = self._credential()
            if not isinstance(credential, Credential):
                return self._result(
                    descriptor, Status.FAIL,
                    error_message=AUTH_UNAVAILABLE_MESSAGE,
                    failure=FailureKind.AUTH_UNAVAILABLE,
                )
            headers.update(credential.header)

        t0 = self._clock()
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                resp = client.request(
                    descriptor.method, f"{self._base_url}{descriptor.path}", headers=headers,
                )
            latency = self._elapsed_ms(t0)
        except httpx.TimeoutException as e:
            return self._result(
                descriptor, Status.FAIL,
                response_time_ms=self._elapsed_ms(t0),
                error_message=f"Request timed out after {self._timeout:g}s: {e}",
                failure=FailureKind.TIMEOUT,
            )
        except httpx.TransportError as e:
            return self._result(
                descriptor, Status.FAIL,
                response_time_ms=self._elapsed_ms(t0),
                error_message=f"Connection error: {e}",
                failure=FailureKind.CONNECTION,
            )
        except Exception as e:
            return self._result(
                descriptor, Status.FAIL,
                response_time_ms=self._elapsed_ms(t0),
                error_message=f"Error: {type(e).__name__}: {e}",
                failure=FailureKind.ERROR,
            )

        # Try to parse a JSON body: kept for inspection and failure reasons
        body = None
        if "json" in resp.headers.get("content-type", ""):
            try:
                body = resp.json()
            except ValueError:
                body = None
        data = body if isinstance(body, dict) else None

        if is_success(resp.status_code):
            return self._result(
                descriptor, Status.PASS,
                response_time_ms=latency, status_code=resp.status_code, response_data=data,
            )

        if descriptor.requires_auth and resp.status_code in AUTH_FAILURE_STATUSES:
            if self.credentials is not None:
                self.credentials.invalidate()

        reason = _body_reason(body) or f"HTTP {resp.status_code} {resp.reason_phrase}".strip()
        return self._result(
            descriptor, Status.FAIL,
            response_time_ms=latency,
            status_code=resp.status_code,
            error_message=reason,
            failure=FailureKind.HTTP_STATUS,
            response_data=data,
        )

    # ── Batch ─────────────────────────────────────────────────────────────

    def run_all_checks(self) -> BatchSummary:
        """Probe and record every GET endpoint, then fold into one summary."""
        descriptors = self.registry.list_get_endpoints()
        if not descriptors:
            logger.info("No probeable endpoints registered: nothing to check")
            return BatchSummary()

        # One login per cycle, shared by all workers
        credential: Credential | AuthFailure | None = None
        if any(d.requires_auth for d in descriptors):
            credential = self._credential()

        def probe(descriptor: EndpointDescriptor) -> CheckResult:
            result = self.check_endpoint(descriptor, credential)
            self.recorder.record_check(result)
            return result

        with ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(descriptors)),
            thread_name_prefix="probe",
        ) as pool:
            results = list(pool.map(probe, descriptors))

        summary = BatchSummary.fold(results)
        logger.info(
            "Health checks completed: %d/%d passing (avg %sms)",
            summary.passed, summary.total, summary.avg_response_time_ms,
        )
        return summary

    # ── Helpers ───────────────────────────────────────────────────────────

    def _credential(self) -> Credential | AuthFailure:
        if self.credentials is None:
            return AuthFailure("no credential provider configured")
        return self.credentials.ensure_credential()

    def _elapsed_ms(self, t0: float) -> int:
        return max(0, round((self._clock() - t0) * 1000))

    @staticmethod
    def _result(descriptor: EndpointDescriptor, status: Status, **fields: Any) -> CheckResult:
        return CheckResult(
            endpoint=descriptor.path,
            category=descriptor.category,
            method=descriptor.method,
            status=status,
            **fields,
        )
