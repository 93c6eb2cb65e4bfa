"""Retention sweeper: bulk-deletes health checks and error records past their horizon."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from .models import to_iso, utc_now
from .store import HealthStore

logger = logging.getLogger(__name__)

# Persisted override: settings(category='system', key='retention_period')
SETTINGS_CATEGORY = "system"
RETENTION_KEY = "retention_period"


class RecordKind(str, Enum):
    HEALTH_CHECKS = "health_checks"
    ERRORS = "errors"


class RetentionSweeper:
    """Deletes rows whose created_at is older than ``now - days``."""

    def __init__(
        self,
        store: HealthStore,
        check_days: int = 7,
        error_days: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self._defaults = {RecordKind.HEALTH_CHECKS: check_days, RecordKind.ERRORS: error_days}
        self._clock = clock

    def cleanup_older_than(
        self, days: int, kind: RecordKind = RecordKind.HEALTH_CHECKS,
    ) -> int:
        """Delete every row of ``kind`` older than ``days``. Returns the deleted count."""
        if days < 0:
            raise ValueError(f"Retention days must be >= 0, got {days}")
        cutoff = to_iso(self._clock() - timedelta(days=days))
        if kind == RecordKind.ERRORS:
            return self.store.delete_errors_before(cutoff)
        return self.store.delete_checks_before(cutoff)

    # ── Policy ────────────────────────────────────────────────────────────

    def get_policy(self) -> dict[str, int]:
        """Effective retention days per record kind."""
        return {kind.value: self.resolve_days(kind) for kind in RecordKind}

    def set_policy(
        self, health_checks: int | None = None, errors: int | None = None,
    ) -> dict[str, int]:
        """Persist an override; unspecified kinds keep their current value."""
        policy = self.get_policy()
        for kind, days in ((RecordKind.HEALTH_CHECKS, health_checks), (RecordKind.ERRORS, errors)):
            if days is None:
                continue
            if days < 1:
                raise ValueError(f"Retention for {kind.value} must be at least 1 day")
            policy[kind.value] = days
        self.store.set_setting(SETTINGS_CATEGORY, RETENTION_KEY, policy)
        logger.info("Retention policy updated: %s", policy)
        return policy

    def resolve_days(self, kind: RecordKind) -> int:
        """Persisted setting if present and valid, else the configured default."""
        default = self._defaults[kind]
        try:
            stored: Any = self.store.get_setting(SETTINGS_CATEGORY, RETENTION_KEY)
        except Exception:
            logger.exception("Could not read retention setting: using default %d days", default)
            return default
        if not isinstance(stored, dict) or kind.value not in stored:
            return default
        try:
            days = int(stored[kind.value])
        except (TypeError, ValueError):
            logger.warning("Invalid retention setting for %s: %r", kind.value, stored[kind.value])
            return default
        return days if days >= 1 else default

    # ── Scheduled entry points ────────────────────────────────────────────

    def sweep(self, kind: RecordKind) -> int | None:
        """Resolve the horizon and clean up. Failures are logged, not raised."""
        days = self.resolve_days(kind)
        try:
            deleted = self.cleanup_older_than(days, kind)
        except Exception:
            logger.exception("Retention sweep for %s failed: will retry next run", kind.value)
            return None
        logger.info("Cleaned up %d old %s records (older than %d days)", deleted, kind.value, days)
        return deleted

    def sweep_checks(self) -> int | None:
        return self.sweep(RecordKind.HEALTH_CHECKS)

    def sweep_errors(self) -> int | None:
        return self.sweep(RecordKind.ERRORS)
