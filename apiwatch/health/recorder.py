"""Result recorder: the single write path into the health and error stores.

Recording is best-effort: a storage failure is logged and swallowed so the
monitor's own database can never take down the monitored system.
"""

from __future__ import annotations

import logging
import uuid

from apiwatch.errors.models import ErrorRecord

from .models import CheckResult, to_iso, utc_now
from .store import HealthStore

logger = logging.getLogger(__name__)


class ResultRecorder:
    """Assigns ids/timestamps and inserts immutable rows."""

    def __init__(self, store: HealthStore) -> None:
        self.store = store

    def record_check(self, result: CheckResult) -> bool:
        """Persist one CheckResult. Returns False if the insert failed."""
        if not result.id:
            result.id = uuid.uuid4().hex
        if not result.created_at:
            result.created_at = to_iso(utc_now())
        try:
            self.store.insert_check(result)
        except Exception:
            logger.exception(
                "Failed to record health check %s %s", result.category, result.endpoint,
            )
            return False
        return True

    def record_error(self, record: ErrorRecord) -> bool:
        """Persist one ErrorRecord. Returns False if the insert failed."""
        if not record.id:
            record.id = uuid.uuid4().hex
        if not record.created_at:
            record.created_at = to_iso(utc_now())
        try:
            self.store.insert_error(record)
        except Exception:
            logger.exception("Failed to record error %s (%s)", record.code, record.request_id)
            return False
        return True
