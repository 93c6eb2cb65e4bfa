"""Tests for the Retention Sweeper."""

from __future__ import annotations

from datetime import timedelta

import pytest

from apiwatch.health.retention import RecordKind, RetentionSweeper
from apiwatch.health.store import HealthStore


class TestCleanupOlderThan:
    def test_deletes_only_rows_past_horizon(self, store, add_check) -> None:
        add_check("/old", age=timedelta(days=8))
        recent = add_check("/recent", age=timedelta(days=1))

        deleted = RetentionSweeper(store).cleanup_older_than(7)

        assert deleted == 1
        remaining = store.list_checks()
        assert [c.id for c in remaining] == [recent.id]

    def test_boundary_rows_untouched(self, store, add_check) -> None:
        add_check("/edge", age=timedelta(days=3) - timedelta(minutes=1))
        add_check("/past", age=timedelta(days=3, minutes=1))
        assert RetentionSweeper(store).cleanup_older_than(3) == 1
        assert [c.endpoint for c in store.list_checks()] == ["/edge"]

    def test_zero_days_clears_everything_older_than_now(self, store, add_check) -> None:
        add_check("/a", age=timedelta(seconds=5))
        add_check("/b", age=timedelta(days=1))
        assert RetentionSweeper(store).cleanup_older_than(0) == 2

    def test_negative_days_rejected(self, store) -> None:
        with pytest.raises(ValueError):
            RetentionSweeper(store).cleanup_older_than(-1)

    def test_errors_kind(self, store, add_check, add_error) -> None:
        add_error(age=timedelta(days=40))
        add_error(age=timedelta(days=10))
        add_check("/old", age=timedelta(days=40))

        deleted = RetentionSweeper(store).cleanup_older_than(30, RecordKind.ERRORS)

        assert deleted == 1
        assert store.count_errors("0000") == 1
        assert store.count_checks() == 1  # health checks untouched


class TestRetentionPolicy:
    def test_defaults(self, store) -> None:
        sweeper = RetentionSweeper(store, check_days=7, error_days=30)
        assert sweeper.get_policy() == {"health_checks": 7, "errors": 30}

    def test_override_persisted(self, store) -> None:
        RetentionSweeper(store).set_policy(health_checks=3)
        fresh = RetentionSweeper(store)
        assert fresh.get_policy() == {"health_checks": 3, "errors": 30}
        assert store.get_setting("system", "retention_period") == {
            "health_checks": 3, "errors": 30,
        }

    def test_override_rejects_less_than_one_day(self, store) -> None:
        with pytest.raises(ValueError):
            RetentionSweeper(store).set_policy(errors=0)
        assert store.get_setting("system", "retention_period") is None

    def test_invalid_stored_value_falls_back(self, store) -> None:
        store.set_setting("system", "retention_period", {"health_checks": "soon", "errors": 0})
        sweeper = RetentionSweeper(store)
        assert sweeper.resolve_days(RecordKind.HEALTH_CHECKS) == 7
        assert sweeper.resolve_days(RecordKind.ERRORS) == 30


class TestSweep:
    def test_sweep_uses_persisted_policy(self, store, add_check) -> None:
        add_check("/a", age=timedelta(days=4))
        add_check("/b", age=timedelta(days=1))
        sweeper = RetentionSweeper(store)
        sweeper.set_policy(health_checks=2)
        assert sweeper.sweep_checks() == 1

    def test_sweep_errors(self, store, add_error) -> None:
        add_error(age=timedelta(days=31))
        assert RetentionSweeper(store).sweep_errors() == 1

    def test_sweep_swallows_failures(self, tmp_path) -> None:
        class BrokenStore(HealthStore):
            def delete_checks_before(self, cutoff: str) -> int:
                raise RuntimeError("disk I/O error")

        assert RetentionSweeper(BrokenStore(tmp_path / "broken.db")).sweep_checks() is None
