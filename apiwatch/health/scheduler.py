"""Scheduler: named periodic tasks for probing, retention and error reports.

Uses a simple asyncio loop per task instead of cron-style registration.
Blocking handlers run in a thread pool so a stuck probe never stalls the
event loop, the retention sweeps or manual triggers. Every run is wrapped in
an error boundary and the next run is scheduled independently.

Each task is single-flight: a trigger that arrives while the task is
running is dropped, since the in-flight run covers the same work.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from apiwatch.notifications import NotificationManager

from .aggregator import Aggregator
from .engine import ProbeExecutor
from .models import BatchSummary, to_iso, utc_now
from .retention import RetentionSweeper
from .store import HealthStore

logger = logging.getLogger(__name__)

PROBE_TASK = "probe-cycle"
CHECK_RETENTION_TASK = "health-check-retention"
ERROR_RETENTION_TASK = "error-retention"
ERROR_REPORT_TASK = "daily-error-report"


def parse_daily_time(value: str) -> tuple[int, int]:
    """'02:30' -> (2, 30)."""
    try:
        hour_s, minute_s = value.strip().split(":")
        hour, minute = int(hour_s), int(minute_s)
    except ValueError:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)") from None
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Invalid time of day: {value!r}")
    return hour, minute


@dataclass(frozen=True)
class Schedule:
    """Either a fixed interval or a daily UTC wall-clock time."""

    interval_seconds: float | None = None
    daily_at: tuple[int, int] | None = None

    def __post_init__(self) -> None:
        if (self.interval_seconds is None) == (self.daily_at is None):
            raise ValueError("Schedule needs exactly one of interval_seconds / daily_at")
        if self.interval_seconds is not None and self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

    def next_delay(self, now: datetime) -> float:
        """Seconds from ``now`` until the next run."""
        if self.interval_seconds is not None:
            return float(self.interval_seconds)
        hour, minute = self.daily_at  # type: ignore[misc]
        target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        # A wake-up that lands just short of the target must not fire twice
        if target <= now + timedelta(seconds=1):
            target += timedelta(days=1)
        return (target - now).total_seconds()

    def describe(self) -> str:
        if self.interval_seconds is not None:
            return f"every {self.interval_seconds:g}s"
        hour, minute = self.daily_at  # type: ignore[misc]
        return f"daily at {hour:02d}:{minute:02d} UTC"


@dataclass
class RunOutcome:
    ran: bool
    result: Any = None
    error: str | None = None


class ScheduledTask:
    """A named handler with its schedule and run bookkeeping."""

    def __init__(
        self,
        name: str,
        handler: Callable[[], Any],
        schedule: Schedule,
        run_on_start: bool = False,
    ) -> None:
        self.name = name
        self.handler = handler
        self.schedule = schedule
        self.run_on_start = run_on_start
        self._guard = threading.Lock()
        self.runs = 0
        self.failures = 0
        self.dropped = 0
        self.last_started: str | None = None
        self.last_finished: str | None = None
        self.last_error: str | None = None

    @property
    def running(self) -> bool:
        return self._guard.locked()

    def begin(self) -> bool:
        if not self._guard.acquire(blocking=False):
            self.dropped += 1
            return False
        self.runs += 1
        self.last_started = to_iso(utc_now())
        return True

    def finish(self, error: str | None = None) -> None:
        self.last_finished = to_iso(utc_now())
        self.last_error = error
        if error:
            self.failures += 1
        self._guard.release()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "schedule": self.schedule.describe(),
            "state": "running" if self.running else "idle",
            "runs": self.runs,
            "failures": self.failures,
            "dropped_triggers": self.dropped,
            "last_started": self.last_started,
            "last_finished": self.last_finished,
            "last_error": self.last_error,
        }


class Scheduler:
    """Owns named periodic tasks. Constructed and started explicitly."""

    def __init__(
        self,
        max_workers: int = 4,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._tasks: dict[str, ScheduledTask] = {}
        self._loops: list[asyncio.Task[None]] = []
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="scheduler")
        self._clock = clock
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def add_task(
        self,
        name: str,
        handler: Callable[[], Any],
        *,
        interval_seconds: float | None = None,
        daily_at: tuple[int, int] | None = None,
        run_on_start: bool = False,
    ) -> ScheduledTask:
        if name in self._tasks:
            raise ValueError(f"Task already registered: {name}")
        task = ScheduledTask(
            name, handler, Schedule(interval_seconds, daily_at), run_on_start,
        )
        self._tasks[name] = task
        return task

    def get_task(self, name: str) -> ScheduledTask:
        try:
            return self._tasks[name]
        except KeyError:
            raise KeyError(f"Unknown task: {name}") from None

    async def start(self) -> None:
        """Start one loop per registered task."""
        if self._running:
            return
        self._running = True
        for task in self._tasks.values():
            self._loops.append(asyncio.create_task(self._loop(task), name=f"scheduler-{task.name}"))
        logger.info(
            "Scheduler started: %s",
            ", ".join(f"{t.name} ({t.schedule.describe()})" for t in self._tasks.values()) or "no tasks",
        )

    async def stop(self) -> None:
        """Cancel all task loops. In-flight thread work is not interrupted."""
        self._running = False
        for loop_task in self._loops:
            loop_task.cancel()
        if self._loops:
            await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops.clear()
        self._executor.shutdown(wait=False)
        logger.info("Scheduler stopped")

    async def run_now(self, name: str) -> RunOutcome:
        """Run a task immediately (manual trigger). Dropped if already running."""
        return await self._run(self.get_task(name), trigger="manual")

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "tasks": [t.to_dict() for t in self._tasks.values()],
        }

    async def _loop(self, task: ScheduledTask) -> None:
        """Persistent loop; each run is scheduled independently of the previous one."""
        if task.run_on_start:
            await self._run(task, trigger="startup")

        while self._running:
            try:
                await asyncio.sleep(task.schedule.next_delay(self._clock()))
            except asyncio.CancelledError:
                break
            if not self._running:
                break
            await self._run(task, trigger="schedule")

    async def _run(self, task: ScheduledTask, trigger: str) -> RunOutcome:
        """Single run behind the task's single-flight guard and error boundary."""
        if not task.begin():
            logger.info("Task %s already running: %s trigger dropped", task.name, trigger)
            return RunOutcome(ran=False)

        logger.debug("Running task %s (%s)", task.name, trigger)
        work = asyncio.ensure_future(self._invoke(task))
        try:
            result = await asyncio.shield(work)
        except asyncio.CancelledError:
            # Thread work cannot be cancelled; the guard stays held until it returns
            logger.info("Task %s caller cancelled, run continues in background", task.name)
            work.add_done_callback(lambda fut: self._settle(task, fut))
            raise
        except Exception as e:
            logger.exception("Scheduled task %s failed", task.name)
            task.finish(error=f"{type(e).__name__}: {e}")
            return RunOutcome(ran=True, error=task.last_error)

        task.finish()
        return RunOutcome(ran=True, result=result)

    async def _invoke(self, task: ScheduledTask) -> Any:
        if inspect.iscoroutinefunction(task.handler):
            return await task.handler()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, task.handler)

    @staticmethod
    def _settle(task: ScheduledTask, work: asyncio.Future[Any]) -> None:
        """Release the guard of a run whose caller went away."""
        if work.cancelled():
            task.finish(error="cancelled")
            return
        exc = work.exception()
        if exc is not None:
            logger.error("Scheduled task %s failed", task.name, exc_info=exc)
            task.finish(error=f"{type(exc).__name__}: {exc}")
        else:
            task.finish()


class HealthScheduler(Scheduler):
    """Scheduler pre-wired with the monitor's probe, retention and report tasks."""

    def __init__(
        self,
        executor: ProbeExecutor,
        sweeper: RetentionSweeper,
        aggregator: Aggregator,
        store: HealthStore,
        notifier: NotificationManager | None = None,
        *,
        probe_interval_seconds: float = 300,
        check_retention_time: str = "02:00",
        error_retention_time: str = "03:00",
        error_report_time: str = "08:00",
        probe_on_start: bool = True,
        max_workers: int = 4,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(max_workers=max_workers, clock=clock)
        self.executor = executor
        self.sweeper = sweeper
        self.aggregator = aggregator
        self.store = store
        self.notifier = notifier or NotificationManager()

        self.add_task(
            PROBE_TASK, self._probe_cycle,
            interval_seconds=probe_interval_seconds, run_on_start=probe_on_start,
        )
        self.add_task(
            CHECK_RETENTION_TASK, sweeper.sweep_checks,
            daily_at=parse_daily_time(check_retention_time),
        )
        self.add_task(
            ERROR_RETENTION_TASK, sweeper.sweep_errors,
            daily_at=parse_daily_time(error_retention_time),
        )
        self.add_task(
            ERROR_REPORT_TASK, self._error_report,
            daily_at=parse_daily_time(error_report_time),
        )

    async def trigger_probe_cycle(self) -> BatchSummary | None:
        """Manual "run checks now". Returns None when a cycle is already running."""
        outcome = await self.run_now(PROBE_TASK)
        if not outcome.ran:
            return None
        if outcome.error:
            raise RuntimeError(f"Probe cycle failed: {outcome.error}")
        return outcome.result

    async def run_error_report(self) -> dict[str, Any] | None:
        outcome = await self.run_now(ERROR_REPORT_TASK)
        return outcome.result

    async def _probe_cycle(self) -> BatchSummary:
        loop = asyncio.get_running_loop()
        summary = await loop.run_in_executor(self._executor, self.executor.run_all_checks)
        if summary.failed:
            logger.warning("%d endpoints failed health checks", summary.failed)
            for r in summary.results:
                if not r.passed:
                    logger.error(
                        "Failed endpoint: %s - %s (%s)",
                        r.category, r.endpoint, r.error_message or r.status_code,
                    )
            await self.notifier.notify_probe_failures(summary)
        return summary

    async def _error_report(self) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        stats = await loop.run_in_executor(
            self._executor, self.aggregator.get_error_stats, "24h",
        )
        channels = await loop.run_in_executor(
            self._executor, self.store.get_setting, "system", "notification",
        )
        await self.notifier.notify_error_report(
            stats, channels if isinstance(channels, dict) else None,
        )
        return stats
