"""Wires the monitor's components together from settings.

Used by the API lifespan and by the CLI so both run the same object graph.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from apiwatch.config import Settings, settings as default_settings
from apiwatch.errors.service import ErrorStatsService
from apiwatch.health.aggregator import Aggregator
from apiwatch.health.credentials import CredentialProvider
from apiwatch.health.engine import ProbeExecutor
from apiwatch.health.recorder import ResultRecorder
from apiwatch.health.retention import RetentionSweeper
from apiwatch.health.scheduler import HealthScheduler
from apiwatch.health.store import HealthStore
from apiwatch.notifications import NotificationManager
from apiwatch.registry.endpoints import EndpointRegistry

logger = logging.getLogger(__name__)


@dataclass
class Monitor:
    registry: EndpointRegistry
    store: HealthStore
    recorder: ResultRecorder
    aggregator: Aggregator
    sweeper: RetentionSweeper
    credentials: CredentialProvider
    executor: ProbeExecutor
    scheduler: HealthScheduler
    errors: ErrorStatsService
    notifier: NotificationManager

    def attach(self, state: Any) -> None:
        """Expose components on ``app.state`` for the route handlers."""
        state.monitor = self
        state.registry = self.registry
        state.health_store = self.store
        state.aggregator = self.aggregator
        state.sweeper = self.sweeper
        state.health_scheduler = self.scheduler
        state.error_service = self.errors
        state.notifier = self.notifier


def build_monitor(
    cfg: Settings | None = None,
    *,
    registry: EndpointRegistry | None = None,
    store: HealthStore | None = None,
    transport: httpx.BaseTransport | None = None,
    probe_on_start: bool = True,
) -> Monitor:
    cfg = cfg or default_settings

    if registry is None:
        registry = EndpointRegistry(cfg.registry_path)
        registry.load()
    store = store or HealthStore(cfg.db_path)
    recorder = ResultRecorder(store)
    aggregator = Aggregator(store, recent_limit=cfg.recent_list_size)
    sweeper = RetentionSweeper(
        store,
        check_days=cfg.health_check_retention_days,
        error_days=cfg.error_retention_days,
    )
    credentials = CredentialProvider(
        base_url=cfg.api_base_url,
        email=cfg.probe_email,
        password=cfg.probe_password,
        login_path=cfg.login_path,
        timeout=cfg.probe_timeout_seconds,
        transport=transport,
    )
    executor = ProbeExecutor(
        registry,
        recorder,
        base_url=cfg.api_base_url,
        credentials=credentials,
        timeout=cfg.probe_timeout_seconds,
        max_workers=cfg.probe_workers,
        transport=transport,
    )
    notifier = NotificationManager(
        slack_webhook=cfg.slack_webhook_url,
        telegram_token=cfg.telegram_bot_token,
        telegram_chat_id=cfg.telegram_chat_id,
    )
    scheduler = HealthScheduler(
        executor,
        sweeper,
        aggregator,
        store,
        notifier,
        probe_interval_seconds=cfg.probe_interval_seconds,
        check_retention_time=cfg.check_retention_time,
        error_retention_time=cfg.error_retention_time,
        error_report_time=cfg.error_report_time,
        probe_on_start=probe_on_start,
    )
    errors = ErrorStatsService(recorder, aggregator, store)

    logger.info(
        "Monitor ready: %d probeable endpoints against %s",
        len(registry.list_get_endpoints()), cfg.api_base_url,
    )
    return Monitor(
        registry=registry,
        store=store,
        recorder=recorder,
        aggregator=aggregator,
        sweeper=sweeper,
        credentials=credentials,
        executor=executor,
        scheduler=scheduler,
        errors=errors,
        notifier=notifier,
    )
