"""Health subsystem: probe engine, SQLite storage, aggregation, retention, scheduler."""

from .aggregator import Aggregator, parse_timeframe
from .credentials import AuthFailure, Credential, CredentialProvider
from .engine import ProbeExecutor
from .models import BatchSummary, CheckResult, FailureKind, Status
from .recorder import ResultRecorder
from .retention import RecordKind, RetentionSweeper
from .scheduler import HealthScheduler, Scheduler
from .store import HealthStore
