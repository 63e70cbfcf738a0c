from .models import Entry, LogLevel


class PoolDebug(Entry, kw_only=True):
    workers: int
    level: LogLevel = LogLevel.DEBUG

class PoolInfo(Entry, kw_only=True):
    workers: int
    level: LogLevel = LogLevel.INFO

class PoolError(Entry, kw_only=True):
    workers: int
    level: LogLevel = LogLevel.ERROR

class PoolFatal(Entry, kw_only=True):
    workers: int
    level: LogLevel = LogLevel.FATAL

class WorkerDebug(Entry, kw_only=True):
    worker_id: int
    level: LogLevel = LogLevel.DEBUG

class WorkerInfo(Entry, kw_only=True):
    worker_id: int
    level: LogLevel = LogLevel.INFO

class WorkerWarning(Entry, kw_only=True):
    worker_id: int
    level: LogLevel = LogLevel.WARN

class WorkerError(Entry, kw_only=True):
    worker_id: int
    level: LogLevel = LogLevel.ERROR

class PressureInfo(Entry, kw_only=True):
    pressure: str
    usage_pct: float
    level: LogLevel = LogLevel.INFO

class PressureWarning(Entry, kw_only=True):
    pressure: str
    usage_pct: float
    level: LogLevel = LogLevel.WARN

class FailureRateWarning(Entry, kw_only=True):
    failure_rate: float
    pause_seconds: float
    level: LogLevel = LogLevel.WARN

class StatsInfo(Entry, kw_only=True):
    elapsed: float
    submitted: int
    succeeded: int
    failed: int
    created: int
    updated: int
    level: LogLevel = LogLevel.INFO

class LedgerDebug(Entry, kw_only=True):
    address: str
    level: LogLevel = LogLevel.DEBUG

class LedgerInfo(Entry, kw_only=True):
    address: str
    level: LogLevel = LogLevel.INFO

class LedgerWarning(Entry, kw_only=True):
    address: str
    level: LogLevel = LogLevel.WARN

class CheckpointInfo(Entry, kw_only=True):
    path: str
    workers: int
    objects: int
    level: LogLevel = LogLevel.INFO
