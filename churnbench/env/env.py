from __future__ import annotations

from typing import Callable, Dict, Literal, Union

from pydantic import (
    BaseModel,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    model_validator,
)

from .time_parser import TimeParser

PrimaryType = Union[str, int, float, bytes, bool]


def _to_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Env(BaseModel):
    CHURNBENCH_RPC_URL: StrictStr = "http://127.0.0.1:9000"
    CHURNBENCH_FAUCET_URL: StrictStr = "http://127.0.0.1:9123/gas"
    CHURNBENCH_PACKAGE_ID: StrictStr | None = None
    CHURNBENCH_MODULE: StrictStr = "io_churn"
    CHURNBENCH_DURATION: StrictStr = "300s"
    CHURNBENCH_WORKERS: StrictInt = 8
    CHURNBENCH_BATCH_SIZE: StrictInt = 50
    CHURNBENCH_TARGET_TPS: StrictInt = 0
    CHURNBENCH_MAX_INFLIGHT: StrictInt = 100
    CHURNBENCH_CREATE_PCT: StrictInt = 5
    CHURNBENCH_SEED_OBJECTS: StrictInt = 500
    CHURNBENCH_MAX_TRACKED_OBJECTS: StrictInt = 5000
    CHURNBENCH_MEMORY_THRESHOLD: StrictFloat = 0.75
    CHURNBENCH_MEMORY_CRITICAL: StrictFloat = 0.85
    CHURNBENCH_MEMORY_EMERGENCY: StrictFloat = 0.92
    CHURNBENCH_MEMORY_SAMPLE_INTERVAL: StrictStr = "0.5s"
    CHURNBENCH_GAS_BUDGET: StrictInt = 500_000_000
    CHURNBENCH_STATS_INTERVAL: StrictStr = "30s"
    CHURNBENCH_USE_LARGE_PAYLOAD: StrictBool = False
    CHURNBENCH_LARGE_PAYLOAD_BATCH_CAP: StrictInt = 20
    CHURNBENCH_REQUEST_TIMEOUT: StrictStr = "30s"
    CHURNBENCH_OUTPUT_PATH: StrictStr | None = None
    CHURNBENCH_SAVE_PATH: StrictStr | None = None
    CHURNBENCH_LOAD_PATH: StrictStr | None = None
    CHURNBENCH_LOG_LEVEL: Literal[
        "trace", "debug", "info", "warn", "error", "critical", "fatal"
    ] = "info"
    CHURNBENCH_LOGS_DIRECTORY: StrictStr | None = None

    @model_validator(mode="after")
    def validate_bounds(self) -> Env:
        thresholds = (
            self.CHURNBENCH_MEMORY_THRESHOLD,
            self.CHURNBENCH_MEMORY_CRITICAL,
            self.CHURNBENCH_MEMORY_EMERGENCY,
        )

        if any(threshold < 0 or threshold > 1 for threshold in thresholds):
            raise ValueError("Memory thresholds must be within [0, 1]")

        if not (thresholds[0] < thresholds[1] < thresholds[2]):
            raise ValueError(
                "Memory thresholds must increase: light < critical < emergency"
            )

        if not (0 <= self.CHURNBENCH_CREATE_PCT <= 100):
            raise ValueError("Create percentage must be within [0, 100]")

        for name in (
            "CHURNBENCH_WORKERS",
            "CHURNBENCH_BATCH_SIZE",
            "CHURNBENCH_MAX_INFLIGHT",
            "CHURNBENCH_LARGE_PAYLOAD_BATCH_CAP",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")

        for name in (
            "CHURNBENCH_TARGET_TPS",
            "CHURNBENCH_SEED_OBJECTS",
            "CHURNBENCH_MAX_TRACKED_OBJECTS",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")

        parser = TimeParser()
        for name in (
            "CHURNBENCH_DURATION",
            "CHURNBENCH_MEMORY_SAMPLE_INTERVAL",
            "CHURNBENCH_STATS_INTERVAL",
            "CHURNBENCH_REQUEST_TIMEOUT",
        ):
            parser.parse(getattr(self, name))

        return self

    @property
    def duration_seconds(self) -> float:
        return TimeParser().parse(self.CHURNBENCH_DURATION)

    @property
    def stats_interval_seconds(self) -> float:
        return TimeParser().parse(self.CHURNBENCH_STATS_INTERVAL)

    @property
    def memory_sample_interval_seconds(self) -> float:
        return TimeParser().parse(self.CHURNBENCH_MEMORY_SAMPLE_INTERVAL)

    @property
    def request_timeout_seconds(self) -> float:
        return TimeParser().parse(self.CHURNBENCH_REQUEST_TIMEOUT)

    @property
    def effective_batch_size(self) -> int:
        if self.CHURNBENCH_USE_LARGE_PAYLOAD:
            return min(
                self.CHURNBENCH_BATCH_SIZE,
                self.CHURNBENCH_LARGE_PAYLOAD_BATCH_CAP,
            )

        return self.CHURNBENCH_BATCH_SIZE

    def summary_config(
        self,
        workers: int | None = None,
    ) -> Dict[str, PrimaryType | None]:
        """
        The run configuration as applied. ``workers`` overrides the
        configured count when a checkpoint decided it.
        """
        return {
            "workers": self.CHURNBENCH_WORKERS if workers is None else workers,
            "batch_size": self.effective_batch_size,
            "create_pct": self.CHURNBENCH_CREATE_PCT,
            "max_inflight": self.CHURNBENCH_MAX_INFLIGHT,
            "target_tps": self.CHURNBENCH_TARGET_TPS,
            "duration": self.CHURNBENCH_DURATION,
            "seed_objects": self.CHURNBENCH_SEED_OBJECTS,
            "max_tracked_objects": self.CHURNBENCH_MAX_TRACKED_OBJECTS,
            "memory_threshold": self.CHURNBENCH_MEMORY_THRESHOLD,
            "memory_critical": self.CHURNBENCH_MEMORY_CRITICAL,
            "memory_emergency": self.CHURNBENCH_MEMORY_EMERGENCY,
            "gas_budget": self.CHURNBENCH_GAS_BUDGET,
            "use_large_payload": self.CHURNBENCH_USE_LARGE_PAYLOAD,
            "package_id": self.CHURNBENCH_PACKAGE_ID,
            "rpc_url": self.CHURNBENCH_RPC_URL,
        }

    @classmethod
    def types_map(cls) -> Dict[str, Callable[[str], PrimaryType]]:
        return {
            "CHURNBENCH_RPC_URL": str,
            "CHURNBENCH_FAUCET_URL": str,
            "CHURNBENCH_PACKAGE_ID": str,
            "CHURNBENCH_MODULE": str,
            "CHURNBENCH_DURATION": str,
            "CHURNBENCH_WORKERS": int,
            "CHURNBENCH_BATCH_SIZE": int,
            "CHURNBENCH_TARGET_TPS": int,
            "CHURNBENCH_MAX_INFLIGHT": int,
            "CHURNBENCH_CREATE_PCT": int,
            "CHURNBENCH_SEED_OBJECTS": int,
            "CHURNBENCH_MAX_TRACKED_OBJECTS": int,
            "CHURNBENCH_MEMORY_THRESHOLD": float,
            "CHURNBENCH_MEMORY_CRITICAL": float,
            "CHURNBENCH_MEMORY_EMERGENCY": float,
            "CHURNBENCH_MEMORY_SAMPLE_INTERVAL": str,
            "CHURNBENCH_GAS_BUDGET": int,
            "CHURNBENCH_STATS_INTERVAL": str,
            "CHURNBENCH_USE_LARGE_PAYLOAD": _to_bool,
            "CHURNBENCH_LARGE_PAYLOAD_BATCH_CAP": int,
            "CHURNBENCH_REQUEST_TIMEOUT": str,
            "CHURNBENCH_OUTPUT_PATH": str,
            "CHURNBENCH_SAVE_PATH": str,
            "CHURNBENCH_LOAD_PATH": str,
            "CHURNBENCH_LOG_LEVEL": str,
            "CHURNBENCH_LOGS_DIRECTORY": str,
        }
