"""
Self-regulation primitives for the worker pool.

- Admission gate bounding in-flight submissions
- Per-worker failure backoff
- Adaptive pacing from the global failure ratio
- Reader/writer exclusion for worker-owned state
"""

from churnbench.reliability.admission_gate import (
    ConcurrencyGate as ConcurrencyGate,
    Permit as Permit,
)
from churnbench.reliability.failure_backoff import (
    BackoffGrowth as BackoffGrowth,
    BackoffPolicy as BackoffPolicy,
    FailureBackoff as FailureBackoff,
    FEE_HANDLE_POLL_POLICY as FEE_HANDLE_POLL_POLICY,
    WORKER_FAILURE_POLICY as WORKER_FAILURE_POLICY,
)
from churnbench.reliability.failure_rate import (
    AdaptiveRateController as AdaptiveRateController,
    FailureRateConfig as FailureRateConfig,
    FailureRateDecision as FailureRateDecision,
    FailureRateState as FailureRateState,
)
from churnbench.reliability.rw_lock import RWLock as RWLock
