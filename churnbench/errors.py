class ChurnBenchError(Exception):
    pass


class SetupFailure(ChurnBenchError):
    """Raised before the worker loops start. Aborts the run."""

    pass


class NoFundsAvailable(SetupFailure):
    pass


class CheckpointError(SetupFailure):
    pass


class SubmissionFailure(ChurnBenchError):
    """A batch the remote service rejected or never answered."""

    pass


class LedgerRpcError(SubmissionFailure):
    def __init__(
        self,
        method: str,
        code: int | None,
        message: str,
    ) -> None:
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code


class EmptyPool(ChurnBenchError):
    pass


class GateClosed(ChurnBenchError):
    pass
