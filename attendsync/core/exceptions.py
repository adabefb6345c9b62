"""
Error taxonomy for the sync core.

RecordValidationError: non-fatal; the offending record is logged and skipped.
NetworkError: fatal to the current pipeline run; retried only at the next
    checkpoint or on a manual trigger.
ActionExecutionError: per reconciliation action; collected, never aborts siblings.
LockRejectedError: another pipeline holds the processing lock; not queued.
"""


class SyncError(Exception):
    """Base class for every error raised by the sync core."""


class RecordValidationError(SyncError):
    def __init__(self, message: str, record_id: int | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class NetworkError(SyncError):
    pass


class ActionExecutionError(SyncError):
    def __init__(self, message: str, action_type: str, record_id: int) -> None:
        super().__init__(message)
        self.action_type = action_type
        self.record_id = record_id

    def __str__(self) -> str:
        return f"{self.action_type} #{self.record_id}: {self.args[0]}"


class LockRejectedError(SyncError):
    def __init__(self, requested: str, holder: str) -> None:
        super().__init__("processing lock active")
        self.requested = requested
        self.holder = holder


class PipelineCancelledError(SyncError):
    pass
