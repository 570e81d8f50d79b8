"""
Exception hierarchy for the labour queue.
"""

from typing import Any


class LabourQueueError(Exception):
    """Base exception for the labour queue."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class UnknownWorker(LabourQueueError):
    """Raised when a worker name has no registry entry."""

    def __init__(self, worker: str):
        self.worker = worker
        super().__init__(
            f"Unable to find worker with name {worker}",
            {"worker": worker},
        )


class InvalidIdentity(LabourQueueError):
    """Raised when an identity is not a string."""

    def __init__(self, identity: Any):
        super().__init__(
            "Identity needs to be of type string",
            {"type": type(identity).__name__},
        )


class ReconciliationFailed(LabourQueueError):
    """
    Raised when dead running labours could not be marked unknown.

    The running-set view may be stale, so no labour is reserved.
    """

    def __init__(self, labour_ids: list[int]):
        self.labour_ids = labour_ids
        super().__init__(
            f"Failed to reconcile {len(labour_ids)} running labours",
            {"labour_ids": labour_ids},
        )


class ReservationRaceLost(LabourQueueError):
    """Raised when another process claimed the labour first."""

    def __init__(self, labour_id: int):
        self.labour_id = labour_id
        super().__init__(
            f"Labour {labour_id} is no longer claimable",
            {"labour_id": labour_id},
        )


class LabourNotFound(LabourQueueError):
    """Raised when a labour row no longer exists."""

    def __init__(self, labour_id: int):
        self.labour_id = labour_id
        super().__init__(f"Labour {labour_id} not found", {"labour_id": labour_id})


class LabourNotRunning(LabourQueueError):
    """
    Raised when finishing or rescheduling a labour that is not running.

    The labour was replaced, reconciled as unknown or already completed.
    """

    def __init__(self, labour_id: int, status: str):
        self.labour_id = labour_id
        self.status = status
        super().__init__(
            f"Labour {labour_id} is {status}, not running",
            {"labour_id": labour_id, "status": status},
        )


class StoreError(LabourQueueError):
    """Raised when the persistence store fails an operation."""
