"""
Labour-related type definitions for internal use.
"""

from dataclasses import dataclass
from typing import Any, NamedTuple

from pydantic import BaseModel


class RunningKey(NamedTuple):
    """(worker, identity) pair of a labour occupying the running set."""

    worker: str
    identity: str


class LabourResult(BaseModel):
    """
    Result of labour execution.
    Returned by worker handlers after processing.
    """

    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None


@dataclass
class LabourContext:
    """
    Context passed to worker handlers during execution.
    Contains labour metadata and the sanitized payload.
    """

    labour_id: int
    worker: str
    identity: str
    payload: Any
    attempt: int
    retries: int
    pid: int

    @property
    def is_last_attempt(self) -> bool:
        """Check if a failure of this attempt will not be retried."""
        return self.attempt > self.retries

    @property
    def remaining_retries(self) -> int:
        """Get the number of retries left after this attempt."""
        return max(0, self.retries - self.attempt + 1)
