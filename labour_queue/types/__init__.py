"""
Type definitions for the labour queue.
Contains input/output type definitions shared across modules.
"""

from labour_queue.types.labour import (
    LabourContext,
    LabourResult,
    RunningKey,
)
from labour_queue.types.payload import (
    Payload,
    PayloadKind,
    classify,
    sanitize_payload,
)

__all__ = [
    # Labour types
    "LabourContext",
    "LabourResult",
    "RunningKey",
    # Payload types
    "Payload",
    "PayloadKind",
    "classify",
    "sanitize_payload",
]
