"""
Worker module.
Contains the worker registry, handler execution, and the runner process.
"""

from labour_queue.worker.registry import (
    LabourHandler,
    RecurringConfig,
    WorkerConfig,
    WorkerRegistry,
    load_registry,
)

__all__ = [
    "LabourHandler",
    "RecurringConfig",
    "WorkerConfig",
    "WorkerRegistry",
    "load_registry",
]
