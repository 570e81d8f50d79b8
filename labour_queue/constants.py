"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class LabourStatus(StrEnum):
    """
    Labour lifecycle states.

    State transitions:
    - PENDING -> RUNNING (claimed by a worker process)
    - PENDING -> REPLACED (superseded by a newer labour, replace rule)
    - RUNNING -> FINISHED (handler done, or retries exhausted)
    - RUNNING -> PENDING (rescheduled for retry)
    - RUNNING -> UNKNOWN (owning process found dead)
    """

    PENDING = "pending"
    RUNNING = "running"
    FINISHED = "finished"
    REPLACED = "replaced"
    UNKNOWN = "unknown"


class WorkerRule(StrEnum):
    """
    Per-worker admission and concurrency policy.

    Rules are evaluated per (worker, identity) pair:
    - NONE: no dedup, no serialization
    - IGNORE: drop new labours while one is pending or running
    - REPLACE: supersede pending labours with the new one
    - WAIT: run at most one labour at a time
    """

    NONE = "none"
    IGNORE = "ignore"
    REPLACE = "replace"
    WAIT = "wait"


UNPROCESSED_STATUSES: tuple[LabourStatus, ...] = (
    LabourStatus.PENDING,
    LabourStatus.RUNNING,
)

# Worker configuration defaults
DEFAULT_PRIORITY = 1000
DEFAULT_RULE = WorkerRule.WAIT
DEFAULT_DELAY_SECONDS = 0
DEFAULT_RETRIES = 0
DEFAULT_RESCHEDULE_SECONDS = 60
DEFAULT_RECURRING_IDENTITY = "recurring"

# Metrics names
METRIC_QUEUE_DEPTH = "labour_queue_depth"
METRIC_LABOURS_ENQUEUED = "labours_enqueued_total"
METRIC_LABOURS_COMPLETED = "labours_completed_total"
METRIC_LABOUR_DURATION = "labour_duration_seconds"
METRIC_LABOURS_RESERVED = "labours_reserved_total"
METRIC_LABOURS_UNKNOWN = "labours_unknown_total"
METRIC_RESERVATION_RACES = "reservation_races_lost_total"

# Trace span names
SPAN_ENQUEUE = "enqueue_labour"
SPAN_RESERVE = "reserve_labour"
SPAN_EXECUTE_LABOUR = "execute_labour"
