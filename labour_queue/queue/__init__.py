"""
Queue module.
Contains the queue engine and execution time resolution.
"""

from labour_queue.queue.engine import QueueEngine
from labour_queue.queue.scheduling import resolve_execute_at, utcnow

__all__ = ["QueueEngine", "resolve_execute_at", "utcnow"]
