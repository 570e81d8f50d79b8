"""
Process liveness checks.

The queue engine asks a ProcessLiveness whether the process that claimed
a running labour still exists. Implementations must treat unknown or
stale pids as "not alive" instead of raising.
"""

import logging
import os
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class ProcessLiveness(Protocol):
    """Capability to tell whether a labour's owning process is alive."""

    async def is_alive(self, pid: int | None) -> bool:
        """Return True if the process is alive."""
        ...


class PosixProcessLiveness:
    """
    Liveness check using signal 0.

    Only sees processes on the local host, so every worker process must
    share a host with the processes that reserve labours.
    """

    async def is_alive(self, pid: int | None) -> bool:
        # pid 0 and negative pids address process groups
        if pid is None or pid <= 0:
            return False

        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists but owned by another user
            return True
        except OSError as e:
            logger.warning(
                f"Liveness check failed: {e}",
                extra={"pid": pid},
            )
            return False

        return True
