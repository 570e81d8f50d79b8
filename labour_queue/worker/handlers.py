"""
Labour handler execution.

Handlers must be idempotent: a labour whose process dies mid-run is
marked unknown, and producers may enqueue it again.
"""

import logging

from labour_queue.types.labour import LabourContext, LabourResult
from labour_queue.worker.registry import LabourHandler

logger = logging.getLogger(__name__)


async def execute_labour(
    handler: LabourHandler | None,
    context: LabourContext,
) -> LabourResult:
    """
    Execute a labour with its worker's handler.

    A handler returning None counts as success. Exceptions are turned
    into a failed result so the runner can decide about retries.

    Args:
        handler: The registered handler, or None if the worker is unknown.
        context: The labour context.

    Returns:
        LabourResult from the handler.
    """
    if handler is None:
        logger.error(
            f"No handler for worker: {context.worker}",
            extra={"labour_id": context.labour_id},
        )
        return LabourResult(
            success=False,
            error=f"No handler registered for worker: {context.worker}",
        )

    try:
        result = await handler(context)
    except Exception as e:
        logger.exception(
            "Handler raised exception",
            extra={"labour_id": context.labour_id, "error": str(e)},
        )
        return LabourResult(
            success=False,
            error=f"Handler exception: {e}",
        )

    if result is None:
        return LabourResult(success=True)

    return result
