"""
Worker process for executing labours.

The worker claims labours from the queue, executes them, and finishes or
reschedules them according to the worker's retry configuration.
"""

import asyncio
import logging
import os
import signal
import time

from labour_queue.config import get_settings
from labour_queue.constants import SPAN_EXECUTE_LABOUR
from labour_queue.db import close_engine, create_engine, create_session_factory
from labour_queue.db.models import Labour
from labour_queue.exceptions import LabourNotRunning
from labour_queue.observability.logging import (
    bind_context,
    clear_context,
    setup_logging,
)
from labour_queue.observability.metrics import get_metrics, setup_metrics
from labour_queue.observability.tracing import (
    get_tracer,
    instrument_sqlalchemy,
    setup_tracing,
)
from labour_queue.queue.engine import QueueEngine
from labour_queue.types.labour import LabourContext
from labour_queue.worker.handlers import execute_labour
from labour_queue.worker.registry import load_registry

logger = logging.getLogger(__name__)


class Worker:
    """
    Labour worker that polls for and executes labours.

    Features:
    - Compare-and-swap claiming, safe with many worker processes
    - Recurring labours scheduled on every poll
    - Retries through reschedule, up to the worker's configured count
    - Graceful shutdown on SIGTERM/SIGINT
    """

    def __init__(
        self,
        queue: QueueEngine,
        batch_size: int | None = None,
        poll_interval: float | None = None,
        pid: int | None = None,
    ):
        """
        Initialize the worker.

        Args:
            queue: The queue engine to claim labours from.
            batch_size: Labours claimed and executed concurrently per poll.
            poll_interval: Seconds between polls when the queue is idle.
            pid: Process id recorded on claimed labours. Defaults to the
                current process, which is what liveness checks look at.
        """
        settings = get_settings()

        self.pid = pid or os.getpid()
        self.batch_size = batch_size or settings.worker_batch_size
        self.poll_interval = poll_interval or settings.worker_poll_interval_seconds

        self._queue = queue
        self._registry = queue.registry
        self._running = False
        self._current_labours: dict[int, asyncio.Task] = {}
        self._metrics = get_metrics()

    async def start(self) -> None:
        """Start the worker."""
        logger.info(
            "Worker starting",
            extra={
                "pid": self.pid,
                "batch_size": self.batch_size,
                "workers": self._registry.list_workers(),
            },
        )

        self._running = True

        while self._running:
            try:
                processed = await self.run_once()

                if processed == 0:
                    await asyncio.sleep(self.poll_interval)

            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"pid": self.pid},
                )
                await asyncio.sleep(self.poll_interval)

        if self._current_labours:
            logger.info(f"Waiting for {len(self._current_labours)} labours to complete")
            await asyncio.gather(*self._current_labours.values(), return_exceptions=True)

        logger.info("Worker stopped", extra={"pid": self.pid})

    async def stop(self) -> None:
        """Stop the worker gracefully."""
        logger.info("Worker stopping", extra={"pid": self.pid})
        self._running = False

    async def run_once(self) -> int:
        """
        Claim labours and execute them.

        Returns:
            Number of labours processed.
        """
        await self._queue.schedule_recurring()

        labours: list[Labour] = []
        while len(labours) < self.batch_size:
            labour = await self._queue.claim(self.pid)
            if labour is None:
                break
            labours.append(labour)

        if not labours:
            return 0

        logger.info(f"Claimed {len(labours)} labours", extra={"pid": self.pid})

        tasks = []
        for labour in labours:
            task = asyncio.create_task(self._execute_labour(labour))
            self._current_labours[labour.id] = task
            tasks.append(task)

        await asyncio.gather(*tasks, return_exceptions=True)

        self._metrics.update_queue_depth(await self._queue.stats())

        return len(labours)

    async def _execute_labour(self, labour: Labour) -> None:
        """
        Execute a single running labour.

        Handles the rest of the lifecycle:
        1. Execute the handler
        2. Finish on success
        3. On failure, reschedule while retries remain, else finish with
           the error recorded

        Args:
            labour: The labour, already marked running.
        """
        start_time = time.monotonic()
        config = self._registry.get_worker_config(labour.worker)
        retries = config.retries if config is not None else 0

        context = LabourContext(
            labour_id=labour.id,
            worker=labour.worker,
            identity=labour.identity,
            payload=labour.payload,
            attempt=labour.attempts,
            retries=retries,
            pid=self.pid,
        )

        try:
            bind_context(labour_id=labour.id, worker=labour.worker)

            logger.info(
                "Executing labour",
                extra={
                    "labour_id": labour.id,
                    "worker": labour.worker,
                    "attempt": context.attempt,
                },
            )

            with get_tracer().start_as_current_span(SPAN_EXECUTE_LABOUR) as span:
                span.set_attribute("labour_id", labour.id)
                span.set_attribute("worker", labour.worker)
                span.set_attribute("attempt", context.attempt)

                result = await execute_labour(
                    self._registry.get_handler(labour.worker), context
                )

            duration = time.monotonic() - start_time

            if result.success:
                await self._queue.finish(labour)
                outcome = "finished"

                logger.info(
                    "Labour completed successfully",
                    extra={"labour_id": labour.id, "duration": f"{duration:.2f}s"},
                )
            elif config is not None and not context.is_last_attempt:
                await self._queue.reschedule(labour, error=result.error)
                outcome = "rescheduled"

                logger.warning(
                    "Labour failed, rescheduled",
                    extra={
                        "labour_id": labour.id,
                        "error": result.error,
                        "attempt": context.attempt,
                    },
                )
            else:
                await self._queue.finish(labour, error=result.error)
                outcome = "failed"

                logger.error(
                    "Labour failed, no retries left",
                    extra={
                        "labour_id": labour.id,
                        "error": result.error,
                        "attempt": context.attempt,
                    },
                )

            self._metrics.record_labour_completed(
                worker=labour.worker,
                outcome=outcome,
                duration_seconds=duration,
            )

        except LabourNotRunning as e:
            logger.warning(
                "Labour left the running set during execution, result dropped",
                extra={"labour_id": labour.id, "status": e.status},
            )

        except Exception as e:
            # Labour stays running until this process exits and is reconciled
            logger.exception(
                "Exception completing labour",
                extra={"labour_id": labour.id, "error": str(e)},
            )

        finally:
            self._current_labours.pop(labour.id, None)
            clear_context()


async def run_async() -> None:
    """Run the worker asynchronously."""
    settings = get_settings()
    setup_logging(settings)

    metrics = setup_metrics()
    if settings.prometheus_port:
        metrics.serve(settings.prometheus_port)

    setup_tracing()

    if not settings.worker_registry:
        raise SystemExit("LABOUR_QUEUE_WORKER_REGISTRY is not set")

    registry = load_registry(settings.worker_registry)

    db_engine = create_engine(settings)
    instrument_sqlalchemy(db_engine)

    queue = QueueEngine(
        create_session_factory(db_engine),
        registry,
        max_reserve_attempts=settings.reserve_max_attempts,
    )
    worker = Worker(queue)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(worker.stop())
        )

    try:
        await worker.start()
    finally:
        await close_engine(db_engine)


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
