"""
Queue engine.

Admission, reservation, crash reconciliation and completion of labours.
The engine keeps no in-process locks; every exclusivity guarantee comes
from conditional updates and transactions in the database.
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from labour_queue.constants import SPAN_ENQUEUE, SPAN_RESERVE, WorkerRule
from labour_queue.db.models import Labour
from labour_queue.db.repository import LabourRepository
from labour_queue.exceptions import (
    InvalidIdentity,
    LabourNotFound,
    LabourNotRunning,
    LabourQueueError,
    ReconciliationFailed,
    ReservationRaceLost,
    StoreError,
    UnknownWorker,
)
from labour_queue.liveness import PosixProcessLiveness, ProcessLiveness
from labour_queue.observability.metrics import MetricsCollector, get_metrics
from labour_queue.observability.tracing import get_tracer
from labour_queue.queue.scheduling import resolve_execute_at, utcnow
from labour_queue.types.labour import RunningKey
from labour_queue.types.payload import sanitize_payload
from labour_queue.worker.registry import WorkerRegistry

logger = logging.getLogger(__name__)


@contextmanager
def _store_errors(operation: str, **details: Any) -> Iterator[None]:
    """Re-raise database failures as StoreError."""
    try:
        yield
    except SQLAlchemyError as e:
        raise StoreError(f"Store failure during {operation}: {e}", details) from e


def _not_running(labour_id: int, current: Labour | None) -> LabourQueueError:
    if current is None:
        return LabourNotFound(labour_id)
    return LabourNotRunning(labour_id, current.status.value)


class QueueEngine:
    """
    Labour queue engine.

    Implements:
    - Admission rules on enqueue (ignore / replace)
    - Reservation in priority order with wait-rule gating
    - Reconciliation of running labours whose process died
    - Compare-and-swap claiming for racing worker processes
    - Finish and reschedule transitions
    """

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        registry: WorkerRegistry,
        liveness: ProcessLiveness | None = None,
        clock: Callable[[], datetime] = utcnow,
        max_reserve_attempts: int = 5,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the engine.

        Args:
            sessions: Session factory of the labour database.
            registry: Worker registry used for configuration lookups.
            liveness: Liveness check for running labours. Defaults to a
                local signal-0 check.
            clock: Returns the current time as naive UTC.
            max_reserve_attempts: Reservations tried by claim() before a
                lost race is surfaced.
            metrics: Metrics collector. Defaults to the process-wide one.
        """
        self._sessions = sessions
        self._registry = registry
        self._liveness = liveness or PosixProcessLiveness()
        self._clock = clock
        self._max_reserve_attempts = max(1, max_reserve_attempts)
        self._metrics = metrics or get_metrics()

    @property
    def registry(self) -> WorkerRegistry:
        return self._registry

    async def enqueue(
        self,
        worker: str,
        payload: Any = None,
        identity: str = "",
        delay: Any = None,
    ) -> bool:
        """
        Add a labour to the queue.

        Args:
            worker: Name of a registered worker.
            payload: Nested scalars, sequences and mappings. Other values
                are dropped.
            identity: Dedup and serialization scope within the worker.
            delay: Seconds from now, or an absolute datetime. Defaults to
                the worker's configured delay.

        Returns:
            True, including when the ignore rule skipped the insert.

        Raises:
            UnknownWorker: If the worker is not registered.
            InvalidIdentity: If identity is not a string.
            StoreError: If the database fails; nothing is persisted.
        """
        config = self._registry.get_worker_config(worker)
        if config is None:
            raise UnknownWorker(worker)

        if not isinstance(identity, str):
            raise InvalidIdentity(identity)

        clean_payload = sanitize_payload(payload)
        now = self._clock()
        execute_at = resolve_execute_at(config.delay, delay, now)

        with get_tracer().start_as_current_span(SPAN_ENQUEUE) as span:
            span.set_attribute("worker", worker)
            span.set_attribute("rule", config.rule.value)

            with _store_errors("enqueue", worker=worker, identity=identity):
                async with self._sessions.begin() as session:
                    repo = LabourRepository(session)

                    if config.rule == WorkerRule.IGNORE:
                        if await repo.has_unprocessed(worker, identity):
                            logger.info(
                                "Ignored labour, one is already unprocessed",
                                extra={"worker": worker, "identity": identity},
                            )
                            self._metrics.record_labour_enqueued(worker, "ignored")
                            return True

                    elif config.rule == WorkerRule.REPLACE:
                        await repo.replace_unprocessed(worker, identity)

                    await repo.create_labour(
                        worker=worker,
                        identity=identity,
                        payload=clean_payload,
                        priority=config.priority,
                        execute_at=execute_at,
                        created_at=now,
                    )

        self._metrics.record_labour_enqueued(worker, "created")
        return True

    async def reconcile_running(self) -> list[RunningKey]:
        """
        Get the running set after pruning labours of dead processes.

        Every running labour whose pid is not alive is marked UNKNOWN in a
        single transaction and left out of the result.

        Returns:
            (worker, identity) pairs of labours still running.

        Raises:
            ReconciliationFailed: If the batch update could not be
                committed. No labour was changed.
        """
        now = self._clock()

        with _store_errors("reconcile"):
            async with self._sessions() as session:
                running = await LabourRepository(session).list_running()

        alive: list[RunningKey] = []
        dead: list[int] = []

        for labour in running:
            if await self._liveness.is_alive(labour.pid):
                alive.append(labour.key)
            else:
                dead.append(labour.id)

        if dead:
            try:
                async with self._sessions.begin() as session:
                    await LabourRepository(session).mark_unknown(dead, finished_at=now)
            except SQLAlchemyError as e:
                raise ReconciliationFailed(dead) from e

            self._metrics.record_labours_unknown(len(dead))
            logger.warning(
                f"Reconciled {len(dead)} labours whose process died",
                extra={"labour_ids": dead},
            )

        return alive

    async def reserve(self) -> Labour | None:
        """
        Select the next labour to execute.

        The labour is not claimed; call mark_running() to take it.

        Returns:
            The first due pending labour in (priority, created_at) order
            that is not held back by the wait rule, or None.

        Raises:
            ReconciliationFailed: If dead running labours could not be
                reconciled.
        """
        with get_tracer().start_as_current_span(SPAN_RESERVE):
            running = set(await self.reconcile_running())
            now = self._clock()

            with _store_errors("reserve"):
                async with self._sessions() as session:
                    candidates = await LabourRepository(session).list_due(now)

            for labour in candidates:
                config = self._registry.get_worker_config(labour.worker)

                if config is None:
                    logger.warning(
                        "Skipping labour of unregistered worker",
                        extra={"labour_id": labour.id, "worker": labour.worker},
                    )
                    continue

                if config.rule == WorkerRule.WAIT and labour.key in running:
                    continue

                return labour

        return None

    async def mark_running(self, labour: Labour, pid: int) -> Labour:
        """
        Claim a reserved labour for a process.

        Args:
            labour: A labour returned by reserve().
            pid: Process id that will execute the labour.

        Returns:
            The labour in RUNNING status.

        Raises:
            ReservationRaceLost: If the labour is no longer pending, or
                another labour of its wait-ruled pair started running.
        """
        config = self._registry.get_worker_config(labour.worker)
        wait_key = None
        if config is not None and config.rule == WorkerRule.WAIT:
            wait_key = labour.key

        with _store_errors("mark_running", labour_id=labour.id):
            async with self._sessions.begin() as session:
                claimed = await LabourRepository(session).mark_running(
                    labour.id, pid, wait_key
                )

        if claimed is None:
            self._metrics.record_reservation_race()
            raise ReservationRaceLost(labour.id)

        return claimed

    async def claim(self, pid: int) -> Labour | None:
        """
        Reserve and mark running the next labour.

        A lost race re-runs the whole reservation, reconciliation included,
        so the wait-rule view is fresh.

        Args:
            pid: Process id that will execute the labour.

        Returns:
            The running labour, or None if nothing is eligible.

        Raises:
            ReservationRaceLost: If every attempt lost its race.
            ReconciliationFailed: If reconciliation failed.
        """
        for attempt in range(1, self._max_reserve_attempts + 1):
            labour = await self.reserve()
            if labour is None:
                return None

            try:
                claimed = await self.mark_running(labour, pid)
            except ReservationRaceLost:
                if attempt == self._max_reserve_attempts:
                    raise
                logger.debug(
                    "Lost reservation race, retrying",
                    extra={"labour_id": labour.id, "attempt": attempt},
                )
                continue

            self._metrics.record_labour_reserved(claimed.worker)
            return claimed

        return None

    async def finish(self, labour: Labour, error: str | None = None) -> Labour:
        """
        Mark a labour as finished.

        Args:
            labour: The labour to finish.
            error: Last error, when the labour gave up after its retries.

        Returns:
            The updated labour.

        Raises:
            LabourNotFound: If the labour does not exist.
            LabourNotRunning: If the labour was replaced, reconciled as
                unknown or already completed.
        """
        now = self._clock()

        with _store_errors("finish", labour_id=labour.id):
            async with self._sessions.begin() as session:
                repo = LabourRepository(session)
                finished = await repo.finish_labour(
                    labour.id, finished_at=now, error=error
                )
                if finished is None:
                    raise _not_running(labour.id, await repo.get_labour(labour.id))

        return finished

    async def reschedule(
        self,
        labour: Labour,
        delay: Any = None,
        error: str | None = None,
    ) -> bool:
        """
        Return a labour to the queue to run again later.

        Args:
            labour: The labour to reschedule.
            delay: Seconds from now, or an absolute datetime. Defaults to
                the worker's reschedule delay.
            error: Error of the failed attempt, kept in last_error.

        Returns:
            True once the labour is pending again.

        Raises:
            UnknownWorker: If the labour's worker is not registered.
            LabourNotFound: If the labour does not exist.
            LabourNotRunning: If the labour is no longer running.
        """
        config = self._registry.get_worker_config(labour.worker)
        if config is None:
            raise UnknownWorker(labour.worker)

        execute_at = resolve_execute_at(config.reschedule, delay, self._clock())

        with _store_errors("reschedule", labour_id=labour.id):
            async with self._sessions.begin() as session:
                repo = LabourRepository(session)
                rescheduled = await repo.reschedule_labour(
                    labour.id, execute_at=execute_at, error=error
                )
                if rescheduled is None:
                    raise _not_running(labour.id, await repo.get_labour(labour.id))

        return True

    async def schedule_recurring(self) -> int:
        """
        Enqueue the next run of every recurring worker that has none.

        Returns:
            Number of labours enqueued.
        """
        scheduled = 0

        for worker, config in self._registry.recurring().items():
            recurring = config.recurring

            with _store_errors("schedule_recurring", worker=worker):
                async with self._sessions() as session:
                    exists = await LabourRepository(session).has_unprocessed(
                        worker, recurring.identity
                    )

            if exists:
                continue

            await self.enqueue(
                worker,
                recurring.payload,
                recurring.identity,
                delay=recurring.interval,
            )
            scheduled += 1

        if scheduled:
            logger.info(f"Scheduled {scheduled} recurring labours")

        return scheduled

    async def get(self, labour_id: int) -> Labour | None:
        """Get a labour by id."""
        with _store_errors("get", labour_id=labour_id):
            async with self._sessions() as session:
                return await LabourRepository(session).get_labour(labour_id)

    async def stats(self, worker: str | None = None) -> dict[str, int]:
        """Get labour counts per status."""
        with _store_errors("stats"):
            async with self._sessions() as session:
                return await LabourRepository(session).count_by_status(worker)
