"""
Labour repository for database operations.
Implements the core data access patterns for labour management.
"""

import logging
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import and_, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from labour_queue.constants import UNPROCESSED_STATUSES, LabourStatus
from labour_queue.db.models import Labour
from labour_queue.types.labour import RunningKey

logger = logging.getLogger(__name__)


class LabourRepository:
    """
    Repository for labour database operations.

    Implements atomic operations for:
    - Labour insertion and admission-rule lookups
    - Due/running queries in dispatch order
    - Compare-and-swap transition to RUNNING
    - Batch transition of dead labours to UNKNOWN

    Callers own the transaction: nothing here commits.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            session: The async database session.
        """
        self._session = session

    async def create_labour(
        self,
        worker: str,
        identity: str,
        payload: Any,
        priority: int,
        execute_at: datetime,
        created_at: datetime,
    ) -> Labour:
        """
        Insert a new pending labour.

        Args:
            worker: The worker name.
            identity: The dedup identity.
            payload: The sanitized payload.
            priority: Dispatch priority, lower first.
            execute_at: Earliest execution time.
            created_at: Insertion time.

        Returns:
            The created Labour with its generated id.
        """
        labour = Labour(
            worker=worker,
            identity=identity,
            payload=payload,
            priority=priority,
            status=LabourStatus.PENDING,
            execute_at=execute_at,
            created_at=created_at,
            attempts=0,
        )
        self._session.add(labour)
        await self._session.flush()

        logger.info(
            "Created new labour",
            extra={"labour_id": labour.id, "worker": worker, "identity": identity},
        )
        return labour

    async def get_labour(self, labour_id: int) -> Labour | None:
        """
        Get a labour by ID.

        Args:
            labour_id: The labour id.

        Returns:
            The Labour or None if not found.
        """
        stmt = select(Labour).where(Labour.id == labour_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def has_unprocessed(self, worker: str, identity: str) -> bool:
        """
        Check whether a pending or running labour exists for a pair.

        Args:
            worker: The worker name.
            identity: The dedup identity.

        Returns:
            True if an unprocessed labour exists.
        """
        stmt = select(
            exists().where(
                and_(
                    Labour.worker == worker,
                    Labour.identity == identity,
                    Labour.status.in_(UNPROCESSED_STATUSES),
                )
            )
        )
        result = await self._session.execute(stmt)
        return bool(result.scalar())

    async def replace_unprocessed(self, worker: str, identity: str) -> int:
        """
        Mark every pending or running labour of a pair as REPLACED.

        A replaced running labour leaves the running set, so its process
        can no longer finish or reschedule it.

        Args:
            worker: The worker name.
            identity: The dedup identity.

        Returns:
            Number of replaced labours.
        """
        stmt = (
            update(Labour)
            .where(
                and_(
                    Labour.worker == worker,
                    Labour.identity == identity,
                    Labour.status.in_(UNPROCESSED_STATUSES),
                )
            )
            .values(status=LabourStatus.REPLACED)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        count = result.rowcount

        if count > 0:
            logger.info(
                f"Replaced {count} unprocessed labours",
                extra={"worker": worker, "identity": identity},
            )

        return count

    async def list_running(self) -> Sequence[Labour]:
        """Get all labours currently marked RUNNING."""
        stmt = (
            select(Labour)
            .where(Labour.status == LabourStatus.RUNNING)
            .order_by(Labour.id.asc())
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def list_due(self, now: datetime) -> Sequence[Labour]:
        """
        Get pending labours that are due, in dispatch order.

        Ordered by priority, then creation time, then id so ties are
        broken by insertion order.

        Args:
            now: The current time.

        Returns:
            Due pending labours.
        """
        stmt = (
            select(Labour)
            .where(
                and_(
                    Labour.status == LabourStatus.PENDING,
                    Labour.execute_at <= now,
                )
            )
            .order_by(
                Labour.priority.asc(),
                Labour.created_at.asc(),
                Labour.id.asc(),
            )
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def mark_running(
        self,
        labour_id: int,
        pid: int,
        wait_key: RunningKey | None = None,
    ) -> Labour | None:
        """
        Transition a labour from PENDING to RUNNING.

        The update only matches while the row is still pending. With a
        wait_key it also requires that no other labour of that pair is
        running.

        Args:
            labour_id: The labour id.
            pid: Process id of the claiming worker.
            wait_key: Pair to serialize on, for wait-ruled workers.

        Returns:
            Updated Labour or None if another process won the race.
        """
        conditions = [
            Labour.id == labour_id,
            Labour.status == LabourStatus.PENDING,
        ]

        if wait_key is not None:
            other = aliased(Labour)
            conditions.append(
                ~exists().where(
                    and_(
                        other.worker == wait_key.worker,
                        other.identity == wait_key.identity,
                        other.status == LabourStatus.RUNNING,
                    )
                )
            )

        stmt = (
            update(Labour)
            .where(and_(*conditions))
            .values(
                status=LabourStatus.RUNNING,
                pid=pid,
                attempts=Labour.attempts + 1,
            )
            .returning(Labour)
            .execution_options(synchronize_session=False, populate_existing=True)
        )

        result = await self._session.execute(stmt)
        labour = result.scalar_one_or_none()

        if labour:
            logger.info(
                "Labour marked running",
                extra={"labour_id": labour_id, "pid": pid, "attempt": labour.attempts},
            )

        return labour

    async def mark_unknown(
        self,
        labour_ids: Sequence[int],
        finished_at: datetime,
    ) -> int:
        """
        Mark running labours whose process died as UNKNOWN.

        Args:
            labour_ids: Ids of the dead labours.
            finished_at: Reconciliation time.

        Returns:
            Number of labours updated.
        """
        stmt = (
            update(Labour)
            .where(
                and_(
                    Labour.id.in_(labour_ids),
                    Labour.status == LabourStatus.RUNNING,
                )
            )
            .values(
                status=LabourStatus.UNKNOWN,
                finished_at=finished_at,
            )
            .execution_options(synchronize_session=False)
        )

        result = await self._session.execute(stmt)
        count = result.rowcount

        if count > 0:
            logger.warning(f"Marked {count} labours with dead processes as unknown")

        return count

    async def finish_labour(
        self,
        labour_id: int,
        finished_at: datetime,
        error: str | None = None,
    ) -> Labour | None:
        """
        Transition a labour from RUNNING to FINISHED.

        Args:
            labour_id: The labour id.
            finished_at: Completion time.
            error: Last error, when finished after exhausting retries.

        Returns:
            Updated Labour or None if the labour is missing or not running.
        """
        stmt = (
            update(Labour)
            .where(
                and_(
                    Labour.id == labour_id,
                    Labour.status == LabourStatus.RUNNING,
                )
            )
            .values(
                status=LabourStatus.FINISHED,
                finished_at=finished_at,
                last_error=error,
            )
            .returning(Labour)
            .execution_options(synchronize_session=False, populate_existing=True)
        )

        result = await self._session.execute(stmt)
        labour = result.scalar_one_or_none()

        if labour:
            logger.info("Labour finished", extra={"labour_id": labour_id})

        return labour

    async def reschedule_labour(
        self,
        labour_id: int,
        execute_at: datetime,
        error: str | None = None,
    ) -> Labour | None:
        """
        Return a running labour to PENDING with a new execution time.

        Args:
            labour_id: The labour id.
            execute_at: Next earliest execution time.
            error: Error of the failed attempt, if any.

        Returns:
            Updated Labour or None if the labour is missing or not running.
        """
        values: dict[str, Any] = {
            "status": LabourStatus.PENDING,
            "execute_at": execute_at,
        }
        if error is not None:
            values["last_error"] = error

        stmt = (
            update(Labour)
            .where(
                and_(
                    Labour.id == labour_id,
                    Labour.status == LabourStatus.RUNNING,
                )
            )
            .values(**values)
            .returning(Labour)
            .execution_options(synchronize_session=False, populate_existing=True)
        )

        result = await self._session.execute(stmt)
        labour = result.scalar_one_or_none()

        if labour:
            logger.info(
                "Labour rescheduled",
                extra={"labour_id": labour_id, "execute_at": execute_at.isoformat()},
            )

        return labour

    async def count_by_status(self, worker: str | None = None) -> dict[str, int]:
        """
        Get labour counts by status.

        Args:
            worker: Optional worker filter.

        Returns:
            Dictionary of status -> count.
        """
        stmt = select(Labour.status, func.count()).group_by(Labour.status)
        if worker is not None:
            stmt = stmt.where(Labour.worker == worker)

        result = await self._session.execute(stmt)
        return {status.value: count for status, count in result.all()}
