"""
SQLAlchemy database models.
Defines the labours table.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from labour_queue.constants import LabourStatus
from labour_queue.types.labour import RunningKey


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Labour(Base):
    """
    Labour model representing a unit of work in the queue.

    This is the authoritative source of truth for labour state.
    Rows are never deleted by the queue; terminal labours stay for
    inspection until purged externally.

    Key constraints:
    - (worker, identity) scopes the admission and wait rules
    - status transitions follow the defined state machine
    - pid is only meaningful while status is RUNNING
    """

    __tablename__ = "labours"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    # Routing and dedup scope
    worker: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    identity: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )

    # Labour payload
    payload: Mapped[Any] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )

    # Status and priority
    status: Mapped[LabourStatus] = mapped_column(
        Enum(
            LabourStatus,
            name="labour_status",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=LabourStatus.PENDING,
    )
    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    # Execution tracking
    pid: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    last_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Timestamps, naive UTC
    execute_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )

    __table_args__ = (
        # Index for queue polling
        Index(
            "ix_labours_queue_poll",
            "status",
            "execute_at",
            "priority",
            "created_at",
        ),
        # Index for admission rule checks
        Index(
            "ix_labours_worker_identity",
            "worker",
            "identity",
            "status",
        ),
    )

    @property
    def key(self) -> RunningKey:
        """Get the (worker, identity) pair of this labour."""
        return RunningKey(self.worker, self.identity)

    @property
    def is_unprocessed(self) -> bool:
        """Check if the labour is still pending or running."""
        return self.status in (LabourStatus.PENDING, LabourStatus.RUNNING)

    def __repr__(self) -> str:
        return (
            f"Labour(id={self.id}, worker={self.worker}, "
            f"identity={self.identity!r}, status={self.status})"
        )
