"""Initial schema with labours table

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create enum using raw SQL with IF NOT EXISTS
    op.execute("""
        DO $$ BEGIN
            CREATE TYPE labour_status AS ENUM ('pending', 'running', 'finished', 'replaced', 'unknown');
        EXCEPTION
            WHEN duplicate_object THEN null;
        END $$;
    """)

    # Create labours table
    op.create_table(
        "labours",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        sa.Column("worker", sa.String(255), nullable=False),
        sa.Column("identity", sa.String(255), nullable=False, server_default=""),
        sa.Column("payload", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column(
            "status",
            postgresql.ENUM(
                "pending", "running", "finished", "replaced", "unknown",
                name="labour_status",
                create_type=False,
            ),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("priority", sa.Integer, nullable=False),
        sa.Column("pid", sa.Integer, nullable=True),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("execute_at", sa.DateTime, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("finished_at", sa.DateTime, nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    # Index for queue polling
    op.create_index(
        "ix_labours_queue_poll",
        "labours",
        ["status", "execute_at", "priority", "created_at"],
    )

    # Index for admission rule checks
    op.create_index(
        "ix_labours_worker_identity",
        "labours",
        ["worker", "identity", "status"],
    )

    # Partial index for reconciliation of running labours
    op.execute("""
        CREATE INDEX ix_labours_running
        ON labours (worker, identity)
        WHERE status = 'running'
    """)


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS ix_labours_running")
    op.drop_index("ix_labours_worker_identity")
    op.drop_index("ix_labours_queue_poll")

    op.drop_table("labours")

    op.execute("DROP TYPE IF EXISTS labour_status")
