"""
Pytest configuration and shared fixtures.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from prometheus_client import CollectorRegistry
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from labour_queue.constants import WorkerRule
from labour_queue.db import create_session_factory, create_tables
from labour_queue.observability.metrics import MetricsCollector
from labour_queue.queue.engine import QueueEngine
from labour_queue.types.labour import LabourContext
from labour_queue.worker.registry import WorkerConfig, WorkerRegistry

START_TIME = datetime(2024, 1, 1, 12, 0, 0)

ALIVE_PID = 1234
DEAD_PID = 4321


class FakeClock:
    """Settable clock returning naive UTC datetimes."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeLiveness:
    """Liveness check answering from a set of live pids."""

    def __init__(self, alive: set[int] | None = None):
        self.alive = alive if alive is not None else {ALIVE_PID}
        self.calls: list[int | None] = []

    async def is_alive(self, pid: int | None) -> bool:
        self.calls.append(pid)
        return pid in self.alive


async def noop_handler(context: LabourContext) -> None:
    return None


@pytest_asyncio.fixture
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine]:
    """Create a SQLite database with the labours table for a test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'labours.db'}",
        poolclass=NullPool,
    )
    await create_tables(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to the test database."""
    return create_session_factory(async_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a database session for tests."""
    async with session_factory() as session:
        yield session

        # Rollback any uncommitted changes
        await session.rollback()


@pytest.fixture
def clock() -> FakeClock:
    """Create a clock frozen at START_TIME."""
    return FakeClock(START_TIME)


@pytest.fixture
def liveness() -> FakeLiveness:
    """Create a liveness check where only ALIVE_PID is alive."""
    return FakeLiveness()


@pytest.fixture
def metrics() -> MetricsCollector:
    """Create a metrics collector on a private registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def registry() -> WorkerRegistry:
    """Create a registry with one worker per rule."""
    registry = WorkerRegistry()
    registry.register("W", noop_handler, WorkerConfig(priority=5, rule=WorkerRule.WAIT))
    registry.register("ignore", noop_handler, WorkerConfig(priority=5, rule=WorkerRule.IGNORE))
    registry.register("replace", noop_handler, WorkerConfig(priority=5, rule=WorkerRule.REPLACE))
    registry.register("plain", noop_handler, WorkerConfig(priority=10, rule=WorkerRule.NONE))
    registry.register(
        "delayed",
        noop_handler,
        WorkerConfig(priority=10, rule=WorkerRule.NONE, delay=30, reschedule=15),
    )
    return registry


@pytest.fixture
def queue(
    session_factory: async_sessionmaker[AsyncSession],
    registry: WorkerRegistry,
    liveness: FakeLiveness,
    clock: FakeClock,
    metrics: MetricsCollector,
) -> QueueEngine:
    """Create a queue engine wired to the test fakes."""
    return QueueEngine(
        session_factory,
        registry,
        liveness=liveness,
        clock=clock,
        metrics=metrics,
    )
