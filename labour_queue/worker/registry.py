"""
Worker registry.

Maps worker names to their static configuration and handler. A registry
is built once at start-up and only read while dispatching.

Example:
    registry = WorkerRegistry()

    @registry.worker("send_email", rule=WorkerRule.IGNORE, retries=3)
    async def send_email(context: LabourContext) -> None:
        ...
"""

import importlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from labour_queue.constants import (
    DEFAULT_DELAY_SECONDS,
    DEFAULT_PRIORITY,
    DEFAULT_RECURRING_IDENTITY,
    DEFAULT_RESCHEDULE_SECONDS,
    DEFAULT_RETRIES,
    DEFAULT_RULE,
    WorkerRule,
)
from labour_queue.types.labour import LabourContext, LabourResult

logger = logging.getLogger(__name__)

# Type alias for worker handler functions
LabourHandler = Callable[[LabourContext], Awaitable[LabourResult | None]]


class RecurringConfig(BaseModel):
    """
    Recurring schedule of a worker.

    A new labour is enqueued `interval` seconds out whenever no labour is
    pending or running for the recurring identity.
    """

    model_config = ConfigDict(frozen=True)

    interval: float = Field(gt=0)
    payload: dict[str, Any] = Field(default_factory=dict)
    identity: str = DEFAULT_RECURRING_IDENTITY


class WorkerConfig(BaseModel):
    """Static configuration of a worker."""

    model_config = ConfigDict(frozen=True)

    priority: int = DEFAULT_PRIORITY
    rule: WorkerRule = DEFAULT_RULE
    delay: float = Field(default=DEFAULT_DELAY_SECONDS, ge=0)
    retries: int = Field(default=DEFAULT_RETRIES, ge=0)
    reschedule: float = Field(default=DEFAULT_RESCHEDULE_SECONDS, ge=0)
    recurring: RecurringConfig | None = None


class WorkerRegistry:
    """
    Registry of worker configurations and handlers.

    Passed explicitly to the queue engine and the worker runner.
    """

    def __init__(self) -> None:
        self._configs: dict[str, WorkerConfig] = {}
        self._handlers: dict[str, LabourHandler] = {}

    def register(
        self,
        name: str,
        handler: LabourHandler,
        config: WorkerConfig | None = None,
    ) -> None:
        """
        Register a worker.

        Args:
            name: The worker name labours are enqueued with.
            handler: Async callable executing a labour.
            config: Worker configuration. Defaults apply when omitted.

        Raises:
            ValueError: If the name is already registered.
        """
        if name in self._configs:
            raise ValueError(f"Worker {name} is already registered")

        self._configs[name] = config or WorkerConfig()
        self._handlers[name] = handler
        logger.info(f"Registered worker: {name}")

    def worker(self, name: str, **options: Any) -> Callable[[LabourHandler], LabourHandler]:
        """
        Decorator to register a worker handler.

        Args:
            name: The worker name.
            **options: WorkerConfig fields.

        Returns:
            Decorator function.
        """
        config = WorkerConfig(**options)

        def decorator(handler: LabourHandler) -> LabourHandler:
            self.register(name, handler, config)
            return handler

        return decorator

    def get_worker_config(self, name: str) -> WorkerConfig | None:
        """
        Get the configuration of a worker.

        Args:
            name: The worker name.

        Returns:
            The WorkerConfig or None if not registered.
        """
        return self._configs.get(name)

    def get_handler(self, name: str) -> LabourHandler | None:
        """Get the handler of a worker, or None if not registered."""
        return self._handlers.get(name)

    def list_workers(self) -> list[str]:
        """List all registered worker names."""
        return list(self._configs.keys())

    def recurring(self) -> dict[str, WorkerConfig]:
        """Get the workers that have a recurring schedule."""
        return {
            name: config
            for name, config in self._configs.items()
            if config.recurring is not None
        }

    def __contains__(self, name: object) -> bool:
        return name in self._configs

    def __len__(self) -> int:
        return len(self._configs)


def load_registry(path: str) -> WorkerRegistry:
    """
    Import a registry from a "package.module:attribute" path.

    Args:
        path: Import path of the registry object.

    Returns:
        The imported WorkerRegistry.

    Raises:
        ValueError: If the path is malformed.
        TypeError: If the attribute is not a WorkerRegistry.
    """
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Registry path must look like 'module:attribute', got {path!r}")

    module = importlib.import_module(module_name)
    registry = getattr(module, attribute)

    if not isinstance(registry, WorkerRegistry):
        raise TypeError(f"{path} is not a WorkerRegistry")

    return registry
