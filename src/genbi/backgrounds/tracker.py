"""
GenBI Backgrounds - Generic tracker.

A tracker owns a bounded map of entities whose remote task is not finished
yet. A scheduler task fires every `interval_seconds` and launches a poll
cycle without waiting for the previous one; within a cycle every entity
that is not already being polled is polled concurrently.

Subclasses implement poll(); they drop results of superseded submissions,
persist changes and call finalize() once the remote status is terminal.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from genbi.adaptors.schemas import TaskHandle, TaskKind
from genbi.exceptions import TrackerCapacityException
from genbi.observability import ServiceTag, Telemetry, TelemetryEvent

logger = logging.getLogger(__name__)

E = TypeVar("E")


class BackgroundTracker(ABC, Generic[E]):
    """Recurring poll loop over the entities of one task kind."""

    name = "Background tracker"
    kind: TaskKind

    def __init__(
        self,
        *,
        telemetry: Telemetry,
        interval_seconds: float = 1.0,
        max_tasks: int = 1000,
    ):
        self._telemetry = telemetry
        self._interval = interval_seconds
        self._max_tasks = max_tasks

        self._tasks: dict[int, E] = {}
        self._running_jobs: set[int] = set()

        self._stop_event: asyncio.Event | None = None
        self._scheduler: asyncio.Task | None = None
        self._cycles: set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Tracked entities
    # -------------------------------------------------------------------------

    def entity_id(self, entity: E) -> int:
        return entity.id  # type: ignore[attr-defined]

    def add_task(self, entity: E) -> None:
        """
        Track an entity. Re-adding a tracked id replaces the entity.

        Raises:
            TrackerCapacityException: If the map is full and the id is new
        """
        entity_id = self.entity_id(entity)
        if entity_id not in self._tasks and len(self._tasks) >= self._max_tasks:
            raise TrackerCapacityException(self.name, self._max_tasks)
        self._tasks[entity_id] = entity

    def is_exist(self, entity: E) -> bool:
        return self.entity_id(entity) in self._tasks

    def get_tasks(self) -> dict[int, E]:
        return dict(self._tasks)

    @abstractmethod
    def query_id_of(self, entity: E) -> str | None:
        """Remote query id the entity is waiting on, None before submission."""
        ...

    def handles(self) -> list[TaskHandle]:
        return [
            TaskHandle(task_id=self.query_id_of(entity), bound_entity_id=entity_id, kind=self.kind)
            for entity_id, entity in self._tasks.items()
        ]

    def remove_task(self, entity_id: int) -> None:
        self._tasks.pop(entity_id, None)

    def is_running(self, entity_id: int) -> bool:
        return entity_id in self._running_jobs

    def is_current(self, entity: E) -> bool:
        """
        Whether the tracked copy still waits on the same remote task as entity.

        The tracked copy may be swapped while a poll is in flight: a binding
        keeps the query id, a re-submission changes it.
        """
        tracked = self._tasks.get(self.entity_id(entity))
        if tracked is None:
            return False
        if tracked is entity:
            return True
        query_id = self.query_id_of(entity)
        return query_id is not None and self.query_id_of(tracked) == query_id

    def _replace_task(self, current: E, updated: E) -> None:
        """Swap the tracked copy, unless it was re-submitted while being polled."""
        if self.is_current(current):
            self._tasks[self.entity_id(current)] = updated

    def finalize(self, entity: E) -> None:
        entity_id = self.entity_id(entity)
        if self.is_current(entity):
            logger.debug(f"{self.name}: job {entity_id} is finalized, removing")
            del self._tasks[entity_id]

    def _superseded(self, entity: E) -> bool:
        if self.is_current(entity):
            return False
        logger.debug(f"{self.name}: job {self.entity_id(entity)} was re-submitted while polled, dropping result")
        return True

    def send_final_event(
        self,
        event: TelemetryEvent,
        properties: dict[str, Any],
        success: bool,
    ) -> None:
        if success:
            self._telemetry.send_event(event, properties)
        else:
            self._telemetry.send_event(event, properties, ServiceTag.AI, False)

    # -------------------------------------------------------------------------
    # Poll cycle
    # -------------------------------------------------------------------------

    @abstractmethod
    async def poll(self, entity: E) -> None:
        """Fetch the remote status of one entity and reconcile it."""
        ...

    async def _run_job(self, entity: E) -> None:
        entity_id = self.entity_id(entity)
        # check and mark with no suspension point in between
        if entity_id in self._running_jobs:
            return
        self._running_jobs.add(entity_id)
        try:
            await self.poll(entity)
        finally:
            self._running_jobs.discard(entity_id)

    async def run_cycle(self) -> None:
        """Poll every tracked entity once; failures are logged per entity."""
        snapshot = list(self._tasks.values())
        if not snapshot:
            return
        results = await asyncio.gather(
            *(self._run_job(entity) for entity in snapshot),
            return_exceptions=True,
        )
        for entity, result in zip(snapshot, results):
            if isinstance(result, BaseException):
                logger.error(f"{self.name}: job {self.entity_id(entity)} failed: {result}")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def is_started(self) -> bool:
        return self._scheduler is not None and not self._scheduler.done()

    def start(self) -> None:
        if self.is_started:
            return
        logger.info(f"{self.name} started")
        self._stop_event = asyncio.Event()
        self._scheduler = asyncio.create_task(self._schedule())

    async def _schedule(self) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            cycle = asyncio.create_task(self.run_cycle())
            self._cycles.add(cycle)
            cycle.add_done_callback(self._cycles.discard)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        """Stop the scheduler and wait for in-flight cycles."""
        if self._scheduler is None:
            return
        assert self._stop_event is not None
        self._stop_event.set()
        await self._scheduler
        if self._cycles:
            await asyncio.gather(*self._cycles, return_exceptions=True)
        self._scheduler = None
        logger.info(f"{self.name} stopped")
