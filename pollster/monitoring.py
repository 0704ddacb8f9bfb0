"""Service monitoring loop.

This module is responsible for:
1. Ticking at a fixed cadence and dispatching a probe for every due service
2. Periodically saving the tracked services through the repository
"""

import asyncio
from datetime import datetime
from typing import Callable, List, Optional

from loguru import logger

from pollster.checker import StatusChecker
from pollster.db import PersistenceError, ServiceRepository
from pollster.store import DeadlineStore


class Scheduler:
    """Drains due services from the store into the status checker"""

    def __init__(
        self,
        store: DeadlineStore,
        checker: StatusChecker,
        tick_interval: float = 1.0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.checker = checker
        self.tick_interval = tick_interval
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    def tick(self, now: Optional[datetime] = None) -> int:
        """Dispatch a probe for every service due at `now`.

        Returns without waiting for the probes. Returns the number dispatched.
        """
        if self.store.size() == 0:
            return 0
        if now is None:
            now = self.clock()

        dispatched = 0
        while self.store.peek_due(now):
            service = self.store.pop_due(now)
            if service is None:
                break
            self.checker.check(service)
            dispatched += 1
        return dispatched

    async def run(self) -> None:
        """Tick forever, first tick one interval after start"""
        logger.info(f"Scheduler started, ticking every {self.tick_interval}s")
        while True:
            await asyncio.sleep(self.tick_interval)
            try:
                dispatched = self.tick()
                if dispatched:
                    logger.debug(f"Dispatched {dispatched} checks")
            except Exception:
                logger.exception("Error in scheduler tick")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="scheduler")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Scheduler stopped")


async def save_services(store: DeadlineStore, repository: ServiceRepository) -> bool:
    """Dump the store through the repository. Returns False if saving failed."""
    services = store.snapshot()
    try:
        await repository.dump(services)
    except PersistenceError:
        logger.exception("Failed to save services")
        return False
    logger.debug(f"Saved {len(services)} services")
    return True


async def save_services_periodically(
    store: DeadlineStore, repository: ServiceRepository, interval: float
) -> None:
    """Background task to save services periodically"""
    while True:
        await asyncio.sleep(interval)
        try:
            await save_services(store, repository)
        except Exception:
            logger.exception("Error in save task")


async def load_services(
    store: DeadlineStore,
    repository: ServiceRepository,
    seed: List[tuple],
) -> int:
    """Fill the store from the repository, falling back to `seed` on failure"""
    try:
        services = await repository.load()
    except PersistenceError:
        logger.exception("Failed to load services, seeding defaults")
        store.seed(seed)
        return store.size()

    count = store.load(services)
    logger.info(f"Loaded {count} services")
    return count
