"""Deadline store.

Owns every tracked Service and a min-heap of next-check deadlines. A service
becomes due one polling interval after its last check. Services popped for
probing stay in the map but leave the heap until their result is applied with
`update`, so at most one probe per service is ever in flight.

Heap entries are removed lazily: each scheduled id has one live token and any
heap entry carrying a different token is dead and skipped on peek/pop.
"""

import heapq
import itertools
import threading
import uuid
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from loguru import logger

from pollster.models import Service, ServiceStatus

DEFAULT_POLLING_INTERVAL = timedelta(minutes=1)

_HeapEntry = Tuple[datetime, int, str]


class DeadlineStore:
    """Map of id -> Service plus a heap ordered by last check time"""

    def __init__(self, polling_interval: timedelta = DEFAULT_POLLING_INTERVAL):
        self.polling_interval = polling_interval
        self._lock = threading.Lock()
        self._entries: Dict[str, Service] = {}
        self._heap: List[_HeapEntry] = []
        self._scheduled: Dict[str, int] = {}  # id -> live heap token
        self._tokens = itertools.count()

    # Heap bookkeeping, callers hold the lock

    def _schedule(self, service: Service) -> None:
        token = next(self._tokens)
        self._scheduled[service.id] = token
        heapq.heappush(self._heap, (service.last_check, token, service.id))

    def _unschedule(self, service_id: str) -> None:
        self._scheduled.pop(service_id, None)
        if len(self._heap) > 2 * len(self._scheduled) + 16:
            self._compact()

    def _compact(self) -> None:
        self._heap = [entry for entry in self._heap if self._is_live(entry)]
        heapq.heapify(self._heap)

    def _is_live(self, entry: _HeapEntry) -> bool:
        _, token, service_id = entry
        return self._scheduled.get(service_id) == token

    def _top(self) -> Optional[_HeapEntry]:
        while self._heap and not self._is_live(self._heap[0]):
            heapq.heappop(self._heap)
        return self._heap[0] if self._heap else None

    def _is_due(self, entry: _HeapEntry, now: datetime) -> bool:
        return entry[0] < now - self.polling_interval

    # Public API

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, service_id: str) -> bool:
        with self._lock:
            return service_id in self._entries

    def add(self, name: str, url: str) -> str:
        """Track a new service and return its freshly allocated id.

        The service starts as UNKNOWN with its last check at the epoch, so
        the next tick picks it up.
        """
        service = Service(id=str(uuid.uuid4()), name=name, url=url)
        with self._lock:
            self._entries[service.id] = service
            self._schedule(service)
        logger.info(f"Added service {service.name} ({service.id}) -> {service.url}")
        return service.id

    def remove(self, service_id: str) -> bool:
        """Stop tracking a service. Returns False if it was not tracked."""
        with self._lock:
            service = self._entries.pop(service_id, None)
            if service is None:
                return False
            self._unschedule(service_id)
        logger.info(f"Removed service {service.name} ({service_id})")
        return True

    def get(self, service_id: str) -> Optional[Service]:
        with self._lock:
            service = self._entries.get(service_id)
            return service.model_copy() if service else None

    def peek_due(self, now: datetime) -> bool:
        """True if the stalest scheduled service is overdue at `now`"""
        with self._lock:
            top = self._top()
            return top is not None and self._is_due(top, now)

    def pop_due(self, now: datetime) -> Optional[Service]:
        """Take the stalest service off the heap if it is overdue.

        The service stays in the map, so `update` can put it back once its
        probe completes. Returns a copy, or None if nothing is due.
        """
        with self._lock:
            top = self._top()
            if top is None or not self._is_due(top, now):
                return None
            heapq.heappop(self._heap)
            service_id = top[2]
            del self._scheduled[service_id]
            return self._entries[service_id].model_copy()

    def update(self, service_id: str, status: ServiceStatus, last_check: datetime) -> None:
        """Record a probe result and reschedule the service.

        Does nothing if the service was removed while its probe was in flight.
        """
        with self._lock:
            service = self._entries.get(service_id)
            if service is None:
                return
            service.status = ServiceStatus(status)
            service.last_check = last_check.replace(second=0, microsecond=0)
            self._unschedule(service_id)
            self._schedule(service)

    def snapshot(self) -> List[Service]:
        """Copies of all services in insertion order"""
        with self._lock:
            return [service.model_copy() for service in self._entries.values()]

    def scheduled_ids(self) -> List[str]:
        """Ids currently waiting in the heap, stalest first"""
        with self._lock:
            live = sorted(entry for entry in self._heap if self._is_live(entry))
            return [service_id for _, _, service_id in live]

    def in_flight_ids(self) -> List[str]:
        """Ids popped for probing whose result has not been applied yet"""
        with self._lock:
            return [sid for sid in self._entries if sid not in self._scheduled]

    def serialize(self) -> List[dict]:
        """All services as persisted documents, insertion order"""
        return [service.to_document() for service in self.snapshot()]

    def deserialize(self, documents: Iterable[dict]) -> int:
        """Track every service in `documents`, keeping its stored status and
        last check. Returns the number of services loaded."""
        services = [Service.model_validate(doc) for doc in documents]
        return self.load(services)

    def load(self, services: Iterable[Service]) -> int:
        count = 0
        with self._lock:
            for service in services:
                service = service.model_copy()
                if service.id in self._entries:
                    self._unschedule(service.id)
                self._entries[service.id] = service
                self._schedule(service)
                count += 1
        return count

    def seed(self, services: Iterable[Tuple[str, str]]) -> List[str]:
        """Add (name, url) pairs as brand new services"""
        return [self.add(name, url) for name, url in services]
