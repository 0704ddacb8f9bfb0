"""Probe dispatcher.

Sends a GET to a due service and feeds the outcome back into the store:
- a response with a 2xx status code marks the service UP
- any other response, a timeout or a transport error marks it DOWN

Every dispatched probe applies exactly one update, so a service never gets
stuck outside the schedule.
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional, Set

import httpx
from loguru import logger

from pollster.models import Service, ServiceStatus, truncate_to_minute
from pollster.store import DeadlineStore

DEFAULT_TIMEOUT_SECONDS = 2.0
DEFAULT_MAX_REDIRECTS = 5


def classify_response(response: httpx.Response) -> ServiceStatus:
    return ServiceStatus.UP if response.is_success else ServiceStatus.DOWN


class StatusChecker:
    """Dispatches non-blocking probes and applies their results to the store"""

    def __init__(
        self,
        store: DeadlineStore,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.timeout = timeout
        self.clock = clock
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            max_redirects=max_redirects,
        )
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def check(self, service: Service) -> asyncio.Task:
        """Start probing `service` and return immediately.

        Must be called from a running event loop.
        """
        logger.info(f"Deadline for {service.id} expired, making request to {service.url}")
        task = asyncio.get_running_loop().create_task(
            self._run(service), name=f"probe-{service.id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def probe(self, service: Service) -> ServiceStatus:
        """Perform one GET against the service url and classify the outcome"""
        try:
            # Bounds the whole exchange, redirects included
            response = await asyncio.wait_for(
                self.client.get(service.url), timeout=self.timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning(f"Request to {service.url} timed out after {self.timeout}s")
            return ServiceStatus.DOWN
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Request to {service.url} failed: {e!r}")
            return ServiceStatus.DOWN

        status = classify_response(response)
        logger.info(
            f"Got a response for {service.url} with status code "
            f"{response.status_code} - {response.reason_phrase}"
        )
        return status

    async def _run(self, service: Service) -> ServiceStatus:
        try:
            status = await self.probe(service)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Unexpected error while checking {service.url}")
            status = ServiceStatus.DOWN

        last_check = truncate_to_minute(self.clock())
        if status != service.status:
            logger.info(f"Service {service.name} changed status: {service.status.value} -> {status.value}")
        self.store.update(service.id, status, last_check)
        return status

    async def wait_idle(self) -> None:
        """Wait for every probe currently in flight to finish"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding probes and release the HTTP client"""
        for task in list(self._tasks):
            task.cancel()
        await self.wait_idle()
        if self._owns_client:
            await self.client.aclose()
