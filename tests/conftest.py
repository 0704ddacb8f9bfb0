"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta

import httpx
import pytest

from pollster.store import DeadlineStore

NOW = datetime(2026, 3, 14, 15, 9, 30)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store() -> DeadlineStore:
    return DeadlineStore(polling_interval=timedelta(minutes=1))


def mock_client(handler, **kwargs) -> httpx.AsyncClient:
    """AsyncClient that answers every request with `handler` instead of the network."""
    kwargs.setdefault("follow_redirects", True)
    kwargs.setdefault("max_redirects", 5)
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), **kwargs)


def refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)
