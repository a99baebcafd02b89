"""
Shared fixtures and helpers for the monitor and chart tests.
"""
from typing import Callable

import httpx
import pytest

from playerstats.core.config import ServerSource
from factories import MASTER_ID, STATUS_ID, STATUS_URL


@pytest.fixture
def server_sources() -> list[ServerSource]:
    return [
        ServerSource(id=MASTER_ID, use_master_list=True),
        ServerSource(id=STATUS_ID, status_url=STATUS_URL, status_headers={"x-api-key": "secret"}),
    ]


@pytest.fixture
def snapshot_path(tmp_path):
    return tmp_path / "data.json"


@pytest.fixture
async def mock_client():
    """Factory for AsyncClients backed by an httpx.MockTransport handler."""
    clients = []

    def _make(handler: Callable, **kwargs) -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), **kwargs)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()
