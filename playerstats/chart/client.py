"""HTTP client used by the chart to poll the monitor snapshot."""
from typing import Optional

import httpx
from pydantic import ValidationError

from playerstats.chart.history import convert_online_history
from playerstats.core.logging import get_logger
from playerstats.schemas import Sample, State


logger = get_logger(__name__)


class SnapshotFetchError(Exception):
    """The monitor snapshot could not be fetched or decoded."""


class SnapshotClient:
    """
    Fetch the served snapshot and, once, the bulk history export.

    Usage:
        async with SnapshotClient("http://localhost:5173") as client:
            state = await client.fetch_servers()
    """

    def __init__(
        self,
        base_url: str,
        *,
        online_data_url: Optional[str] = "/onlinedata.json",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._online_data_url = online_data_url
        self._online_history_loaded = False
        self._online_history: Optional[dict[str, list[Sample]]] = None

    async def __aenter__(self) -> "SnapshotClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_servers(self) -> State:
        """
        Fetch `/api/servers`.

        Raises:
            SnapshotFetchError: on transport errors, non-2xx responses or an invalid body
        """
        try:
            response = await self._client.get("/api/servers", headers={"Cache-Control": "no-store"})
            response.raise_for_status()
            return State.model_validate(response.json())
        except httpx.HTTPStatusError as e:
            raise SnapshotFetchError(f"API error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise SnapshotFetchError(f"API request failed: {e}") from e
        except (ValueError, ValidationError) as e:
            raise SnapshotFetchError(f"Invalid snapshot body: {e}") from e

    async def load_online_history(self) -> Optional[dict[str, list[Sample]]]:
        """
        Load the bulk history export on the first call only.

        Any failure means "no bulk history"; live data still renders.
        """
        if self._online_history_loaded:
            return self._online_history
        self._online_history_loaded = True

        if not self._online_data_url:
            return None

        try:
            response = await self._client.get(self._online_data_url, headers={"Cache-Control": "no-store"})
            if response.status_code != 200:
                logger.info("online_history.unavailable", status_code=response.status_code)
                return None
            raw = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("online_history.load_failed", error=str(e))
            return None

        self._online_history = convert_online_history(raw)
        if self._online_history is not None:
            logger.info("online_history.loaded", servers=len(self._online_history))
        return self._online_history
