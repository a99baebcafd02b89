"""
Status aggregation for one poll tick.
Queries the shared master list and per-server status endpoints and
normalizes them into one SourceResult per configured server.
"""
import asyncio
import math
from enum import Enum
from typing import Any, Mapping, NamedTuple, Optional, Sequence

import httpx

from playerstats.api.v1.metrics import source_failures_total
from playerstats.core.config import ServerSource
from playerstats.core.logging import get_logger
from playerstats.schemas import SourceResult, finite_number


logger = get_logger(__name__)


class MasterListError(Exception):
    """The shared master list could not be fetched or parsed."""


class PayloadShape(str, Enum):
    """Where in a status payload the player count was found."""
    TOP_LEVEL = "players"
    CURRENT = "current.players"
    DATA = "data.players"


class PlayerCount(NamedTuple):
    players: float
    shape: PayloadShape


def extract_players(payload: Any) -> Optional[PlayerCount]:
    """
    Find a numeric player count in a status payload.

    Accepted shapes, checked in order:
        {"players": 12}
        {"current": {"players": 12}}
        {"data": {"players": 12}}

    Args:
        payload: Decoded JSON body

    Returns:
        PlayerCount with the value and matching shape, or None for any other body
    """
    if not isinstance(payload, Mapping):
        return None

    value = finite_number(payload.get("players"))
    if value is not None:
        return PlayerCount(value, PayloadShape.TOP_LEVEL)

    for key, shape in (("current", PayloadShape.CURRENT), ("data", PayloadShape.DATA)):
        nested = payload.get(key)
        if isinstance(nested, Mapping):
            value = finite_number(nested.get("players"))
            if value is not None:
                return PlayerCount(value, shape)

    return None


def resolve_result(
    source: ServerSource,
    master_list: Mapping[str, Any],
    custom: Optional[PlayerCount],
) -> SourceResult:
    """
    Decide one server's players/online for the tick.

    A per-server status response wins, then the master list entry
    (online only when present with a finite count), otherwise offline.
    """
    if custom is not None:
        return SourceResult(players=max(0, math.floor(custom.players)), online=True)

    if source.use_master_list:
        entry = master_list.get(source.id)
        players = finite_number(entry.get("players")) if isinstance(entry, Mapping) else None
        if players is not None:
            return SourceResult(players=players, online=True)

    return SourceResult(players=0, online=False)


class StatusAggregator:
    """Collect player counts for every configured server."""

    def __init__(
        self,
        servers: Sequence[ServerSource],
        client: httpx.AsyncClient,
        *,
        master_url: str,
        timeout: float = 4.0,
        user_agent: str = "playerstats",
    ) -> None:
        self._servers = list(servers)
        self._client = client
        self._master_url = master_url
        self._timeout = timeout
        self._user_agent = user_agent

    @property
    def servers(self) -> list[ServerSource]:
        return list(self._servers)

    async def fetch_master_list(self) -> dict[str, Any]:
        """
        Fetch the shared master list.

        Raises:
            MasterListError: on transport errors, non-200 responses or a non-object body
        """
        try:
            response = await self._client.get(
                self._master_url,
                headers={"User-Agent": self._user_agent},
            )
        except httpx.HTTPError as e:
            raise MasterListError(f"Master list request failed: {e}") from e

        if response.status_code != 200:
            raise MasterListError(f"Master list status: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise MasterListError(f"Master list body is not JSON: {e}") from e

        if not isinstance(data, dict):
            raise MasterListError("Master list body is not an object")

        return data

    async def fetch_status(self, source: ServerSource) -> Optional[PlayerCount]:
        """
        Query one server's status endpoint.

        Never raises: timeouts, transport errors, non-2xx responses and
        malformed bodies all mean "no data" for this server.
        """
        if not source.status_url:
            return None

        headers = {"User-Agent": self._user_agent, **source.status_headers}
        try:
            response = await asyncio.wait_for(
                self._client.get(source.status_url, headers=headers, timeout=self._timeout),
                timeout=self._timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except asyncio.TimeoutError:
            logger.warning("source.timeout", server_id=source.id, timeout=self._timeout)
            source_failures_total.labels(source="status").inc()
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("source.unavailable", server_id=source.id, error=str(e))
            source_failures_total.labels(source="status").inc()
            return None

        count = extract_players(payload)
        if count is None:
            logger.warning("source.no_player_count", server_id=source.id)
            return None

        logger.debug(
            "source.status_fetched",
            server_id=source.id,
            players=count.players,
            shape=count.shape.value,
        )
        return count

    async def collect(self) -> dict[str, SourceResult]:
        """
        Sample every configured server concurrently.

        Returns:
            Mapping of server id to SourceResult

        Raises:
            MasterListError: if the master list is needed and fails; the tick must be abandoned
        """
        needs_master = any(source.use_master_list for source in self._servers)

        async def _no_master_list() -> dict[str, Any]:
            return {}

        master_task = self.fetch_master_list() if needs_master else _no_master_list()
        outcomes = await asyncio.gather(
            master_task,
            *(self.fetch_status(source) for source in self._servers),
            return_exceptions=True,
        )

        master_list = outcomes[0]
        if isinstance(master_list, BaseException):
            source_failures_total.labels(source="master_list").inc()
            raise master_list

        results: dict[str, SourceResult] = {}
        for source, custom in zip(self._servers, outcomes[1:]):
            if isinstance(custom, BaseException):
                # fetch_status handles its own failures; anything here is a bug
                logger.error(
                    "source.unexpected_error",
                    server_id=source.id,
                    error=str(custom),
                    exc_info=custom,
                )
                custom = None
            results[source.id] = resolve_result(source, master_list, custom)

        logger.info(
            "source.collected",
            servers=len(results),
            online=sum(1 for result in results.values() if result.online),
        )
        return results
