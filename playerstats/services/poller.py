"""
Poll loop driving the monitor.
Runs one tick per interval: collect source results, then ingest them into the store.
"""
import asyncio
import time
from typing import Optional

from playerstats.api.v1.metrics import poll_tick_duration_seconds, poll_ticks_total, server_players
from playerstats.core.logging import get_logger
from playerstats.schemas import State
from playerstats.services.status_aggregator import MasterListError, StatusAggregator
from playerstats.services.timeseries_store import TimeSeriesStore


logger = get_logger(__name__)


class Poller:
    """Serialized poll ticks over one StatusAggregator and one TimeSeriesStore."""

    def __init__(
        self,
        aggregator: StatusAggregator,
        store: TimeSeriesStore,
        *,
        interval: float = 60.0,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._aggregator = aggregator
        self._store = store
        self._interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> Optional[State]:
        """
        Run a single tick.

        Returns:
            The committed State, or None if the tick was skipped or abandoned

        Note:
            Never raises for source or store failures; those leave the
            previous State in place until the next tick.
        """
        if self._store.busy:
            logger.warning("poll.tick_skipped", reason="previous tick still ingesting")
            poll_ticks_total.labels(outcome="skipped").inc()
            return None

        started = time.perf_counter()
        try:
            results = await self._aggregator.collect()
        except MasterListError as e:
            # Abandon the whole tick; partial results are discarded
            logger.warning("poll.tick_abandoned", error=str(e))
            poll_ticks_total.labels(outcome="abandoned").inc()
            return None

        state = await self._store.ingest(results)

        for server_id, result in results.items():
            server_players.labels(server_id=server_id).set(result.players)
        poll_tick_duration_seconds.observe(time.perf_counter() - started)
        poll_ticks_total.labels(outcome="committed").inc()
        return state

    async def run(self) -> None:
        """
        Tick immediately, then once per interval until cancelled.

        Ticks never overlap: a slow tick delays the next one instead.
        CRITICAL: This loop must never crash. Unexpected errors are logged.
        """
        loop = asyncio.get_running_loop()
        logger.info("poll.started", interval=self._interval)
        while True:
            started = loop.time()
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("poll.unexpected_error", error=str(e), exc_info=True)
                poll_ticks_total.labels(outcome="failed").inc()

            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, self._interval - elapsed))

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("poll.stopped")
