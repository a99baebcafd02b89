"""
Per-server player-count history.
Owns the monitor State: appends each tick's samples, enforces retention,
recomputes aggregates and persists the snapshot.
"""
import asyncio
import math
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

from pydantic import ValidationError

from playerstats.core.logging import get_logger
from playerstats.core.snapshot import SnapshotError, read_snapshot, write_snapshot
from playerstats.schemas import (
    Sample,
    ServerRecord,
    ServerStatus,
    SourceResult,
    Stat,
    State,
    ensure_utc,
    round_half_up,
)


logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def retention_cutoff(now: datetime, history_days: Optional[float]) -> Optional[datetime]:
    """
    Oldest timestamp kept, or None when retention is disabled.

    Only a finite, positive window enables retention. A window reaching
    past the earliest representable datetime keeps everything.
    """
    if history_days is None or not math.isfinite(history_days) or history_days <= 0:
        return None
    try:
        return now - timedelta(days=history_days)
    except OverflowError:
        return None


def recompute_aggregates(record: ServerRecord, now: datetime) -> None:
    """
    Refresh avg and max from the record's retained history.

    avg is the rounded mean stamped with `now`; max is the highest sample,
    with the later sample winning ties.
    """
    total = sum(sample.players for sample in record.history)
    record.avg = Stat(players=round_half_up(total, len(record.history)), ts=now)

    peak = Stat(players=0, ts=now)
    for sample in record.history:
        if sample.players >= peak.players:
            peak = Stat(players=sample.players, ts=sample.ts)
    record.max = peak


class TimeSeriesStore:
    """
    Single writer of the monitor State.

    Every mutation goes through `ingest`, which holds an asyncio lock,
    works on a copy and swaps it in after the snapshot has been written.
    Readers only ever receive copies.
    """

    def __init__(
        self,
        server_ids: Sequence[str],
        snapshot_path: Path | str,
        *,
        history_days: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._server_ids = list(server_ids)
        self._path = Path(snapshot_path)
        self._history_days = history_days
        self._clock = clock
        self._lock = asyncio.Lock()
        self._state = self.default_state()

    @property
    def server_ids(self) -> list[str]:
        return list(self._server_ids)

    @property
    def snapshot_path(self) -> Path:
        return self._path

    @property
    def busy(self) -> bool:
        """True while a tick is being ingested."""
        return self._lock.locked()

    @property
    def state(self) -> State:
        return self._state.model_copy(deep=True)

    def default_state(self) -> State:
        now = self._clock()
        return State(
            updated_at=now,
            servers={
                server_id: ServerRecord.empty(server_id, now)
                for server_id in self._server_ids
            },
        )

    def load(self) -> State:
        """
        Load the snapshot from disk.

        A missing, unreadable or invalid snapshot falls back to a fresh
        default State; configured servers missing from the file are added.
        """
        try:
            data = read_snapshot(self._path)
        except SnapshotError as e:
            logger.warning("snapshot.load_failed", path=str(self._path), error=str(e))
            data = None

        state: Optional[State] = None
        if data is not None:
            try:
                state = State.model_validate(data)
            except ValidationError as e:
                logger.warning(
                    "snapshot.invalid",
                    path=str(self._path),
                    error_count=e.error_count(),
                )

        if state is None:
            logger.info("snapshot.initialized", path=str(self._path), servers=len(self._server_ids))
            state = self.default_state()
        else:
            now = self._clock()
            for server_id in self._server_ids:
                state.servers.setdefault(server_id, ServerRecord.empty(server_id, now))
            logger.info(
                "snapshot.loaded",
                path=str(self._path),
                servers=len(state.servers),
                updated_at=state.updated_at.isoformat(),
            )

        self._state = state
        return self.state

    def apply(
        self,
        state: State,
        results: Mapping[str, SourceResult],
        now: datetime,
    ) -> State:
        """Apply one tick's results to `state` in place and return it."""
        cutoff = retention_cutoff(now, self._history_days)

        for server_id in self._server_ids:
            record = state.servers.get(server_id)
            if record is None:
                record = ServerRecord.empty(server_id, now)
                state.servers[server_id] = record

            result = results.get(server_id) or SourceResult(players=0, online=False)

            record.history.append(Sample(ts=now, players=result.players))
            if cutoff is not None:
                record.history = [sample for sample in record.history if sample.ts >= cutoff]

            recompute_aggregates(record, now)
            record.status = ServerStatus.ONLINE if result.online else ServerStatus.OFFLINE
            record.current = Stat(players=result.players, ts=now)

        state.updated_at = now
        return state

    async def ingest(
        self,
        results: Mapping[str, SourceResult],
        now: Optional[datetime] = None,
    ) -> State:
        """
        Commit one poll tick.

        Args:
            results: Per-server outcome of the tick; missing servers count as offline
            now: Tick timestamp (defaults to the store clock)

        Returns:
            Copy of the committed State
        """
        async with self._lock:
            now = ensure_utc(now) if now is not None else self._clock()
            working = self._state.model_copy(deep=True)
            self.apply(working, results, now)

            try:
                await asyncio.to_thread(write_snapshot, self._path, working.to_payload())
            except OSError as e:
                logger.error("snapshot.write_failed", path=str(self._path), error=str(e))

            self._state = working
            logger.info(
                "store.tick_committed",
                updated_at=now.isoformat(),
                servers=len(self._server_ids),
            )
            return working.model_copy(deep=True)

    def snapshot(self) -> dict:
        """JSON-ready view of configured servers, as served to clients."""
        state = self._state
        servers = {}
        for server_id in self._server_ids:
            record = state.servers.get(server_id) or ServerRecord.empty(server_id, state.updated_at)
            servers[server_id] = record.model_dump(mode="json")
        return {
            "updatedAt": state.model_dump(mode="json", by_alias=True, include={"updated_at"})["updatedAt"],
            "servers": servers,
        }
