"""
History merging for the chart client.
Combines the one-time bulk export with the live history served by the monitor.
"""
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from pydantic import TypeAdapter, ValidationError

from playerstats.core.logging import get_logger
from playerstats.schemas import (
    OnlineDataset,
    OnlineHistoryImport,
    Sample,
    ServerRecord,
    ServerStatus,
    Stat,
    State,
    ensure_utc,
    normalize_players,
)


logger = get_logger(__name__)

_instant = TypeAdapter(datetime)


def parse_instant(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value:
        return None
    try:
        return ensure_utc(_instant.validate_python(value))
    except ValidationError:
        return None


def _coerce_sample(item: Any) -> Optional[Sample]:
    if isinstance(item, Sample):
        return item
    if not isinstance(item, Mapping):
        return None
    ts = parse_instant(item.get("ts"))
    if ts is None:
        return None
    return Sample(ts=ts, players=normalize_players(item.get("players")))


def convert_online_history(raw: Any) -> Optional[dict[str, list[Sample]]]:
    """
    Convert the bulk export into per-server histories.

    Args:
        raw: Decoded `{labels, datasets}` document

    Returns:
        Mapping of server id to samples, or None if the document has the wrong shape
    """
    try:
        document = OnlineHistoryImport.model_validate(raw)
    except ValidationError as e:
        logger.warning("online_history.invalid", error_count=e.error_count())
        return None

    labels = [parse_instant(label) for label in document.labels]

    history_map: dict[str, list[Sample]] = {}
    for item in document.datasets:
        try:
            dataset = OnlineDataset.model_validate(item)
        except ValidationError:
            continue
        if not dataset.label:
            continue
        series = dataset.values()

        history = []
        for index, ts in enumerate(labels):
            if ts is None:
                continue
            value = series[index] if index < len(series) else 0
            history.append(Sample(ts=ts, players=normalize_players(value)))
        history_map[dataset.label] = history

    return history_map


def merge_history(*series: Optional[Iterable[Any]]) -> list[Sample]:
    """
    Merge histories into one deduplicated, ascending series.

    Samples are keyed by instant; a sample from a later argument replaces
    one with the same instant from an earlier argument. Entries that are
    not samples, or have no parseable timestamp, are dropped.
    """
    merged: dict[datetime, Sample] = {}
    for history in series:
        if not history:
            continue
        for item in history:
            sample = _coerce_sample(item)
            if sample is None:
                continue
            merged[sample.ts] = Sample(ts=sample.ts, players=sample.players)

    return [merged[ts] for ts in sorted(merged)]


def merge_into_state(state: State, online_history: Optional[Mapping[str, list[Sample]]]) -> State:
    """
    Fold the bulk export into a served snapshot.

    Live samples win timestamp collisions. Servers that only exist in the
    export get a record with unknown status and the exported history.
    """
    if not online_history:
        return state

    merged = state.model_copy(deep=True)
    for server_id, history in online_history.items():
        record = merged.servers.get(server_id)
        if record is not None:
            record.history = merge_history(history, record.history)
        else:
            merged.servers[server_id] = ServerRecord(
                id=server_id,
                status=ServerStatus.UNKNOWN,
                current=Stat(),
                avg=Stat(),
                max=Stat(),
                history=merge_history(history),
            )
    return merged
