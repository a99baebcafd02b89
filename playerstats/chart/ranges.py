"""
Range projection for the chart client.
Picks the anchor instant and the visible window for the active range tab.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Mapping, Optional, Sequence

from playerstats.chart.models import Point
from playerstats.schemas import Sample


RANGE_DURATIONS: dict[str, Optional[timedelta]] = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
    "all": None,
}
DEFAULT_RANGE = "month"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_range(name: Optional[str]) -> str:
    """Known range name, or the default for anything else."""
    return name if name in RANGE_DURATIONS else DEFAULT_RANGE


def range_duration(name: Optional[str]) -> Optional[timedelta]:
    """Window length for a range name; None means unbounded."""
    return RANGE_DURATIONS[normalize_range(name)]


def latest_history_time(histories: Iterable[Sequence[Sample]]) -> Optional[datetime]:
    """Latest sample timestamp across all histories."""
    latest: Optional[datetime] = None
    for history in histories:
        if not history:
            continue
        last = history[-1].ts
        if latest is None or last > latest:
            latest = last
    return latest


def earliest_history_time(histories: Iterable[Sequence[Sample]]) -> Optional[datetime]:
    earliest: Optional[datetime] = None
    for history in histories:
        if not history:
            continue
        first = history[0].ts
        if earliest is None or first < earliest:
            earliest = first
    return earliest


def resolve_anchor(
    histories: Iterable[Sequence[Sample]],
    updated_at: Optional[datetime],
    clock: Callable[[], datetime] = utcnow,
) -> datetime:
    """
    Choose the "now" the visible window is anchored to.

    Fallback order:
        1. latest sample across all histories
        2. the snapshot's updatedAt
        3. the wall clock
    """
    latest = latest_history_time(histories)
    if latest is not None:
        return latest
    if updated_at is not None:
        return updated_at
    return clock()


def to_points(history: Sequence[Sample], start: datetime, end: datetime) -> list[Point]:
    """Samples within [start, end] as render points."""
    return [
        Point(time=sample.ts.timestamp(), players=sample.players)
        for sample in history
        if start <= sample.ts <= end
    ]


@dataclass
class Projection:
    """Per-server points inside the active window."""

    range_name: str
    window_start: datetime
    anchor: datetime
    series: dict[str, list[Point]] = field(default_factory=dict)
    earliest: Optional[float] = None
    latest: Optional[float] = None

    @property
    def has_data(self) -> bool:
        return self.earliest is not None

    @property
    def chart_start(self) -> float:
        """Left edge of the chart: the window start, tightened to the first visible sample."""
        start = self.window_start.timestamp()
        if self.earliest is None:
            return start
        return max(start, self.earliest)

    @property
    def chart_end(self) -> float:
        """Right edge of the chart: the last visible sample, else the anchor."""
        if self.latest is None:
            return self.anchor.timestamp()
        return self.latest


def project(
    histories: Mapping[str, Sequence[Sample]],
    range_name: Optional[str],
    *,
    updated_at: Optional[datetime] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Projection:
    """
    Project every server's history into the window for `range_name`.

    Args:
        histories: Ascending history per server id
        range_name: One of day, week, month, year, all
        updated_at: Snapshot timestamp, used when no history exists
        clock: Wall clock, the last anchor fallback

    Returns:
        Projection with one (possibly empty) series per server
    """
    name = normalize_range(range_name)
    anchor = resolve_anchor(histories.values(), updated_at, clock)

    duration = RANGE_DURATIONS[name]
    if duration is None:
        window_start = earliest_history_time(histories.values()) or anchor
    else:
        window_start = anchor - duration

    projection = Projection(range_name=name, window_start=window_start, anchor=anchor)
    for server_id, history in histories.items():
        points = to_points(history, window_start, anchor)
        projection.series[server_id] = points
        if points:
            first, last = points[0].time, points[-1].time
            projection.earliest = first if projection.earliest is None else min(projection.earliest, first)
            projection.latest = last if projection.latest is None else max(projection.latest, last)

    return projection
