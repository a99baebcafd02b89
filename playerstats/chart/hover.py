"""
Hover resolution.
Maps a pointer position to the nearest sample of every series at one shared timestamp.
"""
from bisect import bisect_left
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence

from playerstats.chart.layout import ChartLayout
from playerstats.chart.models import Point


@dataclass(frozen=True)
class HoverPoint:
    id: str
    players: int
    color: str


@dataclass(frozen=True)
class HoverState:
    """Resolved hover: shared timestamp, cursor x and one value per series."""

    time: float
    x: float
    points: list[HoverPoint] = field(default_factory=list)


def find_nearest_point(points: Sequence[Point], target: float) -> Optional[Point]:
    """
    Binary-search ascending `points` for the one closest to `target`.

    On equal distance the earlier point wins.
    """
    if not points:
        return None

    index = min(bisect_left(points, target, key=lambda point: point.time), len(points) - 1)
    if index > 0:
        prev, curr = points[index - 1], points[index]
        if abs(prev.time - target) <= abs(curr.time - target):
            index -= 1
    return points[index]


def hover_at(layout: ChartLayout, target: float) -> Optional[HoverState]:
    """
    Resolve the hover for a target time.

    The primary series (first with points) picks the timestamp; every
    series is then read at that timestamp by the same nearest rule.
    """
    primary = next((series for series in layout.series if series.points), None)
    if primary is None:
        return None

    nearest = find_nearest_point(primary.points, target)
    if nearest is None:
        return None

    hover_time = nearest.time
    values = []
    for series in layout.series:
        point = find_nearest_point(series.points, hover_time)
        if point is None:
            continue
        values.append(HoverPoint(id=series.id, players=point.players, color=layout.color_for(series.id)))

    return HoverState(time=hover_time, x=layout.x_for(hover_time), points=values)


def resolve_hover(layout: Optional[ChartLayout], x: float, y: float) -> Optional[HoverState]:
    """
    Resolve a pointer position to a hover state.

    Returns:
        HoverState, or None when there is no layout or the pointer is outside the plot
    """
    if layout is None or not layout.contains(x, y):
        return None
    return hover_at(layout, layout.time_at(x))


def format_tooltip_time(timestamp: Optional[float]) -> str:
    """Tooltip heading, "YYYY-MM-DD HH:MM" in UTC."""
    if timestamp is None:
        return "-"
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
