from dataclasses import dataclass
from typing import Optional, Sequence

from playerstats.chart.models import Point
from playerstats.schemas import round_half_up


@dataclass(frozen=True)
class Summary:
    """Average and peak over the points visible in the window."""

    avg_players: int = 0
    avg_time: Optional[float] = None
    max_players: int = 0
    max_time: Optional[float] = None


def summarize(points: Sequence[Point]) -> Summary:
    """
    Summarize a projected series.

    The average is stamped with the last point's time; the peak keeps the
    later point on ties.
    """
    if not points:
        return Summary()

    total = sum(point.players for point in points)
    peak = points[0]
    for point in points:
        if point.players >= peak.players:
            peak = point

    return Summary(
        avg_players=round_half_up(total, len(points)),
        avg_time=points[-1].time,
        max_players=peak.players,
        max_time=peak.time,
    )
