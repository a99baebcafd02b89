import math
from typing import Sequence

from playerstats.chart.models import Point


def downsample(points: Sequence[Point], limit: int) -> list[Point]:
    """
    Reduce `points` to at most `limit` points, keeping peaks.

    Points are split by index into contiguous buckets of
    ceil(len / limit) and each bucket is replaced by its highest point
    (the first one on ties). Input order is preserved. Sequences that
    already fit are returned unchanged.

    Raises:
        ValueError: if limit is not positive
    """
    if limit <= 0:
        raise ValueError("limit must be positive")
    if len(points) <= limit:
        return list(points)

    bucket_size = math.ceil(len(points) / limit)
    result = []
    for start in range(0, len(points), bucket_size):
        bucket = points[start:start + bucket_size]
        peak = bucket[0]
        for point in bucket[1:]:
            if point.players > peak.players:
                peak = point
        result.append(peak)
    return result
