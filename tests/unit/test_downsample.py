"""
Unit tests for peak-preserving downsampling.
Run: pytest tests/unit/test_downsample.py -v
"""
import math

import pytest
from hypothesis import given
from hypothesis import strategies as st

from playerstats.chart.downsample import downsample
from factories import points


def series_strategy():
    return st.lists(st.integers(0, 500), max_size=300).map(
        lambda values: points(*enumerate(values))
    )


class TestDownsample:
    """Tests for downsample."""

    def test_short_series_unchanged(self):
        source = points((0, 1), (1, 2))
        result = downsample(source, 5)
        assert result == source
        assert result is not source

    def test_keeps_bucket_peaks(self):
        source = points((0, 1), (1, 9), (2, 3), (3, 4), (4, 8), (5, 2), (6, 7))
        result = downsample(source, 3)
        # bucket size 3: [1, 9, 3] [4, 8, 2] [7]
        assert result == points((1, 9), (4, 8), (6, 7))

    def test_first_point_wins_ties(self):
        source = points((0, 5), (1, 5), (2, 1), (3, 1))
        assert downsample(source, 2) == points((0, 5), (2, 1))

    def test_limit_one_keeps_global_peak(self):
        source = points((0, 3), (1, 12), (2, 12), (3, 4))
        assert downsample(source, 1) == points((1, 12))

    @pytest.mark.parametrize("limit", [0, -1])
    def test_non_positive_limit_rejected(self, limit):
        with pytest.raises(ValueError):
            downsample(points((0, 1)), limit)

    @given(series=series_strategy(), limit=st.integers(1, 200))
    def test_never_exceeds_limit(self, series, limit):
        """PROPERTY: output length is min(len, limit) or fewer buckets."""
        result = downsample(series, limit)
        assert len(result) <= limit
        if len(series) <= limit:
            assert result == series
        else:
            assert len(result) == math.ceil(len(series) / math.ceil(len(series) / limit))

    @given(series=series_strategy(), limit=st.integers(1, 200))
    def test_preserves_order_and_global_peak(self, series, limit):
        """PROPERTY: output is an ordered subsequence containing the maximum."""
        result = downsample(series, limit)
        times = [point.time for point in result]
        assert times == sorted(times)
        assert set(result) <= set(series)
        if series:
            assert max(point.players for point in result) == max(point.players for point in series)
