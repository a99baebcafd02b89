"""
Unit tests for the time-series store.
Run: pytest tests/unit/test_timeseries_store.py -v
"""
import json
import math
from datetime import timedelta
from fractions import Fraction

import pytest
from hypothesis import given
from hypothesis import strategies as st

from playerstats.schemas import Sample, ServerRecord, ServerStatus, SourceResult, State
from playerstats.services.timeseries_store import (
    TimeSeriesStore,
    recompute_aggregates,
    retention_cutoff,
)
from factories import T0, at, samples


def make_store(path, server_ids=("a", "b"), **kwargs) -> TimeSeriesStore:
    return TimeSeriesStore(list(server_ids), path, clock=lambda: T0, **kwargs)


class TestRetentionCutoff:
    """Tests for retention_cutoff."""

    def test_disabled_when_unset(self):
        assert retention_cutoff(T0, None) is None

    def test_disabled_when_not_positive(self):
        assert retention_cutoff(T0, 0) is None
        assert retention_cutoff(T0, -3) is None

    def test_days_before_now(self):
        assert retention_cutoff(T0, 1) == at(-24 * 60)

    @pytest.mark.parametrize("history_days", [math.inf, -math.inf, math.nan])
    def test_disabled_when_not_finite(self, history_days):
        assert retention_cutoff(T0, history_days) is None

    def test_window_beyond_datetime_range_keeps_everything(self):
        assert retention_cutoff(T0, 1e9) is None
        assert retention_cutoff(T0, 900_000) is None


class TestRecomputeAggregates:
    """Tests for recompute_aggregates."""

    def test_average_rounds_half_up(self):
        record = ServerRecord(id="a", history=samples((0, 1), (1, 2)))
        recompute_aggregates(record, at(5))
        assert record.avg.players == 2
        assert record.avg.ts == at(5)

    def test_max_later_sample_wins_ties(self):
        record = ServerRecord(id="a", history=samples((0, 10), (1, 50), (2, 5), (3, 50)))
        recompute_aggregates(record, at(5))
        assert record.max.players == 50
        assert record.max.ts == at(3)

    def test_empty_history_is_zero_at_now(self):
        record = ServerRecord(id="a")
        recompute_aggregates(record, at(5))
        assert record.avg.players == 0
        assert record.max.players == 0
        assert record.max.ts == at(5)

    def test_all_zero_history_points_max_at_last_sample(self):
        record = ServerRecord(id="a", history=samples((0, 0), (1, 0)))
        recompute_aggregates(record, at(5))
        assert record.max.players == 0
        assert record.max.ts == at(1)


class TestIngest:
    """Tests for TimeSeriesStore.ingest."""

    async def test_appends_sample_and_sets_current(self, snapshot_path):
        store = make_store(snapshot_path)
        state = await store.ingest(
            {"a": SourceResult(players=12, online=True), "b": SourceResult(players=0, online=False)},
            now=at(1),
        )

        record = state.servers["a"]
        assert record.history == [Sample(ts=at(1), players=12)]
        assert record.current.players == 12
        assert record.current.ts == at(1)
        assert record.status is ServerStatus.ONLINE
        assert state.servers["b"].status is ServerStatus.OFFLINE
        assert state.updated_at == at(1)

    async def test_missing_result_counts_as_offline(self, snapshot_path):
        store = make_store(snapshot_path)
        state = await store.ingest({"a": SourceResult(players=3, online=True)}, now=at(1))

        assert state.servers["b"].status is ServerStatus.OFFLINE
        assert state.servers["b"].history == [Sample(ts=at(1), players=0)]

    async def test_aggregates_follow_history(self, snapshot_path):
        store = make_store(snapshot_path, server_ids=["a"])
        for minute, players in [(1, 10), (2, 50), (3, 5)]:
            state = await store.ingest({"a": SourceResult(players=players, online=True)}, now=at(minute))

        record = state.servers["a"]
        assert record.avg.players == 22
        assert record.avg.ts == at(3)
        assert record.max.players == 50
        assert record.max.ts == at(2)

    async def test_retention_drops_old_samples(self, snapshot_path):
        store = make_store(snapshot_path, server_ids=["a"], history_days=1)
        await store.ingest({"a": SourceResult(players=99, online=True)}, now=at(0))
        await store.ingest({"a": SourceResult(players=1, online=True)}, now=at(24 * 60))
        state = await store.ingest({"a": SourceResult(players=2, online=True)}, now=at(24 * 60 + 1))

        record = state.servers["a"]
        assert [sample.players for sample in record.history] == [1, 2]
        assert record.max.players == 2

    async def test_sample_exactly_at_cutoff_is_kept(self, snapshot_path):
        store = make_store(snapshot_path, server_ids=["a"], history_days=1)
        await store.ingest({"a": SourceResult(players=7, online=True)}, now=at(0))
        state = await store.ingest({"a": SourceResult(players=1, online=True)}, now=at(24 * 60))

        assert [sample.players for sample in state.servers["a"].history] == [7, 1]

    async def test_infinite_retention_window_keeps_everything(self, snapshot_path):
        store = make_store(snapshot_path, server_ids=["a"], history_days=math.inf)
        await store.ingest({"a": SourceResult(players=1, online=True)}, now=at(0))
        state = await store.ingest({"a": SourceResult(players=2, online=True)}, now=at(400 * 24 * 60))

        assert [sample.players for sample in state.servers["a"].history] == [1, 2]

    async def test_no_retention_keeps_everything(self, snapshot_path):
        store = make_store(snapshot_path, server_ids=["a"])
        await store.ingest({"a": SourceResult(players=1, online=True)}, now=at(0))
        state = await store.ingest({"a": SourceResult(players=2, online=True)}, now=at(400 * 24 * 60))

        assert len(state.servers["a"].history) == 2

    async def test_writes_snapshot_file(self, snapshot_path):
        store = make_store(snapshot_path, server_ids=["a"])
        await store.ingest({"a": SourceResult(players=4, online=True)}, now=at(1))

        data = json.loads(snapshot_path.read_text())
        assert data["updatedAt"].startswith("2024-01-15T12:01:00")
        assert data["servers"]["a"]["history"][0]["players"] == 4
        assert data["servers"]["a"]["status"] == "online"

    async def test_write_failure_still_commits(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        store = make_store(blocker / "data.json", server_ids=["a"])

        state = await store.ingest({"a": SourceResult(players=4, online=True)}, now=at(1))

        assert state.servers["a"].current.players == 4
        assert store.state.servers["a"].current.players == 4

    async def test_returned_state_is_a_copy(self, snapshot_path):
        store = make_store(snapshot_path, server_ids=["a"])
        state = await store.ingest({"a": SourceResult(players=4, online=True)}, now=at(1))
        state.servers["a"].history.clear()

        assert len(store.state.servers["a"].history) == 1

    async def test_not_busy_outside_ingest(self, snapshot_path):
        store = make_store(snapshot_path)
        assert store.busy is False
        await store.ingest({}, now=at(1))
        assert store.busy is False


class TestLoad:
    """Tests for TimeSeriesStore.load."""

    def test_absent_file_gives_default_state(self, snapshot_path):
        state = make_store(snapshot_path).load()

        assert state.updated_at == T0
        assert set(state.servers) == {"a", "b"}
        assert state.servers["a"].status is ServerStatus.UNKNOWN
        assert state.servers["a"].history == []

    def test_corrupt_file_gives_default_state(self, snapshot_path):
        snapshot_path.write_text("{not json")
        state = make_store(snapshot_path).load()
        assert set(state.servers) == {"a", "b"}
        assert state.servers["a"].history == []

    def test_invalid_document_gives_default_state(self, snapshot_path):
        snapshot_path.write_text(json.dumps({"servers": {}}))
        state = make_store(snapshot_path).load()
        assert state.updated_at == T0

    def test_oversized_player_count_loads_as_zero(self, snapshot_path):
        snapshot_path.write_text(
            '{"updatedAt": "2024-01-15T12:00:00Z", "servers": {"a": {"id": "a", "history": '
            '[{"ts": "2024-01-15T12:00:00Z", "players": ' + "9" * 400 + '}]}}}'
        )

        state = make_store(snapshot_path).load()

        assert state.servers["a"].history == samples((0, 0))

    def test_adds_missing_configured_servers(self, snapshot_path):
        existing = State(
            updated_at=at(-5),
            servers={"a": ServerRecord(id="a", status=ServerStatus.ONLINE, history=samples((-5, 9)))},
        )
        snapshot_path.write_text(json.dumps(existing.to_payload()))

        state = make_store(snapshot_path).load()

        assert state.updated_at == at(-5)
        assert state.servers["a"].history == samples((-5, 9))
        assert state.servers["b"].history == []

    def test_round_trips_ingested_state(self, snapshot_path):
        store = make_store(snapshot_path, server_ids=["a"])
        snapshot_path.write_text(json.dumps(State(
            updated_at=at(0),
            servers={"a": ServerRecord(id="a", history=samples((0, 3)))},
        ).to_payload()))

        state = store.load()

        assert state.servers["a"].history[0].players == 3
        assert state.servers["a"].history[0].ts == at(0)


class TestSnapshot:
    """Tests for the served snapshot view."""

    def test_limited_to_configured_servers(self, snapshot_path):
        existing = State(
            updated_at=at(0),
            servers={
                "a": ServerRecord(id="a"),
                "retired": ServerRecord(id="retired"),
            },
        )
        snapshot_path.write_text(json.dumps(existing.to_payload()))
        store = make_store(snapshot_path)
        store.load()

        payload = store.snapshot()

        assert set(payload["servers"]) == {"a", "b"}
        assert payload["updatedAt"].startswith("2024-01-15T12:00:00")

    @pytest.mark.parametrize("field", ["id", "status", "current", "avg", "max", "history"])
    def test_record_fields_present(self, snapshot_path, field):
        payload = make_store(snapshot_path).snapshot()
        assert field in payload["servers"]["a"]


class TestApplyProperties:
    """Property tests for TimeSeriesStore.apply."""

    @given(
        st.lists(st.tuples(st.integers(1, 60 * 24 * 5), st.integers(0, 500)), min_size=1, max_size=30),
        st.sampled_from([None, 1, 2]),
    )
    def test_retention_and_aggregates(self, ticks, history_days):
        """PROPERTY: retained samples lie inside the window and aggregates match them."""
        store = make_store("unused.json", server_ids=["a"], history_days=history_days)
        state = store.default_state()
        minute = 0
        for gap, players in ticks:
            minute += gap
            store.apply(state, {"a": SourceResult(players=players, online=True)}, at(minute))

        now = at(minute)
        history = state.servers["a"].history
        if history_days is None:
            assert len(history) == len(ticks)
        else:
            assert all(now - sample.ts <= timedelta(days=history_days) for sample in history)
            assert history[-1].ts == now

        total = sum(sample.players for sample in history)
        assert state.servers["a"].avg.players == math.floor(Fraction(total, len(history)) + Fraction(1, 2))
        assert state.servers["a"].max.players == max(sample.players for sample in history)
