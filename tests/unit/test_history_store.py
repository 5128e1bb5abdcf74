"""
Unit tests for the bounded history store.

Tests:
- Pruning keeps length <= max_size (oldest and decay strategies)
- Window queries use the injected clock
- EWMA, aggregation and the success/speed specializations
- Serialization skips malformed entries

Run: pytest tests/unit/test_history_store.py -v
"""

import pytest

from keycoach.history import (
    HistoryStore,
    PruneStrategy,
    SpeedHistory,
    SuccessHistory,
)


class TestPruning:
    """Length is bounded after any sequence of adds."""

    def test_rejects_non_positive_max_size(self):
        with pytest.raises(ValueError):
            HistoryStore(max_size=0)

    @pytest.mark.parametrize("count", [1, 5, 10, 11, 57])
    def test_length_never_exceeds_max(self, count):
        store = HistoryStore(max_size=10, clock=lambda: 0.0)
        for i in range(count):
            store.add(i, timestamp=i)
            assert len(store) <= 10

    def test_oldest_strategy_drops_exact_excess(self):
        store = HistoryStore(max_size=3)
        for i in range(5):
            store.add(i, timestamp=i)
        assert store.values() == [2, 3, 4]

    def test_decay_strategy_keeps_newest_half(self):
        store = HistoryStore(max_size=10, prune_strategy=PruneStrategy.DECAY)
        for i in range(11):
            store.add(i, timestamp=i)
        assert store.values() == [6, 7, 8, 9, 10]


class TestQueries:
    """Windowed and tail queries."""

    def test_get_last_returns_oldest_first(self):
        store = HistoryStore()
        for i in range(5):
            store.add(i, timestamp=i)
        assert [e.value for e in store.get_last(2)] == [3, 4]
        assert store.get_last(0) == []

    def test_get_window_uses_clock(self, clock):
        store = HistoryStore(clock=clock)
        store.add("old", timestamp=clock.now - 10_000)
        store.add("recent", timestamp=clock.now - 500)
        store.add("now", timestamp=clock.now)

        assert [e.value for e in store.get_window(1_000)] == ["recent", "now"]

    def test_get_window_with_out_of_order_timestamps(self, clock):
        store = HistoryStore(clock=clock)
        store.add("a", timestamp=clock.now - 100)
        store.add("late", timestamp=clock.now - 900)
        store.add("b", timestamp=clock.now - 50)

        assert [e.value for e in store.get_window(200)] == ["a", "b"]
        assert store.aggregate(200, len) == 2

    def test_add_defaults_to_clock_time(self, clock):
        store = HistoryStore(clock=clock)
        store.add(1)
        assert store.get_all()[0].timestamp == clock.now

    def test_ewma_seeded_by_first_value(self):
        store = HistoryStore()
        assert store.ewma() is None
        store.add(10.0, timestamp=0)
        store.add(20.0, timestamp=1)
        assert store.ewma(alpha=0.5) == pytest.approx(15.0)

    def test_aggregate_empty_window_is_none(self, clock):
        store = HistoryStore(clock=clock)
        store.add(5, timestamp=clock.now - 60_000)
        assert store.aggregate(1_000, sum) is None
        store.add(7, timestamp=clock.now)
        assert store.aggregate(1_000, sum) == 7

    def test_get_all_is_immutable_view(self):
        store = HistoryStore()
        store.add(1, timestamp=0)
        assert isinstance(store.get_all(), tuple)


class TestSpecializations:
    """SuccessHistory and SpeedHistory helpers."""

    def test_success_rates(self):
        history = SuccessHistory()
        assert history.success_rate() == 0.0
        for i, ok in enumerate([True, True, False, True]):
            history.add(ok, timestamp=i)
        assert history.success_rate() == pytest.approx(0.75)
        assert history.recent_success_rate(2) == pytest.approx(0.5)

    def test_speed_statistics(self):
        speeds = SpeedHistory()
        for i, ms in enumerate([100.0, 200.0, 300.0, 400.0]):
            speeds.add(ms, timestamp=i)
        assert speeds.mean() == pytest.approx(250.0)
        assert speeds.std_dev() == pytest.approx(111.803, rel=1e-4)
        assert speeds.percentile(50) == 300.0
        assert speeds.percentile(100) == 400.0
        assert speeds.percentile(0) == 100.0

    def test_empty_speed_history(self):
        speeds = SpeedHistory()
        assert speeds.mean() == 0.0
        assert speeds.std_dev() == 0.0
        assert speeds.percentile(90) == 0.0


class TestSerialization:
    """[timestamp, value] pair format."""

    def test_serialize_pairs(self):
        store = HistoryStore()
        store.add(True, timestamp=5.0)
        assert store.serialize() == [[5.0, True]]

    def test_deserialize_skips_malformed(self):
        store = HistoryStore()
        store.deserialize([[1.0, True], "garbage", [None, False], [2.0, False], [3.0]])
        assert store.serialize() == [[1.0, True], [2.0, False]]

    def test_deserialize_reprunes(self):
        store = HistoryStore(max_size=2)
        store.deserialize([[i, i] for i in range(5)])
        assert store.values() == [3, 4]
