"""Integration tests for automatic and manual history retention."""

import pytest

from ledgex import Commit, Ledger


@pytest.fixture
def small_ledger():
    """Ledger that flushes once the timeline is 8 ticks past the last flush."""
    return Ledger(buffer_size=5, tolerance_window=2)


def _write_counter(ledger, upto):
    ledger.set({"ns": {"x": 1, "y": "constant"}})
    for value in range(2, upto + 1):
        ledger.set({"ns": {"x": value}})


@pytest.mark.integration
class TestAutoFlush:
    def test_no_flush_within_buffer_and_tolerance(self, small_ledger):
        _write_counter(small_ledger, 7)

        assert small_ledger.last_flush_time == 0
        assert len(small_ledger.layer("ns").history("x")) == 7

    def test_flush_runs_once_tolerance_is_exceeded(self, small_ledger):
        _write_counter(small_ledger, 8)
        layer = small_ledger.layer("ns")

        assert small_ledger.last_flush_time == 8
        assert layer.history("x")[0] == Commit(3, 3)
        assert len(layer.history("x")) == 6
        assert layer.history("y") == (Commit(3, "constant"),)
        assert small_ledger.genesis.history("ns") == (Commit(3, True),)

    def test_current_state_survives_flush(self, small_ledger):
        _write_counter(small_ledger, 8)
        assert small_ledger.get() == {"ns": {"x": 8, "y": "constant"}}

    def test_state_at_threshold_survives_flush(self, small_ledger):
        _write_counter(small_ledger, 8)
        assert small_ledger.travel(3) == {"ns": {"x": 3, "y": "constant"}}

    def test_history_before_threshold_is_gone(self, small_ledger):
        _write_counter(small_ledger, 8)
        assert small_ledger.travel(2) == {}

    def test_flushes_repeat_as_timeline_grows(self, small_ledger):
        _write_counter(small_ledger, 16)

        assert small_ledger.last_flush_time == 16
        assert small_ledger.layer("ns").history("x")[0] == Commit(11, 11)

    def test_memory_stays_bounded(self, small_ledger):
        small_ledger.set({"ns": {"x": 0, "y": "constant"}})
        layer = small_ledger.layer("ns")

        for value in range(1, 200):
            small_ledger.set({"ns": {"x": value}})
            # x spans at most buffer_size + tolerance_window + buffer_size + 1
            # ticks just before a flush, y keeps a single commit
            assert layer.commit_count() <= 14

    def test_removal_counts_towards_retention(self, small_ledger):
        _write_counter(small_ledger, 7)
        small_ledger.remove("ns")

        assert small_ledger.last_flush_time == 8
        assert small_ledger.get() == {}
        assert small_ledger.undo() == {"ns": {"x": 7, "y": "constant"}}


@pytest.mark.integration
class TestManualFlush:
    def test_flush_trims_to_buffer(self):
        ledger = Ledger(buffer_size=2)
        for value in range(1, 6):
            ledger.set({"ns": {"x": value}})

        ledger.flush()

        assert ledger.last_flush_time == 5
        assert [c.timestamp for c in ledger.layer("ns").history("x")] == [3, 4, 5]
        assert ledger.get() == {"ns": {"x": 5}}

    def test_flush_with_short_history_changes_nothing(self, ledger):
        ledger.set({"ns": {"x": 1}})
        ledger.set({"ns": {"x": 2}})

        ledger.flush()

        assert ledger.last_flush_time == 2
        assert len(ledger.layer("ns").history("x")) == 2

    def test_flush_notifies(self, ledger):
        ledger.flush()
        assert ledger.pending_notifications == 1

    def test_namespace_removed_before_threshold_is_forgotten(self):
        ledger = Ledger(buffer_size=1)
        ledger.set({"a": {"x": 1}, "b": {"y": 1}})
        ledger.remove("a")
        ledger.set({"b": {"y": 2}})

        ledger.flush()

        assert ledger.get() == {"b": {"y": 2}}
        assert ledger.layer("a") is None
        assert "a" not in ledger.genesis
        assert ledger.genesis.history("a") == ()

    def test_forgotten_namespace_can_be_written_again(self):
        ledger = Ledger(buffer_size=2)
        ledger.set({"a": {"x": 1}})
        ledger.set({"b": {"y": 1}})
        ledger.remove("a")
        for value in range(2, 5):
            ledger.set({"b": {"y": value}})

        ledger.flush()
        assert ledger.layer("a") is None
        assert ledger.get() == {"b": {"y": 4}}

        ledger.set({"a": {"z": 1}})
        assert ledger.get() == {"a": {"z": 1}, "b": {"y": 4}}

    def test_namespace_removed_after_threshold_is_kept(self):
        ledger = Ledger(buffer_size=2)
        ledger.set({"a": {"x": 1}, "b": {"y": 1}})
        ledger.set({"b": {"y": 2}})
        ledger.remove("a")
        ledger.set({"b": {"y": 3}})

        ledger.flush()

        assert ledger.genesis.history("a") == (Commit(2, True), Commit(3, False))
        assert ledger.travel(2) == {"a": {"x": 1}, "b": {"y": 2}}


@pytest.mark.integration
class TestManualPrune:
    def test_prune_cuts_every_namespace(self, ledger):
        ledger.set({"a": {"x": 1}})
        ledger.set({"a": {"x": 2}})
        ledger.set({"b": {"y": 1}})
        ledger.set({"a": {"x": 3}})

        ledger.prune(3)

        assert ledger.layer("b") is None
        assert ledger.get() == {"a": {"x": 2}}
        assert ledger.clock.max() == 4

    def test_prune_notifies(self, ledger):
        ledger.prune(0)
        assert ledger.pending_notifications == 1
