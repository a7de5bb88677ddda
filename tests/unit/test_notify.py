"""Unit tests for deferred notification dispatch."""

import logging

import pytest

from ledgex import Notifier


@pytest.mark.unit
def test_requests_are_queued_until_drained():
    notifier = Notifier()
    calls = []
    notifier.subscribe(lambda: calls.append("hit"))

    notifier.request()
    notifier.request()
    assert calls == []
    assert notifier.pending == 2

    assert notifier.drain() == 2
    assert calls == ["hit", "hit"]
    assert notifier.pending == 0


@pytest.mark.unit
def test_unsubscribe_stops_delivery():
    notifier = Notifier()
    calls = []
    unsubscribe = notifier.subscribe(lambda: calls.append(1))

    unsubscribe()
    notifier.request()
    notifier.drain()

    assert calls == []
    assert notifier.subscriber_count == 0


@pytest.mark.unit
def test_unsubscribe_twice_is_harmless():
    notifier = Notifier()
    unsubscribe = notifier.subscribe(lambda: None)
    unsubscribe()
    unsubscribe()
    assert notifier.subscriber_count == 0


@pytest.mark.unit
def test_same_callback_subscribed_once():
    notifier = Notifier()
    calls = []

    def callback():
        calls.append(1)

    notifier.subscribe(callback)
    notifier.subscribe(callback)
    notifier.request()
    notifier.drain()

    assert calls == [1]


@pytest.mark.unit
def test_scheduler_receives_one_drain_per_burst():
    scheduled = []
    notifier = Notifier(scheduler=scheduled.append)
    calls = []
    notifier.subscribe(lambda: calls.append(1))

    notifier.request()
    notifier.request()
    assert len(scheduled) == 1

    scheduled[0]()
    assert calls == [1, 1]

    notifier.request()
    assert len(scheduled) == 2


@pytest.mark.unit
def test_batch_collapses_requests():
    notifier = Notifier()
    with notifier.batch():
        notifier.request()
        with notifier.batch():
            notifier.request()
        notifier.request()
        assert notifier.pending == 0

    assert notifier.pending == 1


@pytest.mark.unit
def test_empty_batch_requests_nothing():
    notifier = Notifier()
    with notifier.batch():
        pass
    assert notifier.pending == 0


@pytest.mark.unit
def test_failing_subscriber_does_not_block_others(caplog):
    notifier = Notifier()
    calls = []

    def broken():
        raise RuntimeError("boom")

    notifier.subscribe(broken)
    notifier.subscribe(lambda: calls.append(1))
    notifier.request()

    with caplog.at_level(logging.ERROR):
        notifier.drain()

    assert calls == [1]
    assert "boom" in caplog.text


@pytest.mark.unit
def test_requests_made_while_draining_are_delivered():
    notifier = Notifier()
    calls = []

    def reentrant():
        calls.append(1)
        if len(calls) == 1:
            notifier.request()

    notifier.subscribe(reentrant)
    notifier.request()

    assert notifier.drain() == 2
    assert calls == [1, 1]
