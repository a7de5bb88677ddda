"""
Shared pytest fixtures and configuration for Ledgex tests.
"""

import pytest

from ledgex import Clock, Layer, Ledger


@pytest.fixture
def clock():
    """Provide a fresh Clock at time 0."""
    return Clock()


@pytest.fixture
def layer(clock):
    """Provide an empty Layer bound to the clock fixture."""
    return Layer(clock)


@pytest.fixture
def ledger():
    """Provide a Ledger with the default retention settings."""
    return Ledger()


@pytest.fixture
def notifications(ledger):
    """Record every notification delivered by the ledger fixture."""
    received = []
    ledger.subscribe(lambda: received.append(ledger.clock.peek()))
    return received
