"""
Ledgex - Versioned Multi-Namespace Key-Value Store

Branching undo/redo over a shared logical clock, with deduplication of no-op
writes and bounded history retention.
"""

from .clock import Clock
from .commit import TOMBSTONE, Commit, ValueShape, detect_shape, values_equal
from .flatten import flatten, unflatten
from .layer import Layer, TrimDirection
from .ledger import Ledger, TimeInfo
from .notify import NotificationBatch, Notifier

__all__ = [
    # Orchestrator
    "Ledger",
    "TimeInfo",
    # Building blocks
    "Clock",
    "Layer",
    "TrimDirection",
    "Commit",
    "TOMBSTONE",
    # Notifications
    "Notifier",
    "NotificationBatch",
    # Helpers
    "ValueShape",
    "detect_shape",
    "values_equal",
    "flatten",
    "unflatten",
]
