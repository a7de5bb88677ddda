"""
Commits and Structural Equality
===============================

A commit is one immutable ``(timestamp, value)`` record in the history of a
single flattened key. ``None`` is the tombstone: it marks the key as deleted
from that point in time onward.

Deduplication of no-op writes relies on ``values_equal``, a structural
comparison over a closed set of value shapes. Anything the classifier cannot
place compares unequal, so an unknown value type always records history
instead of being silently dropped.
"""

import datetime
from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

import numpy as np

TOMBSTONE = None


# ============================================================================
# COMMITS
# ============================================================================


@dataclass(frozen=True, slots=True)
class Commit:
    """Immutable value of one key at one point of the logical timeline."""

    timestamp: int
    value: Any

    @property
    def is_tombstone(self) -> bool:
        return self.value is TOMBSTONE

    def rebased(self, timestamp: int) -> "Commit":
        """Return a copy of this commit moved to ``timestamp``."""
        return replace(self, timestamp=timestamp)

    def __repr__(self) -> str:
        if self.is_tombstone:
            return f"Commit(@{self.timestamp}: deleted)"
        return f"Commit(@{self.timestamp}: {self.value!r})"


# ============================================================================
# VALUE SHAPES
# ============================================================================


class ValueShape(Enum):
    """Classification of stored values for equality dispatch."""

    ABSENT = "absent"
    PRIMITIVE = "primitive"
    INSTANT = "instant"
    SEQUENCE = "sequence"
    ARRAY = "array"
    MAPPING = "mapping"
    OPAQUE = "opaque"


_PRIMITIVE_TYPES = (bool, int, float, complex, str, bytes, np.generic)
_BOOL_TYPES = (bool, np.bool_)
_INSTANT_TYPES = (datetime.datetime, datetime.date, datetime.time)
_SEQUENCE_TYPES = (list, tuple)


def detect_shape(value: Any) -> ValueShape:
    if value is None:
        return ValueShape.ABSENT
    if isinstance(value, _PRIMITIVE_TYPES):
        return ValueShape.PRIMITIVE
    if isinstance(value, _INSTANT_TYPES):
        return ValueShape.INSTANT
    if isinstance(value, _SEQUENCE_TYPES):
        return ValueShape.SEQUENCE
    if isinstance(value, np.ndarray):
        return ValueShape.ARRAY
    if isinstance(value, Mapping):
        return ValueShape.MAPPING
    return ValueShape.OPAQUE


def values_equal(a: Any, b: Any) -> bool:
    """
    Structural equality used to decide whether a write changes anything.

    Two absent values are equal, an absent and a present value never are.
    Sequences compare elementwise, mappings by key set and recursively by
    value, numpy arrays by shape and elements, and date/time values by the
    instant they denote. Opaque values are only equal to themselves.
    """
    shape_a = detect_shape(a)
    shape_b = detect_shape(b)

    if shape_a is ValueShape.ABSENT or shape_b is ValueShape.ABSENT:
        return shape_a is shape_b
    if a is b:
        return True
    if shape_a is not shape_b:
        return False

    try:
        if shape_a is ValueShape.PRIMITIVE:
            # 1 == True in Python; keep booleans distinct from numbers
            if isinstance(a, _BOOL_TYPES) != isinstance(b, _BOOL_TYPES):
                return False
            return bool(a == b)

        if shape_a is ValueShape.INSTANT:
            return type(a) is type(b) and bool(a == b)

        if shape_a is ValueShape.SEQUENCE:
            if len(a) != len(b):
                return False
            return all(values_equal(x, y) for x, y in zip(a, b))

        if shape_a is ValueShape.ARRAY:
            return bool(np.array_equal(a, b))

        if shape_a is ValueShape.MAPPING:
            if a.keys() != b.keys():
                return False
            return all(values_equal(a[key], b[key]) for key in a)
    except (TypeError, ValueError):
        return False

    return False
