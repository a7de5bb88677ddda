"""
Commit Log
==========

A ``Layer`` holds the history of one namespace: for every flattened key, the
ordered list of commits written to it. Lookups at an arbitrary time are a
binary search over that list.

History is append-only except for two trimming policies:

- ``prune(fork_time)`` cuts exactly at a fork so an abandoned redo branch
  never leaks into the new one.
- ``flush(threshold)`` drops history older than ``threshold`` but keeps the
  value visible at ``threshold``, moving its commit forward to the threshold.
"""

import logging
from bisect import bisect_right
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .clock import Clock
from .commit import TOMBSTONE, Commit, values_equal
from .flatten import flatten

_MISSING = object()


class TrimDirection(Enum):
    """Which side of the cut a trim keeps."""

    BEFORE = "before"  # fork pruning: keep history up to the cut
    AFTER = "after"  # retention flush: keep history from the cut onward


def _timestamp(commit: Commit) -> int:
    return commit.timestamp


class Layer:
    """
    Per-namespace commit log with point-in-time lookup.

    Usage:
        clock = Clock()
        layer = Layer(clock)
        layer.set({"pos": {"x": 1}}, time=1)
        layer.set("pos.x", 2, time=2)
        layer.get("pos.x", 1)   # 1
        layer.get_state(2)      # {"pos.x": 2}
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock if clock is not None else Clock()
        self._history: Dict[str, List[Commit]] = {}

    # ========================================================================
    # WRITES
    # ========================================================================

    def set(self, key_or_mapping: Any, value: Any = _MISSING, time: Optional[int] = None) -> None:
        """
        Record values at ``time`` (default: the clock's current time).

        Accepts either a nested dict, which is flattened into dot-path keys,
        or a single key with its value.
        """
        if time is None:
            time = self.clock.peek()

        if isinstance(key_or_mapping, dict):
            if value is not _MISSING:
                raise TypeError("A value cannot be given alongside a mapping of updates")
            for key, leaf in flatten(key_or_mapping).items():
                self._append(key, leaf, time)
        else:
            if value is _MISSING:
                raise TypeError(f"No value given for key {key_or_mapping!r}")
            self._append(str(key_or_mapping), value, time)

    def remove(self, key: str, time: Optional[int] = None) -> None:
        """Tombstone ``key`` at ``time``."""
        self.set(key, TOMBSTONE, time)

    def _append(self, key: str, value: Any, time: int) -> None:
        commits = self._history.setdefault(key, [])
        if commits:
            last = commits[-1].timestamp
            if time < last:
                raise ValueError(
                    f"Cannot write '{key}' at time {time}: history already reaches {last}"
                )
            if time == last:
                # Same transaction time: the later write wins
                commits[-1] = Commit(time, value)
                return
        commits.append(Commit(time, value))

    # ========================================================================
    # READS
    # ========================================================================

    def get(self, key: str, time: Optional[int] = None) -> Any:
        """Value of ``key`` at ``time``, or ``None`` when absent or deleted."""
        if time is None:
            time = self.clock.peek()

        commits = self._history.get(key)
        if not commits:
            return None

        idx = self._find_latest(commits, time)
        return commits[idx].value if idx >= 0 else None

    def get_state(self, time: Optional[int] = None) -> Dict[str, Any]:
        """Flat snapshot of every live key at ``time``."""
        if time is None:
            time = self.clock.peek()

        state = {}
        for key, commits in self._history.items():
            idx = self._find_latest(commits, time)
            if idx >= 0 and not commits[idx].is_tombstone:
                state[key] = commits[idx].value
        return state

    def is_update_meaningful(self, update: Dict[str, Any], time: Optional[int] = None) -> bool:
        """True if any leaf of ``update`` differs from what is visible at ``time``."""
        if not isinstance(update, dict):
            raise TypeError(
                f"Updates must be a dict of values, got {type(update).__name__}"
            )
        if time is None:
            time = self.clock.peek()

        return any(
            not values_equal(self.get(key, time), value)
            for key, value in flatten(update).items()
        )

    @staticmethod
    def _find_latest(commits: List[Commit], time: int) -> int:
        """Index of the latest commit with ``timestamp <= time``, or -1."""
        return bisect_right(commits, time, key=_timestamp) - 1

    # ========================================================================
    # TRIMMING
    # ========================================================================

    def prune(self, fork_time: int) -> None:
        """Discard every commit at or after ``fork_time``."""
        self._trim_history(fork_time, TrimDirection.BEFORE)

    def flush(self, threshold: int) -> None:
        """Discard history before ``threshold``, keeping the value visible there."""
        self._trim_history(threshold, TrimDirection.AFTER)

    def _trim_history(self, cut: int, direction: TrimDirection) -> None:
        if not isinstance(direction, TrimDirection):
            raise ValueError(f"Unknown trim direction: {direction!r}")

        for key in list(self._history):
            commits = self._history[key]

            if direction is TrimDirection.BEFORE:
                idx = self._find_latest(commits, cut - 1)
                kept = commits[: idx + 1]
            else:
                idx = self._find_latest(commits, cut)
                if idx < 0:
                    # Entire history is inside the retained window
                    continue
                kept = commits[idx:]
                kept[0] = kept[0].rebased(cut)

            if kept:
                self._history[key] = kept
            else:
                del self._history[key]

        logging.debug(f"Trimmed layer {direction.value} {cut}: {len(self._history)} keys left")

    # ========================================================================
    # INSPECTION
    # ========================================================================

    def history(self, key: str) -> Tuple[Commit, ...]:
        return tuple(self._history.get(key, ()))

    def keys(self) -> List[str]:
        return list(self._history.keys())

    def commit_count(self) -> int:
        return sum(len(commits) for commits in self._history.values())

    def earliest_time(self) -> Optional[int]:
        """Oldest timestamp still held by any key."""
        if not self._history:
            return None
        return min(commits[0].timestamp for commits in self._history.values())

    def latest_time(self, key: Optional[str] = None) -> Optional[int]:
        """Newest timestamp held by ``key``, or by any key when none is given."""
        if key is not None:
            commits = self._history.get(key)
            return commits[-1].timestamp if commits else None
        if not self._history:
            return None
        return max(commits[-1].timestamp for commits in self._history.values())

    def discard(self, key: str) -> None:
        """Forget the whole history of ``key``."""
        self._history.pop(key, None)

    @property
    def is_empty(self) -> bool:
        return not self._history

    def __contains__(self, key: str) -> bool:
        return key in self._history

    def __len__(self) -> int:
        return len(self._history)

    def __repr__(self) -> str:
        return f"Layer(keys={len(self._history)}, commits={self.commit_count()})"
