"""
Ledger - Versioned Multi-Namespace Store
========================================

The ledger owns one ``Clock``, one ``Layer`` per namespace and a *genesis*
layer that records, per namespace id, whether the namespace is alive at a given
time. Every ``set`` is one atomic transaction and one undo step, however many
namespaces and keys it touches.

Example:
    ledger = Ledger(buffer_size=50)
    ledger.set({"shapes": {"rect": {"w": 10}}, "meta": {"title": "Untitled"}})
    ledger.set({"shapes": {"rect": {"w": 12}}})
    ledger.undo()     # {"shapes": {"rect.w": 10}, "meta": {"title": "Untitled"}}
    ledger.redo()     # {"shapes": {"rect.w": 12}, "meta": {"title": "Untitled"}}

Retention: once the timeline has grown ``buffer_size + tolerance_window`` ticks
past the previous flush, history older than ``max_time - buffer_size`` is
collapsed so that memory stays bounded.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from cachetools import LRUCache

from .clock import Clock
from .flatten import flatten, unflatten
from .layer import Layer
from .notify import NotificationBatch, Notifier, Scheduler


@dataclass(frozen=True, slots=True)
class TimeInfo:
    """Position of the ledger on its timeline."""

    current_time: int
    max_time: int
    can_undo: bool
    can_redo: bool


class Ledger:
    """
    Orchestrates namespaces over a shared clock with undo/redo and retention.

    Args:
        buffer_size: Minimum span of timestamps kept by a flush
        tolerance_window: Extra ticks allowed past ``buffer_size`` before an
            automatic flush runs
        scheduler: Callable used to schedule the draining of notifications;
            without one, call ``drain_notifications()``
        snapshot_cache_size: Number of snapshots kept in the read cache
    """

    def __init__(
        self,
        buffer_size: int = 100,
        tolerance_window: int = 20,
        scheduler: Optional[Scheduler] = None,
        snapshot_cache_size: int = 128,
    ):
        if buffer_size < 1:
            raise ValueError(f"buffer_size must be at least 1, got {buffer_size}")
        if tolerance_window < 0:
            raise ValueError(f"tolerance_window must not be negative, got {tolerance_window}")
        if snapshot_cache_size < 1:
            raise ValueError(
                f"snapshot_cache_size must be at least 1, got {snapshot_cache_size}"
            )

        self.clock = Clock()
        self.genesis = Layer(self.clock)
        self.buffer_size = buffer_size
        self.tolerance_window = tolerance_window
        self.last_flush_time = 0

        self._layers: Dict[str, Layer] = {}
        self._notifier = Notifier(scheduler)

        # (time, namespace ids) -> flat snapshot; cleared whenever history changes
        self._snapshots = LRUCache(maxsize=snapshot_cache_size)

    # ========================================================================
    # TRANSACTIONS
    # ========================================================================

    def set(self, updates: Dict[str, Dict[str, Any]]) -> None:
        """
        Apply ``updates`` (namespace id -> nested partial update) atomically.

        Nothing happens, not even a notification, when no leaf differs from
        the value currently visible.
        """
        for layer_id, layer_updates in updates.items():
            if not isinstance(layer_updates, dict):
                raise TypeError(
                    f"Update for namespace '{layer_id}' must be a dict, "
                    f"got {type(layer_updates).__name__}"
                )

        now = self.clock.peek()
        if not any(
            self._is_meaningful(layer_id, layer_updates, now)
            for layer_id, layer_updates in updates.items()
        ):
            logging.debug("Discarding transaction without meaningful changes")
            return

        time = self._advance()

        for layer_id, layer_updates in updates.items():
            flat = flatten(layer_updates)
            if not flat:
                continue

            layer = self._layers.get(layer_id)
            if layer is None:
                layer = self._layers[layer_id] = Layer(self.clock)
            if not self.is_alive(layer_id, time):
                # A removed namespace comes back empty
                for key in layer.get_state(time):
                    layer.remove(key, time)
                self.genesis.set(layer_id, True, time)
            for key, value in flat.items():
                layer.set(key, value, time)

        self._auto_flush(time)
        self._notifier.request()

    def _is_meaningful(self, layer_id: str, layer_updates: Dict[str, Any], time: int) -> bool:
        layer = self._layers.get(layer_id)
        if layer is None or not self.is_alive(layer_id, time):
            # Nothing is visible, so any present value is a change
            return any(value is not None for value in flatten(layer_updates).values())
        return layer.is_update_meaningful(layer_updates, time)

    def remove(self, layer_id: str) -> None:
        """Mark ``layer_id`` as removed from the next time on."""
        time = self._advance()
        self.genesis.set(layer_id, False, time)

        self._auto_flush(time)
        self._notifier.request()

    def _advance(self) -> int:
        """Tick the clock, cutting off the redo branch if there is one."""
        is_fork = self.clock.is_forked
        time = self.clock.tick()
        if is_fork:
            logging.debug(f"Write at time {time} forks the timeline, pruning redo branch")
            self._prune_layers(time)
        self._snapshots.clear()
        return time

    # ========================================================================
    # READS
    # ========================================================================

    def get(
        self, layer_ids: Optional[Iterable[str]] = None, nested: bool = False
    ) -> Dict[str, Dict[str, Any]]:
        """
        Snapshot of the requested namespaces (default: all) at the current time.

        Removed or unknown namespaces are left out. Values are keyed by their
        dot path unless ``nested`` is set.
        """
        time = self.clock.peek()
        if layer_ids is None:
            targets = tuple(self._layers)
        elif isinstance(layer_ids, str):
            targets = (layer_ids,)
        else:
            targets = tuple(layer_ids)

        cache_key = (time, targets)
        flat = self._snapshots.get(cache_key)
        if flat is None:
            flat = {
                layer_id: self._layers[layer_id].get_state(time)
                for layer_id in targets
                if layer_id in self._layers and self.is_alive(layer_id, time)
            }
            self._snapshots[cache_key] = flat

        if nested:
            return {layer_id: unflatten(state) for layer_id, state in flat.items()}
        return {layer_id: dict(state) for layer_id, state in flat.items()}

    def is_alive(self, layer_id: str, time: Optional[int] = None) -> bool:
        return self.genesis.get(layer_id, time) is True

    def layer(self, layer_id: str) -> Optional[Layer]:
        """
        The live history of ``layer_id``.

        Writes made through it bypass the ledger, so cached snapshots are
        dropped whenever a layer is handed out.
        """
        self._snapshots.clear()
        return self._layers.get(layer_id)

    def namespaces(self) -> List[str]:
        """Ids of the namespaces alive at the current time."""
        return [layer_id for layer_id in self._layers if self.is_alive(layer_id)]

    # ========================================================================
    # TIME TRAVEL
    # ========================================================================

    def undo(self) -> Dict[str, Dict[str, Any]]:
        self.clock.undo()
        state = self.get()
        self._notifier.request()
        return state

    def redo(self) -> Dict[str, Dict[str, Any]]:
        self.clock.redo()
        state = self.get()
        self._notifier.request()
        return state

    def travel(self, time: int) -> Dict[str, Dict[str, Any]]:
        """Jump to ``time``; times outside ``[0, max_time]`` leave the pointer alone."""
        self.clock.reset_to(time)
        state = self.get()
        self._notifier.request()
        return state

    def time_info(self) -> TimeInfo:
        return TimeInfo(
            current_time=self.clock.peek(),
            max_time=self.clock.max(),
            can_undo=self.clock.can_undo,
            can_redo=self.clock.can_redo,
        )

    # ========================================================================
    # RETENTION
    # ========================================================================

    def prune(self, min_time: int) -> None:
        """Discard every commit at or after ``min_time`` in every namespace."""
        self._prune_layers(min_time)
        self._snapshots.clear()
        self._notifier.request()

    def flush(self) -> None:
        """Collapse history older than ``max_time - buffer_size``."""
        self._flush_layers()
        self._notifier.request()

    def _flush_layers(self) -> None:
        threshold = self.clock.max() - self.buffer_size
        self.last_flush_time = self.clock.max()

        if threshold > 0:
            logging.debug(f"Flushing history before time {threshold}")
            for layer in self._layers.values():
                layer.flush(threshold)
            self.genesis.flush(threshold)
            self._drop_removed_layers(threshold)
            self._drop_empty_layers()
        self._snapshots.clear()

    def _drop_removed_layers(self, threshold: int) -> None:
        """Forget namespaces that are removed at ``threshold`` and never touched after it."""
        for layer_id in self.genesis.keys():
            if self.is_alive(layer_id, threshold):
                continue
            if self.genesis.latest_time(layer_id) > threshold:
                continue
            layer = self._layers.get(layer_id)
            if layer is not None and (layer.latest_time() or 0) > threshold:
                continue

            logging.debug(f"Dropping namespace '{layer_id}' removed before time {threshold}")
            self.genesis.discard(layer_id)
            self._layers.pop(layer_id, None)

    def _prune_layers(self, min_time: int) -> None:
        for layer in self._layers.values():
            layer.prune(min_time)
        self.genesis.prune(min_time)
        self._drop_empty_layers()

    def _drop_empty_layers(self) -> None:
        for layer_id in [i for i, layer in self._layers.items() if layer.is_empty]:
            del self._layers[layer_id]

    def _auto_flush(self, time: int) -> None:
        if time - self.last_flush_time > self.buffer_size + self.tolerance_window:
            self._flush_layers()

    # ========================================================================
    # SUBSCRIPTION
    # ========================================================================

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Call ``callback`` after every change; returns the unsubscribe function."""
        return self._notifier.subscribe(callback)

    def batch(self) -> NotificationBatch:
        """Group several calls so subscribers are notified once."""
        return self._notifier.batch()

    def drain_notifications(self) -> int:
        return self._notifier.drain()

    @property
    def pending_notifications(self) -> int:
        return self._notifier.pending

    # ========================================================================
    # UTILITY METHODS
    # ========================================================================

    def stats(self) -> Dict[str, Any]:
        return {
            "current_time": self.clock.peek(),
            "max_time": self.clock.max(),
            "last_flush_time": self.last_flush_time,
            "namespaces": len(self._layers),
            "live_namespaces": len(self.namespaces()),
            "keys": sum(len(layer) for layer in self._layers.values()),
            "commits": sum(layer.commit_count() for layer in self._layers.values()),
            "genesis_commits": self.genesis.commit_count(),
            "subscribers": self._notifier.subscriber_count,
            "pending_notifications": self._notifier.pending,
            "cached_snapshots": len(self._snapshots),
        }

    def __repr__(self) -> str:
        return f"Ledger(namespaces={len(self._layers)}, clock={self.clock!r})"
