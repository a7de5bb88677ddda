"""
Deferred Notification Dispatch
==============================

Subscribers of a ledger are called without arguments and are expected to
re-read whatever state they need. Calls into the engine only *request* a
notification; the embedding runtime decides when queued requests are drained:

- pass a ``scheduler`` (for example ``asyncio.get_running_loop().call_soon``)
  and a drain is scheduled whenever the queue becomes non-empty;
- or call ``drain()`` explicitly, e.g. at the end of a UI event handler.

Inside ``batch()`` every request collapses into one, so a group of mutations
produces a single notification.
"""

import logging
from typing import Callable, Dict, Optional

Callback = Callable[[], None]
Scheduler = Callable[[Callable[[], None]], object]


class Notifier:
    """Ordered subscriber set with a queue of pending notification requests."""

    def __init__(self, scheduler: Optional[Scheduler] = None):
        # dict keeps subscription order and ignores duplicate callbacks
        self._subscribers: Dict[Callback, None] = {}
        self._scheduler = scheduler
        self._pending = 0
        self._scheduled = False
        self._batch_depth = 0
        self._batch_requested = False

    def subscribe(self, callback: Callback) -> Callable[[], None]:
        """Register ``callback``; the returned function unsubscribes it."""
        self._subscribers[callback] = None

        def unsubscribe():
            self._subscribers.pop(callback, None)

        return unsubscribe

    def request(self) -> None:
        """Queue one notification for every subscriber."""
        if self._batch_depth > 0:
            self._batch_requested = True
            return

        self._pending += 1
        if self._scheduler is not None and not self._scheduled:
            self._scheduled = True
            self._scheduler(self.drain)

    def drain(self) -> int:
        """Deliver every queued notification; returns how many were delivered."""
        self._scheduled = False
        delivered = 0

        while self._pending:
            self._pending -= 1
            delivered += 1
            for callback in list(self._subscribers):
                try:
                    callback()
                except Exception as e:
                    logging.error(f"Error in ledger subscriber {callback!r}: {e}")

        return delivered

    def batch(self) -> "NotificationBatch":
        return NotificationBatch(self)

    @property
    def pending(self) -> int:
        return self._pending

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def clear(self) -> None:
        self._subscribers.clear()
        self._pending = 0


class NotificationBatch:
    """Collapses the notification requests made while it is active into one."""

    def __init__(self, notifier: Notifier):
        self._notifier = notifier

    def __enter__(self):
        notifier = self._notifier
        notifier._batch_depth += 1
        if notifier._batch_depth == 1:
            notifier._batch_requested = False
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        notifier = self._notifier
        notifier._batch_depth -= 1

        if notifier._batch_depth == 0 and notifier._batch_requested:
            notifier._batch_requested = False
            notifier.request()

        return False
