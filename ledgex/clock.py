"""
Logical Clock
=============

A single timeline shared by every namespace of a ledger. ``p`` is the time the
caller currently observes, ``t`` the highest time anything was written at, and
``0 <= p <= t`` always holds.
"""


class Clock:
    """Logical clock with undo/redo pointer motion and branch truncation."""

    __slots__ = ("p", "t")

    def __init__(self):
        self.t = 0
        self.p = 0

    def tick(self) -> int:
        """
        Advance to a new time and return it.

        Ticking while behind ``t`` abandons the redo branch: ``t`` first
        collapses to ``p``, so the new time is ``p + 1`` and everything that
        was recorded after it is no longer reachable.
        """
        if self.p < self.t:
            self.t = self.p
        self.p += 1
        self.t = self.p
        return self.p

    def undo(self) -> int:
        if self.p > 0:
            self.p -= 1
        return self.p

    def redo(self) -> int:
        if self.p < self.t:
            self.p += 1
        return self.p

    def peek(self) -> int:
        return self.p

    def max(self) -> int:
        return self.t

    def reset_to(self, time: int) -> None:
        """Jump the pointer to ``time``; out-of-range values are ignored."""
        if 0 <= time <= self.t:
            self.p = time

    @property
    def can_undo(self) -> bool:
        return self.p > 0

    @property
    def can_redo(self) -> bool:
        return self.p < self.t

    @property
    def is_forked(self) -> bool:
        """True when the next tick would truncate a redo branch."""
        return self.p < self.t

    def __repr__(self) -> str:
        return f"Clock(p={self.p}, t={self.t})"
