"""Undo/redo history of planning inputs as immutable snapshots."""

from dataclasses import dataclass, replace
from typing import Iterable, Optional, Tuple

from .models import Stop

MAX_HISTORY_SIZE = 20

Snapshot = Tuple[Stop, ...]


@dataclass(frozen=True)
class PlanHistory:
    """Past and future stop lists. Every operation returns a new history.

    Stops are frozen, so a snapshot can never change after it is taken.
    """
    past: Tuple[Snapshot, ...] = ()
    future: Tuple[Snapshot, ...] = ()
    max_size: int = MAX_HISTORY_SIZE

    @property
    def can_undo(self) -> bool:
        return bool(self.past)

    @property
    def can_redo(self) -> bool:
        return bool(self.future)

    def push(self, stops: Iterable[Stop]) -> "PlanHistory":
        """Record the state before an edit; clears the redo stack."""
        past = (self.past + (tuple(stops),))[-self.max_size:]
        return replace(self, past=past, future=())

    def undo(self, current: Iterable[Stop]) -> Tuple["PlanHistory", Optional[Snapshot]]:
        if not self.past:
            return self, None
        previous = self.past[-1]
        history = replace(self, past=self.past[:-1], future=(tuple(current),) + self.future)
        return history, previous

    def redo(self, current: Iterable[Stop]) -> Tuple["PlanHistory", Optional[Snapshot]]:
        if not self.future:
            return self, None
        following = self.future[0]
        history = replace(self, past=(self.past + (tuple(current),))[-self.max_size:], future=self.future[1:])
        return history, following

    def clear(self) -> "PlanHistory":
        return replace(self, past=(), future=())
