"""Back/forward navigation history for one session."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Iterator

from .errors import HistoryExhausted
from .models import HistoryRecord

MAX_HISTORY = 256


@dataclass(slots=True)
class HistorySnapshot:
    back: list[HistoryRecord] = field(default_factory=list)
    forward: list[HistoryRecord] = field(default_factory=list)
    current: HistoryRecord | None = None
    visited: list[HistoryRecord] = field(default_factory=list)


class HistoryStack:
    """Back and forward stacks (most recent last) around the current record."""

    def __init__(self, skip_intermediate: bool = True, limit: int = MAX_HISTORY) -> None:
        self.skip_intermediate = skip_intermediate
        self.limit = max(1, limit)
        self.back: list[HistoryRecord] = []
        self.forward: list[HistoryRecord] = []
        self.current: HistoryRecord | None = None
        self.visited: list[HistoryRecord] = []

    def _append_unique(self, stack: list[HistoryRecord], record: HistoryRecord) -> None:
        if stack and stack[-1] == record:
            return
        stack.append(record)
        overflow = len(stack) - self.limit
        if overflow > 0:
            del stack[:overflow]

    def push_current(self) -> None:
        """Move the current record onto the back stack and drop the forward stack."""
        if self.current is not None:
            self._append_unique(self.back, self.current)
        self.forward.clear()

    def visit(self, record: HistoryRecord) -> None:
        """Make ``record`` current after pushing the previous location."""
        if self.current is not None and self.current.same_node(record):
            self.current = record
            self.forward.clear()
            return
        self.push_current()
        self.current = record
        self._remember(record)

    def go_back(self) -> HistoryRecord:
        if not self.back:
            raise HistoryExhausted("This is the first Info node you looked at")
        target = self.back.pop()
        if self.current is not None:
            self._append_unique(self.forward, self.current)
        self.current = target
        return target

    def go_forward(self) -> HistoryRecord:
        if not self.forward:
            raise HistoryExhausted("This is the last Info node you looked at")
        target = self.forward.pop()
        if self.current is not None:
            self._append_unique(self.back, self.current)
        self.current = target
        return target

    def update_position(self, position: int) -> None:
        if self.current is not None:
            self.current = replace(self.current, position=max(0, position))

    def snapshot(self) -> HistorySnapshot:
        return HistorySnapshot(
            back=list(self.back),
            forward=list(self.forward),
            current=self.current,
            visited=list(self.visited),
        )

    def restore(self, snapshot: HistorySnapshot) -> None:
        self.back = list(snapshot.back)
        self.forward = list(snapshot.forward)
        self.current = snapshot.current
        self.visited = list(snapshot.visited)

    @contextmanager
    def chain(self) -> Iterator[HistoryStack]:
        """Group internal hops.

        On error the stacks are restored. With ``skip_intermediate`` the hops
        collapse into one jump from the starting record to the final one.
        """
        saved = self.snapshot()
        try:
            yield self
        except BaseException:
            self.restore(saved)
            raise
        if not self.skip_intermediate:
            return
        final = self.current
        self.restore(saved)
        if final is not None:
            self.visit(final)

    def _remember(self, record: HistoryRecord) -> None:
        self.visited = [item for item in self.visited if not item.same_node(record)]
        self.visited.append(record)
        overflow = len(self.visited) - self.limit
        if overflow > 0:
            del self.visited[:overflow]
