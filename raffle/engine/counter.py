from __future__ import annotations

from ..storage import StateView

COUNTER_KEY = "counter"


class CounterAllocator:
    """Single source of round ids. Must be used inside the caller's transaction."""

    def __init__(self, state: StateView) -> None:
        self._state = state

    def current(self) -> int:
        record = self._state.load(COUNTER_KEY)
        if record is None:
            return 0
        return int(record["next_id"])

    def next_id(self) -> int:
        allocated = self.current()
        self._state.save(COUNTER_KEY, {"next_id": allocated + 1})
        return allocated
