from __future__ import annotations

import copy
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Protocol, Tuple

Record = Dict[str, Any]


class StateView(Protocol):
    """Key-value access bound to one open transaction."""

    def load(self, key: str) -> Optional[Record]:
        ...

    def save(self, key: str, value: Record) -> None:
        ...

    def iter_prefix(self, prefix: str) -> Iterator[Tuple[str, Record]]:
        ...


class StateStore(Protocol):
    def transaction(self):
        """Context manager yielding a :class:`StateView`.

        Writes become visible only when the block exits without an exception.
        """
        ...


class _StagedView:
    def __init__(self, committed: Dict[str, Record]) -> None:
        self._committed = committed
        self.pending: Dict[str, Record] = {}

    def load(self, key: str) -> Optional[Record]:
        if key in self.pending:
            return copy.deepcopy(self.pending[key])
        value = self._committed.get(key)
        return copy.deepcopy(value) if value is not None else None

    def save(self, key: str, value: Record) -> None:
        self.pending[key] = copy.deepcopy(value)

    def iter_prefix(self, prefix: str) -> Iterator[Tuple[str, Record]]:
        keys = {k for k in self._committed if k.startswith(prefix)}
        keys.update(k for k in self.pending if k.startswith(prefix))
        for key in sorted(keys):
            value = self.load(key)
            if value is not None:
                yield key, value


class MemoryStore:
    """In-process store; each test gets its own isolated instance."""

    def __init__(self) -> None:
        self._data: Dict[str, Record] = {}

    @contextmanager
    def transaction(self) -> Iterator[_StagedView]:
        view = _StagedView(self._data)
        yield view
        self._data.update(view.pending)
