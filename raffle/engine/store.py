from __future__ import annotations

from typing import Iterator, Optional

from ..errors import RoundNotFound
from ..storage import StateView
from .types import Round

ROUND_PREFIX = "round:"


def round_key(round_id: int) -> str:
    return f"{ROUND_PREFIX}{int(round_id)}"


class RoundStore:
    def __init__(self, state: StateView) -> None:
        self._state = state

    def get(self, round_id: int) -> Optional[Round]:
        record = self._state.load(round_key(round_id))
        if record is None:
            return None
        return Round.from_dict(record)

    def require(self, round_id: int) -> Round:
        raffle_round = self.get(round_id)
        if raffle_round is None:
            raise RoundNotFound(round_id)
        return raffle_round

    def save(self, raffle_round: Round) -> None:
        self._state.save(round_key(raffle_round.id), raffle_round.to_dict())

    def iter_rounds(self) -> Iterator[Round]:
        """Yield every round ordered by id (keys sort lexically, ids do not)."""
        rounds = [Round.from_dict(record) for _, record in self._state.iter_prefix(ROUND_PREFIX)]
        rounds.sort(key=lambda r: r.id)
        return iter(rounds)
