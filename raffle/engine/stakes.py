from __future__ import annotations

from typing import Optional

from ..errors import StakeAlreadyUsed
from ..storage import Record, StateView


def stake_key(reference: str) -> str:
    return f"stake:{reference.lower()}"


class StakeReceipts:
    """Remembers which custody deposits already paid for a registration."""

    def __init__(self, state: StateView) -> None:
        self._state = state

    def get(self, reference: str) -> Optional[Record]:
        return self._state.load(stake_key(reference))

    def claim(self, reference: str, participant: str, round_id: int) -> None:
        if self.get(reference) is not None:
            raise StakeAlreadyUsed(reference)
        self._state.save(stake_key(reference), {"participant": participant, "round_id": round_id})
