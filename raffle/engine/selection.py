from __future__ import annotations

from typing import List

from ..errors import NoPlayers, NotEnoughPlayers
from .entropy import DeterministicStream
from .types import Round, SelectionMode


class WinnerSelector:
    """Draw one winner per distribution slot from the round's players.

    Every player has equal probability per draw; the slot's share only decides
    the payout. ``index = next_u32 % len(pool)`` carries a modulo bias of at
    most ``len(pool) / 2**32``, which is accepted for determinism.
    """

    def __init__(self, mode: SelectionMode = SelectionMode.WITH_REPLACEMENT) -> None:
        self.mode = SelectionMode(mode)

    def select(self, raffle_round: Round, stream: DeterministicStream) -> List[str]:
        if not raffle_round.players:
            raise NoPlayers(raffle_round.id)

        slots = len(raffle_round.distribution)
        pool = list(raffle_round.players)
        if self.mode is SelectionMode.WITHOUT_REPLACEMENT and len(pool) < slots:
            raise NotEnoughPlayers(
                f"Round {raffle_round.id} needs {slots} distinct players, has {len(pool)}"
            )

        winners: List[str] = []
        for _ in range(slots):
            index = stream.next_u32() % len(pool)
            if self.mode is SelectionMode.WITHOUT_REPLACEMENT:
                winners.append(pool.pop(index))
            else:
                winners.append(pool[index])
        return winners
