from __future__ import annotations

import logging
from typing import Sequence

from ..errors import (
    AlreadyRegistered,
    InsufficientFunds,
    RegistrationClosed,
    RoundExpired,
    WrongPaymentDenom,
)
from .store import RoundStore
from .types import Coin, Round

logger = logging.getLogger("raffle.engine")


class RegistrationLedger:
    """Admission control for open rounds.

    The ledger only authorizes the stake; moving the funds into custody is the
    transport layer's job and must happen before or together with ``join``.
    """

    def __init__(self, rounds: RoundStore, staking_denom: str) -> None:
        self._rounds = rounds
        self._staking_denom = staking_denom

    def join(self, round_id: int, participant: str, funds: Sequence[Coin], now: int) -> Round:
        raffle_round = self._rounds.require(round_id)
        if not raffle_round.active:
            raise RegistrationClosed(round_id)
        if now > raffle_round.end_time:
            raise RoundExpired(round_id, raffle_round.end_time)
        if raffle_round.has_player(participant):
            raise AlreadyRegistered(round_id, participant)

        stake = self._single_stake(funds)
        if stake.amount < raffle_round.minimum_stake:
            raise InsufficientFunds(stake.amount, raffle_round.minimum_stake)

        raffle_round.players.append(participant)
        self._rounds.save(raffle_round)
        logger.debug(
            "Participant %s joined round %s with %s%s", participant, round_id, stake.amount, stake.denom
        )
        return raffle_round

    def _single_stake(self, funds: Sequence[Coin]) -> Coin:
        if len(funds) != 1:
            raise WrongPaymentDenom(f"Exactly one {self._staking_denom} payment is required, got {len(funds)}")
        coin = funds[0]
        if coin.denom != self._staking_denom:
            raise WrongPaymentDenom(f"Payment must be in {self._staking_denom}, got {coin.denom}")
        return coin
