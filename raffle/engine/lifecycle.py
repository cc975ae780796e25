from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from ..errors import (
    DoubleFinalization,
    InvalidDistribution,
    InvalidRoundWindow,
    SettlementAlreadyRecorded,
    SettlementNotFound,
)
from .admins import AdminRegistry
from .counter import CounterAllocator
from .entropy import EntropySource
from .payouts import PayoutCalculator, checked, checked_sum
from .selection import WinnerSelector
from .store import RoundStore
from .types import (
    BlockContext,
    FinalizeResult,
    RemainderPolicy,
    Round,
    Settlement,
    SettlementStatus,
    TransferInstruction,
)

logger = logging.getLogger("raffle.engine")


class RoundLifecycleController:
    """Open -> Finalized state machine for raffle rounds.

    All methods assume they run inside a single store transaction; callers
    discard every write when one of them raises.
    """

    def __init__(
        self,
        rounds: RoundStore,
        counter: CounterAllocator,
        admins: AdminRegistry,
        selector: WinnerSelector,
        calculator: PayoutCalculator,
        entropy: EntropySource,
    ) -> None:
        self._rounds = rounds
        self._counter = counter
        self._admins = admins
        self._selector = selector
        self._calculator = calculator
        self._entropy = entropy

    def open(
        self, admin: str, end_time: int, minimum_stake: int, distribution: Sequence[int], now: int
    ) -> int:
        self._admins.require_admin(admin)
        shares = self._validate_distribution(distribution)
        if end_time <= now:
            raise InvalidRoundWindow(f"end_time {end_time} must be after begin_time {now}")
        checked(minimum_stake, "minimum stake")

        round_id = self._counter.next_id()
        self._rounds.save(
            Round(
                id=round_id,
                begin_time=now,
                end_time=end_time,
                minimum_stake=minimum_stake,
                distribution=shares,
            )
        )
        logger.info(
            "Opened round %s (end_time=%s, minimum_stake=%s, distribution=%s)",
            round_id,
            end_time,
            minimum_stake,
            shares,
        )
        return round_id

    def finalize(
        self,
        admin: str,
        round_id: int,
        block: BlockContext,
        total_deposit: int,
        extra_entropy: bytes = b"",
    ) -> FinalizeResult:
        self._admins.require_admin(admin)
        raffle_round = self._rounds.require(round_id)
        if not raffle_round.active:
            raise DoubleFinalization(round_id)

        stream = self._entropy.stream(block.height, admin, extra_entropy)
        winners = self._selector.select(raffle_round, stream)
        payouts = self._calculator.compute(raffle_round.distribution, total_deposit)
        payouts, remainder = self._calculator.apply_remainder(
            raffle_round.distribution, payouts, total_deposit
        )

        settlements = [Settlement(recipient=w, amount=p) for w, p in zip(winners, payouts)]
        if remainder and self._calculator.policy is RemainderPolicy.RETURN_TO_ADMIN:
            settlements.append(Settlement(recipient=admin, amount=remainder))

        raffle_round.winners = winners
        raffle_round.payouts = payouts
        raffle_round.remainder = remainder
        raffle_round.settlements = settlements
        raffle_round.active = False
        self._rounds.save(raffle_round)

        logger.info(
            "Finalized round %s at height %s: winners=%s payouts=%s remainder=%s (%s)",
            round_id,
            block.height,
            winners,
            payouts,
            remainder,
            self._calculator.policy.value,
        )
        transfers = [
            TransferInstruction(round_id=round_id, index=i, recipient=s.recipient, amount=s.amount)
            for i, s in enumerate(settlements)
        ]
        return FinalizeResult(
            round_id=round_id,
            winners=tuple(winners),
            payouts=tuple(payouts),
            remainder=remainder,
            transfers=tuple(transfers),
        )

    def mark_submitted(self, admin: str, round_id: int, index: int, tx_hash: str, raw_tx: str) -> Settlement:
        """Record the signed transaction for transfer ``index`` before it is broadcast.

        A submitted transfer is never signed again; later passes only rebroadcast
        ``raw_tx`` or resolve it from its receipt.
        """
        self._admins.require_admin(admin)
        raffle_round, settlement = self._require_settlement(round_id, index)
        if settlement.status is SettlementStatus.SUBMITTED:
            raise SettlementAlreadyRecorded(
                f"Transfer {index} of round {round_id} is already submitted as {settlement.tx_hash}"
            )

        settlement.attempts += 1
        settlement.status = SettlementStatus.SUBMITTED
        settlement.tx_hash = tx_hash
        settlement.raw_tx = raw_tx
        settlement.error = None
        self._rounds.save(raffle_round)
        logger.info("Transfer %s of round %s submitted (tx=%s)", index, round_id, tx_hash)
        return settlement

    def record_settlement(
        self,
        admin: str,
        round_id: int,
        index: int,
        tx_hash: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Settlement:
        """Mark transfer ``index`` of a finalized round as settled, or as failed when ``error`` is set."""
        self._admins.require_admin(admin)
        raffle_round, settlement = self._require_settlement(round_id, index)

        # a submitted transfer already counted its attempt
        if settlement.status is not SettlementStatus.SUBMITTED:
            settlement.attempts += 1
        settlement.raw_tx = None
        if error:
            settlement.status = SettlementStatus.FAILED
            settlement.error = error
            logger.warning("Transfer %s of round %s failed: %s", index, round_id, error)
        else:
            settlement.status = SettlementStatus.SETTLED
            settlement.tx_hash = tx_hash or settlement.tx_hash
            settlement.error = None
            logger.info("Transfer %s of round %s settled (tx=%s)", index, round_id, settlement.tx_hash)
        self._rounds.save(raffle_round)
        return settlement

    def outstanding_settlements(self) -> int:
        """Sum of recorded transfers that have not been confirmed yet."""
        return sum(
            s.amount
            for r in self._rounds.iter_rounds()
            for s in r.settlements
            if s.status is not SettlementStatus.SETTLED
        )

    def pending_transfers(self, max_attempts: Optional[int] = None) -> List[TransferInstruction]:
        """Transfers still to send or confirm; submitted ones are listed regardless of ``max_attempts``."""
        transfers: List[TransferInstruction] = []
        for raffle_round in self._rounds.iter_rounds():
            for index, settlement in enumerate(raffle_round.settlements):
                if settlement.status is SettlementStatus.SETTLED:
                    continue
                submitted = settlement.status is SettlementStatus.SUBMITTED
                if not submitted and max_attempts is not None and settlement.attempts >= max_attempts:
                    continue
                transfers.append(
                    TransferInstruction(
                        round_id=raffle_round.id,
                        index=index,
                        recipient=settlement.recipient,
                        amount=settlement.amount,
                        tx_hash=settlement.tx_hash if submitted else None,
                        raw_tx=settlement.raw_tx if submitted else None,
                    )
                )
        return transfers

    def _require_settlement(self, round_id: int, index: int) -> Tuple[Round, Settlement]:
        raffle_round = self._rounds.require(round_id)
        if raffle_round.active or not 0 <= index < len(raffle_round.settlements):
            raise SettlementNotFound(f"Round {round_id} has no transfer {index}")
        settlement = raffle_round.settlements[index]
        if settlement.status is SettlementStatus.SETTLED:
            raise SettlementAlreadyRecorded(f"Transfer {index} of round {round_id} is already settled")
        return raffle_round, settlement

    @staticmethod
    def _validate_distribution(distribution: Sequence[int]) -> List[int]:
        shares = list(distribution)
        if not shares:
            raise InvalidDistribution("Distribution must contain at least one share")
        for share in shares:
            if isinstance(share, bool) or not isinstance(share, int) or share <= 0:
                raise InvalidDistribution(f"Distribution shares must be positive integers, got {share!r}")
        checked_sum(shares, "total shares")
        return shares
