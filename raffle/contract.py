from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from .config import EngineSettings
from .engine import (
    AdminRegistry,
    BlockContext,
    Coin,
    CounterAllocator,
    EntropySource,
    FinalizeResult,
    PayoutCalculator,
    RegistrationLedger,
    Round,
    RoundLifecycleController,
    RoundStore,
    Settlement,
    StakeReceipts,
    TransferInstruction,
    WinnerSelector,
)
from .errors import RoundNotFound
from .storage import StateStore, StateView


class _Components:
    def __init__(self, state: StateView, settings: EngineSettings) -> None:
        self.rounds = RoundStore(state)
        self.counter = CounterAllocator(state)
        self.admins = AdminRegistry(state)
        self.stakes = StakeReceipts(state)
        self.registration = RegistrationLedger(self.rounds, settings.staking_denom)
        self.lifecycle = RoundLifecycleController(
            self.rounds,
            self.counter,
            self.admins,
            WinnerSelector(settings.selection_mode),
            PayoutCalculator(settings.remainder_policy),
            EntropySource(settings.entropy_domain),
        )


class RaffleContract:
    """Operation surface of the raffle engine.

    Each public method is one atomic unit: it runs inside a single store
    transaction, so a raised error leaves no trace in the store.
    """

    def __init__(self, store: StateStore, settings: Optional[EngineSettings] = None) -> None:
        self._store = store
        self.settings = settings or EngineSettings()

    @contextmanager
    def _transaction(self) -> Iterator[_Components]:
        with self._store.transaction() as state:
            yield _Components(state, self.settings)

    # ------------------------------------------------------------------ #
    # Execute
    # ------------------------------------------------------------------ #

    def init(self, admins: Sequence[str]) -> List[str]:
        with self._transaction() as c:
            return c.admins.initialize(admins)

    def open_round(
        self, caller: str, block: BlockContext, end_time: int, minimum_stake: int, distribution: Sequence[int]
    ) -> int:
        with self._transaction() as c:
            return c.lifecycle.open(caller, end_time, minimum_stake, distribution, block.time)

    def join_round(
        self,
        caller: str,
        block: BlockContext,
        round_id: int,
        funds: Sequence[Coin],
        stake_reference: Optional[str] = None,
    ) -> Round:
        """Register ``caller``; ``stake_reference`` names the custody deposit paying for it, usable once."""
        with self._transaction() as c:
            if stake_reference is not None:
                c.stakes.claim(stake_reference, caller, round_id)
            return c.registration.join(round_id, caller, funds, block.time)

    def finalize_round(
        self,
        caller: str,
        block: BlockContext,
        round_id: int,
        custody_balance: int,
        extra_entropy: bytes = b"",
    ) -> FinalizeResult:
        """Finalize with whatever custody holds beyond payouts still owed to earlier rounds."""
        with self._transaction() as c:
            total_deposit = max(custody_balance - c.lifecycle.outstanding_settlements(), 0)
            return c.lifecycle.finalize(caller, round_id, block, total_deposit, extra_entropy)

    def mark_submitted(self, caller: str, round_id: int, index: int, tx_hash: str, raw_tx: str) -> Settlement:
        with self._transaction() as c:
            return c.lifecycle.mark_submitted(caller, round_id, index, tx_hash, raw_tx)

    def record_settlement(
        self,
        caller: str,
        round_id: int,
        index: int,
        tx_hash: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Settlement:
        with self._transaction() as c:
            return c.lifecycle.record_settlement(caller, round_id, index, tx_hash=tx_hash, error=error)

    # ------------------------------------------------------------------ #
    # Query
    # ------------------------------------------------------------------ #

    def get_round(self, round_id: int) -> Round:
        with self._transaction() as c:
            raffle_round = c.rounds.get(round_id)
        if raffle_round is None:
            raise RoundNotFound(round_id)
        return raffle_round

    def list_rounds(self, active: Optional[bool] = None) -> List[Round]:
        with self._transaction() as c:
            rounds = list(c.rounds.iter_rounds())
        if active is None:
            return rounds
        return [r for r in rounds if r.active == active]

    def get_counter(self) -> int:
        with self._transaction() as c:
            return c.counter.current()

    def get_admins(self) -> List[str]:
        with self._transaction() as c:
            return c.admins.admins()

    def outstanding_settlements(self) -> int:
        with self._transaction() as c:
            return c.lifecycle.outstanding_settlements()

    def pending_transfers(self, max_attempts: Optional[int] = None) -> List[TransferInstruction]:
        with self._transaction() as c:
            return c.lifecycle.pending_transfers(max_attempts)
