from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from raffle.contract import RaffleContract
from raffle.engine import TransferInstruction
from raffle.errors import ConcurrentUpdate
from raffle.services.chain import SignedTransfer

from .config import SettlerSettings


class SettlementClientProtocol(Protocol):
    async def sign_transfer(self, recipient: str, amount: int) -> SignedTransfer:
        ...

    async def broadcast(self, raw_tx: str) -> None:
        ...

    async def wait_for_receipt(self, tx_hash: str) -> bool:
        ...

    async def receipt_status(self, tx_hash: str) -> Optional[bool]:
        ...


@dataclass
class SettlementReport:
    settled: List[TransferInstruction] = field(default_factory=list)
    failed: List[TransferInstruction] = field(default_factory=list)
    waiting: List[TransferInstruction] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.settled) + len(self.failed) + len(self.waiting)


class SettlementScheduler:
    """Drains the transfer outbox recorded by round finalization.

    A transfer is signed and recorded as ``submitted`` before it is broadcast,
    so a crash, timeout or RPC error after that point never leads to a second
    payment: later passes look up the receipt of the stored transaction and
    rebroadcast the same signed bytes while it is unmined. Only transfers that
    were never broadcast, or whose receipt shows a revert, are recorded as
    ``failed`` and retried until ``max_attempts`` is reached.
    """

    def __init__(
        self,
        settings: SettlerSettings,
        contract: RaffleContract,
        client: SettlementClientProtocol,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._settings = settings
        self._contract = contract
        self._client = client
        self._logger = logger or logging.getLogger("raffle.settler")

    async def run_forever(self) -> None:
        interval = self._settings.poll_interval_seconds
        self._logger.info("Settlement loop started; poll interval=%s", interval)
        while True:
            try:
                report = await self.run_once()
                if report.attempted == 0 and self._settings.settle_only_once:
                    self._logger.info("Settle-once flag set; exiting loop.")
                    return
            except Exception as exc:
                self._logger.exception("Settlement iteration failed: %s", exc)
            await asyncio.sleep(interval)

    async def run_once(self) -> SettlementReport:
        report = SettlementReport()
        pending = self._contract.pending_transfers(max_attempts=self._settings.max_attempts)
        if not pending:
            self._logger.debug("No pending transfers.")
            return report

        for instruction in pending:
            try:
                if instruction.tx_hash:
                    outcome = await self._resolve(instruction)
                else:
                    outcome = await self._settle(instruction)
            except ConcurrentUpdate as exc:
                self._logger.warning(
                    "Transfer %s of round %s changed concurrently; retrying next pass: %s",
                    instruction.index,
                    instruction.round_id,
                    exc,
                )
                outcome = None
            if outcome is True:
                report.settled.append(instruction)
            elif outcome is False:
                report.failed.append(instruction)
            else:
                report.waiting.append(instruction)
                if not instruction.tx_hash:
                    # the unsent nonce would be reused by the next signature
                    break
        self._logger.info(
            "Settlement pass: %s settled, %s failed, %s waiting",
            len(report.settled),
            len(report.failed),
            len(report.waiting),
        )
        return report

    async def _settle(self, instruction: TransferInstruction) -> Optional[bool]:
        operator = self._settings.operator_identity
        if instruction.amount == 0:
            self._contract.record_settlement(operator, instruction.round_id, instruction.index)
            return True

        try:
            signed = await self._client.sign_transfer(instruction.recipient, instruction.amount)
        except Exception as exc:
            return self._record_failure(instruction, exc)

        self._contract.mark_submitted(
            operator, instruction.round_id, instruction.index, signed.tx_hash, signed.raw_tx
        )
        self._logger.info(
            "Sending %s to %s for round %s transfer %s (tx=%s)",
            instruction.amount,
            instruction.recipient,
            instruction.round_id,
            instruction.index,
            signed.tx_hash,
        )
        try:
            await self._client.broadcast(signed.raw_tx)
            confirmed = await self._client.wait_for_receipt(signed.tx_hash)
        except Exception as exc:
            self._logger.warning("Transfer %s is unconfirmed; checking again next pass: %s", signed.tx_hash, exc)
            return None
        return self._record_receipt(instruction, signed.tx_hash, confirmed)

    async def _resolve(self, instruction: TransferInstruction) -> Optional[bool]:
        tx_hash = instruction.tx_hash
        try:
            confirmed = await self._client.receipt_status(tx_hash)
        except Exception as exc:
            self._logger.warning("Receipt lookup for %s failed: %s", tx_hash, exc)
            return None
        if confirmed is not None:
            return self._record_receipt(instruction, tx_hash, confirmed)

        self._logger.info("Transfer %s has no receipt yet; rebroadcasting", tx_hash)
        try:
            await self._client.broadcast(instruction.raw_tx)
        except Exception as exc:
            # typically "already known": the node still holds the transaction
            self._logger.debug("Rebroadcast of %s rejected: %s", tx_hash, exc)
        return None

    def _record_receipt(self, instruction: TransferInstruction, tx_hash: str, confirmed: bool) -> bool:
        operator = self._settings.operator_identity
        if confirmed:
            self._contract.record_settlement(operator, instruction.round_id, instruction.index, tx_hash=tx_hash)
            self._logger.info("Transfer confirmed: %s", tx_hash)
            return True
        self._contract.record_settlement(
            operator, instruction.round_id, instruction.index, error=f"transaction {tx_hash} reverted"
        )
        return False

    def _record_failure(self, instruction: TransferInstruction, exc: Exception) -> bool:
        self._logger.warning("Transfer %s of round %s failed: %s", instruction.index, instruction.round_id, exc)
        self._contract.record_settlement(
            self._settings.operator_identity,
            instruction.round_id,
            instruction.index,
            error=str(exc) or type(exc).__name__,
        )
        return False
