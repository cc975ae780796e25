from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..config import ChainSettings
from ..engine.types import BlockContext
from ..errors import InvalidStake

if TYPE_CHECKING:  # pragma: no cover
    from web3 import Web3


@dataclass(frozen=True)
class StakeTransfer:
    sender: str
    value: int


@dataclass(frozen=True)
class SignedTransfer:
    tx_hash: str
    raw_tx: str


def _ensure_event_loop() -> None:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)


class RaffleChainClient:
    """Wrapper around the JSON-RPC node acting as custody and settlement ledger.

    The custody account holds every stake; payouts are plain value transfers
    signed by the settlement key, so that key must control the custody account.
    Signing and broadcasting are separate steps so the caller can persist the
    signed transaction before anything reaches the network.
    """

    def __init__(
        self,
        web3: "Web3",
        custody_address: str,
        signer_key: Optional[str] = None,
        chain_id: Optional[int] = None,
        gas_limit: int = 21000,
        receipt_timeout: int = 180,
    ) -> None:
        self._web3 = web3
        self._custody_address = custody_address
        self._account = web3.eth.account.from_key(signer_key) if signer_key else None  # type: ignore[attr-defined]
        self._chain_id = chain_id
        self._gas_limit = gas_limit
        self._receipt_timeout = receipt_timeout

    @classmethod
    def from_settings(cls, settings: ChainSettings) -> "RaffleChainClient":
        _ensure_event_loop()
        from web3 import Web3
        from web3.middleware import ExtraDataToPOAMiddleware

        web3 = Web3(Web3.HTTPProvider(settings.rpc_url))
        if not web3.is_connected():
            raise ConnectionError(f"Cannot connect to RPC endpoint: {settings.rpc_url}")

        # PoA networks (Hardhat, Polygon) carry oversized extraData in headers.
        web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

        return cls(
            web3,
            Web3.to_checksum_address(settings.custody_address),
            signer_key=settings.settlement_signer,
            chain_id=settings.chain_id,
            gas_limit=settings.gas_limit,
        )

    async def latest_block(self) -> BlockContext:
        def call() -> BlockContext:
            block = self._web3.eth.get_block("latest")
            return BlockContext(height=int(block["number"]), time=int(block["timestamp"]))

        return await asyncio.to_thread(call)

    async def custody_balance(self) -> int:
        return await asyncio.to_thread(lambda: int(self._web3.eth.get_balance(self._custody_address)))

    async def stake_transfer(self, tx_hash: str) -> StakeTransfer:
        """Resolve a confirmed deposit into custody; raises :class:`InvalidStake` otherwise."""
        return await asyncio.to_thread(self._stake_transfer_sync, tx_hash)

    async def sign_transfer(self, recipient: str, amount: int) -> SignedTransfer:
        return await asyncio.to_thread(self._sign_transfer_sync, recipient, int(amount))

    async def broadcast(self, raw_tx: str) -> None:
        await asyncio.to_thread(self._web3.eth.send_raw_transaction, raw_tx)

    async def wait_for_receipt(self, tx_hash: str) -> bool:
        def call() -> bool:
            receipt = self._web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout, poll_latency=2
            )
            return receipt["status"] == 1

        return await asyncio.to_thread(call)

    async def receipt_status(self, tx_hash: str) -> Optional[bool]:
        """``True``/``False`` for a mined transfer, ``None`` while it has no receipt."""

        def call() -> Optional[bool]:
            from web3.exceptions import TransactionNotFound

            try:
                receipt = self._web3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                return None
            return receipt["status"] == 1

        return await asyncio.to_thread(call)

    # --------------------------------------------------------------------- #
    # Internal helpers
    # --------------------------------------------------------------------- #

    def _ensure_account(self):
        if self._account is None:
            raise RuntimeError("Settlement signer not configured; set SETTLEMENT_SIGNER in .env")
        return self._account

    def _resolve_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(self._web3.eth.chain_id)
        return self._chain_id

    def _sign_transfer_sync(self, recipient: str, amount: int) -> SignedTransfer:
        from web3 import Web3

        account = self._ensure_account()
        tx: Dict[str, Any] = {
            "from": account.address,
            "to": Web3.to_checksum_address(recipient),
            "value": amount,
            # pending count so back-to-back transfers in one pass get distinct nonces
            "nonce": self._web3.eth.get_transaction_count(account.address, "pending"),
            "gas": self._gas_limit,
            "gasPrice": self._web3.eth.gas_price,
            "chainId": self._resolve_chain_id(),
        }

        signed = account.sign_transaction(tx)
        return SignedTransfer(tx_hash=Web3.to_hex(signed.hash), raw_tx=Web3.to_hex(signed.raw_transaction))

    def _stake_transfer_sync(self, tx_hash: str) -> StakeTransfer:
        from web3 import Web3
        from web3.exceptions import TransactionNotFound

        try:
            tx = self._web3.eth.get_transaction(tx_hash)
            receipt = self._web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound as exc:
            raise InvalidStake(f"Stake transaction {tx_hash} is not mined") from exc

        if receipt["status"] != 1:
            raise InvalidStake(f"Stake transaction {tx_hash} reverted")
        recipient = tx.get("to")
        if not recipient or recipient.lower() != self._custody_address.lower():
            raise InvalidStake(f"Stake transaction {tx_hash} was not sent to the custody account")
        return StakeTransfer(sender=Web3.to_checksum_address(tx["from"]), value=int(tx["value"]))
