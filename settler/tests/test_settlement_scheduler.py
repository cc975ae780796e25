import asyncio
import unittest
from unittest import mock

from eth_account import Account
from web3.exceptions import TransactionNotFound

from raffle.config import ChainSettings
from raffle.contract import RaffleContract
from raffle.engine import BlockContext, Coin, SettlementStatus
from raffle.services.chain import RaffleChainClient, SignedTransfer
from raffle.storage import MemoryStore
from settler.config import SettlerSettings
from settler.scheduler import SettlementScheduler

OPERATOR = "operator"
BLOCK = BlockContext(height=5, time=100)


class FakeClient:
    def __init__(self, fail_for=(), revert_for=(), timeout_for=()) -> None:
        self.fail_for = set(fail_for)
        self.revert_for = set(revert_for)
        self.timeout_for = set(timeout_for)
        self.receipts = {}
        self.signed = {}
        self.transfers = []

    async def sign_transfer(self, recipient: str, amount: int) -> SignedTransfer:
        if recipient in self.fail_for:
            raise RuntimeError(f"signing transfer to {recipient} failed")
        n = len(self.signed) + 1
        signed = SignedTransfer(tx_hash=f"0x{n:064x}", raw_tx=f"0xf8{n:02x}")
        self.signed[signed.raw_tx] = (signed.tx_hash, recipient, amount)
        return signed

    async def broadcast(self, raw_tx: str) -> None:
        _, recipient, amount = self.signed[raw_tx]
        self.transfers.append((recipient, amount))

    async def wait_for_receipt(self, tx_hash: str) -> bool:
        recipient = next(r for h, r, _ in self.signed.values() if h == tx_hash)
        if recipient in self.timeout_for:
            raise TimeoutError(f"no receipt for {tx_hash}")
        return recipient not in self.revert_for

    async def receipt_status(self, tx_hash: str):
        return self.receipts.get(tx_hash)


class SchedulerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.contract = RaffleContract(MemoryStore())
        self.contract.init([OPERATOR])
        self.settings = SettlerSettings(
            chain=ChainSettings(rpc_url="http://localhost:8545", custody_address="0x" + "0" * 40),
            operator_identity=OPERATOR,
            poll_interval_seconds=1,
            settle_only_once=True,
            max_attempts=2,
        )

    def _finalized_round(self, players, distribution, custody):
        round_id = self.contract.open_round(OPERATOR, BLOCK, 1_000, 1, distribution)
        for player in players:
            self.contract.join_round(player, BLOCK, round_id, [Coin(1, "wei")])
        return self.contract.finalize_round(OPERATOR, BLOCK, round_id, custody)


class SettlementSchedulerTests(SchedulerTestCase):
    def test_no_pending_transfers(self) -> None:
        client = FakeClient()
        report = asyncio.run(SettlementScheduler(self.settings, self.contract, client).run_once())
        self.assertEqual(report.attempted, 0)
        self.assertEqual(client.transfers, [])

    def test_settles_transfers_in_winner_order(self) -> None:
        result = self._finalized_round(["alice", "bob"], [2, 1], 300)
        client = FakeClient()

        report = asyncio.run(SettlementScheduler(self.settings, self.contract, client).run_once())

        self.assertEqual(len(report.settled), 2)
        self.assertEqual(client.transfers, list(zip(result.winners, [200, 100])))
        settlements = self.contract.get_round(result.round_id).settlements
        self.assertTrue(all(s.status is SettlementStatus.SETTLED for s in settlements))
        self.assertEqual(settlements[0].tx_hash, "0x" + "0" * 63 + "1")
        self.assertEqual(self.contract.outstanding_settlements(), 0)

    def test_reverted_transfer_is_recorded_not_rolled_back(self) -> None:
        result = self._finalized_round(["alice"], [1], 50)
        client = FakeClient(revert_for={"alice"})
        scheduler = SettlementScheduler(self.settings, self.contract, client)

        report = asyncio.run(scheduler.run_once())
        self.assertEqual(len(report.failed), 1)

        raffle_round = self.contract.get_round(result.round_id)
        self.assertFalse(raffle_round.active)
        self.assertEqual(raffle_round.winners, ["alice"])
        self.assertIs(raffle_round.settlements[0].status, SettlementStatus.FAILED)
        self.assertIn("reverted", raffle_round.settlements[0].error)

        asyncio.run(scheduler.run_once())
        self.assertEqual(self.contract.get_round(result.round_id).settlements[0].attempts, 2)

        # max_attempts reached; the transfer stays failed and outstanding
        third = asyncio.run(scheduler.run_once())
        self.assertEqual(third.attempted, 0)
        self.assertEqual(self.contract.outstanding_settlements(), 50)

    def test_retry_succeeds_after_signing_failure(self) -> None:
        result = self._finalized_round(["alice"], [1], 50)
        client = FakeClient(fail_for={"alice"})
        scheduler = SettlementScheduler(self.settings, self.contract, client)
        first = asyncio.run(scheduler.run_once())
        self.assertEqual(len(first.failed), 1)
        self.assertEqual(client.transfers, [])

        client.fail_for.clear()
        report = asyncio.run(scheduler.run_once())
        self.assertEqual(len(report.settled), 1)
        self.assertEqual(client.transfers, [("alice", 50)])
        settlement = self.contract.get_round(result.round_id).settlements[0]
        self.assertIs(settlement.status, SettlementStatus.SETTLED)

    def test_unconfirmed_transfer_is_resolved_not_resent(self) -> None:
        result = self._finalized_round(["alice"], [1], 50)
        client = FakeClient(timeout_for={"alice"})
        scheduler = SettlementScheduler(self.settings, self.contract, client)

        first = asyncio.run(scheduler.run_once())
        self.assertEqual(len(first.waiting), 1)
        settlement = self.contract.get_round(result.round_id).settlements[0]
        self.assertIs(settlement.status, SettlementStatus.SUBMITTED)
        tx_hash = settlement.tx_hash

        second = asyncio.run(scheduler.run_once())
        self.assertEqual(len(second.waiting), 1)
        self.assertEqual(len(client.signed), 1)

        client.receipts[tx_hash] = True
        third = asyncio.run(scheduler.run_once())
        self.assertEqual(len(third.settled), 1)
        self.assertEqual(len(client.signed), 1)
        self.assertEqual(set(client.transfers), {("alice", 50)})

        settlement = self.contract.get_round(result.round_id).settlements[0]
        self.assertIs(settlement.status, SettlementStatus.SETTLED)
        self.assertEqual(settlement.tx_hash, tx_hash)
        self.assertEqual(settlement.attempts, 1)

    def test_pass_stops_behind_unbroadcast_transfer(self) -> None:
        self._finalized_round(["alice", "bob"], [1, 1], 100)
        client = FakeClient(timeout_for={"alice", "bob"})
        report = asyncio.run(SettlementScheduler(self.settings, self.contract, client).run_once())
        self.assertEqual(len(report.waiting), 1)
        self.assertEqual(len(client.signed), 1)

    def test_zero_amount_transfers_are_marked_without_sending(self) -> None:
        result = self._finalized_round(["alice"], [1], 0)
        client = FakeClient()
        report = asyncio.run(SettlementScheduler(self.settings, self.contract, client).run_once())
        self.assertEqual(len(report.settled), 1)
        self.assertEqual(client.transfers, [])
        settlement = self.contract.get_round(result.round_id).settlements[0]
        self.assertIs(settlement.status, SettlementStatus.SETTLED)
        self.assertIsNone(settlement.tx_hash)

    def test_run_forever_exits_when_idle_in_once_mode(self) -> None:
        scheduler = SettlementScheduler(self.settings, self.contract, FakeClient())
        asyncio.run(asyncio.wait_for(scheduler.run_forever(), timeout=5))


class ChainClientSettlementTests(SchedulerTestCase):
    WINNER = Account.from_key("0x" + "42" * 32).address

    def setUp(self) -> None:
        super().setUp()
        self.web3 = mock.MagicMock()
        self.web3.eth.account = Account
        self.web3.eth.get_transaction_count.return_value = 0
        self.web3.eth.gas_price = 1
        self.web3.eth.wait_for_transaction_receipt.side_effect = TimeoutError("receipt not found")
        self.web3.eth.get_transaction_receipt.side_effect = TransactionNotFound("not found")
        self.client = RaffleChainClient(
            self.web3, "0x" + "0" * 40, signer_key="0x" + "a1" * 32, chain_id=1337, receipt_timeout=1
        )

    def test_receipt_timeout_never_signs_a_second_payment(self) -> None:
        result = self._finalized_round([self.WINNER], [1], 10**18)
        scheduler = SettlementScheduler(self.settings, self.contract, self.client)

        asyncio.run(scheduler.run_once())
        asyncio.run(scheduler.run_once())

        sent = [c.args[0] for c in self.web3.eth.send_raw_transaction.call_args_list]
        self.assertEqual(len(sent), 2)
        self.assertEqual(len(set(sent)), 1)
        self.assertEqual(self.web3.eth.get_transaction_count.call_count, 1)

        settlement = self.contract.get_round(result.round_id).settlements[0]
        self.assertIs(settlement.status, SettlementStatus.SUBMITTED)
        self.assertEqual(settlement.raw_tx, sent[0])

        self.web3.eth.get_transaction_receipt.side_effect = None
        self.web3.eth.get_transaction_receipt.return_value = {"status": 1}
        report = asyncio.run(scheduler.run_once())

        self.assertEqual(len(report.settled), 1)
        self.assertEqual(self.web3.eth.send_raw_transaction.call_count, 2)
        self.web3.eth.get_transaction_receipt.assert_called_with(settlement.tx_hash)
        self.assertIs(self.contract.get_round(result.round_id).settlements[0].status, SettlementStatus.SETTLED)

    def test_reverted_receipt_marks_transfer_failed(self) -> None:
        result = self._finalized_round([self.WINNER], [1], 500)
        self.web3.eth.wait_for_transaction_receipt.side_effect = None
        self.web3.eth.wait_for_transaction_receipt.return_value = {"status": 0}

        report = asyncio.run(SettlementScheduler(self.settings, self.contract, self.client).run_once())

        self.assertEqual(len(report.failed), 1)
        settlement = self.contract.get_round(result.round_id).settlements[0]
        self.assertIs(settlement.status, SettlementStatus.FAILED)
        self.assertIsNone(settlement.raw_tx)


if __name__ == "__main__":
    unittest.main()
