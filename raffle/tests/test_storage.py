import os
import tempfile
import unittest

from raffle.contract import RaffleContract
from raffle.db import SqlStore
from raffle.engine import BlockContext, Coin
from raffle.errors import ConcurrentUpdate, InsufficientFunds
from raffle.storage import MemoryStore


class StoreContractMixin:
    def make_store(self):
        raise NotImplementedError

    def setUp(self) -> None:
        self.store = self.make_store()

    def test_failed_transaction_discards_writes(self) -> None:
        with self.store.transaction() as state:
            state.save("counter", {"next_id": 1})

        with self.assertRaises(RuntimeError):
            with self.store.transaction() as state:
                state.save("counter", {"next_id": 2})
                state.save("round:9", {"id": 9})
                raise RuntimeError("boom")

        with self.store.transaction() as state:
            self.assertEqual(state.load("counter"), {"next_id": 1})
            self.assertIsNone(state.load("round:9"))

    def test_writes_visible_within_transaction(self) -> None:
        with self.store.transaction() as state:
            state.save("admins", {"admins": ["a"]})
            self.assertEqual(state.load("admins"), {"admins": ["a"]})

    def test_iter_prefix(self) -> None:
        with self.store.transaction() as state:
            state.save("round:2", {"id": 2})
            state.save("round:10", {"id": 10})
            state.save("counter", {"next_id": 11})
        with self.store.transaction() as state:
            keys = [key for key, _ in state.iter_prefix("round:")]
        self.assertEqual(sorted(keys), ["round:10", "round:2"])

    def test_loaded_records_are_copies(self) -> None:
        with self.store.transaction() as state:
            state.save("admins", {"admins": ["a"]})
        with self.store.transaction() as state:
            record = state.load("admins")
            record["admins"].append("b")
        with self.store.transaction() as state:
            self.assertEqual(state.load("admins"), {"admins": ["a"]})

    def test_rejected_join_leaves_round_untouched(self) -> None:
        contract = RaffleContract(self.store)
        contract.init(["admin"])
        block = BlockContext(height=1, time=10)
        round_id = contract.open_round("admin", block, 100, 50, [2, 1])
        contract.join_round("alice", block, round_id, [Coin(50, "wei")])

        with self.assertRaises(InsufficientFunds):
            contract.join_round("bob", block, round_id, [Coin(49, "wei")])

        self.assertEqual(contract.get_round(round_id).players, ["alice"])
        self.assertEqual([r.id for r in contract.list_rounds()], [round_id])

    def test_rounds_listed_by_numeric_id(self) -> None:
        contract = RaffleContract(self.store)
        contract.init(["admin"])
        block = BlockContext(height=1, time=10)
        ids = [contract.open_round("admin", block, 100, 0, [1]) for _ in range(12)]
        self.assertEqual([r.id for r in contract.list_rounds()], ids)
        self.assertEqual(len(contract.list_rounds(active=False)), 0)


class MemoryStoreTests(StoreContractMixin, unittest.TestCase):
    def make_store(self):
        return MemoryStore()


class SqlStoreTests(StoreContractMixin, unittest.TestCase):
    def make_store(self):
        return SqlStore("sqlite:///:memory:")

    def tearDown(self) -> None:
        self.store.engine.dispose()


class SqlStoreConcurrencyTests(unittest.TestCase):
    """Two stores on one database file stand in for the API and the settler."""

    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        url = f"sqlite:///{os.path.join(tmp.name, 'raffle.db')}"
        self.api_store = SqlStore(url)
        self.settler_store = SqlStore(url)
        self.addCleanup(self.api_store.engine.dispose)
        self.addCleanup(self.settler_store.engine.dispose)
        with self.api_store.transaction() as state:
            state.save("round:0", {"id": 0, "settlements": ["pending", "pending"]})

    def test_stale_write_is_rejected(self) -> None:
        with self.assertRaises(ConcurrentUpdate):
            with self.api_store.transaction() as api:
                stale = api.load("round:0")
                with self.settler_store.transaction() as settler:
                    fresh = settler.load("round:0")
                    fresh["settlements"][0] = "settled"
                    settler.save("round:0", fresh)
                stale["settlements"][1] = "failed"
                api.save("round:0", stale)

        with self.api_store.transaction() as state:
            self.assertEqual(state.load("round:0")["settlements"], ["settled", "pending"])

    def test_sequential_writers_both_apply(self) -> None:
        with self.settler_store.transaction() as settler:
            record = settler.load("round:0")
            record["settlements"][0] = "settled"
            settler.save("round:0", record)
        with self.api_store.transaction() as api:
            record = api.load("round:0")
            record["settlements"][1] = "failed"
            api.save("round:0", record)

        with self.settler_store.transaction() as state:
            self.assertEqual(state.load("round:0")["settlements"], ["settled", "failed"])


if __name__ == "__main__":
    unittest.main()
