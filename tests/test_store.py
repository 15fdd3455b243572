"""
Claim storage test suite.
"""

import os
import shutil
import tempfile
import unittest

from claimledger import (
    ClaimIdAllocator,
    ClaimLedger,
    ClaimNotFoundError,
    CiphertextHandle,
    InMemoryClaimStore,
    PlaintextBackend,
    SqliteClaimStore,
)
from claimledger.store import open_store


def _h(n):
    return CiphertextHandle(f"{n:064x}")


class TestClaimIdAllocator(unittest.TestCase):

    def test_sequential_from_zero(self):
        alloc = ClaimIdAllocator()
        self.assertEqual([alloc.allocate() for _ in range(4)], [0, 1, 2, 3])
        self.assertEqual(alloc.count, 4)
        self.assertEqual(alloc.peek(), 4)

    def test_restore_never_moves_backwards(self):
        alloc = ClaimIdAllocator(start=5)
        alloc.restore(9)
        self.assertEqual(alloc.allocate(), 9)
        with self.assertRaises(ValueError):
            alloc.restore(3)

    def test_negative_start_rejected(self):
        with self.assertRaises(ValueError):
            ClaimIdAllocator(start=-1)


class StoreContract:
    """Behavior every ClaimStore implementation shares."""

    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        self.store = self.make_store()

    def tearDown(self):
        self.store.close()

    def test_append_returns_prior_count(self):
        for i in range(3):
            self.assertEqual(self.store.count(), i)
            self.assertEqual(self.store.append(_h(1), _h(2), _h(3)), i)
        self.assertEqual(self.store.count(), 3)

    def test_get_round_trips_handles(self):
        claim_id = self.store.append(_h(1), _h(2), _h(3))
        claim = self.store.get(claim_id)
        self.assertEqual(claim.loss_amount, _h(1))
        self.assertEqual(claim.risk_level, _h(2))
        self.assertEqual(claim.payout, _h(3))
        self.assertTrue(claim.exists)

    def test_set_payout_only_touches_payout(self):
        claim_id = self.store.append(_h(1), _h(2), _h(3))
        self.store.set_payout(claim_id, _h(4))
        claim = self.store.get(claim_id)
        self.assertEqual(claim.payout, _h(4))
        self.assertEqual(claim.loss_amount, _h(1))
        self.assertEqual(claim.risk_level, _h(2))

    def test_unknown_ids(self):
        self.store.append(_h(1), _h(2), _h(3))
        for claim_id in (1, 7, -1):
            self.assertFalse(self.store.exists(claim_id))
            with self.assertRaises(ClaimNotFoundError):
                self.store.get(claim_id)
            with self.assertRaises(ClaimNotFoundError):
                self.store.set_payout(claim_id, _h(4))
        self.assertEqual(self.store.count(), 1)


class TestInMemoryClaimStore(StoreContract, unittest.TestCase):

    def make_store(self):
        return InMemoryClaimStore()


class TestSqliteClaimStore(StoreContract, unittest.TestCase):

    def make_store(self):
        self.tmp = tempfile.mkdtemp()
        self.path = os.path.join(self.tmp, "data", "claims.db")
        return SqliteClaimStore(self.path)

    def tearDown(self):
        super().tearDown()
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_reopen_keeps_claims_and_counter(self):
        self.store.append(_h(1), _h(2), _h(3))
        self.store.append(_h(4), _h(5), _h(6))
        self.store.set_payout(1, _h(7))
        self.store.close()

        self.store = SqliteClaimStore(self.path)
        self.assertEqual(self.store.count(), 2)
        self.assertEqual(self.store.get(1).payout, _h(7))
        self.assertEqual(self.store.append(_h(8), _h(9), _h(10)), 2)

    def test_ids_beyond_sqlite_integer_range(self):
        self.store.append(_h(1), _h(2), _h(3))
        for claim_id in (2 ** 63, 2 ** 64, -(2 ** 70)):
            with self.assertRaises(ClaimNotFoundError):
                self.store.get(claim_id)
            with self.assertRaises(ClaimNotFoundError):
                self.store.set_payout(claim_id, _h(4))
        self.assertEqual(self.store.get(0).payout, _h(3))

    def test_failed_append_leaves_counter(self):
        self.store.append(_h(1), _h(2), _h(3))
        with self.assertRaises(AttributeError):
            self.store.append(None, _h(2), _h(3))
        self.assertEqual(self.store.count(), 1)
        self.assertEqual(self.store.append(_h(1), _h(2), _h(3)), 1)


class TestOpenStore(unittest.TestCase):

    def test_empty_path_is_in_memory(self):
        self.assertIsInstance(open_store(""), InMemoryClaimStore)
        self.assertIsInstance(open_store(None), InMemoryClaimStore)

    def test_ledger_over_sqlite(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = open_store(os.path.join(tmp, "claims.db"))
            self.assertIsInstance(store, SqliteClaimStore)
            backend = PlaintextBackend()
            ledger = ClaimLedger(backend, store=store, address="claim-ledger")
            enc = backend.encrypt_input("claim-ledger", "alice", 500, 3)
            claim_id = ledger.submit_claim(enc.handles[0], enc.handles[1], enc.proof, "alice")
            ledger.evaluate_claim(claim_id, "alice")
            self.assertEqual(backend.decrypt(ledger.get_payout(claim_id), "alice"), 250)
            store.close()

    def test_ledger_not_found_for_huge_id_over_sqlite(self):
        ledger = ClaimLedger(PlaintextBackend(), store=SqliteClaimStore(":memory:"))
        with self.assertRaises(ClaimNotFoundError):
            ledger.get_claim(2 ** 64)
        with self.assertRaises(ClaimNotFoundError):
            ledger.evaluate_claim(2 ** 64, "alice")
        ledger.store.close()


if __name__ == "__main__":
    unittest.main(verbosity=2)
