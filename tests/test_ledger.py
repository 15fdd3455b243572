"""
Claim ledger test suite.

Covers submission, homomorphic evaluation, access propagation and the
all-or-nothing failure behavior of the ledger operations.
"""

import unittest

from claimledger import (
    AccessDeniedError,
    ClaimEvaluated,
    ClaimLedger,
    ClaimNotFoundError,
    ClaimSubmitted,
    DelayIntegrityError,
    PlaintextBackend,
    ProofVerificationError,
    RateLimitDelay,
    expected_payout,
)
from claimledger.handles import ExternalCiphertext

LEDGER = "claim-ledger"


class ManualClock:
    """Clock whose sleep advances time instantly."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


class LedgerTestCase(unittest.TestCase):

    def setUp(self):
        self.clock = ManualClock()
        self.backend = PlaintextBackend()
        self.delay = RateLimitDelay(rate=1024, capacity=8, clock=self.clock, sleep=self.clock.sleep)
        self.ledger = ClaimLedger(self.backend, delay=self.delay, address=LEDGER)

    def _submit(self, loss, risk, submitter="alice"):
        enc = self.backend.encrypt_input(LEDGER, submitter, loss, risk)
        return self.ledger.submit_claim(enc.handles[0], enc.handles[1], enc.proof, submitter)

    def _payout(self, claim_id, principal="alice"):
        return self.backend.decrypt(self.ledger.get_payout(claim_id), principal)


class TestSubmission(LedgerTestCase):

    def test_ids_equal_prior_count(self):
        for expected in range(5):
            self.assertEqual(self.ledger.get_claim_count(), expected)
            self.assertEqual(self._submit(100, 1), expected)
        self.assertEqual(self.ledger.get_claim_count(), 5)

    def test_claim_exists_iff_in_range(self):
        self._submit(100, 1)
        self._submit(200, 2)
        self.assertTrue(self.ledger.claim_exists(0))
        self.assertTrue(self.ledger.claim_exists(1))
        self.assertFalse(self.ledger.claim_exists(2))
        self.assertFalse(self.ledger.claim_exists(-1))

    def test_initial_payout_is_encrypted_zero(self):
        claim_id = self._submit(100, 1)
        zero = self.ledger.get_payout(claim_id)
        self.assertEqual(zero, self.backend.trivial_encrypt(0))

    def test_submitter_and_ledger_can_decrypt_inputs(self):
        claim_id = self._submit(1234, 2)
        view = self.ledger.get_claim(claim_id)
        self.assertEqual(self.backend.decrypt(view.loss_amount, "alice"), 1234)
        self.assertEqual(self.backend.decrypt(view.risk_level, "alice"), 2)
        self.assertEqual(self.backend.decrypt(view.loss_amount, LEDGER), 1234)
        with self.assertRaises(AccessDeniedError):
            self.backend.decrypt(view.loss_amount, "mallory")

    def test_handles_are_opaque_and_distinct(self):
        a = self._submit(500, 3)
        b = self._submit(500, 3)
        self.assertNotEqual(self.ledger.get_loss_amount(a), self.ledger.get_loss_amount(b))
        self.assertNotIn("500", self.ledger.get_loss_amount(a).hex())

    def test_out_of_range_risk_is_accepted(self):
        # Encrypted, so the ledger cannot check it.
        claim_id = self._submit(1000, 7)
        self.assertTrue(self.ledger.claim_exists(claim_id))

    def test_empty_submitter_rejected_before_any_write(self):
        enc = self.backend.encrypt_input(LEDGER, "", 100, 1)
        with self.assertRaises(ValueError):
            self.ledger.submit_claim(enc.handles[0], enc.handles[1], enc.proof, "")
        self.assertEqual(self.ledger.get_claim_count(), 0)
        self.assertEqual(len(self.ledger.events), 0)

    def test_submitted_event(self):
        claim_id = self._submit(100, 1, submitter="bob")
        events = self.ledger.events.query(ClaimSubmitted)
        self.assertEqual(events, [ClaimSubmitted(claim_id=claim_id, submitter="bob")])


class TestProofVerification(LedgerTestCase):

    def test_tampered_proof_rejected(self):
        enc = self.backend.encrypt_input(LEDGER, "alice", 100, 1)
        bad = enc.proof.replace(b'"sig_b64":"', b'"sig_b64":"AAAA')
        with self.assertRaises(ProofVerificationError):
            self.ledger.submit_claim(enc.handles[0], enc.handles[1], bad, "alice")
        self.assertEqual(self.ledger.get_claim_count(), 0)

    def test_garbage_proof_rejected(self):
        enc = self.backend.encrypt_input(LEDGER, "alice", 100, 1)
        with self.assertRaises(ProofVerificationError):
            self.ledger.submit_claim(enc.handles[0], enc.handles[1], b"\x00\x01", "alice")
        self.assertEqual(self.ledger.get_claim_count(), 0)

    def test_proof_for_other_submitter_rejected(self):
        enc = self.backend.encrypt_input(LEDGER, "alice", 100, 1)
        with self.assertRaises(ProofVerificationError):
            self.ledger.submit_claim(enc.handles[0], enc.handles[1], enc.proof, "mallory")
        self.assertEqual(self.ledger.get_claim_count(), 0)

    def test_proof_for_other_ledger_rejected(self):
        enc = self.backend.encrypt_input("other-ledger", "alice", 100, 1)
        with self.assertRaises(ProofVerificationError):
            self.ledger.submit_claim(enc.handles[0], enc.handles[1], enc.proof, "alice")
        self.assertEqual(self.ledger.get_claim_count(), 0)

    def test_input_not_covered_by_proof_rejected(self):
        enc = self.backend.encrypt_input(LEDGER, "alice", 100, 1)
        other = self.backend.encrypt_input(LEDGER, "alice", 999)
        with self.assertRaises(ProofVerificationError):
            self.ledger.submit_claim(other.handles[0], enc.handles[1], enc.proof, "alice")
        self.assertEqual(self.ledger.get_claim_count(), 0)

    def test_unknown_external_handle_rejected(self):
        enc = self.backend.encrypt_input(LEDGER, "alice", 100, 1)
        fake = ExternalCiphertext.from_hex("0x" + "ab" * 32)
        with self.assertRaises(ProofVerificationError):
            self.ledger.submit_claim(fake, enc.handles[1], enc.proof, "alice")

    def test_proof_from_foreign_verifier_rejected(self):
        foreign = PlaintextBackend()
        enc = foreign.encrypt_input(LEDGER, "alice", 100, 1)
        with self.assertRaises(ProofVerificationError):
            self.ledger.submit_claim(enc.handles[0], enc.handles[1], enc.proof, "alice")
        self.assertEqual(len(self.ledger.events), 0)


class TestEvaluation(LedgerTestCase):

    def test_low_risk_pays_full_loss(self):
        claim_id = self._submit(123456, 1)
        self.ledger.evaluate_claim(claim_id, "alice")
        self.assertEqual(self._payout(claim_id), 123456)

    def test_medium_risk_pays_75_percent(self):
        claim_id = self._submit(1001, 2)
        self.ledger.evaluate_claim(claim_id, "alice")
        self.assertEqual(self._payout(claim_id), 1001 * 7500 // 10000)
        self.assertNotEqual(self._payout(claim_id), 1001 * 8000 // 10000)

    def test_high_risk_pays_half(self):
        claim_id = self._submit(999, 3)
        self.ledger.evaluate_claim(claim_id, "alice")
        self.assertEqual(self._payout(claim_id), 999 * 5000 // 10000)

    def test_scenario_one_billion_medium_risk(self):
        claim_id = self._submit(1_000_000_000, 2)
        self.assertEqual(claim_id, 0)
        self.ledger.evaluate_claim(0, "alice")
        self.assertEqual(self._payout(0), 750_000_000)

    def test_scenario_500_high_risk(self):
        self._submit(10, 1)
        n = self._submit(500, 3)
        self.ledger.evaluate_claim(n, "alice")
        self.assertEqual(self._payout(n), 250)

    def test_max_uint32_loss(self):
        loss = 2 ** 32 - 1
        for risk in (1, 2, 3):
            claim_id = self._submit(loss, risk)
            self.ledger.evaluate_claim(claim_id, "alice")
            self.assertEqual(self._payout(claim_id), expected_payout(loss, risk))

    def test_reevaluation_is_deterministic(self):
        claim_id = self._submit(777, 2)
        self.ledger.evaluate_claim(claim_id, "alice")
        first_handle = self.ledger.get_payout(claim_id)
        first = self._payout(claim_id)
        self.ledger.evaluate_claim(claim_id, "alice")
        self.assertEqual(self.ledger.get_payout(claim_id), first_handle)
        self.assertEqual(self._payout(claim_id), first)

    def test_evaluation_leaves_inputs_untouched(self):
        claim_id = self._submit(777, 2)
        loss = self.ledger.get_loss_amount(claim_id)
        risk = self.ledger.get_risk_level(claim_id)
        self.ledger.evaluate_claim(claim_id, "alice")
        self.assertEqual(self.ledger.get_loss_amount(claim_id), loss)
        self.assertEqual(self.ledger.get_risk_level(claim_id), risk)

    def test_any_principal_may_evaluate_and_decrypt_payout(self):
        claim_id = self._submit(400, 3, submitter="alice")
        self.ledger.evaluate_claim(claim_id, "bob")
        self.assertEqual(self._payout(claim_id, "bob"), 200)
        self.assertTrue(self.ledger.access.is_allowed(self.ledger.get_payout(claim_id), LEDGER))
        with self.assertRaises(AccessDeniedError):
            self._payout(claim_id, "alice")

    def test_payout_grants_are_ledger_then_caller(self):
        claim_id = self._submit(400, 3)
        self.ledger.evaluate_claim(claim_id, "carol")
        self.ledger.evaluate_claim(claim_id, "carol")
        grants = self.ledger.access.grants_for(self.ledger.get_payout(claim_id))
        self.assertEqual(grants, [LEDGER, "carol"])

    def test_four_delay_ticks_per_evaluation(self):
        claim_id = self._submit(400, 3)
        before = self.delay.stats()["ticks"]
        self.ledger.evaluate_claim(claim_id, "alice")
        self.assertEqual(self.delay.stats()["ticks"] - before, 4)

    def test_empty_caller_leaves_payout_unchanged(self):
        claim_id = self._submit(400, 3)
        before = self.ledger.get_payout(claim_id)
        ticks = self.delay.stats()["ticks"]
        with self.assertRaises(ValueError):
            self.ledger.evaluate_claim(claim_id, "")
        self.assertEqual(self.ledger.get_payout(claim_id), before)
        self.assertEqual(self.delay.stats()["ticks"], ticks)
        self.assertEqual(self.ledger.events.query(ClaimEvaluated), [])

    def test_evaluated_event(self):
        claim_id = self._submit(400, 3)
        self.ledger.evaluate_claim(claim_id, "alice")
        self.assertEqual(
            self.ledger.events.query(ClaimEvaluated, claim_id=claim_id),
            [ClaimEvaluated(claim_id=claim_id)],
        )


class TestEventSubscribers(LedgerTestCase):

    def test_failing_subscriber_does_not_undo_the_call(self):
        seen = []

        def broken(event):
            raise RuntimeError("subscriber down")

        self.ledger.events.subscribe(broken)
        self.ledger.events.subscribe(seen.append)
        with self.assertLogs("claimledger.events", level="ERROR") as logs:
            claim_id = self._submit(400, 3)
            self.ledger.evaluate_claim(claim_id, "alice")
        self.assertEqual(len(logs.records), 2)
        self.assertEqual(self._payout(claim_id), 200)
        self.assertEqual(self.ledger.get_claim_count(), 1)
        self.assertEqual(seen, [ClaimSubmitted(claim_id, "alice"), ClaimEvaluated(claim_id)])
        self.assertEqual(len(self.ledger.events), 2)


class TestNotFound(LedgerTestCase):

    def test_evaluate_unknown_claim(self):
        self._submit(100, 1)
        before = self.ledger.get_claim(0)
        with self.assertRaises(ClaimNotFoundError) as ctx:
            self.ledger.evaluate_claim(1, "alice")
        self.assertEqual(ctx.exception.claim_id, 1)
        self.assertEqual(self.ledger.get_claim_count(), 1)
        self.assertEqual(self.ledger.get_claim(0), before)
        self.assertEqual(self.ledger.events.query(ClaimEvaluated), [])

    def test_getters_on_unknown_claim(self):
        for getter in (
            self.ledger.get_loss_amount,
            self.ledger.get_risk_level,
            self.ledger.get_payout,
            self.ledger.get_claim,
        ):
            with self.assertRaises(ClaimNotFoundError):
                getter(0)
            with self.assertRaises(ClaimNotFoundError):
                getter(-3)


class TestDelayIntegrity(LedgerTestCase):

    def test_integrity_failure_leaves_payout_unchanged(self):
        claim_id = self._submit(400, 3)
        before = self.ledger.get_payout(claim_id)
        self.clock.now = -100.0  # clock runs backwards mid-ledger
        with self.assertRaises(DelayIntegrityError):
            self.ledger.evaluate_claim(claim_id, "alice")
        self.assertEqual(self.ledger.get_payout(claim_id), before)
        self.assertEqual(self.ledger.events.query(ClaimEvaluated), [])


class TestProtocol(unittest.TestCase):

    def test_confidential_protocol_id(self):
        ledger = ClaimLedger(PlaintextBackend(protocol_id=9))
        self.assertEqual(ledger.confidential_protocol_id, 9)


if __name__ == "__main__":
    unittest.main(verbosity=2)
