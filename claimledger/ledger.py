"""
The encrypted claim ledger.

ClaimLedger exposes the ledger's operations: submitting encrypted claims,
evaluating their payout homomorphically, and reading back ciphertext
handles. It never handles plaintext.

Execution model: one call at a time. Every public method holds the ledger
lock for its whole duration, and each call either commits all of its effects
or raises before committing any.
"""

import logging
import threading
from typing import NamedTuple, Optional

from .access import AccessControlPropagator
from .backend import ConfidentialBackend, PlaintextBackend
from .calculator import HomomorphicPayoutCalculator
from .config import LedgerSettings
from .errors import ClaimNotFoundError, ProofVerificationError
from .events import ClaimEvaluated, ClaimSubmitted, EventLog
from .handles import CiphertextHandle, ExternalCiphertext
from .logging_config import audit_log
from .proofs import InputVerifier
from .rate_limit import RateLimitDelay
from .store import Claim, ClaimStore, InMemoryClaimStore, open_store

logger = logging.getLogger(__name__)


class ClaimView(NamedTuple):
    loss_amount: CiphertextHandle
    risk_level: CiphertextHandle
    payout: CiphertextHandle


class ClaimLedger:
    """
    Claim ledger over a confidential-compute backend.

    Args:
        backend: Confidential-compute backend
        store: Claim table (in-memory if omitted)
        delay: Throttle between backend calls during evaluation
        address: Principal the ledger acts as; always granted access to the
            handles it stores
        events: Event log receiving ClaimSubmitted / ClaimEvaluated
    """

    def __init__(
        self,
        backend: ConfidentialBackend,
        store: Optional[ClaimStore] = None,
        delay: Optional[RateLimitDelay] = None,
        address: str = "claim-ledger",
        events: Optional[EventLog] = None,
    ):
        self.backend = backend
        self.store = store or InMemoryClaimStore()
        self.delay = delay or RateLimitDelay(rate=200, capacity=16)
        self.address = address
        self.events = events or EventLog()
        self.access = AccessControlPropagator(backend, issuer=address)
        self.calculator = HomomorphicPayoutCalculator(backend, self.delay)
        self._lock = threading.RLock()

    @property
    def confidential_protocol_id(self) -> int:
        return self.backend.protocol_id

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def submit_claim(
        self,
        loss_amount: ExternalCiphertext,
        risk_level: ExternalCiphertext,
        proof: bytes,
        submitter: str,
    ) -> int:
        """
        Store a new encrypted claim.

        The risk level is not range-checked: it is encrypted. Both inputs
        are granted to the ledger and the submitter; the payout starts as an
        encrypted zero.

        Returns:
            The new claim id (equal to the claim count before the call)

        Raises:
            ValueError: submitter is empty
            ProofVerificationError: the proof does not cover both inputs for
                (this ledger, submitter). No id is allocated.
        """
        with self._lock:
            self.access.check_principal(submitter)
            try:
                loss = self.backend.from_external(loss_amount, proof, self.address, submitter)
                risk = self.backend.from_external(risk_level, proof, self.address, submitter)
            except ProofVerificationError as e:
                audit_log.proof_rejected(submitter, e.message)
                raise

            zero = self.backend.trivial_encrypt(0)
            claim_id = self.store.append(loss, risk, zero)

            self.access.propagate(loss, submitter)
            self.access.propagate(risk, submitter)

            audit_log.claim_submitted(claim_id, submitter, loss.hex(), risk.hex())
            self.events.emit(ClaimSubmitted(claim_id=claim_id, submitter=submitter))
            return claim_id

    def evaluate_claim(self, claim_id: int, caller: str) -> None:
        """
        Compute and store the encrypted payout of a claim.

        Any principal may evaluate any claim, any number of times; the
        result depends only on the claim's immutable inputs. The caller and
        the ledger are granted access to the new payout handle.

        Raises:
            ValueError: caller is empty
            ClaimNotFoundError: unknown claim id
            DelayIntegrityError: throttling invariant failed; payout unchanged
        """
        with self._lock:
            self.access.check_principal(caller)
            claim = self._claim(claim_id, "evaluate_claim")
            payout = self.calculator.compute(claim)

            self.store.set_payout(claim_id, payout)
            self.access.propagate(payout, caller)

            audit_log.claim_evaluated(claim_id, caller, payout.hex())
            self.events.emit(ClaimEvaluated(claim_id=claim_id))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_loss_amount(self, claim_id: int) -> CiphertextHandle:
        with self._lock:
            return self._claim(claim_id, "get_loss_amount").loss_amount

    def get_risk_level(self, claim_id: int) -> CiphertextHandle:
        with self._lock:
            return self._claim(claim_id, "get_risk_level").risk_level

    def get_payout(self, claim_id: int) -> CiphertextHandle:
        with self._lock:
            return self._claim(claim_id, "get_payout").payout

    def get_claim(self, claim_id: int) -> ClaimView:
        with self._lock:
            claim = self._claim(claim_id, "get_claim")
            return ClaimView(claim.loss_amount, claim.risk_level, claim.payout)

    def get_claim_count(self) -> int:
        with self._lock:
            return self.store.count()

    def claim_exists(self, claim_id: int) -> bool:
        with self._lock:
            return self.store.exists(claim_id)

    def _claim(self, claim_id: int, operation: str) -> Claim:
        try:
            return self.store.get(claim_id)
        except ClaimNotFoundError:
            audit_log.claim_not_found(claim_id, operation)
            raise


def build_ledger(settings: Optional[LedgerSettings] = None) -> ClaimLedger:
    """Assemble a ledger over the plaintext backend from settings."""
    s = settings or LedgerSettings.from_env()
    if s.input_verifier_key_path:
        verifier = InputVerifier.from_key_file(s.input_verifier_key_path)
    else:
        verifier = InputVerifier.generate()
    backend = PlaintextBackend(
        protocol_id=s.protocol_id,
        bits=s.ciphertext_bits,
        verifier=verifier,
    )
    logger.info(
        "building ledger %s (protocol %d, %d-bit ciphertexts, store=%s)",
        s.ledger_address, s.protocol_id, s.ciphertext_bits, s.db_path or "memory",
    )
    return ClaimLedger(
        backend=backend,
        store=open_store(s.db_path),
        delay=RateLimitDelay(rate=s.backend_ops_per_second, capacity=s.backend_burst),
        address=s.ledger_address,
    )
