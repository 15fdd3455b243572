"""
claimledger: encrypted insurance claim ledger

Version: 0.1.0

Claims are stored as ciphertext handles held by a confidential-compute
backend. Payouts are computed homomorphically, and decryption rights are
granted per handle to the principals entitled to them. Nobody observing the
ledger, the operator included, sees a loss amount or a risk level.

Payout schedule (basis points, 10000 = 100%):
    payout = loss * (10000 - (risk - 1) * 2500) / 10000
    risk 1 -> 100%, risk 2 -> 75%, risk 3 -> 50%

Usage:
    from claimledger import ClaimLedger, PlaintextBackend

    backend = PlaintextBackend()
    ledger = ClaimLedger(backend, address="claim-ledger")

    # Client side: encrypt inputs for this ledger and submitter
    enc = backend.encrypt_input(ledger.address, "alice", 500, 3)
    claim_id = ledger.submit_claim(enc.handles[0], enc.handles[1], enc.proof, "alice")

    ledger.evaluate_claim(claim_id, caller="alice")
    payout = backend.decrypt(ledger.get_payout(claim_id), "alice")   # 250
"""

__version__ = "0.1.0"

from .access import AccessControlPropagator, AccessGrant
from .backend import ConfidentialBackend, EncryptedInput, PlaintextBackend
from .calculator import (
    BASIS_POINTS,
    RISK_STEP_BASIS_POINTS,
    HomomorphicPayoutCalculator,
    expected_payout,
)
from .config import LedgerSettings
from .errors import (
    AccessDeniedError,
    ClaimLedgerError,
    ClaimNotFoundError,
    DelayIntegrityError,
    FailureCode,
    InputDomainError,
    ProofVerificationError,
    UnsupportedOperationError,
)
from .events import ClaimEvaluated, ClaimSubmitted, EventLog
from .handles import CiphertextHandle, ExternalCiphertext, FheType
from .ledger import ClaimLedger, ClaimView, build_ledger
from .proofs import InputProof, InputVerifier
from .rate_limit import RateLimitDelay
from .store import (
    Claim,
    ClaimIdAllocator,
    ClaimStore,
    InMemoryClaimStore,
    SqliteClaimStore,
)


__all__ = [
    "__version__",

    # Ledger
    "ClaimLedger",
    "ClaimView",
    "build_ledger",
    "LedgerSettings",

    # Storage
    "Claim",
    "ClaimIdAllocator",
    "ClaimStore",
    "InMemoryClaimStore",
    "SqliteClaimStore",

    # Payout
    "HomomorphicPayoutCalculator",
    "expected_payout",
    "BASIS_POINTS",
    "RISK_STEP_BASIS_POINTS",

    # Access
    "AccessControlPropagator",
    "AccessGrant",

    # Throttling
    "RateLimitDelay",

    # Backend
    "ConfidentialBackend",
    "PlaintextBackend",
    "EncryptedInput",
    "CiphertextHandle",
    "ExternalCiphertext",
    "FheType",
    "InputProof",
    "InputVerifier",

    # Events
    "ClaimSubmitted",
    "ClaimEvaluated",
    "EventLog",

    # Errors
    "FailureCode",
    "ClaimLedgerError",
    "ProofVerificationError",
    "ClaimNotFoundError",
    "DelayIntegrityError",
    "AccessDeniedError",
    "UnsupportedOperationError",
    "InputDomainError",
]
