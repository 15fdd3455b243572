"""
claimledger error taxonomy.

Every failure maps to one FailureCode. Failures are atomic: a call that
raises one of these has committed none of its effects.
"""

from enum import Enum
from typing import Optional


class FailureCode(str, Enum):
    """Stable failure codes exposed to callers and the HTTP adapter."""
    PROOF_VERIFICATION_FAILED = "PROOF_VERIFICATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    DELAY_INTEGRITY_FAILURE = "DELAY_INTEGRITY_FAILURE"
    ACCESS_DENIED = "ACCESS_DENIED"
    UNSUPPORTED_OPERATION = "UNSUPPORTED_OPERATION"
    INPUT_OUT_OF_DOMAIN = "INPUT_OUT_OF_DOMAIN"


class ClaimLedgerError(Exception):
    """Base class for all ledger failures."""

    code: FailureCode

    def __init__(self, message: str, code: Optional[FailureCode] = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(f"{self.code.value}: {message}")


class ProofVerificationError(ClaimLedgerError):
    """Submitted ciphertext/proof pair does not verify."""
    code = FailureCode.PROOF_VERIFICATION_FAILED


class ClaimNotFoundError(ClaimLedgerError):
    """Operation references a claim id that was never allocated."""
    code = FailureCode.NOT_FOUND

    def __init__(self, claim_id: int):
        self.claim_id = claim_id
        super().__init__(f"claim {claim_id} does not exist")


class DelayIntegrityError(ClaimLedgerError):
    """The throttling invariant was violated; the enclosing call aborts."""
    code = FailureCode.DELAY_INTEGRITY_FAILURE


class AccessDeniedError(ClaimLedgerError):
    """Principal holds no grant on the requested handle."""
    code = FailureCode.ACCESS_DENIED

    def __init__(self, handle_id: str, principal: str):
        self.handle_id = handle_id
        self.principal = principal
        super().__init__(f"{principal} may not decrypt 0x{handle_id}")


class UnsupportedOperationError(ClaimLedgerError):
    """Operation outside the homomorphic arithmetic model."""
    code = FailureCode.UNSUPPORTED_OPERATION


class InputDomainError(ClaimLedgerError):
    """Plaintext input does not fit the encrypted type's domain."""
    code = FailureCode.INPUT_OUT_OF_DOMAIN
