"""
Confidential-compute backend.

The ledger never sees plaintext. Everything it does to encrypted values goes
through a ConfidentialBackend: verifying client inputs, homomorphic
arithmetic, access grants and (for authorized principals only) decryption.

The arithmetic model is deliberately narrow:
- add / sub / mul between two handles, or a handle and a plaintext int
- division only by a plaintext constant
- no comparisons or branches on encrypted predicates

PlaintextBackend implements the interface over a table of plaintext values.
It is the development and test backend; it models the coprocessor's storage,
its input verifier and its ACL, not its cryptography.
"""

import logging
import secrets
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple, Union

from .errors import (
    AccessDeniedError,
    InputDomainError,
    ProofVerificationError,
    UnsupportedOperationError,
)
from .handles import CiphertextHandle, ExternalCiphertext, FheType, Provenance
from .hashing import computed_handle_id, input_handle_id
from .proofs import InputProof, InputVerifier

logger = logging.getLogger(__name__)

Operand = Union[CiphertextHandle, int]

DEFAULT_PROTOCOL_ID = 1
DEFAULT_CIPHERTEXT_BITS = 64


@dataclass(frozen=True)
class EncryptedInput:
    """Output of client-side encryption: input handles plus their proof."""
    handles: Tuple[ExternalCiphertext, ...]
    proof: bytes


class ConfidentialBackend(ABC):
    """Capability interface onto the confidential-compute backend."""

    protocol_id: int

    @abstractmethod
    def from_external(
        self,
        external: ExternalCiphertext,
        proof: bytes,
        contract: str,
        user: str,
    ) -> CiphertextHandle:
        """
        Verify a client input against its proof and return a usable handle.

        Raises:
            ProofVerificationError: proof does not verify for (contract, user)
                or does not cover this input
        """

    @abstractmethod
    def trivial_encrypt(self, value: int, fhe_type: FheType = FheType.EUINT32) -> CiphertextHandle:
        """Encrypt a public constant (e.g. the initial zero payout)."""

    @abstractmethod
    def add(self, lhs: Operand, rhs: Operand) -> CiphertextHandle:
        pass

    @abstractmethod
    def sub(self, lhs: Operand, rhs: Operand) -> CiphertextHandle:
        pass

    @abstractmethod
    def mul(self, lhs: Operand, rhs: Operand) -> CiphertextHandle:
        pass

    @abstractmethod
    def div_by_constant(self, lhs: CiphertextHandle, divisor: int) -> CiphertextHandle:
        """
        Floor division by a plaintext constant.

        Raises:
            UnsupportedOperationError: divisor is encrypted or zero
        """

    @abstractmethod
    def allow(self, handle: CiphertextHandle, principal: str) -> bool:
        """Grant decryption rights. Returns True if the grant is new."""

    @abstractmethod
    def is_allowed(self, handle: CiphertextHandle, principal: str) -> bool:
        pass

    @abstractmethod
    def allowed_principals(self, handle: CiphertextHandle) -> List[str]:
        """Principals holding a grant on handle, in grant order."""

    @abstractmethod
    def decrypt(self, handle: CiphertextHandle, principal: str) -> int:
        """
        Decrypt on behalf of principal.

        Raises:
            AccessDeniedError: principal holds no grant on handle
        """


class PlaintextBackend(ConfidentialBackend):
    """
    In-process backend holding plaintext values by handle id.

    Arithmetic wraps modulo 2**bits, like the unsigned ciphertext types of a
    real coprocessor. Client inputs are limited to their declared type's
    domain (32 bits); the default width of 64 bits leaves room for the
    payout numerator loss * 10000 without wrapping.
    """

    def __init__(
        self,
        protocol_id: int = DEFAULT_PROTOCOL_ID,
        bits: int = DEFAULT_CIPHERTEXT_BITS,
        verifier: Optional[InputVerifier] = None,
    ):
        if bits < FheType.EUINT32.bits:
            raise ValueError(f"bits must be at least {FheType.EUINT32.bits}")
        self.protocol_id = protocol_id
        self.bits = bits
        self._modulus = 1 << bits
        self.verifier = verifier or InputVerifier.generate()
        self._values: Dict[str, int] = {}
        self._pending: Dict[str, Tuple[int, str, str]] = {}  # handle -> (value, contract, user)
        self._acl: Dict[str, List[str]] = {}
        self._acl_index: Set[Tuple[str, str]] = set()
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Client side
    # ------------------------------------------------------------------

    def encrypt_input(self, contract: str, user: str, *values: int,
                      fhe_type: FheType = FheType.EUINT32) -> EncryptedInput:
        """
        Encrypt plaintext values for submission to contract by user.

        Stands in for the client-side encryptor: mints one input handle per
        value and a single proof covering all of them, in order.

        Raises:
            InputDomainError: a value does not fit fhe_type
        """
        for v in values:
            if isinstance(v, bool) or not isinstance(v, int) or not 0 <= v <= fhe_type.max_value:
                raise InputDomainError(f"{v!r} is outside the {fhe_type.value} domain")

        externals = []
        with self._lock:
            for index, v in enumerate(values):
                hid = input_handle_id(
                    self.protocol_id, contract, user, index,
                    secrets.token_hex(16), fhe_type.value,
                )
                self._pending[hid] = (v, contract, user)
                externals.append(ExternalCiphertext(handle_id=hid, fhe_type=fhe_type))

        proof = self.verifier.sign(self.protocol_id, contract, user, [e.handle_id for e in externals])
        return EncryptedInput(handles=tuple(externals), proof=proof.to_bytes())

    # ------------------------------------------------------------------
    # ConfidentialBackend
    # ------------------------------------------------------------------

    def from_external(self, external, proof, contract, user):
        decoded = InputProof.from_bytes(proof)
        self.verifier.verify(decoded, self.protocol_id, contract, user)
        if external.handle_id not in decoded.handles:
            raise ProofVerificationError(f"input {external.hex()} is not covered by the proof")

        with self._lock:
            pending = self._pending.get(external.handle_id)
            if pending is None and external.handle_id not in self._values:
                raise ProofVerificationError(f"no ciphertext registered for {external.hex()}")
            if pending is not None:
                value, bound_contract, bound_user = pending
                if (bound_contract, bound_user) != (contract, user):
                    raise ProofVerificationError(f"input {external.hex()} was encrypted for another context")
                self._values[external.handle_id] = value
                del self._pending[external.handle_id]

        return CiphertextHandle(
            handle_id=external.handle_id,
            fhe_type=external.fhe_type,
            provenance=Provenance(op="input"),
        )

    def trivial_encrypt(self, value, fhe_type=FheType.EUINT32):
        if not 0 <= value <= fhe_type.max_value:
            raise InputDomainError(f"{value!r} is outside the {fhe_type.value} domain")
        return self._store("trivial", (), value, value, fhe_type)

    def add(self, lhs, rhs):
        return self._binary("add", lhs, rhs, lambda a, b: a + b)

    def sub(self, lhs, rhs):
        return self._binary("sub", lhs, rhs, lambda a, b: a - b)

    def mul(self, lhs, rhs):
        return self._binary("mul", lhs, rhs, lambda a, b: a * b)

    def div_by_constant(self, lhs, divisor):
        if isinstance(divisor, CiphertextHandle):
            raise UnsupportedOperationError("division by an encrypted divisor is not supported")
        if isinstance(divisor, bool) or not isinstance(divisor, int) or divisor <= 0:
            raise UnsupportedOperationError(f"divisor must be a positive plaintext int, got {divisor!r}")
        if not isinstance(lhs, CiphertextHandle):
            raise UnsupportedOperationError("dividend must be a ciphertext handle")
        value = self._value(lhs) // divisor
        return self._store("div", (lhs.handle_id,), divisor, value, lhs.fhe_type)

    def allow(self, handle, principal):
        key = (handle.handle_id, principal)
        with self._lock:
            if key in self._acl_index:
                return False
            self._acl_index.add(key)
            self._acl.setdefault(handle.handle_id, []).append(principal)
            return True

    def is_allowed(self, handle, principal):
        with self._lock:
            return (handle.handle_id, principal) in self._acl_index

    def allowed_principals(self, handle):
        with self._lock:
            return list(self._acl.get(handle.handle_id, []))

    def decrypt(self, handle, principal):
        if not self.is_allowed(handle, principal):
            raise AccessDeniedError(handle.handle_id, principal)
        return self._value(handle)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _value(self, handle: CiphertextHandle) -> int:
        with self._lock:
            try:
                return self._values[handle.handle_id]
            except KeyError:
                raise UnsupportedOperationError(f"unknown ciphertext {handle.hex()}") from None

    def _binary(self, op, lhs, rhs, fn):
        if not isinstance(lhs, CiphertextHandle):
            if isinstance(rhs, CiphertextHandle) and op != "sub":
                lhs, rhs = rhs, lhs
            elif isinstance(rhs, CiphertextHandle):
                # plaintext - ciphertext
                value = fn(lhs, self._value(rhs)) % self._modulus
                return self._store("rsub", (rhs.handle_id,), lhs, value, rhs.fhe_type)
            else:
                raise UnsupportedOperationError(f"{op} needs at least one ciphertext operand")

        if isinstance(rhs, CiphertextHandle):
            value = fn(self._value(lhs), self._value(rhs)) % self._modulus
            return self._store(op, (lhs.handle_id, rhs.handle_id), None, value, lhs.fhe_type)
        if isinstance(rhs, bool) or not isinstance(rhs, int):
            raise UnsupportedOperationError(f"{op} scalar must be a plaintext int, got {rhs!r}")
        value = fn(self._value(lhs), rhs) % self._modulus
        return self._store(op, (lhs.handle_id,), rhs, value, lhs.fhe_type)

    def _store(self, op, operands, scalar, value, fhe_type):
        hid = computed_handle_id(self.protocol_id, op, operands, scalar, fhe_type.value)
        with self._lock:
            self._values[hid] = value
        logger.debug("backend %s -> 0x%s", op, hid[:12])
        return CiphertextHandle(
            handle_id=hid,
            fhe_type=fhe_type,
            provenance=Provenance(op=op, operands=tuple(operands), scalar=scalar),
        )
