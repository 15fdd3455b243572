"""
Ciphertext handles.

A handle is an opaque reference to an encrypted value held by the
confidential-compute backend. It never carries plaintext. Two handles are
equal only when they reference the same ciphertext (same handle_id); two
encryptions of the same value are different handles.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

HANDLE_HEX_LENGTH = 64


class FheType(str, Enum):
    """Encrypted integer types understood by the ledger."""
    EUINT32 = "euint32"

    @property
    def bits(self) -> int:
        return 32

    @property
    def max_value(self) -> int:
        return (1 << self.bits) - 1


@dataclass(frozen=True)
class Provenance:
    """How a handle came to exist: an operation over operand handles."""
    op: str
    operands: Tuple[str, ...] = ()
    scalar: Optional[int] = None


@dataclass(frozen=True)
class CiphertextHandle:
    """
    Opaque reference to a ciphertext.

    Equality and hashing use handle_id only. Provenance is informational:
    handles reloaded from storage carry none.
    """
    handle_id: str
    fhe_type: FheType = FheType.EUINT32
    provenance: Optional[Provenance] = field(default=None, compare=False, hash=False)

    def __post_init__(self):
        hid = self.handle_id.lower()
        if len(hid) != HANDLE_HEX_LENGTH or any(c not in "0123456789abcdef" for c in hid):
            raise ValueError(f"handle_id must be {HANDLE_HEX_LENGTH} hex characters")
        object.__setattr__(self, "handle_id", hid)

    @classmethod
    def from_hex(cls, value: str, fhe_type: FheType = FheType.EUINT32) -> "CiphertextHandle":
        """Parse '0x'-prefixed or bare hex into a handle (no provenance)."""
        if value.startswith(("0x", "0X")):
            value = value[2:]
        return cls(handle_id=value, fhe_type=fhe_type)

    def hex(self) -> str:
        return "0x" + self.handle_id

    def __str__(self) -> str:
        return self.hex()


@dataclass(frozen=True)
class ExternalCiphertext:
    """
    Client-encrypted input as submitted to the ledger.

    Not usable in arithmetic until the backend has verified it against its
    input proof (ConfidentialBackend.from_external).
    """
    handle_id: str
    fhe_type: FheType = FheType.EUINT32

    @classmethod
    def from_hex(cls, value: str, fhe_type: FheType = FheType.EUINT32) -> "ExternalCiphertext":
        if value.startswith(("0x", "0X")):
            value = value[2:]
        return cls(handle_id=value.lower(), fhe_type=fhe_type)

    def hex(self) -> str:
        return "0x" + self.handle_id
