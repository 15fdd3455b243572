"""
Input proofs for client-encrypted ciphertexts.

An input proof is an Ed25519 signature by the backend's input verifier over
the canonical statement (protocol id, contract, user, ordered handle ids).
It binds freshly encrypted inputs to the one contract and user they were
encrypted for, so a ciphertext cannot be replayed into another ledger or
submitted on someone else's behalf.

Wire form: canonical JSON bytes {"handles": [...], "kid": ..., "sig_b64": ...}.
"""

import base64
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Tuple

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .errors import ProofVerificationError
from .hashing import canonicalize, proof_payload

DEFAULT_VERIFIER_KID = "input-verifier-01"


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode('ascii')


def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode('ascii'), validate=True)


@dataclass(frozen=True)
class InputProof:
    """Decoded input proof."""
    kid: str
    handles: Tuple[str, ...]
    sig_b64: str

    def to_bytes(self) -> bytes:
        return canonicalize({
            "kid": self.kid,
            "handles": list(self.handles),
            "sig_b64": self.sig_b64,
        })

    @classmethod
    def from_bytes(cls, raw: bytes) -> "InputProof":
        """Parse wire bytes; any malformation is a verification failure."""
        try:
            data = json.loads(raw.decode('utf-8'))
            kid = data["kid"]
            handles = tuple(str(h).lower() for h in data["handles"])
            sig_b64 = data["sig_b64"]
        except (UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
            raise ProofVerificationError(f"malformed input proof: {e}") from e
        if not isinstance(kid, str) or not isinstance(sig_b64, str):
            raise ProofVerificationError("malformed input proof: kid/sig_b64 must be strings")
        return cls(kid=kid, handles=handles, sig_b64=sig_b64)


class InputVerifier:
    """
    Signs and checks input proofs.

    Holds the verifier's Ed25519 signing key. In a real deployment only the
    verify half lives next to the ledger; the plaintext backend holds both.
    """

    def __init__(self, signing_key: SigningKey, kid: str = DEFAULT_VERIFIER_KID):
        self._sk = signing_key
        self._vk: VerifyKey = signing_key.verify_key
        self.kid = kid

    @classmethod
    def generate(cls, kid: str = DEFAULT_VERIFIER_KID) -> "InputVerifier":
        return cls(SigningKey.generate(), kid=kid)

    @classmethod
    def from_key_file(cls, path: str) -> "InputVerifier":
        """Load a key file written by save_key_file / `claimledger keygen`."""
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        return cls(SigningKey(b64d(raw["private_key_b64"])), kid=raw["kid"])

    def save_key_file(self, path: str) -> None:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump({
                "kid": self.kid,
                "private_key_b64": b64e(bytes(self._sk)),
                "public_key_b64": b64e(bytes(self._vk)),
            }, f, indent=2)

    @property
    def public_key_b64(self) -> str:
        return b64e(bytes(self._vk))

    def sign(
        self,
        protocol_id: int,
        contract: str,
        user: str,
        handle_ids: Iterable[str],
    ) -> InputProof:
        handles = tuple(handle_ids)
        payload = canonicalize(proof_payload(protocol_id, contract, user, handles))
        sig = self._sk.sign(payload).signature
        return InputProof(kid=self.kid, handles=handles, sig_b64=b64e(sig))

    def verify(
        self,
        proof: InputProof,
        protocol_id: int,
        contract: str,
        user: str,
    ) -> None:
        """
        Check that proof was issued for (protocol_id, contract, user).

        Raises:
            ProofVerificationError: unknown key id or invalid signature
        """
        if proof.kid != self.kid:
            raise ProofVerificationError(f"unknown input verifier key: {proof.kid}")
        payload = canonicalize(proof_payload(protocol_id, contract, user, proof.handles))
        try:
            self._vk.verify(payload, b64d(proof.sig_b64))
        except (BadSignatureError, ValueError) as e:
            raise ProofVerificationError("input proof signature does not verify") from e

    def describe(self) -> Dict[str, Any]:
        return {"kid": self.kid, "algorithm": "Ed25519", "public_key_b64": self.public_key_b64}
