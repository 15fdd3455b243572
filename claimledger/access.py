"""
Decryption capability propagation.

A grant lets one principal request decryption of one ciphertext handle.
Grants are additive and idempotent and are never revoked. The issuing
ledger always grants itself first so it can keep operating on handles it
stored in later calls.
"""

from dataclasses import dataclass
from typing import List

from .backend import ConfidentialBackend
from .handles import CiphertextHandle
from .logging_config import audit_log


@dataclass(frozen=True)
class AccessGrant:
    handle: CiphertextHandle
    principal: str


class AccessControlPropagator:
    """Records grants through the backend ACL on behalf of one issuer."""

    def __init__(self, backend: ConfidentialBackend, issuer: str):
        self._backend = backend
        self.issuer = issuer

    @staticmethod
    def check_principal(principal: str) -> None:
        """Raises ValueError for a principal that cannot hold a grant."""
        if not isinstance(principal, str) or not principal:
            raise ValueError("principal must be a non-empty string")

    def grant(self, handle: CiphertextHandle, principal: str) -> AccessGrant:
        self.check_principal(principal)
        if self._backend.allow(handle, principal):
            audit_log.access_granted(handle.hex(), principal)
        return AccessGrant(handle, principal)

    def propagate(self, handle: CiphertextHandle, *principals: str) -> List[AccessGrant]:
        """Grant the issuer, then each principal once, in order."""
        grants = [self.grant(handle, self.issuer)]
        seen = {self.issuer}
        for principal in principals:
            if principal in seen:
                continue
            seen.add(principal)
            grants.append(self.grant(handle, principal))
        return grants

    def is_allowed(self, handle: CiphertextHandle, principal: str) -> bool:
        return self._backend.is_allowed(handle, principal)

    def grants_for(self, handle: CiphertextHandle) -> List[str]:
        return self._backend.allowed_principals(handle)
