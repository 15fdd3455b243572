"""
Canonical encoding and handle derivation.

Handles and input proofs are addressed by SHA-256 over a canonical JSON
encoding: sorted keys, compact separators, UTF-8, no BOM.
"""

import hashlib
import json
from typing import Any, Dict, Iterable, Optional, Union


def canonicalize(obj: Any) -> bytes:
    """
    Encode an object as canonical JSON bytes.

    Only JSON-native types are accepted (dict keys must be str). Tuples are
    encoded as arrays; anything else raises ValueError so that two
    semantically equal payloads can never hash differently.
    """
    return json.dumps(
        _canonical_value(obj),
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=False,
    ).encode('utf-8')


def _canonical_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, dict):
        for key in value:
            if not isinstance(key, str):
                raise ValueError(f"Cannot canonicalize non-string key: {key!r}")
        return {k: _canonical_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical_value(v) for v in value]
    raise ValueError(f"Cannot canonicalize type: {type(value)}")


def sha256_hex(data: Union[bytes, str]) -> str:
    """SHA-256 as lowercase hex (no prefix)."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def digest_of(obj: Any) -> str:
    """SHA-256 of the canonical encoding of obj."""
    return sha256_hex(canonicalize(obj))


def input_handle_id(
    protocol_id: int,
    contract: str,
    user: str,
    index: int,
    randomness: str,
    fhe_type: str,
) -> str:
    """
    Handle id for a freshly encrypted client input.

    The encryption randomness is part of the preimage, so encrypting the same
    value twice never yields the same handle.
    """
    return digest_of({
        "kind": "input",
        "protocol_id": protocol_id,
        "contract": contract,
        "user": user,
        "index": index,
        "randomness": randomness,
        "fhe_type": fhe_type,
    })


def computed_handle_id(
    protocol_id: int,
    op: str,
    operands: Iterable[str],
    scalar: Optional[int],
    fhe_type: str,
) -> str:
    """
    Handle id for the result of a homomorphic operation.

    Fully determined by the operation and its inputs: recomputing the same
    expression over the same handles yields the same handle.
    """
    return digest_of({
        "kind": "computed",
        "protocol_id": protocol_id,
        "op": op,
        "operands": list(operands),
        "scalar": scalar,
        "fhe_type": fhe_type,
    })


def proof_payload(
    protocol_id: int,
    contract: str,
    user: str,
    handle_ids: Iterable[str],
) -> Dict[str, Any]:
    """The statement an input proof signs."""
    return {
        "protocol_id": protocol_id,
        "contract": contract,
        "user": user,
        "handles": list(handle_ids),
    }
