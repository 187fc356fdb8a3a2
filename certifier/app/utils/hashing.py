"""
Cryptographic primitives for content integrity.

Current scope:
- Canonical JSON serialization of documents and envelopes
- Compact insertion-order serialization for records written by the
  earlier registration scripts
- Deterministic SHA-256 hashing of serialized bytes

IMPORTANT DESIGN RULE:
- Certification and verification MUST use the same serialization for a
  given envelope layout.
- compute_sha256 hashes bytes, and bytes only.
"""

import hashlib
import json
from typing import Any, Union

from certifier.app.errors import SerializationError


def _dumps(value: Any, *, sort_keys: bool) -> bytes:
    try:
        text = json.dumps(
            value,
            sort_keys=sort_keys,
            ensure_ascii=False,
            separators=(",", ":"),
            allow_nan=False,
        )
    except (TypeError, ValueError, RecursionError) as exc:
        raise SerializationError(
            f"Document is not JSON-serializable: {exc}"
        ) from exc

    return text.encode("utf-8")


def canonicalize_json(value: Any) -> bytes:
    """
    Serialize a JSON-compatible value to canonical UTF-8 bytes.

    Keys are sorted, separators carry no whitespace and non-ASCII text is
    kept verbatim. NaN and Infinity are rejected because they have no JSON
    representation.

    Raises:
        SerializationError: cyclic references, non-string keys, or values
            of unsupported types.
    """
    return _dumps(value, sort_keys=True)


def compact_json(value: Any) -> bytes:
    """
    Serialize keeping key insertion order, with no whitespace.

    Matches the byte form the earlier registration scripts hashed for
    `hashDocumento`. Used only to verify records in that layout.
    """
    return _dumps(value, sort_keys=False)


def compute_sha256(canonical_bytes: Union[bytes, bytearray]) -> str:
    """
    Compute a lowercase hex SHA-256 digest.

    Input MUST already be serialized.
    """
    if not isinstance(canonical_bytes, (bytes, bytearray)):
        raise TypeError(
            "compute_sha256 expects canonical bytes, "
            f"got {type(canonical_bytes).__name__}"
        )

    return hashlib.sha256(canonical_bytes).hexdigest()
