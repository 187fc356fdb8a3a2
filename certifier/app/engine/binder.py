"""
Hash binding of a document to the envelope anchored on the ledger.

Binding rule (applied symmetrically at certification and verification):

- The inner documentHash is SHA-256 over the canonical serialization of
  the caller document alone. It is embedded in the envelope and is the
  value verification recomputes.
- The outer envelopeHash is SHA-256 over the canonical envelope bytes,
  including registeredAt and source. It is never recomputed from a
  presented document because the verifier does not know the
  registration timestamp.
- Envelopes written by the earlier registration scripts hashed the
  document in key insertion order (compact, unsorted). legacy_document_hash
  reproduces that form for verifying those records only.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from certifier.app.errors import SerializationError
from certifier.app.schemas.binding import BindingResult, Envelope
from certifier.app.utils.hashing import canonicalize_json, compact_json, compute_sha256


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HashBinder:
    """
    Computes the content hash of a document and wraps it into an envelope.

    Pure apart from reading the clock; the clock is injectable so tests
    can pin registration time.
    """

    def __init__(
        self,
        *,
        source: str,
        schema_version: str,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._source = source
        self._schema_version = schema_version
        self._clock = clock

    def document_hash(self, document: Mapping[str, Any]) -> str:
        """Inner hash of a caller document."""
        return compute_sha256(canonicalize_json(_require_object(document)))

    def legacy_document_hash(self, document: Mapping[str, Any]) -> str:
        """Inner hash in the insertion-order form used by legacy envelopes."""
        return compute_sha256(compact_json(_require_object(document)))

    def bind(self, document: Mapping[str, Any]) -> BindingResult:
        document_hash = self.document_hash(document)

        # Round-trip through canonical JSON so the envelope holds plain
        # JSON values only (tuples become lists, and so on).
        envelope = Envelope(
            document=_as_json_object(document),
            document_hash=document_hash,
            registered_at=self._clock(),
            source=self._source,
            schema_version=self._schema_version,
        )

        envelope_bytes = canonicalize_json(envelope.to_wire())

        return BindingResult(
            envelope=envelope,
            envelope_bytes=envelope_bytes,
            envelope_hash=compute_sha256(envelope_bytes),
            document_hash=document_hash,
        )


def _require_object(document: Any) -> dict:
    if not isinstance(document, Mapping):
        raise SerializationError(
            f"Document must be a JSON object, got {type(document).__name__}"
        )
    return dict(document)


def _as_json_object(document: Mapping[str, Any]) -> dict:
    return json.loads(canonicalize_json(dict(document)))
