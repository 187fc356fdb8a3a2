"""
Envelope and binding schemas.

The envelope is the unit actually anchored on the ledger. It carries two
hashes with different jobs:

- documentHash (inner): SHA-256 of the canonical caller document. Stored
  inside the envelope and independently reproducible by any verifier.
- envelopeHash (outer): SHA-256 of the exact envelope bytes submitted.
  Fingerprints one anchoring event; the same document registered twice
  yields two different envelope hashes.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

_SHA256_HEX = re.compile(r"[0-9a-fA-F]{64}")


class Envelope(BaseModel):
    """
    Document plus registration metadata.

    Immutable once created. Records written by the earlier registration
    scripts kept the document fields at top level and used
    `hashDocumento` and `timestampRegistro` (or `timestamp`); those
    shapes are accepted when reading an envelope back from the ledger.

    Those scripts hashed the document in key insertion order rather than
    canonically, so such envelopes are flagged with `legacy_layout` and
    verified with the matching serialization.
    """

    document: Optional[Dict[str, Any]] = None

    document_hash: str = Field(
        ...,
        validation_alias=AliasChoices("documentHash", "hashDocumento"),
        serialization_alias="documentHash",
    )

    registered_at: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("registeredAt", "timestampRegistro", "timestamp"),
        serialization_alias="registeredAt",
    )

    source: Optional[str] = None

    schema_version: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("schemaVersion", "version"),
        serialization_alias="schemaVersion",
    )

    legacy_layout: bool = Field(False, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def detect_legacy_layout(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "legacy_layout" in data:
            return data
        legacy_hash_key = "hashDocumento" in data and not (
            "documentHash" in data or "document_hash" in data
        )
        return {
            **data,
            "legacy_layout": legacy_hash_key or data.get("document") is None,
        }

    @field_validator("document_hash")
    @classmethod
    def normalize_document_hash(cls, v: str) -> str:
        if not _SHA256_HEX.fullmatch(v):
            raise ValueError("documentHash must be a 64-character hex SHA-256 digest")
        return v.lower()

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready mapping with the camelCase keys written to the ledger."""
        return self.model_dump(mode="json", by_alias=True)

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )


class BindingResult(BaseModel):
    """Output of HashBinder.bind: the envelope, its bytes and both hashes."""

    envelope: Envelope
    envelope_bytes: bytes = Field(
        ...,
        description="Canonical UTF-8 JSON submitted to the ledger, byte for byte",
    )
    envelope_hash: str
    document_hash: str

    model_config = ConfigDict(frozen=True)
