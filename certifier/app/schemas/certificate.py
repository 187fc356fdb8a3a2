"""
Certificate schema.

A certificate is durable, self-contained evidence that a document was
anchored on a given chain at a given serial. It is created once per
successful certification and persisted by the caller.

THIS SCHEMA IS A PUBLIC, FROZEN FILE CONTRACT.

The keys `dados`, `codigoVerificacao` and `documentoOriginal` are kept
from the certificates already issued in the field; verification by
certificate reads exactly those keys.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


CERTIFICATE_TITLE = "PROOF OF EXISTENCE CERTIFICATE - INTERLOCKLEDGER"
CERTIFICATE_VERSION = "2.0"


# ---------------------------------------------------------------------------
# Nested sections
# ---------------------------------------------------------------------------

class CertificateData(BaseModel):
    """Anchoring facts: where the record lives and what it fingerprints."""

    serial: int = Field(..., ge=0)
    chain_id: str = Field(..., min_length=1)
    chain_name: Optional[str] = None
    network: Optional[str] = None
    reference: Optional[str] = None

    document_hash: str = Field(
        ...,
        description="SHA-256 of the canonical original document (inner hash)",
    )
    envelope_hash: Optional[str] = Field(
        None,
        description="SHA-256 of the anchored envelope bytes (outer hash)",
    )
    record_hash: Optional[str] = Field(
        None,
        description="Ledger-assigned record hash; source of the code's hash8",
    )

    registered_at: Optional[datetime] = None
    verification_url: Optional[str] = None

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class CertificateInstructions(BaseModel):
    """Static human-readable guidance. Not security relevant."""

    title: str = "How to verify the authenticity of this document:"
    steps: List[str] = Field(
        default_factory=lambda: [
            "1. Open the verification portal",
            "2. Enter the verification code or the serial number",
            "3. Submit the original document for validation",
            "4. The document hash is compared with the one anchored on the ledger",
            "5. A match confirms the document is authentic and unaltered",
        ]
    )
    notes: List[str] = Field(
        default_factory=lambda: [
            "This certificate is a cryptographic proof of registration",
            "The document is permanently anchored on an InterlockLedger chain",
            "Any change to the original document produces a different hash",
        ]
    )

    model_config = ConfigDict(frozen=True, extra="ignore")


class DigitalFingerprint(BaseModel):
    algorithm: str = "SHA-256"
    hash: str
    ledger: str = "InterlockLedger (IL2)"
    network: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="ignore")


# ---------------------------------------------------------------------------
# Top-level certificate (PUBLIC, FROZEN CONTRACT)
# ---------------------------------------------------------------------------

class Certificate(BaseModel):
    title: str = CERTIFICATE_TITLE
    version: str = CERTIFICATE_VERSION

    issued_at: datetime = Field(..., alias="issuedAt")

    data: CertificateData = Field(..., alias="dados")

    verification_code: str = Field(
        ...,
        alias="codigoVerificacao",
        description="IL2-<serial>-<hash8>",
    )

    original_document: Dict[str, Any] = Field(..., alias="documentoOriginal")

    instructions: CertificateInstructions = Field(
        default_factory=CertificateInstructions,
        alias="instrucoes",
    )

    digital_fingerprint: Optional[DigitalFingerprint] = Field(
        None,
        alias="digitalFingerprint",
    )

    # ------------------------------------------------------------------
    # Read-only conveniences
    # ------------------------------------------------------------------

    @property
    def serial(self) -> int:
        return self.data.serial

    @property
    def chain_id(self) -> str:
        return self.data.chain_id

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready mapping in the persisted file shape."""
        return self.model_dump(mode="json", by_alias=True)

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )
