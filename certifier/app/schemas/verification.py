"""
VerificationResult schema.

Produced fresh on every verification call and never persisted by the
engine. Every verification path returns one of these, including the
"not found", "bad code" and "mismatch" outcomes: a document that is not
authentic is an expected result, not a system fault.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Enumerations (FROZEN CONTRACTS)
# ---------------------------------------------------------------------------

class VerificationOutcome(str, Enum):
    """Which terminal branch of the verification protocol was reached."""

    AUTHENTIC = "authentic"
    DOCUMENT_MISMATCH = "document_mismatch"
    CODE_MISMATCH = "code_mismatch"
    RECORD_NOT_FOUND = "record_not_found"
    INVALID_CODE_FORMAT = "invalid_code_format"
    PAYLOAD_DECODE_ERROR = "payload_decode_error"
    INVALID_CERTIFICATE = "invalid_certificate"


class Verdict(str, Enum):
    """User-facing rendering bucket."""

    AUTHENTIC = "authentic"
    NOT_AUTHENTIC = "not_authentic"
    ERROR = "error"


_VERDICT_BY_OUTCOME = {
    VerificationOutcome.AUTHENTIC: Verdict.AUTHENTIC,
    VerificationOutcome.DOCUMENT_MISMATCH: Verdict.NOT_AUTHENTIC,
    VerificationOutcome.CODE_MISMATCH: Verdict.NOT_AUTHENTIC,
    VerificationOutcome.RECORD_NOT_FOUND: Verdict.NOT_AUTHENTIC,
    VerificationOutcome.INVALID_CODE_FORMAT: Verdict.ERROR,
    VerificationOutcome.PAYLOAD_DECODE_ERROR: Verdict.ERROR,
    VerificationOutcome.INVALID_CERTIFICATE: Verdict.ERROR,
}


_CAMEL_CONFIG = ConfigDict(
    frozen=True,
    extra="forbid",
    alias_generator=to_camel,
    populate_by_name=True,
)


# ---------------------------------------------------------------------------
# Supporting metadata
# ---------------------------------------------------------------------------

class RecordMetadata(BaseModel):
    """Ledger-side and envelope-side facts about the located record."""

    application_id: Optional[int] = None
    payload_tag_id: Optional[int] = None
    network: Optional[str] = None
    reference: Optional[str] = None
    created_at: Optional[str] = None
    type: Optional[str] = None
    version: Optional[int] = None

    envelope_hash: Optional[str] = Field(
        None,
        description="SHA-256 of the payload bytes as returned by the ledger",
    )
    source: Optional[str] = None
    schema_version: Optional[str] = None

    model_config = _CAMEL_CONFIG


# ---------------------------------------------------------------------------
# Result (PUBLIC, FROZEN CONTRACT)
# ---------------------------------------------------------------------------

class VerificationResult(BaseModel):
    valid: bool
    outcome: VerificationOutcome
    error: Optional[str] = None

    serial: Optional[int] = None
    chain_id: Optional[str] = None
    record_hash: Optional[str] = None

    provided_document_hash: Optional[str] = None
    anchored_document_hash: Optional[str] = None
    hashes_match: bool = False

    registered_at: Optional[datetime] = None
    verified_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    elapsed_since_registration: Optional[timedelta] = None

    metadata: Optional[RecordMetadata] = None

    @model_validator(mode="after")
    def enforce_verdict_invariants(self):
        """
        - valid is true exactly when the outcome is AUTHENTIC
        - an authentic result always carries matching hashes
        """
        if self.valid != (self.outcome == VerificationOutcome.AUTHENTIC):
            raise ValueError(
                "valid must be true if and only if outcome is 'authentic'"
            )
        if self.valid and not self.hashes_match:
            raise ValueError("an authentic result requires hashes_match")
        return self

    @computed_field
    @property
    def verdict(self) -> Verdict:
        return _VERDICT_BY_OUTCOME[self.outcome]

    model_config = _CAMEL_CONFIG


# ---------------------------------------------------------------------------
# Report (persisted on request)
# ---------------------------------------------------------------------------

REPORT_TITLE = "DOCUMENT AUTHENTICITY VERIFICATION REPORT"


class ReportResult(str, Enum):
    AUTHENTIC = "AUTHENTIC"
    NOT_AUTHENTIC = "NOT AUTHENTIC"


class VerificationReport(BaseModel):
    """
    Human-readable wrapper around one VerificationResult.

    Anything short of an authentic outcome, including error verdicts, is
    reported as NOT AUTHENTIC.
    """

    title: str = REPORT_TITLE
    verified_at: datetime
    result: ReportResult
    details: VerificationResult

    @classmethod
    def from_result(cls, result: VerificationResult) -> "VerificationReport":
        return cls(
            verified_at=result.verified_at,
            result=ReportResult.AUTHENTIC if result.valid else ReportResult.NOT_AUTHENTIC,
            details=result,
        )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    model_config = _CAMEL_CONFIG
