"""
Ledger wire schemas.

Mirror the JSON shapes returned by the InterlockLedger REST node.
The engine only reads these; the ledger owns and assigns every value.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


_LEDGER_MODEL_CONFIG = ConfigDict(
    frozen=True,
    extra="ignore",
    alias_generator=to_camel,
    populate_by_name=True,
)


class ChainInfo(BaseModel):
    """A chain as listed by the ledger."""

    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    description: Optional[str] = None
    last_record: Optional[int] = Field(
        None,
        description="Serial of the last record written to the chain",
    )

    model_config = _LEDGER_MODEL_CONFIG


class SubmissionReceipt(BaseModel):
    """Ledger answer to a successful submission."""

    serial: int = Field(..., ge=0)
    network: Optional[str] = None
    reference: Optional[str] = None

    model_config = _LEDGER_MODEL_CONFIG


class LedgerRecord(BaseModel):
    """
    A record fetched by (chain, serial).

    payload_bytes is kept exactly as the ledger returns it (base64 text).
    Decoding is a verification concern, so a corrupt payload surfaces as
    a verdict rather than as a transport failure.
    """

    serial: int = Field(..., ge=0)
    chain_id: Optional[str] = None
    payload_bytes: str = ""
    hash: str = Field(..., min_length=1, description="Ledger-assigned record hash")

    application_id: Optional[int] = None
    payload_tag_id: Optional[int] = None
    network: Optional[str] = None
    reference: Optional[str] = None
    created_at: Optional[str] = None
    type: Optional[str] = None
    version: Optional[int] = None

    model_config = _LEDGER_MODEL_CONFIG


class RecordPage(BaseModel):
    """One page of a chain's records, as paged by the ledger."""

    items: List[LedgerRecord] = Field(default_factory=list)
    page: int = Field(0, ge=0)
    page_size: int = Field(10, ge=1)
    total_number_of_pages: Optional[int] = None
    last_to_first: bool = False

    model_config = _LEDGER_MODEL_CONFIG
