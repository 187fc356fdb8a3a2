"""
Certificate assembly.

Turns a successful anchoring into a self-contained Certificate. The
builder is deterministic for given inputs apart from issuedAt, and has
no side effects: persistence belongs to the caller.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from certifier.app.engine.codes import CodeCodec
from certifier.app.schemas.binding import BindingResult
from certifier.app.schemas.certificate import (
    Certificate,
    CertificateData,
    DigitalFingerprint,
)
from certifier.app.schemas.ledger import ChainInfo, LedgerRecord, SubmissionReceipt


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CertificateBuilder:
    def __init__(
        self,
        *,
        ledger_base_url: Optional[str] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._ledger_base_url = (
            ledger_base_url.rstrip("/") if ledger_base_url else None
        )
        self._clock = clock

    def build(
        self,
        binding: BindingResult,
        receipt: SubmissionReceipt,
        chain: ChainInfo,
        record: LedgerRecord,
    ) -> Certificate:
        """
        Assemble the certificate.

        `record` is the freshly anchored record read back from the ledger;
        its hash seeds the verification code.
        """
        network = receipt.network or record.network
        reference = receipt.reference or record.reference

        data = CertificateData(
            serial=receipt.serial,
            chain_id=chain.id,
            chain_name=chain.name,
            network=network,
            reference=reference,
            document_hash=binding.document_hash,
            envelope_hash=binding.envelope_hash,
            record_hash=record.hash,
            registered_at=binding.envelope.registered_at,
            verification_url=self._verification_url(chain.id, receipt.serial),
        )

        return Certificate(
            issued_at=self._clock(),
            data=data,
            verification_code=CodeCodec.encode(receipt.serial, record.hash),
            original_document=binding.envelope.document or {},
            digital_fingerprint=DigitalFingerprint(
                hash=binding.document_hash,
                network=network,
            ),
        )

    def _verification_url(self, chain_id: str, serial: int) -> Optional[str]:
        if self._ledger_base_url is None:
            return None
        return f"{self._ledger_base_url}/records@{chain_id}/{serial}"
