"""
Verification protocol.

Three entry points converge on verify_by_serial:

    verify_by_code         decode IL2-<serial>-<hash8>, then by serial
    verify_by_certificate  read serial / chain / code, then by serial
    verify_by_serial       locate -> spot-check hash8 -> decode payload
                           -> compare inner document hashes

Envelopes in the legacy layout carry a hash over the document in key
insertion order; the presented document is re-hashed the same way.

Chain search policy when no chain is given: chains are tried in the
order the ledger lists them and the first chain holding the serial wins.
That order is not guaranteed stable by the ledger, so callers that need
precision must keep the chain id alongside the code.

Failure policy:
    Domain outcomes (not found, code mismatch, document mismatch, bad
    code, undecodable payload, malformed certificate) are returned as
    VerificationResult. Transport failures raise LedgerTransportError and
    an unserializable presented document raises SerializationError.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from certifier.app.engine.binder import HashBinder
from certifier.app.engine.codes import HASH8_LENGTH, CodeCodec
from certifier.app.errors import InvalidCodeFormat, PayloadDecodeError
from certifier.app.ledger.gateway import LedgerGateway
from certifier.app.schemas.binding import Envelope
from certifier.app.schemas.certificate import Certificate
from certifier.app.schemas.ledger import LedgerRecord
from certifier.app.schemas.verification import (
    RecordMetadata,
    VerificationOutcome,
    VerificationResult,
)
from certifier.app.utils.hashing import compute_sha256

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Payload decoding
# ----------------------------------------------------------------------

def decode_payload(payload_b64: str) -> Tuple[Envelope, bytes]:
    """
    Decode a ledger payload into the envelope it carries.

    Returns the envelope and the raw payload bytes.

    Raises:
        PayloadDecodeError: not base64, not UTF-8, not a JSON object, or
            not an envelope written by this engine (no document hash).
    """
    try:
        raw = base64.b64decode(payload_b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PayloadDecodeError(f"payload is not valid base64: {exc}") from exc

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise PayloadDecodeError(f"payload is not UTF-8: {exc}") from exc

    try:
        data = json.loads(text)
    except ValueError as exc:
        raise PayloadDecodeError(f"payload is not JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise PayloadDecodeError("payload is not a JSON object")

    try:
        envelope = Envelope.model_validate(data)
    except ValidationError as exc:
        raise PayloadDecodeError(
            f"payload is not a certification envelope: {exc.error_count()} error(s)"
        ) from exc

    return envelope, raw


def _elapsed_since(registered_at: Optional[datetime], now: datetime) -> Optional[timedelta]:
    if registered_at is None:
        return None
    if registered_at.tzinfo is None:
        registered_at = registered_at.replace(tzinfo=timezone.utc)
    return now - registered_at


# ----------------------------------------------------------------------
# Engine
# ----------------------------------------------------------------------

class VerificationEngine:
    """
    Stateless verifier over a read-only ledger view.

    Safe to share across concurrent requests: nothing is cached and
    nothing is mutated between calls.
    """

    def __init__(self, gateway: LedgerGateway, binder: HashBinder) -> None:
        self._gateway = gateway
        self._binder = binder

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def verify_by_code(
        self,
        code: str,
        document: Mapping[str, Any],
    ) -> VerificationResult:
        try:
            decoded = CodeCodec.decode(code)
        except InvalidCodeFormat as exc:
            logger.info("verification_invalid_code", extra={"reason": exc.reason})
            return VerificationResult(
                valid=False,
                outcome=VerificationOutcome.INVALID_CODE_FORMAT,
                error=str(exc),
            )

        return await self.verify_by_serial(
            decoded.serial,
            document,
            expected_hash8=decoded.hash8,
        )

    async def verify_by_certificate(
        self,
        certificate: Union[Certificate, Mapping[str, Any]],
        document: Mapping[str, Any],
    ) -> VerificationResult:
        if not isinstance(certificate, Certificate):
            try:
                certificate = Certificate.model_validate(certificate)
            except ValidationError as exc:
                return VerificationResult(
                    valid=False,
                    outcome=VerificationOutcome.INVALID_CERTIFICATE,
                    error=f"certificate is malformed: {exc.error_count()} error(s)",
                )

        try:
            decoded = CodeCodec.decode(certificate.verification_code)
        except InvalidCodeFormat as exc:
            return VerificationResult(
                valid=False,
                outcome=VerificationOutcome.INVALID_CODE_FORMAT,
                error=str(exc),
                serial=certificate.serial,
                chain_id=certificate.chain_id,
            )

        if decoded.serial != certificate.serial:
            return VerificationResult(
                valid=False,
                outcome=VerificationOutcome.INVALID_CERTIFICATE,
                error=(
                    f"verification code serial {decoded.serial} does not match "
                    f"certificate serial {certificate.serial}"
                ),
                serial=certificate.serial,
                chain_id=certificate.chain_id,
            )

        return await self.verify_by_serial(
            certificate.serial,
            document,
            chain_id=certificate.chain_id,
            expected_hash8=decoded.hash8,
        )

    async def verify_by_serial(
        self,
        serial: int,
        document: Mapping[str, Any],
        chain_id: Optional[str] = None,
        expected_hash8: Optional[str] = None,
    ) -> VerificationResult:
        # Computed first so an unusable document fails before any ledger call.
        provided_hash = self._binder.document_hash(document)

        # ------------------------------------------------------------------
        # 1-2. Locate the record
        # ------------------------------------------------------------------
        located = await self._locate(serial, chain_id)

        if located is None:
            logger.info(
                "verification_record_not_found",
                extra={"serial": serial, "chain_id": chain_id},
            )
            return VerificationResult(
                valid=False,
                outcome=VerificationOutcome.RECORD_NOT_FOUND,
                error="record not found",
                serial=serial,
                chain_id=chain_id,
                provided_document_hash=provided_hash,
            )

        found_chain_id, record = located

        # ------------------------------------------------------------------
        # 3. Spot-check the code against the ledger record hash
        # ------------------------------------------------------------------
        if expected_hash8 is not None:
            actual_hash8 = record.hash[:HASH8_LENGTH]
            if actual_hash8.lower() != expected_hash8.lower():
                logger.info(
                    "verification_code_mismatch",
                    extra={"serial": serial, "chain_id": found_chain_id},
                )
                return VerificationResult(
                    valid=False,
                    outcome=VerificationOutcome.CODE_MISMATCH,
                    error="hash mismatch",
                    serial=serial,
                    chain_id=found_chain_id,
                    record_hash=record.hash,
                    provided_document_hash=provided_hash,
                    metadata=self._metadata(record),
                )

        # ------------------------------------------------------------------
        # 4. Decode the anchored envelope
        # ------------------------------------------------------------------
        try:
            envelope, payload = decode_payload(record.payload_bytes)
        except PayloadDecodeError as exc:
            logger.warning(
                "verification_payload_undecodable",
                extra={"serial": serial, "chain_id": found_chain_id},
            )
            return VerificationResult(
                valid=False,
                outcome=VerificationOutcome.PAYLOAD_DECODE_ERROR,
                error=str(exc),
                serial=serial,
                chain_id=found_chain_id,
                record_hash=record.hash,
                provided_document_hash=provided_hash,
                metadata=self._metadata(record),
            )

        # ------------------------------------------------------------------
        # 5-6. Compare inner document hashes
        # ------------------------------------------------------------------
        if envelope.legacy_layout:
            provided_hash = self._binder.legacy_document_hash(document)

        anchored_hash = envelope.document_hash
        hashes_match = provided_hash.lower() == anchored_hash.lower()

        now = datetime.now(timezone.utc)

        result = VerificationResult(
            valid=hashes_match,
            outcome=(
                VerificationOutcome.AUTHENTIC
                if hashes_match
                else VerificationOutcome.DOCUMENT_MISMATCH
            ),
            error=None if hashes_match else "document hash mismatch",
            serial=serial,
            chain_id=found_chain_id,
            record_hash=record.hash,
            provided_document_hash=provided_hash,
            anchored_document_hash=anchored_hash,
            hashes_match=hashes_match,
            registered_at=envelope.registered_at,
            verified_at=now,
            elapsed_since_registration=_elapsed_since(envelope.registered_at, now),
            metadata=self._metadata(record, envelope=envelope, payload=payload),
        )

        logger.info(
            "verification_completed",
            extra={
                "serial": serial,
                "chain_id": found_chain_id,
                "outcome": result.outcome.value,
            },
        )
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _locate(
        self,
        serial: int,
        chain_id: Optional[str],
    ) -> Optional[Tuple[str, LedgerRecord]]:
        if serial < 0:
            return None

        if chain_id is not None:
            record = await self._gateway.fetch_record(chain_id, serial)
            return (chain_id, record) if record is not None else None

        chains = await self._gateway.list_chains()
        for chain in chains:
            record = await self._gateway.fetch_record(chain.id, serial)
            if record is not None:
                logger.debug(
                    "verification_chain_resolved",
                    extra={"serial": serial, "chain_id": chain.id},
                )
                return chain.id, record

        return None

    @staticmethod
    def _metadata(
        record: LedgerRecord,
        *,
        envelope: Optional[Envelope] = None,
        payload: Optional[bytes] = None,
    ) -> RecordMetadata:
        return RecordMetadata(
            application_id=record.application_id,
            payload_tag_id=record.payload_tag_id,
            network=record.network,
            reference=record.reference,
            created_at=record.created_at,
            type=record.type,
            version=record.version,
            envelope_hash=compute_sha256(payload) if payload is not None else None,
            source=envelope.source if envelope is not None else None,
            schema_version=envelope.schema_version if envelope is not None else None,
        )
