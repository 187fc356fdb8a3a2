"""
Certification coordinator.

The two operations the request layer needs:

    certify(document, chain_id=None) -> Certificate
    verify(target, document)         -> VerificationResult

plus read-only ledger browsing (list_chains, list_records, fetch_record).

Certification flow:
    1. HashBinder: envelope + inner/outer hashes
    2. Resolve the target chain (explicit or configured default)
    3. LedgerGateway.submit: anchor the envelope bytes
    4. LedgerGateway.fetch_record: read back the ledger record hash
    5. CertificateBuilder: assemble the certificate

There is no retry at any step. If submit fails the attempt is over and
nothing is kept; if a caller retries after an ambiguous failure the
document may be anchored twice, and deciding that is the caller's job.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Tuple, Union

from certifier.app.config import Settings
from certifier.app.engine.binder import HashBinder
from certifier.app.engine.certificate import CertificateBuilder
from certifier.app.engine.verification import VerificationEngine
from certifier.app.errors import LedgerTransportError, SubmissionError, UnknownChainError
from certifier.app.ledger.gateway import LedgerGateway
from certifier.app.schemas.certificate import Certificate
from certifier.app.schemas.ledger import ChainInfo, LedgerRecord, RecordPage
from certifier.app.schemas.verification import VerificationResult

logger = logging.getLogger(__name__)

VerificationTarget = Union[int, str, Certificate, Mapping[str, Any]]


class CertifierCoordinator:
    def __init__(
        self,
        *,
        gateway: LedgerGateway,
        default_chain_id: str,
        binder: HashBinder,
        builder: Optional[CertificateBuilder] = None,
        engine: Optional[VerificationEngine] = None,
    ) -> None:
        """
        Direct constructor.

        Intended for tests and explicit wiring. The default chain is an
        immutable construction parameter.
        """
        self._gateway = gateway
        self._default_chain_id = default_chain_id
        self._binder = binder
        self._builder = builder or CertificateBuilder()
        self._engine = engine or VerificationEngine(gateway, binder)

    # ------------------------------------------------------------------
    # Integration constructor (composition root)
    # ------------------------------------------------------------------

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        gateway: LedgerGateway,
    ) -> "CertifierCoordinator":
        binder = HashBinder(
            source=settings.envelope_source,
            schema_version=settings.envelope_schema_version,
        )
        return cls(
            gateway=gateway,
            default_chain_id=settings.default_chain_id,
            binder=binder,
            builder=CertificateBuilder(
                ledger_base_url=str(settings.ledger_base_url),
            ),
        )

    @property
    def default_chain_id(self) -> str:
        return self._default_chain_id

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def list_chains(self) -> List[ChainInfo]:
        return await self._gateway.list_chains()

    async def list_records(
        self,
        chain_id: Optional[str] = None,
        *,
        page: int = 0,
        page_size: int = 10,
    ) -> Tuple[str, RecordPage]:
        """
        One page of a chain's records.

        Without a chain id the first chain the ledger lists is used.
        """
        if chain_id is None:
            chains = await self._gateway.list_chains()
            if not chains:
                raise LedgerTransportError("Ledger lists no chains")
            chain_id = chains[0].id

        records = await self._gateway.list_records(
            chain_id, page=page, page_size=page_size
        )
        return chain_id, records

    async def fetch_record(self, chain_id: str, serial: int) -> Optional[LedgerRecord]:
        return await self._gateway.fetch_record(chain_id, serial)

    async def certify(
        self,
        document: Mapping[str, Any],
        chain_id: Optional[str] = None,
    ) -> Certificate:
        target_chain_id = chain_id or self._default_chain_id

        # Binding first: an unserializable document never reaches the ledger.
        binding = self._binder.bind(document)

        chain = await self._resolve_chain(target_chain_id)

        logger.info(
            "certification_submitting",
            extra={
                "chain_id": chain.id,
                "document_hash": binding.document_hash,
                "envelope_hash": binding.envelope_hash,
            },
        )

        receipt = await self._gateway.submit(chain.id, binding.envelope_bytes)

        record = await self._gateway.fetch_record(chain.id, receipt.serial)
        if record is None:
            raise SubmissionError(
                f"Record {chain.id}/{receipt.serial} is not readable after "
                "submission; the anchoring may still have succeeded"
            )

        certificate = self._builder.build(binding, receipt, chain, record)

        logger.info(
            "certification_completed",
            extra={
                "chain_id": chain.id,
                "serial": receipt.serial,
                "verification_code": certificate.verification_code,
            },
        )
        return certificate

    async def verify(
        self,
        target: VerificationTarget,
        document: Mapping[str, Any],
        *,
        chain_id: Optional[str] = None,
    ) -> VerificationResult:
        """
        Dispatch on the kind of reference the caller holds.

        int -> serial (optionally scoped by chain_id), str -> verification
        code, Certificate or mapping -> certificate.
        """
        if isinstance(target, bool):
            raise TypeError("verification target must not be a bool")

        if isinstance(target, int):
            return await self._engine.verify_by_serial(
                target, document, chain_id=chain_id
            )

        if isinstance(target, str):
            return await self._engine.verify_by_code(target, document)

        if isinstance(target, (Certificate, Mapping)):
            return await self._engine.verify_by_certificate(target, document)

        raise TypeError(
            f"Unsupported verification target type {type(target).__name__}"
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _resolve_chain(self, chain_id: str) -> ChainInfo:
        chains = await self._gateway.list_chains()
        for chain in chains:
            if chain.id == chain_id:
                return chain
        raise UnknownChainError(chain_id)
