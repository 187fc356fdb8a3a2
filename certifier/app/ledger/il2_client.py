"""
InterlockLedger (IL2) REST client.

Implements the LedgerGateway contract over a shared httpx.AsyncClient.
One fixed set of endpoints is used; the client fails fast rather than
probing alternative request shapes.

Endpoints:
    GET  /chain                       list chains
    POST /jsonDocuments@{chainId}     anchor an envelope (UTF-8 JSON body)
    GET  /records@{chainId}/{serial}  fetch a record (base64 payloadBytes)
    GET  /records@{chainId}           page through a chain (page, pageSize)
"""

import logging
import secrets
import ssl
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12
from pydantic import ValidationError

from certifier.app.config import Settings
from certifier.app.errors import (
    ClientCertificateError,
    LedgerTransportError,
    SubmissionError,
)
from certifier.app.schemas.ledger import (
    ChainInfo,
    LedgerRecord,
    RecordPage,
    SubmissionReceipt,
)

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Transport construction
# ----------------------------------------------------------------------

def _load_pkcs12(
    context: ssl.SSLContext,
    pfx_path: Path,
    password: Optional[str],
) -> None:
    """
    Load a PKCS#12 bundle into the context.

    ssl only reads PEM files, so the bundle is re-serialized into a
    private temporary directory. The key is written encrypted under a
    one-off passphrase and the directory is removed once loaded.
    """
    try:
        key, certificate, additional = pkcs12.load_key_and_certificates(
            Path(pfx_path).read_bytes(),
            password.encode("utf-8") if password else None,
        )
    except (OSError, ValueError) as exc:
        raise ClientCertificateError(
            f"Failed to load PKCS#12 client bundle: {exc}"
        ) from exc

    if key is None or certificate is None:
        raise ClientCertificateError(
            "PKCS#12 client bundle must hold both a certificate and its private key"
        )

    passphrase = secrets.token_hex(32).encode("ascii")
    chain = [certificate, *additional]

    with tempfile.TemporaryDirectory(prefix="il2-client-") as tmp:
        cert_file = Path(tmp) / "client.pem"
        key_file = Path(tmp) / "client.key"

        cert_file.write_bytes(
            b"".join(c.public_bytes(serialization.Encoding.PEM) for c in chain)
        )
        key_file.write_bytes(
            key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.BestAvailableEncryption(passphrase),
            )
        )

        context.load_cert_chain(
            certfile=str(cert_file),
            keyfile=str(key_file),
            password=passphrase,
        )


def build_ssl_context(settings: Settings) -> ssl.SSLContext:
    """
    TLS context for the ledger node.

    Loads the client certificate when configured, either as a PEM
    certificate and key or as a PKCS#12 bundle. Server verification
    follows settings.verify_tls.
    """
    context = ssl.create_default_context()

    if not settings.verify_tls:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    if settings.client_cert_path is not None:
        password = (
            settings.client_key_password.get_secret_value()
            if settings.client_key_password is not None
            else None
        )
        context.load_cert_chain(
            certfile=str(settings.client_cert_path),
            keyfile=str(settings.client_key_path),
            password=password,
        )

    if settings.client_pfx_path is not None:
        _load_pkcs12(
            context,
            settings.client_pfx_path,
            (
                settings.client_pfx_password.get_secret_value()
                if settings.client_pfx_password is not None
                else None
            ),
        )

    return context


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Persistent HTTP client bound to the configured ledger node."""
    return httpx.AsyncClient(
        base_url=str(settings.ledger_base_url).rstrip("/"),
        verify=build_ssl_context(settings),
        timeout=httpx.Timeout(settings.request_timeout_seconds),
        headers={"Accept": "application/json"},
    )


# ----------------------------------------------------------------------
# Client
# ----------------------------------------------------------------------

class IL2LedgerClient:
    """
    LedgerGateway implementation for an IL2 REST node.

    Stateless apart from the injected HTTP client, which the caller owns
    and closes.
    """

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        self.client = http_client

    # ------------------------------------------------------------------
    # Chains
    # ------------------------------------------------------------------

    async def list_chains(self) -> List[ChainInfo]:
        response = await self._get("/chain")
        body = self._json(response)

        if not isinstance(body, list):
            raise LedgerTransportError(
                "Ledger chain listing is not a JSON array",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return [ChainInfo.model_validate(item) for item in body]
        except ValidationError as exc:
            raise LedgerTransportError(
                f"Malformed chain listing: {exc}",
                status_code=response.status_code,
                body=response.text,
            ) from exc

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def submit(self, chain_id: str, envelope_bytes: bytes) -> SubmissionReceipt:
        try:
            response = await self.client.post(
                f"/jsonDocuments@{chain_id}",
                content=envelope_bytes,
                headers={"Content-Type": "application/json; charset=utf-8"},
            )
        except httpx.HTTPError as exc:
            logger.exception(
                "ledger_submit_transport_failed",
                extra={"chain_id": chain_id},
            )
            raise SubmissionError(
                f"Transport failure while submitting to chain {chain_id}: {exc}"
            ) from exc

        if not response.is_success:
            logger.error(
                "ledger_submit_rejected",
                extra={
                    "chain_id": chain_id,
                    "status_code": response.status_code,
                    "response_body": response.text,
                },
            )
            raise SubmissionError(
                f"Ledger rejected submission to chain {chain_id}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            receipt = SubmissionReceipt.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise SubmissionError(
                f"Ledger accepted submission but returned no usable serial: {exc}",
                status_code=response.status_code,
                body=response.text,
            ) from exc

        logger.info(
            "ledger_submit_accepted",
            extra={"chain_id": chain_id, "serial": receipt.serial},
        )
        return receipt

    async def fetch_record(self, chain_id: str, serial: int) -> Optional[LedgerRecord]:
        response = await self._get(
            f"/records@{chain_id}/{serial}",
            allow_not_found=True,
        )
        if response is None:
            return None

        try:
            return LedgerRecord.model_validate(self._json(response))
        except ValidationError as exc:
            raise LedgerTransportError(
                f"Malformed record {chain_id}/{serial}: {exc}",
                status_code=response.status_code,
                body=response.text,
            ) from exc

    async def list_records(
        self,
        chain_id: str,
        page: int = 0,
        page_size: int = 10,
    ) -> RecordPage:
        response = await self._get(
            f"/records@{chain_id}",
            params={"page": page, "pageSize": page_size},
        )
        body = self._json(response)

        # Older nodes answer with a bare array instead of a page object.
        if isinstance(body, list):
            body = {"items": body, "page": page, "pageSize": page_size}

        try:
            return RecordPage.model_validate(body)
        except ValidationError as exc:
            raise LedgerTransportError(
                f"Malformed record page for chain {chain_id}: {exc}",
                status_code=response.status_code,
                body=response.text,
            ) from exc

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _get(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Optional[httpx.Response]:
        try:
            response = await self.client.get(path, params=params)
        except httpx.HTTPError as exc:
            logger.warning(
                "ledger_transport_failed",
                extra={"path": path, "error_type": type(exc).__name__},
            )
            raise LedgerTransportError(
                f"Transport failure on GET {path}: {exc}"
            ) from exc

        if allow_not_found and response.status_code == httpx.codes.NOT_FOUND:
            return None

        if not response.is_success:
            logger.warning(
                "ledger_request_failed",
                extra={
                    "path": path,
                    "status_code": response.status_code,
                },
            )
            raise LedgerTransportError(
                f"Ledger answered GET {path} with an error",
                status_code=response.status_code,
                body=response.text,
            )

        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise LedgerTransportError(
                "Ledger response is not valid JSON",
                status_code=response.status_code,
                body=response.text,
            ) from exc
