import logging
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from fastapi.responses import FileResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from certifier.app.config import Settings
from certifier.app.coordinator.coordinator import CertifierCoordinator
from certifier.app.schemas.ledger import ChainInfo
from certifier.app.schemas.verification import VerificationReport, VerificationResult
from certifier.app.storage.certificate_store import CertificateStore
from certifier.app.utils.hashing import canonicalize_json

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Certification"])


# =============================================================================
# Request models
# =============================================================================

_REQUEST_CONFIG = ConfigDict(
    extra="forbid",
    alias_generator=to_camel,
    populate_by_name=True,
)


class CertifyRequest(BaseModel):
    document: Dict[str, Any]
    chain_id: Optional[str] = Field(None, min_length=1)

    model_config = _REQUEST_CONFIG


class VerifyCodeRequest(BaseModel):
    code: str
    document: Dict[str, Any]
    save_report: bool = False

    model_config = _REQUEST_CONFIG


class VerifySerialRequest(BaseModel):
    serial: int = Field(..., ge=0)
    document: Dict[str, Any]
    chain_id: Optional[str] = Field(None, min_length=1)
    save_report: bool = False

    model_config = _REQUEST_CONFIG


class VerifyCertificateRequest(BaseModel):
    # Left untyped so a malformed certificate becomes a verdict, not a 422.
    certificate: Dict[str, Any]
    document: Dict[str, Any]
    save_report: bool = False

    model_config = _REQUEST_CONFIG


# =============================================================================
# Dependency providers
# =============================================================================

def get_coordinator(request: Request) -> CertifierCoordinator:
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise RuntimeError("coordinator not initialized")
    return coordinator


def get_store(request: Request) -> CertificateStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise RuntimeError("certificate store not initialized")
    return store


def get_app_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise RuntimeError("settings not initialized")
    return settings


def _enforce_document_size(document: Dict[str, Any], settings: Settings) -> None:
    max_bytes = settings.max_document_size_kb * 1024
    size = len(canonicalize_json(document))
    if size > max_bytes:
        logger.warning(
            "document_too_large",
            extra={"size_bytes": size, "max_bytes": max_bytes},
        )
        raise HTTPException(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail=f"Document exceeds {settings.max_document_size_kb} KB limit.",
        )


def _verdict_body(
    result: VerificationResult,
    *,
    save_report: bool,
    store: CertificateStore,
) -> Dict[str, Any]:
    body = result.model_dump(mode="json", by_alias=True)
    if save_report:
        path = store.save_report(VerificationReport.from_result(result))
        body["reportFile"] = path.name
    return body


# =============================================================================
# Chains and records
# =============================================================================

@router.get("/chains", summary="List ledger chains")
async def list_chains(
    coordinator: Annotated[CertifierCoordinator, Depends(get_coordinator)],
) -> List[Dict[str, Any]]:
    chains = await coordinator.list_chains()
    return [chain.model_dump(mode="json", by_alias=True) for chain in chains]


@router.get("/chains/{chain_id}", summary="Describe one ledger chain")
async def get_chain(
    chain_id: str,
    coordinator: Annotated[CertifierCoordinator, Depends(get_coordinator)],
) -> Dict[str, Any]:
    chains = await coordinator.list_chains()
    match: Optional[ChainInfo] = next((c for c in chains if c.id == chain_id), None)
    if match is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Chain {chain_id!r} is not listed by the ledger.",
        )
    return match.model_dump(mode="json", by_alias=True)


@router.get("/records", summary="Page through a chain's records")
async def list_records(
    coordinator: Annotated[CertifierCoordinator, Depends(get_coordinator)],
    chain_id: Annotated[Optional[str], Query(alias="chainId", min_length=1)] = None,
    page: Annotated[int, Query(ge=0)] = 0,
    page_size: Annotated[int, Query(alias="pageSize", ge=1, le=100)] = 10,
) -> Dict[str, Any]:
    """Without chainId the first chain the ledger lists is paged."""
    resolved_chain_id, records = await coordinator.list_records(
        chain_id,
        page=page,
        page_size=page_size,
    )
    return {
        "chainId": resolved_chain_id,
        "records": records.model_dump(mode="json", by_alias=True),
    }


@router.get("/records/{chain_id}/{serial}", summary="Fetch one raw ledger record")
async def get_record(
    chain_id: str,
    serial: Annotated[int, Path(ge=0)],
    coordinator: Annotated[CertifierCoordinator, Depends(get_coordinator)],
) -> Dict[str, Any]:
    record = await coordinator.fetch_record(chain_id, serial)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No record {serial} on chain {chain_id!r}.",
        )
    return record.model_dump(mode="json", by_alias=True)


@router.get("/statistics", summary="Chain and certificate counts")
async def statistics(
    coordinator: Annotated[CertifierCoordinator, Depends(get_coordinator)],
    store: Annotated[CertificateStore, Depends(get_store)],
) -> Dict[str, Any]:
    chains = await coordinator.list_chains()
    return {
        "statistics": {
            "chainCount": len(chains),
            "certificatesIssued": store.count(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        "chains": [
            {"id": chain.id, "name": chain.name, "lastRecord": chain.last_record}
            for chain in chains
        ],
    }


# =============================================================================
# POST /certify
# =============================================================================

@router.post(
    "/certify",
    summary="Anchor a document and issue its certificate",
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"description": "Unknown chain"},
        413: {"description": "Document too large"},
        422: {"description": "Document is not canonical JSON"},
        502: {"description": "Ledger failure"},
    },
)
async def certify(
    body: CertifyRequest,
    coordinator: Annotated[CertifierCoordinator, Depends(get_coordinator)],
    store: Annotated[CertificateStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> Dict[str, Any]:
    _enforce_document_size(body.document, settings)

    certificate = await coordinator.certify(body.document, chain_id=body.chain_id)
    path = store.save(certificate)
    document_path = store.save_original_document(certificate)

    return {
        "verificationCode": certificate.verification_code,
        "serial": certificate.serial,
        "chainId": certificate.chain_id,
        "file": path.name,
        "documentFile": document_path.name,
        "certificate": certificate.to_wire(),
    }


# =============================================================================
# Verification
# =============================================================================

@router.post("/verify/code", summary="Verify a document by verification code")
async def verify_code(
    body: VerifyCodeRequest,
    coordinator: Annotated[CertifierCoordinator, Depends(get_coordinator)],
    store: Annotated[CertificateStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> Dict[str, Any]:
    _enforce_document_size(body.document, settings)
    result = await coordinator.verify(body.code, body.document)
    return _verdict_body(result, save_report=body.save_report, store=store)


@router.post("/verify/serial", summary="Verify a document by ledger serial")
async def verify_serial(
    body: VerifySerialRequest,
    coordinator: Annotated[CertifierCoordinator, Depends(get_coordinator)],
    store: Annotated[CertificateStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> Dict[str, Any]:
    _enforce_document_size(body.document, settings)
    result = await coordinator.verify(
        body.serial,
        body.document,
        chain_id=body.chain_id,
    )
    return _verdict_body(result, save_report=body.save_report, store=store)


@router.post("/verify/certificate", summary="Verify a document against its certificate")
async def verify_certificate(
    body: VerifyCertificateRequest,
    coordinator: Annotated[CertifierCoordinator, Depends(get_coordinator)],
    store: Annotated[CertificateStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> Dict[str, Any]:
    _enforce_document_size(body.document, settings)
    result = await coordinator.verify(body.certificate, body.document)
    return _verdict_body(result, save_report=body.save_report, store=store)


# =============================================================================
# Stored certificates
# =============================================================================

def _not_stored(serial: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"No stored certificate for serial {serial}.",
    )


@router.get("/certificates/{serial}", summary="Fetch a stored certificate")
async def get_certificate(
    serial: int,
    store: Annotated[CertificateStore, Depends(get_store)],
    chain_id: Optional[str] = None,
) -> Dict[str, Any]:
    certificate = store.find_by_serial(serial, chain_id=chain_id)
    if certificate is None:
        raise _not_stored(serial)
    return certificate.to_wire()


@router.get(
    "/certificates/{serial}/download",
    summary="Download a stored certificate file",
    response_class=FileResponse,
)
async def download_certificate(
    serial: int,
    store: Annotated[CertificateStore, Depends(get_store)],
    chain_id: Optional[str] = None,
) -> FileResponse:
    path = store.find_path_by_serial(serial, chain_id=chain_id)
    if path is None:
        raise _not_stored(serial)
    return FileResponse(
        path,
        media_type="application/json",
        filename=f"certificate_{serial}.json",
    )
