import logging
import sys
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from certifier.app.api.routes import router as certification_router
from certifier.app.config import Settings, get_settings
from certifier.app.coordinator.coordinator import CertifierCoordinator
from certifier.app.errors import (
    LedgerTransportError,
    SerializationError,
    UnknownChainError,
)
from certifier.app.ledger.il2_client import IL2LedgerClient, build_http_client
from certifier.app.storage.certificate_store import CertificateStore

logger = logging.getLogger("certifier.main")


def get_app_version() -> str:
    try:
        return version("il2-certifier")
    except PackageNotFoundError:
        return "0.1.0"


def _build_lifespan(
    settings: Optional[Settings],
    coordinator: Optional[CertifierCoordinator],
    store: Optional[CertificateStore],
):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Guarantees:
        - Fail-fast startup if configuration is invalid
        - One shared HTTP client for the ledger node, closed on shutdown
        - Injected collaborators are used as given and never closed here
        """
        logger.info(
            "certifier_startup_begin",
            extra={"service": "certifier", "version": get_app_version()},
        )

        # ------------------------------------------------------------------
        # Load and validate configuration (FAIL FAST)
        # ------------------------------------------------------------------
        try:
            resolved = settings or get_settings()
        except Exception:
            logger.exception("invalid_certifier_configuration")
            raise

        app.state.settings = resolved

        if store is None:
            app.state.store = CertificateStore(resolved.certificate_dir)

        http_client = None
        if coordinator is None:
            http_client = build_http_client(resolved)
            app.state.http_client = http_client
            app.state.coordinator = CertifierCoordinator.from_settings(
                resolved,
                IL2LedgerClient(http_client),
            )

        logger.info(
            "certifier_startup_complete",
            extra={
                "ledger_base_url": str(resolved.ledger_base_url),
                "default_chain_id": resolved.default_chain_id,
            },
        )

        try:
            yield
        finally:
            logger.info("certifier_shutdown_begin")
            if http_client is not None:
                try:
                    await http_client.aclose()
                except Exception:
                    logger.warning("http_client_shutdown_failed")

    return lifespan


# =============================================================================
# Exception mapping
# =============================================================================

async def _ledger_unavailable(request: Request, exc: LedgerTransportError) -> JSONResponse:
    logger.error(
        "ledger_failure",
        extra={"path": request.url.path, "status_code": exc.status_code},
    )
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": str(exc), "ledgerStatus": exc.status_code},
    )


async def _unserializable_document(request: Request, exc: SerializationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        content={"detail": str(exc)},
    )


async def _unknown_chain(request: Request, exc: UnknownChainError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc), "chainId": exc.chain_id},
    )


# =============================================================================
# Factory
# =============================================================================

def create_app(
    *,
    settings: Optional[Settings] = None,
    coordinator: Optional[CertifierCoordinator] = None,
    store: Optional[CertificateStore] = None,
) -> FastAPI:
    """
    Application factory for the IL2 certifier.

    Collaborators passed in are wired immediately so the app is usable
    without running the lifespan (tests rely on this).
    """
    app = FastAPI(
        title="IL2 Certifier",
        description=(
            "Proof-of-existence certification of JSON documents "
            "on an InterlockLedger chain."
        ),
        version=get_app_version(),
        docs_url="/docs",
        redoc_url=None,
        lifespan=_build_lifespan(settings, coordinator, store),
    )

    if settings is not None:
        app.state.settings = settings
    if coordinator is not None:
        app.state.coordinator = coordinator
    if store is not None:
        app.state.store = store

    app.add_exception_handler(LedgerTransportError, _ledger_unavailable)
    app.add_exception_handler(SerializationError, _unserializable_document)
    app.add_exception_handler(UnknownChainError, _unknown_chain)

    app.include_router(certification_router)

    @app.get(
        "/health",
        tags=["Monitoring"],
        summary="Liveness probe",
    )
    async def health_check():
        """
        Reports that the process is alive.

        NOTE:
        - Does NOT call the ledger
        """
        return {
            "status": "ok",
            "service": "certifier",
            "version": app.version,
            "runtime": f"python {sys.version.split()[0]}",
        }

    return app


app = create_app()
