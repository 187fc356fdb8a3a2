"""
Centralized configuration management for the Certifier service.

Pydantic v2 settings management to enforce strict validation,
zero secret leakage, and fast-failure on invalid configuration.

The default chain identifier lives here and is injected into the
coordinator at construction. Nothing else in the engine holds it.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

from pydantic import (
    AnyHttpUrl,
    Field,
    FilePath,
    SecretStr,
    StringConstraints,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


# -------------------------------------------------------------------------
# Reusable Type Aliases
# -------------------------------------------------------------------------

EnvRequired = Annotated[
    str,
    StringConstraints(min_length=1, strip_whitespace=True),
]

SensitiveEnv = Annotated[
    SecretStr,
    Field(description="Sensitive credential, redacted from logs"),
]


# -------------------------------------------------------------------------
# Settings Model
# -------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Application settings parsed from the environment.

    Fails fast at startup if the ledger endpoint or default chain
    are missing, or if client-certificate material is half configured.
    """

    # ---------------------------------------------------------------------
    # Ledger endpoint
    # ---------------------------------------------------------------------

    ledger_base_url: Annotated[
        AnyHttpUrl,
        Field(description="InterlockLedger REST node base URL"),
    ]

    default_chain_id: EnvRequired

    # ---------------------------------------------------------------------
    # Client-certificate TLS
    # ---------------------------------------------------------------------

    client_cert_path: Annotated[
        Optional[FilePath],
        Field(
            default=None,
            description="PEM client certificate presented to the ledger node",
        ),
    ]

    client_key_path: Annotated[
        Optional[FilePath],
        Field(
            default=None,
            description="PEM private key matching client_cert_path",
        ),
    ]

    client_key_password: Optional[SensitiveEnv] = None

    client_pfx_path: Annotated[
        Optional[FilePath],
        Field(
            default=None,
            description=(
                "PKCS#12 (.pfx) bundle holding the client certificate and key; "
                "alternative to the PEM pair"
            ),
        ),
    ]

    client_pfx_password: Optional[SensitiveEnv] = None

    verify_tls: Annotated[
        bool,
        Field(
            default=True,
            description=(
                "Verify the ledger node's server certificate. "
                "Disable only for self-signed development nodes."
            ),
        ),
    ]

    request_timeout_seconds: Annotated[
        float,
        Field(
            default=30.0,
            gt=0,
            le=300,
            description="Per-request timeout at the ledger gateway boundary",
        ),
    ]

    # ---------------------------------------------------------------------
    # Envelope metadata
    # ---------------------------------------------------------------------

    envelope_source: EnvRequired = "IL2_CERTIFIER"
    envelope_schema_version: EnvRequired = "1.0"

    # ---------------------------------------------------------------------
    # Persistence and request limits
    # ---------------------------------------------------------------------

    certificate_dir: Annotated[
        Path,
        Field(
            default=Path("certificates"),
            description="Directory where issued certificates are written",
        ),
    ]

    max_document_size_kb: Annotated[
        int,
        Field(
            default=1024,
            ge=1,
            le=10240,
            description="Upper bound on the serialized size of a submitted document",
        ),
    ]

    model_config = SettingsConfigDict(
        env_prefix="CERTIFIER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @model_validator(mode="after")
    def client_cert_pairing(self) -> "Settings":
        if (self.client_cert_path is None) != (self.client_key_path is None):
            raise ValueError(
                "client_cert_path and client_key_path must be configured together"
            )
        if self.client_key_password is not None and self.client_key_path is None:
            raise ValueError(
                "client_key_password is set but client_key_path is not configured"
            )
        if self.client_pfx_path is not None and self.client_cert_path is not None:
            raise ValueError(
                "client_pfx_path and client_cert_path are mutually exclusive"
            )
        if self.client_pfx_password is not None and self.client_pfx_path is None:
            raise ValueError(
                "client_pfx_password is set but client_pfx_path is not configured"
            )
        return self


# -------------------------------------------------------------------------
# Settings Dependency Provider
# -------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Dependency injection provider for application settings.

    Uses an explicit singleton pattern within the FastAPI lifecycle.
    """
    return Settings()  # singleton within process
