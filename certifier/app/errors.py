"""
Typed error taxonomy for the Certifier.

Only infrastructure failures and invalid caller input are raised.
Verification outcomes (not found, mismatch, bad code) are reported as
data on VerificationResult and never appear here as exceptions,
with the exception of InvalidCodeFormat which CodeCodec.decode raises
for direct callers.
"""

from typing import Optional


class CertifierError(Exception):
    """Base class for all Certifier errors."""


class SerializationError(CertifierError):
    """Raised when a document cannot be represented as canonical JSON."""


class LedgerTransportError(CertifierError):
    """
    Raised when the ledger is unreachable or answers with a failure
    that is not a plain "record not found".
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is None:
            return base
        return f"{base} (status={self.status_code})"


class SubmissionError(LedgerTransportError):
    """
    Raised when anchoring fails: the ledger rejected the envelope or the
    transport broke mid-submission. No partial state is retained.
    """


class UnknownChainError(CertifierError):
    """Raised when a certification targets a chain the ledger does not list."""

    def __init__(self, chain_id: str) -> None:
        super().__init__(f"Chain {chain_id!r} is not listed by the ledger")
        self.chain_id = chain_id


class InvalidCodeFormat(CertifierError):
    """Raised when a verification code does not match IL2-<serial>-<hash8>."""

    def __init__(self, code: object, reason: str) -> None:
        super().__init__(f"Invalid verification code {code!r}: {reason}")
        self.code = code
        self.reason = reason


class PayloadDecodeError(CertifierError):
    """
    Raised when a ledger payload is not a base64 UTF-8 JSON envelope.

    VerificationEngine converts this into a failed verdict.
    """


class ClientCertificateError(CertifierError):
    """Raised when the configured client certificate material cannot be loaded."""
