"""
On-disk certificate store.

Certificates are written once as pretty-printed JSON in the persisted
file shape and never rewritten. File names carry the serial and the
chain so a certificate can be found again by serial alone, and the same
serial anchored on two chains never shares a file name.

Layout under the store directory:

    certificate_{serial}_{chain}_{stamp}.json
    documents/document_{serial}_{chain}_{stamp}.json
    reports/verification_report_{serial}_{stamp}_{token}.json
"""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from pathlib import Path
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError

from certifier.app.schemas.certificate import Certificate
from certifier.app.schemas.verification import VerificationReport

logger = logging.getLogger(__name__)

DOCUMENTS_SUBDIR = "documents"
REPORTS_SUBDIR = "reports"

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def _safe_name(value: str) -> str:
    return _UNSAFE_NAME_CHARS.sub("-", value)


def _stamp() -> int:
    return int(time.time() * 1000)


def _write_new(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    # Exclusive create: an existing file is never overwritten.
    with path.open("x", encoding="utf-8") as fh:
        json.dump(payload, fh, ensure_ascii=False, indent=2)


class CertificateStore:
    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def save(self, certificate: Certificate) -> Path:
        path = self._directory / (
            f"certificate_{certificate.serial}_"
            f"{_safe_name(certificate.chain_id)}_{_stamp()}.json"
        )
        _write_new(path, certificate.to_wire())

        logger.info(
            "certificate_saved",
            extra={
                "serial": certificate.serial,
                "chain_id": certificate.chain_id,
                "path": str(path),
            },
        )
        return path

    def save_original_document(self, certificate: Certificate) -> Path:
        """Keep the document exactly as certified, next to its certificate."""
        path = self._directory / DOCUMENTS_SUBDIR / (
            f"document_{certificate.serial}_"
            f"{_safe_name(certificate.chain_id)}_{_stamp()}.json"
        )
        _write_new(path, certificate.original_document)

        logger.info(
            "original_document_saved",
            extra={"serial": certificate.serial, "path": str(path)},
        )
        return path

    def save_report(self, report: VerificationReport) -> Path:
        serial = report.details.serial
        path = self._directory / REPORTS_SUBDIR / (
            f"verification_report_{serial if serial is not None else 'none'}_"
            f"{_stamp()}_{uuid.uuid4().hex[:8]}.json"
        )
        _write_new(path, report.to_wire())

        logger.info(
            "verification_report_saved",
            extra={"serial": serial, "result": report.result.value, "path": str(path)},
        )
        return path

    def find_by_serial(
        self,
        serial: int,
        chain_id: Optional[str] = None,
    ) -> Optional[Certificate]:
        """Newest certificate for the serial (and chain, if given), or None."""
        found = self._find(serial, chain_id)
        return found[1] if found is not None else None

    def find_path_by_serial(
        self,
        serial: int,
        chain_id: Optional[str] = None,
    ) -> Optional[Path]:
        found = self._find(serial, chain_id)
        return found[0] if found is not None else None

    def count(self) -> int:
        if not self._directory.is_dir():
            return 0
        return sum(1 for _ in self._directory.glob("certificate_*.json"))

    def _find(
        self,
        serial: int,
        chain_id: Optional[str],
    ) -> Optional[Tuple[Path, Certificate]]:
        for path in reversed(self._candidates(serial)):
            try:
                certificate = Certificate.model_validate_json(
                    path.read_text(encoding="utf-8")
                )
            except ValidationError:
                logger.warning(
                    "certificate_file_unreadable",
                    extra={"path": str(path)},
                )
                continue

            if certificate.serial != serial:
                continue
            if chain_id is None or certificate.chain_id == chain_id:
                return path, certificate

        return None

    def _candidates(self, serial: int) -> List[Path]:
        if not self._directory.is_dir():
            return []

        def stamp(path: Path) -> int:
            try:
                return int(path.stem.rsplit("_", 1)[1])
            except (IndexError, ValueError):
                return 0

        return sorted(
            self._directory.glob(f"certificate_{serial}_*.json"),
            key=stamp,
        )
