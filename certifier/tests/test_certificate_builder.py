from datetime import datetime, timezone

from certifier.app.engine.binder import HashBinder
from certifier.app.engine.certificate import CertificateBuilder
from certifier.app.schemas.certificate import CERTIFICATE_VERSION, Certificate
from certifier.app.schemas.ledger import ChainInfo, LedgerRecord, SubmissionReceipt


REGISTERED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
ISSUED = datetime(2024, 5, 1, 12, 0, 5, tzinfo=timezone.utc)
RECORD_HASH = "0f1e2d3c" + "ab" * 28

DOCUMENT = {"number": "NF-1", "amount": 10}


def _build():
    binding = HashBinder(
        source="IL2_CERTIFIER",
        schema_version="1.0",
        clock=lambda: REGISTERED,
    ).bind(DOCUMENT)

    certificate = CertificateBuilder(
        ledger_base_url="https://node.example:32020/",
        clock=lambda: ISSUED,
    ).build(
        binding,
        SubmissionReceipt(serial=42, reference="chain-a@42"),
        ChainInfo(id="chain-a", name="Primary chain"),
        LedgerRecord(serial=42, chain_id="chain-a", hash=RECORD_HASH, network="testnet"),
    )
    return binding, certificate


def test_certificate_carries_anchoring_facts():
    binding, certificate = _build()

    assert certificate.serial == 42
    assert certificate.chain_id == "chain-a"
    assert certificate.data.chain_name == "Primary chain"
    assert certificate.data.document_hash == binding.document_hash
    assert certificate.data.envelope_hash == binding.envelope_hash
    assert certificate.data.record_hash == RECORD_HASH
    assert certificate.data.registered_at == REGISTERED
    assert certificate.issued_at == ISSUED


def test_verification_code_comes_from_record_hash():
    _, certificate = _build()

    assert certificate.verification_code == "IL2-42-0F1E2D3C"


def test_network_falls_back_to_record_when_receipt_is_silent():
    _, certificate = _build()

    assert certificate.data.network == "testnet"
    assert certificate.data.reference == "chain-a@42"
    assert certificate.digital_fingerprint.network == "testnet"


def test_verification_url_points_at_record():
    _, certificate = _build()

    assert certificate.data.verification_url == (
        "https://node.example:32020/records@chain-a/42"
    )


def test_wire_shape_uses_persisted_keys():
    _, certificate = _build()

    wire = certificate.to_wire()

    assert wire["version"] == CERTIFICATE_VERSION
    assert wire["codigoVerificacao"] == "IL2-42-0F1E2D3C"
    assert wire["documentoOriginal"] == DOCUMENT
    assert wire["dados"]["serial"] == 42
    assert wire["dados"]["chainId"] == "chain-a"
    assert wire["digitalFingerprint"]["algorithm"] == "SHA-256"
    assert wire["instrucoes"]["steps"]


def test_wire_shape_reloads_into_equal_certificate():
    _, certificate = _build()

    reloaded = Certificate.model_validate(certificate.to_wire())

    assert reloaded == certificate
