"""
HTTP surface tests.

The app is built with an injected coordinator over FakeLedger, so the
lifespan never builds a real ledger client.
"""

import hashlib
import json

import pytest
from fastapi.testclient import TestClient

from certifier.app.config import Settings
from certifier.app.coordinator.coordinator import CertifierCoordinator
from certifier.app.engine.binder import HashBinder
from certifier.app.errors import LedgerTransportError
from certifier.app.main import create_app
from certifier.app.schemas.ledger import ChainInfo
from certifier.app.storage.certificate_store import CertificateStore
from certifier.tests.fixtures.fake_ledger import FakeLedger, rejected_submission


NF1 = {"number": "NF-1", "amount": 1500.5}
NF2 = {"number": "NF-2", "amount": 1500.5}


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger(
        chains=[ChainInfo(id="chain-a", name="A"), ChainInfo(id="chain-b", name="B")],
        next_serial=42,
    )


@pytest.fixture
def store(tmp_path) -> CertificateStore:
    return CertificateStore(tmp_path / "certificates")


@pytest.fixture
def client(ledger, store) -> TestClient:
    settings = Settings(
        ledger_base_url="https://node.example:32020",
        default_chain_id="chain-a",
        max_document_size_kb=1,
    )
    coordinator = CertifierCoordinator(
        gateway=ledger,
        default_chain_id=settings.default_chain_id,
        binder=HashBinder(source="IL2_CERTIFIER", schema_version="1.0"),
    )
    app = create_app(settings=settings, coordinator=coordinator, store=store)
    return TestClient(app)


def _certify(client: TestClient, document=NF1, **extra) -> dict:
    response = client.post("/certify", json={"document": document, **extra})
    assert response.status_code == 201, response.text
    return response.json()


# ------------------------------------------------------------------
# Health and chains
# ------------------------------------------------------------------

def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_list_chains(client):
    response = client.get("/chains")

    assert response.status_code == 200
    assert [c["id"] for c in response.json()] == ["chain-a", "chain-b"]


def test_get_chain(client):
    assert client.get("/chains/chain-b").json()["name"] == "B"
    assert client.get("/chains/missing").status_code == 404


# ------------------------------------------------------------------
# Certification
# ------------------------------------------------------------------

def test_certify_returns_code_and_saves_certificate(client, store):
    body = _certify(client)

    assert body["verificationCode"].startswith("IL2-42-")
    assert body["serial"] == 42
    assert body["chainId"] == "chain-a"
    assert body["certificate"]["codigoVerificacao"] == body["verificationCode"]
    assert body["file"].startswith("certificate_42_chain-a_")
    assert body["documentFile"].startswith("document_42_chain-a_")
    assert store.count() == 1
    saved_document = store.directory / "documents" / body["documentFile"]
    assert json.loads(saved_document.read_text(encoding="utf-8")) == NF1


def test_certify_on_unknown_chain_is_404(client, ledger):
    response = client.post("/certify", json={"document": NF1, "chainId": "nope"})

    assert response.status_code == 404
    assert response.json()["chainId"] == "nope"
    assert ledger.submissions == []


def test_certify_ledger_rejection_is_502(client, ledger, store):
    ledger.fail_submit = rejected_submission(status_code=400)

    response = client.post("/certify", json={"document": NF1})

    assert response.status_code == 502
    assert response.json()["ledgerStatus"] == 400
    assert store.count() == 0


def test_certify_oversized_document_is_413(client, ledger):
    response = client.post("/certify", json={"document": {"blob": "x" * 2048}})

    assert response.status_code == 413
    assert ledger.submissions == []


def test_certify_requires_object_document(client):
    response = client.post("/certify", json={"document": ["not", "an", "object"]})

    assert response.status_code == 422


# ------------------------------------------------------------------
# Verification
# ------------------------------------------------------------------

def test_verify_by_code_authentic(client):
    code = _certify(client)["verificationCode"]

    response = client.post("/verify/code", json={"code": code, "document": NF1})

    assert response.status_code == 200
    result = response.json()
    assert result["valid"] is True
    assert result["outcome"] == "authentic"
    assert result["verdict"] == "authentic"
    assert result["hashesMatch"] is True


def test_verify_by_code_with_mutated_document(client):
    code = _certify(client)["verificationCode"]

    result = client.post("/verify/code", json={"code": code, "document": NF2}).json()

    assert result["valid"] is False
    assert result["hashesMatch"] is False
    assert result["verdict"] == "not_authentic"


def test_verify_by_malformed_code_is_a_verdict(client):
    response = client.post("/verify/code", json={"code": "IL2-x", "document": NF1})

    assert response.status_code == 200
    assert response.json()["outcome"] == "invalid_code_format"


def test_verify_by_serial(client):
    _certify(client, chainId="chain-b")

    found = client.post(
        "/verify/serial",
        json={"serial": 42, "document": NF1, "chainId": "chain-b"},
    ).json()
    missing = client.post(
        "/verify/serial",
        json={"serial": 42, "document": NF1, "chainId": "chain-a"},
    ).json()

    assert found["valid"] is True
    assert found["chainId"] == "chain-b"
    assert missing["outcome"] == "record_not_found"


def test_verify_by_serial_rejects_negative_serial(client):
    response = client.post("/verify/serial", json={"serial": -1, "document": NF1})

    assert response.status_code == 422


def test_verify_by_certificate(client):
    certificate = _certify(client)["certificate"]

    result = client.post(
        "/verify/certificate",
        json={"certificate": certificate, "document": NF1},
    ).json()

    assert result["valid"] is True
    assert result["serial"] == 42


def test_verify_by_malformed_certificate_is_a_verdict(client):
    result = client.post(
        "/verify/certificate",
        json={"certificate": {"dados": {}}, "document": NF1},
    ).json()

    assert result["outcome"] == "invalid_certificate"
    assert result["verdict"] == "error"


def test_verify_ledger_outage_is_502(client, ledger):
    ledger.fail_fetch = LedgerTransportError("node down", status_code=503)

    response = client.post("/verify/serial", json={"serial": 42, "document": NF1})

    assert response.status_code == 502


def test_verify_with_report_writes_report_file(client, store):
    code = _certify(client)["verificationCode"]

    authentic = client.post(
        "/verify/code",
        json={"code": code, "document": NF1, "saveReport": True},
    ).json()
    tampered = client.post(
        "/verify/serial",
        json={"serial": 42, "document": NF2, "saveReport": True},
    ).json()

    reports = store.directory / "reports"
    first = json.loads((reports / authentic["reportFile"]).read_text(encoding="utf-8"))
    second = json.loads((reports / tampered["reportFile"]).read_text(encoding="utf-8"))
    assert first["result"] == "AUTHENTIC"
    assert first["details"]["outcome"] == "authentic"
    assert second["result"] == "NOT AUTHENTIC"


def test_verify_without_report_writes_nothing(client, store):
    code = _certify(client)["verificationCode"]

    result = client.post("/verify/code", json={"code": code, "document": NF1}).json()

    assert "reportFile" not in result
    assert not (store.directory / "reports").exists()


def test_verify_legacy_record_by_serial(client, ledger):
    invoice = {"tipo": "NOTA_FISCAL", "numero": "NF-1"}
    ledger.put_payload(
        "chain-a",
        10,
        json.dumps(
            {
                **invoice,
                "timestampRegistro": "2024-05-01T12:00:00.000Z",
                "hashDocumento": hashlib.sha256(
                    b'{"tipo":"NOTA_FISCAL","numero":"NF-1"}'
                ).hexdigest(),
            }
        ).encode("utf-8"),
    )

    result = client.post(
        "/verify/serial",
        json={"serial": 10, "document": invoice, "chainId": "chain-a"},
    ).json()

    assert result["valid"] is True
    assert result["verdict"] == "authentic"


# ------------------------------------------------------------------
# Stored certificates
# ------------------------------------------------------------------

def test_get_stored_certificate(client):
    code = _certify(client)["verificationCode"]

    response = client.get("/certificates/42")

    assert response.status_code == 200
    assert response.json()["codigoVerificacao"] == code
    assert client.get("/certificates/42", params={"chain_id": "chain-b"}).status_code == 404
    assert client.get("/certificates/43").status_code == 404


def test_download_stored_certificate(client):
    code = _certify(client)["verificationCode"]

    response = client.get("/certificates/42/download")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    assert 'filename="certificate_42.json"' in response.headers["content-disposition"]
    assert response.json()["codigoVerificacao"] == code
    assert client.get("/certificates/43/download").status_code == 404
    assert (
        client.get("/certificates/42/download", params={"chain_id": "chain-b"}).status_code
        == 404
    )


# ------------------------------------------------------------------
# Ledger browsing and statistics
# ------------------------------------------------------------------

def test_list_records_defaults_to_first_chain(client):
    _certify(client)
    _certify(client, document=NF2, chainId="chain-b")

    body = client.get("/records").json()

    assert body["chainId"] == "chain-a"
    assert [r["serial"] for r in body["records"]["items"]] == [42]


def test_list_records_with_paging(client):
    for _ in range(3):
        _certify(client, chainId="chain-b")

    body = client.get(
        "/records", params={"chainId": "chain-b", "page": 1, "pageSize": 2}
    ).json()

    assert body["chainId"] == "chain-b"
    assert body["records"]["page"] == 1
    assert body["records"]["pageSize"] == 2
    assert [r["serial"] for r in body["records"]["items"]] == [44]


def test_list_records_rejects_bad_paging(client):
    assert client.get("/records", params={"page": -1}).status_code == 422
    assert client.get("/records", params={"pageSize": 0}).status_code == 422


def test_get_raw_record(client, ledger):
    _certify(client)

    body = client.get("/records/chain-a/42").json()

    assert body["serial"] == 42
    assert body["hash"] == ledger.records[("chain-a", 42)].hash
    assert body["payloadBytes"]
    assert client.get("/records/chain-a/43").status_code == 404
    assert client.get("/records/chain-a/-1").status_code == 422


def test_statistics(client, ledger):
    ledger.chains = [
        ChainInfo(id="chain-a", name="A", last_record=41),
        ChainInfo(id="chain-b", name="B"),
    ]
    _certify(client)
    _certify(client, document=NF2)

    body = client.get("/statistics").json()

    assert body["statistics"]["chainCount"] == 2
    assert body["statistics"]["certificatesIssued"] == 2
    assert body["statistics"]["timestamp"]
    assert body["chains"] == [
        {"id": "chain-a", "name": "A", "lastRecord": 41},
        {"id": "chain-b", "name": "B", "lastRecord": None},
    ]
