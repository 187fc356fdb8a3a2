import json
from datetime import datetime, timezone

import pytest

from certifier.app.engine.binder import HashBinder
from certifier.app.errors import SerializationError
from certifier.app.utils.hashing import canonicalize_json, compact_json, compute_sha256


FIXED_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

INVOICE = {
    "number": "NF-1",
    "amount": 1500.5,
    "customer": {"name": "José da Silva", "taxId": "123"},
    "items": [{"sku": "A-1", "qty": 2}],
}


def _binder(clock=lambda: FIXED_TIME) -> HashBinder:
    return HashBinder(source="IL2_CERTIFIER", schema_version="1.0", clock=clock)


# ------------------------------------------------------------------
# Canonical serialization
# ------------------------------------------------------------------

def test_canonical_json_ignores_key_order():
    a = {"b": 1, "a": {"y": 2, "x": 1}}
    b = {"a": {"x": 1, "y": 2}, "b": 1}

    assert canonicalize_json(a) == canonicalize_json(b)
    assert canonicalize_json(a) == b'{"a":{"x":1,"y":2},"b":1}'


def test_canonical_json_keeps_non_ascii_verbatim():
    assert canonicalize_json({"name": "José"}) == '{"name":"José"}'.encode("utf-8")


@pytest.mark.parametrize(
    "value",
    [
        {"when": datetime(2024, 1, 1)},
        {"ratio": float("nan")},
        {1: "non-string key", ("a", "b"): 2},
    ],
)
def test_unserializable_values_raise_serialization_error(value):
    with pytest.raises(SerializationError):
        canonicalize_json(value)


def test_cyclic_document_raises_serialization_error():
    doc = {}
    doc["self"] = doc

    with pytest.raises(SerializationError):
        canonicalize_json(doc)


def test_compact_json_keeps_insertion_order():
    assert compact_json({"tipo": "NOTA_FISCAL", "numero": "NF-1"}) == (
        b'{"tipo":"NOTA_FISCAL","numero":"NF-1"}'
    )


def test_compute_sha256_rejects_text():
    with pytest.raises(TypeError):
        compute_sha256("not bytes")


def test_compute_sha256_is_lowercase_hex():
    digest = compute_sha256(b"abc")

    assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


# ------------------------------------------------------------------
# Inner document hash
# ------------------------------------------------------------------

def test_document_hash_is_deterministic_across_key_order():
    binder = _binder()
    reordered = json.loads(json.dumps(INVOICE))
    reordered = {k: reordered[k] for k in reversed(list(reordered))}

    assert binder.document_hash(INVOICE) == binder.document_hash(reordered)


def test_document_hash_changes_with_any_value():
    binder = _binder()
    altered = dict(INVOICE, number="NF-2")

    assert binder.document_hash(INVOICE) != binder.document_hash(altered)


def test_legacy_document_hash_follows_insertion_order():
    binder = _binder()
    invoice = {"tipo": "NOTA_FISCAL", "numero": "NF-1"}
    reordered = {"numero": "NF-1", "tipo": "NOTA_FISCAL"}

    assert binder.legacy_document_hash(invoice) == compute_sha256(
        b'{"tipo":"NOTA_FISCAL","numero":"NF-1"}'
    )
    assert binder.legacy_document_hash(reordered) != binder.legacy_document_hash(invoice)
    assert binder.document_hash(reordered) == binder.document_hash(invoice)


def test_document_hash_rejects_non_object():
    with pytest.raises(SerializationError):
        _binder().document_hash(["not", "an", "object"])


# ------------------------------------------------------------------
# Envelope binding
# ------------------------------------------------------------------

def test_bind_embeds_inner_hash_and_metadata():
    result = _binder().bind(INVOICE)

    wire = json.loads(result.envelope_bytes.decode("utf-8"))

    assert wire["document"] == INVOICE
    assert wire["documentHash"] == result.document_hash
    assert wire["source"] == "IL2_CERTIFIER"
    assert wire["schemaVersion"] == "1.0"
    assert wire["registeredAt"].startswith("2024-05-01T12:00:00")


def test_bound_envelope_is_not_legacy_layout():
    result = _binder().bind(INVOICE)

    assert result.envelope.legacy_layout is False
    assert "legacy_layout" not in result.envelope.to_wire()
    assert "legacyLayout" not in result.envelope.to_wire()


def test_envelope_bytes_are_canonical_and_hashed():
    result = _binder().bind(INVOICE)

    assert result.envelope_bytes == canonicalize_json(result.envelope.to_wire())
    assert result.envelope_hash == compute_sha256(result.envelope_bytes)


def test_inner_hash_is_independent_of_registration_time():
    early = _binder().bind(INVOICE)
    late = _binder(clock=lambda: datetime(2030, 1, 1, tzinfo=timezone.utc)).bind(INVOICE)

    assert early.document_hash == late.document_hash
    assert early.envelope_hash != late.envelope_hash


def test_binding_an_unserializable_document_fails_before_hashing():
    with pytest.raises(SerializationError):
        _binder().bind({"when": datetime(2024, 1, 1)})
