import pytest

from vast_core.errors import SignatureError
from vast_core.signing import (
    Ed25519KeyPair,
    canonical_json_dumps,
    sign_golden_document,
    verify_golden_signature,
)


DOC = {"scenario_id": "s", "total_ticks": 1, "logs": [{"tick": 0, "chosen_action": "A"}]}


def test_canonical_json_is_key_sorted_and_compact():
    assert canonical_json_dumps({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'
    with pytest.raises(ValueError):
        canonical_json_dumps({"x": float("nan")})


def test_seeded_keys_are_deterministic():
    a = Ed25519KeyPair.from_seed(bytes(32), "k")
    b = Ed25519KeyPair.from_seed_hex("00" * 32, "k")
    assert a.public_key_hex == b.public_key_hex
    assert a.can_sign()
    assert not Ed25519KeyPair.from_public_key("k", a.public_key_hex).can_sign()


def test_key_material_errors():
    with pytest.raises(SignatureError):
        Ed25519KeyPair.from_seed(b"short", "k")
    with pytest.raises(SignatureError):
        Ed25519KeyPair.from_seed_hex("zz", "k")
    with pytest.raises(SignatureError):
        Ed25519KeyPair.from_public_key("k", "abcd")
    verify_only = Ed25519KeyPair.from_public_key("k", Ed25519KeyPair.generate("k").public_key_hex)
    with pytest.raises(SignatureError):
        verify_only.sign(b"payload")


def test_sign_does_not_mutate_document():
    key = Ed25519KeyPair.generate("k1")
    signed = sign_golden_document(DOC, key)
    assert "golden_signature" not in DOC
    block = signed["golden_signature"]
    assert block["key_id"] == "k1"
    assert block["alg"] == "ed25519"
    assert len(block["payload_sha256"]) == 64


def test_verify_accepts_keypair_or_hex():
    key = Ed25519KeyPair.generate("k1")
    signed = sign_golden_document(DOC, key)
    assert verify_golden_signature(signed, {"k1": key}) == (True, "ok")
    assert verify_golden_signature(signed, {"k1": key.public_key_hex}) == (True, "ok")


@pytest.mark.parametrize(
    "mutate,reason",
    [
        (lambda d: d.pop("golden_signature"), "golden log is not signed"),
        (lambda d: d["golden_signature"].update(alg="rsa"), "unsupported signature algorithm"),
        (lambda d: d["golden_signature"].update(signature_b64="***"), "signature is not valid base64"),
        (lambda d: d["golden_signature"].update(signature_b64="AAAA"), "signature verification failed"),
    ],
)
def test_verify_rejects_broken_signatures(mutate, reason):
    key = Ed25519KeyPair.generate("k1")
    signed = sign_golden_document(DOC, key)
    mutate(signed)
    ok, why = verify_golden_signature(signed, {"k1": key.public_key_hex})
    assert not ok
    assert why.startswith(reason)


def test_verify_rejects_non_object_input():
    assert verify_golden_signature("[]", {}) == (False, "golden log must be a JSON object")
    ok, why = verify_golden_signature("{", {})
    assert not ok and why.startswith("invalid JSON")
