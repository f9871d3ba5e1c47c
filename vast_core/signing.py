"""
Ed25519 signatures for golden audit logs.

A signed golden log carries a `golden_signature` block:

    {"key_id": ..., "alg": "ed25519", "payload_sha256": ..., "signature_b64": ...}

The signature covers the canonical JSON (sorted keys, compact separators,
UTF-8) of the golden document with the `golden_signature` block removed, so
the indentation of the exported file does not matter.

Verifiers hold only public keys; signing needs the 32-byte seed.
"""

from __future__ import annotations

import base64
import binascii
import copy
import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from .errors import SignatureError, vast_error, VAST_E_SIGNATURE

SIGNATURE_FIELD = "golden_signature"
SIGNATURE_ALG = "ed25519"


def canonical_json_dumps(obj: Any) -> str:
    """Deterministic JSON for hashing and signing."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _raw_public(public_key: Ed25519PublicKey) -> bytes:
    return public_key.public_bytes(encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw)


def _raw_private(private_key: Ed25519PrivateKey) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


@dataclass
class Ed25519KeyPair:
    """Ed25519 key material. `private_key_bytes` is None for verify-only keys."""

    key_id: str
    public_key_bytes: bytes
    private_key_bytes: Optional[bytes] = None

    @classmethod
    def generate(cls, key_id: str) -> "Ed25519KeyPair":
        private_key = Ed25519PrivateKey.generate()
        return cls(
            key_id=key_id,
            public_key_bytes=_raw_public(private_key.public_key()),
            private_key_bytes=_raw_private(private_key),
        )

    @classmethod
    def from_seed(cls, seed: bytes, key_id: str) -> "Ed25519KeyPair":
        if len(seed) != 32:
            raise vast_error(SignatureError, VAST_E_SIGNATURE, f"Seed must be 32 bytes, got {len(seed)}", key_id=key_id)
        private_key = Ed25519PrivateKey.from_private_bytes(seed)
        return cls(
            key_id=key_id,
            public_key_bytes=_raw_public(private_key.public_key()),
            private_key_bytes=_raw_private(private_key),
        )

    @classmethod
    def from_seed_hex(cls, seed_hex: str, key_id: str) -> "Ed25519KeyPair":
        try:
            seed = bytes.fromhex(seed_hex.strip())
        except ValueError as e:
            raise vast_error(SignatureError, VAST_E_SIGNATURE, "Seed must be hex encoded", key_id=key_id) from e
        return cls.from_seed(seed, key_id)

    @classmethod
    def from_public_key(cls, key_id: str, public_key_hex: str) -> "Ed25519KeyPair":
        try:
            raw = bytes.fromhex(public_key_hex.strip())
        except ValueError as e:
            raise vast_error(SignatureError, VAST_E_SIGNATURE, "Public key must be hex encoded", key_id=key_id) from e
        if len(raw) != 32:
            raise vast_error(SignatureError, VAST_E_SIGNATURE, f"Public key must be 32 bytes, got {len(raw)}", key_id=key_id)
        return cls(key_id=key_id, public_key_bytes=raw)

    @property
    def public_key_hex(self) -> str:
        return self.public_key_bytes.hex()

    def can_sign(self) -> bool:
        return self.private_key_bytes is not None

    def sign(self, message: bytes) -> bytes:
        if not self.can_sign():
            raise vast_error(SignatureError, VAST_E_SIGNATURE, f"Key {self.key_id} has no private key - cannot sign")
        return Ed25519PrivateKey.from_private_bytes(self.private_key_bytes).sign(message)

    def verify(self, message: bytes, signature: bytes) -> bool:
        try:
            Ed25519PublicKey.from_public_bytes(self.public_key_bytes).verify(signature, message)
            return True
        except (InvalidSignature, ValueError):
            return False


# ---------------------------
# Golden documents
# ---------------------------

def signing_payload(document: Mapping[str, Any]) -> bytes:
    unsigned = {k: v for k, v in document.items() if k != SIGNATURE_FIELD}
    return canonical_json_dumps(unsigned).encode("utf-8")


def sign_golden_document(document: Mapping[str, Any], key: Ed25519KeyPair) -> Dict[str, Any]:
    """Return a copy of `document` carrying a golden_signature block."""
    payload = signing_payload(document)
    signature = key.sign(payload)
    signed = copy.deepcopy(dict(document))
    signed[SIGNATURE_FIELD] = {
        "key_id": key.key_id,
        "alg": SIGNATURE_ALG,
        "payload_sha256": _sha256_hex(payload),
        "signature_b64": base64.b64encode(signature).decode("ascii"),
    }
    return signed


PublicKeys = Mapping[str, Union[str, Ed25519KeyPair]]


def verify_golden_signature(golden: Union[str, Mapping[str, Any]], public_keys: PublicKeys) -> Tuple[bool, str]:
    """Check a golden document's signature against known public keys.

    Returns (ok, reason); never raises on malformed input.
    """
    if isinstance(golden, str):
        try:
            document = json.loads(golden)
        except json.JSONDecodeError as e:
            return False, f"invalid JSON: {e}"
    else:
        document = golden
    if not isinstance(document, Mapping):
        return False, "golden log must be a JSON object"

    block = document.get(SIGNATURE_FIELD)
    if not isinstance(block, Mapping):
        return False, "golden log is not signed"
    if block.get("alg") != SIGNATURE_ALG:
        return False, f"unsupported signature algorithm: {block.get('alg')!r}"

    key_id = str(block.get("key_id") or "")
    known = public_keys.get(key_id)
    if known is None:
        return False, f"unknown key_id: {key_id!r}"
    try:
        key = known if isinstance(known, Ed25519KeyPair) else Ed25519KeyPair.from_public_key(key_id, known)
    except SignatureError as e:
        return False, e.message

    try:
        payload = signing_payload(document)
    except ValueError as e:
        return False, f"payload is not canonical JSON: {e}"
    if block.get("payload_sha256") != _sha256_hex(payload):
        return False, "payload hash mismatch"
    try:
        signature = base64.b64decode(str(block.get("signature_b64") or ""), validate=True)
    except (binascii.Error, ValueError):
        return False, "signature is not valid base64"
    if not key.verify(payload, signature):
        return False, "signature verification failed"
    return True, "ok"
