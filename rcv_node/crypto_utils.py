# rcv_node/crypto_utils.py
from __future__ import annotations

"""
Core cryptographic helpers for rcv_node.

This module provides:

- Ed25519 keypair generation, signing and verification (cryptography)
- address derivation from an Ed25519 public key
- canonical JSON bytes used for signing preimages

Addresses
---------
An address is "0x" + the last 20 bytes of SHA-256(public_key), lowercase hex.
Every caller identity the ledger sees (administrator, voter, credential
owner) is an address in this form.
"""

import binascii
import hashlib
import json
from typing import Any, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

ADDRESS_BYTES = 20


def _hex_to_bytes(h: str) -> bytes:
    """Decode hex string to raw bytes, accepting optional 0x prefix."""
    h = h.strip().lower()
    if h.startswith("0x"):
        h = h[2:]
    return binascii.unhexlify(h.encode("ascii"))


def _bytes_to_hex(b: bytes) -> str:
    """Encode raw bytes to lowercase hex string."""
    return binascii.hexlify(b).decode("ascii")


def ed25519_generate_keypair() -> Tuple[str, str]:
    """
    Generate a new Ed25519 signing keypair.

    Returns
    -------
    (sk_hex, pk_hex) : Tuple[str, str]
        Hex-encoded secret key (32-byte seed) and public key.
    """
    sk = Ed25519PrivateKey.generate()
    sk_raw = sk.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return _bytes_to_hex(sk_raw), public_key_hex_from_secret(_bytes_to_hex(sk_raw))


def public_key_hex_from_secret(secret_key_hex: str) -> str:
    sk = Ed25519PrivateKey.from_private_bytes(_hex_to_bytes(secret_key_hex))
    pk_raw = sk.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return _bytes_to_hex(pk_raw)


def ed25519_sign(secret_key_hex: str, message: bytes) -> str:
    """
    Sign a message using a hex-encoded Ed25519 secret key.

    Returns the hex-encoded 64-byte signature.
    """
    if not isinstance(message, (bytes, bytearray)):
        raise TypeError("message must be bytes")
    sk = Ed25519PrivateKey.from_private_bytes(_hex_to_bytes(secret_key_hex))
    return _bytes_to_hex(sk.sign(bytes(message)))


def ed25519_verify(public_key_hex: str, message: bytes, signature_hex: str) -> bool:
    """
    Verify an Ed25519 signature.

    Returns True if the signature is valid, False otherwise (including
    malformed keys or signatures).
    """
    try:
        pk = Ed25519PublicKey.from_public_bytes(_hex_to_bytes(public_key_hex))
        pk.verify(_hex_to_bytes(signature_hex), bytes(message))
        return True
    except (InvalidSignature, ValueError, TypeError, binascii.Error):
        return False


def address_from_public_key(public_key_hex: str) -> str:
    digest = hashlib.sha256(_hex_to_bytes(public_key_hex)).digest()
    return "0x" + _bytes_to_hex(digest[-ADDRESS_BYTES:])


def canonical_json(obj: Any) -> bytes:
    # canonical-ish JSON for stable hashing/signing
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":")).encode(
        "utf-8"
    )
