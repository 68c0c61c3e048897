"""
Ed25519 signing for audit Merkle roots.

A signed root lets an auditor holding only the public key confirm that an
audit record was produced by the store operator and not forged afterwards.
"""

from __future__ import annotations

import base64

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
    load_pem_public_key,
)

SIGNATURE_ALGORITHM = "Ed25519"


def _load_private_key(private_key_pem: str) -> Ed25519PrivateKey:
    private_key = load_pem_private_key(private_key_pem.encode("utf-8"), password=None)
    if not isinstance(private_key, Ed25519PrivateKey):
        raise TypeError("Expected an Ed25519 private key")
    return private_key


def _public_pem(private_key: Ed25519PrivateKey) -> str:
    return private_key.public_key().public_bytes(
        encoding=Encoding.PEM,
        format=PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")


def generate_signing_keypair() -> tuple[str, str]:
    """Generate a new Ed25519 key pair.

    Returns
    -------
    tuple[str, str]
        ``(private_key_pem, public_key_pem)``.
    """
    private_key = Ed25519PrivateKey.generate()
    private_pem = private_key.private_bytes(
        encoding=Encoding.PEM,
        format=PrivateFormat.PKCS8,
        encryption_algorithm=NoEncryption(),
    ).decode("utf-8")
    return private_pem, _public_pem(private_key)


def public_key_for(private_key_pem: str) -> str:
    """Derive the PEM public key to hand to auditors."""
    return _public_pem(_load_private_key(private_key_pem))


def sign_merkle_root(root_hash: str, private_key_pem: str) -> str:
    """Sign an audit root, returning a base64 Ed25519 signature."""
    signature = _load_private_key(private_key_pem).sign(root_hash.encode("utf-8"))
    return base64.b64encode(signature).decode("utf-8")


def verify_signature(root_hash: str, signature: str, public_key_pem: str) -> bool:
    """Check a base64 Ed25519 signature over ``root_hash``.

    A bad signature is reported as ``False``; a key of the wrong type raises
    ``TypeError``.
    """
    public_key = load_pem_public_key(public_key_pem.encode("utf-8"))
    if not isinstance(public_key, Ed25519PublicKey):
        raise TypeError("Expected an Ed25519 public key")
    try:
        public_key.verify(base64.b64decode(signature), root_hash.encode("utf-8"))
    except (InvalidSignature, ValueError):
        return False
    return True
