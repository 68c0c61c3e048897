"""
Tamper-evidence primitives for sale records.

Pure library modules:
- **canonicalization**: RFC 8785 canonical bytes and money minor units
- **fingerprint**: SHA-256 fingerprints of sale records
- **merkle**: sorted-pair Merkle trees and inclusion proofs
- **hash_chain**: SHA-256 chaining of ledger entries
- **verification**: record, proof, audit and ledger checks
- **signing**: Ed25519 signatures for audit roots
- **anchoring**: external anchor clients
"""

from saleproof.core.crypto.canonicalization import (
    CANONICALIZATION_RFC8785,
    SHA256_ALGORITHM,
    canonicalize_jcs_bytes,
    sha256_hex_jcs,
    to_minor_units,
)
from saleproof.core.crypto.fingerprint import (
    canonical_record_bytes,
    fingerprint,
    from_bytes32_hex,
    is_digest,
    to_bytes32_hex,
)
from saleproof.core.crypto.hash_chain import GENESIS_HASH, compute_entry_hash
from saleproof.core.crypto.merkle import (
    EMPTY_ROOT,
    MerkleProof,
    MerkleTree,
    build_tree,
    compute_merkle_root,
    hash_pair,
    prove_inclusion,
)
from saleproof.core.crypto.signing import (
    generate_signing_keypair,
    sign_merkle_root,
    verify_signature,
)
from saleproof.core.crypto.verification import (
    LedgerVerificationResult,
    verify_audit,
    verify_ledger,
    verify_proof,
    verify_record,
)

__all__ = [
    "canonicalize_jcs_bytes",
    "sha256_hex_jcs",
    "to_minor_units",
    "CANONICALIZATION_RFC8785",
    "SHA256_ALGORITHM",
    "canonical_record_bytes",
    "fingerprint",
    "is_digest",
    "to_bytes32_hex",
    "from_bytes32_hex",
    "GENESIS_HASH",
    "compute_entry_hash",
    "EMPTY_ROOT",
    "MerkleProof",
    "MerkleTree",
    "build_tree",
    "compute_merkle_root",
    "hash_pair",
    "prove_inclusion",
    "generate_signing_keypair",
    "sign_merkle_root",
    "verify_signature",
    "LedgerVerificationResult",
    "verify_audit",
    "verify_ledger",
    "verify_proof",
    "verify_record",
]
