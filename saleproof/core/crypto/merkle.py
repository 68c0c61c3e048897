"""
Merkle tree construction and inclusion proof extraction.

Provides batch integrity verification by computing a single root hash from
a batch of sale fingerprints. Inclusion proofs allow verifying that a single
sale is part of a batch without replaying the entire tree.

Pairing rule: the two child digests are sorted lexicographically, their hex
strings concatenated, and the UTF-8 bytes hashed with SHA-256. Because the
pair is sorted, proofs carry sibling digests only and no left/right flags.
This is not a positional Merkle tree; roots are not interchangeable with
trees that hash ``left + right``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from saleproof.core.crypto.canonicalization import sha256_hex
from saleproof.core.crypto.fingerprint import is_digest

# Root of a tree over zero leaves. Never a valid anchor value.
EMPTY_ROOT = ""


def hash_pair(left: str, right: str) -> str:
    """Hash two hex-encoded digests together (sorted for consistency)."""
    first, second = sorted((left, right))
    return sha256_hex(first + second)


def _next_level(level: Sequence[str]) -> list[str]:
    next_level: list[str] = []
    for i in range(0, len(level), 2):
        left = level[i]
        right = level[i + 1] if i + 1 < len(level) else level[i]
        next_level.append(hash_pair(left, right))
    return next_level


@dataclass(frozen=True)
class MerkleProof:
    """Sibling path from a leaf to the root.

    Attributes
    ----------
    leaf:
        The leaf digest the proof was issued for.
    leaf_index:
        Zero-based position of the leaf in the batch.
    siblings:
        Sibling digests from the leaf level upward.
    """

    leaf: str
    leaf_index: int
    siblings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "leaf": self.leaf,
            "leaf_index": self.leaf_index,
            "siblings": list(self.siblings),
        }


@dataclass(frozen=True)
class MerkleTree:
    """A Merkle tree built from a batch of fingerprints.

    Attributes
    ----------
    leaves:
        The original leaf digests, in batch order.
    levels:
        Every level from the leaves (``levels[0]``) up to the root level.
    root:
        The root digest, or :data:`EMPTY_ROOT` for an empty batch.
    """

    leaves: tuple[str, ...] = ()
    levels: tuple[tuple[str, ...], ...] = field(default=(), repr=False)
    root: str = EMPTY_ROOT

    @property
    def size(self) -> int:
        """Number of leaves in the tree."""
        return len(self.leaves)

    @property
    def is_empty(self) -> bool:
        return not self.leaves

    def inclusion_proof(self, index: int) -> MerkleProof:
        """Return the inclusion proof for the leaf at ``index``."""
        return prove_inclusion(self, index)


def build_tree(leaves: Sequence[str]) -> MerkleTree:
    """Build a Merkle tree over an ordered batch of fingerprints.

    If a level has an odd number of nodes, the last node is paired with
    itself. The leaf level is always combined at least once, so a single
    leaf ``a`` yields the root ``hash_pair(a, a)``.

    Parameters
    ----------
    leaves:
        Hex-encoded SHA-256 digests (the leaves).

    Returns
    -------
    MerkleTree
        The full tree. An empty input returns an empty tree whose root is
        :data:`EMPTY_ROOT`.

    Raises
    ------
    ValueError
        If any leaf is not a 64-char lowercase hex digest.
    """
    for index, leaf in enumerate(leaves):
        if not is_digest(leaf):
            raise ValueError(f"Leaf {index} is not a SHA-256 hex digest: {leaf!r}")

    if not leaves:
        return MerkleTree()

    level = list(leaves)
    levels = [tuple(level)]
    while True:
        level = _next_level(level)
        levels.append(tuple(level))
        if len(level) == 1:
            break

    return MerkleTree(leaves=tuple(leaves), levels=tuple(levels), root=level[0])


def compute_merkle_root(leaves: Sequence[str]) -> str:
    """Compute only the root of :func:`build_tree` over ``leaves``."""
    return build_tree(leaves).root


def prove_inclusion(tree: MerkleTree, index: int) -> MerkleProof:
    """Compute an inclusion proof for the leaf at ``index``.

    Walks from the leaf to the root collecting the sibling at each level.
    A node without a right neighbour is its own sibling.

    Raises
    ------
    ValueError
        If the tree is empty or ``index`` is out of range.
    """
    if tree.is_empty:
        raise ValueError("Cannot compute proof from empty tree")
    if index < 0 or index >= tree.size:
        raise ValueError(f"Index {index} out of range for {tree.size} leaves")

    siblings: list[str] = []
    idx = index
    for level in tree.levels[:-1]:
        if idx % 2 == 0:
            sibling_idx = idx + 1 if idx + 1 < len(level) else idx
        else:
            sibling_idx = idx - 1
        siblings.append(level[sibling_idx])
        idx //= 2

    return MerkleProof(leaf=tree.leaves[index], leaf_index=index, siblings=tuple(siblings))


def root_from_proof(leaf: str, siblings: Sequence[str]) -> str:
    """Fold ``siblings`` into ``leaf`` with :func:`hash_pair`."""
    current = leaf
    for sibling in siblings:
        current = hash_pair(current, sibling)
    return current
