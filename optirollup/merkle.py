"""
Merkle proof verification over fixed-depth binary trees.

Leaves and nodes are 32-byte Keccak-256 hashes. A parent is
``keccak(left || right)``; the position of a node at level ``i`` is given by
bit ``i`` of the leaf index (1 = right child).
"""
from dataclasses import dataclass, field
from functools import lru_cache

from .crypto import generate_hash, HASH_LENGTH

# keccak(abi.encode(uint256(0)))
ZERO_LEAF = generate_hash(b'\x00' * HASH_LENGTH)


def parent_hash(left: bytes, right: bytes) -> bytes:
    """Returns parent node hash given child node hashes."""
    return generate_hash(left + right)


@lru_cache(maxsize=None)
def default_hashes(depth: int) -> tuple[bytes, ...]:
    """Roots of empty subtrees, indexed by height (0 = the zero leaf)."""
    hashes = [ZERO_LEAF]
    for _ in range(depth):
        hashes.append(parent_hash(hashes[-1], hashes[-1]))
    return tuple(hashes)


@dataclass(frozen=True)
class MerkleProof:
    """Sibling path of one leaf, ordered from the leaf level up to the root."""
    leaf: bytes
    index: int
    path: tuple[bytes, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, 'path', tuple(self.path))

    @property
    def depth(self) -> int:
        return len(self.path)

    @property
    def directions(self) -> tuple[int, ...]:
        """Direction bit per level: 1 when the running node is the right child."""
        return tuple((self.index >> level) & 1 for level in range(self.depth))

    def with_leaf(self, leaf: bytes) -> 'MerkleProof':
        return MerkleProof(leaf=leaf, index=self.index, path=self.path)

    def to_dict(self) -> dict:
        return {
            'leaf': self.leaf.hex(),
            'index': self.index,
            'path': [node.hex() for node in self.path],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'MerkleProof':
        return cls(
            leaf=bytes.fromhex(data['leaf']),
            index=data['index'],
            path=tuple(bytes.fromhex(node) for node in data['path']),
        )


def compute_root(leaf: bytes, index: int, path) -> bytes:
    node = leaf
    for level, sibling in enumerate(path):
        if (index >> level) & 1:
            node = parent_hash(sibling, node)
        else:
            node = parent_hash(node, sibling)
    return node


def verify(root: bytes, leaf: bytes, proof: MerkleProof, depth: int) -> bool:
    """
    Check that ``leaf`` sits at ``proof.index`` under ``root``.

    A path whose length differs from ``depth`` fails outright rather than
    being truncated or padded.
    """
    if proof.depth != depth:
        return False
    if not 0 <= proof.index < 2 ** depth:
        return False
    if any(len(node) != HASH_LENGTH for node in proof.path):
        return False
    return compute_root(leaf, proof.index, proof.path) == root


def compute_new_root(proof: MerkleProof, new_leaf: bytes) -> bytes:
    """Root after replacing the proven leaf; siblings are unaffected by a single-leaf change."""
    return compute_root(new_leaf, proof.index, proof.path)


def merkle_root(leaves: list[bytes]) -> bytes:
    """
    Root of the smallest power-of-two tree holding ``leaves``, padded with
    zero leaves. An empty list has the zero leaf as its root.
    """
    if not leaves:
        return ZERO_LEAF
    depth = 0
    while (1 << depth) < len(leaves):
        depth += 1
    level = list(leaves) + [ZERO_LEAF] * ((1 << depth) - len(leaves))
    while len(level) > 1:
        level = [parent_hash(level[i], level[i + 1]) for i in range(0, len(level), 2)]
    return level[0]
