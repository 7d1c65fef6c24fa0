"""
Array-backed fixed-depth binary Merkle tree of account leaves.

Nodes live in an arena keyed by ``(level, index)``; anything absent is the
root of an empty subtree at that height. Inserting an account means
overwriting its designated empty slot.
"""
import logging
from typing import Optional

from .crypto import generate_hash
from .merkle import MerkleProof, ZERO_LEAF, default_hashes, parent_hash
from .state import AccountState

logger = logging.getLogger(__name__)


class StateTree:
    def __init__(self, depth: int):
        if depth <= 0:
            raise ValueError("Tree depth must be positive")
        self.depth = depth
        self.nodes: dict[tuple[int, int], bytes] = {}
        self.states: dict[int, AccountState] = {}
        self._defaults = default_hashes(depth)

    @property
    def capacity(self) -> int:
        return 1 << self.depth

    @property
    def root_hash(self) -> bytes:
        return self._node(self.depth, 0)

    def _node(self, level: int, index: int) -> bytes:
        return self.nodes.get((level, index), self._defaults[level])

    def _check_index(self, index: int):
        if not 0 <= index < self.capacity:
            raise IndexError(f"Leaf index {index} outside tree of depth {self.depth}")

    def get(self, index: int) -> Optional[AccountState]:
        """Get the account at a slot, or None for an empty slot."""
        self._check_index(index)
        return self.states.get(index)

    def is_empty(self, index: int) -> bool:
        return self.leaf_hash(index) == ZERO_LEAF

    def leaf_hash(self, index: int) -> bytes:
        self._check_index(index)
        return self._node(0, index)

    def set(self, index: int, state: AccountState) -> bytes:
        """Store an account, returning the new root hash."""
        root = self.set_leaf(index, state.leaf_hash())
        self.states[index] = state
        return root

    def set_leaf(self, index: int, leaf: bytes) -> bytes:
        """Overwrite a raw leaf hash and rehash the path to the root."""
        self._check_index(index)
        self.states.pop(index, None)
        node = leaf
        position = index
        for level in range(self.depth):
            self._put_node(level, position, node)
            sibling = self._node(level, position ^ 1)
            if position & 1:
                node = parent_hash(sibling, node)
            else:
                node = parent_hash(node, sibling)
            position >>= 1
        self._put_node(self.depth, 0, node)
        return node

    def _put_node(self, level: int, index: int, node: bytes):
        if node == self._defaults[level]:
            self.nodes.pop((level, index), None)
        else:
            self.nodes[(level, index)] = node

    def proof(self, index: int) -> MerkleProof:
        """Sibling path for the leaf at ``index``."""
        self._check_index(index)
        path = []
        position = index
        for level in range(self.depth):
            path.append(self._node(level, position ^ 1))
            position >>= 1
        return MerkleProof(leaf=self._node(0, index), index=index, path=tuple(path))


class PubkeyRegistry:
    """
    Tree of registered public keys (leaf = keccak(pubkey)).

    Its root is the ``accounts_root`` a dispute proves signer keys against.
    """

    def __init__(self, depth: int):
        self.tree = StateTree(depth)
        self.pubkeys: list[bytes] = []

    @property
    def root_hash(self) -> bytes:
        return self.tree.root_hash

    def register(self, pubkey: bytes) -> int:
        index = len(self.pubkeys)
        self.tree.set_leaf(index, generate_hash(pubkey))
        self.pubkeys.append(pubkey)
        logger.debug(f"Registered pubkey {pubkey.hex()[:16]} at index {index}")
        return index

    def get(self, index: int) -> bytes:
        return self.pubkeys[index]

    def proof(self, index: int) -> MerkleProof:
        return self.tree.proof(index)
