"""Key commitment: Merkle tree over hashed segment keys and inclusion proofs."""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass, field
from typing import Any, Final, Mapping, Optional, Sequence

from ..domain.constants import AES_KEY_LENGTH
from ..domain.errors import InvalidSegmentIndexError, ValidationError

SHA256: Final[str] = "sha256"

# Padding leaf for non power-of-two segment counts. No 16-byte key hashes to it.
FILLER_LEAF: Final[bytes] = hashlib.new(
    SHA256, b"streamlock-v1:commitment-filler"
).digest()


def b64_to_bytes(data_b64: str) -> bytes:
    """Decode a base64 string into raw bytes (strict validation)."""
    return base64.b64decode(data_b64, validate=True)


def bytes_to_b64(data: bytes) -> str:
    """Encode raw bytes into base64 string."""
    return base64.b64encode(data).decode("utf-8")


def hex_to_bytes(data_hex: str) -> bytes:
    """Decode hex, tolerating a ``0x`` prefix."""
    if data_hex.startswith(("0x", "0X")):
        data_hex = data_hex[2:]
    return bytes.fromhex(data_hex)


def hash_bytes(data: bytes) -> bytes:
    """Hash bytes (fixed algorithm: SHA-256)."""
    return hashlib.new(SHA256, data).digest()


def hash_key(key: bytes) -> bytes:
    """Leaf hash for a segment key."""
    return hash_bytes(key)


def _next_power_of_two(n: int) -> int:
    """Return the smallest power of 2 >= n."""
    if n <= 0:
        return 1
    if n & (n - 1) == 0:
        return n
    return 1 << (n.bit_length())


def _build_merkle_tree(leaves: list[bytes]) -> tuple[bytes, list[list[bytes]]]:
    """
    Build a binary Merkle tree from a list of leaf hashes.

    Returns:
        (root_hash, tree_levels) where tree_levels[0] is the padded leaf level
        and tree_levels[-1] contains only the root.
    """
    if not leaves:
        raise ValidationError("Cannot build Merkle tree with empty leaves")

    padded_size = _next_power_of_two(len(leaves))
    padded_leaves = leaves + [FILLER_LEAF] * (padded_size - len(leaves))

    tree_levels: list[list[bytes]] = [padded_leaves]

    current_level = padded_leaves
    while len(current_level) > 1:
        next_level = [
            hash_bytes(current_level[i] + current_level[i + 1])
            for i in range(0, len(current_level), 2)
        ]
        tree_levels.append(next_level)
        current_level = next_level

    return tree_levels[-1][0], tree_levels


def _get_merkle_proof(
    tree_levels: list[list[bytes]], leaf_index: int
) -> tuple[bytes, list[bytes]]:
    """Collect (leaf_hash, siblings) from the leaf level up to (excluding) the root."""
    leaf_hash = tree_levels[0][leaf_index]
    siblings: list[bytes] = []

    current_index = leaf_index
    for level in tree_levels[:-1]:
        siblings.append(level[current_index ^ 1])
        current_index //= 2

    return leaf_hash, siblings


def compute_root_from_proof(
    leaf_hash: bytes, leaf_index: int, siblings: Sequence[bytes]
) -> bytes:
    """Fold a leaf and its siblings upward.

    Bit ``d`` of ``leaf_index`` selects the order at depth ``d``: even means the
    accumulator is the left child.
    """
    current = leaf_hash
    current_index = leaf_index
    for sibling in siblings:
        if (current_index % 2) == 0:
            current = hash_bytes(current + sibling)
        else:
            current = hash_bytes(sibling + current)
        current_index //= 2
    return current


@dataclass(frozen=True)
class MerkleProof:
    """Inclusion proof for one segment key. Hashes are raw bytes."""

    leaf: bytes
    siblings: tuple[bytes, ...]
    root: bytes
    index: int

    def to_dict(self) -> dict[str, Any]:
        """Wire form: hashes as lowercase hex."""
        return {
            "leaf": self.leaf.hex(),
            "siblings": [s.hex() for s in self.siblings],
            "root": self.root.hex(),
            "index": self.index,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MerkleProof":
        """Parse the wire form. Raises ``ValueError``/``KeyError``/``TypeError``."""
        return cls(
            leaf=hex_to_bytes(data["leaf"]),
            siblings=tuple(hex_to_bytes(s) for s in data["siblings"]),
            root=hex_to_bytes(data["root"]),
            index=int(data["index"]),
        )


@dataclass(frozen=True)
class CommitmentTree:
    """
    Merkle commitment over the ordered segment keys of one video.

    leaf_i = H(key_i); parent = H(left || right). The leaf level is padded to a
    power of two with FILLER_LEAF. Filler positions are never provable.
    """

    leaf_count: int
    root: bytes
    _tree_levels: list[list[bytes]] = field(repr=False)

    @staticmethod
    def build(keys: Sequence[bytes]) -> "CommitmentTree":
        """Hash the keys and fold them into a tree.

        Raises:
            ValidationError: on empty input or a key that is not 16 bytes.
        """
        if not keys:
            raise ValidationError("Cannot build commitment over zero keys")
        for i, key in enumerate(keys):
            if len(key) != AES_KEY_LENGTH:
                raise ValidationError(
                    f"Segment key {i} must be {AES_KEY_LENGTH} bytes, got {len(key)}"
                )

        leaves = [hash_key(key) for key in keys]
        root, tree_levels = _build_merkle_tree(leaves)
        return CommitmentTree(
            leaf_count=len(keys), root=root, _tree_levels=tree_levels
        )

    @property
    def root_hex(self) -> str:
        return self.root.hex()

    @property
    def depth(self) -> int:
        return len(self._tree_levels) - 1

    def leaf(self, index: int) -> bytes:
        self._check_index(index)
        return self._tree_levels[0][index]

    def prove_index(self, index: int) -> MerkleProof:
        """Generate the inclusion proof for segment ``index``."""
        self._check_index(index)
        leaf_hash, siblings = _get_merkle_proof(self._tree_levels, index)
        return MerkleProof(
            leaf=leaf_hash, siblings=tuple(siblings), root=self.root, index=index
        )

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= self.leaf_count:
            raise InvalidSegmentIndexError(index, self.leaf_count)

    def dump(self) -> dict[str, Any]:
        """Serialize for a tree store (hex levels)."""
        return {
            "leaf_count": self.leaf_count,
            "levels": [[node.hex() for node in level] for level in self._tree_levels],
        }

    @staticmethod
    def load(data: Mapping[str, Any]) -> "CommitmentTree":
        levels = [[bytes.fromhex(node) for node in level] for level in data["levels"]]
        if not levels or len(levels[-1]) != 1:
            raise ValidationError("Stored commitment tree has no single root")
        return CommitmentTree(
            leaf_count=int(data["leaf_count"]),
            root=levels[-1][0],
            _tree_levels=levels,
        )


def verify_proof(
    key: bytes, proof: MerkleProof, expected_root: Optional[bytes] = None
) -> bool:
    """
    Verify that ``key`` is committed at ``proof.index``.

    Checks H(key) == proof.leaf, recomputes the root from the siblings, and
    compares it with proof.root and, when given, the trusted expected_root.
    Never raises: any malformed input yields False.
    """
    try:
        if proof.index < 0:
            return False
        if (proof.index >> len(proof.siblings)) != 0:
            return False
        if hash_key(key) != proof.leaf:
            return False
        computed = compute_root_from_proof(proof.leaf, proof.index, proof.siblings)
        if computed != proof.root:
            return False
        if expected_root is not None and computed != expected_root:
            return False
        return True
    except Exception:
        return False


def verify_proof_dict(
    key_b64: str, proof: Mapping[str, Any], expected_root_hex: Optional[str] = None
) -> bool:
    """Wire-level variant of :func:`verify_proof` (base64 key, hex hashes)."""
    try:
        key = b64_to_bytes(key_b64)
        parsed = MerkleProof.from_dict(proof)
        expected = hex_to_bytes(expected_root_hex) if expected_root_hex else None
    except Exception:
        return False

    return verify_proof(key, parsed, expected)
