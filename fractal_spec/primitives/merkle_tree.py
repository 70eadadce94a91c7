"""Merkle tree commitment using BLAKE3."""

import struct
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import blake3

from fractal_spec.primitives.field import FF, to_ints

# --- Constants ---

HASH_SIZE = 32  # Digest size in bytes

_LEAF_TAG = b"\x00"
_NODE_TAG = b"\x01"
_ZERO_DIGEST = bytes(HASH_SIZE)

# --- Type Aliases ---

MerkleRoot = bytes
Digest = bytes
LeafData = List[int]


# --- Data Classes ---

@dataclass
class QueryProof:
    """Query proof containing leaf values and Merkle authentication path.

    Attributes:
        v: Leaf values at query index - list of columns, each column is a list of
           elem_size elements. Oracle leaves hold [P(x), P(-x)] per column.
        mp: Merkle path - list of sibling digests per level, from leaf to root.
            Each level has (arity - 1) digests.
    """
    v: List[List[int]] = field(default_factory=list)
    mp: List[List[Digest]] = field(default_factory=list)

    def leaf_data(self) -> LeafData:
        """Flatten column values back into the hashed leaf row."""
        return [x for col in self.v for x in col]


# --- Data Layout ---

def transpose_for_merkle(columns: FF) -> List[int]:
    """Lay out (n_cols, n) evaluations as n/2 leaves of [c(i), c(i + n/2)] per column.

    Positions i and i + n/2 of a coset of size n are x and -x, so one leaf
    holds everything a fold-by-2 needs at one query.
    """
    n_cols, n = columns.shape
    half = n // 2
    ints = [to_ints(columns[c]) for c in range(n_cols)]
    result: List[int] = []
    for i in range(half):
        for col in ints:
            result.append(col[i])
            result.append(col[i + half])
    return result


# --- Hashing ---

def hash_leaf(leaf: Sequence[int]) -> Digest:
    """Digest of a leaf row of canonical field elements."""
    data = struct.pack(f"<{len(leaf)}Q", *leaf)
    return blake3.blake3(_LEAF_TAG + data).digest()


def hash_nodes(children: Sequence[Digest]) -> Digest:
    """Digest of an internal node from its children."""
    return blake3.blake3(_NODE_TAG + b"".join(children)).digest()


# --- Merkle Tree ---

class MerkleTree:
    """Variable-arity Merkle tree using BLAKE3 hashing."""

    def __init__(self, arity: int = 2):
        if arity not in [2, 3, 4]:
            raise ValueError(f"arity must be 2, 3, or 4, got {arity}")

        self.arity = arity

        self.height = 0
        self.width = 0
        self.nodes: List[Digest] = []
        self.num_nodes = 0

        # Store source data for query proof value extraction
        self.source_data: Optional[List[int]] = None
        self.n_cols: int = 0  # Number of columns (polynomials)

    # --- Core Operations ---

    def merkelize(self, source: LeafData, height: int, width: int, n_cols: int = 0) -> None:
        """Build Merkle tree from source data.

        Args:
            source: Flattened leaf data (height * width canonical integers)
            height: Number of leaves (rows)
            width: Elements per leaf (columns * elem_size)
            n_cols: Number of polynomial columns (for query proof extraction)
        """
        if len(source) != height * width:
            raise ValueError(f"Source has {len(source)} elements, expected {height * width}")

        self.height = height
        self.width = width
        self.n_cols = n_cols if n_cols > 0 else width
        self.num_nodes = self._compute_num_nodes(height)
        self.nodes = [_ZERO_DIGEST] * self.num_nodes
        self.source_data = list(source)

        if height == 0:
            return

        # Hash each leaf row
        for i in range(height):
            row_start = i * width
            self.nodes[i] = hash_leaf(self.source_data[row_start:row_start + width])

        # Build internal nodes bottom-up; short levels are padded with zero digests
        pending = height
        next_index = 0

        while pending > 1:
            extra_zeros = (self.arity - (pending % self.arity)) % self.arity
            next_n = (pending + (self.arity - 1)) // self.arity

            for i in range(next_n):
                children = self.nodes[next_index + i * self.arity:next_index + (i + 1) * self.arity]
                self.nodes[next_index + pending + extra_zeros + i] = hash_nodes(children)

            next_index += pending + extra_zeros
            pending = next_n

    def get_root(self) -> MerkleRoot:
        """Return the Merkle root commitment."""
        if self.num_nodes == 0:
            return _ZERO_DIGEST
        return self.nodes[self.num_nodes - 1]

    def get_group_proof(self, idx: int) -> List[Digest]:
        """Generate Merkle proof (siblings only) for leaf at index."""
        proof: List[Digest] = []
        self._collect_proof_siblings(proof, idx, 0, self.height)
        return proof

    def get_query_proof(self, idx: int, elem_size: int = 2) -> QueryProof:
        """Extract complete query proof with leaf values and Merkle path.

        Args:
            idx: Query index (leaf index in the tree)
            elem_size: Elements per column in a leaf (2 for [P(x), P(-x)] pairs)

        Returns:
            QueryProof with:
            - v: List of column values at idx, each is [elem_size] elements
            - mp: List of sibling digests per level

        Raises:
            ValueError: If source_data not available or idx out of range
        """
        if self.source_data is None:
            raise ValueError("Source data not stored - cannot extract leaf values")
        if idx < 0 or idx >= self.height:
            raise ValueError(f"Query index {idx} out of range [0, {self.height})")

        row_start = idx * self.width
        row_data = self.source_data[row_start:row_start + self.width]

        v = [row_data[col * elem_size:(col + 1) * elem_size] for col in range(self.n_cols)]

        # Structure siblings into levels of (arity - 1) digests
        flat_siblings = self.get_group_proof(idx)
        siblings_per_level = self.arity - 1
        mp = [
            flat_siblings[i:i + siblings_per_level]
            for i in range(0, len(flat_siblings), siblings_per_level)
        ]

        return QueryProof(v=v, mp=mp)

    def verify_group_proof(
        self,
        root: MerkleRoot,
        proof: List[List[Digest]],
        idx: int,
        leaf_data: LeafData
    ) -> bool:
        """Verify Merkle proof for a leaf."""
        computed = hash_leaf(leaf_data)

        for level_siblings in proof:
            if len(level_siblings) != self.arity - 1:
                return False
            curr_idx = idx % self.arity
            idx = idx // self.arity

            children = list(level_siblings[:curr_idx]) + [computed] + list(level_siblings[curr_idx:])
            computed = hash_nodes(children)

        return idx == 0 and computed == root

    # --- Proof Size Utilities ---

    @staticmethod
    def proof_length(height: int, arity: int) -> int:
        """Number of levels in a Merkle proof for a tree with `height` leaves."""
        levels = 0
        pending = height
        while pending > 1:
            pending = (pending + arity - 1) // arity
            levels += 1
        return levels

    def get_merkle_proof_length(self) -> int:
        """Number of levels in a Merkle proof."""
        return self.proof_length(self.height, self.arity)

    # --- Internal Helpers ---

    def _compute_num_nodes(self, height: int) -> int:
        """Calculate total storage needed for tree nodes."""
        num_nodes = height
        nodes_level = height

        while nodes_level > 1:
            extra_zeros = (self.arity - (nodes_level % self.arity)) % self.arity
            num_nodes += extra_zeros
            next_n = (nodes_level + (self.arity - 1)) // self.arity
            num_nodes += next_n
            nodes_level = next_n

        return num_nodes

    def _collect_proof_siblings(
        self,
        proof: List[Digest],
        idx: int,
        offset: int,
        n: int
    ) -> None:
        """Recursively collect sibling digests for proof."""
        if n <= 1:
            return

        curr_idx = idx % self.arity
        next_idx = idx // self.arity
        si = idx - curr_idx

        for i in range(self.arity):
            if i != curr_idx:
                proof.append(self.nodes[offset + si + i])

        extra_zeros = (self.arity - (n % self.arity)) % self.arity
        next_n = (n + (self.arity - 1)) // self.arity
        next_offset = offset + n + extra_zeros

        self._collect_proof_siblings(proof, next_idx, next_offset, next_n)
