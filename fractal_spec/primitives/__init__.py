"""Primitives - Low-level cryptographic and mathematical building blocks."""

from fractal_spec.primitives.field import (
    FF,
    GOLDILOCKS_PRIME,
    SHIFT,
    SHIFT_INV,
    W,
    batch_inverse,
    get_omega,
    get_omega_inv,
    to_field,
)
from fractal_spec.primitives.merkle_tree import (
    HASH_SIZE,
    LeafData,
    MerkleRoot,
    MerkleTree,
    QueryProof,
    transpose_for_merkle,
)
from fractal_spec.primitives.ntt import NTT, coset_domain
from fractal_spec.primitives.transcript import (
    Transcript,
    grinding,
    verify_grinding,
)

__all__ = [
    # Field
    "FF",
    "GOLDILOCKS_PRIME",
    "W",
    "SHIFT",
    "SHIFT_INV",
    "batch_inverse",
    "get_omega",
    "get_omega_inv",
    "to_field",
    # NTT
    "NTT",
    "coset_domain",
    # Merkle Tree
    "MerkleTree",
    "MerkleRoot",
    "QueryProof",
    "LeafData",
    "HASH_SIZE",
    "transpose_for_merkle",
    # Transcript
    "Transcript",
    "grinding",
    "verify_grinding",
]
