"""Goldilocks prime field GF(p).

Uses galois library for all field arithmetic. FF is the field type; field
vectors are galois FieldArrays, scalars are 0-dimensional FieldArrays.
"""

from typing import Iterable, List

import galois
import numpy as np

from fractal_spec.errors import ArithmeticDomainError

# --- Field Construction ---

GOLDILOCKS_PRIME = 0xFFFFFFFF00000001
FIELD_BYTES = 8

FF = galois.GF(GOLDILOCKS_PRIME)
"""Base field GF(p) - Goldilocks prime field."""

ZERO = FF(0)
ONE = FF(1)
TWO_INV = FF(2) ** -1

# --- Roots of Unity ---

# Domain shift for coset LDE
SHIFT = FF(7)
SHIFT_INV = SHIFT ** -1

# Shared scalars are read-only: `acc = ZERO; acc += x` raises instead of
# rewriting the constant.
for _constant in (ZERO, ONE, TWO_INV, SHIFT, SHIFT_INV):
    _constant.flags.writeable = False

# Roots of unity are the ones galois.ntt evaluates at: W[n] = g^((p-1)/2^n)
# for the primitive element g, so W[n + 1]^2 == W[n] and W[n]^(2^(n-1)) == -1.
MAX_TWO_ADICITY = 32

W: List[int] = [1] + [int(FF.primitive_root_of_unity(1 << n)) for n in range(1, MAX_TWO_ADICITY + 1)]
W_INV: List[int] = [int(FF(w) ** -1) for w in W]


def get_omega(n_bits: int) -> int:
    """Return primitive 2^n_bits-th root of unity."""
    return W[n_bits]


def get_omega_inv(n_bits: int) -> int:
    """Return inverse of primitive 2^n_bits-th root of unity."""
    return W_INV[n_bits]


# --- Conversions ---

def to_field(values: Iterable[int]) -> FF:
    """Reduce arbitrary Python ints (including negatives) into an FF vector."""
    ints = [int(v) % GOLDILOCKS_PRIME for v in values]
    if not ints:
        return FF.Zeros(0)
    return FF(ints)


def to_ints(values: FF) -> List[int]:
    """Canonical integer representatives of a field vector."""
    return [int(v) for v in np.asarray(values).reshape(-1)]


def is_canonical(value: int) -> bool:
    """True if value is the canonical representative of a field element."""
    return 0 <= value < GOLDILOCKS_PRIME


# --- Inversion ---

def inverse(value: FF) -> FF:
    """Invert a single field element."""
    if value == 0:
        raise ArithmeticDomainError("inverse of zero")
    return value ** -1


def batch_inverse(values: FF) -> FF:
    """Montgomery batch inversion for an FF array.

    Converts N field inversions into 3N-3 multiplications + 1 inversion.

    Algorithm:
    1. Forward pass: Compute prefix products cumprods[i] = a[0] * a[1] * ... * a[i]
    2. Single inversion: inv_total = cumprods[N-1]^(-1)
    3. Backward pass: Extract individual inverses using cumprods

    Args:
        values: FF array to invert (must all be non-zero)

    Returns:
        FF array where result[i] = values[i]^(-1)

    Raises:
        ArithmeticDomainError: If any element is zero
    """
    n = len(values)
    if n == 0:
        return values
    if np.any(values == 0):
        raise ArithmeticDomainError("batch inverse of a vector containing zero")
    if n == 1:
        return values ** -1

    # Forward pass: compute prefix products
    cumprods = FF.Zeros(n)
    cumprods[0] = values[0]
    for i in range(1, n):
        cumprods[i] = cumprods[i - 1] * values[i]

    # Single inversion of the total product
    inv_total = cumprods[n - 1] ** -1

    # Backward pass: extract individual inverses
    results = FF.Zeros(n)
    z = inv_total
    for i in range(n - 1, 0, -1):
        results[i] = z * cumprods[i - 1]
        z = z * values[i]
    results[0] = z

    return results
