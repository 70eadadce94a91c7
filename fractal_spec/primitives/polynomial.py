"""Univariate and multilinear polynomial helpers over FF.

Univariate polynomials are coefficient vectors in ascending order [a0, a1, ...].

Multilinear polynomials are tables of length 2^s listing f on the boolean
hypercube. Bit j of the table index is variable j, so variable 0 is the least
significant bit and is the first one bound by sumcheck and by folding.
"""

from typing import List, Sequence

import galois
import numpy as np

from fractal_spec.primitives.field import FF, ONE, ZERO

# --- Univariate ---

def evaluate(coeffs: FF, x: FF) -> FF:
    """Evaluate an ascending-order coefficient vector at x."""
    if len(coeffs) == 0:
        return ZERO
    # galois.Poly expects descending order
    return galois.Poly(FF(coeffs)[::-1], field=FF)(x)


def interpolate(evaluations: FF) -> FF:
    """Coefficients of the unique polynomial of degree <= D through (t, evaluations[t]), t = 0..D."""
    n = len(evaluations)
    xs = FF(list(range(n)))
    poly = galois.lagrange_poly(xs, FF(evaluations))
    return poly.coefficients(n, order="asc")


def field_sum(values: FF) -> FF:
    """Sum of the entries of a field vector."""
    if len(values) == 0:
        return ZERO
    return np.add.reduce(values)


def powers(base: FF, n: int) -> FF:
    """[1, base, base^2, ..., base^(n-1)]."""
    result = FF.Zeros(n)
    acc = ONE
    for i in range(n):
        result[i] = acc
        acc = acc * base
    return result


# --- Multilinear ---

def eq1(a: FF, b: FF) -> FF:
    """Single-variable equality polynomial ab + (1-a)(1-b); affine in each argument."""
    return a * b + (ONE - a) * (ONE - b)


def eq_eval(a: Sequence[FF], b: Sequence[FF]) -> FF:
    """eq(a, b) = prod_j eq1(a_j, b_j)."""
    assert len(a) == len(b), f"Point length mismatch: {len(a)} != {len(b)}"
    acc = ONE
    for a_j, b_j in zip(a, b):
        acc = acc * eq1(a_j, b_j)
    return acc


def eq_table(point: Sequence[FF]) -> FF:
    """Table of eq(point, x) over x in {0,1}^s."""
    table = FF([1])
    for r in point:
        table = FF(np.concatenate([table * (ONE - r), table * r]))
    return table


def fold_table(table: FF, r: FF) -> FF:
    """Bind variable 0 to r: T'[i] = T[2i] + r * (T[2i+1] - T[2i])."""
    lo = table[0::2]
    hi = table[1::2]
    return lo + r * (hi - lo)


def mle_eval(table: FF, point: Sequence[FF]) -> FF:
    """Evaluate the multilinear extension of table at point."""
    assert len(table) == 1 << len(point), \
        f"Table of size {len(table)} does not match {len(point)} variables"
    current = FF(table)
    for r in point:
        current = fold_table(current, r)
    return current[0]


def bit_columns(indices: Sequence[int], n_bits: int) -> FF:
    """Bit decomposition of each index: result[j][k] = bit j of indices[k]."""
    indices = np.asarray(indices, dtype=np.int64)
    rows: List[List[int]] = [[int(b) for b in (indices >> j) & 1] for j in range(n_bits)]
    if n_bits == 0:
        return FF.Zeros((0, len(indices)))
    return FF(rows)
