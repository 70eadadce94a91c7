"""Sumcheck over the boolean hypercube.

Reduces the claim  sum_{x in {0,1}^s} g(x) = S  to a single evaluation
claim g(r) = v for a random r, one variable per round, variable 0 first.

g is given pointwise by a SumcheckRelation: g(x) = relation.combine(T_1(x),
..., T_k(x)) for multilinear tables T_i. The relation fixes the degree bound
D of every round polynomial; a round polynomial is sent as D + 1 coefficients.

Round i (prover): evaluate the restriction at t = 0..D, interpolate, absorb
the coefficients, draw r_i, bind variable i of every table to r_i.

Round i (verifier): check p(0) + p(1) == claim, absorb the coefficients, draw
r_i, set claim = p(r_i).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from fractal_spec.errors import RejectReason, VerificationFailed
from fractal_spec.primitives.field import FF, to_ints
from fractal_spec.primitives.polynomial import eq1, evaluate, field_sum, fold_table, interpolate
from fractal_spec.primitives.transcript import Transcript

# --- Type Aliases ---

RoundPoly = List[int]  # Ascending coefficients, canonical integers


# --- Relations ---

class SumcheckRelation(ABC):
    """Pointwise combination of multilinear tables with a static degree bound."""

    degree: int
    n_tables: int

    @abstractmethod
    def combine(self, values: Sequence[FF]) -> FF:
        """Evaluate g from the table values; works on vectors and scalars."""


class R1CSRelation(SumcheckRelation):
    """eq(tau, x) * (Az(x) * Bz(x) - Cz(x)); zero-sum iff every constraint holds (whp over tau)."""

    degree = 3
    n_tables = 4

    def combine(self, values: Sequence[FF]) -> FF:
        eq, az, bz, cz = values
        return eq * (az * bz - cz)


class LinearCheckRelation(SumcheckRelation):
    """M_rho(r_x, y) * z(y): the random row combination of A, B, C against z."""

    degree = 2
    n_tables = 2

    def combine(self, values: Sequence[FF]) -> FF:
        m, z = values
        return m * z


class MatrixEncodingRelation(SumcheckRelation):
    """val(k) * eq(r_x, row(k)) * eq(r_y, col(k)) over the nonzero entries of a matrix.

    row(k) and col(k) are given as bit tables, one per variable. eq1 is affine
    in the bit argument, so each bit table adds one to the degree.
    """

    def __init__(self, row_point: Sequence[FF], col_point: Sequence[FF]) -> None:
        self.row_point = list(row_point)
        self.col_point = list(col_point)
        self.degree = 1 + len(self.row_point) + len(self.col_point)
        self.n_tables = self.degree

    def combine(self, values: Sequence[FF]) -> FF:
        n_row = len(self.row_point)
        acc = values[0]
        for r, bit in zip(self.row_point, values[1:1 + n_row]):
            acc = acc * eq1(r, bit)
        for r, bit in zip(self.col_point, values[1 + n_row:]):
            acc = acc * eq1(r, bit)
        return acc


# --- Proof and Claims ---

@dataclass
class SumcheckProof:
    """Round polynomials in the order they were sent."""
    round_polys: List[RoundPoly] = field(default_factory=list)


@dataclass
class SumcheckClaim:
    """Reduced claim: g(point) == value."""
    point: List[FF]
    value: FF


# --- Prover ---

class SumcheckProver:
    """Runs the rounds over the tables of one relation instance."""

    def __init__(self, relation: SumcheckRelation, tables: Sequence[FF]) -> None:
        if len(tables) != relation.n_tables:
            raise ValueError(f"Relation expects {relation.n_tables} tables, got {len(tables)}")
        sizes = {len(t) for t in tables}
        if len(sizes) != 1:
            raise ValueError(f"Tables have different sizes: {sorted(sizes)}")
        size = sizes.pop()
        if size < 2 or size & (size - 1):
            raise ValueError(f"Table size must be a power of two >= 2, got {size}")

        self.relation = relation
        self.tables = [FF(t) for t in tables]
        self.num_vars = size.bit_length() - 1

    def claimed_sum(self) -> FF:
        return field_sum(self.relation.combine(self.tables))

    def prove(self, transcript: Transcript) -> Tuple[SumcheckProof, List[FF], List[FF]]:
        """Run all rounds.

        Returns:
            (proof, point, final_values) where final_values[i] is table i at point
        """
        tables = self.tables
        point: List[FF] = []
        round_polys: List[RoundPoly] = []

        for _ in range(self.num_vars):
            coeffs = interpolate(self._round_evaluations(tables))
            transcript.put(coeffs)
            r = transcript.challenge()

            round_polys.append(to_ints(coeffs))
            point.append(r)
            tables = [fold_table(t, r) for t in tables]

        final_values = [t[0] for t in tables]
        return SumcheckProof(round_polys=round_polys), point, final_values

    def _round_evaluations(self, tables: List[FF]) -> FF:
        """p(t) = sum over the remaining variables, with variable 0 set to t = 0..D."""
        lows = [t[0::2] for t in tables]
        diffs = [t[1::2] - t[0::2] for t in tables]

        evals = FF.Zeros(self.relation.degree + 1)
        current = lows
        for t in range(self.relation.degree + 1):
            evals[t] = field_sum(self.relation.combine(current))
            current = [c + d for c, d in zip(current, diffs)]
        return evals


# --- Verifier ---

class SumcheckVerifier:
    """Replays the rounds of one relation instance against a claimed sum."""

    def __init__(self, relation: SumcheckRelation, num_vars: int) -> None:
        self.relation = relation
        self.num_vars = num_vars

    def verify(self, claim: FF, proof: SumcheckProof, transcript: Transcript) -> SumcheckClaim:
        """Check every round; raise VerificationFailed on the first inconsistency."""
        if len(proof.round_polys) != self.num_vars:
            raise VerificationFailed(
                RejectReason.SHAPE_MISMATCH,
                f"expected {self.num_vars} rounds, got {len(proof.round_polys)}",
            )

        point: List[FF] = []
        for i, round_poly in enumerate(proof.round_polys):
            if len(round_poly) != self.relation.degree + 1:
                raise VerificationFailed(
                    RejectReason.SHAPE_MISMATCH,
                    f"round {i}: expected {self.relation.degree + 1} coefficients, got {len(round_poly)}",
                )
            coeffs = FF(round_poly)
            if coeffs[0] + field_sum(coeffs) != claim:
                raise VerificationFailed(
                    RejectReason.ROUND_SUM_MISMATCH,
                    f"round {i}: p(0) + p(1) differs from the running claim",
                )
            transcript.put(coeffs)
            r = transcript.challenge()
            point.append(r)
            claim = evaluate(coeffs, r)

        return SumcheckClaim(point=point, value=claim)


def check_final(relation: SumcheckRelation, claim: SumcheckClaim, oracle_values: Sequence[FF], label: str) -> None:
    """Compare the reduced claim with g evaluated from oracle values."""
    if relation.combine(oracle_values) != claim.value:
        raise VerificationFailed(
            RejectReason.FINAL_EVALUATION_MISMATCH,
            f"{label}: final evaluation does not match the oracle values",
        )
