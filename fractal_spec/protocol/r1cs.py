"""Rank-1 constraint systems: sparse matrices and instances.

An instance (A, B, C) over n constraints and m variables is satisfied by a
witness z of length m when (A z) * (B z) = (C z) elementwise. The first
num_public entries of z are the public input.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from fractal_spec.errors import MalformedInstance
from fractal_spec.primitives.field import FF, GOLDILOCKS_PRIME, to_field
from fractal_spec.primitives.ntt import next_power_of_two
from fractal_spec.protocol.config import FractalConfig

# --- Type Aliases ---

Entry = Tuple[int, int, int]  # (row, col, canonical value)

MATRIX_NAMES = ("A", "B", "C")


# --- Sparse Matrix ---

class SparseMatrix:
    """Row-compressed sparse matrix; each row maps column -> nonzero value."""

    def __init__(self, name: str, num_rows: int, num_cols: int) -> None:
        if num_rows < 0 or num_cols < 0:
            raise MalformedInstance(f"Matrix {name} has negative dimensions ({num_rows}, {num_cols})")
        self.name = name
        self.num_cols = num_cols
        self.rows: List[Dict[int, int]] = [{} for _ in range(num_rows)]

    @classmethod
    def from_dense(cls, name: str, rows: Sequence[Sequence[int]]) -> "SparseMatrix":
        """Build from a list of equal-length rows; zero entries are dropped."""
        num_cols = len(rows[0]) if rows else 0
        matrix = cls(name, 0, num_cols)
        for i, row in enumerate(rows):
            if len(row) != num_cols:
                raise MalformedInstance(
                    f"Matrix {name} row {i} has {len(row)} entries, expected {num_cols}"
                )
            matrix.add_row(row)
        return matrix

    @classmethod
    def from_entries(
        cls,
        name: str,
        num_rows: int,
        num_cols: int,
        entries: Iterable[Tuple[int, int, int]],
    ) -> "SparseMatrix":
        """Build from (row, col, value) triples; duplicates are rejected."""
        matrix = cls(name, num_rows, num_cols)
        for row, col, value in entries:
            if not (0 <= row < num_rows and 0 <= col < num_cols):
                raise MalformedInstance(
                    f"Matrix {name} entry ({row}, {col}) outside dimensions ({num_rows}, {num_cols})"
                )
            if col in matrix.rows[row]:
                raise MalformedInstance(f"Matrix {name} has duplicate entry ({row}, {col})")
            value = int(value) % GOLDILOCKS_PRIME
            if value != 0:
                matrix.rows[row][col] = value
        return matrix

    # --- Shape ---

    @property
    def num_rows(self) -> int:
        return len(self.rows)

    @property
    def dims(self) -> Tuple[int, int]:
        return (self.num_rows, self.num_cols)

    def num_non_zero(self) -> int:
        """L0 norm: number of nonzero entries."""
        return sum(len(row) for row in self.rows)

    def entries(self) -> List[Entry]:
        """Nonzero entries sorted by (row, col)."""
        return [
            (r, c, row[c])
            for r, row in enumerate(self.rows)
            for c in sorted(row)
        ]

    # --- Arithmetic ---

    def dot(self, z: Sequence[int]) -> FF:
        """Sparse matrix-vector product M z."""
        if len(z) != self.num_cols:
            raise MalformedInstance(f"Vector of length {len(z)} does not match {self.num_cols} columns of {self.name}")
        z_ff = to_field(z)
        out = FF.Zeros(self.num_rows)
        for r, row in enumerate(self.rows):
            for c, value in row.items():
                out[r] += FF(value) * z_ff[c]
        return out

    # --- Mutation ---

    def add_row(self, row: Sequence[int]) -> None:
        """Append a dense row."""
        if len(row) != self.num_cols:
            raise MalformedInstance(f"Row of length {len(row)} does not match {self.num_cols} columns of {self.name}")
        compressed = {}
        for col, value in enumerate(row):
            value = int(value) % GOLDILOCKS_PRIME
            if value != 0:
                compressed[col] = value
        self.rows.append(compressed)

    def define_rows(self, num_rows: int) -> None:
        """Grow to num_rows by appending zero rows."""
        if num_rows < self.num_rows:
            raise MalformedInstance(f"Attempted to reduce rows of {self.name}")
        self.rows.extend({} for _ in range(num_rows - self.num_rows))

    def define_cols(self, num_cols: int) -> None:
        """Grow the declared column count."""
        if num_cols < self.num_cols:
            raise MalformedInstance(f"Attempted to reduce columns of {self.name}")
        self.num_cols = num_cols

    def pad_power_two(self) -> None:
        self.define_cols(next_power_of_two(self.num_cols))
        self.define_rows(next_power_of_two(self.num_rows))

    def make_square(self) -> None:
        size = max(self.num_rows, self.num_cols)
        self.define_cols(size)
        self.define_rows(size)

    def to_dense(self) -> List[List[int]]:
        dense = [[0] * self.num_cols for _ in range(self.num_rows)]
        for r, c, value in self.entries():
            dense[r][c] = value
        return dense

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SparseMatrix):
            return NotImplemented
        return self.dims == other.dims and self.rows == other.rows

    def __repr__(self) -> str:
        return f"SparseMatrix({self.name!r}, dims={self.dims}, nnz={self.num_non_zero()})"


# --- R1CS Instance ---

@dataclass
class R1CSInstance:
    """Matrices A, B, C sharing dimensions, plus the public input length."""
    a: SparseMatrix
    b: SparseMatrix
    c: SparseMatrix
    num_public: int = 0

    def __post_init__(self) -> None:
        for m in (self.b, self.c):
            if m.dims != self.a.dims:
                raise MalformedInstance(
                    f"Matrix size mismatch: {self.a.name}{self.a.dims} vs {m.name}{m.dims}"
                )
        if self.num_constraints == 0 or self.num_variables == 0:
            raise MalformedInstance(f"Empty instance with dimensions {self.a.dims}")
        if not 0 <= self.num_public <= self.num_variables:
            raise MalformedInstance(
                f"num_public={self.num_public} outside [0, {self.num_variables}]"
            )

    @classmethod
    def from_dense(
        cls,
        a: Sequence[Sequence[int]],
        b: Sequence[Sequence[int]],
        c: Sequence[Sequence[int]],
        num_public: int = 0,
    ) -> "R1CSInstance":
        return cls(
            SparseMatrix.from_dense("A", a),
            SparseMatrix.from_dense("B", b),
            SparseMatrix.from_dense("C", c),
            num_public=num_public,
        )

    @property
    def num_constraints(self) -> int:
        return self.a.num_rows

    @property
    def num_variables(self) -> int:
        return self.a.num_cols

    def matrices(self) -> Tuple[SparseMatrix, SparseMatrix, SparseMatrix]:
        return (self.a, self.b, self.c)

    def validate(self, config: Optional[FractalConfig] = None) -> None:
        """Raise MalformedInstance if the instance exceeds the configured limits."""
        config = config or FractalConfig()
        if self.num_constraints > config.max_constraints:
            raise MalformedInstance(
                f"{self.num_constraints} constraints exceed max_constraints={config.max_constraints}"
            )
        if self.num_variables > config.max_variables:
            raise MalformedInstance(
                f"{self.num_variables} variables exceed max_variables={config.max_variables}"
            )
        for m in self.matrices():
            if m.num_non_zero() > config.max_non_zero:
                raise MalformedInstance(
                    f"Matrix {m.name} has {m.num_non_zero()} nonzeros, max_non_zero={config.max_non_zero}"
                )

    def is_satisfied(self, z: Sequence[int]) -> bool:
        """Check (A z) * (B z) == (C z) elementwise."""
        az, bz, cz = (m.dot(z) for m in self.matrices())
        return bool(np.array_equal(az * bz, cz))

    def public_input(self, z: Sequence[int]) -> List[int]:
        return [int(v) % GOLDILOCKS_PRIME for v in z[:self.num_public]]
