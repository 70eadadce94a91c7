"""Indexer: offline preprocessing of an R1CS instance.

The indexer fixes the padded layout of the instance, sorts the nonzero entries
of A, B and C into parallel row/col/val vectors, and commits to each vector
with the multilinear PCS. The verifier key holds only the dimensions, the
config and the commitments, so verification never touches the matrices.

Padded layout:

    public block   positions [0, k)        k' = next_pow2(k)
    private vars   c >= k  ->  c - k + k'
    columns        N_y = next_pow2(max(k' + m - k, 2))
    rows           N_x = next_pow2(max(n, 2))
    entries        K   = next_pow2(max(nnz, 2)), padded with (0, 0, 0)
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import blake3
import numpy as np

from fractal_spec.errors import MalformedInstance, ProtocolShapeMismatch
from fractal_spec.primitives.field import FF, GOLDILOCKS_PRIME, to_field, to_ints
from fractal_spec.primitives.merkle_tree import MerkleRoot
from fractal_spec.primitives.ntt import log2, next_power_of_two
from fractal_spec.primitives.polynomial import bit_columns, field_sum
from fractal_spec.primitives.transcript import Transcript
from fractal_spec.protocol.codec import ByteReader, ByteWriter
from fractal_spec.protocol.config import CONFIG_BYTES, FractalConfig
from fractal_spec.protocol.pcs import Commitment, CommittedOracle, MultilinearPcs
from fractal_spec.protocol.r1cs import MATRIX_NAMES, R1CSInstance, SparseMatrix
from fractal_spec.protocol.sumcheck import LinearCheckRelation, R1CSRelation

logger = logging.getLogger(__name__)

VK_DOMAIN = b"fractal-spec/verifier-key/v1"


# --- Index Parameters ---

@dataclass(frozen=True)
class IndexParams:
    """Dimensions of an indexed instance; every padded size derives from these."""
    num_constraints: int
    num_variables: int
    num_public: int
    num_non_zero: Tuple[int, int, int]

    @property
    def public_size(self) -> int:
        """k': the public block padded to a power of two (0 without public input)."""
        return next_power_of_two(self.num_public) if self.num_public > 0 else 0

    @property
    def public_vars(self) -> int:
        return log2(self.public_size) if self.num_public > 0 else 0

    @property
    def num_rows(self) -> int:
        return next_power_of_two(max(self.num_constraints, 2))

    @property
    def num_cols(self) -> int:
        return next_power_of_two(max(self.public_size + self.num_variables - self.num_public, 2))

    @property
    def row_vars(self) -> int:
        return log2(self.num_rows)

    @property
    def col_vars(self) -> int:
        return log2(self.num_cols)

    def matrix_size(self, m: int) -> int:
        """K for matrix m."""
        return next_power_of_two(max(self.num_non_zero[m], 2))

    def matrix_vars(self, m: int) -> int:
        return log2(self.matrix_size(m))

    @property
    def domain_vars(self) -> int:
        """Variables of the largest committed table; every oracle shares its evaluation domain."""
        return max(self.col_vars, *(self.matrix_vars(m) for m in range(len(MATRIX_NAMES))))

    def column_position(self, col: int) -> int:
        """Padded position of original variable `col`."""
        if col < self.num_public:
            return col
        return col - self.num_public + self.public_size

    def embed_witness(self, witness: Sequence[int]) -> FF:
        """Full assignment z laid out on the padded column domain."""
        if len(witness) != self.num_variables:
            raise MalformedInstance(
                f"Witness has {len(witness)} entries, instance has {self.num_variables} variables"
            )
        z = FF.Zeros(self.num_cols)
        values = to_field(witness)
        for c in range(self.num_variables):
            z[self.column_position(c)] = values[c]
        return z

    def embed_public(self, public_input: Sequence[int]) -> FF:
        """Public input zero-padded to k'."""
        x = FF.Zeros(self.public_size)
        x[:self.num_public] = to_field(public_input)
        return x

    def write(self, writer: ByteWriter) -> None:
        writer.write_u64(self.num_constraints)
        writer.write_u64(self.num_variables)
        writer.write_u64(self.num_public)
        for nnz in self.num_non_zero:
            writer.write_u64(nnz)

    @classmethod
    def read(cls, reader: ByteReader) -> "IndexParams":
        n, m, k = reader.read_u64(), reader.read_u64(), reader.read_u64()
        nnz = tuple(reader.read_u64() for _ in MATRIX_NAMES)
        if n == 0 or m == 0 or k > m:
            raise MalformedInstance(f"Invalid index dimensions n={n}, m={m}, k={k}")
        return cls(num_constraints=n, num_variables=m, num_public=k, num_non_zero=nnz)


# --- Indexed Matrix ---

@dataclass(frozen=True, eq=False)
class IndexedMatrix:
    """Sorted nonzero entries of one matrix as parallel vectors of length K.

    Positions past num_non_zero hold the padding entry (0, 0, 0). Columns are
    already mapped to padded positions.
    """
    name: str
    row: np.ndarray  # int64
    col: np.ndarray  # int64
    val: FF
    num_non_zero: int

    @property
    def size(self) -> int:
        return len(self.val)

    def row_bits(self, n_bits: int) -> FF:
        return bit_columns(self.row, n_bits)

    def col_bits(self, n_bits: int) -> FF:
        return bit_columns(self.col, n_bits)

    def multiply(self, z: FF, num_rows: int) -> FF:
        """M z over the padded domains."""
        products = to_ints(self.val * z[self.col])
        out = FF.Zeros(num_rows)
        for r, v in zip(self.row.tolist(), products):
            out[r] += FF(v)
        return out

    def bind_rows(self, eq_rx: FF, num_cols: int) -> FF:
        """Table of M(r_x, y) over y, given the table of eq(r_x, .)."""
        weights = to_ints(self.val * eq_rx[self.row])
        out = FF.Zeros(num_cols)
        for c, v in zip(self.col.tolist(), weights):
            out[c] += FF(v)
        return out

    def evaluate(self, eq_rx: FF, eq_ry: FF) -> FF:
        """M~(r_x, r_y) = sum_k val[k] eq(r_x, row[k]) eq(r_y, col[k])."""
        return field_sum(self.val * eq_rx[self.row] * eq_ry[self.col])

    def encoding_tables(self, row_vars: int, col_vars: int) -> List[FF]:
        """Tables of the matrix-encoding sumcheck: val, row bits, col bits."""
        return [self.val, *self.row_bits(row_vars), *self.col_bits(col_vars)]


def index_matrix(matrix: SparseMatrix, params: IndexParams, m: int) -> IndexedMatrix:
    size = params.matrix_size(m)
    rows = np.zeros(size, dtype=np.int64)
    cols = np.zeros(size, dtype=np.int64)
    vals = [0] * size
    entries = matrix.entries()
    for k, (r, c, v) in enumerate(entries):
        rows[k] = r
        cols[k] = params.column_position(c)
        vals[k] = v
    return _frozen_matrix(matrix.name, rows, cols, FF(vals), len(entries))


def _frozen_matrix(name: str, rows: np.ndarray, cols: np.ndarray, vals: FF, nnz: int) -> IndexedMatrix:
    rows.flags.writeable = False
    cols.flags.writeable = False
    vals.flags.writeable = False
    return IndexedMatrix(name=name, row=rows, col=cols, val=vals, num_non_zero=nnz)


# --- Commitments ---

@dataclass(frozen=True)
class MatrixCommitment:
    """Commitments to the row, col and val oracles of one matrix."""
    row: Commitment
    col: Commitment
    val: Commitment

    def roots(self) -> Tuple[MerkleRoot, MerkleRoot, MerkleRoot]:
        return (self.row.root, self.col.root, self.val.root)

    def as_list(self) -> List[Commitment]:
        return [self.row, self.col, self.val]


@dataclass(frozen=True, eq=False)
class MatrixOracles:
    """Prover-side committed oracles of one matrix."""
    row: CommittedOracle
    col: CommittedOracle
    val: CommittedOracle

    def as_list(self) -> List[CommittedOracle]:
        return [self.row, self.col, self.val]

    def commitment(self) -> MatrixCommitment:
        return MatrixCommitment(row=self.row.commitment, col=self.col.commitment, val=self.val.commitment)


# --- Verifier Key ---

@dataclass(frozen=True)
class VerifierKey:
    """Everything the verifier knows about the instance."""
    params: IndexParams
    config: FractalConfig
    matrix_commitments: Tuple[MatrixCommitment, MatrixCommitment, MatrixCommitment]

    def to_bytes(self) -> bytes:
        writer = ByteWriter()
        self.params.write(writer)
        writer.write_bytes(self.config.to_bytes())
        for mc in self.matrix_commitments:
            for root in mc.roots():
                writer.write_digest(root)
        return writer.to_bytes()

    @classmethod
    def from_bytes(cls, data: bytes) -> "VerifierKey":
        reader = ByteReader(data)
        params = IndexParams.read(reader)
        config = _read_config(reader)
        commitments = []
        for m in range(len(MATRIX_NAMES)):
            num_vars = params.matrix_vars(m)
            commitments.append(MatrixCommitment(
                row=Commitment(root=reader.read_digest(), n_cols=params.row_vars, num_vars=num_vars),
                col=Commitment(root=reader.read_digest(), n_cols=params.col_vars, num_vars=num_vars),
                val=Commitment(root=reader.read_digest(), n_cols=1, num_vars=num_vars),
            ))
        reader.finish()
        return cls(params=params, config=config, matrix_commitments=tuple(commitments))

    def digest(self) -> bytes:
        return blake3.blake3(VK_DOMAIN + self.to_bytes()).digest()

    def field_security_bits(self) -> int:
        """Soundness bits left by drawing every challenge from the 64-bit base field.

        Union bound over the Schwartz-Zippel events of the argument, each at
        most (degree / p): every sumcheck round, the eq batching of tau and
        zeta, rho, the Gemini point beta against each claim's layers, and
        each FRI fold against the evaluation domain. More queries do not
        raise this bound.
        """
        p = self.params
        n_matrices = len(MATRIX_NAMES)
        d = p.domain_vars
        encoding_degree = 1 + p.row_vars + p.col_vars
        n_claims = 1 + (1 if p.num_public > 0 else 0) + n_matrices
        weight = (
            R1CSRelation.degree * p.row_vars
            + LinearCheckRelation.degree * p.col_vars
            + sum(p.matrix_vars(m) * encoding_degree for m in range(n_matrices))
            + p.row_vars + p.public_vars + n_matrices
            + n_claims * 2 * d * (1 << d)
            + d * (1 << (d + self.config.blowup_bits))
        )
        return (GOLDILOCKS_PRIME.bit_length() - 1) - (weight - 1).bit_length()

    def security_bits(self) -> int:
        """Conjectured soundness of proofs under this key: query bound capped by the field bound."""
        return min(self.config.security_bits(), self.field_security_bits())

    def pcs(self) -> MultilinearPcs:
        return MultilinearPcs(self.config, self.params.domain_vars)

    def opening_commitments(self, witness_root: MerkleRoot) -> List[List[Commitment]]:
        """Commitments of each claim in the batched opening, in proof order.

        z at r_y, z at (zeta, 0, ..., 0) when there is public input, then the
        row/col/val oracles of A, B and C.
        """
        witness = [Commitment(root=witness_root, n_cols=1, num_vars=self.params.col_vars)]
        claims = [witness]
        if self.params.num_public > 0:
            claims.append(witness)
        claims.extend(mc.as_list() for mc in self.matrix_commitments)
        return claims

    def absorb(self, transcript: Transcript, public_input: Sequence[int]) -> None:
        """Bind the statement: key digest, then the public input."""
        transcript.append(self.digest())
        transcript.put(to_field(public_input))


# --- Index ---

@dataclass(frozen=True, eq=False)
class Index:
    """Prover key: the indexed matrices, their committed oracles and the verifier key."""
    params: IndexParams
    config: FractalConfig
    matrices: Tuple[IndexedMatrix, IndexedMatrix, IndexedMatrix]
    oracles: Tuple[MatrixOracles, MatrixOracles, MatrixOracles]
    verifier_key: VerifierKey

    def to_bytes(self) -> bytes:
        writer = ByteWriter()
        self.params.write(writer)
        writer.write_bytes(self.config.to_bytes())
        for matrix in self.matrices:
            for r, c, v in zip(matrix.row.tolist(), matrix.col.tolist(), to_ints(matrix.val)):
                writer.write_u64(r)
                writer.write_u64(c)
                writer.write_field(v)
        return writer.to_bytes()

    @classmethod
    def from_bytes(cls, data: bytes) -> "Index":
        """Decode the stored vectors and recommit them."""
        reader = ByteReader(data)
        params = IndexParams.read(reader)
        config = _read_config(reader)
        matrices = []
        for m, name in enumerate(MATRIX_NAMES):
            size = params.matrix_size(m)
            if size * 24 > reader.remaining():
                raise ProtocolShapeMismatch(f"Matrix {name} needs {size} entries, input is truncated")
            rows = np.zeros(size, dtype=np.int64)
            cols = np.zeros(size, dtype=np.int64)
            vals = []
            for k in range(size):
                row, col = reader.read_u64(), reader.read_u64()
                if row >= params.num_rows or col >= params.num_cols:
                    raise MalformedInstance(f"Matrix {name} entry {k} ({row}, {col}) outside the padded domain")
                rows[k] = row
                cols[k] = col
                vals.append(reader.read_field())
            matrices.append(_frozen_matrix(name, rows, cols, FF(vals), params.num_non_zero[m]))
        reader.finish()
        return _commit_index(params, config, tuple(matrices))


def _read_config(reader: ByteReader) -> FractalConfig:
    try:
        return FractalConfig.from_bytes(reader.read_bytes(CONFIG_BYTES))
    except ValueError as e:
        raise MalformedInstance(f"Invalid config: {e}") from e


def _commit_index(
    params: IndexParams,
    config: FractalConfig,
    matrices: Tuple[IndexedMatrix, IndexedMatrix, IndexedMatrix],
) -> Index:
    pcs = MultilinearPcs(config, params.domain_vars)
    oracles = tuple(
        MatrixOracles(
            row=pcs.commit(matrix.row_bits(params.row_vars)),
            col=pcs.commit(matrix.col_bits(params.col_vars)),
            val=pcs.commit(matrix.val),
        )
        for matrix in matrices
    )
    vk = VerifierKey(
        params=params,
        config=config,
        matrix_commitments=tuple(o.commitment() for o in oracles),
    )
    return Index(params=params, config=config, matrices=matrices, oracles=oracles, verifier_key=vk)


# --- Indexing ---

def index(r1cs: R1CSInstance, config: Optional[FractalConfig] = None) -> Index:
    """Index an R1CS instance: sort, pad and commit its matrices.

    Args:
        r1cs: Instance to index
        config: Argument parameters (defaults to FractalConfig())

    Returns:
        Index holding the prover data and the verifier key

    Raises:
        MalformedInstance: If the instance is inconsistent or exceeds config limits
    """
    config = config or FractalConfig()
    r1cs.validate(config)

    params = IndexParams(
        num_constraints=r1cs.num_constraints,
        num_variables=r1cs.num_variables,
        num_public=r1cs.num_public,
        num_non_zero=tuple(m.num_non_zero() for m in r1cs.matrices()),
    )
    matrices = tuple(index_matrix(m, params, i) for i, m in enumerate(r1cs.matrices()))
    idx = _commit_index(params, config, matrices)

    logger.info(
        "Indexed %d constraints x %d variables (%d public), nnz A/B/C = %s, domain %dx%d, ~%d-bit security",
        params.num_constraints, params.num_variables, params.num_public,
        "/".join(str(n) for n in params.num_non_zero), params.num_rows, params.num_cols,
        idx.verifier_key.security_bits(),
    )
    return idx
