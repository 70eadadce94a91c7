"""Proof object, byte codec and structural validation.

Fields of FractalProof appear in the order the prover produces them. The byte
encoding follows the same order: field elements and nonces as <Q, counts as
<I, digests as 32 raw bytes.
"""

from dataclasses import dataclass, field
from typing import List

from fractal_spec.primitives.field import is_canonical
from fractal_spec.primitives.merkle_tree import HASH_SIZE, MerkleRoot, QueryProof
from fractal_spec.protocol.codec import ByteReader, ByteWriter
from fractal_spec.protocol.indexer import VerifierKey
from fractal_spec.protocol.pcs import OpeningProof, OpeningQuery
from fractal_spec.protocol.r1cs import MATRIX_NAMES
from fractal_spec.protocol.sumcheck import LinearCheckRelation, R1CSRelation, SumcheckProof

# --- Proof Data Classes ---

@dataclass
class MatrixOpening:
    """Row bits, col bits and value of one matrix's oracles at its sumcheck point."""
    row_values: List[int] = field(default_factory=list)
    col_values: List[int] = field(default_factory=list)
    val_value: int = 0


@dataclass
class FractalProof:
    """Complete proof for one R1CS statement.

    Attributes:
        witness_root: Commitment root of the padded assignment z
        outer_sumcheck: Rounds of the R1CS sumcheck over the rows
        rx_evals: [(Az)~(r_x), (Bz)~(r_x), (Cz)~(r_x)]
        inner_sumcheck: Rounds of the linear sumcheck over the columns
        matrix_evals: [A~(r_x, r_y), B~(r_x, r_y), C~(r_x, r_y)]
        witness_eval: z~(r_y)
        matrix_sumchecks: Matrix-encoding sumcheck rounds for A, B, C
        matrix_openings: Claimed row/col/val oracle values of A, B, C
        opening: One batched opening of z at r_y, z at (zeta, 0, ..., 0) when
            the statement has public input, and the oracles of A, B, C
    """
    witness_root: MerkleRoot = b""
    outer_sumcheck: SumcheckProof = field(default_factory=SumcheckProof)
    rx_evals: List[int] = field(default_factory=list)
    inner_sumcheck: SumcheckProof = field(default_factory=SumcheckProof)
    matrix_evals: List[int] = field(default_factory=list)
    witness_eval: int = 0
    matrix_sumchecks: List[SumcheckProof] = field(default_factory=list)
    matrix_openings: List[MatrixOpening] = field(default_factory=list)
    opening: OpeningProof = field(default_factory=OpeningProof)

    def to_bytes(self) -> bytes:
        writer = ByteWriter()
        writer.write_digest(self.witness_root)
        _write_sumcheck(writer, self.outer_sumcheck)
        writer.write_fields(self.rx_evals)
        _write_sumcheck(writer, self.inner_sumcheck)
        writer.write_fields(self.matrix_evals)
        writer.write_field(self.witness_eval)
        writer.write_u32(len(self.matrix_sumchecks))
        for sc in self.matrix_sumchecks:
            _write_sumcheck(writer, sc)
        writer.write_u32(len(self.matrix_openings))
        for mo in self.matrix_openings:
            writer.write_fields(mo.row_values)
            writer.write_fields(mo.col_values)
            writer.write_field(mo.val_value)
        _write_opening(writer, self.opening)
        return writer.to_bytes()

    @classmethod
    def from_bytes(cls, data: bytes) -> "FractalProof":
        """Decode a proof.

        Raises:
            ProtocolShapeMismatch: On truncation, trailing bytes, non-canonical
                field elements or malformed counts
        """
        reader = ByteReader(data)
        proof = cls()
        proof.witness_root = reader.read_digest()
        proof.outer_sumcheck = _read_sumcheck(reader)
        proof.rx_evals = reader.read_fields()
        proof.inner_sumcheck = _read_sumcheck(reader)
        proof.matrix_evals = reader.read_fields()
        proof.witness_eval = reader.read_field()
        proof.matrix_sumchecks = [_read_sumcheck(reader) for _ in range(reader.read_count(4))]
        proof.matrix_openings = [
            MatrixOpening(
                row_values=reader.read_fields(),
                col_values=reader.read_fields(),
                val_value=reader.read_field(),
            )
            for _ in range(reader.read_count(16))
        ]
        proof.opening = _read_opening(reader)
        reader.finish()
        return proof


# --- Codec Helpers ---

def _write_sumcheck(writer: ByteWriter, proof: SumcheckProof) -> None:
    writer.write_u32(len(proof.round_polys))
    for coeffs in proof.round_polys:
        writer.write_fields(coeffs)


def _read_sumcheck(reader: ByteReader) -> SumcheckProof:
    return SumcheckProof(round_polys=[reader.read_fields() for _ in range(reader.read_count(4))])


def _write_digests(writer: ByteWriter, digests: List[bytes]) -> None:
    writer.write_u32(len(digests))
    for d in digests:
        writer.write_digest(d)


def _read_digests(reader: ByteReader) -> List[bytes]:
    return [reader.read_digest() for _ in range(reader.read_count(HASH_SIZE))]


def _write_query_proof(writer: ByteWriter, qp: QueryProof) -> None:
    writer.write_u32(len(qp.v))
    for col in qp.v:
        writer.write_fields(col)
    writer.write_u32(len(qp.mp))
    for level in qp.mp:
        _write_digests(writer, level)


def _read_query_proof(reader: ByteReader) -> QueryProof:
    v = [reader.read_fields() for _ in range(reader.read_count(4))]
    mp = [_read_digests(reader) for _ in range(reader.read_count(4))]
    return QueryProof(v=v, mp=mp)


def _write_query_proofs(writer: ByteWriter, proofs: List[QueryProof]) -> None:
    writer.write_u32(len(proofs))
    for qp in proofs:
        _write_query_proof(writer, qp)


def _read_query_proofs(reader: ByteReader) -> List[QueryProof]:
    return [_read_query_proof(reader) for _ in range(reader.read_count(8))]


def _write_opening(writer: ByteWriter, proof: OpeningProof) -> None:
    writer.write_u32(len(proof.fold_roots))
    for roots in proof.fold_roots:
        _write_digests(writer, roots)
    writer.write_u32(len(proof.fold_evals))
    for pairs in proof.fold_evals:
        writer.write_u32(len(pairs))
        for pair in pairs:
            writer.write_fields(pair)
    _write_digests(writer, proof.fri_roots)
    writer.write_field(proof.final_value)
    writer.write_u64(proof.nonce)
    writer.write_u32(len(proof.queries))
    for query in proof.queries:
        _write_query_proofs(writer, query.oracle_proofs)
        _write_query_proofs(writer, query.fold_proofs)
        _write_query_proofs(writer, query.fri_proofs)


def _read_opening(reader: ByteReader) -> OpeningProof:
    fold_roots = [_read_digests(reader) for _ in range(reader.read_count(4))]
    fold_evals = [
        [reader.read_fields() for _ in range(reader.read_count(4))]
        for _ in range(reader.read_count(4))
    ]
    fri_roots = _read_digests(reader)
    final_value = reader.read_field()
    nonce = reader.read_u64()
    queries = [
        OpeningQuery(
            oracle_proofs=_read_query_proofs(reader),
            fold_proofs=_read_query_proofs(reader),
            fri_proofs=_read_query_proofs(reader),
        )
        for _ in range(reader.read_count(12))
    ]
    return OpeningProof(
        fold_roots=fold_roots,
        fold_evals=fold_evals,
        fri_roots=fri_roots,
        final_value=final_value,
        nonce=nonce,
        queries=queries,
    )


# --- Shape Validation ---

def _sumcheck_errors(proof: SumcheckProof, rounds: int, degree: int, label: str) -> List[str]:
    errors = []
    if len(proof.round_polys) != rounds:
        errors.append(f"{label}: expected {rounds} rounds, got {len(proof.round_polys)}")
        return errors
    for i, coeffs in enumerate(proof.round_polys):
        if len(coeffs) != degree + 1:
            errors.append(f"{label} round {i}: expected {degree + 1} coefficients, got {len(coeffs)}")
        elif not _all_elements(coeffs):
            errors.append(f"{label} round {i}: coefficient is not a canonical field element")
    return errors


def _all_elements(values: List[int]) -> bool:
    return all(isinstance(v, int) and is_canonical(v) for v in values)


def validate_proof_shape(proof: FractalProof, vk: VerifierKey) -> List[str]:
    """
    Validate the structure of a proof against a verifier key.

    Args:
        proof: FractalProof to validate
        vk: Verifier key fixing every round count, degree and opening shape

    Returns:
        List of error messages (empty if valid)
    """
    errors: List[str] = []
    params = vk.params
    n_matrices = len(MATRIX_NAMES)

    if not isinstance(proof.witness_root, bytes) or len(proof.witness_root) != HASH_SIZE:
        errors.append("Witness root is not a digest")

    errors.extend(_sumcheck_errors(proof.outer_sumcheck, params.row_vars, R1CSRelation.degree, "outer sumcheck"))
    errors.extend(_sumcheck_errors(proof.inner_sumcheck, params.col_vars, LinearCheckRelation.degree, "inner sumcheck"))

    if len(proof.rx_evals) != n_matrices or not _all_elements(proof.rx_evals):
        errors.append(f"Expected {n_matrices} canonical row evaluations")
    if len(proof.matrix_evals) != n_matrices or not _all_elements(proof.matrix_evals):
        errors.append(f"Expected {n_matrices} canonical matrix evaluations")
    if not _all_elements([proof.witness_eval]):
        errors.append("Witness evaluation is not a canonical field element")

    encoding_degree = 1 + params.row_vars + params.col_vars
    if len(proof.matrix_sumchecks) != n_matrices:
        errors.append(f"Expected {n_matrices} matrix sumchecks, got {len(proof.matrix_sumchecks)}")
    else:
        for m, sc in enumerate(proof.matrix_sumchecks):
            errors.extend(_sumcheck_errors(
                sc, params.matrix_vars(m), encoding_degree, f"matrix {MATRIX_NAMES[m]} sumcheck"
            ))

    if errors:
        return errors

    if len(proof.matrix_openings) != n_matrices:
        errors.append(f"Expected {n_matrices} matrix openings, got {len(proof.matrix_openings)}")
        return errors
    for m, mo in enumerate(proof.matrix_openings):
        name = MATRIX_NAMES[m]
        if len(mo.row_values) != params.row_vars or not _all_elements(mo.row_values):
            errors.append(f"matrix {name}: expected {params.row_vars} canonical row values")
        if len(mo.col_values) != params.col_vars or not _all_elements(mo.col_values):
            errors.append(f"matrix {name}: expected {params.col_vars} canonical col values")
        if not _all_elements([mo.val_value]):
            errors.append(f"matrix {name}: value is not a canonical field element")

    errors.extend(
        f"opening: {e}"
        for e in vk.pcs().opening_shape_errors(proof.opening, vk.opening_commitments(proof.witness_root))
    )
    return errors
