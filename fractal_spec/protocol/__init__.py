"""Protocol - Indexer, sumcheck argument, low-degree oracle, prover and verifier."""

from fractal_spec.protocol.config import FractalConfig
from fractal_spec.protocol.fri import FRI
from fractal_spec.protocol.indexer import (
    Index,
    IndexedMatrix,
    IndexParams,
    MatrixCommitment,
    VerifierKey,
    index,
)
from fractal_spec.protocol.pcs import (
    Commitment,
    CommittedOracle,
    MultilinearPcs,
    Nonce,
    OpeningClaim,
    OpeningProof,
    OpeningQuery,
    QueryIndex,
)
from fractal_spec.protocol.proof import FractalProof, MatrixOpening, validate_proof_shape
from fractal_spec.protocol.prover import prove
from fractal_spec.protocol.r1cs import R1CSInstance, SparseMatrix
from fractal_spec.protocol.sumcheck import (
    LinearCheckRelation,
    MatrixEncodingRelation,
    R1CSRelation,
    SumcheckClaim,
    SumcheckProof,
    SumcheckProver,
    SumcheckRelation,
    SumcheckVerifier,
)
from fractal_spec.protocol.verifier import VerificationResult, verify, verify_bytes

__all__ = [
    # Configuration
    "FractalConfig",
    # R1CS
    "R1CSInstance",
    "SparseMatrix",
    # Indexer
    "Index",
    "IndexedMatrix",
    "IndexParams",
    "MatrixCommitment",
    "VerifierKey",
    "index",
    # Sumcheck
    "SumcheckRelation",
    "R1CSRelation",
    "LinearCheckRelation",
    "MatrixEncodingRelation",
    "SumcheckProver",
    "SumcheckVerifier",
    "SumcheckProof",
    "SumcheckClaim",
    # Low-degree oracle
    "FRI",
    "MultilinearPcs",
    "Commitment",
    "CommittedOracle",
    "OpeningClaim",
    "OpeningProof",
    "OpeningQuery",
    "Nonce",
    "QueryIndex",
    # Proof
    "FractalProof",
    "MatrixOpening",
    "validate_proof_shape",
    # Prover / Verifier
    "prove",
    "verify",
    "verify_bytes",
    "VerificationResult",
]
