"""Transparent holographic sumcheck argument for R1CS over the Goldilocks field."""

from fractal_spec.errors import (
    ArithmeticDomainError,
    FractalError,
    MalformedInstance,
    ProtocolShapeMismatch,
    RejectReason,
    VerificationFailed,
)
from fractal_spec.primitives.transcript import Transcript
from fractal_spec.protocol import (
    FractalConfig,
    FractalProof,
    Index,
    R1CSInstance,
    SparseMatrix,
    VerificationResult,
    VerifierKey,
    index,
    prove,
    verify,
    verify_bytes,
)

__version__ = "0.1.0"

__all__ = [
    "ArithmeticDomainError",
    "FractalError",
    "MalformedInstance",
    "ProtocolShapeMismatch",
    "RejectReason",
    "VerificationFailed",
    "Transcript",
    "FractalConfig",
    "FractalProof",
    "Index",
    "R1CSInstance",
    "SparseMatrix",
    "VerificationResult",
    "VerifierKey",
    "index",
    "prove",
    "verify",
    "verify_bytes",
]
