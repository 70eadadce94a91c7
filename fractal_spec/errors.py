"""Error taxonomy for indexing, proving and verification.

Indexing and shape errors fail fast, before any cryptographic work is done.
Verification outcomes are never exceptions at the API boundary: the verifier
raises VerificationFailed internally and converts it into a VerificationResult.
"""

from enum import Enum


class RejectReason(str, Enum):
    """Machine-readable reason attached to a rejected proof."""

    SHAPE_MISMATCH = "SHAPE_MISMATCH"  # round count, opening count, encoding
    ROUND_SUM_MISMATCH = "ROUND_SUM_MISMATCH"  # p(0) + p(1) != running claim
    FINAL_EVALUATION_MISMATCH = "FINAL_EVALUATION_MISMATCH"  # last claim vs oracle values
    OPENING_FAILED = "OPENING_FAILED"  # low-degree oracle opening rejected


class FractalError(Exception):
    """Base class for all errors raised by fractal_spec."""


class MalformedInstance(FractalError, ValueError):
    """Structurally invalid R1CS matrices, witness or index."""


class ProtocolShapeMismatch(FractalError, ValueError):
    """Proof bytes or proof object that do not fit the verifier key."""


class ArithmeticDomainError(FractalError, ArithmeticError):
    """Field operation outside its domain, e.g. inverting zero."""


class VerificationFailed(FractalError):
    """A verifier check failed.

    Attributes:
        reason: RejectReason classifying the failed check
        detail: Human-readable description of which check failed
    """

    def __init__(self, reason: RejectReason, detail: str = "") -> None:
        super().__init__(f"[{reason.value}] {detail}" if detail else f"[{reason.value}]")
        self.reason = reason
        self.detail = detail
