"""R1CS verifier.

Replays the prover's transcript against the verifier key. Checks raise
VerificationFailed internally; verify() converts the first failure into a
rejected VerificationResult, so an adversarial proof never raises.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from fractal_spec.errors import ProtocolShapeMismatch, RejectReason, VerificationFailed
from fractal_spec.primitives.field import FF, ZERO, to_field
from fractal_spec.primitives.polynomial import eq_eval, mle_eval
from fractal_spec.primitives.transcript import Transcript
from fractal_spec.protocol.indexer import VerifierKey
from fractal_spec.protocol.pcs import OpeningClaim
from fractal_spec.protocol.proof import FractalProof, validate_proof_shape
from fractal_spec.protocol.r1cs import MATRIX_NAMES
from fractal_spec.protocol.sumcheck import (
    LinearCheckRelation,
    MatrixEncodingRelation,
    R1CSRelation,
    SumcheckClaim,
    SumcheckVerifier,
    check_final,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verify(); truthy iff the proof was accepted."""
    accepted: bool
    reason: Optional[RejectReason] = None
    detail: str = ""

    def __bool__(self) -> bool:
        return self.accepted


def verify(
    verifier_key: VerifierKey,
    public_input: Sequence[int],
    proof: FractalProof,
    transcript: Optional[Transcript] = None,
) -> VerificationResult:
    """
    Verify a proof for the statement (verifier_key, public_input).

    Args:
        verifier_key: Key produced by index()
        public_input: The first num_public entries of the assignment
        proof: Proof to check
        transcript: Fiat-Shamir transcript, seeded as the prover's (fresh if omitted)

    Returns:
        VerificationResult with the reject reason of the first failed check
    """
    transcript = transcript if transcript is not None else Transcript()
    try:
        _verify(verifier_key, public_input, proof, transcript)
    except VerificationFailed as e:
        logger.warning("Proof rejected [%s]: %s", e.reason.value, e.detail)
        return VerificationResult(accepted=False, reason=e.reason, detail=e.detail)
    logger.debug("Proof accepted")
    return VerificationResult(accepted=True)


def verify_bytes(
    verifier_key: VerifierKey,
    public_input: Sequence[int],
    data: bytes,
    transcript: Optional[Transcript] = None,
) -> VerificationResult:
    """Decode and verify an encoded proof; decoding failures reject with SHAPE_MISMATCH."""
    try:
        proof = FractalProof.from_bytes(data)
    except ProtocolShapeMismatch as e:
        logger.warning("Proof rejected [%s]: %s", RejectReason.SHAPE_MISMATCH.value, e)
        return VerificationResult(accepted=False, reason=RejectReason.SHAPE_MISMATCH, detail=str(e))
    return verify(verifier_key, public_input, proof, transcript)


def _verify(vk: VerifierKey, public_input: Sequence[int], proof: FractalProof, transcript: Transcript) -> None:
    params = vk.params

    # --- Shape ---
    if len(public_input) != params.num_public:
        raise VerificationFailed(
            RejectReason.SHAPE_MISMATCH,
            f"expected {params.num_public} public inputs, got {len(public_input)}",
        )
    errors = validate_proof_shape(proof, vk)
    if errors:
        raise VerificationFailed(RejectReason.SHAPE_MISMATCH, "; ".join(errors[:3]))

    # --- Statement and Witness Commitment ---
    x = to_field(public_input)
    vk.absorb(transcript, x)
    transcript.append(proof.witness_root)
    zeta = transcript.challenges(params.public_vars) if params.num_public > 0 else []
    tau = transcript.challenges(params.row_vars)

    # --- Outer Sumcheck ---
    outer_relation = R1CSRelation()
    outer = SumcheckVerifier(outer_relation, params.row_vars).verify(ZERO, proof.outer_sumcheck, transcript)
    r_x = outer.point
    v = FF(proof.rx_evals)
    check_final(outer_relation, outer, [eq_eval(tau, r_x), v[0], v[1], v[2]], "outer sumcheck")
    transcript.put(v)

    # --- Inner Sumcheck ---
    rho = transcript.challenges(len(MATRIX_NAMES))
    inner_relation = LinearCheckRelation()
    inner = SumcheckVerifier(inner_relation, params.col_vars).verify(_combine(rho, v), proof.inner_sumcheck, transcript)
    r_y = inner.point
    a = FF(proof.matrix_evals)
    z_ry = FF(proof.witness_eval)
    check_final(inner_relation, inner, [_combine(rho, a), z_ry], "inner sumcheck")
    transcript.put([*a, z_ry])

    # --- Matrix-Encoding Sumchecks ---
    matrix_claims: List[SumcheckClaim] = []
    for m, sc_proof in enumerate(proof.matrix_sumchecks):
        relation = MatrixEncodingRelation(r_x, r_y)
        claim = SumcheckVerifier(relation, params.matrix_vars(m)).verify(a[m], sc_proof, transcript)
        opening = proof.matrix_openings[m]
        oracle_values = to_field([opening.val_value, *opening.row_values, *opening.col_values])
        check_final(relation, claim, list(oracle_values), f"matrix {MATRIX_NAMES[m]} sumcheck")
        matrix_claims.append(claim)

    # --- Batched Opening ---
    commitments = vk.opening_commitments(proof.witness_root)
    claims = [OpeningClaim(commitments=commitments[0], point=r_y, values=[z_ry])]
    if params.num_public > 0:
        public_point = zeta + [ZERO] * (params.col_vars - params.public_vars)
        x_zeta = mle_eval(params.embed_public(x), zeta)
        claims.append(OpeningClaim(commitments=commitments[1], point=public_point, values=[x_zeta]))
    for m, (mc_list, claim) in enumerate(zip(commitments[-len(MATRIX_NAMES):], matrix_claims)):
        opening = proof.matrix_openings[m]
        values = to_field([*opening.row_values, *opening.col_values, opening.val_value])
        claims.append(OpeningClaim(commitments=mc_list, point=claim.point, values=list(values)))

    if not vk.pcs().verify_open(claims, proof.opening, transcript):
        raise VerificationFailed(
            RejectReason.OPENING_FAILED,
            "batched opening of the witness and matrix oracles",
        )


def _combine(rho: List[FF], values: FF) -> FF:
    acc = ZERO
    for r, value in zip(rho, values):
        acc = acc + r * value
    return acc
