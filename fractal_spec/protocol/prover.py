"""R1CS prover.

Protocol order (the verifier replays it exactly):

1. Absorb the verifier key digest and the public input.
2. Commit z, absorb its root, draw zeta and tau.
3. Outer sumcheck over rows; send (Az)~, (Bz)~, (Cz)~ at r_x.
4. Draw rho; inner sumcheck over columns; send A~, B~, C~ at (r_x, r_y) and z~(r_y).
5. Matrix-encoding sumcheck for A, B, C.
6. One batched opening: z at r_y, z at (zeta, 0, ..., 0), and each matrix's
   row/col/val oracles at its sumcheck point.
"""

import logging
from typing import List, Optional, Sequence

from fractal_spec.primitives.field import FF, ZERO, to_ints
from fractal_spec.primitives.polynomial import eq_table
from fractal_spec.primitives.transcript import Transcript
from fractal_spec.protocol.indexer import Index
from fractal_spec.protocol.proof import FractalProof, MatrixOpening
from fractal_spec.protocol.r1cs import MATRIX_NAMES
from fractal_spec.protocol.sumcheck import (
    LinearCheckRelation,
    MatrixEncodingRelation,
    R1CSRelation,
    SumcheckProof,
    SumcheckProver,
)

logger = logging.getLogger(__name__)


def prove(index: Index, witness: Sequence[int], transcript: Optional[Transcript] = None) -> FractalProof:
    """
    Generate a proof that `witness` satisfies the indexed instance.

    The first num_public entries of the witness are the public input. A
    witness that does not satisfy the instance still yields a proof; the
    verifier rejects it.

    Args:
        index: Output of index()
        witness: Full assignment z, one entry per variable (reduced mod p)
        transcript: Fiat-Shamir transcript (a fresh one if omitted)

    Returns:
        FractalProof

    Raises:
        MalformedInstance: If the witness length does not match the instance
    """
    params = index.params
    pcs = index.verifier_key.pcs()
    transcript = transcript if transcript is not None else Transcript()

    z = params.embed_witness(witness)
    public_input = to_ints(z[:params.num_public])
    index.verifier_key.absorb(transcript, public_input)

    # --- Witness Commitment ---
    z_oracle = pcs.commit(z)
    transcript.append(z_oracle.root)
    zeta = transcript.challenges(params.public_vars) if params.num_public > 0 else []
    tau = transcript.challenges(params.row_vars)
    logger.debug("Committed witness over %d columns", params.num_cols)

    # --- Outer Sumcheck ---
    mz = [matrix.multiply(z, params.num_rows) for matrix in index.matrices]
    outer = SumcheckProver(R1CSRelation(), [eq_table(tau), *mz])
    outer_proof, r_x, outer_final = outer.prove(transcript)
    rx_evals = list(outer_final[1:])
    transcript.put(rx_evals)
    logger.debug("Outer sumcheck done (%d rounds)", len(r_x))

    # --- Inner Sumcheck ---
    rho = transcript.challenges(len(MATRIX_NAMES))
    eq_rx = eq_table(r_x)
    bound = FF.Zeros(params.num_cols)
    for rho_m, matrix in zip(rho, index.matrices):
        bound += rho_m * matrix.bind_rows(eq_rx, params.num_cols)
    inner = SumcheckProver(LinearCheckRelation(), [bound, z])
    inner_proof, r_y, inner_final = inner.prove(transcript)

    eq_ry = eq_table(r_y)
    matrix_evals = [matrix.evaluate(eq_rx, eq_ry) for matrix in index.matrices]
    witness_eval = inner_final[1]
    transcript.put([*matrix_evals, witness_eval])
    logger.debug("Inner sumcheck done (%d rounds)", len(r_y))

    # --- Matrix-Encoding Sumchecks ---
    matrix_sumchecks: List[SumcheckProof] = []
    matrix_points = []
    for matrix in index.matrices:
        relation = MatrixEncodingRelation(r_x, r_y)
        prover = SumcheckProver(relation, matrix.encoding_tables(params.row_vars, params.col_vars))
        sc_proof, r_k, _ = prover.prove(transcript)
        matrix_sumchecks.append(sc_proof)
        matrix_points.append(r_k)
    logger.debug("Matrix-encoding sumchecks done (degree %d)", 1 + params.row_vars + params.col_vars)

    # --- Batched Opening ---
    claims = [([z_oracle], r_y)]
    if params.num_public > 0:
        claims.append(([z_oracle], zeta + [ZERO] * (params.col_vars - params.public_vars)))
    claims.extend((oracles.as_list(), r_k) for oracles, r_k in zip(index.oracles, matrix_points))
    values, opening = pcs.open(claims, transcript)

    matrix_openings = []
    for matrix_values in values[-len(MATRIX_NAMES):]:
        matrix_values = [int(v) for v in matrix_values]
        matrix_openings.append(MatrixOpening(
            row_values=matrix_values[:params.row_vars],
            col_values=matrix_values[params.row_vars:params.row_vars + params.col_vars],
            val_value=matrix_values[-1],
        ))
    logger.debug("Opened %d claims in one batch", len(claims))

    return FractalProof(
        witness_root=z_oracle.root,
        outer_sumcheck=outer_proof,
        rx_evals=[int(v) for v in rx_evals],
        inner_sumcheck=inner_proof,
        matrix_evals=[int(v) for v in matrix_evals],
        witness_eval=int(witness_eval),
        matrix_sumchecks=matrix_sumchecks,
        matrix_openings=matrix_openings,
        opening=opening,
    )
