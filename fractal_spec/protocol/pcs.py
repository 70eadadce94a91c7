"""Multilinear Polynomial Commitment Scheme over FRI.

A committed oracle is a batch of multilinear tables of length N = 2^s. Each
table T is read as the univariate polynomial F(X) = sum_i T[i] X^i. Every
oracle of one MultilinearPcs is extended onto the same coset L = SHIFT * <w_M>
with M = 2^(domain_vars + blowup_bits), so all oracles share one query domain
and any set of evaluation claims is proven with a single FRI run.

Batched opening of claims (oracles_i, r_i) (Gemini folding + DEEP-FRI):

1. Absorb the claimed values of every claim.
2. Per claim: draw lambda, batch its columns into F_0 and commit
   F_1, ..., F_{s-1} where F_{j+1}(Y) = (1 - r_j) E_j(Y) + r_j O_j(Y) and
   F_j(X) = E_j(X^2) + X O_j(X^2). The coefficients of F_{j+1} are the table
   of F_j with variable j bound to r_j, so F_s is the claimed value.
3. Draw beta, send F_j(+-beta^(2^j)) for every claim; the verifier checks
   every fold step.
4. Draw mu and combine every term (F_j(X) - a) / (X - z) into one DEEP
   quotient. A claim with N < D = 2^domain_vars also contributes its terms
   times X^(D - N), so the single bound deg < D holds only if each claim's
   polynomials have degree < N.
5. Prove the quotient with domain_vars rounds of FRI folding by 2.
"""

import logging
import struct
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Sequence, Tuple

from fractal_spec.errors import ArithmeticDomainError
from fractal_spec.primitives.field import (
    FF,
    ONE,
    TWO_INV,
    ZERO,
    batch_inverse,
    inverse,
    is_canonical,
    to_field,
)
from fractal_spec.primitives.merkle_tree import (
    HASH_SIZE,
    MerkleRoot,
    MerkleTree,
    QueryProof,
    transpose_for_merkle,
)
from fractal_spec.primitives.ntt import NTT, coset_domain, log2
from fractal_spec.primitives.polynomial import evaluate, field_sum, fold_table, mle_eval, powers
from fractal_spec.primitives.transcript import Transcript, grinding, verify_grinding
from fractal_spec.protocol.config import FractalConfig
from fractal_spec.protocol.fri import FRI

logger = logging.getLogger(__name__)

# --- Type Aliases ---

Nonce = int
QueryIndex = int


# --- Commitments ---

@dataclass(frozen=True)
class Commitment:
    """Verifier-side handle of a committed oracle."""
    root: MerkleRoot
    n_cols: int
    num_vars: int


@dataclass(frozen=True, eq=False)
class CommittedOracle:
    """Prover-side committed oracle: tables, their coset extension and Merkle tree."""
    tables: FF  # (n_cols, 2^num_vars)
    lde: FF  # (n_cols, M)
    tree: MerkleTree
    commitment: Commitment

    @property
    def root(self) -> MerkleRoot:
        return self.commitment.root

    @property
    def n_cols(self) -> int:
        return self.commitment.n_cols

    @property
    def num_vars(self) -> int:
        return self.commitment.num_vars


ProverClaim = Tuple[Sequence[CommittedOracle], Sequence[FF]]
"""Oracles to open at a point; all of them have len(point) variables."""


@dataclass
class OpeningClaim:
    """Verifier-side claim: the columns of `commitments` evaluate to `values` at `point`."""
    commitments: List[Commitment]
    point: List[FF]
    values: List[FF]


# --- Opening Proof ---

@dataclass
class OpeningQuery:
    """Merkle openings for one query index across all trees of a batch.

    oracle_proofs holds one proof per distinct commitment, in order of first
    appearance; fold_proofs follows the claims and their fold layers in order.
    """
    oracle_proofs: List[QueryProof] = field(default_factory=list)
    fold_proofs: List[QueryProof] = field(default_factory=list)
    fri_proofs: List[QueryProof] = field(default_factory=list)


@dataclass
class OpeningProof:
    """Batched opening proof.

    Attributes:
        fold_roots: Per claim, roots of the Gemini layers F_1, ..., F_{s-1}
        fold_evals: Per claim, [F_j(y_j), F_j(-y_j)] for j < s
        fri_roots: Roots of the FRI layers after the first fold
        final_value: Constant the quotient folds to
        nonce: Grinding nonce
        queries: Merkle openings per query index
    """
    fold_roots: List[List[MerkleRoot]] = field(default_factory=list)
    fold_evals: List[List[List[int]]] = field(default_factory=list)
    fri_roots: List[MerkleRoot] = field(default_factory=list)
    final_value: int = 0
    nonce: Nonce = 0
    queries: List[OpeningQuery] = field(default_factory=list)


# --- Multilinear PCS ---

class MultilinearPcs:
    """Commit/open/verify for batches of multilinear tables of up to domain_vars variables."""

    def __init__(self, config: FractalConfig, domain_vars: int):
        if domain_vars < 1:
            raise ValueError(f"domain_vars must be positive, got {domain_vars}")
        self.config = config
        self.domain_vars = domain_vars

    @property
    def domain_bits(self) -> int:
        """log2 of the evaluation domain size M."""
        return self.domain_vars + self.config.blowup_bits

    # --- Commit ---

    def commit(self, tables: FF) -> CommittedOracle:
        """Commit to a (n_cols, 2^s) batch of tables, 1 <= s <= domain_vars."""
        tables = FF(tables)
        if tables.ndim == 1:
            tables = tables.reshape(1, -1)
        n_cols, n = tables.shape
        if n < 2 or n & (n - 1):
            raise ValueError(f"Table size must be a power of two >= 2, got {n}")
        if n > 1 << self.domain_vars:
            raise ValueError(f"Table size {n} exceeds the domain of {1 << self.domain_vars}")
        if n_cols < 1:
            raise ValueError("Cannot commit to zero columns")

        m = 1 << self.domain_bits
        ntt = NTT(n)
        lde = FF.Zeros((n_cols, m))
        for c in range(n_cols):
            lde[c] = ntt.coset_lde(tables[c], m)

        tree = MerkleTree(arity=self.config.merkle_arity)
        tree.merkelize(transpose_for_merkle(lde), m // 2, 2 * n_cols, n_cols=n_cols)

        tables.flags.writeable = False
        lde.flags.writeable = False
        commitment = Commitment(root=tree.get_root(), n_cols=n_cols, num_vars=log2(n))
        logger.debug("Committed %d column(s) of size %d on a domain of size %d", n_cols, n, m)
        return CommittedOracle(tables=tables, lde=lde, tree=tree, commitment=commitment)

    # --- Open ---

    def open(
        self,
        claims: Sequence[ProverClaim],
        transcript: Transcript,
    ) -> Tuple[List[List[FF]], OpeningProof]:
        """Open every column of each claim's oracles at the claim's point, with one FRI run.

        Returns:
            (values, proof) where values[i] lists the column evaluations of claim i
        """
        cfg = self.config
        d = self.domain_vars
        m = 1 << self.domain_bits
        if not claims:
            raise ValueError("Nothing to open")
        for oracles, point in claims:
            if not 1 <= len(point) <= d:
                raise ValueError(f"Point has {len(point)} variables, domain supports 1..{d}")
            for oracle in oracles:
                if oracle.num_vars != len(point):
                    raise ValueError(f"Oracle has {oracle.num_vars} variables, point has {len(point)}")

        values = [
            [mle_eval(oracle.tables[c], point) for oracle in oracles for c in range(oracle.n_cols)]
            for oracles, point in claims
        ]
        for claim_values in values:
            transcript.put(claim_values)

        # --- Gemini Commit-Fold Loop ---
        # Per claim: batch columns -> bind variable j -> extend -> merkelize -> commit root
        fold_tables: List[List[FF]] = []
        fold_ldes: List[List[FF]] = []
        fold_trees: List[MerkleTree] = []
        fold_roots: List[List[MerkleRoot]] = []
        for (oracles, point), claim_values in zip(claims, values):
            weights = powers(transcript.challenge(), len(claim_values))
            n = 1 << len(point)
            combined = FF.Zeros(n)
            combined_lde = FF.Zeros(m)
            w = 0
            for oracle in oracles:
                for c in range(oracle.n_cols):
                    combined = combined + weights[w] * oracle.tables[c]
                    combined_lde = combined_lde + weights[w] * oracle.lde[c]
                    w += 1

            ntt = NTT(n)
            tables, ldes, roots = [combined], [combined_lde], []
            for j in range(len(point) - 1):
                table = fold_table(tables[-1], point[j])
                lde = ntt.coset_lde(table, m)
                tree = MerkleTree(arity=cfg.merkle_arity)
                root = FRI.merkelize(lde, tree)
                transcript.append(root)
                tables.append(table)
                ldes.append(lde)
                roots.append(root)
                fold_trees.append(tree)
            fold_tables.append(tables)
            fold_ldes.append(ldes)
            fold_roots.append(roots)

        # --- Evaluation Points ---
        beta = transcript.challenge()
        eval_points = [_eval_points(beta, len(tables)) for tables in fold_tables]
        fold_evals = [
            [(evaluate(table, y), evaluate(table, -y)) for table, y in zip(tables, ys)]
            for tables, ys in zip(fold_tables, eval_points)
        ]
        transcript.put([v for pairs in fold_evals for pair in pairs for v in pair])

        # --- DEEP Quotient ---
        mu = transcript.challenge()
        xs = coset_domain(self.domain_bits)
        quotient = _deep_quotient(fold_ldes, xs, batch_inverse, eval_points, fold_evals, mu, d)

        # --- FRI Commit-Fold Loop ---
        fri_trees: List[MerkleTree] = []
        fri_roots: List[MerkleRoot] = []
        current = quotient
        for step in range(d):
            alpha = transcript.challenge()
            current = FRI.fold(current, alpha, FRI.layer_shift(step), self.domain_bits - step)
            if step < d - 1:
                tree = MerkleTree(arity=cfg.merkle_arity)
                root = FRI.merkelize(current, tree)
                transcript.append(root)
                fri_trees.append(tree)
                fri_roots.append(root)

        final_value = FRI.final_value(current)
        transcript.put([final_value])

        # --- Grinding (proof-of-work) ---
        grinding_challenge = transcript.get_state()
        nonce = grinding(grinding_challenge, cfg.pow_bits)

        # --- Query Phase ---
        distinct = _distinct([oracle.commitment for oracles, _ in claims for oracle in oracles])
        trees = {oracle.commitment: oracle.tree for oracles, _ in claims for oracle in oracles}
        query_indices = self._derive_query_indices(grinding_challenge, nonce, self.domain_bits - 1)
        queries = [
            OpeningQuery(
                oracle_proofs=[trees[commitment].get_query_proof(idx) for commitment in distinct],
                fold_proofs=[tree.get_query_proof(idx) for tree in fold_trees],
                fri_proofs=[
                    tree.get_query_proof(idx % (m >> (step + 2)))
                    for step, tree in enumerate(fri_trees)
                ],
            )
            for idx in query_indices
        ]
        logger.debug(
            "Opened %d claim(s) over %d oracle(s) with one FRI run of %d rounds",
            len(claims), len(distinct), d,
        )

        proof = OpeningProof(
            fold_roots=fold_roots,
            fold_evals=[[[int(v) for v in pair] for pair in pairs] for pairs in fold_evals],
            fri_roots=fri_roots,
            final_value=final_value,
            nonce=nonce,
            queries=queries,
        )
        return values, proof

    # --- Verify ---

    def verify_open(
        self,
        claims: Sequence[OpeningClaim],
        proof: OpeningProof,
        transcript: Transcript,
    ) -> bool:
        """Replay the batched opening transcript and check folds, grinding and every query."""
        cfg = self.config
        d = self.domain_vars

        errors = self.opening_shape_errors(proof, [claim.commitments for claim in claims])
        for i, claim in enumerate(claims):
            expected = sum(c.n_cols for c in claim.commitments)
            if len(claim.values) != expected:
                errors.append(f"Claim {i}: expected {expected} values, got {len(claim.values)}")
            if any(c.num_vars != len(claim.point) for c in claim.commitments):
                errors.append(f"Claim {i}: point has {len(claim.point)} variables")
        if errors:
            logger.warning("Opening rejected: %s", "; ".join(errors[:3]))
            return False

        values = [to_field(claim.values) for claim in claims]
        for claim_values in values:
            transcript.put(claim_values)

        weights: List[FF] = []
        claimed: List[FF] = []
        for claim_values, roots in zip(values, proof.fold_roots):
            w = powers(transcript.challenge(), len(claim_values))
            weights.append(w)
            claimed.append(field_sum(w * claim_values))
            for root in roots:
                transcript.append(root)

        beta = transcript.challenge()
        eval_points = [_eval_points(beta, len(claim.point)) for claim in claims]
        fold_evals = [[(FF(pos), FF(neg)) for pos, neg in pairs] for pairs in proof.fold_evals]
        transcript.put([v for pairs in fold_evals for pair in pairs for v in pair])
        mu = transcript.challenge()

        # --- Gemini Fold Chains ---
        if beta == 0:
            logger.warning("Opening rejected: degenerate evaluation point")
            return False
        for i, (claim, ys, pairs) in enumerate(zip(claims, eval_points, fold_evals)):
            for j, (pos, neg) in enumerate(pairs):
                even = (pos + neg) * TWO_INV
                odd = (pos - neg) * TWO_INV * inverse(ys[j])
                folded = even + claim.point[j] * (odd - even)
                target = pairs[j + 1][0] if j + 1 < len(pairs) else claimed[i]
                if folded != target:
                    logger.warning("Opening rejected: claim %d fold step %d does not match", i, j)
                    return False

        # --- FRI Challenges ---
        alphas = []
        for step in range(d):
            alphas.append(transcript.challenge())
            if step < d - 1:
                transcript.append(proof.fri_roots[step])
        transcript.put([proof.final_value])

        # --- Proof of Work ---
        grinding_challenge = transcript.get_state()
        if not verify_grinding(grinding_challenge, proof.nonce, cfg.pow_bits):
            logger.warning("Opening rejected: PoW verification failed")
            return False

        # --- Queries ---
        distinct = _distinct([c for claim in claims for c in claim.commitments])
        query_indices = self._derive_query_indices(grinding_challenge, proof.nonce, self.domain_bits - 1)
        for idx, query in zip(query_indices, proof.queries):
            if not self._verify_query(
                claims, distinct, proof, query, idx, weights, eval_points, fold_evals, mu, alphas
            ):
                return False

        return True

    def _verify_query(
        self,
        claims: Sequence[OpeningClaim],
        distinct: List[Commitment],
        proof: OpeningProof,
        query: OpeningQuery,
        idx: QueryIndex,
        weights: List[FF],
        eval_points: List[List[FF]],
        fold_evals: List[List[Tuple[FF, FF]]],
        mu: FF,
        alphas: List[FF],
    ) -> bool:
        """Check one query: Merkle paths, DEEP quotient pair, and the FRI fold chain."""
        tree = MerkleTree(arity=self.config.merkle_arity)
        n_bits_ext = self.domain_bits

        leaves: Dict[Commitment, List[List[int]]] = {}
        for commitment, qp in zip(distinct, query.oracle_proofs):
            if not tree.verify_group_proof(commitment.root, qp.mp, idx, qp.leaf_data()):
                logger.warning("Opening rejected: oracle Merkle path failed at query %d", idx)
                return False
            leaves[commitment] = qp.v

        # --- Per-Claim Layer Values at x and -x ---
        fold_openings = iter(zip(
            [root for roots in proof.fold_roots for root in roots],
            query.fold_proofs,
        ))
        values_pos: List[List[FF]] = []
        values_neg: List[List[FF]] = []
        for claim, w in zip(claims, weights):
            combined_pos = ZERO
            combined_neg = ZERO
            k = 0
            for commitment in claim.commitments:
                for pos, neg in leaves[commitment]:
                    combined_pos = combined_pos + w[k] * FF(pos)
                    combined_neg = combined_neg + w[k] * FF(neg)
                    k += 1
            claim_pos, claim_neg = [combined_pos], [combined_neg]
            for _ in range(len(claim.point) - 1):
                root, qp = next(fold_openings)
                if not tree.verify_group_proof(root, qp.mp, idx, qp.leaf_data()):
                    logger.warning("Opening rejected: fold Merkle path failed at query %d", idx)
                    return False
                claim_pos.append(FF(qp.v[0][0]))
                claim_neg.append(FF(qp.v[0][1]))
            values_pos.append(claim_pos)
            values_neg.append(claim_neg)

        # --- DEEP Quotient at x and -x ---
        x = FRI.query_point(0, n_bits_ext, idx)
        try:
            q_pos = _deep_quotient(values_pos, x, inverse, eval_points, fold_evals, mu, self.domain_vars)
            q_neg = _deep_quotient(values_neg, -x, inverse, eval_points, fold_evals, mu, self.domain_vars)
        except ArithmeticDomainError:
            logger.warning("Opening rejected: evaluation point lies on the query domain")
            return False

        # --- FRI Fold Chain ---
        current = FRI.verify_fold(q_pos, q_neg, x, alphas[0])
        for step in range(1, len(alphas)):
            layer_bits = n_bits_ext - step
            half = 1 << (layer_bits - 1)
            pos = idx % (1 << layer_bits)
            leaf, slot = pos % half, pos // half

            qp = query.fri_proofs[step - 1]
            if not tree.verify_group_proof(proof.fri_roots[step - 1], qp.mp, leaf, qp.leaf_data()):
                logger.warning("Opening rejected: FRI layer %d Merkle path failed at query %d", step, idx)
                return False
            lo, hi = FF(qp.v[0][0]), FF(qp.v[0][1])
            if (lo, hi)[slot] != current:
                logger.warning("Opening rejected: FRI layer %d inconsistent at query %d", step, idx)
                return False
            current = FRI.verify_fold(lo, hi, FRI.query_point(step, layer_bits, leaf), alphas[step])

        if current != FF(proof.final_value):
            logger.warning("Opening rejected: final FRI value mismatch at query %d", idx)
            return False
        return True

    # --- Shape ---

    def opening_shape_errors(
        self,
        proof: OpeningProof,
        claim_commitments: Sequence[Sequence[Commitment]],
    ) -> List[str]:
        """Structural problems of a batched opening proof for the given claims."""
        cfg = self.config
        d = self.domain_vars
        errors: List[str] = []
        height = 1 << (self.domain_bits - 1)

        sizes = []
        for i, commitments in enumerate(claim_commitments):
            if not commitments:
                errors.append(f"Claim {i} has no commitments")
                continue
            s = commitments[0].num_vars
            if any(c.num_vars != s for c in commitments):
                errors.append(f"Claim {i} mixes oracles of different sizes")
            if not 1 <= s <= d:
                errors.append(f"Claim {i} has {s} variables, domain supports 1..{d}")
            sizes.append(s)
        if not sizes:
            errors.append("Nothing to open")
        if errors:
            return errors

        distinct = _distinct([c for commitments in claim_commitments for c in commitments])

        if len(proof.fold_roots) != len(sizes) or any(
            len(roots) != s - 1 for roots, s in zip(proof.fold_roots, sizes)
        ):
            errors.append(f"Expected fold roots for {len(sizes)} claims of sizes {sizes}")
        if len(proof.fri_roots) != d - 1:
            errors.append(f"Expected {d - 1} FRI roots, got {len(proof.fri_roots)}")
        roots = [r for claim_roots in proof.fold_roots for r in claim_roots] + list(proof.fri_roots)
        if not all(_is_digest(root) for root in roots):
            errors.append("Commitment root is not a digest")
        if len(proof.fold_evals) != len(sizes) or any(
            len(pairs) != s or any(len(pair) != 2 for pair in pairs)
            for pairs, s in zip(proof.fold_evals, sizes)
        ):
            errors.append(f"Expected fold evaluation pairs for {len(sizes)} claims of sizes {sizes}")
        elif not all(_is_element(v) for pairs in proof.fold_evals for pair in pairs for v in pair):
            errors.append("Fold evaluation is not a canonical field element")
        if not _is_element(proof.final_value):
            errors.append("Final value is not a canonical field element")
        if not isinstance(proof.nonce, int) or not 0 <= proof.nonce < 1 << 64:
            errors.append("Nonce out of range")
        if len(proof.queries) != cfg.n_queries:
            errors.append(f"Expected {cfg.n_queries} queries, got {len(proof.queries)}")
        if errors:
            return errors

        arity = cfg.merkle_arity
        n_fold = sum(s - 1 for s in sizes)
        for q, query in enumerate(proof.queries):
            if len(query.oracle_proofs) != len(distinct):
                errors.append(f"Query {q}: expected {len(distinct)} oracle proofs")
            else:
                for c, qp in zip(distinct, query.oracle_proofs):
                    errors.extend(_query_shape_errors(qp, c.n_cols, height, arity, f"query {q} oracle"))
            if len(query.fold_proofs) != n_fold:
                errors.append(f"Query {q}: expected {n_fold} fold proofs")
            else:
                for qp in query.fold_proofs:
                    errors.extend(_query_shape_errors(qp, 1, height, arity, f"query {q} fold"))
            if len(query.fri_proofs) != d - 1:
                errors.append(f"Query {q}: expected {d - 1} FRI proofs")
            else:
                for step, qp in enumerate(query.fri_proofs, start=1):
                    layer_height = 1 << (self.domain_bits - step - 1)
                    errors.extend(_query_shape_errors(qp, 1, layer_height, arity, f"query {q} FRI"))
        return errors

    def _derive_query_indices(self, challenge: bytes, nonce: Nonce, n_bits: int) -> List[QueryIndex]:
        """Derive pseudorandom query indices from grinding output."""
        query_transcript = Transcript(seed=b"queries")
        query_transcript.append(challenge)
        query_transcript.append(struct.pack("<Q", nonce))
        return query_transcript.get_permutations(self.config.n_queries, n_bits)


# --- Batching Helpers ---

def _eval_points(beta: FF, s: int) -> List[FF]:
    """y_j = beta^(2^j) for the s Gemini layers of a claim."""
    return [beta ** (1 << j) for j in range(s)]


def _deep_quotient(
    layer_values: Sequence[Sequence[FF]],
    x: FF,
    invert: Callable[[FF], FF],
    eval_points: Sequence[Sequence[FF]],
    fold_evals: Sequence[Sequence[Tuple[FF, FF]]],
    mu: FF,
    domain_vars: int,
) -> FF:
    """sum of mu^t (F(x) - a) / (x - z) over every claim, layer and z in {y, -y}.

    Works on a whole domain (x a vector, invert=batch_inverse) or a single
    point (x a scalar, invert=inverse). Claims with s < domain_vars add each
    term again times x^(2^domain_vars - 2^s).
    """
    quotient = ZERO
    coeff = ONE
    for values, ys, pairs in zip(layer_values, eval_points, fold_evals):
        s = len(values)
        correction = x ** ((1 << domain_vars) - (1 << s)) if s < domain_vars else None
        for f, y, (a_pos, a_neg) in zip(values, ys, pairs):
            for z, a in ((y, a_pos), (-y, a_neg)):
                term = (f - a) * invert(x - z)
                quotient = quotient + coeff * term
                coeff = coeff * mu
                if correction is not None:
                    quotient = quotient + coeff * correction * term
                    coeff = coeff * mu
    return quotient


def _distinct(commitments: Sequence[Commitment]) -> List[Commitment]:
    """Pairwise different commitments, in order of first appearance."""
    return list(dict.fromkeys(commitments))


# --- Shape Helpers ---

def _is_digest(value: object) -> bool:
    return isinstance(value, bytes) and len(value) == HASH_SIZE


def _is_element(value: object) -> bool:
    return isinstance(value, int) and is_canonical(value)


def _query_shape_errors(qp: QueryProof, n_cols: int, height: int, arity: int, label: str) -> List[str]:
    errors = []
    if len(qp.v) != n_cols or any(len(col) != 2 for col in qp.v):
        errors.append(f"{label}: expected {n_cols} column pairs")
    elif not all(_is_element(x) for col in qp.v for x in col):
        errors.append(f"{label}: leaf value is not a canonical field element")
    if len(qp.mp) != MerkleTree.proof_length(height, arity):
        errors.append(f"{label}: expected {MerkleTree.proof_length(height, arity)} Merkle levels, got {len(qp.mp)}")
    elif not all(len(level) == arity - 1 and all(_is_digest(d) for d in level) for level in qp.mp):
        errors.append(f"{label}: malformed Merkle level")
    return errors
