"""FRI folding protocol.

Layer t of a FRI run lives on the coset SHIFT^(2^t) * <w_{2^(n_bits - t)}>.
Positions i and i + n/2 of a layer are x and -x, and one fold by 2 maps the
pair to position i of the next layer:

    P'(x^2) = (P(x) + P(-x)) / 2 + alpha * (P(x) - P(-x)) / (2x)
"""


from fractal_spec.primitives.field import FF, SHIFT, TWO_INV, batch_inverse, inverse, to_ints
from fractal_spec.primitives.merkle_tree import MerkleRoot, MerkleTree, transpose_for_merkle
from fractal_spec.primitives.ntt import coset_domain, domain_point

# --- Type Aliases ---

EvalPoly = FF  # Polynomial in evaluation form over a coset


# --- FRI Protocol ---

class FRI:
    """FRI protocol: folding, commitment, and verification."""

    @staticmethod
    def layer_shift(step: int) -> FF:
        """Coset shift of FRI layer `step`: SHIFT^(2^step)."""
        return SHIFT ** (1 << step)

    @staticmethod
    def fold(pol: EvalPoly, challenge: FF, shift: FF, n_bits: int) -> EvalPoly:
        """Fold a layer of size 2^n_bits in half using challenge."""
        half = len(pol) // 2
        assert len(pol) == 1 << n_bits, f"Layer has {len(pol)} values, expected {1 << n_bits}"

        x_inv = batch_inverse(coset_domain(n_bits, shift)[:half])
        lo = pol[:half]
        hi = pol[half:]
        return (lo + hi) * TWO_INV + challenge * (lo - hi) * TWO_INV * x_inv

    @staticmethod
    def merkelize(pol: EvalPoly, tree: MerkleTree) -> MerkleRoot:
        """Commit to a FRI layer; leaf i holds [P(x_i), P(-x_i)]."""
        n = len(pol)
        source = transpose_for_merkle(FF(pol).reshape(1, n))
        tree.merkelize(source, n // 2, 2, n_cols=1)
        return tree.get_root()

    @staticmethod
    def verify_fold(lo: FF, hi: FF, x: FF, challenge: FF) -> FF:
        """Recompute the folded value from the pair P(x), P(-x)."""
        even = (lo + hi) * TWO_INV
        odd = (lo - hi) * TWO_INV * inverse(x)
        return even + challenge * odd

    @staticmethod
    def query_point(step: int, n_bits: int, idx: int) -> FF:
        """Domain point x at position idx of layer `step` (layer size 2^n_bits)."""
        return domain_point(n_bits, idx, FRI.layer_shift(step))

    @staticmethod
    def final_value(pol: EvalPoly) -> int:
        """Constant a fully folded layer collapses to."""
        values = to_ints(pol)
        assert all(v == values[0] for v in values), "FRI did not fold to a constant"
        return values[0]
