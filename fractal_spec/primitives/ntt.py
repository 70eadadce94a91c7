"""Number Theoretic Transform for Goldilocks field."""

import galois

from fractal_spec.primitives.field import FF, GOLDILOCKS_PRIME, MAX_TWO_ADICITY, ONE, SHIFT, get_omega

# --- NTT Engine ---

class NTT:
    """NTT engine for polynomial operations over Goldilocks field.

    Transforms run through galois.ntt / galois.intt, which evaluate at the
    powers of get_omega(n_bits).
    """

    def __init__(self, domain_size: int) -> None:
        """Initialize NTT engine for given domain size."""
        assert domain_size > 0, "Domain size must be positive"
        assert (domain_size & (domain_size - 1)) == 0, "Domain size must be power of 2"

        self.n = domain_size
        self.n_bits = log2(domain_size)
        assert self.n_bits <= MAX_TWO_ADICITY, f"No 2^{self.n_bits}-th root of unity in Goldilocks"

        # Coset shift powers SHIFT^i, computed lazily
        self.r: FF | None = None

    def ntt(self, coeffs: FF) -> FF:
        """Forward NTT: coefficients -> evaluations at w^0, ..., w^(n-1)."""
        assert len(coeffs) <= self.n, f"Expected at most {self.n} coefficients, got {len(coeffs)}"
        return galois.ntt(FF(coeffs), size=self.n, modulus=GOLDILOCKS_PRIME)

    def intt(self, evals: FF) -> FF:
        """Inverse NTT: evaluations -> coefficients (galois normalizes by 1/n)."""
        assert len(evals) == self.n, f"Expected {self.n} evaluations, got {len(evals)}"
        return galois.intt(FF(evals), size=self.n, modulus=GOLDILOCKS_PRIME)

    def coset_lde(self, coeffs: FF, n_extended: int) -> FF:
        """Evaluate a polynomial of degree < n on the coset SHIFT * <w_{n_extended}>.

        The coefficients are scaled by SHIFT^i and zero-padded to the extended
        size, so position i of the result is P(SHIFT * w^i).
        """
        assert n_extended >= self.n, "Extended size must be >= original size"
        assert n_extended % self.n == 0, "Extended size must be multiple of original size"
        assert len(coeffs) <= self.n, f"Polynomial has {len(coeffs)} coefficients, domain is {self.n}"

        if self.r is None:
            self.r = _precompute_roots(int(SHIFT), self.n)
        shifted = FF(coeffs) * self.r[:len(coeffs)]
        return NTT(n_extended).ntt(shifted)


# --- Domains ---

def coset_domain(n_bits: int, shift: FF = SHIFT) -> FF:
    """Points shift * w^i for i in [0, 2^n_bits)."""
    return _precompute_roots(get_omega(n_bits), 1 << n_bits) * shift


def domain_point(n_bits: int, idx: int, shift: FF = SHIFT) -> FF:
    """Single point shift * w^idx of the coset of size 2^n_bits."""
    return shift * FF(get_omega(n_bits)) ** idx


# --- Helpers ---

def log2(size: int) -> int:
    """Compute log2 of size (must be power of 2)."""
    assert size != 0
    res = 0
    while size != 1:
        size >>= 1
        res += 1
    return res


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (1 for n <= 1)."""
    size = 1
    while size < n:
        size <<= 1
    return size


def _precompute_roots(omega: int, n_roots: int) -> FF:
    """Precompute powers: roots[k] = omega^k."""
    roots = FF.Zeros(n_roots)
    if n_roots == 0:
        return roots
    roots[0] = ONE
    omega_ff = FF(omega)
    for i in range(1, n_roots):
        roots[i] = roots[i - 1] * omega_ff
    return roots
