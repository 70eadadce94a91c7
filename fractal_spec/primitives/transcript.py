"""
Fiat-Shamir transcript implementation using a keyed BLAKE3 duplex.

This module implements challenge generation for non-interactive proofs, plus
the proof-of-work grinding used before query derivation.

Absorbed data accumulates in a pending buffer. Squeezing first folds the
pending buffer into the 32-byte state (BLAKE3 keyed with the previous state),
then expands the state into a buffer of field elements that are handed out
one at a time. Any absorb invalidates the buffered output.
"""

import struct
from typing import Iterable, List

import blake3

from fractal_spec.primitives.field import FF, GOLDILOCKS_PRIME

# Domain separation for the initial state
DOMAIN = b"fractal-spec/transcript/v1"

STATE_SIZE = 32
OUT_SIZE = 4  # Field elements squeezed per state update
_BYTES_PER_ELEMENT = 16  # 128 bits reduced mod p; bias below 2^-64


class Transcript:
    """
    Fiat-Shamir transcript over a keyed BLAKE3 duplex.

    The transcript absorbs field elements and byte strings and produces
    challenges in a deterministic, pseudorandom manner. Each proof run owns
    its own instance; it must be threaded explicitly through every step.

    Attributes:
        state: Current 32-byte chaining state
        pending: Accumulator for absorbed bytes
        out: Output buffer of squeezed field elements
    """

    def __init__(self, seed: bytes = b""):
        """
        Initialize transcript.

        Args:
            seed: Optional bytes separating independent protocol runs
        """
        self.state = blake3.blake3(DOMAIN + struct.pack("<Q", len(seed)) + seed).digest()
        self.pending = bytearray()
        self.out: List[int] = [0] * OUT_SIZE
        self.out_cursor = 0

    def put(self, input_data: Iterable[FF]) -> None:
        """
        Add field elements to the transcript.

        Args:
            input_data: Field elements (or ints) to absorb
        """
        for elem in input_data:
            self._add1(elem)

    def _add1(self, input_elem: FF) -> None:
        """Add a single field element to pending buffer."""
        self.pending += struct.pack("<Q", int(input_elem) % GOLDILOCKS_PRIME)
        self.out_cursor = 0  # Invalidate cached output

    def append(self, data: bytes) -> None:
        """Add a length-prefixed byte string (commitment roots, digests)."""
        self.pending += struct.pack("<Q", len(data))
        self.pending += data
        self.out_cursor = 0

    def _update_state(self) -> None:
        """Absorb pending bytes into the state and refill the output buffer."""
        self.state = blake3.blake3(bytes(self.pending), key=self.state).digest()
        self.pending = bytearray()

        stream = blake3.blake3(b"squeeze", key=self.state).digest(length=OUT_SIZE * _BYTES_PER_ELEMENT)
        self.out = [
            int.from_bytes(stream[i * _BYTES_PER_ELEMENT:(i + 1) * _BYTES_PER_ELEMENT], "little") % GOLDILOCKS_PRIME
            for i in range(OUT_SIZE)
        ]
        self.out_cursor = OUT_SIZE

    def _get_fields1(self) -> int:
        """Squeeze one field element."""
        if self.out_cursor == 0:
            self._update_state()

        idx = (OUT_SIZE - self.out_cursor) % OUT_SIZE
        result = self.out[idx]
        self.out_cursor -= 1

        return result

    def challenge(self) -> FF:
        """Draw one field element challenge."""
        return FF(self._get_fields1())

    def challenges(self, n: int) -> List[FF]:
        """Draw n field element challenges (a random point in F^n)."""
        return [self.challenge() for _ in range(n)]

    def get_state(self) -> bytes:
        """
        Get current chaining state, flushing pending input first.

        Returns:
            32-byte state
        """
        if self.pending:
            self._update_state()
        return self.state

    def get_permutations(self, n: int, n_bits: int) -> List[int]:
        """
        Generate n permutation values, each using n_bits bits.

        This is used to derive query indices in FRI.

        Args:
            n: Number of permutation values to generate
            n_bits: Number of bits per value

        Returns:
            List of n values, each in range [0, 2^n_bits)
        """
        # Use 63 bits per field element (leaving 1 bit margin below p)
        n_fields = ((n * n_bits - 1) // 63) + 1

        fields = [self._get_fields1() for _ in range(n_fields)]

        result = []
        cur_bit = 0
        cur_field = 0

        for _ in range(n):
            a = 0
            for j in range(n_bits):
                bit = (fields[cur_field] >> cur_bit) & 1
                a += bit << j

                cur_bit += 1
                if cur_bit == 63:
                    cur_bit = 0
                    cur_field += 1

            result.append(a)

        return result


# --- Proof of Work ---

def verify_grinding(challenge: bytes, nonce: int, pow_bits: int) -> bool:
    """Check that blake3(challenge || nonce) starts with pow_bits zero bits."""
    if not 0 <= nonce < 1 << 64:
        return False
    digest = blake3.blake3(challenge + struct.pack("<Q", nonce)).digest()
    return int.from_bytes(digest[:8], "big") >> (64 - pow_bits) == 0


def grinding(challenge: bytes, pow_bits: int) -> int:
    """Find the smallest nonce satisfying verify_grinding."""
    nonce = 0
    while not verify_grinding(challenge, nonce, pow_bits):
        nonce += 1
    return nonce
