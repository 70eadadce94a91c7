"""Protocol parameters shared by indexer, prover and verifier."""

import struct
from dataclasses import dataclass


@dataclass(frozen=True)
class FractalConfig:
    """Argument parameters.

    Attributes:
        blowup_bits: log2 of the ratio between evaluation domain and polynomial size
        n_queries: FRI queries per opening
        pow_bits: Proof-of-work bits ground before query derivation
        merkle_arity: Children per Merkle node
        max_constraints: Largest accepted number of constraints
        max_variables: Largest accepted number of variables
        max_non_zero: Largest accepted number of nonzero entries per matrix
    """
    blowup_bits: int = 3
    n_queries: int = 32
    pow_bits: int = 16
    merkle_arity: int = 2
    max_constraints: int = 1 << 20
    max_variables: int = 1 << 20
    max_non_zero: int = 1 << 20

    def __post_init__(self) -> None:
        if not 1 <= self.blowup_bits <= 8:
            raise ValueError(f"blowup_bits must be in [1, 8], got {self.blowup_bits}")
        if self.n_queries < 1:
            raise ValueError(f"n_queries must be positive, got {self.n_queries}")
        if not 0 <= self.pow_bits <= 32:
            raise ValueError(f"pow_bits must be in [0, 32], got {self.pow_bits}")
        if self.merkle_arity not in [2, 3, 4]:
            raise ValueError(f"merkle_arity must be 2, 3, or 4, got {self.merkle_arity}")
        for name in ("max_constraints", "max_variables", "max_non_zero"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

    @property
    def blowup(self) -> int:
        return 1 << self.blowup_bits

    def security_bits(self) -> int:
        """Conjectured query soundness: blowup_bits per query plus grinding."""
        return self.n_queries * self.blowup_bits + self.pow_bits

    def to_bytes(self) -> bytes:
        return struct.pack(
            "<7Q",
            self.blowup_bits,
            self.n_queries,
            self.pow_bits,
            self.merkle_arity,
            self.max_constraints,
            self.max_variables,
            self.max_non_zero,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "FractalConfig":
        return cls(*struct.unpack("<7Q", data))


CONFIG_BYTES = struct.calcsize("<7Q")
