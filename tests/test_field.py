"""Tests for the Goldilocks field helpers and batch inversion."""

import numpy as np
import pytest

from fractal_spec.errors import ArithmeticDomainError
from fractal_spec.primitives.field import (
    FF,
    GOLDILOCKS_PRIME,
    MAX_TWO_ADICITY,
    ONE,
    SHIFT,
    SHIFT_INV,
    TWO_INV,
    ZERO,
    batch_inverse,
    get_omega,
    get_omega_inv,
    inverse,
    is_canonical,
    to_field,
    to_ints,
)


class TestConstants:
    """Field constants and roots of unity."""

    def test_prime(self) -> None:
        assert GOLDILOCKS_PRIME == 2**64 - 2**32 + 1
        assert FF.order == GOLDILOCKS_PRIME

    def test_two_inverse(self) -> None:
        assert TWO_INV * FF(2) == ONE

    def test_shift_inverse(self) -> None:
        assert SHIFT * SHIFT_INV == ONE

    @pytest.mark.parametrize("n_bits", [1, 2, 5, 10, 20, MAX_TWO_ADICITY])
    def test_omega_is_primitive(self, n_bits: int) -> None:
        """w^(2^n) == 1 and w^(2^(n-1)) == -1."""
        w = FF(get_omega(n_bits))
        assert w ** (1 << n_bits) == ONE
        assert w ** (1 << (n_bits - 1)) == FF(GOLDILOCKS_PRIME - 1)

    @pytest.mark.parametrize("n_bits", [0, 1, 4, 12])
    def test_omega_squares_to_smaller_root(self, n_bits: int) -> None:
        """Roots of nested domains agree: w_{2n}^2 == w_n."""
        assert FF(get_omega(n_bits + 1)) ** 2 == FF(get_omega(n_bits))

    @pytest.mark.parametrize("n_bits", [0, 3, 17])
    def test_omega_inverse(self, n_bits: int) -> None:
        assert FF(get_omega(n_bits)) * FF(get_omega_inv(n_bits)) == ONE


class TestConversions:
    """to_field / to_ints / is_canonical."""

    def test_to_field_reduces(self) -> None:
        values = to_field([-1, GOLDILOCKS_PRIME, GOLDILOCKS_PRIME + 5, 3])
        assert to_ints(values) == [GOLDILOCKS_PRIME - 1, 0, 5, 3]

    def test_to_ints_flattens(self) -> None:
        assert to_ints(FF([[1, 2], [3, 4]])) == [1, 2, 3, 4]

    @pytest.mark.parametrize("value,expected", [
        (0, True),
        (GOLDILOCKS_PRIME - 1, True),
        (GOLDILOCKS_PRIME, False),
        (-1, False),
    ])
    def test_is_canonical(self, value: int, expected: bool) -> None:
        assert is_canonical(value) == expected


class TestInverse:
    """Scalar and Montgomery batch inversion."""

    def test_scalar(self) -> None:
        assert inverse(FF(12345)) * FF(12345) == ONE

    def test_scalar_zero_raises(self) -> None:
        with pytest.raises(ArithmeticDomainError):
            inverse(FF(0))

    def test_empty(self) -> None:
        assert len(batch_inverse(FF.Zeros(0))) == 0

    def test_single_element(self) -> None:
        result = batch_inverse(FF([12345]))
        assert result[0] * FF(12345) == ONE

    def test_matches_scalar_inversion(self) -> None:
        vals = FF([i * 7 + 13 for i in range(50)])
        assert np.array_equal(batch_inverse(vals), vals ** -1)

    def test_zero_raises(self) -> None:
        with pytest.raises(ArithmeticDomainError):
            batch_inverse(FF([1, 2, 0, 4]))


class TestSharedConstants:
    """Module-level scalars cannot be modified in place."""

    @pytest.mark.parametrize("constant", [ZERO, ONE, TWO_INV, SHIFT])
    def test_read_only(self, constant) -> None:
        assert not constant.flags.writeable

    def test_in_place_add_does_not_touch_zero(self) -> None:
        acc = ZERO
        with pytest.raises(ValueError):
            acc += FF(5)
        assert ZERO == 0
