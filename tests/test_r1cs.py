"""Tests for sparse matrices and R1CS instances."""

import pytest

from fractal_spec.errors import MalformedInstance
from fractal_spec.primitives.field import GOLDILOCKS_PRIME, to_ints
from fractal_spec.protocol.config import FractalConfig
from fractal_spec.protocol.r1cs import R1CSInstance, SparseMatrix
from tests.instances import cubic_r1cs, identity_r1cs, random_r1cs


class TestSparseMatrix:
    """Construction, shape and arithmetic."""

    def test_from_dense_drops_zeros(self) -> None:
        m = SparseMatrix.from_dense("A", [[0, 2, 0], [1, 0, 3]])
        assert m.dims == (2, 3)
        assert m.num_non_zero() == 3
        assert m.entries() == [(0, 1, 2), (1, 0, 1), (1, 2, 3)]

    def test_from_dense_reduces_negatives(self) -> None:
        m = SparseMatrix.from_dense("A", [[-1]])
        assert m.entries() == [(0, 0, GOLDILOCKS_PRIME - 1)]

    def test_from_dense_ragged_rows(self) -> None:
        with pytest.raises(MalformedInstance):
            SparseMatrix.from_dense("A", [[1, 0], [1]])

    def test_from_entries_sorted(self) -> None:
        m = SparseMatrix.from_entries("B", 3, 3, [(2, 1, 4), (0, 2, 1), (0, 0, 5)])
        assert m.entries() == [(0, 0, 5), (0, 2, 1), (2, 1, 4)]

    def test_from_entries_out_of_range(self) -> None:
        with pytest.raises(MalformedInstance):
            SparseMatrix.from_entries("B", 2, 2, [(0, 2, 1)])

    def test_from_entries_duplicate(self) -> None:
        with pytest.raises(MalformedInstance):
            SparseMatrix.from_entries("B", 2, 2, [(0, 1, 1), (0, 1, 2)])

    def test_dot(self) -> None:
        m = SparseMatrix.from_dense("A", [[1, 2], [0, 3]])
        assert to_ints(m.dot([5, 7])) == [19, 21]

    def test_dot_wrong_length(self) -> None:
        m = SparseMatrix.from_dense("A", [[1, 2]])
        with pytest.raises(MalformedInstance):
            m.dot([1])

    def test_pad_power_two(self) -> None:
        m = SparseMatrix.from_dense("A", [[1, 2, 3]] * 3)
        m.pad_power_two()
        assert m.dims == (4, 4)
        assert m.num_non_zero() == 9

    def test_make_square(self) -> None:
        m = SparseMatrix.from_dense("A", [[1, 2, 3, 4, 5]])
        m.make_square()
        assert m.dims == (5, 5)

    def test_add_row(self) -> None:
        m = SparseMatrix("C", 0, 2)
        m.add_row([0, 9])
        assert m.to_dense() == [[0, 9]]
        with pytest.raises(MalformedInstance):
            m.add_row([1])

    def test_cannot_shrink(self) -> None:
        m = SparseMatrix("C", 4, 4)
        with pytest.raises(MalformedInstance):
            m.define_rows(2)
        with pytest.raises(MalformedInstance):
            m.define_cols(2)

    def test_equality(self) -> None:
        a = SparseMatrix.from_dense("A", [[1, 0], [0, 1]])
        b = SparseMatrix.from_entries("A", 2, 2, [(0, 0, 1), (1, 1, 1)])
        assert a == b


class TestR1CSInstance:
    """Instance validation and satisfaction."""

    def test_identity_satisfaction(self) -> None:
        r1cs = identity_r1cs()
        assert r1cs.is_satisfied([1, 1, 1, 1])
        assert r1cs.is_satisfied([0, 1, 0, 1])
        assert not r1cs.is_satisfied([1, 1, 1, 2])

    def test_cubic_satisfaction(self) -> None:
        r1cs, witness = cubic_r1cs()
        assert r1cs.is_satisfied(witness)
        assert r1cs.public_input(witness) == [1, 35]
        witness[1] = 36
        assert not r1cs.is_satisfied(witness)

    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_random_instances_satisfied(self, seed: int) -> None:
        r1cs, witness = random_r1cs(5, 3, 2, seed)
        assert r1cs.is_satisfied(witness)

    def test_dimension_mismatch(self) -> None:
        with pytest.raises(MalformedInstance):
            R1CSInstance.from_dense([[1, 0]], [[1, 0]], [[1, 0, 0]])

    def test_empty_instance(self) -> None:
        empty = SparseMatrix("A", 0, 0)
        with pytest.raises(MalformedInstance):
            R1CSInstance(empty, empty, empty)

    @pytest.mark.parametrize("num_public", [-1, 3])
    def test_num_public_out_of_range(self, num_public: int) -> None:
        eye = [[1, 0], [0, 1]]
        with pytest.raises(MalformedInstance):
            R1CSInstance.from_dense(eye, eye, eye, num_public=num_public)

    def test_validate_limits(self) -> None:
        r1cs = identity_r1cs(4)
        r1cs.validate(FractalConfig())
        with pytest.raises(MalformedInstance):
            r1cs.validate(FractalConfig(max_constraints=3))
        with pytest.raises(MalformedInstance):
            r1cs.validate(FractalConfig(max_variables=3))
        with pytest.raises(MalformedInstance):
            r1cs.validate(FractalConfig(max_non_zero=3))
