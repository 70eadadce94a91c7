"""Tests for the indexer, verifier key and index serialization."""

import numpy as np
import pytest

from fractal_spec.errors import MalformedInstance, ProtocolShapeMismatch
from fractal_spec.primitives.field import FF, to_ints
from fractal_spec.primitives.merkle_tree import HASH_SIZE
from fractal_spec.primitives.polynomial import eq_table, mle_eval
from fractal_spec.primitives.transcript import Transcript
from fractal_spec.protocol.config import CONFIG_BYTES, FractalConfig
from fractal_spec.protocol.indexer import Index, IndexParams, VerifierKey, index
from fractal_spec.protocol.r1cs import R1CSInstance, SparseMatrix
from tests.instances import FAST_CONFIG, identity_r1cs, random_r1cs


class TestIndexParams:
    """Padded layout."""

    def test_identity_layout(self, identity_index) -> None:
        params = identity_index.params
        assert params.num_non_zero == (4, 4, 4)
        assert (params.num_rows, params.num_cols) == (4, 4)
        assert (params.row_vars, params.col_vars) == (2, 2)
        assert params.public_size == 0
        assert params.public_vars == 0
        assert params.matrix_size(0) == 4

    @pytest.mark.parametrize("n,m,k,rows,cols,k_pad", [
        (1, 1, 0, 2, 2, 0),
        (3, 5, 3, 4, 8, 4),
        (4, 6, 2, 4, 8, 2),
        (5, 9, 1, 8, 16, 1),
        (8, 8, 8, 8, 8, 8),
    ])
    def test_padded_sizes(self, n: int, m: int, k: int, rows: int, cols: int, k_pad: int) -> None:
        params = IndexParams(num_constraints=n, num_variables=m, num_public=k, num_non_zero=(1, 1, 1))
        assert params.num_rows == rows
        assert params.num_cols == cols
        assert params.public_size == k_pad

    def test_column_position(self) -> None:
        params = IndexParams(num_constraints=2, num_variables=5, num_public=3, num_non_zero=(1, 1, 1))
        assert [params.column_position(c) for c in range(5)] == [0, 1, 2, 4, 5]

    def test_embed_witness(self) -> None:
        params = IndexParams(num_constraints=2, num_variables=5, num_public=3, num_non_zero=(1, 1, 1))
        assert to_ints(params.embed_witness([1, 2, 3, 4, 5])) == [1, 2, 3, 0, 4, 5, 0, 0]

    def test_embed_witness_wrong_length(self) -> None:
        params = IndexParams(num_constraints=2, num_variables=5, num_public=3, num_non_zero=(1, 1, 1))
        with pytest.raises(MalformedInstance):
            params.embed_witness([1, 2])

    def test_embed_public(self) -> None:
        params = IndexParams(num_constraints=2, num_variables=5, num_public=3, num_non_zero=(1, 1, 1))
        assert to_ints(params.embed_public([7, 8, 9])) == [7, 8, 9, 0]


class TestIndexedMatrix:
    """Sorted, padded entry vectors."""

    def test_padding_entries(self) -> None:
        a = SparseMatrix.from_entries("A", 2, 2, [(1, 1, 3), (0, 1, 2), (1, 0, 5)])
        b = SparseMatrix.from_entries("B", 2, 2, [(0, 0, 1)])
        c = SparseMatrix.from_entries("C", 2, 2, [(0, 1, 1), (1, 1, 1)])
        idx = index(R1CSInstance(a, b, c), FAST_CONFIG)
        ma, mb, _ = idx.matrices

        assert ma.size == 4 and ma.num_non_zero == 3
        assert ma.row.tolist() == [0, 1, 1, 0]
        assert ma.col.tolist() == [1, 0, 1, 0]
        assert to_ints(ma.val) == [2, 5, 3, 0]
        assert mb.size == 2
        assert to_ints(mb.val) == [1, 0]

    def test_arrays_are_read_only(self, identity_index) -> None:
        matrix = identity_index.matrices[0]
        with pytest.raises(ValueError):
            matrix.row[0] = 1
        with pytest.raises(ValueError):
            matrix.val[0] = 1

    @pytest.mark.parametrize("seed", [3, 4])
    def test_multiply_matches_dot(self, seed: int) -> None:
        r1cs, witness = random_r1cs(3, 2, 2, seed)
        idx = index(r1cs, FAST_CONFIG)
        z = idx.params.embed_witness(witness)
        for sparse, indexed in zip(r1cs.matrices(), idx.matrices):
            expected = list(to_ints(sparse.dot(witness))) + [0] * (idx.params.num_rows - r1cs.num_constraints)
            assert to_ints(indexed.multiply(z, idx.params.num_rows)) == expected

    def test_evaluate_and_bind_rows_match_dense(self) -> None:
        r1cs, _ = random_r1cs(3, 2, 1, 7)
        idx = index(r1cs, FAST_CONFIG)
        params = idx.params
        r_x = list(FF.Random(params.row_vars))
        r_y = list(FF.Random(params.col_vars))
        eq_rx, eq_ry = eq_table(r_x), eq_table(r_y)

        for matrix in idx.matrices:
            dense = FF.Zeros(params.num_rows * params.num_cols)
            for r, c, v in zip(matrix.row.tolist(), matrix.col.tolist(), to_ints(matrix.val)):
                dense[r + params.num_rows * c] += FF(v)
            expected = mle_eval(dense, r_x + r_y)
            assert matrix.evaluate(eq_rx, eq_ry) == expected
            assert mle_eval(matrix.bind_rows(eq_rx, params.num_cols), r_y) == expected


class TestIndex:
    """index() results."""

    def test_deterministic(self) -> None:
        vk1 = index(identity_r1cs(), FAST_CONFIG).verifier_key
        vk2 = index(identity_r1cs(), FAST_CONFIG).verifier_key
        assert vk1 == vk2
        assert vk1.digest() == vk2.digest()

    def test_different_matrices_different_key(self) -> None:
        eye = [[1, 0], [0, 1]]
        swapped = [[0, 1], [1, 0]]
        vk1 = index(R1CSInstance.from_dense(eye, eye, eye), FAST_CONFIG).verifier_key
        vk2 = index(R1CSInstance.from_dense(eye, eye, swapped), FAST_CONFIG).verifier_key
        assert vk1.digest() != vk2.digest()

    def test_config_is_bound_into_key(self) -> None:
        vk1 = index(identity_r1cs(), FAST_CONFIG).verifier_key
        vk2 = index(identity_r1cs(), FractalConfig(blowup_bits=2, n_queries=9, pow_bits=2)).verifier_key
        assert vk1.digest() != vk2.digest()

    def test_commitment_shapes(self, cubic_index) -> None:
        params = cubic_index.params
        for m, mc in enumerate(cubic_index.verifier_key.matrix_commitments):
            assert mc.row.n_cols == params.row_vars
            assert mc.col.n_cols == params.col_vars
            assert mc.val.n_cols == 1
            assert {mc.row.num_vars, mc.col.num_vars, mc.val.num_vars} == {params.matrix_vars(m)}
            assert all(len(root) == HASH_SIZE for root in mc.roots())

    def test_exceeds_limits(self) -> None:
        with pytest.raises(MalformedInstance):
            index(identity_r1cs(4), FractalConfig(max_non_zero=2))
        with pytest.raises(MalformedInstance):
            index(identity_r1cs(4), FractalConfig(max_constraints=2))

    def test_default_config(self) -> None:
        idx = index(identity_r1cs(2))
        assert idx.config == FractalConfig()


class TestSerialization:
    """VerifierKey and Index byte codecs."""

    def test_verifier_key_roundtrip(self, cubic_index) -> None:
        vk = cubic_index.verifier_key
        restored = VerifierKey.from_bytes(vk.to_bytes())
        assert restored == vk
        assert restored.digest() == vk.digest()

    def test_verifier_key_truncated(self, cubic_index) -> None:
        data = cubic_index.verifier_key.to_bytes()
        with pytest.raises(ProtocolShapeMismatch):
            VerifierKey.from_bytes(data[:-1])

    def test_verifier_key_trailing(self, cubic_index) -> None:
        data = cubic_index.verifier_key.to_bytes()
        with pytest.raises(ProtocolShapeMismatch):
            VerifierKey.from_bytes(data + b"\x00")

    def test_verifier_key_bad_config(self, cubic_index) -> None:
        data = bytearray(cubic_index.verifier_key.to_bytes())
        # blowup_bits is the first config word, right after the 6 dimension words
        data[48:56] = (99).to_bytes(8, "little")
        with pytest.raises(MalformedInstance):
            VerifierKey.from_bytes(bytes(data))

    def test_index_roundtrip_recommits(self, cubic_index) -> None:
        restored = Index.from_bytes(cubic_index.to_bytes())
        assert restored.verifier_key == cubic_index.verifier_key
        assert restored.params == cubic_index.params
        for a, b in zip(restored.matrices, cubic_index.matrices):
            assert np.array_equal(a.row, b.row)
            assert np.array_equal(a.col, b.col)
            assert np.array_equal(a.val, b.val)

    def test_index_truncated(self, cubic_index) -> None:
        with pytest.raises(ProtocolShapeMismatch):
            Index.from_bytes(cubic_index.to_bytes()[:-3])

    @pytest.mark.parametrize("word,value", [
        (0, 1 << 63),
        (0, (1 << 64) - 1),
        (1, 1 << 40),
    ])
    def test_index_entry_outside_domain(self, cubic_index, word: int, value: int) -> None:
        data = bytearray(cubic_index.to_bytes())
        # First A entry (row, col) follows the 6 dimension words and the config
        offset = 48 + CONFIG_BYTES + 8 * word
        data[offset:offset + 8] = value.to_bytes(8, "little")
        with pytest.raises(MalformedInstance, match="outside the padded domain"):
            Index.from_bytes(bytes(data))


class TestSecurityBits:
    """Soundness estimate of a verifier key."""

    def test_is_capped_by_field_bound(self, cubic_index) -> None:
        vk = cubic_index.verifier_key
        assert vk.security_bits() == min(vk.config.security_bits(), vk.field_security_bits())

    def test_field_bound_of_identity(self, identity_index) -> None:
        # Union bound of 141 over p: 8 bits off the 63-bit field
        assert identity_index.verifier_key.field_security_bits() == 55

    def test_queries_cannot_exceed_field_bound(self) -> None:
        cfg = FractalConfig()
        vk = index(identity_r1cs(), cfg).verifier_key
        assert cfg.security_bits() > 64
        assert vk.security_bits() == vk.field_security_bits() < 64

    def test_low_query_config_is_query_bound(self) -> None:
        cfg = FractalConfig(blowup_bits=1, n_queries=4, pow_bits=0)
        vk = index(identity_r1cs(), cfg).verifier_key
        assert vk.security_bits() == 4

    def test_larger_instance_lowers_field_bound(self) -> None:
        small = index(identity_r1cs(2), FAST_CONFIG).verifier_key
        large = index(identity_r1cs(16), FAST_CONFIG).verifier_key
        assert large.field_security_bits() < small.field_security_bits()


class TestAbsorb:
    """Statement binding."""

    def test_public_input_changes_challenges(self, cubic_index) -> None:
        vk = cubic_index.verifier_key
        t1, t2 = Transcript(), Transcript()
        vk.absorb(t1, [1, 35])
        vk.absorb(t2, [1, 36])
        assert t1.challenge() != t2.challenge()
