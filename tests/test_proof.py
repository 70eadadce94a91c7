"""Tests for the proof byte codec and structural validation."""

import copy
import dataclasses
import struct

import pytest

from fractal_spec.errors import ProtocolShapeMismatch
from fractal_spec.primitives.field import GOLDILOCKS_PRIME
from fractal_spec.primitives.merkle_tree import HASH_SIZE
from fractal_spec.protocol.pcs import OpeningProof
from fractal_spec.protocol.proof import FractalProof, validate_proof_shape


class TestProofCodec:
    """to_bytes / from_bytes."""

    def test_roundtrip(self, cubic_proof) -> None:
        data = cubic_proof.to_bytes()
        decoded = FractalProof.from_bytes(data)
        assert decoded == cubic_proof
        assert decoded.to_bytes() == data

    def test_starts_with_witness_root(self, cubic_proof) -> None:
        assert cubic_proof.to_bytes()[:HASH_SIZE] == cubic_proof.witness_root

    @pytest.mark.parametrize("cut", [1, 8, 100])
    def test_truncated(self, cubic_proof, cut: int) -> None:
        data = cubic_proof.to_bytes()
        with pytest.raises(ProtocolShapeMismatch):
            FractalProof.from_bytes(data[:-cut])

    def test_trailing_bytes(self, cubic_proof) -> None:
        with pytest.raises(ProtocolShapeMismatch):
            FractalProof.from_bytes(cubic_proof.to_bytes() + b"\x00")

    def test_empty(self) -> None:
        with pytest.raises(ProtocolShapeMismatch):
            FractalProof.from_bytes(b"")

    def test_non_canonical_element(self, cubic_proof) -> None:
        bad = copy.deepcopy(cubic_proof)
        bad.witness_eval = GOLDILOCKS_PRIME
        with pytest.raises(ProtocolShapeMismatch):
            FractalProof.from_bytes(bad.to_bytes())

    def test_oversized_count(self) -> None:
        data = bytes(HASH_SIZE) + struct.pack("<I", 0xFFFFFFFF)
        with pytest.raises(ProtocolShapeMismatch):
            FractalProof.from_bytes(data)

    def test_opening_keeps_claim_nesting(self, cubic_proof) -> None:
        decoded = FractalProof.from_bytes(cubic_proof.to_bytes())
        assert [len(roots) for roots in decoded.opening.fold_roots] == [
            len(roots) for roots in cubic_proof.opening.fold_roots
        ]
        assert decoded.opening.fold_evals == cubic_proof.opening.fold_evals

    def test_oversized_claim_count(self, cubic_proof) -> None:
        data = cubic_proof.to_bytes()
        # An empty opening encodes as three zero counts, final value, nonce and a zero count
        opening_at = len(dataclasses.replace(cubic_proof, opening=OpeningProof()).to_bytes()) - 32
        n_claims = len(cubic_proof.opening.fold_roots)
        assert data[opening_at:opening_at + 4] == struct.pack("<I", n_claims)
        corrupted = data[:opening_at] + struct.pack("<I", 0xFFFFFFFF) + data[opening_at + 4:]
        with pytest.raises(ProtocolShapeMismatch):
            FractalProof.from_bytes(corrupted)


class TestValidateProofShape:
    """validate_proof_shape against a verifier key."""

    def test_honest_proof_is_well_formed(self, cubic_proof, cubic_index) -> None:
        assert validate_proof_shape(cubic_proof, cubic_index.verifier_key) == []

    def test_missing_round(self, cubic_proof, cubic_index) -> None:
        bad = copy.deepcopy(cubic_proof)
        bad.outer_sumcheck.round_polys.pop()
        errors = validate_proof_shape(bad, cubic_index.verifier_key)
        assert any("outer sumcheck" in e for e in errors)

    def test_extra_coefficient(self, cubic_proof, cubic_index) -> None:
        bad = copy.deepcopy(cubic_proof)
        bad.matrix_sumchecks[1].round_polys[0].append(0)
        errors = validate_proof_shape(bad, cubic_index.verifier_key)
        assert any("matrix B sumcheck" in e for e in errors)

    def test_missing_public_claim(self, cubic_proof, cubic_index) -> None:
        bad = copy.deepcopy(cubic_proof)
        del bad.opening.fold_roots[1]
        del bad.opening.fold_evals[1]
        errors = validate_proof_shape(bad, cubic_index.verifier_key)
        assert any(e.startswith("opening: ") and "fold roots" in e for e in errors)

    def test_unexpected_public_claim(self, identity_index, cubic_proof) -> None:
        """A proof batching a public claim for a key without public input."""
        errors = validate_proof_shape(cubic_proof, identity_index.verifier_key)
        assert errors

    def test_opening_errors_are_prefixed(self, cubic_proof, cubic_index) -> None:
        bad = copy.deepcopy(cubic_proof)
        bad.opening.queries.pop()
        errors = validate_proof_shape(bad, cubic_index.verifier_key)
        assert errors and all(e.startswith("opening: ") for e in errors)

    def test_wrong_row_value_count(self, cubic_proof, cubic_index) -> None:
        bad = copy.deepcopy(cubic_proof)
        bad.matrix_openings[2].row_values.append(0)
        errors = validate_proof_shape(bad, cubic_index.verifier_key)
        assert any("matrix C" in e for e in errors)

    def test_non_canonical_evaluation(self, cubic_proof, cubic_index) -> None:
        bad = copy.deepcopy(cubic_proof)
        bad.rx_evals[0] = GOLDILOCKS_PRIME + 1
        assert validate_proof_shape(bad, cubic_index.verifier_key)

    def test_short_witness_root(self, cubic_proof, cubic_index) -> None:
        bad = copy.deepcopy(cubic_proof)
        bad.witness_root = b"\x00" * 31
        assert "Witness root is not a digest" in validate_proof_shape(bad, cubic_index.verifier_key)

    def test_missing_matrix_opening(self, cubic_proof, cubic_index) -> None:
        bad = copy.deepcopy(cubic_proof)
        bad.matrix_openings.pop()
        errors = validate_proof_shape(bad, cubic_index.verifier_key)
        assert any("matrix openings" in e for e in errors)
