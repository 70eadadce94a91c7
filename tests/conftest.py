"""Pytest fixtures for fractal_spec tests."""

import pytest

from fractal_spec.primitives.transcript import Transcript
from fractal_spec.protocol.config import FractalConfig
from fractal_spec.protocol.indexer import index
from fractal_spec.protocol.prover import prove
from tests.instances import FAST_CONFIG, cubic_r1cs, identity_r1cs


@pytest.fixture
def fast_config() -> FractalConfig:
    return FAST_CONFIG


@pytest.fixture(scope="session")
def identity_index():
    return index(identity_r1cs(), FAST_CONFIG)


@pytest.fixture(scope="session")
def cubic():
    """(instance, witness) for x^3 + x + 5 == 35."""
    return cubic_r1cs()


@pytest.fixture(scope="session")
def cubic_index(cubic):
    r1cs, _ = cubic
    return index(r1cs, FAST_CONFIG)


@pytest.fixture(scope="session")
def cubic_proof(cubic, cubic_index):
    """Honest proof for the cubic instance; tests must copy before mutating."""
    _, witness = cubic
    return prove(cubic_index, witness, Transcript())
