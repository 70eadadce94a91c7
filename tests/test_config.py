"""Tests for FractalConfig."""

import pytest

from fractal_spec.protocol.config import CONFIG_BYTES, FractalConfig


class TestFractalConfig:
    """Validation and encoding."""

    def test_defaults(self) -> None:
        cfg = FractalConfig()
        assert cfg.blowup == 8
        assert cfg.security_bits() == 32 * 3 + 16

    @pytest.mark.parametrize("kwargs", [
        {"blowup_bits": 0},
        {"blowup_bits": 9},
        {"n_queries": 0},
        {"pow_bits": 33},
        {"merkle_arity": 5},
        {"max_constraints": 0},
    ])
    def test_invalid(self, kwargs) -> None:
        with pytest.raises(ValueError):
            FractalConfig(**kwargs)

    def test_roundtrip(self, fast_config: FractalConfig) -> None:
        data = fast_config.to_bytes()
        assert len(data) == CONFIG_BYTES
        assert FractalConfig.from_bytes(data) == fast_config

    def test_frozen(self, fast_config: FractalConfig) -> None:
        with pytest.raises(AttributeError):
            fast_config.n_queries = 1
