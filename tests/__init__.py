"""Tests - pytest suite for fractal_spec."""
