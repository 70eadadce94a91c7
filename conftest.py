"""Pytest configuration for fractal-spec tests."""

import sys
from pathlib import Path

# Add the repository root to the path so `fractal_spec` imports without installing
repo_dir = Path(__file__).parent
if str(repo_dir) not in sys.path:
    sys.path.insert(0, str(repo_dir))
