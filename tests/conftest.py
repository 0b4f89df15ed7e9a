"""
This file configures pytest.

pip install -e ".[test]"
pytest -q tests
"""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = str(PROJECT_ROOT / "src")

if SRC_ROOT not in sys.path:
    sys.path.insert(0, SRC_ROOT)
