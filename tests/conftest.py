from __future__ import annotations

import sys
from pathlib import Path


def pytest_configure() -> None:
    # Tests import `tabpilot` straight from the checkout.
    src = Path(__file__).resolve().parents[1] / "src"
    if src.exists() and str(src) not in sys.path:
        sys.path.insert(0, str(src))
