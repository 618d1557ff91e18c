"""Repository-wide pytest configuration.

Pins the repository root on ``sys.path`` so ``marketplace`` resolves the same
way regardless of the invocation directory, and keeps the client's
environment overrides from leaking into tests.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("PYTHONPATH", str(ROOT))


@pytest.fixture(autouse=True)
def _clear_marketplace_env(monkeypatch: pytest.MonkeyPatch):
    # Tests that need specific values re-apply them via ``monkeypatch.setenv``.
    for key in list(os.environ):
        if key.startswith("MARKETPLACE_"):
            monkeypatch.delenv(key, raising=False)
    yield
