from __future__ import annotations

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from mermaidview._tests._helpers import FakeEngine


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()
