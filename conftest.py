"""Puts src/ on sys.path before collection so tests import packages directly."""

import sys
from pathlib import Path

import pytest

SRC_DIR = str((Path(__file__).parent / "src").absolute())

if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)


@pytest.fixture(autouse=True)
def _reset_email_provider():
    """Forget any transport a test installed."""
    yield
    from notifications.email_provider import set_email_provider
    set_email_provider(None)
