"""Shared fixtures for the test suite."""

import os
import sys

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tests.helpers import ScriptedAnalyzer, encode_png


@pytest.fixture
def analyzer():
    """A loaded ScriptedAnalyzer."""
    a = ScriptedAnalyzer()
    a.load_model()
    return a


@pytest.fixture
def png_bytes():
    """A small valid PNG image (48x64)."""
    return encode_png(np.full((64, 48, 3), 127, dtype=np.uint8))
