"""Pytest configuration and shared fixtures."""
import numpy as np
import pytest

from frames import Frame

RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)
BLUE = (0, 0, 255, 255)
YELLOW = (255, 255, 0, 255)
CLEAR = (0, 0, 0, 0)


def make_frame(rows, duration=None):
    """Build a frame from nested rows of RGBA tuples."""
    return Frame(np.array(rows, dtype=np.uint8), duration=duration)


def random_frame(rng, width, height, duration=None):
    """A frame of random RGBA noise, which is uniform only at factor 1."""
    pixels = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
    return Frame(pixels, duration=duration)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def quadrant_frame():
    """4x4 frame made of four 2x2 color blocks."""
    return make_frame([
        [RED, RED, GREEN, GREEN],
        [RED, RED, GREEN, GREEN],
        [BLUE, BLUE, YELLOW, YELLOW],
        [BLUE, BLUE, YELLOW, YELLOW],
    ])
