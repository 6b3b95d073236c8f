# SPDX-FileCopyrightText: 2024-present barrettMCW <mjbarrett@mcw.edu>
#
# SPDX-License-Identifier: MIT
"""Shared pytest fixtures and configuration for colour_deconvolution tests."""

import numpy as np
import pytest

from colour_deconvolution.basis import StainBasis
from colour_deconvolution.density import BACKGROUND_DENSITY, to_intensity

HEMATOXYLIN = [0.650, 0.704, 0.286]
EOSIN = [0.072, 0.990, 0.105]
DAB = [0.268, 0.570, 0.776]


@pytest.fixture
def rng():
    """Provide a seeded random number generator for reproducible tests.

    :return: numpy random generator with fixed seed
    :rtype: numpy.random.Generator
    """
    return np.random.default_rng(42)


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_rgb_image(rng):
    """Provide a small synthetic 8-bit RGB image.

    Returns a 64x48x3 uint8 image (height differs from width on purpose).

    :return: synthetic RGB image
    :rtype: numpy.ndarray
    """
    return rng.integers(0, 256, size=(64, 48, 3), dtype=np.uint8)


@pytest.fixture
def sample_stack(rng):
    """Provide a stack of two 16x24 RGB slices.

    :return: uint8 array with shape (2, 16, 24, 3)
    :rtype: numpy.ndarray
    """
    return rng.integers(0, 256, size=(2, 16, 24, 3), dtype=np.uint8)


@pytest.fixture
def white_image():
    """A 32x32 image where every pixel is (255, 255, 255)."""
    return np.full((32, 32, 3), 255, dtype=np.uint8)


# ---------------------------------------------------------------------------
# Bases
# ---------------------------------------------------------------------------


@pytest.fixture
def he_basis():
    """Haematoxylin & eosin with a synthesized third vector."""
    return StainBasis([HEMATOXYLIN, EOSIN], name="H&E")


@pytest.fixture
def hed_basis():
    """Haematoxylin, eosin and DAB, all three supplied."""
    return StainBasis([HEMATOXYLIN, EOSIN, DAB], name="H&E DAB")


@pytest.fixture
def render_single_stain():
    """Provide a function encoding pure amounts of one stain as an RGB image.

    The returned callable takes ``(basis, slot, amounts)`` and returns a
    uint8 image with shape ``amounts.shape + (3,)``.
    """

    def _render(basis, slot, amounts):
        amounts = np.asarray(amounts, dtype=np.float64)
        density = amounts[..., None] * basis.matrix[slot] + BACKGROUND_DENSITY
        return to_intensity(density)

    return _render
