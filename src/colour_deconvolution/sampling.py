# SPDX-FileCopyrightText: 2024-present barrettMCW <mjbarrett@mcw.edu>
#
# SPDX-License-Identifier: MIT
"""Derive raw stain vectors from rectangular image regions.

Ideally each region covers tissue stained with a single dye.  The mean
optical density of the region, measured against the white background the
engine uses, is that dye's stain vector::

    from colour_deconvolution.sampling import Region, sample_regions
    from colour_deconvolution import StainBasis

    vectors = sample_regions(im_rgb, [Region(10, 10, 20, 20), Region(80, 40, 16, 16)])
    basis = StainBasis(vectors, required=(0, 1), name="From ROI")
"""

from __future__ import annotations

from typing import NamedTuple, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

from colour_deconvolution.density import BACKGROUND_DENSITY, to_density
from colour_deconvolution.exceptions import InvalidImageError


class Region(NamedTuple):
    """Axis-aligned rectangle in pixel coordinates (x = column, y = row)."""

    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_corners(cls, x1: int, y1: int, x2: int, y2: int) -> Region:
        """Rectangle spanning two opposite corners, both inclusive, in any order."""
        return cls(min(x1, x2), min(y1, y2), abs(x2 - x1) + 1, abs(y2 - y1) + 1)


def sample_region(image: ArrayLike, region: Region) -> NDArray[np.float64]:
    """Mean optical density of R, G and B over a region, relative to white.

    The region is clipped to the image bounds first.

    :param image: 8-bit RGB image ``(H, W, 3)``
    :type image: ArrayLike
    :param region: rectangle to sample
    :type region: Region
    :return: raw stain vector ``(3,)``
    :rtype: NDArray[np.float64]
    :raises InvalidImageError: if *image* is not ``(H, W, 3)`` or the
        clipped region holds no pixels
    """
    im = np.asarray(image)
    if im.ndim != 3 or im.shape[2] != 3:
        msg = f"image must have shape (H, W, 3), got {im.shape}"
        raise InvalidImageError(msg)

    x, y, width, height = (int(v) for v in region)
    x0, y0 = max(x, 0), max(y, 0)
    x1, y1 = min(x + width, im.shape[1]), min(y + height, im.shape[0])
    if width <= 0 or height <= 0 or x1 <= x0 or y1 <= y0:
        msg = f"region {tuple(region)} holds no pixels of a {im.shape[:2]} image"
        raise InvalidImageError(msg)

    patch = im[y0:y1, x0:x1].reshape(-1, 3)
    return (to_density(patch) - BACKGROUND_DENSITY).mean(axis=0)


def sample_regions(
    image: ArrayLike, regions: Sequence[Region]
) -> NDArray[np.float64]:
    """Sample one raw stain vector per region (at most three).

    :return: ``(len(regions), 3)`` array of raw stain vectors
    :rtype: NDArray[np.float64]
    """
    if not 1 <= len(regions) <= 3:
        msg = f"between 1 and 3 regions are needed, got {len(regions)}"
        raise ValueError(msg)
    return np.stack([sample_region(image, region) for region in regions])
