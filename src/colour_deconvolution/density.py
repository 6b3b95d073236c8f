# SPDX-FileCopyrightText: 2024-present barrettMCW <mjbarrett@mcw.edu>
#
# SPDX-License-Identifier: MIT
"""Conversion between 8-bit channel intensity and optical density.

The density scale follows Ruifrok & Johnston: a channel value ``v`` in
``[0, 255]`` maps to

    d = -255 x ln((v + 1) / 255) / ln(255)

so that ``v = 0`` gives ``d = 255`` and ``v = 254`` gives ``d = 0``.  The
``+ 1`` keeps black pixels finite.  The inverse is

    v = 255 x exp(-d x ln(255) / 255) - 1

rounded and clamped to ``[0, 255]``.

Both functions accept scalars or arrays of any shape and are applied
element-wise.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike, NDArray

LOG_255 = float(np.log(255.0))

#: Density of a fully transmitted channel (value 255). Slightly negative.
BACKGROUND_DENSITY = float(-255.0 * np.log(256.0 / 255.0) / LOG_255)


def to_density(values: ArrayLike) -> float | NDArray[np.float64]:
    """Convert channel intensities to optical density.

    :param values: channel values in ``[0, 255]`` (scalar or array)
    :type values: ArrayLike
    :return: optical density, same shape as the input, float64
    :rtype: float | NDArray[np.float64]
    """
    arr = np.asarray(values, dtype=np.float64)
    density = -255.0 * np.log((arr + 1.0) / 255.0) / LOG_255
    if density.ndim == 0:
        return float(density)
    return density


def to_intensity(density: ArrayLike) -> int | NDArray[np.uint8]:
    """Convert optical density back to 8-bit channel intensity.

    Values outside ``[0, 255]`` after rounding are clamped, so very
    negative densities saturate to white and very large ones to black.

    :param density: optical density (scalar or array)
    :type density: ArrayLike
    :return: channel values, same shape as the input, uint8
    :rtype: int | NDArray[np.uint8]
    """
    arr = np.asarray(density, dtype=np.float64)
    with np.errstate(over="ignore"):
        values = 255.0 * np.exp(-arr * LOG_255 / 255.0) - 1.0
    values = np.clip(np.rint(values), 0.0, 255.0).astype(np.uint8)
    if values.ndim == 0:
        return int(values)
    return values
