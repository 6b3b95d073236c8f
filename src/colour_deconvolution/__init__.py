# SPDX-FileCopyrightText: 2024-present barrettMCW <mjbarrett@mcw.edu>
#
# SPDX-License-Identifier: MIT
"""Colour deconvolution of bright-field RGB images.

Separates an image of light-absorbing stains into one image per stain
using the Ruifrok & Johnston linear model in optical-density space.  Up to
three stain vectors are given directly, taken from a named preset, or
sampled from image regions; missing vectors are synthesized.

Example::

    import numpy as np
    from colour_deconvolution import StainBasis, decompose

    basis = StainBasis([[0.650, 0.704, 0.286], [0.072, 0.990, 0.105]])
    result = decompose(im_rgb, basis)

    hematoxylin, eosin, complement = result.images
    print(result.matrix_report())
"""

from colour_deconvolution.__about__ import __version__
from colour_deconvolution.basis import StainBasis
from colour_deconvolution.deconvolution import (
    DeconvolutionResult,
    concentrations,
    decompose,
    deconvolve,
    reconstruct_stain,
)
from colour_deconvolution.density import BACKGROUND_DENSITY, to_density, to_intensity
from colour_deconvolution.exceptions import (
    ColourDeconvolutionError,
    DegenerateVectorError,
    InvalidImageError,
    PresetFormatError,
    PresetNotFoundError,
    SingularBasisError,
)
from colour_deconvolution.presets import (
    StainPresetRecord,
    bundled_presets,
    get_preset,
    load_presets,
    merge,
    parse_library,
    read_library,
    write_library,
)
from colour_deconvolution.sampling import Region, sample_region, sample_regions

__all__ = [
    "BACKGROUND_DENSITY",
    "ColourDeconvolutionError",
    "DeconvolutionResult",
    "DegenerateVectorError",
    "InvalidImageError",
    "PresetFormatError",
    "PresetNotFoundError",
    "Region",
    "SingularBasisError",
    "StainBasis",
    "StainPresetRecord",
    "__version__",
    "bundled_presets",
    "concentrations",
    "decompose",
    "deconvolve",
    "get_preset",
    "load_presets",
    "merge",
    "parse_library",
    "read_library",
    "reconstruct_stain",
    "sample_region",
    "sample_regions",
    "to_density",
    "to_intensity",
    "write_library",
]
