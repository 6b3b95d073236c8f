# SPDX-FileCopyrightText: 2024-present barrettMCW <mjbarrett@mcw.edu>
#
# SPDX-License-Identifier: MIT
"""Colour deconvolution of 8-bit RGB images.

This module applies a :class:`~colour_deconvolution.basis.StainBasis` to
whole images.  For every pixel:

1. Each channel is converted to optical density and measured against the
   density of a white (255) channel, so a white pixel holds no stain.
2. The density triple is projected onto stain space with the inverse
   matrix: ``c = d x M⁻¹``.
3. For each output stain *i* only ``c_i`` is kept and projected back
   through its own vector, ``d_i = c_i x M[i]``, then re-encoded to 8-bit
   intensity.

Pixels are independent, so the image is cut into tiles of rows that are
processed on a thread pool and written into pre-allocated outputs.

Typical usage::

    import numpy as np
    from colour_deconvolution import StainBasis, decompose

    basis = StainBasis.from_preset("H&E")
    result = decompose(im_rgb, basis)

    hematoxylin, eosin, complement = result.images
    print(result.matrix_report())

Or, in one call::

    from colour_deconvolution import deconvolve

    result = deconvolve(im_rgb, preset="H DAB", mode="grayscale")
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import CancelledError, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Literal, Mapping, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

from colour_deconvolution.basis import StainBasis
from colour_deconvolution.config import settings
from colour_deconvolution.density import BACKGROUND_DENSITY, to_density, to_intensity
from colour_deconvolution.exceptions import InvalidImageError
from colour_deconvolution.presets import StainPresetRecord

logger = logging.getLogger(__name__)

Mode = Literal["rgb", "grayscale"]
_MODES = ("rgb", "grayscale")


@dataclass
class DeconvolutionResult:
    """Output of :func:`decompose`.

    :param images: one uint8 image per output stain, in output order
    :param labels: ``"Colour_<slot>"`` label of each image
    :param basis: the basis the images were computed with
    :param mode: ``"rgb"`` or ``"grayscale"``
    :param slots: basis slots summed into each image; the complement
        image lists every synthesized slot
    """

    images: list[NDArray[np.uint8]]
    labels: list[str]
    basis: StainBasis
    mode: str = "rgb"
    slots: list[tuple[int, ...]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.images)

    def __getitem__(self, label: str) -> NDArray[np.uint8]:
        return self.images[self.labels.index(label)]

    def matrix_report(self) -> str:
        return self.basis.matrix_report()


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _as_image(image: ArrayLike) -> NDArray[np.uint8]:
    """Validate an 8-bit RGB image or stack and return it as uint8.

    :raises InvalidImageError: if the input is not ``(H, W, 3)`` or
        ``(N, H, W, 3)`` integer data within ``[0, 255]``
    """
    im = np.asarray(image)
    if im.ndim not in (3, 4) or im.shape[-1] != 3:
        msg = f"image must have shape (H, W, 3) or (N, H, W, 3), got {im.shape}"
        raise InvalidImageError(msg)
    if im.size == 0:
        msg = f"image is empty, got shape {im.shape}"
        raise InvalidImageError(msg)
    if im.dtype == np.uint8:
        return im
    if not np.issubdtype(im.dtype, np.integer):
        msg = f"image must hold 8-bit integer values, got dtype {im.dtype}"
        raise InvalidImageError(msg)
    if im.min() < 0 or im.max() > 255:
        msg = f"image values must lie in [0, 255], got [{im.min()}, {im.max()}]"
        raise InvalidImageError(msg)
    return im.astype(np.uint8)


def _output_groups(
    basis: StainBasis, include_complement: bool
) -> tuple[list[tuple[int, ...]], list[str]]:
    """Slots contributing to each output image, and the image labels."""
    groups = [(slot,) for slot in basis.active_slots]
    labels = [f"Colour_{slot + 1}" for slot in basis.active_slots]
    synthesized = basis.synthesized_slots
    if include_complement and synthesized:
        groups.append(synthesized)
        labels.append(f"Colour_{synthesized[-1] + 1}")
    return groups, labels


# ---------------------------------------------------------------------------
# Per-pixel transforms
# ---------------------------------------------------------------------------


def concentrations(image: ArrayLike, basis: StainBasis) -> NDArray[np.float64]:
    """Per-pixel stain amounts.

    :param image: 8-bit RGB image ``(H, W, 3)`` or stack ``(N, H, W, 3)``
    :type image: ArrayLike
    :param basis: stain basis
    :type basis: StainBasis
    :return: array of the image's shape, channel *i* holding the amount of
        the stain in slot *i*.  White pixels give 0.
    :rtype: NDArray[np.float64]
    :raises InvalidImageError: if *image* is not an 8-bit RGB raster
    """
    im = _as_image(image)
    return _concentrations(im, basis)


def _project(values: NDArray[np.float64], matrix: NDArray[np.float64]) -> NDArray[np.float64]:
    """Row-vector product ``values x matrix`` over the last axis.

    Written element-wise so every pixel is computed the same way whatever
    the tile it falls in.
    """
    out = values[..., 0, None] * matrix[0]
    for k in range(1, matrix.shape[0]):
        out = out + values[..., k, None] * matrix[k]
    return out


def _concentrations(im: NDArray[np.uint8], basis: StainBasis) -> NDArray[np.float64]:
    density = to_density(im) - BACKGROUND_DENSITY
    return _project(density, basis.inverse)


def reconstruct_stain(
    concentration: ArrayLike,
    basis: StainBasis,
    slots: int | Sequence[int],
    mode: Mode = "rgb",
) -> NDArray[np.uint8]:
    """Render the given stain slot(s) alone from a concentration array.

    Concentrations of every other slot are treated as zero.

    :param concentration: array ``(..., 3)`` as returned by
        :func:`concentrations`
    :type concentration: ArrayLike
    :param basis: the basis used to compute *concentration*
    :type basis: StainBasis
    :param slots: a slot index, or several slots rendered together
    :type slots: int | Sequence[int]
    :param mode: ``"rgb"`` renders the stain's own colour ``(..., 3)``;
        ``"grayscale"`` renders its amount as a single channel ``(...)``
    :type mode: str
    :return: uint8 image
    :rtype: NDArray[np.uint8]
    """
    conc = np.asarray(concentration, dtype=np.float64)
    slots = [slots] if isinstance(slots, (int, np.integer)) else list(slots)
    if mode == "rgb":
        density = _project(conc[..., slots], basis.matrix[slots])
    elif mode == "grayscale":
        density = conc[..., slots].sum(axis=-1)
    else:
        msg = f"mode must be one of {_MODES}, got {mode!r}"
        raise ValueError(msg)
    return to_intensity(density + BACKGROUND_DENSITY)


# ---------------------------------------------------------------------------
# Whole images
# ---------------------------------------------------------------------------


def decompose(
    image: ArrayLike,
    basis: StainBasis,
    mode: Mode | None = None,
    include_complement: bool = True,
    workers: int | None = None,
    tile_rows: int | None = None,
    cancel_event: threading.Event | None = None,
) -> DeconvolutionResult:
    """Split an RGB image into one image per stain.

    Outputs are ordered by slot: one per caller-supplied stain, followed
    (when *include_complement* is true and the basis has synthesized
    slots) by a complement image rendering all synthesized slots together.

    :param image: 8-bit RGB image ``(H, W, 3)`` or stack ``(N, H, W, 3)``
    :type image: ArrayLike
    :param basis: validated stain basis
    :type basis: StainBasis
    :param mode: ``"rgb"`` or ``"grayscale"``; defaults to settings
    :type mode: str | None
    :param include_complement: emit the complement image
    :type include_complement: bool
    :param workers: worker threads; defaults to settings, then CPU count
    :type workers: int | None
    :param tile_rows: image rows per tile; defaults to settings
    :type tile_rows: int | None
    :param cancel_event: when set, tiles not yet started are skipped
    :type cancel_event: threading.Event | None
    :return: output images, labels and the basis
    :rtype: DeconvolutionResult
    :raises InvalidImageError: if *image* is not an 8-bit RGB raster
    :raises ValueError: if *mode*, *workers* or *tile_rows* are invalid
    :raises concurrent.futures.CancelledError: if *cancel_event* was set
        before every tile finished
    """
    mode = mode or settings.mode
    if mode not in _MODES:
        msg = f"mode must be one of {_MODES}, got {mode!r}"
        raise ValueError(msg)
    if workers is None:
        workers = settings.workers or os.cpu_count() or 1
    if tile_rows is None:
        tile_rows = settings.tile_rows
    if workers < 1 or tile_rows < 1:
        msg = f"workers and tile_rows must be >= 1, got {workers} and {tile_rows}"
        raise ValueError(msg)

    im = _as_image(image)
    groups, labels = _output_groups(basis, include_complement)

    # stacks are processed as one tall image
    width = im.shape[-2]
    rows = im.reshape(-1, width, 3)
    out_shape = rows.shape if mode == "rgb" else rows.shape[:-1]
    outputs = [np.empty(out_shape, dtype=np.uint8) for _ in groups]

    tiles = [
        slice(start, min(start + tile_rows, rows.shape[0]))
        for start in range(0, rows.shape[0], tile_rows)
    ]
    logger.debug(
        "Deconvolving image %s into %d outputs: %d tiles of %d rows, %d workers",
        im.shape,
        len(groups),
        len(tiles),
        tile_rows,
        workers,
    )

    def run(tile: slice) -> bool:
        if cancel_event is not None and cancel_event.is_set():
            return False
        conc = _concentrations(rows[tile], basis)
        for out, slots in zip(outputs, groups):
            out[tile] = reconstruct_stain(conc, basis, slots, mode)
        return True

    if workers == 1 or len(tiles) == 1:
        finished = [run(tile) for tile in tiles]
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            finished = list(pool.map(run, tiles))

    if not all(finished):
        msg = f"deconvolution cancelled after {sum(finished)} of {len(tiles)} tiles"
        raise CancelledError(msg)

    final_shape = im.shape if mode == "rgb" else im.shape[:-1]
    images = [out.reshape(final_shape) for out in outputs]
    return DeconvolutionResult(images, labels, basis, mode, groups)


def deconvolve(
    image: ArrayLike,
    vectors: ArrayLike | None = None,
    preset: str | None = None,
    presets: Mapping[str, StainPresetRecord] | None = None,
    required: Sequence[int] = (),
    show_matrices: bool = False,
    **kwargs,
) -> DeconvolutionResult:
    """Build a basis from raw vectors or a named preset and decompose *image*.

    Exactly one of *vectors* and *preset* must be given.  The image is
    validated before the basis is built, so any failure is raised before
    pixel processing starts.

    :param image: 8-bit RGB image or stack
    :type image: ArrayLike
    :param vectors: up to three raw stain vectors
    :type vectors: ArrayLike | None
    :param preset: name of a stain preset
    :type preset: str | None
    :param presets: presets to look *preset* up in; bundled by default
    :type presets: Mapping[str, StainPresetRecord] | None
    :param required: slots that must be specified in *vectors*
    :type required: Sequence[int]
    :param show_matrices: log the basis matrices at INFO level
    :type show_matrices: bool
    :param kwargs: forwarded to :func:`decompose`
    :return: the deconvolution result
    :rtype: DeconvolutionResult
    """
    if (vectors is None) == (preset is None):
        raise ValueError("pass exactly one of 'vectors' or 'preset'")

    im = _as_image(image)
    if preset is not None:
        basis = StainBasis.from_preset(preset, presets, required=required)
    else:
        basis = StainBasis(vectors, required=required, name="User values")

    if show_matrices:
        logger.info("%s", basis.matrix_report())
    return decompose(im, basis, **kwargs)
