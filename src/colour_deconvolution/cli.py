# SPDX-FileCopyrightText: 2024-present barrettMCW <mjbarrett@mcw.edu>
#
# SPDX-License-Identifier: MIT
"""Command line entry point: ``colour-deconvolution``.

Examples::

    colour-deconvolution slide.png --preset "H&E" --show-matrices
    colour-deconvolution slide.png --vectors 0.65 0.70 0.29 0.27 0.57 0.78
    colour-deconvolution slide.png --roi 10 10 20 20 --roi 80 40 16 16
    colour-deconvolution --list-presets --library ~/colourdeconvolution.txt
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

import numpy as np
from numpy.typing import NDArray
from PIL import Image, ImageSequence

from colour_deconvolution.__about__ import __version__
from colour_deconvolution.basis import StainBasis
from colour_deconvolution.config import settings
from colour_deconvolution.deconvolution import decompose
from colour_deconvolution.exceptions import ColourDeconvolutionError, InvalidImageError
from colour_deconvolution.presets import get_preset, load_presets, write_library
from colour_deconvolution.sampling import Region, sample_regions

logger = logging.getLogger("colour_deconvolution")

# map our verbosity names onto the logging library's levels
LEVEL_CONFIG = {
    "debug": logging.DEBUG,
    "normal": logging.INFO,
    "quiet": logging.ERROR,
}


def configure_logging(verbosity: str) -> None:
    logging.basicConfig(
        level=LEVEL_CONFIG[verbosity],
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(LEVEL_CONFIG[verbosity])


def read_image(path: Path) -> NDArray[np.uint8]:
    """Load an RGB image, or every frame of a multi-frame file as a stack.

    :raises InvalidImageError: if the file is not 8-bit RGB
    """
    with Image.open(path) as img:
        if img.mode != "RGB":
            msg = f"{path}: RGB image needed, got mode {img.mode!r}"
            raise InvalidImageError(msg)
        frames = [np.array(frame.convert("RGB")) for frame in ImageSequence.Iterator(img)]
    if len(frames) == 1:
        return frames[0]
    return np.stack(frames)


def write_image(path: Path, image: NDArray[np.uint8], stack: bool = False) -> None:
    """Save one output image; stacks become multi-page files."""
    if stack:
        pages = [Image.fromarray(frame) for frame in image]
        pages[0].save(path, save_all=True, append_images=pages[1:])
    else:
        Image.fromarray(image).save(path)


def cmdl_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="colour-deconvolution",
        description="Separate a bright-field RGB image into per-stain images.",
    )
    parser.add_argument("image", type=Path, nargs="?", help="RGB image to separate")

    source = parser.add_mutually_exclusive_group()
    source.add_argument("--preset", help="name of a stain preset")
    source.add_argument(
        "--vectors",
        type=float,
        nargs="+",
        metavar="V",
        help="3, 6 or 9 values: up to three (r, g, b) stain vectors",
    )
    source.add_argument(
        "--roi",
        type=int,
        nargs=4,
        action="append",
        metavar=("X", "Y", "W", "H"),
        help="sample a stain vector from a region; repeat up to three times",
    )

    parser.add_argument(
        "--library",
        type=Path,
        default=settings.user_library,
        help="user stain library, overrides bundled presets of the same name",
    )
    parser.add_argument(
        "--mode", choices=["rgb", "grayscale"], default=settings.mode,
        help="render each stain in its own colour or as 8-bit amounts",
    )
    parser.add_argument(
        "--no-complement", action="store_true",
        help="do not emit the complement image for synthesized stains",
    )
    parser.add_argument(
        "--show-matrices", action="store_true", help="log the stain matrices"
    )
    parser.add_argument("--output-dir", type=Path, default=None)
    parser.add_argument("--workers", type=int, default=settings.workers)
    parser.add_argument("--tile-rows", type=int, default=settings.tile_rows)
    parser.add_argument(
        "--verbosity", choices=list(LEVEL_CONFIG), default=settings.verbosity
    )
    parser.add_argument(
        "--list-presets", action="store_true", help="print preset names and exit"
    )
    parser.add_argument(
        "--export-library",
        type=Path,
        metavar="PATH",
        help="write the merged stain library to PATH and exit",
    )
    parser.add_argument("--version", action="version", version=__version__)
    return parser


def _build_basis(
    args: argparse.Namespace, image: NDArray[np.uint8], presets
) -> StainBasis:
    if args.preset is not None:
        return StainBasis.from_record(get_preset(args.preset, presets))
    if args.vectors is not None:
        return StainBasis(args.vectors, required=(0,), name="User values")
    if image.ndim != 3:
        raise InvalidImageError("regions can only be sampled from a single image")
    regions = [Region(*roi) for roi in args.roi]
    vectors = sample_regions(image, regions)
    return StainBasis(vectors, required=range(len(regions)), name="From ROI")


def run(args: argparse.Namespace) -> int:
    presets = load_presets(args.library)

    if args.list_presets:
        for name in presets:
            print(name)
        return 0
    if args.export_library is not None:
        write_library(presets.values(), args.export_library)
        return 0

    image = read_image(args.image)
    basis = _build_basis(args, image, presets)
    if args.show_matrices:
        logger.info("%s", basis.matrix_report())

    result = decompose(
        image,
        basis,
        mode=args.mode,
        include_complement=not args.no_complement,
        workers=args.workers,
        tile_rows=args.tile_rows,
    )

    output_dir = args.output_dir or args.image.parent
    output_dir.mkdir(parents=True, exist_ok=True)
    suffix = ".tif" if image.ndim == 4 else ".png"
    for label, out in zip(result.labels, result.images):
        path = output_dir / f"{args.image.stem}-({label}){suffix}"
        write_image(path, out, stack=image.ndim == 4)
        logger.info("Wrote %s", path)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = cmdl_parser()
    args = parser.parse_args(argv)

    if args.vectors is not None and len(args.vectors) not in (3, 6, 9):
        parser.error("--vectors takes 3, 6 or 9 values")
    if args.roi is not None and len(args.roi) > 3:
        parser.error("--roi may be given at most three times")
    if args.workers is not None and args.workers < 1:
        parser.error("--workers must be >= 1")
    if args.tile_rows < 1:
        parser.error("--tile-rows must be >= 1")
    if not (args.list_presets or args.export_library):
        if args.image is None:
            parser.error("an image is required")
        if args.preset is None and args.vectors is None and args.roi is None:
            parser.error("one of --preset, --vectors or --roi is required")

    configure_logging(args.verbosity)
    try:
        return run(args)
    except (ColourDeconvolutionError, OSError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
