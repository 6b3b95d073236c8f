# SPDX-FileCopyrightText: 2024-present barrettMCW <mjbarrett@mcw.edu>
#
# SPDX-License-Identifier: MIT
"""Exception hierarchy for colour deconvolution.

Every error is raised while the stain basis or the input image is being
validated, before any pixel is processed, so a failed run never leaves
partial output behind. All of them derive from :class:`ValueError`.
"""

from __future__ import annotations


class ColourDeconvolutionError(ValueError):
    """Base class for all errors raised by this package."""


class DegenerateVectorError(ColourDeconvolutionError):
    """A required stain vector is missing, negative, or has near-zero norm."""

    def __init__(self, message: str, slot: int | None = None) -> None:
        super().__init__(message)
        self.slot = slot


class SingularBasisError(ColourDeconvolutionError):
    """The completed 3x3 stain matrix cannot be inverted.

    :param slots: the pair of stain slots that are (nearly) parallel
    :param determinant: determinant of the offending matrix, if computed
    """

    def __init__(
        self,
        message: str,
        slots: tuple[int, int] | None = None,
        determinant: float | None = None,
    ) -> None:
        super().__init__(message)
        self.slots = slots
        self.determinant = determinant


class InvalidImageError(ColourDeconvolutionError):
    """The input is not an 8-bit RGB raster, or a sampled region is empty."""


class PresetFormatError(ColourDeconvolutionError):
    """A line of a stain library file could not be parsed."""

    def __init__(self, message: str, line_number: int | None = None) -> None:
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number


class PresetNotFoundError(ColourDeconvolutionError, KeyError):
    """No stain preset with the requested name exists."""

    def __str__(self) -> str:
        # KeyError would repr() the message
        return str(self.args[0]) if self.args else ""
