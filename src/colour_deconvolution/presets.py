# SPDX-FileCopyrightText: 2024-present barrettMCW <mjbarrett@mcw.edu>
#
# SPDX-License-Identifier: MIT
"""Named stain presets and the stain library file.

A stain library is a plain text file: the first line is a header, every
following non-blank line holds a stain name and nine reals (three vectors
of three components), comma separated::

    #Stain_Name,R1,G1,B1,R2,G2,B2,R3,G3,B3
    H DAB,0.650,0.704,0.286,0.268,0.570,0.776,0,0,0

A zero third vector means the third stain is left for the basis to
complete.  The package ships a bundled library; users may keep their own
copy whose entries override bundled ones of the same name::

    from colour_deconvolution.presets import load_presets, get_preset

    presets = load_presets("~/colourdeconvolution.txt")
    record = get_preset("H&E", presets)
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Iterable, Mapping, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray

from colour_deconvolution.exceptions import PresetFormatError, PresetNotFoundError

logger = logging.getLogger(__name__)

LIBRARY_HEADER = "#Stain_Name,R1,G1,B1,R2,G2,B2,R3,G3,B3"
BUNDLED_LIBRARY = "colourdeconvolution.txt"

Vector = tuple[float, float, float]
PathLike = Union[str, Path]


@dataclass(frozen=True)
class StainPresetRecord:
    """A named set of three raw stain vectors.

    :param name: preset name, unique within a library
    :param vectors: three ``(r, g, b)`` triples; a zero triple is unspecified
    """

    name: str
    vectors: tuple[Vector, Vector, Vector]

    @classmethod
    def from_values(cls, name: str, values: ArrayLike) -> StainPresetRecord:
        """Build a record from 9 values or a ``(3, 3)`` array."""
        arr = np.asarray(values, dtype=np.float64).reshape(3, 3)
        vectors = tuple(tuple(float(v) for v in row) for row in arr)
        return cls(name, vectors)  # type: ignore[arg-type]

    def as_array(self) -> NDArray[np.float64]:
        """Return the vectors as a ``(3, 3)`` array, one vector per row."""
        return np.array(self.vectors, dtype=np.float64)

    def to_line(self) -> str:
        """Render the record as one library line."""
        values = ",".join(f"{v:.10g}" for row in self.vectors for v in row)
        return f"{self.name},{values}"


def parse_library(text: str) -> list[StainPresetRecord]:
    """Parse the contents of a stain library file.

    The first line is always treated as the header.

    :param text: full file contents
    :type text: str
    :return: records in file order (duplicates are kept)
    :rtype: list[StainPresetRecord]
    :raises PresetFormatError: if a line does not hold a name and 9 reals
    """
    records = []
    reader = csv.reader(io.StringIO(text))
    for line_number, row in enumerate(reader, start=1):
        if line_number == 1 or not any(field.strip() for field in row):
            continue
        if len(row) != 10:
            msg = f"expected a name and 9 values, got {len(row)} fields"
            raise PresetFormatError(msg, line_number)
        name = row[0].strip()
        if not name:
            raise PresetFormatError("missing stain name", line_number)
        try:
            values = [float(field) for field in row[1:]]
        except ValueError as exc:
            raise PresetFormatError(str(exc), line_number) from exc
        if not all(np.isfinite(values)):
            raise PresetFormatError("values must be finite", line_number)
        records.append(StainPresetRecord.from_values(name, values))
    return records


def read_library(path: PathLike) -> list[StainPresetRecord]:
    """Read and parse a stain library file."""
    path = Path(path).expanduser()
    logger.debug("Reading stain library %s", path)
    return parse_library(path.read_text(encoding="utf-8"))


def write_library(records: Iterable[StainPresetRecord], path: PathLike) -> Path:
    """Write records to a stain library file, header first.

    :return: the path written
    :rtype: pathlib.Path
    """
    path = Path(path).expanduser()
    lines = [LIBRARY_HEADER] + [record.to_line() for record in records]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    logger.info("Wrote %d stain presets to %s", len(lines) - 1, path)
    return path


def bundled_presets() -> list[StainPresetRecord]:
    """Return the presets shipped with the package."""
    text = (
        resources.files("colour_deconvolution")
        .joinpath(BUNDLED_LIBRARY)
        .read_text(encoding="utf-8")
    )
    return parse_library(text)


def merge(
    bundled: Iterable[StainPresetRecord],
    user: Iterable[StainPresetRecord] = (),
) -> dict[str, StainPresetRecord]:
    """Merge preset sources by name.

    Later records override earlier ones with the same name, so user
    entries win over bundled ones.  Names keep their first-seen order.

    :param bundled: records shipped with the package
    :param user: records from a user-editable library
    :return: mapping of name to record
    :rtype: dict[str, StainPresetRecord]
    """
    merged: dict[str, StainPresetRecord] = {}
    for record in list(bundled) + list(user):
        merged[record.name] = record
    return merged


def load_presets(user_path: PathLike | None = None) -> dict[str, StainPresetRecord]:
    """Bundled presets merged with the user library at *user_path*, if any."""
    user: list[StainPresetRecord] = []
    if user_path is not None:
        path = Path(user_path).expanduser()
        if path.is_file():
            user = read_library(path)
        else:
            logger.debug("No user stain library at %s", path)
    return merge(bundled_presets(), user)


def get_preset(
    name: str, presets: Mapping[str, StainPresetRecord] | None = None
) -> StainPresetRecord:
    """Look up a preset by name.

    :param name: preset name, matched exactly
    :param presets: mapping to search; defaults to :func:`load_presets`
    :raises PresetNotFoundError: if *name* is unknown
    """
    if presets is None:
        presets = load_presets()
    try:
        return presets[name]
    except KeyError:
        available = ", ".join(presets)
        msg = f"unknown stain preset {name!r}; available: {available}"
        raise PresetNotFoundError(msg) from None
