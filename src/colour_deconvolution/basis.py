# SPDX-FileCopyrightText: 2024-present barrettMCW <mjbarrett@mcw.edu>
#
# SPDX-License-Identifier: MIT
"""Stain basis construction and validation.

A :class:`StainBasis` holds three unit stain vectors as the rows of a 3x3
matrix **M** together with its inverse.  Up to three raw vectors are
supplied by the caller; slots left as zero triples are synthesized:

- one slot missing: the normalised cross product of the other two, signed
  so that ``det(M) > 0``;
- two slots missing: the first one gets the cyclic permutation
  ``(b, r, g)`` of the single supplied vector, the last one the cross
  product as above.

Every check happens here, once per basis, so that pixel processing in
:mod:`colour_deconvolution.deconvolution` can never fail half way.

Example::

    from colour_deconvolution import StainBasis

    basis = StainBasis([[0.650, 0.704, 0.286], [0.072, 0.990, 0.105]])
    basis.n_specified     # 2
    basis.matrix[2]       # synthesized complement, orthogonal to both
    print(basis.matrix_report())
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

import numpy as np
from numpy.typing import ArrayLike, NDArray

from colour_deconvolution.config import settings
from colour_deconvolution.exceptions import DegenerateVectorError, SingularBasisError
from colour_deconvolution.presets import StainPresetRecord, get_preset

logger = logging.getLogger(__name__)


def _as_raw_vectors(vectors: ArrayLike) -> NDArray[np.float64]:
    """Coerce caller input to a ``(3, 3)`` array, padding missing rows with 0."""
    arr = np.asarray(vectors, dtype=np.float64)
    if arr.ndim == 1 and arr.size in (3, 6, 9):
        arr = arr.reshape(-1, 3)
    if arr.ndim != 2 or arr.shape[1] != 3 or not 1 <= arr.shape[0] <= 3:
        msg = f"stain vectors must have shape (k, 3) with k <= 3, got {arr.shape}"
        raise ValueError(msg)

    raw = np.zeros((3, 3), dtype=np.float64)
    raw[: arr.shape[0]] = arr
    for slot, row in enumerate(raw):
        if not np.all(np.isfinite(row)):
            msg = f"stain vector {slot + 1} has non-finite components: {row}"
            raise DegenerateVectorError(msg, slot=slot)
        if np.any(row < 0.0):
            msg = f"stain vector {slot + 1} has negative components: {row}"
            raise DegenerateVectorError(msg, slot=slot)
    return raw


def _check_slots(required: Iterable[int]) -> frozenset[int]:
    slots = frozenset(int(slot) for slot in required)
    bad = sorted(slot for slot in slots if slot not in (0, 1, 2))
    if bad:
        msg = f"required slots must be 0, 1 or 2, got {bad}"
        raise ValueError(msg)
    return slots


def _triple_product(rows: NDArray[np.float64]) -> float:
    return float(np.dot(rows[0], np.cross(rows[1], rows[2])))


def _most_parallel_pair(rows: NDArray[np.float64]) -> tuple[int, int]:
    """Return the pair of row indices with the largest ``|cos|`` between them."""
    pairs = [(0, 1), (0, 2), (1, 2)]
    return max(pairs, key=lambda p: abs(float(np.dot(rows[p[0]], rows[p[1]]))))


def _complete(
    rows: NDArray[np.float64], specified: tuple[bool, ...], epsilon: float
) -> NDArray[np.float64]:
    """Fill unspecified rows so that ``rows`` becomes a full basis."""
    rows = rows.copy()
    missing = [slot for slot in range(3) if not specified[slot]]

    if len(missing) == 2:
        source = specified.index(True)
        r, g, b = rows[source]
        rows[missing[0]] = (b, r, g)
        logger.debug(
            "Stain vector %d synthesized by permuting vector %d",
            missing[0] + 1,
            source + 1,
        )
        missing = missing[1:]

    if len(missing) == 1:
        slot = missing[0]
        i, j = (s for s in range(3) if s != slot)
        cross = np.cross(rows[i], rows[j])
        norm = float(np.linalg.norm(cross))
        if norm < epsilon:
            msg = (
                f"stain vectors {i + 1} and {j + 1} are parallel, so no "
                "complementary vector can be derived; supply better separated "
                "vectors (a neutral grey stain cannot be separated)"
            )
            raise SingularBasisError(msg, slots=(i, j), determinant=0.0)
        rows[slot] = cross / norm
        if _triple_product(rows) < 0.0:
            rows[slot] = -rows[slot]
        logger.debug(
            "Stain vector %d synthesized as the complement of vectors %d and %d",
            slot + 1,
            i + 1,
            j + 1,
        )
    return rows


def _invert(
    matrix: NDArray[np.float64], epsilon: float
) -> tuple[float, NDArray[np.float64]]:
    """Analytic inverse of a 3x3 matrix via the adjugate.

    Columns of the inverse are ``r1 x r2``, ``r2 x r0`` and ``r0 x r1``
    divided by the determinant.
    """
    r0, r1, r2 = matrix
    c0 = np.cross(r1, r2)
    determinant = float(np.dot(r0, c0))
    if abs(determinant) < epsilon:
        slots = _most_parallel_pair(matrix)
        msg = (
            f"stain matrix is singular (det={determinant:.3g}); stain vectors "
            f"{slots[0] + 1} and {slots[1] + 1} are too similar to be separated"
        )
        raise SingularBasisError(msg, slots=slots, determinant=determinant)
    inverse = np.column_stack((c0, np.cross(r2, r0), np.cross(r0, r1))) / determinant
    return determinant, inverse


def _frozen(arr: NDArray[np.float64]) -> NDArray[np.float64]:
    arr = np.array(arr, dtype=np.float64)
    arr.setflags(write=False)
    return arr


class StainBasis:
    """Three unit stain vectors, their matrix and its inverse.

    Instances are immutable: arrays are read-only and attributes cannot be
    reassigned.  Build a new basis to change vectors.

    :param vectors: one to three raw ``(r, g, b)`` stain vectors, as a
        ``(k, 3)`` array-like or a flat sequence of 3, 6 or 9 values.  Zero
        triples mark unspecified slots.
    :type vectors: ArrayLike
    :param required: slots (0-based) that must be specified
    :type required: Iterable[int]
    :param name: label used in reports
    :type name: str
    :param vector_epsilon: norm below which a vector counts as unspecified
    :type vector_epsilon: float | None
    :param determinant_epsilon: smallest acceptable ``|det(M)|``
    :type determinant_epsilon: float | None
    :raises DegenerateVectorError: if a required vector is missing or any
        vector is negative or non-finite
    :raises SingularBasisError: if the completed matrix cannot be inverted
    """

    def __init__(
        self,
        vectors: ArrayLike,
        required: Iterable[int] = (),
        name: str = "",
        vector_epsilon: float | None = None,
        determinant_epsilon: float | None = None,
    ) -> None:
        if vector_epsilon is None:
            vector_epsilon = settings.vector_epsilon
        if determinant_epsilon is None:
            determinant_epsilon = settings.determinant_epsilon

        raw = _as_raw_vectors(vectors)
        required_slots = _check_slots(required)

        norms = np.linalg.norm(raw, axis=1)
        specified = tuple(bool(norm >= vector_epsilon) for norm in norms)
        for slot in sorted(required_slots):
            if not specified[slot]:
                msg = f"stain vector {slot + 1} is required but has zero norm"
                raise DegenerateVectorError(msg, slot=slot)
        if not any(specified):
            raise DegenerateVectorError("no stain vector was specified")

        rows = np.zeros((3, 3), dtype=np.float64)
        for slot in range(3):
            if specified[slot]:
                rows[slot] = raw[slot] / norms[slot]

        matrix = _complete(rows, specified, vector_epsilon)
        determinant, inverse = _invert(matrix, determinant_epsilon)

        object.__setattr__(self, "_name", name)
        object.__setattr__(self, "_raw", _frozen(raw))
        object.__setattr__(self, "_specified", specified)
        object.__setattr__(self, "_matrix", _frozen(matrix))
        object.__setattr__(self, "_inverse", _frozen(inverse))
        object.__setattr__(self, "_determinant", determinant)
        logger.debug(
            "Built stain basis %r: %d specified, det=%.6f",
            name,
            self.n_specified,
            determinant,
        )

    def __setattr__(self, key: str, value: object) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __delattr__(self, key: str) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self._name!r}, "
            f"specified={self._specified}, det={self._determinant:.6f})"
        )

    # ------------------------------------------------------------------
    # Alternative constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_record(cls, record: StainPresetRecord, **kwargs) -> StainBasis:
        """Build a basis from a :class:`StainPresetRecord`."""
        kwargs.setdefault("name", record.name)
        return cls(record.as_array(), **kwargs)

    @classmethod
    def from_preset(
        cls,
        name: str,
        presets: Mapping[str, StainPresetRecord] | None = None,
        **kwargs,
    ) -> StainBasis:
        """Build a basis from a named preset (bundled presets by default)."""
        return cls.from_record(get_preset(name, presets), **kwargs)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def raw_vectors(self) -> NDArray[np.float64]:
        """The caller's vectors, padded to ``(3, 3)``, unnormalised."""
        return self._raw

    @property
    def matrix(self) -> NDArray[np.float64]:
        """``(3, 3)`` matrix whose rows are the unit stain vectors."""
        return self._matrix

    @property
    def inverse(self) -> NDArray[np.float64]:
        """Inverse of :attr:`matrix`."""
        return self._inverse

    @property
    def determinant(self) -> float:
        return self._determinant

    @property
    def specified(self) -> tuple[bool, ...]:
        """Per slot, whether the caller supplied the vector."""
        return self._specified

    @property
    def n_specified(self) -> int:
        return sum(self._specified)

    @property
    def active_slots(self) -> tuple[int, ...]:
        """Slots holding caller-supplied stains, in order."""
        return tuple(slot for slot in range(3) if self._specified[slot])

    @property
    def synthesized_slots(self) -> tuple[int, ...]:
        """Slots filled in by completion, in order."""
        return tuple(slot for slot in range(3) if not self._specified[slot])

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def to_record(self, name: str | None = None) -> StainPresetRecord:
        """Export the normalised supplied vectors as a preset record.

        Synthesized slots are written as zero triples so that loading the
        record completes them again the same way.
        """
        values = np.where(np.array(self._specified)[:, None], self._matrix, 0.0)
        return StainPresetRecord.from_values(name or self._name or "Custom", values)

    def matrix_report(self) -> str:
        """Human-readable dump of the matrix and its inverse."""
        title = self._name or "custom"
        lines = [f"Stain basis {title!r} (determinant {self._determinant:.6f})"]
        lines.append("Matrix (rows = stain vectors):")
        for slot, row in enumerate(self._matrix):
            origin = "" if self._specified[slot] else "  [synthesized]"
            values = " ".join(f"{v:10.6f}" for v in row)
            lines.append(f"  Colour_{slot + 1}: {values}{origin}")
        lines.append("Inverse:")
        for channel, row in zip("RGB", self._inverse):
            values = " ".join(f"{v:10.6f}" for v in row)
            lines.append(f"  {channel}:        {values}")
        lines.append(f"Library line: {self.to_record().to_line()}")
        return "\n".join(lines)
