# SPDX-FileCopyrightText: 2024-present barrettMCW <mjbarrett@mcw.edu>
#
# SPDX-License-Identifier: MIT
"""Tests for colour_deconvolution.basis.StainBasis.

``TestNormalisation`` and ``TestCompletion`` cover how raw vectors become a
full basis, ``TestValidation`` the error taxonomy, ``TestInverse`` the
analytic inverse, and ``TestRecordsAndReports`` the preset round trip and
the printable matrix dump.
"""

import numpy as np
import pytest

from colour_deconvolution.basis import StainBasis
from colour_deconvolution.exceptions import (
    DegenerateVectorError,
    PresetNotFoundError,
    SingularBasisError,
)

HEMATOXYLIN = [0.650, 0.704, 0.286]
EOSIN = [0.072, 0.990, 0.105]
DAB = [0.268, 0.570, 0.776]


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------


class TestNormalisation:
    """Supplied vectors become unit rows of the matrix."""

    def test_rows_are_unit_length(self, hed_basis):
        norms = np.linalg.norm(hed_basis.matrix, axis=1)
        np.testing.assert_allclose(norms, 1.0, atol=1e-12)

    def test_direction_preserved(self):
        basis = StainBasis([[2.0, 0.0, 0.0], [0.0, 5.0, 0.0], [0.0, 0.0, 0.5]])
        np.testing.assert_allclose(basis.matrix, np.eye(3), atol=1e-12)

    def test_raw_vectors_kept(self):
        basis = StainBasis([[2.0, 1.0, 0.0], [0.0, 5.0, 1.0]])
        np.testing.assert_array_equal(basis.raw_vectors[0], [2.0, 1.0, 0.0])
        np.testing.assert_array_equal(basis.raw_vectors[2], [0.0, 0.0, 0.0])

    def test_flat_values_accepted(self):
        """A flat sequence of 9 (or 6) values is read as rows of 3."""
        flat = StainBasis(HEMATOXYLIN + EOSIN + DAB)
        rows = StainBasis([HEMATOXYLIN, EOSIN, DAB])
        np.testing.assert_array_equal(flat.matrix, rows.matrix)
        assert StainBasis(HEMATOXYLIN + EOSIN).n_specified == 2

    def test_bad_shape_raises(self):
        with pytest.raises(ValueError, match="shape"):
            StainBasis(np.ones((4, 3)))
        with pytest.raises(ValueError, match="shape"):
            StainBasis(np.ones((3, 2)))


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


class TestCompletion:
    """Unspecified slots are synthesized."""

    def test_third_vector_orthogonal_and_unit(self, he_basis):
        third = he_basis.matrix[2]
        assert np.linalg.norm(third) == pytest.approx(1.0, abs=1e-12)
        assert np.dot(third, he_basis.matrix[0]) == pytest.approx(0.0, abs=1e-12)
        assert np.dot(third, he_basis.matrix[1]) == pytest.approx(0.0, abs=1e-12)

    def test_third_vector_is_cross_product(self, he_basis):
        cross = np.cross(he_basis.matrix[0], he_basis.matrix[1])
        np.testing.assert_allclose(he_basis.matrix[2], cross / np.linalg.norm(cross))

    @pytest.mark.parametrize("missing", [0, 1, 2])
    def test_any_missing_slot_gives_positive_determinant(self, missing):
        """Whichever slot is missing, the completed matrix has det > 0."""
        vectors = [HEMATOXYLIN, EOSIN, DAB]
        vectors[missing] = [0.0, 0.0, 0.0]
        basis = StainBasis(vectors)
        assert basis.synthesized_slots == (missing,)
        assert basis.determinant > 0.0
        assert np.linalg.det(basis.matrix) > 0.0
        others = [s for s in range(3) if s != missing]
        for slot in others:
            assert np.dot(basis.matrix[missing], basis.matrix[slot]) == pytest.approx(
                0.0, abs=1e-12
            )

    def test_specified_flags(self, he_basis, hed_basis):
        assert he_basis.specified == (True, True, False)
        assert he_basis.n_specified == 2
        assert he_basis.active_slots == (0, 1)
        assert he_basis.synthesized_slots == (2,)
        assert hed_basis.n_specified == 3
        assert hed_basis.synthesized_slots == ()

    def test_single_vector_uses_permutation(self):
        """With one stain, the second slot is its (b, r, g) permutation."""
        basis = StainBasis([HEMATOXYLIN])
        unit = np.array(HEMATOXYLIN) / np.linalg.norm(HEMATOXYLIN)
        np.testing.assert_allclose(basis.matrix[1], unit[[2, 0, 1]])
        assert basis.n_specified == 1
        assert basis.synthesized_slots == (1, 2)
        assert np.dot(basis.matrix[2], basis.matrix[0]) == pytest.approx(0.0, abs=1e-12)
        assert np.dot(basis.matrix[2], basis.matrix[1]) == pytest.approx(0.0, abs=1e-12)
        assert basis.determinant > 0.0

    def test_single_vector_in_later_slot(self):
        basis = StainBasis([[0.0, 0.0, 0.0], DAB])
        assert basis.active_slots == (1,)
        assert basis.synthesized_slots == (0, 2)

    def test_single_neutral_grey_vector_raises(self):
        """A grey vector equals its own permutation, so nothing separates it."""
        with pytest.raises(SingularBasisError, match="parallel"):
            StainBasis([[0.5, 0.5, 0.5]])

    def test_tiny_vector_counts_as_unspecified(self):
        basis = StainBasis([HEMATOXYLIN, EOSIN, [1e-12, 0.0, 0.0]])
        assert basis.synthesized_slots == (2,)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    """Invalid inputs are rejected before any pixel is processed."""

    def test_three_independent_vectors_succeed(self, hed_basis):
        assert abs(hed_basis.determinant) > 1e-4

    def test_two_identical_vectors_raise(self):
        with pytest.raises(SingularBasisError) as excinfo:
            StainBasis([HEMATOXYLIN, HEMATOXYLIN])
        assert excinfo.value.slots == (0, 1)

    def test_two_identical_of_three_raise(self):
        with pytest.raises(SingularBasisError) as excinfo:
            StainBasis([HEMATOXYLIN, DAB, DAB])
        assert excinfo.value.slots == (1, 2)
        assert excinfo.value.determinant == pytest.approx(0.0, abs=1e-12)

    def test_scaled_copies_are_parallel(self):
        with pytest.raises(SingularBasisError):
            StainBasis([HEMATOXYLIN, [2 * v for v in HEMATOXYLIN]])

    def test_coplanar_vectors_raise(self):
        """Three vectors in one plane give a zero determinant."""
        a, b = np.array(HEMATOXYLIN), np.array(EOSIN)
        with pytest.raises(SingularBasisError, match="singular"):
            StainBasis([a, b, a + b])

    def test_determinant_epsilon_override(self, hed_basis):
        with pytest.raises(SingularBasisError):
            StainBasis([HEMATOXYLIN, EOSIN, DAB], determinant_epsilon=0.99)

    def test_required_missing_raises(self):
        with pytest.raises(DegenerateVectorError) as excinfo:
            StainBasis([HEMATOXYLIN, [0.0, 0.0, 0.0]], required=(0, 1))
        assert excinfo.value.slot == 1

    def test_required_present_ok(self):
        basis = StainBasis([HEMATOXYLIN, EOSIN], required=(0, 1))
        assert basis.n_specified == 2

    def test_required_slot_out_of_range(self):
        with pytest.raises(ValueError, match="required slots"):
            StainBasis([HEMATOXYLIN], required=(3,))

    def test_no_vectors_raise(self):
        with pytest.raises(DegenerateVectorError, match="no stain vector"):
            StainBasis(np.zeros((3, 3)))

    def test_negative_component_raises(self):
        with pytest.raises(DegenerateVectorError, match="negative") as excinfo:
            StainBasis([HEMATOXYLIN, [0.1, -0.2, 0.3]])
        assert excinfo.value.slot == 1

    def test_non_finite_raises(self):
        with pytest.raises(DegenerateVectorError, match="non-finite"):
            StainBasis([HEMATOXYLIN, [np.nan, 0.2, 0.3]])

    def test_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            StainBasis([HEMATOXYLIN, HEMATOXYLIN])


# ---------------------------------------------------------------------------
# Inverse and immutability
# ---------------------------------------------------------------------------


class TestInverse:
    """The analytic inverse agrees with LAPACK."""

    def test_matrix_times_inverse_is_identity(self, hed_basis):
        np.testing.assert_allclose(
            hed_basis.matrix @ hed_basis.inverse, np.eye(3), atol=1e-12
        )

    def test_matches_numpy_inverse(self, he_basis):
        np.testing.assert_allclose(
            he_basis.inverse, np.linalg.inv(he_basis.matrix), atol=1e-12
        )

    def test_determinant_matches_numpy(self, hed_basis):
        assert hed_basis.determinant == pytest.approx(np.linalg.det(hed_basis.matrix))


class TestImmutability:
    """A basis cannot be changed after construction."""

    def test_arrays_read_only(self, he_basis):
        with pytest.raises(ValueError):
            he_basis.matrix[0, 0] = 1.0
        with pytest.raises(ValueError):
            he_basis.inverse[0, 0] = 1.0

    def test_attributes_cannot_be_set(self, he_basis):
        with pytest.raises(AttributeError):
            he_basis.name = "other"
        with pytest.raises(AttributeError):
            he_basis._matrix = np.eye(3)

    def test_input_not_aliased(self):
        vectors = np.array([HEMATOXYLIN, EOSIN, DAB])
        basis = StainBasis(vectors)
        before = basis.matrix.copy()
        vectors[0] = [1.0, 0.0, 0.0]
        np.testing.assert_array_equal(basis.matrix, before)


# ---------------------------------------------------------------------------
# Records and reports
# ---------------------------------------------------------------------------


class TestRecordsAndReports:
    """Presets in, records and reports out."""

    def test_from_preset(self):
        basis = StainBasis.from_preset("H DAB")
        assert basis.name == "H DAB"
        assert basis.n_specified == 2

    def test_from_unknown_preset(self):
        with pytest.raises(PresetNotFoundError, match="available"):
            StainBasis.from_preset("No such stain")

    def test_record_round_trip(self, he_basis):
        record = he_basis.to_record()
        assert record.name == "H&E"
        assert record.vectors[2] == (0.0, 0.0, 0.0)
        rebuilt = StainBasis.from_record(record)
        np.testing.assert_allclose(rebuilt.matrix, he_basis.matrix, atol=1e-9)
        assert rebuilt.specified == he_basis.specified

    def test_record_name_override(self, he_basis):
        assert he_basis.to_record("Mine").name == "Mine"

    def test_matrix_report(self, he_basis):
        report = he_basis.matrix_report()
        assert "H&E" in report
        assert "Colour_1" in report and "Colour_3" in report
        assert "[synthesized]" in report
        assert "Inverse" in report
        assert "Library line: H&E," in report

    def test_repr(self, he_basis):
        assert "StainBasis" in repr(he_basis)
