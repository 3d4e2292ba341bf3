"""
Tests for input validation utilities.

Covers core/validation.py:
    - check_array: conversion, dtype coercion, non-numeric rejection
    - check_finite: NaN/Inf detection
    - check_ndim / check_1d / check_2d: dimensionality checks
    - check_consistent_length: multi-array length matching
    - check_min_samples: minimum sample count
    - check_column_rank: fixed-effects rank deficiency
    - check_min_levels: grouping factors with too few levels
"""

import numpy as np
import pytest

from lmmkit.core.exceptions import (
    DegenerateGroupingFactorError,
    DimensionError,
    RankDeficientDesignError,
    ValidationError,
)
from lmmkit.core.validation import (
    check_1d,
    check_2d,
    check_array,
    check_column_rank,
    check_consistent_length,
    check_finite,
    check_min_levels,
    check_min_samples,
    check_ndim,
)


# ═══════════════════════════════════════════════════════════════════════
# check_array
# ═══════════════════════════════════════════════════════════════════════


class TestCheckArray:

    def test_list_becomes_float(self):
        result = check_array([1, 2, 3], "y")
        assert isinstance(result, np.ndarray)
        assert result.dtype == np.float64
        np.testing.assert_array_equal(result, [1.0, 2.0, 3.0])

    def test_bool_rejected(self):
        with pytest.raises(ValidationError, match="non-numeric dtype bool"):
            check_array(np.array([True, False]), "x")

    def test_float32_preserved(self):
        arr = np.ones(3, dtype=np.float32)
        assert check_array(arr, "X").dtype == np.float32

    def test_nested_list_to_2d(self):
        assert check_array([[1, 2], [3, 4]], "X").shape == (2, 2)

    @pytest.mark.parametrize('bad, match', [
        ([1, "a", 3.0], "y"),
        (np.array(["a", "b"]), "non-numeric"),
        ([[1, 2], [3]], "y"),
    ])
    def test_rejects_non_numeric(self, bad, match):
        with pytest.raises(ValidationError, match=match):
            check_array(bad, "y")

    def test_returns_new_dtype_without_touching_input(self):
        ints = np.array([1, 2, 3])
        check_array(ints, "y")
        assert ints.dtype.kind == 'i'


# ═══════════════════════════════════════════════════════════════════════
# check_finite
# ═══════════════════════════════════════════════════════════════════════


class TestCheckFinite:

    def test_finite_passes(self):
        check_finite(np.array([[1.0, 2.0], [3.0, 4.0]]), "X")

    @pytest.mark.parametrize('value', [np.nan, np.inf, -np.inf])
    def test_non_finite_rejected(self, value):
        with pytest.raises(ValidationError, match="non-finite"):
            check_finite(np.array([1.0, value, 3.0]), "y")

    def test_counts_reported(self):
        arr = np.array([np.nan, np.nan, np.inf, 1.0])
        with pytest.raises(ValidationError, match=r"2 NaN, 1 Inf"):
            check_finite(arr, "reaction")

    def test_name_reported(self):
        with pytest.raises(ValidationError, match="reaction"):
            check_finite(np.array([np.nan]), "reaction")


# ═══════════════════════════════════════════════════════════════════════
# check_ndim / check_1d / check_2d
# ═══════════════════════════════════════════════════════════════════════


class TestCheckNdim:

    def test_matching_ndim_passes(self):
        check_ndim(np.ones((2, 2, 2)), 3, "A")
        check_1d(np.ones(4), "y")
        check_2d(np.ones((4, 2)), "X")

    @pytest.mark.parametrize('check, arr', [
        (check_1d, np.ones((3, 1))),
        (check_2d, np.ones(3)),
        (check_2d, np.ones((2, 2, 2))),
    ])
    def test_wrong_ndim_raises(self, check, arr):
        with pytest.raises(DimensionError):
            check(arr, "X")

    def test_error_includes_shape(self):
        with pytest.raises(DimensionError, match=r"expected 1D.*\(3, 2\)"):
            check_1d(np.ones((3, 2)), "y")

    def test_dimension_error_is_validation_error(self):
        with pytest.raises(ValidationError):
            check_2d(np.ones(3), "X")


# ═══════════════════════════════════════════════════════════════════════
# check_consistent_length
# ═══════════════════════════════════════════════════════════════════════


class TestCheckConsistentLength:

    def test_same_first_dimension_passes(self):
        check_consistent_length(
            np.ones(10), np.ones((10, 3)), np.ones(10), names=("y", "X", "g")
        )

    def test_mismatch_reports_all_lengths(self):
        with pytest.raises(DimensionError, match="y=10, X=9"):
            check_consistent_length(np.ones(10), np.ones((9, 2)), names=("y", "X"))

    def test_single_array_passes(self):
        check_consistent_length(np.ones(5), names=("y",))

    def test_names_must_match_arrays(self):
        with pytest.raises(ValueError, match="must match"):
            check_consistent_length(np.ones(5), np.ones(5), names=("y",))


# ═══════════════════════════════════════════════════════════════════════
# check_min_samples
# ═══════════════════════════════════════════════════════════════════════


class TestCheckMinSamples:

    def test_exact_minimum_passes(self):
        check_min_samples(np.ones(3), 3, "y")

    def test_counts_rows_of_2d(self):
        check_min_samples(np.ones((3, 10)), 3, "X")
        with pytest.raises(ValidationError):
            check_min_samples(np.ones((2, 10)), 3, "X")

    def test_too_few_raises(self):
        with pytest.raises(ValidationError, match="at least 3 samples, got 2"):
            check_min_samples(np.ones(2), 3, "y")

    def test_empty_raises(self):
        with pytest.raises(ValidationError, match="got 0"):
            check_min_samples(np.array([]), 1, "y")


# ═══════════════════════════════════════════════════════════════════════
# check_column_rank
# ═══════════════════════════════════════════════════════════════════════


class TestCheckColumnRank:

    def test_full_rank_passes(self):
        check_column_rank(np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]]), "X")

    def test_rank_deficient_raises(self):
        # Column 2 = 2 * Column 1
        X = np.array([[1.0, 2.0], [2.0, 4.0], [3.0, 6.0]])
        with pytest.raises(RankDeficientDesignError, match="multicollinearity") as exc_info:
            check_column_rank(X, "X")
        assert exc_info.value.rank == 1
        assert exc_info.value.expected_rank == 2
        assert isinstance(exc_info.value, ValidationError)

    def test_zero_column_raises(self):
        with pytest.raises(RankDeficientDesignError, match="rank-deficient"):
            check_column_rank(np.zeros((3, 1)), "X")

    def test_more_columns_than_rows(self):
        X = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        with pytest.raises(RankDeficientDesignError, match="expected=3"):
            check_column_rank(X, "X")

    def test_intercept_plus_dummies_for_every_level(self):
        """Intercept alongside a full set of group dummies is collinear."""
        g = np.repeat(np.arange(3), 4)
        dummies = (g[:, None] == np.arange(3)).astype(float)
        X = np.column_stack([np.ones(12), dummies])
        with pytest.raises(RankDeficientDesignError):
            check_column_rank(X, "X")

    def test_near_singular_passes(self):
        X = np.array([[1.0, 1.0], [1.0, 1.0 + 1e-10], [1.0, 2.0]])
        check_column_rank(X, "X")


# ═══════════════════════════════════════════════════════════════════════
# check_min_levels
# ═══════════════════════════════════════════════════════════════════════


class TestCheckMinLevels:

    def test_returns_level_count(self):
        assert check_min_levels(np.array([3, 1, 3, 2]), 2, "g") == 3

    def test_string_labels(self):
        assert check_min_levels(np.array(["a", "b", "a", "c"]), 2, "g") == 3

    def test_exact_minimum_passes(self):
        assert check_min_levels(np.array([0, 1, 0, 1]), 2, "g") == 2

    def test_single_level_raises(self):
        with pytest.raises(DegenerateGroupingFactorError, match="only 1 level") as exc_info:
            check_min_levels(np.array([7, 7, 7]), 2, "subject")
        assert exc_info.value.group == "subject"
        assert exc_info.value.n_levels == 1
        assert isinstance(exc_info.value, ValidationError)
