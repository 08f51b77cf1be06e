import numpy as np
import pytest

from forester.exceptions import DimensionMismatchError, InvalidValueError
from forester.feature_matrix import FeatureMatrix


def test_load_rows_with_labels():
    matrix = FeatureMatrix.load([([1.0, 2.0], 0), ([3.0, 4.0], 1), ([5.0, 6.0], 0)])

    assert matrix.n_samples == 3
    assert matrix.n_features == 2
    assert np.array_equal(matrix.labels, [0.0, 1.0, 0.0])
    assert np.array_equal(matrix.row(1), [3.0, 4.0])
    assert np.array_equal(matrix.column(1), [2.0, 4.0, 6.0])


def test_load_rows_without_labels():
    matrix = FeatureMatrix.load([([1.0], None), ([2.0], None)])

    assert not matrix.has_labels
    with pytest.raises(ValueError):
        _ = matrix.labels


def test_load_rejects_ragged_rows():
    with pytest.raises(DimensionMismatchError) as excinfo:
        FeatureMatrix.load([([1.0, 2.0], 0), ([3.0], 1)])

    assert excinfo.value.expected == 2
    assert excinfo.value.actual == 1


def test_load_rejects_partial_labels():
    with pytest.raises(ValueError):
        FeatureMatrix.load([([1.0], 0), ([2.0], None)])


def test_non_finite_values_are_rejected():
    with pytest.raises(InvalidValueError):
        FeatureMatrix.load([([1.0, float("nan")], 0)])
    with pytest.raises(InvalidValueError):
        FeatureMatrix.from_arrays(np.array([[1.0], [np.inf]]))
    with pytest.raises(InvalidValueError):
        FeatureMatrix.from_arrays(np.ones((2, 1)), np.array([0.0, np.nan]))


def test_label_length_mismatch():
    with pytest.raises(DimensionMismatchError):
        FeatureMatrix.from_arrays(np.ones((3, 2)), np.zeros(2))


def test_storage_is_read_only_and_column_major_copy():
    X = np.arange(12, dtype=np.float64).reshape(4, 3)
    matrix = FeatureMatrix.from_arrays(X, np.zeros(4))

    assert matrix.columns.flags.f_contiguous
    assert matrix.values.flags.c_contiguous
    with pytest.raises(ValueError):
        matrix.values[0, 0] = 99.0

    # The caller's array is copied, not aliased.
    X[0, 0] = 99.0
    assert matrix.values[0, 0] == 0.0


def test_take_allows_repeated_rows():
    X = np.arange(6, dtype=np.float64).reshape(3, 2)
    matrix = FeatureMatrix.from_arrays(X, np.array([0.0, 1.0, 2.0]))

    sub = matrix.take(np.array([2, 2, 0]))

    assert sub.n_samples == 3
    assert np.array_equal(sub.labels, [2.0, 2.0, 0.0])
    assert np.array_equal(sub.row(0), [4.0, 5.0])


def test_transform_applies_rotation():
    X = np.array([[1.0, 0.0], [0.0, 2.0]])
    swap = np.array([[0.0, 1.0], [1.0, 0.0]])
    matrix = FeatureMatrix.from_arrays(X, np.array([0.0, 1.0]))

    rotated = matrix.transform(swap)

    assert np.array_equal(rotated.values, [[0.0, 1.0], [2.0, 0.0]])
    assert np.array_equal(rotated.labels, matrix.labels)
    with pytest.raises(DimensionMismatchError):
        matrix.transform(np.eye(3))
