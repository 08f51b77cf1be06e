from __future__ import annotations

from collections.abc import Iterable, Sequence

import numpy as np

from forester.exceptions import DimensionMismatchError, InvalidValueError


class FeatureMatrix:
    """Read-only numeric samples plus an optional label vector.

    Rows are kept row-major for sample access and a column-major copy serves
    per-feature scans during split search.
    """

    def __init__(self, X: np.ndarray, y: np.ndarray | None = None) -> None:
        X = np.array(X, dtype=np.float64, order="C")
        if X.ndim != 2:
            raise ValueError("X must be a 2D array")
        if not np.all(np.isfinite(X)):
            bad_row = int(np.argwhere(~np.isfinite(X))[0, 0])
            raise InvalidValueError(f"non-finite feature value in row {bad_row}")

        if y is not None:
            y = np.array(y, dtype=np.float64)
            if y.ndim != 1:
                raise ValueError("y must be a 1D array")
            if y.shape[0] != X.shape[0]:
                raise DimensionMismatchError(X.shape[0], y.shape[0], what="label vector")
            if not np.all(np.isfinite(y)):
                bad_row = int(np.argwhere(~np.isfinite(y))[0, 0])
                raise InvalidValueError(f"non-finite label in row {bad_row}")
            y.setflags(write=False)

        X.setflags(write=False)
        columns = np.asfortranarray(X)
        columns.setflags(write=False)

        self._X = X
        self._columns = columns
        self._y = y

    @classmethod
    def load(cls, rows: Iterable[tuple[Sequence[float], float | None]]) -> FeatureMatrix:
        """Build a matrix from ``(features, label)`` pairs.

        Labels may be ``None`` for every row (prediction input) but not for
        only some of them.
        """
        features: list[list[float]] = []
        labels: list[float | None] = []
        n_features: int | None = None

        for i, (x, label) in enumerate(rows):
            x = [float(v) for v in x]
            if n_features is None:
                n_features = len(x)
            elif len(x) != n_features:
                raise DimensionMismatchError(n_features, len(x), what=f"row {i}")
            features.append(x)
            labels.append(label)

        if n_features is None:
            raise ValueError("cannot load an empty dataset")

        has_labels = [label is not None for label in labels]
        if any(has_labels) and not all(has_labels):
            raise ValueError("either every row or no row must carry a label")

        X = np.asarray(features, dtype=np.float64).reshape(len(features), n_features)
        y = np.asarray(labels, dtype=np.float64) if all(has_labels) else None
        return cls(X, y)

    @classmethod
    def from_arrays(cls, X: np.ndarray, y: np.ndarray | None = None) -> FeatureMatrix:
        return cls(X, y)

    @property
    def n_samples(self) -> int:
        return int(self._X.shape[0])

    @property
    def n_features(self) -> int:
        return int(self._X.shape[1])

    @property
    def values(self) -> np.ndarray:
        return self._X

    @property
    def columns(self) -> np.ndarray:
        return self._columns

    @property
    def labels(self) -> np.ndarray:
        if self._y is None:
            raise ValueError("feature matrix has no labels")
        return self._y

    @property
    def has_labels(self) -> bool:
        return self._y is not None

    def row(self, i: int) -> np.ndarray:
        return self._X[i]

    def column(self, j: int) -> np.ndarray:
        return self._columns[:, j]

    def take(self, rows: np.ndarray) -> FeatureMatrix:
        rows = np.asarray(rows, dtype=np.intp)
        y = None if self._y is None else self._y[rows]
        return FeatureMatrix(self._X[rows], y)

    def transform(self, rotation: np.ndarray) -> FeatureMatrix:
        rotation = np.asarray(rotation, dtype=np.float64)
        if rotation.shape != (self.n_features, self.n_features):
            raise DimensionMismatchError(self.n_features, rotation.shape[0], what="rotation")
        return FeatureMatrix(self._X @ rotation, self._y)

    def __len__(self) -> int:
        return self.n_samples

    def __repr__(self) -> str:
        return (
            f"FeatureMatrix(n_samples={self.n_samples}, n_features={self.n_features}, "
            f"has_labels={self.has_labels})"
        )


def as_feature_matrix(X, y=None) -> FeatureMatrix:
    if isinstance(X, FeatureMatrix):
        if y is not None:
            return FeatureMatrix(X.values, y)
        return X
    return FeatureMatrix(X, y)
