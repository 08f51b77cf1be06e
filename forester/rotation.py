from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from loguru import logger

from forester.exceptions import ConfigurationError, DegenerateRotation
from forester.feature_matrix import FeatureMatrix


@dataclass
class RotationParams:
    group_size: int = 3
    sample_fraction: float = 0.75

    def __post_init__(self) -> None:
        if self.group_size < 1:
            raise ConfigurationError("rotation_group_size must be >= 1")
        if not (0.0 < self.sample_fraction <= 1.0):
            raise ConfigurationError("rotation_sample_fraction must be in (0, 1]")


@dataclass
class RotationTransform:
    """Block-diagonal (up to feature permutation) PCA rotation of one tree.

    ``matrix`` is ``D x D``; a sample ``x`` is rotated as ``x @ matrix``.
    ``degenerate_groups`` lists the feature groups that kept the identity
    because their covariance was singular.
    """

    matrix: np.ndarray
    groups: list[list[int]] = field(default_factory=list)
    degenerate_groups: list[list[int]] = field(default_factory=list)

    @classmethod
    def identity(cls, n_features: int) -> RotationTransform:
        return cls(matrix=np.eye(n_features), groups=[list(range(n_features))])

    @classmethod
    def fit(
        cls,
        matrix: FeatureMatrix,
        rng: np.random.Generator,
        params: RotationParams | None = None,
        rows: np.ndarray | None = None,
    ) -> RotationTransform:
        """Fit a rotation on ``rows`` of ``matrix`` (all rows by default).

        Features are shuffled into disjoint groups of ``group_size``; each
        group is rotated onto the principal axes of a random subsample.
        """
        params = params or RotationParams()
        X = matrix.values if rows is None else matrix.values[np.asarray(rows, dtype=np.intp)]
        n_samples, n_features = X.shape

        permutation = rng.permutation(n_features)
        groups = [
            sorted(int(f) for f in permutation[start:start + params.group_size])
            for start in range(0, n_features, params.group_size)
        ]

        rotation = np.zeros((n_features, n_features), dtype=np.float64)
        degenerate: list[list[int]] = []
        for group in groups:
            sample_size = max(1, int(round(n_samples * params.sample_fraction)))
            sample = X[rng.integers(0, n_samples, size=sample_size)][:, group]
            try:
                block = _principal_axes(sample, group)
            except DegenerateRotation as exc:
                logger.debug("rotation falls back to identity: {}", exc)
                degenerate.append(group)
                block = np.eye(len(group))
            rotation[np.ix_(group, group)] = block

        return cls(matrix=rotation, groups=groups, degenerate_groups=degenerate)

    def apply(self, X: np.ndarray) -> np.ndarray:
        return np.asarray(X, dtype=np.float64) @ self.matrix

    def apply_matrix(self, matrix: FeatureMatrix) -> FeatureMatrix:
        return matrix.transform(self.matrix)


def _principal_axes(sample: np.ndarray, group: list[int]) -> np.ndarray:
    """Eigenvectors of the sample covariance, largest eigenvalue first.

    Raises:
        DegenerateRotation: If the covariance is singular or cannot be
            represented in float64.
    """
    if sample.shape[0] < 2:
        raise DegenerateRotation(group)
    with np.errstate(over="ignore", invalid="ignore"):
        centered = sample - sample.mean(axis=0)
        cov = centered.T @ centered / (sample.shape[0] - 1)
    if not np.all(np.isfinite(cov)):
        raise DegenerateRotation(group)
    try:
        eigenvalues, eigenvectors = np.linalg.eigh(cov)
    except np.linalg.LinAlgError as exc:
        raise DegenerateRotation(group) from exc
    tol = max(float(eigenvalues.max()), 0.0) * len(group) * np.finfo(np.float64).eps
    if eigenvalues.min() <= tol:
        raise DegenerateRotation(group)
    order = np.argsort(eigenvalues)[::-1]
    return eigenvectors[:, order]
