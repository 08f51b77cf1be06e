from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from forester.exceptions import ConfigurationError

CLASSIFICATION_CRITERIA = frozenset({"gini", "entropy"})
REGRESSION_CRITERIA = frozenset({"mse"})


@dataclass(frozen=True)
class SplitCriterion:
    """Impurity measure used to score candidate splits.

    Classification criteria expect labels encoded as class ids in
    ``[0, n_classes)``; ``mse`` works on real-valued labels.
    """

    name: str = "gini"
    n_classes: int = 0

    def __post_init__(self) -> None:
        if self.name not in CLASSIFICATION_CRITERIA | REGRESSION_CRITERIA:
            raise ConfigurationError("criterion must be one of: gini, entropy, mse")
        if self.is_classification and self.n_classes < 1:
            raise ConfigurationError(f"{self.name} criterion needs n_classes >= 1")

    @property
    def is_classification(self) -> bool:
        return self.name in CLASSIFICATION_CRITERIA

    def _class_counts(self, y: np.ndarray) -> np.ndarray:
        return np.bincount(np.asarray(y, dtype=np.intp), minlength=self.n_classes).astype(
            np.float64
        )

    def _impurity_from_counts(self, counts: np.ndarray, totals: np.ndarray) -> np.ndarray:
        # counts: (..., n_classes), totals: (...)
        with np.errstate(divide="ignore", invalid="ignore"):
            p = counts / totals[..., None]
        p = np.nan_to_num(p, nan=0.0)
        if self.name == "gini":
            return 1.0 - np.sum(p * p, axis=-1)
        with np.errstate(divide="ignore", invalid="ignore"):
            logp = np.where(p > 0.0, np.log2(np.where(p > 0.0, p, 1.0)), 0.0)
        return -np.sum(p * logp, axis=-1)

    def score(self, y: np.ndarray) -> float:
        y = np.asarray(y)
        if y.size == 0:
            return 0.0
        if self.is_classification:
            counts = self._class_counts(y)
            return float(self._impurity_from_counts(counts, np.array(float(y.size))))
        return float(np.var(y))

    def gain(self, parent_score: float, y_left: np.ndarray, y_right: np.ndarray) -> float:
        n_left = np.asarray(y_left).size
        n_right = np.asarray(y_right).size
        n = n_left + n_right
        if n == 0:
            return 0.0
        weighted = (n_left * self.score(y_left) + n_right * self.score(y_right)) / n
        return float(parent_score - weighted)

    def boundary_gains(self, y_sorted: np.ndarray, parent_score: float) -> np.ndarray:
        """Gain of every split between positions ``i`` and ``i + 1``.

        Entry ``i`` puts ``y_sorted[: i + 1]`` on the left. The result has
        ``len(y_sorted) - 1`` entries.
        """
        y_sorted = np.asarray(y_sorted)
        n = y_sorted.size
        if n < 2:
            return np.empty(0, dtype=np.float64)

        n_left = np.arange(1, n, dtype=np.float64)
        n_right = float(n) - n_left

        if self.is_classification:
            one_hot = np.zeros((n, self.n_classes), dtype=np.float64)
            one_hot[np.arange(n), y_sorted.astype(np.intp)] = 1.0
            left_counts = np.cumsum(one_hot, axis=0)[:-1]
            right_counts = left_counts[-1] + one_hot[-1] - left_counts
            left_impurity = self._impurity_from_counts(left_counts, n_left)
            right_impurity = self._impurity_from_counts(right_counts, n_right)
        else:
            y = y_sorted.astype(np.float64)
            # Shift by the mean to keep the prefix sums well conditioned.
            y = y - y.mean()
            s1 = np.cumsum(y)
            s2 = np.cumsum(y * y)
            left_s1, left_s2 = s1[:-1], s2[:-1]
            right_s1, right_s2 = s1[-1] - left_s1, s2[-1] - left_s2
            left_impurity = np.maximum(left_s2 / n_left - (left_s1 / n_left) ** 2, 0.0)
            right_impurity = np.maximum(right_s2 / n_right - (right_s1 / n_right) ** 2, 0.0)

        weighted = (n_left * left_impurity + n_right * right_impurity) / float(n)
        return parent_score - weighted

    def leaf_value(self, y: np.ndarray) -> np.ndarray:
        """Class distribution, or ``[mean, variance]`` for regression."""
        y = np.asarray(y)
        if self.is_classification:
            counts = self._class_counts(y)
            total = counts.sum()
            return counts / total if total > 0 else counts
        if y.size == 0:
            return np.zeros(2, dtype=np.float64)
        return np.array([float(np.mean(y)), float(np.var(y))], dtype=np.float64)

    @property
    def value_size(self) -> int:
        return self.n_classes if self.is_classification else 2


def default_criterion(task: str) -> str:
    if task == "classification":
        return "gini"
    if task == "regression":
        return "mse"
    raise ConfigurationError("task must be one of: classification, regression")
