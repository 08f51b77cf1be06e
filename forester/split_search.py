from __future__ import annotations

from dataclasses import dataclass, field
import time

import numpy as np

from forester.criteria import SplitCriterion
from forester.exceptions import ConfigurationError, NoValidSplit

SPLIT_STRATEGIES = frozenset({"best", "extra_random"})


@dataclass(frozen=True)
class SplitCandidate:
    feature: int
    threshold: float
    gain: float


@dataclass
class SplitSearchMetrics:
    features_evaluated: int = 0
    constant_features: int = 0
    thresholds_evaluated: int = 0
    time_spent_sec: float = 0.0


@dataclass
class SplitSearchResult:
    candidate: SplitCandidate
    metrics: SplitSearchMetrics = field(default_factory=SplitSearchMetrics)


@dataclass
class SplitSearchParams:
    strategy: str = "best"  # one of: best, extra_random
    n_random_splits: int = 1
    min_samples_leaf: int = 1

    def __post_init__(self) -> None:
        if self.strategy not in SPLIT_STRATEGIES:
            raise ConfigurationError("split_strategy must be one of: best, extra_random")
        if self.n_random_splits < 1:
            raise ConfigurationError("n_random_splits must be >= 1")
        if self.min_samples_leaf < 1:
            raise ConfigurationError("min_samples_leaf must be >= 1")


class SplitSearch:
    """Find the winning split of one node over a subset of candidate features."""

    def __init__(
        self,
        node_rows: np.ndarray,
        candidate_features: np.ndarray,
        columns: np.ndarray,
        y: np.ndarray,
        criterion: SplitCriterion,
        params: SplitSearchParams,
        rng: np.random.Generator | None = None,
        parent_score: float | None = None,
    ) -> None:
        self.node_rows = np.asarray(node_rows, dtype=np.intp)
        self.candidate_features = np.asarray(candidate_features, dtype=np.intp)
        self.columns = columns
        self.y = y
        self.criterion = criterion
        self.params = params
        self.rng = rng if rng is not None else np.random.default_rng(0)

        self.n_node = int(self.node_rows.size)
        self.y_node = self.y[self.node_rows]
        self.parent_score = (
            criterion.score(self.y_node) if parent_score is None else float(parent_score)
        )
        self.metrics = SplitSearchMetrics()

    def _best_threshold(self, values: np.ndarray) -> tuple[float, float] | None:
        order = np.argsort(values, kind="stable")
        sorted_values = values[order]
        gains = self.criterion.boundary_gains(self.y_node[order], self.parent_score)

        # Only boundaries between distinct values are real splits.
        valid = sorted_values[:-1] < sorted_values[1:]
        leaf = self.params.min_samples_leaf
        if leaf > 1:
            n_left = np.arange(1, self.n_node)
            valid &= (n_left >= leaf) & (self.n_node - n_left >= leaf)
        if not np.any(valid):
            return None

        self.metrics.thresholds_evaluated += int(np.count_nonzero(valid))
        gains = np.where(valid, gains, -np.inf)
        # argmax returns the first maximum, i.e. the lowest threshold.
        i = int(np.argmax(gains))
        low, high = sorted_values[i], sorted_values[i + 1]
        threshold = low + (high - low) * 0.5
        if not (low <= threshold < high):
            threshold = low
        return float(threshold), float(gains[i])

    def _random_threshold(self, values: np.ndarray, low: float, high: float) -> tuple[float, float] | None:
        best: tuple[float, float] | None = None
        leaf = self.params.min_samples_leaf
        for _ in range(self.params.n_random_splits):
            u = float(self.rng.random())
            span = high - low
            if np.isfinite(span):
                threshold = low + u * span
            else:
                # Interpolate without forming the span, which overflows.
                threshold = low * (1.0 - u) + high * u
            if threshold >= high:
                threshold = low
            left_mask = values <= threshold
            n_left = int(np.count_nonzero(left_mask))
            self.metrics.thresholds_evaluated += 1
            if n_left < leaf or self.n_node - n_left < leaf:
                continue
            gain = self.criterion.gain(
                self.parent_score, self.y_node[left_mask], self.y_node[~left_mask]
            )
            if best is None or gain > best[1] or (gain == best[1] and threshold < best[0]):
                best = (threshold, gain)
        return best

    def search(self) -> SplitSearchResult:
        """Return the winning candidate.

        Raises:
            NoValidSplit: If every candidate feature is constant on this node
                or no threshold satisfies ``min_samples_leaf``.
        """
        t0 = time.perf_counter()
        best: SplitCandidate | None = None

        for feature in self.candidate_features:
            values = self.columns[self.node_rows, feature]
            low = float(values.min())
            high = float(values.max())
            if low == high:
                self.metrics.constant_features += 1
                continue

            self.metrics.features_evaluated += 1
            if self.params.strategy == "best":
                found = self._best_threshold(values)
            else:
                found = self._random_threshold(values, low, high)
            if found is None:
                continue

            threshold, gain = found
            # Strict comparison keeps the lower feature index on ties.
            if best is None or gain > best.gain:
                best = SplitCandidate(feature=int(feature), threshold=threshold, gain=gain)

        self.metrics.time_spent_sec += time.perf_counter() - t0
        if best is None:
            raise NoValidSplit(
                f"no valid split among {self.candidate_features.size} candidate features"
            )
        return SplitSearchResult(candidate=best, metrics=self.metrics)
