from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from loguru import logger

from forester.criteria import SplitCriterion
from forester.exceptions import ConfigurationError, DimensionMismatchError, NoValidSplit
from forester.feature_matrix import FeatureMatrix
from forester.split_search import SplitCandidate, SplitSearch, SplitSearchParams

LEAF = -1


class Tree:
    """A grown decision tree stored as a node arena.

    Node ``0`` is the root. Leaves have ``feature == -1``; internal nodes send
    a sample to ``left`` when ``x[feature] <= threshold`` and to ``right``
    otherwise. ``value`` holds the class distribution or ``[mean, variance]``
    of every node. When ``rotation`` is set, inputs are multiplied by it
    before descending.
    """

    def __init__(
        self,
        feature: np.ndarray,
        threshold: np.ndarray,
        left: np.ndarray,
        right: np.ndarray,
        value: np.ndarray,
        n_node_samples: np.ndarray,
        impurity: np.ndarray,
        gain: np.ndarray,
        n_features: int,
        rotation: np.ndarray | None = None,
    ) -> None:
        self.feature = np.asarray(feature, dtype=np.int32)
        self.threshold = np.asarray(threshold, dtype=np.float64)
        self.left = np.asarray(left, dtype=np.int32)
        self.right = np.asarray(right, dtype=np.int32)
        self.value = np.asarray(value, dtype=np.float64)
        self.n_node_samples = np.asarray(n_node_samples, dtype=np.int64)
        self.impurity = np.asarray(impurity, dtype=np.float64)
        self.gain = np.asarray(gain, dtype=np.float64)
        self.n_features = int(n_features)
        self.rotation = None if rotation is None else np.asarray(rotation, dtype=np.float64)

    @property
    def n_nodes(self) -> int:
        return int(self.feature.size)

    @property
    def n_leaves(self) -> int:
        return int(np.count_nonzero(self.feature == LEAF))

    @property
    def is_leaf_only(self) -> bool:
        return self.n_nodes == 1

    @property
    def depth(self) -> int:
        depths = np.zeros(self.n_nodes, dtype=np.int64)
        for node in range(self.n_nodes):
            if self.feature[node] != LEAF:
                depths[self.left[node]] = depths[node] + 1
                depths[self.right[node]] = depths[node] + 1
        return int(depths.max())

    def _prepare(self, X: np.ndarray) -> np.ndarray:
        X = np.asarray(X, dtype=np.float64)
        if X.ndim == 1:
            X = X[None, :]
        if X.shape[1] != self.n_features:
            raise DimensionMismatchError(self.n_features, X.shape[1])
        if self.rotation is not None:
            X = X @ self.rotation
        return X

    def apply(self, X: np.ndarray) -> np.ndarray:
        """Return the leaf id reached by every row of ``X``."""
        X = self._prepare(X)
        nodes = np.zeros(X.shape[0], dtype=np.int32)
        active = np.arange(X.shape[0])
        while active.size:
            current = nodes[active]
            split_feature = self.feature[current]
            internal = split_feature != LEAF
            active = active[internal]
            if not active.size:
                break
            current = current[internal]
            go_left = X[active, split_feature[internal]] <= self.threshold[current]
            nodes[active] = np.where(go_left, self.left[current], self.right[current])
        return nodes

    def predict_value(self, X: np.ndarray) -> np.ndarray:
        return self.value[self.apply(X)]

    def feature_gains(self, use_gain: bool = True) -> np.ndarray:
        """Sample-weighted impurity decrease per input feature.

        With ``use_gain=False`` only the share of samples passing through each
        feature's splits is summed.
        """
        gains = np.zeros(self.n_features, dtype=np.float64)
        internal = self.feature != LEAF
        if not np.any(internal):
            return gains
        weight = self.n_node_samples[internal] / float(self.n_node_samples[0])
        np.add.at(
            gains,
            self.feature[internal],
            weight * np.maximum(self.gain[internal], 0.0) if use_gain else weight,
        )
        if self.rotation is not None:
            # Rotated feature j mixes original features with loadings R[:, j].
            gains = (self.rotation * self.rotation) @ gains
        return gains

    def to_dict(self) -> dict:
        return {
            "feature": self.feature.tolist(),
            "threshold": self.threshold.tolist(),
            "left": self.left.tolist(),
            "right": self.right.tolist(),
            "value": self.value.tolist(),
            "n_node_samples": self.n_node_samples.tolist(),
            "impurity": self.impurity.tolist(),
            "gain": self.gain.tolist(),
            "n_features": self.n_features,
            "rotation": None if self.rotation is None else self.rotation.tolist(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Tree:
        n_nodes = len(data["feature"])
        value = np.asarray(data["value"], dtype=np.float64).reshape(n_nodes, -1)
        return cls(
            feature=data["feature"],
            threshold=data["threshold"],
            left=data["left"],
            right=data["right"],
            value=value,
            n_node_samples=data["n_node_samples"],
            impurity=data["impurity"],
            gain=data["gain"],
            n_features=data["n_features"],
            rotation=data.get("rotation"),
        )


@dataclass
class TreeBuildMetrics:
    nodes_visited: int = 0
    nodes_split: int = 0
    no_valid_split: int = 0
    empty_child_rejections: int = 0
    split_search_time_sec: float = 0.0


@dataclass
class TreeBuilderParams:
    max_depth: int | None = None
    min_samples_split: int = 2
    min_samples_leaf: int = 1
    max_features: int | None = None
    split_strategy: str = "best"  # one of: best, extra_random
    n_random_splits: int = 1
    random_state: int = 0

    def __post_init__(self) -> None:
        if self.max_depth is not None and self.max_depth < 0:
            raise ConfigurationError("max_depth must be >= 0 or None")
        if self.min_samples_split < 2:
            raise ConfigurationError("min_samples_split must be >= 2")
        if self.min_samples_leaf < 1:
            raise ConfigurationError("min_samples_leaf must be >= 1")
        if self.max_features is not None and self.max_features < 1:
            raise ConfigurationError("max_features must be >= 1 or None")

    def split_search_params(self) -> SplitSearchParams:
        return SplitSearchParams(
            strategy=self.split_strategy,
            n_random_splits=self.n_random_splits,
            min_samples_leaf=self.min_samples_leaf,
        )


class _NodeArena:
    def __init__(self) -> None:
        self.feature: list[int] = []
        self.threshold: list[float] = []
        self.left: list[int] = []
        self.right: list[int] = []
        self.value: list[np.ndarray] = []
        self.n_node_samples: list[int] = []
        self.impurity: list[float] = []
        self.gain: list[float] = []

    def add(self) -> int:
        self.feature.append(LEAF)
        self.threshold.append(0.0)
        self.left.append(LEAF)
        self.right.append(LEAF)
        self.value.append(np.empty(0))
        self.n_node_samples.append(0)
        self.impurity.append(0.0)
        self.gain.append(0.0)
        return len(self.feature) - 1


class TreeBuilder:
    def __init__(
        self,
        matrix: FeatureMatrix,
        y: np.ndarray,
        criterion: SplitCriterion,
        params: TreeBuilderParams,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.matrix = matrix
        self.columns = matrix.columns
        self.y = np.asarray(y)
        if self.y.shape[0] != matrix.n_samples:
            raise DimensionMismatchError(matrix.n_samples, self.y.shape[0], what="label vector")
        self.criterion = criterion
        self.params = params
        self.search_params = params.split_search_params()
        self.rng = rng if rng is not None else np.random.default_rng(params.random_state)

        self.n_samples = matrix.n_samples
        self.n_features = matrix.n_features
        self.metrics = TreeBuildMetrics()

    def _candidate_features(self) -> np.ndarray:
        k = self.params.max_features
        if k is None or k >= self.n_features:
            return np.arange(self.n_features, dtype=np.intp)
        chosen = self.rng.choice(self.n_features, size=k, replace=False)
        return np.sort(chosen).astype(np.intp)

    def _is_splittable(self, rows: np.ndarray, depth: int) -> bool:
        if self.params.max_depth is not None and depth >= self.params.max_depth:
            return False
        if rows.size < self.params.min_samples_split:
            return False
        y_node = self.y[rows]
        if np.all(y_node == y_node[0]):
            return False
        return True

    def _find_split(self, rows: np.ndarray, impurity: float) -> SplitCandidate | None:
        search = SplitSearch(
            node_rows=rows,
            candidate_features=self._candidate_features(),
            columns=self.columns,
            y=self.y,
            criterion=self.criterion,
            params=self.search_params,
            rng=self.rng,
            parent_score=impurity,
        )
        try:
            result = search.search()
        except NoValidSplit:
            self.metrics.no_valid_split += 1
            return None
        finally:
            self.metrics.split_search_time_sec += search.metrics.time_spent_sec
        return result.candidate

    def build_tree(self, rows: np.ndarray | None = None, rotation: np.ndarray | None = None) -> Tree:
        """Grow a tree on ``rows`` (duplicates allowed, e.g. a bootstrap draw).

        ``rotation`` is only recorded on the tree; ``matrix`` must already be
        expressed in the rotated basis.
        """
        if rows is None:
            rows = np.arange(self.n_samples, dtype=np.intp)
        else:
            rows = np.asarray(rows, dtype=np.intp)
        if rows.size == 0:
            raise ValueError("cannot grow a tree on an empty sample")

        arena = _NodeArena()
        stack = [(arena.add(), rows, 0)]

        while stack:
            node, node_rows, depth = stack.pop()
            self.metrics.nodes_visited += 1

            y_node = self.y[node_rows]
            impurity = self.criterion.score(y_node)
            arena.value[node] = self.criterion.leaf_value(y_node)
            arena.n_node_samples[node] = int(node_rows.size)
            arena.impurity[node] = impurity

            if not self._is_splittable(node_rows, depth):
                continue

            candidate = self._find_split(node_rows, impurity)
            if candidate is None:
                continue

            go_left = self.columns[node_rows, candidate.feature] <= candidate.threshold
            left_rows = node_rows[go_left]
            right_rows = node_rows[~go_left]
            if left_rows.size == 0 or right_rows.size == 0:
                self.metrics.empty_child_rejections += 1
                continue

            left = arena.add()
            right = arena.add()
            arena.feature[node] = candidate.feature
            arena.threshold[node] = candidate.threshold
            arena.gain[node] = candidate.gain
            arena.left[node] = left
            arena.right[node] = right
            self.metrics.nodes_split += 1

            stack.append((right, right_rows, depth + 1))
            stack.append((left, left_rows, depth + 1))

        logger.trace(
            "grew tree: nodes={} splits={} no_valid_split={}",
            len(arena.feature),
            self.metrics.nodes_split,
            self.metrics.no_valid_split,
        )
        return Tree(
            feature=arena.feature,
            threshold=arena.threshold,
            left=arena.left,
            right=arena.right,
            value=np.vstack(arena.value),
            n_node_samples=arena.n_node_samples,
            impurity=arena.impurity,
            gain=arena.gain,
            n_features=self.n_features,
            rotation=rotation,
        )
