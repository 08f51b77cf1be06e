from __future__ import annotations

from dataclasses import asdict, dataclass
import math
import time

import numpy as np
from joblib import Parallel, delayed
from loguru import logger

from forester.criteria import CLASSIFICATION_CRITERIA, SplitCriterion, default_criterion
from forester.exceptions import ConfigurationError, DimensionMismatchError
from forester.feature_matrix import FeatureMatrix, as_feature_matrix
from forester.rotation import RotationParams, RotationTransform
from forester.split_search import SPLIT_STRATEGIES
from forester.tree_builder import Tree, TreeBuilder, TreeBuilderParams

TASKS = frozenset({"classification", "regression"})


@dataclass
class ForestParams:
    task: str = "classification"  # one of: classification, regression
    num_trees: int = 100
    max_depth: int | None = None
    min_samples_split: int = 2
    min_samples_leaf: int = 1
    feature_subset_size: int | str = "sqrt"  # int, "sqrt" or "all"
    bootstrap: bool = True
    split_strategy: str = "best"  # one of: best, extra_random
    n_random_splits: int = 1
    criterion: str | None = None  # gini/entropy for classification, mse for regression

    rotation: bool = False
    rotation_group_size: int = 3
    rotation_sample_fraction: float = 0.75

    compute_oob: bool = False
    n_jobs: int | None = 1
    random_seed: int = 0

    def __post_init__(self) -> None:
        if self.task not in TASKS:
            raise ConfigurationError("task must be one of: classification, regression")
        if self.num_trees < 1:
            raise ConfigurationError("num_trees must be >= 1")
        if self.max_depth is not None and self.max_depth < 0:
            raise ConfigurationError("max_depth must be >= 0 or None")
        if self.min_samples_split < 2:
            raise ConfigurationError("min_samples_split must be >= 2")
        if self.min_samples_leaf < 1:
            raise ConfigurationError("min_samples_leaf must be >= 1")
        if isinstance(self.feature_subset_size, str):
            if self.feature_subset_size not in {"sqrt", "all"}:
                raise ConfigurationError("feature_subset_size must be an int, 'sqrt' or 'all'")
        elif self.feature_subset_size < 1:
            raise ConfigurationError("feature_subset_size must be >= 1")
        if self.split_strategy not in SPLIT_STRATEGIES:
            raise ConfigurationError("split_strategy must be one of: best, extra_random")
        if self.n_random_splits < 1:
            raise ConfigurationError("n_random_splits must be >= 1")

        if self.criterion is None:
            self.criterion = default_criterion(self.task)
        is_classification_criterion = self.criterion in CLASSIFICATION_CRITERIA
        if self.criterion not in CLASSIFICATION_CRITERIA | {"mse"}:
            raise ConfigurationError("criterion must be one of: gini, entropy, mse")
        if is_classification_criterion != (self.task == "classification"):
            raise ConfigurationError(f"criterion {self.criterion!r} does not fit task {self.task!r}")

        if self.compute_oob and not self.bootstrap:
            raise ConfigurationError("compute_oob requires bootstrap=True")
        if self.n_jobs == 0:
            raise ConfigurationError("n_jobs must be non-zero")
        # Validate the rotation settings eagerly.
        self.rotation_params()

    def rotation_params(self) -> RotationParams:
        return RotationParams(
            group_size=self.rotation_group_size,
            sample_fraction=self.rotation_sample_fraction,
        )

    def resolve_feature_subset_size(self, n_features: int) -> int:
        if self.feature_subset_size == "all":
            return n_features
        if self.feature_subset_size == "sqrt":
            return max(1, int(math.sqrt(n_features)))
        if self.feature_subset_size > n_features:
            raise ConfigurationError(
                f"feature_subset_size={self.feature_subset_size} exceeds the "
                f"{n_features} available features"
            )
        return int(self.feature_subset_size)


def _n_features_of(X) -> int:
    if isinstance(X, FeatureMatrix):
        return X.n_features
    if isinstance(X, (list, tuple)) and X and all(hasattr(row, "__len__") for row in X):
        width = len(X[0])
        for i, row in enumerate(X):
            if len(row) != width:
                raise DimensionMismatchError(width, len(row), what=f"row {i}")
    shape = np.shape(X)
    if len(shape) != 2:
        raise ValueError("X must be a 2D array")
    return int(shape[1])


def _grow_tree(
    tree_idx: int,
    matrix: FeatureMatrix,
    y: np.ndarray,
    criterion: SplitCriterion,
    tree_params: TreeBuilderParams,
    params: ForestParams,
    seed: np.random.SeedSequence,
) -> tuple[Tree, np.ndarray | None, dict]:
    rng = np.random.default_rng(seed)
    n_samples = matrix.n_samples

    oob_rows = None
    if params.bootstrap:
        rows = rng.integers(0, n_samples, size=n_samples)
        oob_rows = np.flatnonzero(np.bincount(rows, minlength=n_samples) == 0)
    else:
        rows = np.arange(n_samples, dtype=np.intp)

    train_matrix = matrix
    rotation = None
    if params.rotation:
        transform = RotationTransform.fit(matrix, rng, params.rotation_params(), rows=rows)
        train_matrix = transform.apply_matrix(matrix)
        rotation = transform.matrix

    builder = TreeBuilder(
        matrix=train_matrix,
        y=y,
        criterion=criterion,
        params=tree_params,
        rng=rng,
    )
    tree = builder.build_tree(rows, rotation=rotation)
    logger.debug(
        "tree {} grown: nodes={} leaves={} depth={}",
        tree_idx,
        tree.n_nodes,
        tree.n_leaves,
        tree.depth,
    )
    tree_metrics = {
        "tree_idx": tree_idx,
        "nodes_visited": builder.metrics.nodes_visited,
        "nodes_split": builder.metrics.nodes_split,
        "no_valid_split": builder.metrics.no_valid_split,
        "split_search_time_sec": builder.metrics.split_search_time_sec,
    }
    return tree, oob_rows, tree_metrics


class Forest:
    """Bagged ensemble of decision trees.

    Covers random forests (``split_strategy="best"``), extremely randomized
    trees (``"extra_random"``) and rotation forests (``rotation=True``) for
    both classification and regression.
    """

    def __init__(self, params: ForestParams | None = None) -> None:
        self.params = params or ForestParams()

        self.trees: list[Tree] = []
        self.classes_: np.ndarray | None = None
        self.n_features_: int | None = None
        self.criterion_: SplitCriterion | None = None
        self.oob_error_: float | None = None
        self.oob_prediction_: np.ndarray | None = None
        self.metrics: dict = {}

    @property
    def is_classifier(self) -> bool:
        return self.params.task == "classification"

    @property
    def is_fitted(self) -> bool:
        return bool(self.trees)

    def _check_fitted(self) -> None:
        if not self.trees:
            raise RuntimeError("Forest must be fitted before prediction")

    def _encode_labels(self, labels: np.ndarray) -> np.ndarray:
        if not self.is_classifier:
            self.classes_ = None
            return labels
        classes = np.unique(labels)
        if np.all(classes == np.round(classes)):
            classes = classes.astype(np.int64)
        self.classes_ = classes
        return np.searchsorted(classes, labels).astype(np.intp)

    def fit(self, X, y=None) -> Forest:
        """Grow ``num_trees`` trees on ``X`` / ``y``.

        ``X`` is a :class:`FeatureMatrix` with labels or a 2D array with ``y``.

        Raises:
            ConfigurationError: If the configuration does not fit the data;
                raised before the data is validated or any tree is grown.
            DimensionMismatchError: If ``y`` and ``X`` disagree in length.
            InvalidValueError: If features or labels are not finite.
        """
        params = self.params
        max_features = params.resolve_feature_subset_size(_n_features_of(X))

        matrix = as_feature_matrix(X, y)
        if not matrix.has_labels:
            raise ValueError("training data must carry labels")
        if matrix.n_samples == 0:
            raise ValueError("cannot fit on an empty dataset")

        y_encoded = self._encode_labels(matrix.labels)
        criterion = SplitCriterion(
            name=params.criterion,
            n_classes=len(self.classes_) if self.is_classifier else 0,
        )
        tree_params = TreeBuilderParams(
            max_depth=params.max_depth,
            min_samples_split=params.min_samples_split,
            min_samples_leaf=params.min_samples_leaf,
            max_features=max_features,
            split_strategy=params.split_strategy,
            n_random_splits=params.n_random_splits,
            random_state=params.random_seed,
        )

        logger.info(
            "fitting {} trees on {} samples x {} features (strategy={}, rotation={}, n_jobs={})",
            params.num_trees,
            matrix.n_samples,
            matrix.n_features,
            params.split_strategy,
            params.rotation,
            params.n_jobs,
        )
        t0 = time.perf_counter()

        seeds = np.random.SeedSequence(params.random_seed).spawn(params.num_trees)
        # joblib returns results in submission order, so slot i holds tree i.
        results = Parallel(n_jobs=params.n_jobs, prefer="threads")(
            delayed(_grow_tree)(
                tree_idx,
                matrix,
                y_encoded,
                criterion,
                tree_params,
                params,
                seeds[tree_idx],
            )
            for tree_idx in range(params.num_trees)
        )

        self.trees = [tree for tree, _, _ in results]
        self.n_features_ = matrix.n_features
        self.criterion_ = criterion

        self.metrics = {
            "fit_time_sec": 0.0,
            "nodes_visited": 0,
            "nodes_split": 0,
            "no_valid_split": 0,
            "split_search_time_sec": 0.0,
            "tree_metrics": [],
        }
        for _, _, tree_metrics in results:
            self.metrics["nodes_visited"] += tree_metrics["nodes_visited"]
            self.metrics["nodes_split"] += tree_metrics["nodes_split"]
            self.metrics["no_valid_split"] += tree_metrics["no_valid_split"]
            self.metrics["split_search_time_sec"] += tree_metrics["split_search_time_sec"]
            self.metrics["tree_metrics"].append(tree_metrics)

        self.oob_error_ = None
        self.oob_prediction_ = None
        if params.compute_oob:
            self._compute_oob(matrix, y_encoded, [oob for _, oob, _ in results])

        self.metrics["fit_time_sec"] = time.perf_counter() - t0
        logger.info(
            "fitted {} trees in {:.3f}s ({} splits)",
            len(self.trees),
            self.metrics["fit_time_sec"],
            self.metrics["nodes_split"],
        )
        return self

    def _compute_oob(
        self,
        matrix: FeatureMatrix,
        y_encoded: np.ndarray,
        oob_rows: list[np.ndarray | None],
    ) -> None:
        n_samples = matrix.n_samples
        counts = np.zeros(n_samples, dtype=np.int64)
        if self.is_classifier:
            accum = np.zeros((n_samples, len(self.classes_)), dtype=np.float64)
        else:
            accum = np.zeros(n_samples, dtype=np.float64)

        for tree, rows in zip(self.trees, oob_rows):
            if rows is None or rows.size == 0:
                continue
            values = tree.predict_value(matrix.values[rows])
            counts[rows] += 1
            if self.is_classifier:
                np.add.at(accum, (rows, np.argmax(values, axis=1)), 1.0)
            else:
                accum[rows] += values[:, 0]

        covered = counts > 0
        if not np.any(covered):
            logger.warning("no sample was left out of bag; oob_error_ is undefined")
            self.oob_error_ = float("nan")
            return

        if self.is_classifier:
            predicted = np.argmax(accum, axis=1)
            self.oob_prediction_ = np.where(covered, predicted, -1)
            self.oob_error_ = float(np.mean(predicted[covered] != y_encoded[covered]))
        else:
            with np.errstate(invalid="ignore", divide="ignore"):
                mean = accum / counts
            self.oob_prediction_ = np.where(covered, mean, np.nan)
            residual = mean[covered] - y_encoded[covered]
            self.oob_error_ = float(np.mean(residual * residual))

        logger.info(
            "out-of-bag error {:.6f} over {} of {} samples",
            self.oob_error_,
            int(np.count_nonzero(covered)),
            n_samples,
        )

    def _prepare_input(self, X) -> np.ndarray:
        self._check_fitted()
        if isinstance(X, FeatureMatrix):
            X = X.values
        X = np.asarray(X, dtype=np.float64)
        if X.ndim == 1:
            X = X[None, :]
        if X.ndim != 2:
            raise ValueError("X must be a 1D sample or a 2D array")
        if X.shape[1] != self.n_features_:
            raise DimensionMismatchError(self.n_features_, X.shape[1])
        return FeatureMatrix(X).values

    def _tree_values(self, X: np.ndarray) -> list[np.ndarray]:
        return Parallel(n_jobs=self.params.n_jobs, prefer="threads")(
            delayed(tree.predict_value)(X) for tree in self.trees
        )

    def predict_batch(self, X) -> np.ndarray:
        """Predict every row of ``X``; output order follows input order."""
        X = self._prepare_input(X)
        tree_values = self._tree_values(X)

        if not self.is_classifier:
            return np.mean([values[:, 0] for values in tree_values], axis=0)

        votes = np.zeros((X.shape[0], len(self.classes_)), dtype=np.int64)
        rows = np.arange(X.shape[0])
        for values in tree_values:
            np.add.at(votes, (rows, np.argmax(values, axis=1)), 1)
        # argmax picks the lowest class id among tied vote counts.
        return self.classes_[np.argmax(votes, axis=1)]

    def predict(self, sample):
        """Predict a single sample."""
        sample = np.asarray(sample, dtype=np.float64)
        if sample.ndim != 1:
            raise ValueError("predict expects one sample; use predict_batch for matrices")
        return self.predict_batch(sample)[0]

    def predict_proba(self, X) -> np.ndarray:
        """Mean class distribution over trees, columns ordered as ``classes_``."""
        if not self.is_classifier:
            raise RuntimeError("predict_proba is only available for classification forests")
        X = self._prepare_input(X)
        return np.mean(self._tree_values(X), axis=0)

    def feature_importance(self) -> dict[int, float]:
        """Normalized impurity decrease per feature, summing to 1.

        When every split has zero gain the share of samples routed through
        each feature's splits is used instead. A forest of single leaves
        reports zero everywhere.
        """
        self._check_fitted()
        totals = np.sum([tree.feature_gains() for tree in self.trees], axis=0)
        if totals.sum() <= 0.0:
            totals = np.sum([tree.feature_gains(use_gain=False) for tree in self.trees], axis=0)
        total = totals.sum()
        if total > 0.0:
            totals = totals / total
        return {i: float(w) for i, w in enumerate(totals)}

    def to_dict(self) -> dict:
        self._check_fitted()
        return {
            "params": asdict(self.params),
            "classes": None if self.classes_ is None else self.classes_.tolist(),
            "n_features": self.n_features_,
            "oob_error": self.oob_error_,
            "oob_prediction": (
                None if self.oob_prediction_ is None else self.oob_prediction_.tolist()
            ),
            "trees": [tree.to_dict() for tree in self.trees],
        }

    @classmethod
    def from_dict(cls, data: dict) -> Forest:
        forest = cls(ForestParams(**data["params"]))
        forest.trees = [Tree.from_dict(tree) for tree in data["trees"]]
        forest.n_features_ = int(data["n_features"])
        if data.get("classes") is not None:
            forest.classes_ = np.asarray(data["classes"])
        forest.criterion_ = SplitCriterion(
            name=forest.params.criterion,
            n_classes=0 if forest.classes_ is None else len(forest.classes_),
        )
        forest.oob_error_ = data.get("oob_error")
        if data.get("oob_prediction") is not None:
            dtype = np.int64 if forest.classes_ is not None else np.float64
            forest.oob_prediction_ = np.asarray(data["oob_prediction"], dtype=dtype)
        return forest
