import argparse
import time
import sys
from pathlib import Path

import numpy as np

# Allow running as: python experiments/quick_forest_eval.py
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from forester import Forest, ForestParams, enable_logging

VARIANTS = {
    "random_forest": {"split_strategy": "best", "bootstrap": True},
    "extra_trees": {"split_strategy": "extra_random", "bootstrap": False},
    "rotation_forest": {
        "split_strategy": "best",
        "bootstrap": True,
        "rotation": True,
        "feature_subset_size": "all",
    },
}


def _holdout_split(X, y, test_fraction, rng, stratify):
    groups = [np.flatnonzero(y == c) for c in np.unique(y)] if stratify else [np.arange(y.size)]
    test_mask = np.zeros(y.size, dtype=bool)
    for idx in groups:
        idx = rng.permutation(idx)
        test_mask[idx[: max(1, int(round(idx.size * test_fraction)))]] = True
    return X[~test_mask], X[test_mask], y[~test_mask], y[test_mask]


def _load_sklearn_dataset(name):
    try:
        if name == "iris":
            from sklearn.datasets import load_iris

            ds = load_iris()
            return ds.data.astype(np.float64), ds.target.astype(np.float64), "classification"
        if name == "breast_cancer":
            from sklearn.datasets import load_breast_cancer

            ds = load_breast_cancer()
            return ds.data.astype(np.float64), ds.target.astype(np.float64), "classification"
        if name == "diabetes":
            from sklearn.datasets import load_diabetes

            ds = load_diabetes()
            return ds.data.astype(np.float64), ds.target.astype(np.float64), "regression"

    except ModuleNotFoundError as e:
        raise ModuleNotFoundError(
            "Dataset requires scikit-learn, which is not installed. "
            "Use synthetic_reg/synthetic_clf/spiral or install the experiments extra."
        ) from e

    raise ValueError("Unsupported sklearn dataset")


def _spiral(n_samples, rng):
    # Three interleaved spiral arms, one per class.
    y = np.arange(n_samples) % 3
    r = rng.uniform(0.0, 6.0, size=n_samples)
    phi = r + 2.0 * np.pi * y / 3.0 + rng.uniform(0.0, 2.0 * np.pi / 3.0, size=n_samples)
    X = np.column_stack([np.sin(phi) * r, np.cos(phi) * r])
    return X, y.astype(np.float64)


def load_dataset(name: str, random_state: int, max_samples: int | None):
    rng = np.random.default_rng(random_state)
    key = name.lower()

    if key in {"iris", "breast_cancer", "diabetes"}:
        X, y, task = _load_sklearn_dataset(key)
    elif key == "synthetic_reg":
        n_samples = 2000
        n_features = 10
        X = rng.normal(size=(n_samples, n_features))
        w = rng.normal(size=n_features)
        y = X @ w + rng.normal(scale=0.5, size=n_samples)
        task = "regression"
    elif key == "synthetic_clf":
        n_samples = 2000
        n_features = 10
        X = rng.normal(size=(n_samples, n_features))
        w = rng.normal(size=n_features)
        logits = X @ w + 0.5 * rng.normal(size=n_samples)
        y = (logits > 0).astype(np.float64)
        task = "classification"
    elif key == "spiral":
        X, y = _spiral(1000, rng)
        task = "classification"
    else:
        raise ValueError(
            f"Unknown dataset '{name}'. Choose from: iris, breast_cancer, diabetes, "
            "synthetic_reg, synthetic_clf, spiral"
        )

    if max_samples is not None and X.shape[0] > max_samples:
        keep = np.sort(rng.choice(X.shape[0], size=max_samples, replace=False))
        X, y = X[keep], y[keep]
    return X, y, task


def evaluate_one(X, y, task, variant, num_trees, max_depth, min_samples_split, n_jobs, random_state):
    X_train, X_test, y_train, y_test = _holdout_split(
        X, y, 0.2, np.random.default_rng(random_state), stratify=(task == "classification")
    )

    params = ForestParams(
        task=task,
        num_trees=num_trees,
        max_depth=max_depth,
        min_samples_split=min_samples_split,
        compute_oob=VARIANTS[variant]["bootstrap"],
        n_jobs=n_jobs,
        random_seed=random_state,
        **VARIANTS[variant],
    )

    model = Forest(params)
    t0 = time.perf_counter()
    model.fit(X_train, y_train)
    fit_time = time.perf_counter() - t0

    t0 = time.perf_counter()
    pred = model.predict_batch(X_test)
    predict_time = time.perf_counter() - t0

    if task == "classification":
        metrics = {"accuracy": float(np.mean(pred == y_test))}
    else:
        metrics = {"rmse": float(np.sqrt(np.mean(np.square(y_test - pred))))}
    if model.oob_error_ is not None:
        metrics["oob_error"] = model.oob_error_

    importance = model.feature_importance()
    top_features = sorted(importance, key=importance.get, reverse=True)[:3]

    return {
        "fit_time_sec": fit_time,
        "predict_time_sec": predict_time,
        "split_search_time_sec": model.metrics["split_search_time_sec"],
        "nodes_split": model.metrics["nodes_split"],
        "metrics": metrics,
        "top_features": top_features,
    }


def main():
    parser = argparse.ArgumentParser(description="Quick forest checks on small datasets")
    parser.add_argument(
        "--datasets",
        type=str,
        default="synthetic_reg,synthetic_clf,spiral",
        help="Comma-separated: synthetic_reg, synthetic_clf, spiral, iris, breast_cancer, diabetes",
    )
    parser.add_argument(
        "--variants",
        type=str,
        default=",".join(VARIANTS),
        help=f"Comma-separated: {', '.join(VARIANTS)}",
    )
    parser.add_argument("--max-samples", type=int, default=2000)
    parser.add_argument("--num-trees", type=int, default=50)
    parser.add_argument("--max-depth", type=int, default=None)
    parser.add_argument("--min-samples-split", type=int, default=2)
    parser.add_argument("--n-jobs", type=int, default=-1)
    parser.add_argument("--random-state", type=int, default=42)
    parser.add_argument("--verbose", action="store_true", help="Show forester INFO logs")

    args = parser.parse_args()

    datasets = [d.strip() for d in args.datasets.split(",") if d.strip()]
    variants = [v.strip() for v in args.variants.split(",") if v.strip()]
    if not datasets:
        raise ValueError("No datasets provided")
    unknown = set(variants) - set(VARIANTS)
    if unknown:
        raise ValueError(f"Unknown variants: {sorted(unknown)}")

    handle = enable_logging(level="INFO") if args.verbose else None
    try:
        for ds_name in datasets:
            X, y, task = load_dataset(ds_name, args.random_state, args.max_samples)
            print(f"\nDataset={ds_name} task={task} n={X.shape[0]} d={X.shape[1]}")

            for variant in variants:
                out = evaluate_one(
                    X,
                    y,
                    task=task,
                    variant=variant,
                    num_trees=args.num_trees,
                    max_depth=args.max_depth,
                    min_samples_split=args.min_samples_split,
                    n_jobs=args.n_jobs,
                    random_state=args.random_state,
                )
                print(
                    f"{variant:<16}"
                    f" fit={out['fit_time_sec']:.3f}s"
                    f" predict={out['predict_time_sec']:.3f}s"
                    f" split_search={out['split_search_time_sec']:.3f}s"
                    f" splits={out['nodes_split']}"
                    f" metrics={out['metrics']}"
                    f" top_features={out['top_features']}"
                )
    finally:
        if handle is not None:
            handle.disable()


if __name__ == "__main__":
    main()
