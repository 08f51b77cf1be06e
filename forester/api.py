"""Ready-made forest configurations.

Each factory returns an unfitted :class:`~forester.forest.Forest`; keyword
overrides replace any of the preset's :class:`~forester.forest.ForestParams`.
"""

from __future__ import annotations

from forester.forest import Forest, ForestParams


def _build(preset: dict, overrides: dict) -> Forest:
    return Forest(ForestParams(**{**preset, **overrides}))


def extra_trees_regressor(**overrides) -> Forest:
    """Extremely randomized trees: 10 trees, one random threshold per feature."""
    preset = {
        "task": "regression",
        "num_trees": 10,
        "split_strategy": "extra_random",
        "n_random_splits": 1,
        "bootstrap": False,
        "feature_subset_size": "all",
    }
    return _build(preset, overrides)


def extra_trees_classifier(**overrides) -> Forest:
    preset = {
        "task": "classification",
        "num_trees": 10,
        "split_strategy": "extra_random",
        "n_random_splits": 1,
        "bootstrap": False,
        "feature_subset_size": "sqrt",
    }
    return _build(preset, overrides)


def random_forest_classifier(**overrides) -> Forest:
    preset = {
        "task": "classification",
        "num_trees": 100,
        "split_strategy": "best",
        "bootstrap": True,
        "feature_subset_size": "sqrt",
    }
    return _build(preset, overrides)


def random_forest_regressor(**overrides) -> Forest:
    preset = {
        "task": "regression",
        "num_trees": 100,
        "split_strategy": "best",
        "bootstrap": True,
        "feature_subset_size": "all",
    }
    return _build(preset, overrides)


def rotation_forest_classifier(**overrides) -> Forest:
    """Rotation forest: PCA-rotated feature groups, every feature per node."""
    preset = {
        "task": "classification",
        "num_trees": 10,
        "split_strategy": "best",
        "bootstrap": True,
        "feature_subset_size": "all",
        "rotation": True,
        "rotation_group_size": 3,
    }
    return _build(preset, overrides)
