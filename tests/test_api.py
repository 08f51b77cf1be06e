import numpy as np

from forester.api import (
    extra_trees_classifier,
    extra_trees_regressor,
    random_forest_classifier,
    random_forest_regressor,
    rotation_forest_classifier,
)


def test_presets_configure_the_expected_variants():
    et_reg = extra_trees_regressor()
    assert et_reg.params.task == "regression"
    assert et_reg.params.split_strategy == "extra_random"
    assert et_reg.params.num_trees == 10
    assert not et_reg.params.bootstrap

    et_clf = extra_trees_classifier()
    assert et_clf.params.criterion == "gini"
    assert et_clf.params.split_strategy == "extra_random"

    assert random_forest_classifier().params.bootstrap
    assert random_forest_regressor().params.criterion == "mse"
    assert rotation_forest_classifier().params.rotation


def test_overrides_replace_preset_values():
    forest = extra_trees_classifier(num_trees=3, criterion="entropy", random_seed=9)

    assert forest.params.num_trees == 3
    assert forest.params.criterion == "entropy"
    assert forest.params.split_strategy == "extra_random"


def test_rotation_forest_separates_diagonal_classes():
    rng = np.random.default_rng(17)
    X = rng.uniform(-1.0, 1.0, size=(400, 4))
    y = (X[:, 0] - X[:, 1] > 0).astype(int)

    forest = rotation_forest_classifier(num_trees=15, random_seed=1).fit(X[:300], y[:300])

    assert np.mean(forest.predict_batch(X[300:]) == y[300:]) > 0.85
    assert all(tree.rotation is not None for tree in forest.trees)
