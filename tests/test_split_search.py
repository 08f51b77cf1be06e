import numpy as np
import pytest

from forester.criteria import SplitCriterion
from forester.exceptions import ConfigurationError, NoValidSplit
from forester.split_search import SplitSearch, SplitSearchParams


def _search(X, y, rows=None, features=None, criterion=None, seed=0, **params):
    X = np.asfortranarray(np.asarray(X, dtype=np.float64))
    y = np.asarray(y)
    if rows is None:
        rows = np.arange(X.shape[0])
    if features is None:
        features = np.arange(X.shape[1])
    if criterion is None:
        criterion = SplitCriterion("gini", n_classes=int(y.max()) + 1)
    return SplitSearch(
        node_rows=rows,
        candidate_features=features,
        columns=X,
        y=y,
        criterion=criterion,
        params=SplitSearchParams(**params),
        rng=np.random.default_rng(seed),
    )


def test_best_split_finds_midpoint_between_classes():
    X = np.array([[1.0], [2.0], [3.0], [7.0], [8.0], [9.0]])
    y = np.array([0, 0, 0, 1, 1, 1])

    result = _search(X, y).search()

    assert result.candidate.feature == 0
    assert result.candidate.threshold == pytest.approx(5.0)
    assert result.candidate.gain == pytest.approx(0.5)


def test_best_split_ties_keep_lowest_feature():
    column = np.array([1.0, 2.0, 3.0, 4.0])
    X = np.column_stack([column, column, column])
    y = np.array([0, 0, 1, 1])

    result = _search(X, y).search()

    assert result.candidate.feature == 0


def test_best_split_prefers_informative_feature():
    rng = np.random.default_rng(3)
    noise = rng.normal(size=50)
    signal = np.linspace(-1.0, 1.0, 50)
    X = np.column_stack([noise, signal])
    y = (signal > 0.1).astype(int)

    result = _search(X, y).search()

    assert result.candidate.feature == 1
    assert np.all((signal <= result.candidate.threshold) == (y == 0))


def test_constant_features_raise_no_valid_split():
    X = np.ones((5, 3))
    y = np.array([0, 1, 0, 1, 0])

    with pytest.raises(NoValidSplit):
        _search(X, y).search()
    with pytest.raises(NoValidSplit):
        _search(X, y, strategy="extra_random").search()


def test_constant_feature_is_skipped_when_another_varies():
    X = np.column_stack([np.zeros(4), np.array([1.0, 2.0, 3.0, 4.0])])
    y = np.array([0, 0, 1, 1])

    search = _search(X, y)
    result = search.search()

    assert result.candidate.feature == 1
    assert search.metrics.constant_features == 1


def test_extra_random_threshold_within_node_range():
    X = np.array([[0.0], [1.0], [2.0], [7.0], [8.0], [9.0]])
    y = np.array([0, 0, 0, 1, 1, 0])
    rows = np.array([3, 4, 5])

    for seed in range(20):
        result = _search(X, y, rows=rows, seed=seed, strategy="extra_random").search()
        assert 7.0 <= result.candidate.threshold < 9.0


def test_extra_random_more_draws_never_lower_gain():
    rng = np.random.default_rng(1)
    X = rng.normal(size=(60, 1))
    y = (X[:, 0] > 0.3).astype(int)

    single = _search(X, y, seed=4, strategy="extra_random", n_random_splits=1).search()
    many = _search(X, y, seed=4, strategy="extra_random", n_random_splits=25).search()

    assert many.candidate.gain >= single.candidate.gain - 1e-12


def test_extra_random_threshold_on_extreme_finite_values():
    X = np.array([[-1e308], [-1e308], [1e308], [1e308]])
    y = np.array([0, 0, 1, 1])

    for seed in range(10):
        result = _search(X, y, seed=seed, strategy="extra_random").search()
        assert np.isfinite(result.candidate.threshold)
        assert -1e308 <= result.candidate.threshold < 1e308
        assert result.candidate.gain == pytest.approx(0.5)


def test_min_samples_leaf_limits_boundaries():
    X = np.arange(8, dtype=np.float64).reshape(-1, 1)
    y = np.array([1, 0, 0, 0, 0, 0, 0, 0])

    result = _search(X, y, min_samples_leaf=3).search()

    n_left = int(np.count_nonzero(X[:, 0] <= result.candidate.threshold))
    assert 3 <= n_left <= 5


def test_regression_split():
    X = np.array([[1.0], [2.0], [3.0], [7.0], [8.0], [9.0]])
    y = np.array([5.0, 5.0, 5.0, 2.0, 2.0, 2.0])

    result = _search(X, y, criterion=SplitCriterion("mse")).search()

    assert result.candidate.threshold == pytest.approx(5.0)
    assert result.candidate.gain == pytest.approx(np.var(y))


def test_invalid_params():
    with pytest.raises(ConfigurationError):
        SplitSearchParams(strategy="random")
    with pytest.raises(ConfigurationError):
        SplitSearchParams(n_random_splits=0)
