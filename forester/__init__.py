"""
forester

Decision-tree ensembles for classification and regression: random forests,
extremely randomized trees and rotation forests, grown in parallel threads
on numpy feature matrices.
"""

from loguru import logger

from forester.api import (
    extra_trees_classifier,
    extra_trees_regressor,
    random_forest_classifier,
    random_forest_regressor,
    rotation_forest_classifier,
)
from forester.criteria import SplitCriterion
from forester.exceptions import (
    ConfigurationError,
    DegenerateRotation,
    DimensionMismatchError,
    ForesterError,
    InvalidValueError,
    NoValidSplit,
)
from forester.feature_matrix import FeatureMatrix
from forester.forest import Forest, ForestParams
from forester.logging import PACKAGE_NAME, enable_logging
from forester.persistence import load_forest, save_forest

logger.disable(PACKAGE_NAME)

__all__ = [
    "ConfigurationError",
    "DegenerateRotation",
    "DimensionMismatchError",
    "FeatureMatrix",
    "Forest",
    "ForestParams",
    "ForesterError",
    "InvalidValueError",
    "NoValidSplit",
    "SplitCriterion",
    "enable_logging",
    "extra_trees_classifier",
    "extra_trees_regressor",
    "load_forest",
    "random_forest_classifier",
    "random_forest_regressor",
    "rotation_forest_classifier",
    "save_forest",
]
