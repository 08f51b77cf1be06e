"""Exceptions raised by forester.

Input and configuration errors subclass ``ValueError`` and abort ``fit`` or
``predict`` before any work is done:

- DimensionMismatchError: feature counts disagree.
- InvalidValueError: a feature or label is NaN or infinite.
- ConfigurationError: hyperparameters are invalid for the data.

Structural conditions found while growing a tree are handled locally and
never leave the library:

- NoValidSplit: a node cannot be partitioned and becomes a leaf.
- DegenerateRotation: a feature group has a singular covariance and keeps
  the identity transform.
"""

from __future__ import annotations


class ForesterError(Exception):
    """Base class for all forester errors."""


class DimensionMismatchError(ForesterError, ValueError):
    """Raised when the number of features does not match what is expected.

    Attributes:
        expected (int): Number of features required.
        actual (int): Number of features found.
    """

    def __init__(self, expected: int, actual: int, what: str = "sample") -> None:
        super().__init__(f"{what} has {actual} features, expected {expected}")
        self.expected = expected
        self.actual = actual


class InvalidValueError(ForesterError, ValueError):
    """Raised when input contains NaN or infinite values."""


class ConfigurationError(ForesterError, ValueError):
    """Raised when hyperparameters are invalid."""


class NoValidSplit(ForesterError):
    """Raised by split search when no candidate feature can partition a node."""


class DegenerateRotation(ForesterError):
    """Raised when a feature group's covariance matrix is singular.

    Attributes:
        features (list[int]): Feature indices of the offending group.
    """

    def __init__(self, features: list[int]) -> None:
        super().__init__(f"singular covariance for feature group {features}")
        self.features = features
