"""Saving and loading trained forests.

Forests are written as JSON: the hyperparameters, the class labels and every
tree's node arena (plus its rotation matrix, if any). Python's float repr
round-trips exactly, so a loaded forest predicts bit-identically.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Final

from loguru import logger

from forester.forest import Forest

__all__ = ["FORMAT_VERSION", "dump_forest", "load_forest", "loads_forest", "save_forest"]

FORMAT_VERSION: Final[int] = 1


def dump_forest(forest: Forest) -> str:
    """Serialize a fitted forest to a JSON string."""
    payload = {"format_version": FORMAT_VERSION, "forest": forest.to_dict()}
    return json.dumps(payload)


def loads_forest(text: str) -> Forest:
    """Rebuild a forest from ``dump_forest`` output.

    Raises:
        ValueError: If the payload is not a forester model or its format
            version is unsupported.
    """
    payload = json.loads(text)
    if not isinstance(payload, dict) or "forest" not in payload:
        raise ValueError("payload is not a serialized forest")
    version = payload.get("format_version")
    if version != FORMAT_VERSION:
        raise ValueError(f"unsupported forest format version: {version!r}")
    return Forest.from_dict(payload["forest"])


def save_forest(forest: Forest, path: str | Path) -> Path:
    path = Path(path)
    path.write_text(dump_forest(forest), encoding="utf-8")
    logger.info("saved forest with {} trees to {}", len(forest.trees), path)
    return path


def load_forest(path: str | Path) -> Forest:
    path = Path(path)
    forest = loads_forest(path.read_text(encoding="utf-8"))
    logger.info("loaded forest with {} trees from {}", len(forest.trees), path)
    return forest
