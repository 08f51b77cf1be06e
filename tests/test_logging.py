import numpy as np

from forester.forest import Forest, ForestParams
from forester.logging import LoggingHandle, enable_logging


def _fit_small_forest():
    rng = np.random.default_rng(0)
    X = rng.normal(size=(40, 3))
    Forest(ForestParams(num_trees=2)).fit(X, (X[:, 0] > 0).astype(int))


def test_logging_is_silent_by_default():
    messages = []
    from loguru import logger

    handler_id = logger.add(messages.append, level="TRACE")
    try:
        _fit_small_forest()
    finally:
        logger.remove(handler_id)

    assert messages == []


def test_enable_logging_routes_forester_records():
    messages = []

    with enable_logging(level="DEBUG", sink=messages.append) as handle:
        assert isinstance(handle, LoggingHandle)
        _fit_small_forest()

    text = "".join(str(m) for m in messages)
    assert "fitting 2 trees" in text
    assert "tree 0 grown" in text
    assert LoggingHandle.get_active_handle_count() == 0


def test_disable_is_idempotent():
    handle = enable_logging(sink=lambda message: None)
    handle.disable()
    handle.disable()

    assert handle.handler_id is None
