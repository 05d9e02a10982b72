import logging

import pytest


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Restore root logger state that CLI logging setup mutates between tests."""
    root = logging.getLogger()
    level = root.level
    handlers = list(root.handlers)
    yield
    logging.disable(logging.NOTSET)
    root.setLevel(level)
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
