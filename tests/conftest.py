import logging

import pytest


@pytest.fixture(autouse=True)
def _reset_package_logger(monkeypatch):
    """main() configures the `unpushed` logger; keep tests independent of each other."""
    monkeypatch.delenv("UNPUSHED_LOG", raising=False)
    log = logging.getLogger("unpushed")
    handlers, level = list(log.handlers), log.level
    yield
    log.handlers[:] = handlers
    log.setLevel(level)
