"""
tests/test_logging_config.py — Tests for the shared logger setup.
"""

import logging

import pytest

import logging_config
from logging_config import APP_LOGGER_NAME, NOISY_LOGGERS, get_logger


def test_module_loggers_share_namespace():
    assert get_logger("catalog_store").name == "herbario.catalog_store"
    assert get_logger("__main__").name == APP_LOGGER_NAME
    assert get_logger("routes.admin").parent is logging.getLogger(APP_LOGGER_NAME)


def test_noisy_loggers_quieted_outside_debug():
    if logging_config.DEBUG_MODE:
        pytest.skip("DEBUG_MODE keeps third-party loggers verbose")
    for name in NOISY_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING
