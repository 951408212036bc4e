"""
Structured logger levels and status routing.
"""

import logging

import pytest

from clap_search.util.logging import StructuredLogger


def test_default_level_is_info(monkeypatch):
    monkeypatch.delenv("DEBUG", raising=False)
    log = StructuredLogger(name="clap_search.tests.info")
    assert log.logger.level == logging.INFO


def test_debug_env_enables_debug_level(monkeypatch):
    monkeypatch.setenv("DEBUG", "true")
    log = StructuredLogger(name="clap_search.tests.debug")
    assert log.logger.level == logging.DEBUG


def test_failed_status_logs_warning(caplog):
    log = StructuredLogger(name="clap_search.tests.status")
    with caplog.at_level(logging.INFO, logger="clap_search.tests.status"):
        log.log_store_operation("clear", "samples", {"reason": "open handle"}, status="blocked")
        log.log_store_operation("initialize", "samples")

    levels = [record.levelno for record in caplog.records]
    assert levels == [logging.WARNING, logging.INFO]
    assert "Operation: store.clear, Status: blocked" in caplog.records[0].getMessage()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
