"""Tests for diagnostic logger functionality"""

import json
import logging

import pytest

from cluster_harness.diagnostic_logger import LOG_FORMAT, DiagnosticLogger, configure_logging


class TestDiagnosticLogger:
    """Test suite for DiagnosticLogger class"""

    def test_diagnostic_logger_initialization(self):
        logger = DiagnosticLogger()

        assert logger.start_time is not None
        assert logger.errors == []
        assert logger.warnings == []
        assert logger.successes == []

    def test_log_with_context(self):
        logger = DiagnosticLogger()
        context = {"cluster": "test/aerocluster", "verb": "create"}
        logger.log_error("create test/aerocluster", context)

        assert logger.errors[0]["error"] == "create test/aerocluster"
        assert logger.errors[0]["context"] == context

    def test_log_different_levels(self, caplog):
        logger = DiagnosticLogger()

        with caplog.at_level(logging.INFO, logger="harness"):
            logger.log_error("Error message", {})
            logger.log_warning("Warning message", {"pod": "p0"})
            logger.log_success("Success message")

        assert "ERROR: Error message" in caplog.text
        assert "WARNING: Warning message" in caplog.text
        assert "SUCCESS: Success message" in caplog.text
        assert logger.warnings[0]["context"] == {"pod": "p0"}
        assert logger.successes[0]["context"] == {}


class TestReport:
    def test_report_without_path(self):
        logger = DiagnosticLogger()
        logger.log_success("ok")
        report = logger.generate_report()
        assert report["total_successes"] == 1
        assert report["total_errors"] == 0

    def test_report_written_as_json(self, tmp_path):
        logger = DiagnosticLogger()
        logger.log_error("delete test/x", {"cluster": "test/x"})
        path = tmp_path / "report.json"

        logger.generate_report(str(path))

        saved = json.loads(path.read_text())
        assert saved["total_errors"] == 1
        assert saved["errors"][0]["context"] == {"cluster": "test/x"}


@pytest.fixture
def harness_logger():
    logger = logging.getLogger("harness")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in saved[0]:
        logger.addHandler(handler)
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


def test_configure_logging(harness_logger, tmp_path):
    log_file = tmp_path / "harness.log"
    configure_logging("debug", str(log_file))

    assert harness_logger.level == logging.DEBUG
    assert len(harness_logger.handlers) == 2
    assert all(h.formatter._fmt == LOG_FORMAT for h in harness_logger.handlers)

    logging.getLogger("harness.poller").info("tick")
    for handler in harness_logger.handlers:
        handler.flush()
    assert "harness.poller - INFO - tick" in log_file.read_text()


def test_configure_logging_replaces_handlers(harness_logger):
    configure_logging()
    configure_logging()
    assert len(harness_logger.handlers) == 1
