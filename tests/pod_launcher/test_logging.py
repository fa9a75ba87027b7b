"""Tests for logging helpers and formatters."""

import json
import logging

from pod_launcher.common.exceptions import ConfigurationError
from pod_launcher.common.logging import (
    ConsoleFormatter,
    JSONFormatter,
    LoggedClass,
    log_exception,
    log_with_context,
    setup_logging,
)


def make_record(msg="Pod created", **extra):
    record = logging.LogRecord(
        "pod_launcher.executor", logging.INFO, __file__, 1, msg, (), None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    def test_json_formatter_merges_extra(self):
        line = JSONFormatter().format(make_record(build_id=15, http_status=201))

        entry = json.loads(line)
        assert entry["message"] == "Pod created"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "pod_launcher.executor"
        assert entry["build_id"] == 15
        assert entry["http_status"] == 201

    def test_console_formatter_appends_context(self):
        line = ConsoleFormatter().format(make_record(build_id=15))

        assert "Pod created" in line
        assert line.endswith("| build_id=15")

    def test_console_formatter_without_context(self):
        line = ConsoleFormatter().format(make_record())

        assert "|" not in line.split(" - ")[-1]


class TestLogHelpers:
    def test_log_with_context(self, caplog):
        logger = logging.getLogger("pod_launcher.test")
        with caplog.at_level(logging.INFO, logger="pod_launcher.test"):
            log_with_context(logger, logging.INFO, "Pod deleted", build_id=7)

        assert caplog.records[0].build_id == 7

    def test_log_exception_adds_category(self, caplog):
        logger = logging.getLogger("pod_launcher.test")
        with caplog.at_level(logging.ERROR, logger="pod_launcher.test"):
            log_exception(
                logger, ConfigurationError("bad option"), "start failed",
                include_traceback=False,
            )

        record = caplog.records[0]
        assert record.error_category == "permanent"
        assert record.error_type == "ConfigurationError"
        assert record.error_message == "bad option"
        assert record.exc_info is None

    def test_log_exception_truncates_long_messages(self, caplog):
        logger = logging.getLogger("pod_launcher.test")
        with caplog.at_level(logging.ERROR, logger="pod_launcher.test"):
            log_exception(logger, ValueError("x" * 600), "boom")

        record = caplog.records[0]
        assert len(record.error_message) == 503
        assert record.exc_info is not None


class TestLoggedClass:
    def test_logger_name_and_context(self, caplog):
        class Worker(LoggedClass):
            log_component = "worker"

            def __init__(self):
                self.circuit_name = "kubernetes"
                self.jobs_namespace = None
                super().__init__()

        worker = Worker()
        assert worker._logger.name == f"{__name__}.worker"

        with caplog.at_level(logging.INFO, logger=worker._logger.name):
            worker._log(logging.INFO, "hello", build_id=1)

        record = caplog.records[0]
        assert record.circuit_name == "kubernetes"
        assert record.build_id == 1
        assert not hasattr(record, "jobs_namespace")


def test_setup_logging_installs_single_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging(level=logging.DEBUG, json_format=True)
        setup_logging(level=logging.DEBUG, json_format=True)

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert logging.getLogger("aiohttp").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
