"""Unit tests for structured logging, trace context and metrics."""

import logging
import sys

from bson import ObjectId
import orjson

from diagram_store.observability import (
    REPOSITORY_OPERATIONS,
    JsonFormatter,
    bound_context,
    configure_logging,
    get_metrics,
    get_trace_context,
    set_trace_context,
)


def _record(message: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("diagram_store.adapters.mongo_repository", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_includes_trace_ids(self):
        set_trace_context("a" * 32, "b" * 16)

        with bound_context(collection="Workflow"):
            entry = orjson.loads(JsonFormatter().format(_record()))

        assert entry["trace_id"] == "a" * 32
        assert entry["span_id"] == "b" * 16
        assert entry["collection"] == "Workflow"
        assert entry["component"] == "mongo_repository"
        assert entry["level"] == "INFO"

    def test_redacts_secrets_in_extras(self):
        entry = orjson.loads(JsonFormatter().format(_record(password="hunter2", uri="mongodb://u:p@h")))
        assert entry["password"] == "[REDACTED]"
        assert entry["uri"] == "[REDACTED]"

    def test_serializes_driver_types(self):
        identifier = ObjectId()
        entry = orjson.loads(JsonFormatter().format(_record(document_id=identifier, key=("a", 1))))
        assert entry["document_id"] == str(identifier)
        assert entry["key"] == ["a", 1]

    def test_truncates_long_messages(self):
        entry = orjson.loads(JsonFormatter().format(_record("x" * 5000)))
        assert len(entry["message"]) == JsonFormatter.MAX_MESSAGE_LEN + 3

    def test_includes_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()
        entry = orjson.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in entry["exception"]


class TestTraceContext:
    def test_bound_context_is_reset_on_exit(self):
        set_trace_context("c" * 32, "d" * 16)

        with bound_context(collection="Slots"):
            assert get_trace_context()["collection"] == "Slots"
            assert get_trace_context()["trace_id"] == "c" * 32

        assert "collection" not in get_trace_context()
        assert get_trace_context()["trace_id"] == "c" * 32

    def test_generates_context_when_missing(self):
        set_trace_context("", "")
        ctx = get_trace_context()
        assert len(ctx["trace_id"]) == 32
        assert len(ctx["span_id"]) == 16


class TestConfigureLogging:
    def test_quiets_driver_loggers(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging("debug", json_output=False, logger_levels={"diagram_store": "error"})
            assert root.level == logging.DEBUG
            assert logging.getLogger("pymongo").level == logging.WARNING
            assert logging.getLogger("diagram_store").level == logging.ERROR
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
            logging.getLogger("diagram_store").setLevel(logging.NOTSET)


class TestMetrics:
    def test_repository_counter_exposed(self):
        REPOSITORY_OPERATIONS.labels(collection="MetricsTest", operation="read", status="ok").inc()
        assert b'repository_operations_total{collection="MetricsTest",operation="read",status="ok"}' in get_metrics()
