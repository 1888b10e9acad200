"""Tests for the Telemetry facade and JSON-lines file logging."""

from __future__ import annotations

import json
import logging

import pytest

from hackdex.telemetry import LOGGER_NAME, NO_TRACE_ID, Telemetry, configure_file_logging


@pytest.fixture
def clean_logger():
    logger = logging.getLogger(LOGGER_NAME)
    saved = list(logger.handlers), logger.level
    yield logger
    for handler in logger.handlers:
        if handler not in saved[0]:
            handler.close()
    logger.handlers, logger.level = saved[0], saved[1]


class TestSpans:
    def test_initial_attributes(self):
        telemetry, exporter = Telemetry.for_testing()
        with telemetry.span("catalog.query", {"query.limit": 50}) as span:
            span.set_attribute("query.row_count", 3)
        (finished,) = exporter.get_finished_spans()
        assert finished.name == "catalog.query"
        assert finished.attributes["query.limit"] == 50
        assert finished.attributes["query.row_count"] == 3

    def test_exception_recorded_and_propagated(self):
        telemetry, exporter = Telemetry.for_testing()
        with pytest.raises(ValueError):
            with telemetry.span("sync.trigger") as span:
                span.record_exception(ValueError("x"))
                raise ValueError("x")
        assert exporter.get_finished_spans()[0].events

    def test_noop_spans_usable(self):
        with Telemetry.noop().span("search.rebuild") as span:
            span.set_attributes({"search.documents": 1})


class TestFileLogging:
    def test_json_lines_written(self, tmp_path, clean_logger):
        path = configure_file_logging(tmp_path / "logs")
        logging.getLogger(f"{LOGGER_NAME}.gateway").info("catalog query rows=%d", 4)
        for handler in clean_logger.handlers:
            handler.flush()
        record = json.loads(path.read_text(encoding="utf-8").splitlines()[-1])
        assert record["msg"] == "catalog query rows=4"
        assert record["logger"] == "hackdex.gateway"
        assert record["trace"] == NO_TRACE_ID

    def test_trace_ids_inside_span(self, tmp_path, clean_logger):
        path = configure_file_logging(tmp_path)
        telemetry, _ = Telemetry.for_testing()
        with telemetry.span("catalog.query"):
            telemetry.log.info("inside")
        for handler in clean_logger.handlers:
            handler.flush()
        record = json.loads(path.read_text(encoding="utf-8").splitlines()[-1])
        assert record["trace"] != NO_TRACE_ID

    def test_second_call_adds_no_handler(self, tmp_path, clean_logger):
        configure_file_logging(tmp_path)
        count = len(clean_logger.handlers)
        configure_file_logging(tmp_path)
        assert len(clean_logger.handlers) == count
