"""OpenTelemetry tracing + structured logging for the discovery pipeline.

The gateway, the search index and the sync orchestrator each hold a
``Telemetry`` instance. Production code passes nothing and gets
``Telemetry.noop()``; tests use ``Telemetry.for_testing()`` and assert on
the finished spans. Span helpers never raise into callers.

Span names in use: ``catalog.query``, ``catalog.filter_options``,
``search.rebuild``, ``sync.trigger``, ``sync.complete``.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Generator, Mapping

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

LOGGER_NAME = "hackdex"
NO_TRACE_ID = "0" * 32
NO_SPAN_ID = "0" * 16


class _Span:
    """Span wrapper whose setters ignore OTel errors."""

    def __init__(self, span: object) -> None:
        self._span = span

    def set_attribute(self, key: str, value: object) -> None:
        try:
            self._span.set_attribute(key, value)  # type: ignore[attr-defined]
        except Exception:
            pass

    def set_attributes(self, attributes: Mapping[str, Any]) -> None:
        for key, value in attributes.items():
            self.set_attribute(key, value)

    def record_exception(self, exc: BaseException) -> None:
        try:
            self._span.record_exception(exc)  # type: ignore[attr-defined]
        except Exception:
            pass


def _current_ids() -> tuple[str, str] | None:
    ctx = trace.get_current_span().get_span_context()
    if not ctx.is_valid:
        return None
    return format(ctx.trace_id, "032x"), format(ctx.span_id, "016x")


class _OtelLogAdapter(logging.LoggerAdapter):
    """Adds ``trace_id``/``span_id`` of the active span to each record."""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:  # type: ignore[override]
        extra = kwargs.get("extra", {})
        ids = _current_ids()
        if ids is not None:
            extra["trace_id"], extra["span_id"] = ids
        kwargs["extra"] = extra
        return msg, kwargs


class Telemetry:
    """OTel facade: a span() context manager plus a trace-aware logger."""

    def __init__(self, tracer: object) -> None:
        self._tracer = tracer
        self.log: _OtelLogAdapter = _OtelLogAdapter(logging.getLogger(LOGGER_NAME), {})

    @contextmanager
    def span(
        self, name: str, attributes: Mapping[str, Any] | None = None
    ) -> Generator[_Span, None, None]:
        """Open a span named *name*, optionally pre-populated with *attributes*.

        Yields:
            _Span wrapper for setting attributes and recording exceptions.
        """
        with self._tracer.start_as_current_span(name) as otel_span:  # type: ignore[attr-defined]
            span = _Span(otel_span)
            if attributes:
                span.set_attributes(attributes)
            yield span

    @classmethod
    def for_testing(cls) -> tuple["Telemetry", InMemorySpanExporter]:
        """Telemetry that records finished spans in memory.

        Returns:
            ``(Telemetry, InMemorySpanExporter)``; read spans back with
            ``exporter.get_finished_spans()``.
        """
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        return cls(provider.get_tracer(LOGGER_NAME)), exporter

    @classmethod
    def noop(cls) -> "Telemetry":
        """Telemetry whose spans are discarded."""
        return cls(TracerProvider().get_tracer(LOGGER_NAME))


# ---------------------------------------------------------------------------
# File logging
# ---------------------------------------------------------------------------


class _DefaultsFilter(logging.Filter):
    """Fill trace_id and span_id on records logged outside any span."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "trace_id"):
            record.trace_id = NO_TRACE_ID  # type: ignore[attr-defined]
        if not hasattr(record, "span_id"):
            record.span_id = NO_SPAN_ID  # type: ignore[attr-defined]
        return True


class _JsonFormatter(logging.Formatter):
    """One JSON object per line: ``ts``, ``level``, ``logger``, ``trace``, ``span``, ``msg``."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "trace": getattr(record, "trace_id", NO_TRACE_ID),
            "span": getattr(record, "span_id", NO_SPAN_ID),
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_file_logging(log_dir: str | Path = "logs", level: int = logging.DEBUG) -> Path:
    """Send the ``hackdex`` logger tree to ``{log_dir}/hackdex-YYYYMMDD.log`` as JSON lines.

    Calling it again does not add a second handler.

    Returns:
        Path of the log file.
    """
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / f"hackdex-{datetime.now().strftime('%Y%m%d')}.log"

    logger = logging.getLogger(LOGGER_NAME)
    if any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        return log_path

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(level)
    handler.addFilter(_DefaultsFilter())
    handler.setFormatter(_JsonFormatter())

    logger.setLevel(level)
    logger.addHandler(handler)
    return log_path
