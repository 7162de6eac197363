"""Unit tests for the span emitter."""

import pytest

from stack_to_trace.emitter import SpanEmitter
from stack_to_trace.errors import SpanExportError
from stack_to_trace.exporters.memory import InMemorySpanExporter
from stack_to_trace.model import Span
from tests.conftest import FailingExporter


def _closed(name, start=1, end=2):
    span = Span(name, start)
    span.close(end)
    return span


def test_hands_each_span_to_every_exporter_once_in_order():
    first, second = InMemorySpanExporter(), InMemorySpanExporter()
    emitter = SpanEmitter([first, second])

    for name in ("a", "b", "c"):
        emitter.on_span_closed(_closed(name))

    assert first.names() == ["a", "b", "c"]
    assert second.names() == ["a", "b", "c"]
    assert emitter.closed_count == 3


def test_rejects_open_spans():
    emitter = SpanEmitter([InMemorySpanExporter()])

    with pytest.raises(ValueError):
        emitter.on_span_closed(Span("open", 1))


def test_export_failure_is_surfaced_without_retry():
    bad = FailingExporter()
    good = InMemorySpanExporter()
    emitter = SpanEmitter([bad, good])
    span = _closed("a")

    with pytest.raises(SpanExportError) as excinfo:
        emitter.on_span_closed(span)

    assert bad.calls == 1
    assert good.spans == [span]
    assert excinfo.value.failures[0][0] is span
    assert isinstance(excinfo.value.failures[0][1], RuntimeError)
    assert not span.is_open


def test_add_exporter_and_shutdown():
    class Recording(InMemorySpanExporter):
        shut = False

        def shutdown(self):
            self.shut = True

    emitter = SpanEmitter()
    exporter = Recording()
    emitter.add_exporter(exporter)
    emitter.on_span_closed(_closed("a"))
    emitter.shutdown()

    assert exporter.names() == ["a"]
    assert exporter.shut
