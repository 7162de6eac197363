"""
Hand closed spans to the trace backend.

Every closed span goes to every exporter exactly once, in closing order.
There is no retry here; an exporter failure is raised to the caller and the
span stays closed.
"""

import logging
import threading
from typing import Iterable, List, Protocol

from .errors import SpanExportError
from .model import Span

logger = logging.getLogger(__name__)


class SpanExporter(Protocol):
    def export(self, span: Span) -> None: ...

    def shutdown(self) -> None: ...


class SpanEmitter:
    def __init__(self, exporters: Iterable[SpanExporter] = ()):
        self.exporters: List[SpanExporter] = list(exporters)
        self.closed_count = 0
        self._lock = threading.Lock()

    def add_exporter(self, exporter: SpanExporter):
        self.exporters.append(exporter)

    def on_span_closed(self, span: Span):
        if span.end_time is None:
            raise ValueError(f"span {span.name!r} is still open")
        failures = []
        with self._lock:
            self.closed_count += 1
            for exporter in self.exporters:
                try:
                    exporter.export(span)
                except Exception as exc:
                    logger.warning("exporter %r failed on span %r: %s", exporter, span.name, exc)
                    failures.append((span, exc))
        if failures:
            raise SpanExportError(failures)

    def shutdown(self):
        for exporter in self.exporters:
            exporter.shutdown()
