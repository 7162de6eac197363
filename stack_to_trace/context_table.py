"""
Per-execution-context span bookkeeping.

Each context owns the last stack sampled for it and a depth -> Span table of
the spans still open. Contexts are created lazily on their first sample and
get a stable integer handle that is never reused.
"""

import itertools
import logging
import threading
import time
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Sequence

from .differ import diff
from .emitter import SpanEmitter
from .errors import SpanExportError
from .model import EventKind, ExecutionContext, Span, TraceEvent

logger = logging.getLogger(__name__)


class ContextTable:
    def __init__(self, emitter: SpanEmitter, clock: Callable[[], float] = time.time_ns):
        self.emitter = emitter
        self.clock = clock
        self._contexts: Dict[Hashable, ExecutionContext] = {}
        self._handles = itertools.count(1)
        self._lock = threading.RLock()

    def __len__(self):
        return len(self._contexts)

    def __contains__(self, context_id):
        return context_id in self._contexts

    def contexts(self) -> List[Hashable]:
        return list(self._contexts)

    def get(self, context_id: Hashable) -> Optional[ExecutionContext]:
        return self._contexts.get(context_id)

    def open_spans(self, context_id: Hashable) -> Dict[int, Span]:
        ctx = self._contexts.get(context_id)
        return dict(ctx.open_spans) if ctx else {}

    def _context(self, context_id: Hashable) -> ExecutionContext:
        ctx = self._contexts.get(context_id)
        if ctx is None:
            ctx = ExecutionContext(context_id, next(self._handles))
            self._contexts[context_id] = ctx
            logger.debug("new execution context %r (handle %d)", context_id, ctx.handle)
        return ctx

    def record_sample(self, context_id: Hashable, stack: Sequence[str], timestamp):
        """Diff ``stack`` against the context's last stack and apply the events."""
        stack = tuple(stack)
        with self._lock:
            ctx = self._context(context_id)
            events = diff(ctx.last_stack, stack, timestamp)
            ctx.last_stack = stack
            self.apply(context_id, events)

    def apply(self, context_id: Hashable, events: Iterable[TraceEvent]):
        closed = []
        with self._lock:
            ctx = self._context(context_id)
            for event in events:
                if event.kind is EventKind.START:
                    stale = ctx.open_spans.pop(event.depth, None)
                    if stale is not None:
                        stale.close(event.timestamp)
                        closed.append(stale)
                    ctx.open_spans[event.depth] = Span(
                        event.name,
                        event.timestamp,
                        parent=ctx.open_spans.get(event.depth - 1),
                        context_id=context_id,
                        depth=event.depth,
                    )
                else:
                    span = ctx.open_spans.get(event.depth)
                    if span is None or span.name != event.name:
                        logger.debug(
                            "no open span %r at depth %d in context %r",
                            event.name, event.depth, context_id,
                        )
                        continue
                    del ctx.open_spans[event.depth]
                    span.close(event.timestamp)
                    closed.append(span)
        self._emit(closed)

    def teardown(self, context_id: Hashable, timestamp=None):
        """Force-close every open span of the context and forget it."""
        with self._lock:
            ctx = self._contexts.pop(context_id, None)
            if ctx is None:
                return
            if timestamp is None:
                timestamp = self.clock()
            closed = []
            for depth in sorted(ctx.open_spans, reverse=True):
                span = ctx.open_spans.pop(depth)
                span.close(timestamp)
                closed.append(span)
            logger.debug("tore down context %r, closed %d span(s)", context_id, len(closed))
        self._emit(closed)

    def flush_all(self, timestamp=None):
        if timestamp is None:
            timestamp = self.clock()
        failures = []
        for context_id in self.contexts():
            try:
                self.teardown(context_id, timestamp)
            except SpanExportError as exc:
                failures.extend(exc.failures)
        if failures:
            raise SpanExportError(failures)

    def _emit(self, closed: List[Span]):
        failures = []
        for span in closed:
            try:
                self.emitter.on_span_closed(span)
            except SpanExportError as exc:
                failures.extend(exc.failures)
        if failures:
            raise SpanExportError(failures)
