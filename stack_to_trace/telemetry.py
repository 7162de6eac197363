"""
Manual span annotation.

Features:
- `ScopedSpan` context manager: opens a span on entry, closes it on every exit path
- `profile_block` context manager for code block spans
- `traced` higher-order wrapper for function-level spans (sync and async)
- `add_tag` to annotate the current span

Manual spans nest through a context-local stack, so concurrent asyncio tasks
and threads each see their own parent chain.
"""

import contextvars
import inspect
import logging
import threading
import time
from contextlib import contextmanager
from functools import wraps

from .emitter import SpanEmitter
from .errors import SpanExportError
from .model import Span

logger = logging.getLogger(__name__)

_span_stack: contextvars.ContextVar = contextvars.ContextVar("stack_to_trace_spans", default=())


def current_span():
    stack = _span_stack.get()
    return stack[-1] if stack else None


class ScopedSpan:
    def __init__(self, emitter: SpanEmitter, name: str, attributes: dict = None, clock=time.time_ns):
        self.emitter = emitter
        self.name = name
        self.attributes = attributes
        self.clock = clock
        self.span = None
        self._token = None

    def __enter__(self) -> Span:
        stack = _span_stack.get()
        parent = stack[-1] if stack else None
        self.span = Span(
            self.name,
            self.clock(),
            parent=parent,
            attributes=self.attributes,
            context_id=threading.get_ident(),
            depth=len(stack),
        )
        self._token = _span_stack.set(stack + (self.span,))
        return self.span

    def __exit__(self, exc_type, exc, tb):
        self.span.close(self.clock())
        if exc is not None:
            self.span.attributes["exception"] = str(exc)
            self.span.status_code = 1
        _span_stack.reset(self._token)
        try:
            self.emitter.on_span_closed(self.span)
        except SpanExportError as export_exc:
            logger.warning("%s", export_exc)
        return False


@contextmanager
def profile_block(emitter: SpanEmitter, name: str, tags: dict = None):
    """Context manager: wrap a code block in a Span."""
    with ScopedSpan(emitter, name, tags) as span:
        yield span


def traced(emitter: SpanEmitter, func, name: str = None, attributes: dict = None):
    """
    Return ``func`` wrapped so every call runs inside a span.

    The wrapper keeps the signature of ``func``; coroutine functions get a
    coroutine wrapper so the span covers the awaited body.
    """
    span_name = name or getattr(func, "__qualname__", None) or getattr(func, "__name__", "anonymous")

    if inspect.iscoroutinefunction(func):

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            with ScopedSpan(emitter, span_name, attributes):
                return await func(*args, **kwargs)

        return async_wrapper

    @wraps(func)
    def wrapper(*args, **kwargs):
        with ScopedSpan(emitter, span_name, attributes):
            return func(*args, **kwargs)

    return wrapper


def add_tag(key: str, value):
    """Add a tag to the current span on the stack."""
    span = current_span()
    if span is not None:
        span.set_attribute(key, value)
