"""
Span instrumentation for service event handlers.

A service registers handlers through ``before(event, entity, handler)``,
``on(...)`` and ``after(...)``; the entity may be omitted, in which case the
handler takes its place. `instrument_service` patches those registration
methods on one service instance so every handler registered afterwards runs
inside a span named ``<phase>:<event>:<entity>``.
"""

import inspect
import logging
from functools import wraps

logger = logging.getLogger(__name__)

PHASES = ("before", "on", "after")


def wrap_handler(tracer, handler, span_name: str):
    """Return ``handler`` wrapped in a span; sync handlers stay sync."""
    attributes = {
        "handler.event": span_name,
        "handler.async": inspect.iscoroutinefunction(handler),
    }
    return tracer.wrap(handler, span_name, attributes)


def _event_label(event):
    if isinstance(event, (list, tuple)):
        return ",".join(str(e) for e in event)
    return str(event)


def _patch_phase(tracer, service, phase):
    original = getattr(service, phase)

    @wraps(original)
    def register(event, entity=None, handler=None, *args, **kwargs):
        if handler is None and callable(entity):
            handler, entity = entity, "*"
        label = entity if isinstance(entity, str) else "handler"
        wrapped = wrap_handler(tracer, handler, f"{phase}:{_event_label(event)}:{label}")
        return original(event, entity, wrapped, *args, **kwargs)

    setattr(service, phase, register)


def instrument_service(tracer, service):
    """Wrap the handler registration methods of ``service``; idempotent."""
    if getattr(service, "_stack_to_trace_patched", False):
        return service
    for phase in PHASES:
        if callable(getattr(service, phase, None)):
            _patch_phase(tracer, service, phase)
    service._stack_to_trace_patched = True
    logger.info("handler tracing installed on service %s", getattr(service, "name", type(service).__name__))
    return service
