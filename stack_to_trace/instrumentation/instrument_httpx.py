"""
Instrumentation for HTTPX requests to auto-wrap them in spans.

The patched methods look the tracer up on every call, so instrumenting again
with another tracer redirects spans to it.
"""

import time

from ..telemetry import add_tag

_tracer = None


def _tag_response(response, start):
    try:
        status = response.status_code
    except AttributeError:
        status = None
    add_tag("http.status_code", status)
    add_tag("http.latency_ms", int((time.time() - start) * 1000))


def auto_instrument_httpx(tracer):
    """Patch httpx.Client and httpx.AsyncClient so HTTP calls emit spans through ``tracer``."""
    global _tracer
    try:
        import httpx
    except ImportError:
        return False  # httpx not installed, nothing to instrument

    _tracer = tracer

    if not getattr(httpx.Client, "_stack_to_trace_patched", False):
        original_request = httpx.Client.request

        def request_with_span(self, method, url, *args, **kwargs):
            tracer = _tracer
            if tracer is None:
                return original_request(self, method, url, *args, **kwargs)
            start = time.time()
            with tracer.span("httpx.request"):
                add_tag("http.method", method)
                add_tag("http.url", str(url))
                response = original_request(self, method, url, *args, **kwargs)
                _tag_response(response, start)
                return response

        httpx.Client.request = request_with_span
        httpx.Client._stack_to_trace_patched = True
        httpx.Client._stack_to_trace_original = original_request

    if not getattr(httpx.AsyncClient, "_stack_to_trace_patched", False):
        original_async_request = httpx.AsyncClient.request

        async def async_request_with_span(self, method, url, *args, **kwargs):
            tracer = _tracer
            if tracer is None:
                return await original_async_request(self, method, url, *args, **kwargs)
            start = time.time()
            with tracer.span("httpx.request"):
                add_tag("http.method", method)
                add_tag("http.url", str(url))
                response = await original_async_request(self, method, url, *args, **kwargs)
                _tag_response(response, start)
                return response

        httpx.AsyncClient.request = async_request_with_span
        httpx.AsyncClient._stack_to_trace_patched = True
        httpx.AsyncClient._stack_to_trace_original = original_async_request
    return True


def uninstrument_httpx():
    global _tracer
    import httpx

    _tracer = None
    for cls in (httpx.Client, httpx.AsyncClient):
        original = cls.__dict__.get("_stack_to_trace_original")
        if original is not None:
            cls.request = original
            del cls._stack_to_trace_original
            cls._stack_to_trace_patched = False
