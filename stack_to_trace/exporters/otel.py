"""
Replay reconstructed spans into OpenTelemetry.

Spans from the sampler only become known when they close, children before
parents. An OpenTelemetry span is therefore started lazily, with the
original start time, the first time it or one of its children closes; it is
ended with the original end time when it closes itself.
"""

import logging
from typing import Dict, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

from ..config import TracerConfig
from ..model import Span

logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "stack-to-trace"


def _attribute_value(value):
    if isinstance(value, (str, bool, int, float)):
        return value
    return str(value)


class OpenTelemetrySpanExporter:
    def __init__(self, tracer: trace.Tracer = None, tracer_provider: TracerProvider = None):
        if tracer is None:
            tracer = trace.get_tracer(INSTRUMENTATION_NAME, tracer_provider=tracer_provider)
        self.tracer = tracer
        self._started: Dict[str, trace.Span] = {}

    def _start(self, span: Span) -> trace.Span:
        otel_span = self._started.get(span.span_id)
        if otel_span is not None:
            return otel_span
        context = None
        if span.parent is not None:
            context = trace.set_span_in_context(self._start(span.parent))
        otel_span = self.tracer.start_span(
            span.name,
            context=context,
            start_time=int(span.start_time),
            attributes={
                "code.function": span.name,
                "stack.depth": span.depth,
                "stack.context": _attribute_value(span.context_id),
            },
        )
        self._started[span.span_id] = otel_span
        return otel_span

    def export(self, span: Span):
        otel_span = self._start(span)
        del self._started[span.span_id]
        for key, value in span.attributes.items():
            otel_span.set_attribute(key, _attribute_value(value))
        if span.status_code:
            otel_span.set_status(Status(StatusCode.ERROR, span.attributes.get("exception")))
        else:
            otel_span.set_status(Status(StatusCode.OK))
        otel_span.end(end_time=int(span.end_time))

    def shutdown(self):
        if self._started:
            logger.warning("%d parent span(s) never closed", len(self._started))
        self._started.clear()


def configure_tracer_provider(
    endpoint: str,
    headers: Optional[Dict[str, str]] = None,
    service_name: str = INSTRUMENTATION_NAME,
    service_version: str = None,
    resource_attributes: dict = None,
) -> TracerProvider:
    """
    Build a TracerProvider that batches spans to an OTLP/HTTP endpoint.

    ``endpoint`` is the full traces URL, e.g. ``https://collector:4318/v1/traces``.
    """
    attributes = {SERVICE_NAME: service_name}
    if service_version:
        attributes[SERVICE_VERSION] = service_version
    if resource_attributes:
        attributes.update(resource_attributes)
    provider = TracerProvider(resource=Resource.create(attributes))
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=endpoint, headers=headers or {}),
            max_queue_size=1000,
            schedule_delay_millis=1000,
        )
    )
    logger.info("exporting spans for %s to %s", service_name, endpoint)
    return provider


def tracer_provider_for(
    config: TracerConfig,
    endpoint: str,
    headers: Optional[Dict[str, str]] = None,
    service_version: str = None,
) -> TracerProvider:
    """configure_tracer_provider with the service name and resource attributes of ``config``."""
    return configure_tracer_provider(
        endpoint,
        headers=headers,
        service_name=config.service_name,
        service_version=service_version,
        resource_attributes=config.resource_attributes,
    )
