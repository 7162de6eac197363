"""Exceptions raised by the tracing engine."""


class StackToTraceError(Exception):
    pass


class ConfigError(StackToTraceError, ValueError):
    pass


class InvalidProfileError(StackToTraceError, ValueError):
    """A call-graph profile cannot be reconstructed; nothing was emitted."""

    def __init__(self, reason: str, node_id=None):
        self.reason = reason
        self.node_id = node_id
        message = f"invalid profile: {reason}"
        if node_id is not None:
            message += f" (node {node_id})"
        super().__init__(message)


class SpanExportError(StackToTraceError):
    """
    One or more exporters failed to take a closed span.

    The spans are closed regardless; ``failures`` holds ``(span, exception)``
    pairs in closing order.
    """

    def __init__(self, failures):
        self.failures = list(failures)
        names = ", ".join(span.name for span, _ in self.failures)
        super().__init__(f"failed to export {len(self.failures)} span(s): {names}")
