"""Shared fixtures for the unit tests."""

import pytest

from stack_to_trace.context_table import ContextTable
from stack_to_trace.emitter import SpanEmitter
from stack_to_trace.exporters.memory import InMemorySpanExporter


class FakeClock:
    """Integer clock that only moves when advanced."""

    def __init__(self, start: int = 1_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, delta: int = 1):
        self.now += delta
        return self.now


class FailingExporter:
    def __init__(self, exc=RuntimeError("backend unavailable")):
        self.exc = exc
        self.calls = 0

    def export(self, span):
        self.calls += 1
        raise self.exc

    def shutdown(self):
        pass


@pytest.fixture
def exporter():
    return InMemorySpanExporter()


@pytest.fixture
def emitter(exporter):
    return SpanEmitter([exporter])


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def table(emitter, clock):
    return ContextTable(emitter, clock=clock)


@pytest.fixture
def v8_profile():
    """
    main -> fn1 -> fn2 and main -> fn2 -> fn1 under a ``(root)`` node,
    sampled four times (startTime and deltas in microseconds).
    """
    return {
        "nodes": [
            {"id": 1, "callFrame": {"functionName": "(root)"}, "children": [2, 7]},
            {"id": 2, "callFrame": {"functionName": "main"}, "children": [3, 5]},
            {"id": 3, "callFrame": {"functionName": "fn1"}, "children": [4]},
            {"id": 4, "callFrame": {"functionName": "fn2"}, "children": []},
            {"id": 5, "callFrame": {"functionName": "fn2"}, "children": [6]},
            {"id": 6, "callFrame": {"functionName": "fn1"}, "children": []},
            {"id": 7, "callFrame": {"functionName": "(idle)"}, "children": []},
        ],
        "startTime": 7_000,
        "endTime": 12_000,
        "samples": [2, 4, 6, 2, 7],
        "timeDeltas": [500, 1_600, 200, 1_400, 300],
    }
