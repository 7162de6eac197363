"""
Property-based tests for the stack differ.

Validates event counts and ordering for arbitrary stack pairs, idempotence,
and that replaying the events over the previous stack yields the current one.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from stack_to_trace.differ import common_prefix_length, diff
from stack_to_trace.model import EventKind
from tests.strategies import stacks


@given(stacks(), stacks(), st.integers())
@settings(max_examples=200)
def test_property_event_counts_and_order(prev, curr, ts):
    """
    ``len(prev) - common`` ENDs in strictly descending depth, followed by
    ``len(curr) - common`` STARTs in strictly ascending depth.
    """
    common = common_prefix_length(prev, curr)
    events = diff(prev, curr, ts)

    ends = [e for e in events if e.kind is EventKind.END]
    starts = [e for e in events if e.kind is EventKind.START]
    assert len(ends) == len(prev) - common
    assert len(starts) == len(curr) - common
    assert events == ends + starts

    assert [e.depth for e in ends] == list(range(len(prev) - 1, common - 1, -1))
    assert [e.depth for e in starts] == list(range(common, len(curr)))
    assert all(e.timestamp == ts for e in events)
    assert all(e.name == prev[e.depth] for e in ends)
    assert all(e.name == curr[e.depth] for e in starts)


@given(stacks(), st.integers())
def test_property_identical_stacks_emit_nothing(stack, ts):
    assert diff(stack, stack, ts) == []


@given(stacks(), stacks())
def test_property_applying_events_rebuilds_current_stack(prev, curr):
    stack = list(prev)
    for event in diff(prev, curr, 0):
        if event.kind is EventKind.END:
            assert stack[-1] == event.name
            stack.pop()
        else:
            assert len(stack) == event.depth
            stack.append(event.name)
    assert tuple(stack) == curr
