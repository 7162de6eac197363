"""
Common-prefix stack diffing.

Given the previous and current stack of one context (both filtered, outer to
inner), infer which frames returned and which were entered since the last
sample. Frames are compared by name at matching depth, so two adjacent
invocations of the same function (direct recursion, or a call that returned
and was re-entered between samples) look like one continuing invocation.
"""

from typing import Iterable, List, Sequence

from .model import EventKind, Sample, TraceEvent


def common_prefix_length(prev: Sequence[str], curr: Sequence[str]) -> int:
    common_len = 0
    limit = min(len(prev), len(curr))
    while common_len < limit and prev[common_len] == curr[common_len]:
        common_len += 1
    return common_len


def diff(prev: Sequence[str], curr: Sequence[str], timestamp) -> List[TraceEvent]:
    """
    Return the END events (innermost first) followed by the START events
    (outermost first) that turn ``prev`` into ``curr``.

    All events carry ``timestamp``, the time of the newer sample.
    """
    common_len = common_prefix_length(prev, curr)
    events = []
    for depth in range(len(prev) - 1, common_len - 1, -1):
        events.append(TraceEvent(EventKind.END, timestamp, prev[depth], depth))
    for depth in range(common_len, len(curr)):
        events.append(TraceEvent(EventKind.START, timestamp, curr[depth], depth))
    return events


def convert_samples_to_events(samples: Iterable[Sample]) -> List[TraceEvent]:
    """Diff a whole sample sequence, starting from an empty stack."""
    events = []
    prev = ()
    for sample in samples:
        events.extend(diff(prev, sample.stack, sample.timestamp))
        prev = sample.stack
    return events
