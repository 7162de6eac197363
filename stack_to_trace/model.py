"""
Value types shared by the sampling pipeline.

Samples and trace events are immutable; a Span is mutable until it is closed,
after which the emitter owns it.
"""

import enum
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Optional, Tuple


class EventKind(str, enum.Enum):
    START = "START"
    END = "END"


@dataclass(frozen=True)
class RawFrame:
    """A frame descriptor as captured, before noise filtering."""

    name: str
    filename: str = ""


@dataclass(frozen=True)
class Sample:
    """A timestamped snapshot of one execution context's stack, outer to inner."""

    timestamp: float
    context_id: Hashable
    stack: Tuple[str, ...]


@dataclass(frozen=True)
class TraceEvent:
    kind: EventKind
    timestamp: float
    name: str
    depth: int


class Span:
    """
    A reconstructed time interval attributed to one frame.

    ``parent`` is whichever span occupied depth - 1 in the same context when
    this span was opened.
    """

    def __init__(
        self,
        name: str,
        start_time: float,
        parent: "Optional[Span]" = None,
        attributes: dict = None,
        context_id: Hashable = None,
        depth: int = 0,
        trace_id: str = None,
    ):
        self.name = name
        self.attributes = dict(attributes) if attributes else {}
        self.parent = parent
        self.span_id = uuid.uuid4().hex
        if trace_id is None:
            trace_id = parent.trace_id if parent is not None else uuid.uuid4().hex
        self.trace_id = trace_id
        self.start_time = start_time
        self.end_time = None
        self.status_code = 0
        self.events: List[dict] = []
        self.context_id = context_id
        self.depth = depth

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def duration(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    def set_attribute(self, key: str, value: Any):
        self.attributes[key] = value

    def close(self, end_time: float):
        self.end_time = end_time

    def __repr__(self):
        end = "open" if self.end_time is None else self.end_time
        return f"Span({self.name!r}, [{self.start_time}, {end}), depth={self.depth})"


@dataclass
class ExecutionContext:
    """Per-context bookkeeping: the last stack seen and the spans still open."""

    context_id: Hashable
    handle: int
    last_stack: Tuple[str, ...] = ()
    open_spans: Dict[int, Span] = field(default_factory=dict)


@dataclass(frozen=True)
class CallGraphNode:
    id: int
    frame_name: str
    children: Tuple[int, ...] = ()


@dataclass(frozen=True)
class CallGraphProfile:
    """
    A compressed call-graph profile.

    ``samples`` holds the leaf node id of every tick and ``time_deltas`` the
    microseconds elapsed since the previous tick (the first delta is relative
    to ``start_time``). ``end_time``, when the profiler recorded it, is when
    sampling stopped.
    """

    nodes: Tuple[CallGraphNode, ...]
    samples: Tuple[int, ...]
    time_deltas: Tuple[int, ...]
    start_time: int = 0
    end_time: Optional[int] = None
