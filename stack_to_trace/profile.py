"""
Rebuild a linear per-tick sample sequence from a compressed call-graph profile.

The input is the shape V8 writes to ``.cpuprofile`` files: a tree of nodes,
one leaf node id per tick in ``samples`` and the microseconds elapsed since
the previous tick in ``timeDeltas``. Batch mode has no real concurrency, so
every sample is attributed to one synthetic execution context.
"""

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .context_table import ContextTable
from .errors import InvalidProfileError, SpanExportError
from .frames import PROFILE_EXCLUDE_PATTERNS, FrameFilter
from .model import CallGraphNode, CallGraphProfile, Sample

logger = logging.getLogger(__name__)

PROFILE_CONTEXT_ID = "profile"
ANONYMOUS = "(anonymous)"


def _node_name(raw: Mapping[str, Any]) -> str:
    if "frameName" in raw:
        name = raw["frameName"]
    else:
        call_frame = raw.get("callFrame") or {}
        name = call_frame.get("functionName")
    return name or ANONYMOUS


def parse_profile(data: Mapping[str, Any]) -> CallGraphProfile:
    """
    Convert a decoded profile document into a CallGraphProfile.

    Accepts a bare V8 profile, one wrapped as ``{"profile": {...}}``, and nodes
    written either with ``callFrame.functionName`` or a flat ``frameName``.
    Children may be node ids or nested node objects; nested nodes are
    flattened in depth-first order.
    """
    if not isinstance(data, Mapping):
        raise InvalidProfileError("profile is not an object")
    if "nodes" not in data and isinstance(data.get("profile"), Mapping):
        data = data["profile"]

    raw_nodes = data.get("nodes")
    if not isinstance(raw_nodes, list) or not raw_nodes:
        raise InvalidProfileError("missing or empty nodes")

    nodes = []
    pending = list(reversed(raw_nodes))
    while pending:
        raw = pending.pop()
        if not isinstance(raw, Mapping) or "id" not in raw:
            raise InvalidProfileError("node without an id")
        children = []
        nested = []
        try:
            for child in raw.get("children") or ():
                if isinstance(child, Mapping):
                    nested.append(child)
                    child = child.get("id")
                children.append(int(child))
            nodes.append(CallGraphNode(int(raw["id"]), _node_name(raw), tuple(children)))
        except (TypeError, ValueError):
            raise InvalidProfileError("non-integer node id", raw.get("id"))
        pending.extend(reversed(nested))

    samples = data.get("samples") or []
    deltas = data.get("timeDeltas")
    if deltas is None:
        deltas = data.get("time_deltas") or []
    end_time = data.get("endTime", data.get("end_time"))
    try:
        return CallGraphProfile(
            nodes=tuple(nodes),
            samples=tuple(int(s) for s in samples),
            time_deltas=tuple(int(d) for d in deltas),
            start_time=int(data.get("startTime", data.get("start_time", 0)) or 0),
            end_time=None if end_time is None else int(end_time),
        )
    except (TypeError, ValueError) as exc:
        raise InvalidProfileError(f"non-integer samples, time deltas or end time: {exc}")


def load_profile(path: str) -> CallGraphProfile:
    with open(path, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise InvalidProfileError(f"not valid JSON: {exc}")
    return parse_profile(data)


def _parent_map(profile: CallGraphProfile) -> Dict[int, Optional[int]]:
    """Validate the tree and map every node id to its parent id."""
    by_id: Dict[int, CallGraphNode] = {}
    for node in profile.nodes:
        if node.id in by_id:
            raise InvalidProfileError("duplicate node id", node.id)
        by_id[node.id] = node

    child_ids = set()
    for node in profile.nodes:
        for child in node.children:
            if child not in by_id:
                raise InvalidProfileError("child references unknown node", child)
            child_ids.add(child)
    roots = [node.id for node in profile.nodes if node.id not in child_ids]
    if len(roots) != 1:
        raise InvalidProfileError(f"expected a single root, found {len(roots)}")

    parents: Dict[int, Optional[int]] = {roots[0]: None}
    pending = [roots[0]]
    while pending:
        node_id = pending.pop()
        for child in by_id[node_id].children:
            if child in parents:
                raise InvalidProfileError("cycle or shared child in call graph", child)
            parents[child] = node_id
            pending.append(child)
    if len(parents) != len(by_id):
        unreachable = sorted(set(by_id) - set(parents))
        raise InvalidProfileError("node not reachable from root", unreachable[0])
    return parents


def reconstruct(
    profile: CallGraphProfile,
    frame_filter: FrameFilter = None,
    context_id=PROFILE_CONTEXT_ID,
) -> List[Sample]:
    """
    Return one Sample per profile tick, timestamps in nanoseconds.

    Fails as a whole with InvalidProfileError; no partial result is returned.
    """
    if frame_filter is None:
        frame_filter = FrameFilter(PROFILE_EXCLUDE_PATTERNS)
    if len(profile.samples) != len(profile.time_deltas):
        raise InvalidProfileError(
            f"{len(profile.samples)} samples but {len(profile.time_deltas)} time deltas"
        )
    parents = _parent_map(profile)
    names = {node.id: node.frame_name for node in profile.nodes}

    stacks: Dict[int, tuple] = {}
    samples = []
    current_us = profile.start_time
    for leaf, delta in zip(profile.samples, profile.time_deltas):
        if leaf not in names:
            raise InvalidProfileError("sample references unknown node", leaf)
        current_us += delta
        stack = stacks.get(leaf)
        if stack is None:
            path = []
            node_id = leaf
            while node_id is not None:
                path.append(names[node_id])
                node_id = parents[node_id]
            path.reverse()
            stack = stacks[leaf] = frame_filter.filter(path)
        samples.append(Sample(current_us * 1000, context_id, stack))
    logger.debug("reconstructed %d samples from %d nodes", len(samples), len(names))
    return samples


def profile_end_timestamp(profile: CallGraphProfile) -> Optional[int]:
    """The profile's recorded end in nanoseconds, or None when it has none."""
    if profile.end_time is None:
        return None
    return profile.end_time * 1000


def replay(samples: Sequence[Sample], table: ContextTable, end_timestamp=None):
    """
    Feed reconstructed samples through the table and close what is left.

    Leftover spans end at ``end_timestamp``, never before the last sample;
    without one they end at the last sample. Export failures do not stop the
    replay; they are raised together once every sample has been applied.
    """
    failures = []
    last = None
    for sample in samples:
        try:
            table.record_sample(sample.context_id, sample.stack, sample.timestamp)
        except SpanExportError as exc:
            failures.extend(exc.failures)
        last = sample
    if last is None:
        return
    if end_timestamp is None or end_timestamp < last.timestamp:
        end_timestamp = last.timestamp
    for context_id in dict.fromkeys(s.context_id for s in samples):
        try:
            table.teardown(context_id, end_timestamp)
        except SpanExportError as exc:
            failures.extend(exc.failures)
    if failures:
        raise SpanExportError(failures)
