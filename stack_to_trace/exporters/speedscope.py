#!/usr/bin/env python3
"""
speedscope.py

Reads spans from the SQLite span store and either:

1) Lists all available traces with span count and first-captured timestamp.
2) Exports a single trace to FlameGraph-style folded stacks for Speedscope.

Usage:
  # List available traces:
  python -m stack_to_trace.exporters.speedscope --db telemetry.db --list

  # Export a specific trace:
  python -m stack_to_trace.exporters.speedscope --db telemetry.db --trace TRACE_ID > trace.folded
"""

import argparse
import sys
from datetime import datetime

from .sqlite import list_traces, read_spans

# Attribute appended to repeated span names so siblings stay distinguishable
ATTRIBUTE_KEY_MAP = {
    "httpx.request": "http.url",
}


def load_spans(db_path: str, trace_id: str):
    """
    Load spans for a given trace_id, annotating display names to dedupe and
    append a key attribute value for context.
    """
    rows = read_spans(db_path, trace_id)

    raw_counts: dict[str, int] = {}
    for row in rows:
        raw_counts[row["name"]] = raw_counts.get(row["name"], 0) + 1
    seen_counts: dict[str, int] = {}
    spans: dict[str, dict] = {}
    for row in rows:
        raw_name = row["name"]
        attrs = row["attributes"]
        attr_key = ATTRIBUTE_KEY_MAP.get(raw_name)
        suffix = None
        if attr_key and attr_key in attrs:
            val = attrs.get(attr_key)
            if isinstance(val, (list, tuple)):
                suffix = " ".join(str(x) for x in val)
            else:
                suffix = str(val)
        idx = seen_counts.get(raw_name, 0) + 1
        seen_counts[raw_name] = idx
        if raw_counts[raw_name] > 1 and suffix:
            display_name = f"{raw_name} {suffix}"
        else:
            display_name = raw_name
        spans[row["span_id"]] = {
            "parent": row["parent_span_id"],
            "name": display_name,
            "start": row["start_time"],
            "end": row["end_time"],
        }
    return spans


def build_path(span_id: str, spans: dict):
    path = []
    current = spans.get(span_id)
    while current:
        path.append(current["name"])
        current = spans.get(current["parent"])
    return list(reversed(path))


def folded_lines(spans: dict, min_us: int = 1):
    """
    One ``root;child;...;thisspan <self_us>`` line per span.

    Durations are self time (the span minus its direct children), so summing
    the lines of a path gives back the root's wall time.
    """
    child_time: dict[str, int] = {}
    for info in spans.values():
        parent = info["parent"]
        if parent in spans:
            child_time[parent] = child_time.get(parent, 0) + info["end"] - info["start"]
    lines = []
    for sid, info in spans.items():
        dur = info["end"] - info["start"] - child_time.get(sid, 0)
        if dur < min_us:
            continue
        lines.append(f"{';'.join(build_path(sid, spans))} {dur}")
    return lines


def print_traces(db_path: str):
    print("TRACE_ID\tSPANS\tFIRST_TIMESTAMP")
    for trace_id, count, first_us in list_traces(db_path):
        ts = datetime.fromtimestamp(first_us / 1_000_000).isoformat()
        print(f"{trace_id}\t{count}\t{ts}")


def main():
    p = argparse.ArgumentParser(description="Export or list traces from SQLite spans DB for Speedscope")
    p.add_argument("--db", "-d", required=True, help="Path to telemetry.db")
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--trace", "-t", help="Trace ID to export")
    group.add_argument("--list", action="store_true", help="List all trace IDs, span counts, and first-captured timestamps")
    p.add_argument("--min-us", type=int, default=1, help="Omit spans shorter than this (in μs)")
    args = p.parse_args()

    if args.list:
        print_traces(args.db)
        sys.exit(0)

    spans = load_spans(args.db, args.trace)
    if not spans:
        sys.exit(f"No spans found for trace {args.trace!r}")
    for line in folded_lines(spans, min_us=args.min_us):
        print(line)


if __name__ == "__main__":
    main()
