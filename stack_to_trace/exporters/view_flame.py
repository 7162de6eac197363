#!/usr/bin/env python3
"""
view_flame.py

Aggregate FlameGraph-style folded stacks (``a;b;c <μs>``) into a tree and
render it in the terminal with Rich, with human-friendly time units.
"""

import sys

from rich.console import Console
from rich.tree import Tree


def format_time(us: int) -> str:
    """Convert microseconds to a human-friendly string."""
    if us >= 1_000_000:
        return f"{us / 1_000_000:.2f}s"
    elif us >= 1_000:
        return f"{us / 1_000:.2f}ms"
    else:
        return f"{us}μs"


def _node():
    return {"_time": 0, "children": {}}


def build_tree(folded_lines):
    """Nested dict: frame -> {'_time': inclusive μs, 'children': {...}}."""
    root = _node()
    for line in folded_lines:
        line = line.strip()
        if not line or " " not in line:
            continue
        stack_part, us_part = line.rsplit(" ", 1)
        try:
            dur = int(us_part)
        except ValueError:
            continue
        node = root
        node["_time"] += dur
        for frame in stack_part.split(";"):
            node = node["children"].setdefault(frame, _node())
            node["_time"] += dur
    return root


def render(node, tree: Tree, total_time: int, min_percent: float = 0.0):
    """Add ``node``'s children to ``tree``, heaviest first."""
    for name, child in sorted(node["children"].items(), key=lambda kv: kv[1]["_time"], reverse=True):
        dur = child["_time"]
        pct = dur / total_time * 100 if total_time else 0.0
        if pct < min_percent:
            continue
        branch = tree.add(f"[bold]{name}[/] • {format_time(dur)} ({pct:.1f}%)")
        render(child, branch, total_time, min_percent)


def flame_tree(folded_lines, title: str = "root", min_percent: float = 0.0) -> Tree:
    root = build_tree(folded_lines)
    total = root["_time"]
    tree = Tree(f"[b]{title}[/] • {format_time(total)} (100%)")
    render(root, tree, total, min_percent)
    return tree


def main():
    Console().print(flame_tree(sys.stdin.readlines()))


if __name__ == "__main__":
    main()
