"""
Frame filtering: decide which frames are runtime/library noise.

Filtering changes effective depth, so it must run before a stack reaches the
differ. Excluded frames are dropped entirely, never replaced by placeholders.
"""

import re
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple, Union

from .model import RawFrame

DEFAULT_EXCLUDE_PATTERNS = (
    r"^threading\.",
    r"^asyncio\.",
    r"^selectors\.",
    r"^concurrent\.futures\.",
    r"^runpy\.",
    r"^importlib\.",
    r"^<frozen ",
    r"[/\\]site-packages[/\\]",
    r"^stack_to_trace\.",
)

# Pseudo frames that call-graph profilers put at the root of the tree.
PROFILE_EXCLUDE_PATTERNS = (
    r"^\(root\)$",
    r"^\(idle\)$",
    r"^\(program\)$",
    r"^\(garbage collector\)$",
)


class FrameFilter:
    """Ordered set of exclusion patterns; the first matching pattern wins."""

    def __init__(self, patterns: Iterable[Union[str, Pattern]] = DEFAULT_EXCLUDE_PATTERNS):
        self.patterns: List[Pattern] = [
            p if isinstance(p, re.Pattern) else re.compile(p) for p in patterns
        ]

    def excludes(self, raw: Union[RawFrame, str]) -> Optional[Pattern]:
        """Return the first pattern matching the frame's name or filename."""
        if isinstance(raw, str):
            raw = RawFrame(raw)
        for pattern in self.patterns:
            if pattern.search(raw.name):
                return pattern
            if raw.filename and pattern.search(raw.filename):
                return pattern
        return None

    def filter(self, raw_stack: Sequence[Union[RawFrame, str]]) -> Tuple[str, ...]:
        names = []
        for raw in raw_stack:
            if self.excludes(raw) is not None:
                continue
            names.append(raw if isinstance(raw, str) else raw.name)
        return tuple(names)

    def __repr__(self):
        return f"FrameFilter({[p.pattern for p in self.patterns]!r})"


def frame_name(frame) -> str:
    """``module.qualname`` for a live Python frame."""
    code = frame.f_code
    qualname = getattr(code, "co_qualname", code.co_name)
    module = frame.f_globals.get("__name__")
    if module:
        return f"{module}.{qualname}"
    return qualname


def extract_stack(frame) -> List[RawFrame]:
    """Walk ``f_back`` from ``frame`` and return raw frames outer to inner."""
    stack = []
    while frame is not None:
        stack.append(RawFrame(frame_name(frame), frame.f_code.co_filename))
        frame = frame.f_back
    stack.reverse()
    return stack
