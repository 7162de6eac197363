"""Reconstruct span trees from sampled call stacks."""

from .config import TracerConfig
from .context_table import ContextTable
from .differ import common_prefix_length, convert_samples_to_events, diff
from .emitter import SpanEmitter
from .engine import StackSamplingTracer, get_tracing, init_tracing
from .errors import ConfigError, InvalidProfileError, SpanExportError
from .frames import DEFAULT_EXCLUDE_PATTERNS, FrameFilter
from .model import CallGraphNode, CallGraphProfile, EventKind, Sample, Span, TraceEvent
from .profile import load_profile, parse_profile, reconstruct, replay
from .sampler import AsyncioTaskContextSource, LiveSampler, ThreadContextSource
from .telemetry import add_tag, profile_block, traced

__version__ = "0.1.0"
