"""
The tracing engine.

A `StackSamplingTracer` owns one frame filter, context table, span emitter and
live sampler. Nothing is process-global except the optional instance kept by
`init_tracing` / `get_tracing`.
"""

import logging
import threading
import time
from typing import Iterable, Optional

from .config import TracerConfig
from .context_table import ContextTable
from .emitter import SpanEmitter, SpanExporter
from .frames import DEFAULT_EXCLUDE_PATTERNS, PROFILE_EXCLUDE_PATTERNS, FrameFilter
from .model import CallGraphProfile
from .profile import profile_end_timestamp, reconstruct, replay
from .sampler import ContextSource, LiveSampler
from .telemetry import ScopedSpan, traced

logger = logging.getLogger(__name__)


class StackSamplingTracer:
    def __init__(
        self,
        config: TracerConfig = None,
        exporters: Iterable[SpanExporter] = (),
        source: ContextSource = None,
        clock=time.time_ns,
    ):
        self.config = config or TracerConfig()
        self.clock = clock
        self.frame_filter = FrameFilter(self.config.exclude_patterns)
        extra = [p for p in self.config.exclude_patterns if p not in DEFAULT_EXCLUDE_PATTERNS]
        self.profile_filter = FrameFilter(PROFILE_EXCLUDE_PATTERNS + tuple(extra))
        self.emitter = SpanEmitter(exporters)
        self.table = ContextTable(self.emitter, clock=clock)
        self.sampler = LiveSampler(
            self.table,
            self.frame_filter,
            source=source,
            interval_ms=self.config.sampling_interval_ms,
            clock=clock,
        )

    @property
    def running(self) -> bool:
        return self.sampler.running

    def start(self):
        if not self.config.enable_stack_sampling:
            logger.info("stack sampling disabled for %s", self.config.service_name)
            return
        self.sampler.start()

    def stop(self):
        self.sampler.stop()

    def shutdown(self):
        try:
            self.stop()
        finally:
            self.emitter.shutdown()

    def replay_profile(self, profile: CallGraphProfile, end_timestamp=None):
        """
        Reconstruct a call-graph profile and emit its spans; returns the samples.

        Profile frames go through the pseudo-frame filter plus any exclusions
        configured beyond the live-sampling defaults. Leftover spans end at
        ``end_timestamp``, else at the profile's recorded end time.
        """
        samples = reconstruct(profile, self.profile_filter)
        if end_timestamp is None:
            end_timestamp = profile_end_timestamp(profile)
        replay(samples, self.table, end_timestamp)
        return samples

    def span(self, name: str, attributes: dict = None) -> ScopedSpan:
        return ScopedSpan(self.emitter, name, attributes, clock=self.clock)

    def wrap(self, func, name: str = None, attributes: dict = None):
        if not self.config.enable_handler_tracing:
            return func
        return traced(self.emitter, func, name, attributes)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False


_LOCK = threading.Lock()
_tracer: Optional[StackSamplingTracer] = None


def init_tracing(config: TracerConfig = None, exporters: Iterable[SpanExporter] = (), **kwargs) -> StackSamplingTracer:
    """Create the process-wide tracer once; later calls return the same instance."""
    global _tracer
    with _LOCK:
        if _tracer is None:
            _tracer = StackSamplingTracer(config, exporters, **kwargs)
        return _tracer


def get_tracing() -> Optional[StackSamplingTracer]:
    return _tracer


def reset_tracing():
    """Shut the process-wide tracer down and forget it."""
    global _tracer
    with _LOCK:
        tracer, _tracer = _tracer, None
    if tracer is not None:
        tracer.shutdown()
