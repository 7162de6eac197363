"""
Live stack sampling.

A single background thread wakes every ``interval_ms``, asks a context source
for the stacks of every live execution context, filters them and records a
sample per context. All bookkeeping for one tick runs synchronously on that
thread, so the context table only ever sees one writer while sampling.
"""

import asyncio
import logging
import sys
import threading
import time
from typing import Callable, Hashable, Iterable, Optional, Protocol, Set, Tuple

from .context_table import ContextTable
from .errors import ConfigError, SpanExportError
from .frames import FrameFilter, extract_stack

logger = logging.getLogger(__name__)


class ContextSource(Protocol):
    def snapshot(self) -> Iterable[Tuple[Hashable, object]]:
        """Yield ``(context_id, innermost_frame)`` for every live context."""


class ThreadContextSource:
    """One execution context per OS thread."""

    def __init__(self, exclude_threads: Iterable[int] = ()):
        self.exclude_threads: Set[int] = set(exclude_threads)

    def snapshot(self):
        for ident, frame in sys._current_frames().items():
            if ident in self.exclude_threads:
                continue
            yield ident, frame


def _coroutine_frames(coro):
    frames = []
    while coro is not None:
        frame = getattr(coro, "cr_frame", None) or getattr(coro, "gi_frame", None)
        if frame is None:
            break
        frames.append(frame)
        coro = getattr(coro, "cr_await", None) or getattr(coro, "gi_yieldfrom", None)
    return frames


class AsyncioTaskContextSource:
    """
    One execution context per asyncio task of ``loop``.

    The stack of a suspended task is its chain of awaiting coroutines; tasks
    that finished are left out so the sampler tears their context down.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop

    def snapshot(self):
        for task in asyncio.all_tasks(self.loop):
            if task.done():
                continue
            frames = _coroutine_frames(task.get_coro())
            if not frames:
                continue
            yield (id(task), task.get_name()), _ChainedFrame.chain(frames)


class _ChainedFrame:
    """Present a coroutine chain as an ``f_back`` linked frame list."""

    __slots__ = ("f_code", "f_globals", "f_back")

    def __init__(self, frame, back):
        self.f_code = frame.f_code
        self.f_globals = frame.f_globals
        self.f_back = back

    @classmethod
    def chain(cls, frames):
        node = None
        for frame in frames:
            node = cls(frame, node)
        return node


class LiveSampler:
    def __init__(
        self,
        table: ContextTable,
        frame_filter: FrameFilter = None,
        source: ContextSource = None,
        interval_ms: int = 50,
        clock: Callable[[], float] = time.time_ns,
    ):
        if isinstance(interval_ms, bool) or not isinstance(interval_ms, int) or interval_ms <= 0:
            raise ConfigError(f"sampling interval must be a positive integer, got {interval_ms!r}")
        self.table = table
        self.frame_filter = frame_filter or FrameFilter()
        self.source = source
        self.interval_ms = interval_ms
        self.clock = clock
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._alive: Set[Hashable] = set()
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None

    def start(self):
        with self._lock:
            if self._thread is not None:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run, name="stack-to-trace-sampler", daemon=True
            )
            self._thread.start()
        logger.info("stack sampler started (%dms interval)", self.interval_ms)

    def stop(self):
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()
            if thread is not threading.current_thread():
                thread.join()
            self._thread = None
        self._alive.clear()
        logger.info("stack sampler stopped")
        self.table.flush_all(self.clock())

    def _run(self):
        if self.source is None:
            self.source = ThreadContextSource()
        if isinstance(self.source, ThreadContextSource):
            self.source.exclude_threads.add(threading.get_ident())
        interval = self.interval_ms / 1000.0
        while not self._stop_event.wait(interval):
            try:
                self.tick()
            except SpanExportError as exc:
                logger.warning("%s", exc)
            except Exception:
                logger.exception("sampling tick failed")

    def tick(self):
        """Capture one sample per live context and tear down vanished ones."""
        if self.source is None:
            self.source = ThreadContextSource({threading.get_ident()})
        timestamp = self.clock()
        seen = set()
        failures = []
        for context_id, frame in self.source.snapshot():
            seen.add(context_id)
            stack = self.frame_filter.filter(extract_stack(frame))
            try:
                self.table.record_sample(context_id, stack, timestamp)
            except SpanExportError as exc:
                failures.extend(exc.failures)
        for context_id in self._alive - seen:
            try:
                self.table.teardown(context_id, timestamp)
            except SpanExportError as exc:
                failures.extend(exc.failures)
        self._alive = seen
        if failures:
            raise SpanExportError(failures)
