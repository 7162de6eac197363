"""
Tracer configuration.

Values come from keyword arguments or, through `TracerConfig.from_env`, from
``STACK_TO_TRACE_*`` environment variables. Data files default to
``$XDG_DATA_HOME/stack-to-trace/<service>/``.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .errors import ConfigError
from .frames import DEFAULT_EXCLUDE_PATTERNS

APP_DIR = "stack-to-trace"
DEFAULT_INTERVAL_MS = 50


def data_home() -> str:
    xdg = os.environ.get("XDG_DATA_HOME", os.path.expanduser("~/.local/share"))
    return os.path.join(xdg, APP_DIR)


def default_db_path(service_name: str) -> str:
    return os.path.join(data_home(), service_name, "telemetry.db")


def _flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class TracerConfig:
    service_name: str = "stack-to-trace"
    sampling_interval_ms: int = DEFAULT_INTERVAL_MS
    exclude_patterns: Tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    enable_stack_sampling: bool = True
    enable_handler_tracing: bool = True
    db_path: Optional[str] = None
    resource_attributes: dict = field(default_factory=dict)

    def __post_init__(self):
        interval = self.sampling_interval_ms
        if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
            raise ConfigError(f"sampling_interval_ms must be a positive integer, got {interval!r}")
        if not self.service_name:
            raise ConfigError("service_name must not be empty")
        self.exclude_patterns = tuple(self.exclude_patterns)
        for pattern in self.exclude_patterns:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ConfigError(f"invalid exclude pattern {pattern!r}: {exc}")

    @property
    def resolved_db_path(self) -> str:
        if self.db_path:
            return os.path.expanduser(self.db_path)
        return default_db_path(self.service_name)

    @classmethod
    def from_env(cls, service_name: str = "stack-to-trace", **overrides) -> "TracerConfig":
        values = {"service_name": service_name}
        interval = os.environ.get("STACK_TO_TRACE_INTERVAL_MS")
        if interval:
            try:
                values["sampling_interval_ms"] = int(interval)
            except ValueError:
                raise ConfigError(f"STACK_TO_TRACE_INTERVAL_MS is not an integer: {interval!r}")
        exclude = os.environ.get("STACK_TO_TRACE_EXCLUDE")
        if exclude:
            extra = tuple(p.strip() for p in exclude.split(",") if p.strip())
            values["exclude_patterns"] = DEFAULT_EXCLUDE_PATTERNS + extra
        if _flag("STACK_TO_TRACE_DISABLE_SAMPLING"):
            values["enable_stack_sampling"] = False
        if _flag("STACK_TO_TRACE_DISABLE_HANDLERS"):
            values["enable_handler_tracing"] = False
        if os.environ.get("STACK_TO_TRACE_DB"):
            values["db_path"] = os.environ["STACK_TO_TRACE_DB"]
        values.update(overrides)
        return cls(**values)
