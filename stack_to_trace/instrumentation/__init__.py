"""
Automatic instrumentation registry for supported libraries.
"""

import logging
import os

from .handlers import instrument_service, wrap_handler
from .instrument_httpx import auto_instrument_httpx

logger = logging.getLogger(__name__)

INSTRUMENTATIONS = {
    "httpx": auto_instrument_httpx,
}


def _disabled(name: str) -> bool:
    return f"STACK_TO_TRACE_DISABLE_{name.upper()}_INSTRUMENTATION" in os.environ


def init_auto_instrumentation(tracer) -> list:
    """
    Initialize automatic instrumentation for all supported libraries.
    Returns the names of the instrumentations that were installed.
    """
    installed = []
    for name, instrument in INSTRUMENTATIONS.items():
        if _disabled(name):
            continue
        try:
            if instrument(tracer):
                installed.append(name)
        except Exception:
            logger.exception("failed to install %s instrumentation", name)
    return installed


__all__ = ["init_auto_instrumentation", "instrument_service", "wrap_handler", "auto_instrument_httpx"]
