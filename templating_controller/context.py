"""Tracing of nested reconcile stages for debug logging."""

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass, field
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

# No public API
__all__: list[str] = []


trace: contextvars.ContextVar[tuple[str, ...]] = contextvars.ContextVar(
    "trace", default=()
)


@dataclass
class Span:
    """A traced stage, the elapsed time is set when the stage exits."""

    label: str
    start: float = field(default_factory=perf_counter)
    elapsed: float | None = None


@contextmanager
def trace_context(name: str) -> Generator[Span, None, None]:
    """Trace a stage nested in the stages of the current task."""
    stack = trace.get() + (name,)
    token = trace.set(stack)
    span = Span(label=" > ".join(stack))
    _LOGGER.debug("[Trace] > %s", span.label)
    try:
        yield span
    finally:
        span.elapsed = perf_counter() - span.start
        trace.reset(token)
        _LOGGER.debug("[Trace] < %s (%0.2fs)", span.label, span.elapsed)
