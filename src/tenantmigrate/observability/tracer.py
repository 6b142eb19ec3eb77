"""
Span creation for the migration pipeline.

The creator, runner, restorer and stores each accept a ``Tracer``. In
production that is an ``OpenTelemetryTracer`` when the ``telemetry`` extra is
installed; otherwise (and whenever ``enable_tracing=False``) it is a
``NullTracer``. Tests pass a ``MockTracer`` and assert on what it recorded.

Spans are opened with ``with tracer.span(name, attributes) as span:`` and
``span`` is ``None`` for every tracer except the OpenTelemetry one, so callers
guard ``span.set_attribute`` with ``if span:``.
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from opentelemetry.trace import Span

try:
    from opentelemetry import trace as _otel_trace

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False
    _otel_trace = None  # type: ignore[assignment]

Attributes = dict[str, Any]


@runtime_checkable
class Tracer(Protocol):
    """What migration components need from a tracer."""

    def span(self, name: str, attributes: Attributes | None = None) -> AbstractContextManager[Span | None]: ...

    @property
    def enabled(self) -> bool:
        """Whether spans from this tracer go anywhere."""
        ...


class NullTracer:
    """Tracer used when tracing is off; spans cost nothing and yield ``None``."""

    enabled = False

    @contextlib.contextmanager
    def span(self, name: str, attributes: Attributes | None = None) -> Iterator[None]:
        yield None


class OpenTelemetryTracer:
    """
    Opens spans on an OpenTelemetry tracer named after the calling module.

    OpenTelemetry rejects ``None`` attribute values, so those are dropped
    before the span starts (an empty destination alias is sent as ``""`` by
    callers, not ``None``).
    """

    enabled = True

    def __init__(self, tracer_name: str) -> None:
        if _otel_trace is None:
            raise ImportError("opentelemetry-api is required; install tenantmigrate[telemetry]")
        self._tracer = _otel_trace.get_tracer(tracer_name)

    def span(self, name: str, attributes: Attributes | None = None) -> AbstractContextManager[Span | None]:
        cleaned = {key: value for key, value in (attributes or {}).items() if value is not None}
        return self._tracer.start_as_current_span(name, attributes=cleaned)


class MockTracer:
    """
    Keeps every ``(name, attributes)`` pair it is asked to open, in order.

    >>> tracer = MockTracer()
    >>> with tracer.span("tenantmigrate.runner.run", {"tenantmigrate.region": "eu"}):
    ...     pass
    >>> tracer.span_names
    ['tenantmigrate.runner.run']
    """

    enabled = True

    def __init__(self) -> None:
        self.spans: list[tuple[str, Attributes | None]] = []

    @contextlib.contextmanager
    def span(self, name: str, attributes: Attributes | None = None) -> Iterator[None]:
        self.spans.append((name, attributes))
        yield None

    @property
    def span_names(self) -> list[str]:
        return [name for name, _ in self.spans]

    def attributes_of(self, name: str) -> list[Attributes | None]:
        """Attributes of every recorded span called ``name``."""
        return [attributes for span_name, attributes in self.spans if span_name == name]

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """OpenTelemetry-backed tracer when asked for and importable, else a ``NullTracer``."""
    if enable_tracing and OTEL_AVAILABLE:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "OTEL_AVAILABLE",
    "MockTracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "Tracer",
    "create_tracer",
]
