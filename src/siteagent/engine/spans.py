# src/siteagent/engine/spans.py
"""OpenTelemetry span factory for the site agent.

Falls back to no-op mode when no tracer is configured.

Span Hierarchy:
    workflow:{activity}-{resource_type}
    ├── Actv-{activity}-{resource_type}
    └── publish:{publish_activity}
    bootstrap:{operation}
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.trace import Span, Tracer


class NoOpSpan:
    """No-op span for when tracing is disabled."""

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def set_status(self, status: Any) -> None:
        pass

    def record_exception(self, exception: BaseException) -> None:
        pass

    def is_recording(self) -> bool:
        return False


class SpanFactory:
    """Factory for creating OpenTelemetry spans.

    When no tracer is provided, all span methods yield the shared no-op span.

    Example:
        factory = SpanFactory(tracer=opentelemetry.trace.get_tracer("siteagent"))

        with factory.workflow_span("Create", "vpc", "vpc-123") as span:
            with factory.activity_span("Create", "vpc") as activity_span:
                ...
    """

    _NOOP_SPAN = NoOpSpan()

    def __init__(self, tracer: "Tracer | None" = None) -> None:
        self._tracer = tracer

    @property
    def enabled(self) -> bool:
        return self._tracer is not None

    @contextmanager
    def workflow_span(self, activity: str, resource_type: str, resource_id: str) -> Iterator["Span | NoOpSpan"]:
        """Span covering both phases of one operation."""
        if self._tracer is None:
            yield self._NOOP_SPAN
            return

        with self._tracer.start_as_current_span(f"workflow:{activity}-{resource_type}") as span:
            span.set_attribute("resource.type", resource_type)
            span.set_attribute("resource.id", resource_id)
            span.set_attribute("activity", activity)
            yield span

    @contextmanager
    def activity_span(self, activity: str, resource_type: str) -> Iterator["Span | NoOpSpan"]:
        """Span for the backend invocation phase."""
        if self._tracer is None:
            yield self._NOOP_SPAN
            return

        with self._tracer.start_as_current_span(f"Actv-{activity}-{resource_type}") as span:
            span.set_attribute("resource.type", resource_type)
            span.set_attribute("activity", activity)
            yield span

    @contextmanager
    def publish_span(self, publish_activity: str) -> Iterator["Span | NoOpSpan"]:
        """Span for the publish phase."""
        if self._tracer is None:
            yield self._NOOP_SPAN
            return

        with self._tracer.start_as_current_span(f"publish:{publish_activity}") as span:
            span.set_attribute("publish.activity", publish_activity)
            yield span

    @contextmanager
    def bootstrap_span(self, operation: str, site_id: str | None = None) -> Iterator["Span | NoOpSpan"]:
        """Span for a credential download or token rotation."""
        if self._tracer is None:
            yield self._NOOP_SPAN
            return

        with self._tracer.start_as_current_span(f"bootstrap:{operation}") as span:
            if site_id:
                span.set_attribute("site.id", site_id)
            yield span
