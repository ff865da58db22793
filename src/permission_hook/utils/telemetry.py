"""OpenTelemetry tracing helpers for the permission hook.

The rest of the codebase calls ``get_tracer()`` without caring whether the
SDK is installed.  Without a configured SDK the API hands back no-op
implementations, so an invocation pays nothing for tracing unless the user
opts in through the ``telemetry`` config section.

Usage::

    from permission_hook.utils.telemetry import get_tracer

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("policy.evaluate") as span:
        span.set_attribute(ATTR_TOOL_NAME, tool_name)

Spans are only ever exported over OTLP.  stdout carries the hook response,
so a console exporter would corrupt the protocol channel.
"""

from __future__ import annotations

from typing import Any

from opentelemetry import trace

# ---------------------------------------------------------------------------
# Semantic attribute keys used throughout the hook's instrumentation
# ---------------------------------------------------------------------------

ATTR_EVENT = "permission_hook.event"
ATTR_SESSION_ID = "permission_hook.session.id"
ATTR_TOOL_NAME = "permission_hook.tool.name"
ATTR_DECISION = "permission_hook.decision"
ATTR_REASON = "permission_hook.reason"
ATTR_STATUS = "permission_hook.status"
ATTR_CHANNEL = "permission_hook.delivery.channel"
ATTR_ATTEMPT = "permission_hook.delivery.attempt"
ATTR_MAX_ATTEMPTS = "permission_hook.delivery.max_attempts"

_INSTRUMENTATION_NAME = "permission_hook"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return a :class:`~opentelemetry.trace.Tracer` for *name*.

    If the OpenTelemetry SDK has not been configured the returned tracer
    is a no-op.
    """
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def configure_telemetry(
    *,
    service_name: str = "permission-hook",
    otlp_endpoint: str | None = None,
) -> None:
    """Configure OpenTelemetry tracing (requires ``permission-hook[otel]``).

    Parameters
    ----------
    service_name:
        The ``service.name`` resource attribute.
    otlp_endpoint:
        If set, export spans via OTLP/gRPC to this endpoint.  Without it the
        provider is installed but exports nothing.

    Raises
    ------
    ImportError
        If the ``opentelemetry-sdk`` package is not installed.
    """
    # The SDK is an optional dependency.
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
        from opentelemetry.sdk.trace.export import BatchSpanProcessor  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
    except ImportError as exc:
        msg = (
            "opentelemetry-sdk is required for configure_telemetry(). "
            "Install it with: pip install permission-hook[otel]"
        )
        raise ImportError(msg) from exc

    resource = Resource.create({"service.name": service_name})  # pyright: ignore[reportUnknownVariableType,reportUnknownMemberType]
    provider = TracerProvider(resource=resource)  # pyright: ignore[reportUnknownVariableType]

    if otlp_endpoint:
        _add_otlp_exporter(provider, BatchSpanProcessor, otlp_endpoint)

    trace.set_tracer_provider(provider)  # pyright: ignore[reportUnknownArgumentType]


def shutdown_telemetry() -> None:
    """Flush pending spans before the process exits."""
    provider = trace.get_tracer_provider()
    shutdown = getattr(provider, "shutdown", None)
    if callable(shutdown):
        shutdown()


def _add_otlp_exporter(provider: Any, processor_cls: Any, endpoint: str) -> None:
    """Attach the OTLP gRPC exporter."""
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
    except ImportError as exc:
        msg = (
            "opentelemetry-exporter-otlp is required for OTLP export. "
            "Install it with: pip install permission-hook[otel]"
        )
        raise ImportError(msg) from exc

    provider.add_span_processor(processor_cls(OTLPSpanExporter(endpoint=endpoint)))
