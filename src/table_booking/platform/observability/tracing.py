"""
OpenTelemetry tracing configuration.

Provides:
- Tracer provider setup with an optional console exporter
- Trace context injection for outgoing booking-service requests
"""

from opentelemetry import trace
from opentelemetry.propagate import inject
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import ALWAYS_ON


class TracingConfig:
    """
    Usage:
        # Initialize once when the widget host starts
        tracing = TracingConfig(service_name="table-booking-widget", enable_console=True)
        tracing.setup()
    """

    def __init__(self, *, service_name: str, enable_console: bool = False) -> None:
        self.service_name = service_name
        self.enable_console = enable_console
        self._provider: TracerProvider | None = None

    @property
    def provider(self) -> TracerProvider | None:
        return self._provider

    def setup(self) -> None:
        resource = Resource(attributes={SERVICE_NAME: self.service_name})
        self._provider = TracerProvider(resource=resource, sampler=ALWAYS_ON)

        if self.enable_console:
            self._provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

        trace.set_tracer_provider(self._provider)

    def shutdown(self) -> None:
        if self._provider:
            self._provider.shutdown()


def inject_trace_context(*, headers: dict[str, str] | None = None) -> dict[str, str]:
    """
    Inject current trace context into outgoing HTTP headers.

    Usage:
        headers = inject_trace_context()
        await client.get(url, params=params, headers=headers)
    """
    headers = headers or {}
    inject(headers)
    return headers
