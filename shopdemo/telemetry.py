"""Telemetry context, one per service process.

Owns the tracer provider, the W3C propagator and the OTLP log bridge.
Constructed explicitly and handed to whatever needs a tracer, with an
init()/shutdown() lifecycle tied to the app's lifespan.
"""

import logging

from opentelemetry import propagate, trace
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.context import Context
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import ALWAYS_ON
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from . import config

log = logging.getLogger(__name__)

TRACER_NAME = "shopdemo"


class Telemetry:
    def __init__(
        self,
        service_name: str,
        *,
        span_exporters: list[SpanExporter] | None = None,
        traces_exporter: str | None = None,
        otlp_endpoint: str | None = None,
        export_logs: bool | None = None,
        batch: bool = True,
        install_global: bool = False,
    ):
        self.service_name = service_name
        self.otlp_endpoint = otlp_endpoint or config.OTEL_EXPORTER_OTLP_ENDPOINT
        self.traces_exporter = traces_exporter or config.OTEL_TRACES_EXPORTER
        self.export_logs = config.OTEL_LOGS_EXPORT if export_logs is None else export_logs
        self.batch = batch
        self.install_global = install_global
        self._span_exporters = span_exporters

        self.propagator = CompositePropagator(
            [TraceContextTextMapPropagator(), W3CBaggagePropagator()]
        )
        self.provider: TracerProvider | None = None
        self._tracer: trace.Tracer | None = None
        self._log_provider: LoggerProvider | None = None
        self._log_handler: LoggingHandler | None = None

    # ── Lifecycle ───────────────────────────────────────────────

    @property
    def initialized(self) -> bool:
        return self.provider is not None

    def init(self) -> "Telemetry":
        if self.initialized:
            return self

        resource = Resource.create({
            "service.name":           self.service_name,
            "service.version":        config.SERVICE_VERSION,
            "deployment.environment": config.DEPLOYMENT_ENVIRONMENT,
        })

        # Demo traffic is tiny; sample everything.
        provider = TracerProvider(resource=resource, sampler=ALWAYS_ON)
        processor_cls = BatchSpanProcessor if self.batch else SimpleSpanProcessor
        for exporter in self._build_span_exporters():
            provider.add_span_processor(processor_cls(exporter))

        self.provider = provider
        self._tracer = provider.get_tracer(TRACER_NAME)

        if self._wants_log_bridge():
            self._log_provider = LoggerProvider(resource=resource)
            self._log_provider.add_log_record_processor(
                BatchLogRecordProcessor(OTLPLogExporter(endpoint=self.otlp_endpoint, insecure=True))
            )
            self._log_handler = LoggingHandler(level=logging.NOTSET, logger_provider=self._log_provider)
            logging.getLogger().addHandler(self._log_handler)

        if self.install_global:
            trace.set_tracer_provider(provider)
            propagate.set_global_textmap(self.propagator)

        log.info("Telemetry ready for %s (traces → %s)", self.service_name, self._describe_exporter())
        return self

    def shutdown(self):
        if not self.initialized:
            return
        if self._log_handler is not None:
            logging.getLogger().removeHandler(self._log_handler)
            self._log_handler = None
        if self._log_provider is not None:
            self._log_provider.shutdown()
            self._log_provider = None
        # Flushes any spans still queued in batch processors.
        self.provider.shutdown()
        self.provider = None
        self._tracer = None

    def _build_span_exporters(self) -> list[SpanExporter]:
        if self._span_exporters is not None:
            return list(self._span_exporters)
        if self.traces_exporter == "otlp":
            return [OTLPSpanExporter(endpoint=self.otlp_endpoint, insecure=True)]
        if self.traces_exporter == "console":
            return [ConsoleSpanExporter()]
        if self.traces_exporter == "none":
            return []
        raise ValueError(f"Unknown traces exporter: {self.traces_exporter!r}")

    def _wants_log_bridge(self) -> bool:
        return self.export_logs and self._span_exporters is None and self.traces_exporter == "otlp"

    def _describe_exporter(self) -> str:
        if self._span_exporters is not None:
            return ", ".join(type(e).__name__ for e in self._span_exporters) or "nowhere"
        if self.traces_exporter == "otlp":
            return self.otlp_endpoint
        return self.traces_exporter

    # ── Tracing helpers ─────────────────────────────────────────

    @property
    def tracer(self) -> trace.Tracer:
        if self._tracer is None:
            raise RuntimeError(f"Telemetry for {self.service_name} is not initialized")
        return self._tracer

    def extract(self, headers) -> Context:
        """Context carried by inbound headers; empty context starts a new trace."""
        return self.propagator.extract(carrier=headers)

    def inject(self, ctx: Context) -> dict[str, str]:
        headers: dict[str, str] = {}
        self.propagator.inject(headers, context=ctx)
        return headers


def trace_id_hex(span: trace.Span) -> str:
    return trace.format_trace_id(span.get_span_context().trace_id)
