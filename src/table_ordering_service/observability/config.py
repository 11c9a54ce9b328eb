"""OpenTelemetry wiring and JSON logging for the ordering service.

Settings are read once from the environment into ObservabilitySettings.
Every log record carries the active trace and span ids so that a log line
can be matched to the request span that produced it.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.botocore import BotocoreInstrumentor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from pythonjsonlogger import jsonlogger

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(trace_id)s %(span_id)s %(message)s"

# Paths excluded from request spans; load balancers poll these constantly.
UNTRACED_URLS = "health"


@dataclass(frozen=True)
class ObservabilitySettings:
    """Where telemetry goes and what it is labelled with."""

    service_name: str = "ordering-svc"
    environment: str = "development"
    otlp_endpoint: str = "http://localhost:4318"
    export_interval_millis: int = 60000
    exporters_enabled: bool = True

    @classmethod
    def from_env(cls) -> "ObservabilitySettings":
        """Read OTEL_SERVICE_NAME, ENVIRONMENT, OTEL_EXPORTER_OTLP_ENDPOINT,
        OTEL_METRIC_EXPORT_INTERVAL and OTEL_EXPORTERS_ENABLED.

        Exporters are always off when ENVIRONMENT is test.
        """
        environment = os.getenv("ENVIRONMENT", cls.environment)
        exporters_enabled = os.getenv("OTEL_EXPORTERS_ENABLED", "true").lower() == "true"
        return cls(
            service_name=os.getenv("OTEL_SERVICE_NAME", cls.service_name),
            environment=environment,
            otlp_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", cls.otlp_endpoint).rstrip("/"),
            export_interval_millis=int(
                os.getenv("OTEL_METRIC_EXPORT_INTERVAL", str(cls.export_interval_millis))
            ),
            exporters_enabled=exporters_enabled and environment != "test",
        )

    @property
    def resource(self) -> Resource:
        return Resource.create(
            {"service.name": self.service_name, "deployment.environment": self.environment}
        )


class TraceContextFilter(logging.Filter):
    """Stamp trace_id and span_id (hex, empty outside a span) on each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = trace.get_current_span().get_span_context()
        if context.is_valid:
            record.trace_id = format(context.trace_id, "032x")
            record.span_id = format(context.span_id, "016x")
        else:
            record.trace_id = ""
            record.span_id = ""
        return True


def setup_tracing(settings: ObservabilitySettings) -> None:
    """Install a tracer provider that batches spans to the OTLP/HTTP endpoint."""
    provider = TracerProvider(resource=settings.resource)
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{settings.otlp_endpoint}/v1/traces"))
    )
    trace.set_tracer_provider(provider)
    logger.info(f"Exporting traces to {settings.otlp_endpoint}")


def setup_metrics(settings: ObservabilitySettings) -> None:
    """Install a meter provider that pushes to the OTLP/HTTP endpoint on an interval."""
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=f"{settings.otlp_endpoint}/v1/metrics"),
        export_interval_millis=settings.export_interval_millis,
    )
    metrics.set_meter_provider(MeterProvider(resource=settings.resource, metric_readers=[reader]))
    logger.info(
        f"Exporting metrics to {settings.otlp_endpoint} "
        f"every {settings.export_interval_millis} ms"
    )


def setup_observability(app: Any = None, settings: ObservabilitySettings | None = None) -> None:
    """Install providers and instrument DynamoDB, outbound HTTP and the API.

    Without exporters the providers still record in-process, so spans and
    trace ids in logs keep working.

    Args:
        app: FastAPI application to instrument, if any
        settings: Defaults to ObservabilitySettings.from_env()
    """
    settings = settings or ObservabilitySettings.from_env()

    if settings.exporters_enabled:
        setup_tracing(settings)
        setup_metrics(settings)
    else:
        trace.set_tracer_provider(TracerProvider(resource=settings.resource))
        metrics.set_meter_provider(MeterProvider(resource=settings.resource))
        logger.info("Telemetry exporters disabled")

    BotocoreInstrumentor().instrument()
    HTTPXClientInstrumentor().instrument()

    if app is not None:
        FastAPIInstrumentor.instrument_app(app, excluded_urls=UNTRACED_URLS)

    logger.info(f"Observability configured for {settings.service_name} ({settings.environment})")


def configure_logging(log_level: str = "INFO") -> None:
    """Send JSON log lines with trace context to stderr from the root logger.

    Args:
        log_level: Level name; LOG_LEVEL in the environment takes precedence
            and unknown names fall back to INFO
    """
    level_name = os.getenv("LOG_LEVEL", log_level).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level_name, level = "INFO", logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT, timestamp=True))
    handler.addFilter(TraceContextFilter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    logger.info(f"JSON logging at {level_name}")
