"""
OpenTelemetry SDK client used to push synthetic telemetry into the collector.

Providers are constructed explicitly and owned by the client. Nothing is
registered globally, so several clients can coexist in one process and test
code that also uses OpenTelemetry is unaffected.
"""

import logging
from enum import Enum
from typing import Optional

from opentelemetry.metrics import Meter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor, LogRecordExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.trace import Tracer

from ..framework.errors import (
    ExporterBuildError,
    FlushError,
    TelemetryError,
    TelemetryShutdownError,
)
from ..framework.models import Signal

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "collector-tester"
DEFAULT_FLUSH_TIMEOUT_MILLIS = 30_000


class ExportProtocol(Enum):
    """OTLP transport used by the exporters."""

    GRPC = "grpc"
    HTTP = "http"


def _build_exporters(endpoint: str, protocol: ExportProtocol):
    """Construct span, metric and log exporters for one endpoint."""
    if protocol is ExportProtocol.GRPC:
        from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        return (
            OTLPSpanExporter(endpoint=endpoint, insecure=True),
            OTLPMetricExporter(endpoint=endpoint, insecure=True),
            OTLPLogExporter(endpoint=endpoint, insecure=True),
        )

    from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
    from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

    base = endpoint.rstrip("/")
    return (
        OTLPSpanExporter(endpoint=f"{base}/v1/traces"),
        OTLPMetricExporter(endpoint=f"{base}/v1/metrics"),
        OTLPLogExporter(endpoint=f"{base}/v1/logs"),
    )


class TelemetryClient:
    """
    Owns a tracer, meter and logger provider sharing one resource.

    Use ``TelemetryClient.connect`` to export over OTLP, or
    ``TelemetryClient.from_exporters`` to plug in arbitrary exporters.
    Call ``shutdown`` when done.
    """

    def __init__(
        self,
        tracer_provider: TracerProvider,
        meter_provider: MeterProvider,
        logger_provider: LoggerProvider,
        flush_timeout_millis: int = DEFAULT_FLUSH_TIMEOUT_MILLIS,
    ):
        self.tracer_provider = tracer_provider
        self.meter_provider = meter_provider
        self.logger_provider = logger_provider
        self.flush_timeout_millis = flush_timeout_millis
        self._loggers: dict[str, logging.Logger] = {}
        self._closed = False

    @classmethod
    def from_exporters(
        cls,
        span_exporter: SpanExporter,
        metric_reader: MetricReader,
        log_exporter: LogRecordExporter,
        service_name: str = DEFAULT_SERVICE_NAME,
        resource_attributes: Optional[dict[str, str]] = None,
        max_queue_size: int = 2048,
        flush_timeout_millis: int = DEFAULT_FLUSH_TIMEOUT_MILLIS,
    ) -> "TelemetryClient":
        """Build providers around already-constructed exporters."""
        attributes = {"service.name": service_name}
        attributes.update(resource_attributes or {})
        resource = Resource.create(attributes)

        tracer_provider = TracerProvider(resource=resource)
        tracer_provider.add_span_processor(
            BatchSpanProcessor(span_exporter, max_queue_size=max_queue_size)
        )
        meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
        logger_provider = LoggerProvider(resource=resource)
        logger_provider.add_log_record_processor(
            BatchLogRecordProcessor(log_exporter, max_queue_size=max_queue_size)
        )
        return cls(tracer_provider, meter_provider, logger_provider, flush_timeout_millis)

    @classmethod
    def connect(
        cls,
        endpoint: str,
        protocol: ExportProtocol = ExportProtocol.GRPC,
        service_name: str = DEFAULT_SERVICE_NAME,
        resource_attributes: Optional[dict[str, str]] = None,
        metric_export_interval_millis: int = 1000,
        max_queue_size: int = 2048,
    ) -> "TelemetryClient":
        """
        Create a client exporting all three signals to ``endpoint``.

        Args:
            endpoint: Collector base URL, e.g. ``http://127.0.0.1:4317``
            protocol: OTLP transport; HTTP appends the per-signal paths
            service_name: ``service.name`` resource attribute
            resource_attributes: Extra resource attributes
            metric_export_interval_millis: Periodic metric export interval
            max_queue_size: Batch processor queue size for spans and logs

        Raises:
            ExporterBuildError: If an exporter cannot be constructed
        """
        try:
            span_exporter, metric_exporter, log_exporter = _build_exporters(endpoint, protocol)
        except Exception as e:
            raise ExporterBuildError(
                f"Failed to build OTLP/{protocol.value} exporters for {endpoint}: {e}", "all"
            ) from e

        reader = PeriodicExportingMetricReader(
            metric_exporter, export_interval_millis=metric_export_interval_millis
        )
        client = cls.from_exporters(
            span_exporter,
            reader,
            log_exporter,
            service_name=service_name,
            resource_attributes=resource_attributes,
            max_queue_size=max_queue_size,
        )
        logger.debug("Telemetry client exporting to %s over %s", endpoint, protocol.value)
        return client

    def tracer(self, name: str = DEFAULT_SERVICE_NAME) -> Tracer:
        return self.tracer_provider.get_tracer(name)

    def meter(self, name: str = DEFAULT_SERVICE_NAME) -> Meter:
        return self.meter_provider.get_meter(name)

    def logger(self, name: str = DEFAULT_SERVICE_NAME) -> logging.Logger:
        """
        A standard library logger whose records are exported as OTLP logs.

        The logger is not registered with the logging module, so records do
        not reach (or come from) the application's own handlers.
        """
        if name not in self._loggers:
            otel_logger = logging.Logger(name, level=logging.INFO)
            otel_logger.propagate = False
            otel_logger.addHandler(LoggingHandler(logger_provider=self.logger_provider))
            self._loggers[name] = otel_logger
        return self._loggers[name]

    def flush_traces(self) -> None:
        if not self.tracer_provider.force_flush(self.flush_timeout_millis):
            raise FlushError("Span flush timed out", Signal.TRACES.value)

    def flush_metrics(self) -> None:
        if not self.meter_provider.force_flush(self.flush_timeout_millis):
            raise FlushError("Metric flush timed out", Signal.METRICS.value)

    def flush_logs(self) -> None:
        if not self.logger_provider.force_flush(self.flush_timeout_millis):
            raise FlushError("Log flush timed out", Signal.LOGS.value)

    def flush(self) -> None:
        """
        Force-flush all three providers.

        Raises:
            FlushError: For the first signal that did not flush in time
        """
        self.flush_traces()
        self.flush_metrics()
        self.flush_logs()

    def shutdown(self) -> None:
        """
        Shut down every provider, even if an earlier one fails.

        Raises:
            TelemetryShutdownError: For the first provider that failed
        """
        if self._closed:
            return
        self._closed = True

        first_error: Optional[TelemetryError] = None
        steps = (
            (Signal.TRACES, self.tracer_provider.shutdown),
            (Signal.METRICS, self.meter_provider.shutdown),
            (Signal.LOGS, self.logger_provider.shutdown),
        )
        for signal, shutdown in steps:
            try:
                shutdown()
            except Exception as e:
                logger.error("Failed to shut down %s provider: %s", signal.value, e)
                if first_error is None:
                    first_error = TelemetryShutdownError(
                        f"Failed to shut down {signal.value} provider: {e}", signal.value
                    )
                    first_error.__cause__ = e

        for otel_logger in self._loggers.values():
            for handler in list(otel_logger.handlers):
                otel_logger.removeHandler(handler)
        self._loggers.clear()

        if first_error is not None:
            raise first_error
