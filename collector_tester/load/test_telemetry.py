"""
Tests for the OpenTelemetry SDK client.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.sdk._logs.export import InMemoryLogRecordExporter
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from collector_tester.framework.errors import ExporterBuildError, FlushError, TelemetryShutdownError
from collector_tester.load import telemetry
from collector_tester.load.telemetry import ExportProtocol, TelemetryClient


def mock_client(**provider_overrides) -> TelemetryClient:
    providers = {
        "tracer_provider": MagicMock(),
        "meter_provider": MagicMock(),
        "logger_provider": MagicMock(),
    }
    for provider in providers.values():
        provider.force_flush.return_value = True
    providers.update(provider_overrides)
    return TelemetryClient(**providers)


class TestFlush:
    """Tests for force-flushing providers."""

    @pytest.mark.parametrize(
        "provider,signal",
        [("tracer_provider", "traces"), ("meter_provider", "metrics"), ("logger_provider", "logs")],
    )
    def test_flush_timeout_raises_tagged_error(self, provider, signal):
        client = mock_client()
        getattr(client, provider).force_flush.return_value = False

        with pytest.raises(FlushError) as exc_info:
            client.flush()

        assert exc_info.value.signal == signal

    def test_flush_passes_timeout(self):
        client = mock_client()
        client.flush_timeout_millis = 1234

        client.flush()

        client.tracer_provider.force_flush.assert_called_once_with(1234)


class TestShutdown:
    """Tests for provider shutdown."""

    def test_shutdown_attempts_every_provider_and_raises_first_error(self):
        client = mock_client()
        client.tracer_provider.shutdown.side_effect = RuntimeError("span exporter stuck")
        client.logger_provider.shutdown.side_effect = RuntimeError("log exporter stuck")

        with pytest.raises(TelemetryShutdownError) as exc_info:
            client.shutdown()

        assert exc_info.value.signal == "traces"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        client.meter_provider.shutdown.assert_called_once()
        client.logger_provider.shutdown.assert_called_once()

    def test_shutdown_is_idempotent(self):
        client = mock_client()
        client.shutdown()
        client.shutdown()
        client.tracer_provider.shutdown.assert_called_once()


class TestProviders:
    """Tests for provider construction."""

    def test_from_exporters_sets_service_name_and_extra_resource_attributes(self):
        spans = InMemorySpanExporter()
        client = TelemetryClient.from_exporters(
            spans,
            InMemoryMetricReader(),
            InMemoryLogRecordExporter(),
            service_name="checkout",
            resource_attributes={"deployment.environment": "test"},
        )
        try:
            client.tracer("t").start_span("one").end()
            client.flush()
        finally:
            client.shutdown()

        resource = spans.get_finished_spans()[0].resource
        assert resource.attributes["service.name"] == "checkout"
        assert resource.attributes["deployment.environment"] == "test"

    def test_logger_is_standalone(self):
        client = mock_client()

        otel_logger = client.logger("collector_tester.standalone")

        assert otel_logger.propagate is False
        assert "collector_tester.standalone" not in logging.Logger.manager.loggerDict
        assert client.logger("collector_tester.standalone") is otel_logger

    def test_connect_wraps_exporter_failures(self):
        with patch.object(telemetry, "_build_exporters", side_effect=ValueError("bad endpoint")):
            with pytest.raises(ExporterBuildError, match="bad endpoint"):
                TelemetryClient.connect("not a url", protocol=ExportProtocol.HTTP)

    def test_http_exporters_use_signal_paths(self):
        span_exporter, metric_exporter, log_exporter = telemetry._build_exporters(
            "http://127.0.0.1:4318/", ExportProtocol.HTTP
        )
        try:
            assert span_exporter._endpoint == "http://127.0.0.1:4318/v1/traces"
            assert metric_exporter._endpoint == "http://127.0.0.1:4318/v1/metrics"
            assert log_exporter._endpoint == "http://127.0.0.1:4318/v1/logs"
        finally:
            span_exporter.shutdown()
            log_exporter.shutdown()
