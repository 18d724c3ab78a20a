"""
Mock OTLP/gRPC endpoint that records everything exported to it.

The collector under test exports into this server. Received signals are
decoded into plain records and kept in a lock-protected store; readers get
immutable snapshots instead of running code while the lock is held.
"""

import logging
import threading
from concurrent import futures
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

import grpc
from opentelemetry.proto.collector.logs.v1 import logs_service_pb2, logs_service_pb2_grpc
from opentelemetry.proto.collector.metrics.v1 import metrics_service_pb2, metrics_service_pb2_grpc
from opentelemetry.proto.collector.trace.v1 import trace_service_pb2, trace_service_pb2_grpc

from ..framework.errors import MockEndpointShutdownError, MockEndpointStartError
from ..framework.models import Signal
from ..framework.polling import PollingWaiter

logger = logging.getLogger(__name__)

Attributes = Mapping[str, Any]

_EMPTY: Attributes = MappingProxyType({})

_METRIC_KINDS = ("gauge", "sum", "histogram", "exponential_histogram", "summary")


def decode_any_value(value) -> Any:
    """Convert an OTLP AnyValue into the equivalent Python value."""
    kind = value.WhichOneof("value")
    if kind is None:
        return None
    if kind == "array_value":
        return tuple(decode_any_value(v) for v in value.array_value.values)
    if kind == "kvlist_value":
        return decode_attributes(value.kvlist_value.values)
    return getattr(value, kind)


def decode_attributes(key_values) -> Attributes:
    """Convert a repeated OTLP KeyValue field into a read-only mapping."""
    return MappingProxyType({kv.key: decode_any_value(kv.value) for kv in key_values})


@dataclass(frozen=True)
class ReceivedSpan:
    """A span as seen by the mock endpoint."""

    name: str
    trace_id: str
    span_id: str
    kind: int = 0
    attributes: Attributes = field(default_factory=lambda: _EMPTY)
    resource_attributes: Attributes = field(default_factory=lambda: _EMPTY)
    scope_name: str = ""


@dataclass(frozen=True)
class ReceivedMetric:
    """
    A metric as seen by the mock endpoint.

    Attributes:
        name: Metric name
        kind: OTLP data kind (gauge, sum, histogram, ...)
        data_point_attributes: Attribute set of each data point
        resource_attributes: Attributes of the producing resource
    """

    name: str
    kind: str = ""
    unit: str = ""
    data_point_attributes: tuple[Attributes, ...] = ()
    resource_attributes: Attributes = field(default_factory=lambda: _EMPTY)
    scope_name: str = ""


@dataclass(frozen=True)
class ReceivedLog:
    """A log record as seen by the mock endpoint."""

    body: Any
    severity_text: str = ""
    attributes: Attributes = field(default_factory=lambda: _EMPTY)
    resource_attributes: Attributes = field(default_factory=lambda: _EMPTY)
    scope_name: str = ""


@dataclass(frozen=True)
class SignalSnapshot:
    """Immutable view of everything received up to one instant."""

    spans: tuple[ReceivedSpan, ...] = ()
    metrics: tuple[ReceivedMetric, ...] = ()
    logs: tuple[ReceivedLog, ...] = ()

    @property
    def span_count(self) -> int:
        return len(self.spans)

    @property
    def metric_count(self) -> int:
        return len(self.metrics)

    @property
    def log_count(self) -> int:
        return len(self.logs)

    def count(self, signal: Signal) -> int:
        """Number of received items of one signal kind."""
        return len(self.records(signal))

    def records(self, signal: Signal) -> tuple:
        return {
            Signal.TRACES: self.spans,
            Signal.METRICS: self.metrics,
            Signal.LOGS: self.logs,
        }[signal]

    def spans_named(self, name: str) -> list[ReceivedSpan]:
        return [s for s in self.spans if s.name == name]

    def metrics_named(self, name: str) -> list[ReceivedMetric]:
        return [m for m in self.metrics if m.name == name]

    def span_names(self) -> set[str]:
        return {s.name for s in self.spans}

    def metric_names(self) -> set[str]:
        return {m.name for m in self.metrics}


@dataclass
class SignalStore:
    """Thread-safe accumulator written by the gRPC servicers."""

    spans: list[ReceivedSpan] = field(default_factory=list)
    metrics: list[ReceivedMetric] = field(default_factory=list)
    logs: list[ReceivedLog] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def add_spans(self, spans: list[ReceivedSpan]) -> None:
        with self._lock:
            self.spans.extend(spans)

    def add_metrics(self, metrics: list[ReceivedMetric]) -> None:
        with self._lock:
            self.metrics.extend(metrics)

    def add_logs(self, logs: list[ReceivedLog]) -> None:
        with self._lock:
            self.logs.extend(logs)

    def snapshot(self) -> SignalSnapshot:
        with self._lock:
            return SignalSnapshot(
                spans=tuple(self.spans),
                metrics=tuple(self.metrics),
                logs=tuple(self.logs),
            )

    def counts(self) -> tuple[int, int, int]:
        with self._lock:
            return len(self.spans), len(self.metrics), len(self.logs)

    def clear(self) -> None:
        with self._lock:
            self.spans.clear()
            self.metrics.clear()
            self.logs.clear()


def decode_trace_request(request) -> list[ReceivedSpan]:
    spans = []
    for resource_spans in request.resource_spans:
        resource_attributes = decode_attributes(resource_spans.resource.attributes)
        for scope_spans in resource_spans.scope_spans:
            for span in scope_spans.spans:
                spans.append(
                    ReceivedSpan(
                        name=span.name,
                        trace_id=span.trace_id.hex(),
                        span_id=span.span_id.hex(),
                        kind=span.kind,
                        attributes=decode_attributes(span.attributes),
                        resource_attributes=resource_attributes,
                        scope_name=scope_spans.scope.name,
                    )
                )
    return spans


def decode_metrics_request(request) -> list[ReceivedMetric]:
    metrics = []
    for resource_metrics in request.resource_metrics:
        resource_attributes = decode_attributes(resource_metrics.resource.attributes)
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                kind = metric.WhichOneof("data") or ""
                points = getattr(metric, kind).data_points if kind in _METRIC_KINDS else ()
                metrics.append(
                    ReceivedMetric(
                        name=metric.name,
                        kind=kind,
                        unit=metric.unit,
                        data_point_attributes=tuple(decode_attributes(p.attributes) for p in points),
                        resource_attributes=resource_attributes,
                        scope_name=scope_metrics.scope.name,
                    )
                )
    return metrics


def decode_logs_request(request) -> list[ReceivedLog]:
    logs = []
    for resource_logs in request.resource_logs:
        resource_attributes = decode_attributes(resource_logs.resource.attributes)
        for scope_logs in resource_logs.scope_logs:
            for record in scope_logs.log_records:
                logs.append(
                    ReceivedLog(
                        body=decode_any_value(record.body),
                        severity_text=record.severity_text,
                        attributes=decode_attributes(record.attributes),
                        resource_attributes=resource_attributes,
                        scope_name=scope_logs.scope.name,
                    )
                )
    return logs


class _TraceServicer(trace_service_pb2_grpc.TraceServiceServicer):
    def __init__(self, store: SignalStore):
        self._store = store

    def Export(self, request, context):
        self._store.add_spans(decode_trace_request(request))
        return trace_service_pb2.ExportTraceServiceResponse()


class _MetricsServicer(metrics_service_pb2_grpc.MetricsServiceServicer):
    def __init__(self, store: SignalStore):
        self._store = store

    def Export(self, request, context):
        self._store.add_metrics(decode_metrics_request(request))
        return metrics_service_pb2.ExportMetricsServiceResponse()


class _LogsServicer(logs_service_pb2_grpc.LogsServiceServicer):
    def __init__(self, store: SignalStore):
        self._store = store

    def Export(self, request, context):
        self._store.add_logs(decode_logs_request(request))
        return logs_service_pb2.ExportLogsServiceResponse()


class MockCollector:
    """
    In-process OTLP/gRPC receiver for traces, metrics and logs.

    Usage:
        collector = MockCollector().start()
        ...
        await collector.wait_for_spans(10, timeout_seconds=5)
        collector.shutdown()
    """

    def __init__(
        self,
        bind_host: str = "0.0.0.0",
        port: int = 0,
        max_workers: int = 4,
        waiter: Optional[PollingWaiter] = None,
    ):
        self.bind_host = bind_host
        self.requested_port = port
        self.max_workers = max_workers
        self.waiter = waiter or PollingWaiter()
        self.store = SignalStore()
        self._server: Optional[grpc.Server] = None
        self._port: Optional[int] = None

    @property
    def port(self) -> int:
        if self._port is None:
            raise MockEndpointStartError("Mock collector has not been started")
        return self._port

    @property
    def is_running(self) -> bool:
        return self._server is not None

    def start(self) -> "MockCollector":
        """
        Bind and start serving.

        Raises:
            MockEndpointStartError: If the port cannot be bound
        """
        if self._server is not None:
            return self

        server = grpc.server(futures.ThreadPoolExecutor(max_workers=self.max_workers))
        trace_service_pb2_grpc.add_TraceServiceServicer_to_server(_TraceServicer(self.store), server)
        metrics_service_pb2_grpc.add_MetricsServiceServicer_to_server(_MetricsServicer(self.store), server)
        logs_service_pb2_grpc.add_LogsServiceServicer_to_server(_LogsServicer(self.store), server)

        address = f"{self.bind_host}:{self.requested_port}"
        try:
            port = server.add_insecure_port(address)
        except RuntimeError as e:
            raise MockEndpointStartError(f"Failed to bind mock collector on {address}: {e}") from e
        if port == 0:
            raise MockEndpointStartError(f"Failed to bind mock collector on {address}")

        server.start()
        self._server = server
        self._port = port
        logger.info("Mock collector listening on %s:%d", self.bind_host, port)
        return self

    def shutdown(self, grace_seconds: float = 1.0) -> None:
        """
        Stop serving. Safe to call more than once.

        Raises:
            MockEndpointShutdownError: If the server does not stop within the grace period
        """
        server, self._server = self._server, None
        if server is None:
            return
        stopped = server.stop(grace_seconds)
        if not stopped.wait(grace_seconds + 5.0):
            raise MockEndpointShutdownError(
                f"Mock collector on port {self._port} did not stop within {grace_seconds + 5.0}s"
            )
        logger.info("Mock collector on port %s stopped", self._port)

    def endpoint(self, host: str = "127.0.0.1") -> str:
        """Address in ``host:port`` form, as OTLP exporters expect it."""
        return f"{host}:{self.port}"

    def snapshot(self) -> SignalSnapshot:
        return self.store.snapshot()

    def span_count(self) -> int:
        return self.store.counts()[0]

    def metric_count(self) -> int:
        return self.store.counts()[1]

    def log_count(self) -> int:
        return self.store.counts()[2]

    def count(self, signal: Signal) -> int:
        spans, metrics, logs = self.store.counts()
        return {Signal.TRACES: spans, Signal.METRICS: metrics, Signal.LOGS: logs}[signal]

    def clear(self) -> None:
        self.store.clear()

    async def wait_until(
        self,
        predicate: Callable[[SignalSnapshot], bool],
        timeout_seconds: float,
        description: str = "predicate over received signals",
    ) -> float:
        """Poll snapshots until ``predicate`` holds; see PollingWaiter.wait_until."""
        return await self.waiter.wait_until(
            lambda: predicate(self.snapshot()), timeout_seconds, description
        )

    async def wait_for(self, signal: Signal, count: int, timeout_seconds: float) -> float:
        return await self.waiter.wait_until(
            lambda: self.count(signal) >= count,
            timeout_seconds,
            f"at least {count} {signal.value} received",
        )

    async def wait_for_spans(self, count: int, timeout_seconds: float) -> float:
        return await self.wait_for(Signal.TRACES, count, timeout_seconds)

    async def wait_for_metrics(self, count: int, timeout_seconds: float) -> float:
        return await self.wait_for(Signal.METRICS, count, timeout_seconds)

    async def wait_for_logs(self, count: int, timeout_seconds: float) -> float:
        return await self.wait_for(Signal.LOGS, count, timeout_seconds)
