"""
Coordinated load test: load generation and memory sampling over one window.

This module runs a LoadGenerator and a ResourceMonitor concurrently against
the same harness and folds both outcomes into a single LoadTestResult.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Protocol

from ..framework.errors import CollectorTesterError
from ..load.config import LoadProfile
from ..load.generator import LoadGenerator
from ..load.models import LoadStats
from ..load.telemetry import ExportProtocol, TelemetryClient
from .models import MemoryAnalysis
from .resource_monitor import ResourceMonitor, StatsSource

logger = logging.getLogger(__name__)

DEFAULT_MONITOR_INTERVAL_SECONDS = 0.5


class LoadTarget(Protocol):
    """What the coordinator needs from a harness."""

    def endpoint(self) -> str:
        ...

    def http_endpoint(self) -> str:
        ...

    def stats_source(self) -> StatsSource:
        ...


@dataclass(frozen=True)
class LoadTestResult:
    """
    Correlated outcome of one coordinated load test.

    Attributes:
        load_stats: What the generator sent
        memory_analysis: How the collector's memory behaved meanwhile
        started_at: Wall clock start of the shared window
        finished_at: Wall clock end of the shared window
    """

    load_stats: LoadStats
    memory_analysis: MemoryAnalysis
    started_at: datetime
    finished_at: datetime

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def has_memory_leak(self, threshold_bytes_per_sec: float) -> bool:
        return self.memory_analysis.has_unbounded_growth(threshold_bytes_per_sec)

    def would_oom_in(self, limit_bytes: int, future_seconds: float) -> bool:
        return self.memory_analysis.would_exceed_limit_in(limit_bytes, future_seconds)

    def summary(self) -> str:
        """Human-readable multi-line report."""
        stats = self.load_stats
        memory = self.memory_analysis
        return "\n".join([
            "Load Test Results",
            "=================",
            f"Duration: {stats.elapsed_seconds:.2f}s",
            "",
            "Load:",
            f"  Spans sent:   {stats.spans_sent} ({stats.spans_per_second():.1f}/s)",
            f"  Metrics sent: {stats.metrics_sent} ({stats.metrics_per_second():.1f}/s)",
            f"  Logs sent:    {stats.logs_sent} ({stats.logs_per_second():.1f}/s)",
            f"  Errors:       {stats.errors}",
            "",
            "Memory:",
            f"  Min:    {memory.min_mb:.2f} MB",
            f"  Max:    {memory.max_mb:.2f} MB",
            f"  Avg:    {memory.avg_mb:.2f} MB",
            f"  Growth: {memory.growth_rate_mb_per_sec:.4f} MB/s",
            f"  Samples: {memory.sample_count}",
        ])

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "load": self.load_stats.to_dict(),
            "memory": self.memory_analysis.to_dict(),
        }


class LoadTestCoordinator:
    """
    Runs load generation and memory monitoring concurrently.

    Both halves share the profile duration. Whatever happens to one of them,
    the other is awaited to completion before the result or error is
    returned.
    """

    def __init__(
        self,
        client_factory: Optional[Callable[[str], TelemetryClient]] = None,
        monitor_factory: Optional[Callable[[StatsSource], ResourceMonitor]] = None,
        protocol: ExportProtocol = ExportProtocol.GRPC,
    ):
        self.protocol = ExportProtocol(protocol)
        self.client_factory = client_factory or self._connect
        self.monitor_factory = monitor_factory or ResourceMonitor

    def _connect(self, endpoint: str) -> TelemetryClient:
        return TelemetryClient.connect(endpoint, protocol=self.protocol)

    async def run_load_test(
        self,
        harness: LoadTarget,
        profile: LoadProfile,
        monitor_interval_seconds: float = DEFAULT_MONITOR_INTERVAL_SECONDS,
    ) -> LoadTestResult:
        """Run one coordinated load test.

        Args:
            harness: Running harness providing the ingress endpoint and stats
            profile: Load to generate; its duration also bounds monitoring
            monitor_interval_seconds: Time between memory samples

        Returns:
            LoadTestResult for the shared window

        Raises:
            The generator's error if it failed, otherwise the monitor's. When
            both fail, the monitor's error is logged.
        """
        if self.protocol is ExportProtocol.HTTP:
            endpoint = harness.http_endpoint()
        else:
            endpoint = harness.endpoint()
        client = self.client_factory(endpoint)
        monitor = self.monitor_factory(harness.stats_source())
        generator = LoadGenerator(client, profile)

        started_at = datetime.utcnow()
        try:
            load_outcome, monitor_outcome = await asyncio.gather(
                generator.run(),
                monitor.monitor_continuous(profile.duration_seconds, monitor_interval_seconds),
                return_exceptions=True,
            )
        finally:
            try:
                await asyncio.to_thread(client.shutdown)
            except CollectorTesterError as e:
                logger.warning("Telemetry client shutdown failed: %s", e)
        finished_at = datetime.utcnow()

        if isinstance(load_outcome, BaseException):
            if isinstance(monitor_outcome, BaseException):
                logger.error("Resource monitoring also failed: %s", monitor_outcome)
            raise load_outcome
        if isinstance(monitor_outcome, BaseException):
            raise monitor_outcome

        result = LoadTestResult(
            load_stats=load_outcome,
            memory_analysis=monitor.analyse(),
            started_at=started_at,
            finished_at=finished_at,
        )
        logger.info(
            "Load test finished: %d spans sent, %d memory samples, growth %.0f B/s",
            result.load_stats.spans_sent,
            result.memory_analysis.sample_count,
            result.memory_analysis.growth_rate_bytes_per_sec,
        )
        return result
