"""
Fixed-cadence memory sampling of the collector under test.

This module samples memory usage from a stats source, keeps the history for
one monitoring session, and summarises it into a MemoryAnalysis.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Optional, Protocol

import psutil

from ..framework.errors import NoSampleError
from ..framework.pacing import Ticker
from ..harness.runtime import ContainerRuntime, ContainerStatsSource, MemoryStats
from .models import MemoryAnalysis, MemorySample

logger = logging.getLogger(__name__)


class StatsSource(Protocol):
    """Produces one memory reading on demand, or None if the target is gone."""

    async def read(self) -> Optional[MemoryStats]:
        ...


class ProcessStatsSource:
    """
    Reads resident memory of a local process via psutil.

    psutil has no peak value for RSS, so the peak is the highest reading
    this source has returned.
    """

    def __init__(self, pid: int):
        self.pid = pid
        self._process = psutil.Process(pid)
        self._peak = 0

    def _read_sync(self) -> Optional[MemoryStats]:
        try:
            rss = self._process.memory_info().rss
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            return None
        self._peak = max(self._peak, rss)
        return MemoryStats(usage_bytes=rss, max_usage_bytes=self._peak, limit_bytes=None)

    async def read(self) -> Optional[MemoryStats]:
        return await asyncio.to_thread(self._read_sync)

    @property
    def description(self) -> str:
        return f"process {self.pid}"


class ResourceMonitor:
    """
    Samples memory of one target and owns the resulting history.

    Usage:
        monitor = ResourceMonitor.for_process(pid)
        samples = await monitor.monitor_continuous(10, 0.5)
        analysis = monitor.analyse()
    """

    def __init__(self, source: StatsSource):
        self.source = source
        self._samples: list[MemorySample] = []

    @classmethod
    def for_container(cls, runtime: ContainerRuntime, container_id: str) -> "ResourceMonitor":
        return cls(ContainerStatsSource(runtime, container_id))

    @classmethod
    def for_process(cls, pid: int) -> "ResourceMonitor":
        return cls(ProcessStatsSource(pid))

    @property
    def samples(self) -> list[MemorySample]:
        """Copy of the samples collected so far."""
        return list(self._samples)

    def clear_samples(self) -> None:
        self._samples.clear()

    async def sample(self) -> MemorySample:
        """
        Take one reading and append it to the history.

        Raises:
            NoSampleError: If the source has no reading
        """
        stats = await self.source.read()
        if stats is None:
            description = getattr(self.source, "description", "stats source")
            raise NoSampleError(f"No memory stats available from {description}")

        sample = MemorySample(
            timestamp=time.monotonic(),
            usage_bytes=stats.usage_bytes,
            peak_usage_bytes=stats.max_usage_bytes,
            limit_bytes=stats.limit_bytes,
            captured_at=datetime.utcnow(),
        )
        self._samples.append(sample)
        return sample

    async def monitor_continuous(
        self,
        duration_seconds: float,
        interval_seconds: float,
    ) -> list[MemorySample]:
        """
        Sample every ``interval_seconds`` for ``duration_seconds``.

        The first sample is taken immediately. The first failed sample ends
        the session with that error.

        Returns:
            Copy of all samples held by the monitor afterwards

        Raises:
            NoSampleError: If the source stops returning readings
        """
        start = time.monotonic()
        ticker = Ticker(interval_seconds, start=start)

        while ticker.next_offset < duration_seconds:
            await ticker.tick()
            await self.sample()

        remaining = start + duration_seconds - time.monotonic()
        if remaining > 0:
            await asyncio.sleep(remaining)

        logger.debug(
            "Collected %d samples over %.2fs", len(self._samples), time.monotonic() - start
        )
        return self.samples

    def analyse(self) -> MemoryAnalysis:
        return MemoryAnalysis.from_samples(self._samples)
