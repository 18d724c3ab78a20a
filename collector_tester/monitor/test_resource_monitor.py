"""
Tests for memory sampling and growth analysis.
"""

import os
import time
from datetime import datetime
from typing import Optional
from unittest.mock import MagicMock

import psutil
import pytest
from hypothesis import given
from hypothesis import strategies as st

from collector_tester.framework.errors import NoSampleError
from collector_tester.harness.runtime import MemoryStats
from collector_tester.monitor.models import MemoryAnalysis, MemorySample
from collector_tester.monitor.resource_monitor import ProcessStatsSource, ResourceMonitor

MB = 1_000_000


def sample(timestamp: float, usage: int) -> MemorySample:
    return MemorySample(timestamp=timestamp, usage_bytes=usage, captured_at=datetime(2024, 1, 1))


def analysis_with_growth(growth: float, max_bytes: int = 100 * MB) -> MemoryAnalysis:
    return MemoryAnalysis(
        min_bytes=0,
        max_bytes=max_bytes,
        avg_bytes=max_bytes // 2,
        sample_count=2,
        growth_rate_bytes_per_sec=growth,
    )


class SequenceSource:
    """Returns canned readings, then None once exhausted."""

    def __init__(self, usages: list[int]):
        self.usages = list(usages)
        self.reads = 0

    async def read(self) -> Optional[MemoryStats]:
        self.reads += 1
        if not self.usages:
            return None
        return MemoryStats(usage_bytes=self.usages.pop(0), max_usage_bytes=0, limit_bytes=512 * MB)


class ConstantSource:
    description = "constant source"

    async def read(self) -> Optional[MemoryStats]:
        return MemoryStats(usage_bytes=50 * MB)


class TestMemoryAnalysis:
    """Tests for MemoryAnalysis.from_samples."""

    def test_two_samples_growth_rate(self):
        analysis = MemoryAnalysis.from_samples([sample(0, 100 * MB), sample(10, 200 * MB)])

        assert analysis.growth_rate_bytes_per_sec == 10_000_000
        assert analysis.min_bytes == 100 * MB
        assert analysis.max_bytes == 200 * MB
        assert analysis.avg_bytes == 150 * MB
        assert analysis.sample_count == 2

    def test_growth_uses_only_first_and_last_sample(self):
        analysis = MemoryAnalysis.from_samples([
            sample(0, 100),
            sample(1, 10_000),
            sample(2, 0),
            sample(4, 140),
        ])

        assert analysis.growth_rate_bytes_per_sec == 10.0
        assert analysis.max_bytes == 10_000

    def test_average_is_floored(self):
        analysis = MemoryAnalysis.from_samples([sample(0, 1), sample(1, 2)])
        assert analysis.avg_bytes == 1

    def test_no_samples_gives_zeroes(self):
        assert MemoryAnalysis.from_samples([]) == MemoryAnalysis()

    def test_single_sample_has_no_growth(self):
        analysis = MemoryAnalysis.from_samples([sample(5, 42)])
        assert analysis.growth_rate_bytes_per_sec == 0.0
        assert analysis.sample_count == 1

    def test_zero_time_span_has_no_growth(self):
        analysis = MemoryAnalysis.from_samples([sample(3, 10), sample(3, 1000)])
        assert analysis.growth_rate_bytes_per_sec == 0.0

    def test_megabyte_helpers_use_decimal_units(self):
        analysis = MemoryAnalysis.from_samples([sample(0, 100 * MB), sample(10, 200 * MB)])
        assert analysis.max_mb == 200.0
        assert analysis.growth_rate_mb_per_sec == 10.0

    def test_keeps_most_recent_reported_limit(self):
        samples = [
            MemorySample(timestamp=0, usage_bytes=1, limit_bytes=512 * MB, captured_at=datetime(2024, 1, 1)),
            MemorySample(timestamp=1, usage_bytes=2, limit_bytes=256 * MB, captured_at=datetime(2024, 1, 1)),
            sample(2, 3),
        ]

        analysis = MemoryAnalysis.from_samples(samples)

        assert analysis.limit_bytes == 256 * MB
        assert analysis.to_dict()["limit_bytes"] == 256 * MB
        assert MemoryAnalysis.from_samples([sample(0, 1)]).limit_bytes is None

    def test_would_exceed_limit(self):
        analysis = analysis_with_growth(1 * MB, max_bytes=100 * MB)
        assert analysis.would_exceed_limit_in(150 * MB, 60)
        assert not analysis.would_exceed_limit_in(200 * MB, 60)


@pytest.mark.property
class TestMemoryAnalysisProperties:
    """Property tests for leak heuristics."""

    @given(
        low=st.floats(min_value=-1e9, max_value=1e9, allow_nan=False),
        high=st.floats(min_value=-1e9, max_value=1e9, allow_nan=False),
        threshold=st.floats(min_value=-1e9, max_value=1e9, allow_nan=False),
    )
    def test_unbounded_growth_is_monotonic_in_rate(self, low, high, threshold):
        low, high = min(low, high), max(low, high)
        if analysis_with_growth(low).has_unbounded_growth(threshold):
            assert analysis_with_growth(high).has_unbounded_growth(threshold)

    @given(
        growth=st.floats(min_value=-1e9, max_value=0, allow_nan=False),
        max_bytes=st.integers(min_value=0, max_value=10**12),
        limit=st.integers(min_value=0, max_value=10**12),
        future=st.floats(min_value=0, max_value=1e7, allow_nan=False),
    )
    def test_never_exceeds_limit_without_growth(self, growth, max_bytes, limit, future):
        analysis = analysis_with_growth(growth, max_bytes=max_bytes)
        assert not analysis.would_exceed_limit_in(limit, future)

    @given(st.lists(st.integers(min_value=0, max_value=10**11), min_size=1, max_size=50))
    def test_min_avg_max_ordering(self, usages):
        analysis = MemoryAnalysis.from_samples([sample(float(i), u) for i, u in enumerate(usages)])
        assert analysis.min_bytes <= analysis.avg_bytes <= analysis.max_bytes
        assert analysis.sample_count == len(usages)


class TestResourceMonitor:
    """Tests for ResourceMonitor sampling."""

    @pytest.mark.asyncio
    async def test_sample_records_reading(self):
        monitor = ResourceMonitor(SequenceSource([10 * MB]))

        taken = await monitor.sample()

        assert taken.usage_bytes == 10 * MB
        assert taken.limit_bytes == 512 * MB
        assert monitor.samples == [taken]

    @pytest.mark.asyncio
    async def test_missing_reading_raises_no_sample_error(self):
        monitor = ResourceMonitor(SequenceSource([]))

        with pytest.raises(NoSampleError):
            await monitor.sample()

        assert monitor.samples == []

    @pytest.mark.asyncio
    async def test_monitor_continuous_sample_count_and_order(self):
        monitor = ResourceMonitor(ConstantSource())
        start = time.monotonic()

        samples = await monitor.monitor_continuous(0.5, 0.05)

        assert len(samples) == 10
        timestamps = [s.timestamp for s in samples]
        assert all(a < b for a, b in zip(timestamps, timestamps[1:]))
        assert time.monotonic() - start >= 0.5

    @pytest.mark.asyncio
    async def test_monitor_continuous_stops_on_first_failure(self):
        source = SequenceSource([1, 2, 3])
        monitor = ResourceMonitor(source)

        with pytest.raises(NoSampleError):
            await monitor.monitor_continuous(1.0, 0.01)

        assert source.reads == 4
        assert [s.usage_bytes for s in monitor.samples] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_samples_returns_copy_and_clear_resets(self):
        monitor = ResourceMonitor(ConstantSource())
        await monitor.sample()

        monitor.samples.clear()
        assert len(monitor.samples) == 1

        monitor.clear_samples()
        assert monitor.samples == []
        assert monitor.analyse() == MemoryAnalysis()

    @pytest.mark.asyncio
    async def test_for_process_samples_current_process(self):
        monitor = ResourceMonitor.for_process(os.getpid())

        first = await monitor.sample()
        second = await monitor.sample()

        assert first.usage_bytes > 0
        assert second.peak_usage_bytes >= max(first.usage_bytes, second.usage_bytes)

    @pytest.mark.asyncio
    async def test_process_source_returns_none_for_exited_process(self):
        source = ProcessStatsSource(os.getpid())
        source.pid = -1
        source._process = MagicMock()
        source._process.memory_info.side_effect = psutil.NoSuchProcess(pid=-1)

        assert await source.read() is None

