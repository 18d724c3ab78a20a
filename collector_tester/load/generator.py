"""
Steady-rate synthetic telemetry generator.

Emits spans, metric measurements and log records through a TelemetryClient
at the rates of a LoadProfile, then flushes everything before reporting.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Optional

from opentelemetry.trace import SpanKind

from ..framework.models import Signal
from ..framework.pacing import Ticker
from .config import LoadProfile
from .models import LoadStats
from .telemetry import TelemetryClient

logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "collector_tester.load"
METRIC_NAME = "load.generator.measurements"


def span_name(sequence: int, unique_names: int) -> str:
    """Round-robin span name for the ``sequence``-th span."""
    return f"load-span-{sequence % unique_names}"


def span_attributes(sequence: int, count: int) -> dict[str, str]:
    """Attributes for one span; values are unique per emission."""
    return {f"attr-{i}": f"value-{sequence}" for i in range(count)}


class LoadGenerator:
    """
    Drives a LoadProfile through a TelemetryClient.

    All enabled signals share one loop. Each signal has its own Ticker and the
    loop always serves the earliest due one, so the three rates never skew
    each other.
    """

    def __init__(self, client: TelemetryClient, profile: LoadProfile):
        self.client = client
        self.profile = profile
        self._tracer = client.tracer(INSTRUMENTATION_NAME)
        self._counter = client.meter(INSTRUMENTATION_NAME).create_counter(
            METRIC_NAME, unit="1", description="Measurements recorded by the load generator"
        )
        self._log = client.logger(INSTRUMENTATION_NAME)

    def _emit_span(self, sequence: int) -> None:
        span = self._tracer.start_span(
            span_name(sequence, self.profile.unique_span_names),
            kind=SpanKind.INTERNAL,
            attributes=span_attributes(sequence, self.profile.attributes_per_span),
        )
        span.end()

    def _emit_metric(self, sequence: int) -> None:
        self._counter.add(1, {"series": f"series-{sequence % self.profile.unique_span_names}"})

    def _emit_log(self, sequence: int) -> None:
        self._log.info("load-log-%d", sequence, extra={"load.sequence": sequence})

    def _emitters(self) -> dict[Signal, tuple[float, Callable[[int], None]]]:
        rates = {
            Signal.TRACES: (self.profile.spans_per_second, self._emit_span),
            Signal.METRICS: (self.profile.metrics_per_second, self._emit_metric),
            Signal.LOGS: (self.profile.logs_per_second, self._emit_log),
        }
        return {signal: entry for signal, entry in rates.items() if entry[0] > 0}

    async def run(self) -> LoadStats:
        """
        Emit for ``profile.duration_seconds``, then flush.

        Emission failures are counted in ``LoadStats.errors`` and do not stop
        the run.

        Returns:
            LoadStats with ``elapsed_seconds`` measured after the flush

        Raises:
            FlushError: If the final flush times out
        """
        stats = LoadStats(start_time=datetime.utcnow())
        sent = {Signal.TRACES: 0, Signal.METRICS: 0, Signal.LOGS: 0}
        duration = self.profile.duration_seconds

        start = time.monotonic()
        emitters = self._emitters()
        tickers = {signal: Ticker(1.0 / rate, start=start) for signal, (rate, _) in emitters.items()}

        while tickers:
            signal, ticker = min(tickers.items(), key=lambda item: item[1].next_due)
            if ticker.next_offset >= duration:
                break
            await ticker.tick()
            try:
                emitters[signal][1](sent[signal])
                sent[signal] += 1
            except Exception as e:
                stats.errors += 1
                logger.debug("Failed to emit %s #%d: %s", signal.value, sent[signal], e)

        remaining = start + duration - time.monotonic()
        if remaining > 0:
            await asyncio.sleep(remaining)

        await asyncio.to_thread(self.client.flush)

        stats.spans_sent = sent[Signal.TRACES]
        stats.metrics_sent = sent[Signal.METRICS]
        stats.logs_sent = sent[Signal.LOGS]
        stats.elapsed_seconds = time.monotonic() - start
        stats.end_time = datetime.utcnow()

        logger.info(
            "Load run finished: %d spans, %d metrics, %d logs, %d errors in %.2fs",
            stats.spans_sent, stats.metrics_sent, stats.logs_sent, stats.errors,
            stats.elapsed_seconds,
        )
        return stats


async def generate_load(client: TelemetryClient, profile: Optional[LoadProfile] = None) -> LoadStats:
    """Convenience wrapper running one LoadGenerator."""
    return await LoadGenerator(client, profile or LoadProfile()).run()
