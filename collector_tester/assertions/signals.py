"""
Polling checks over the telemetry a mock endpoint has received.

Every check comes in two forms. ``check_*`` returns a CheckResult and never
raises on failure; ``assert_*`` raises SignalAssertionError carrying that
result. Infrastructure problems (a check that itself raises) propagate
unchanged from both.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..framework.errors import SignalAssertionError, WaitTimeoutError
from ..framework.models import Signal
from ..framework.polling import PollingWaiter
from ..harness.mock_collector import MockCollector, SignalSnapshot

logger = logging.getLogger(__name__)


def format_attribute_value(value: Any) -> str:
    """String form used when comparing attribute values."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class CheckResult:
    """
    Outcome of one check.

    Attributes:
        passed: Whether the condition held
        description: What was checked
        timeout_seconds: How long the check was allowed to wait
        observed: State seen at the end (counts, names, attribute values)
        elapsed_seconds: How long the check actually took
    """

    passed: bool
    description: str
    timeout_seconds: float
    observed: str = ""
    elapsed_seconds: float = 0.0

    def __bool__(self) -> bool:
        return self.passed

    def __str__(self) -> str:
        status = "passed" if self.passed else "failed"
        text = f"{self.description}: {status} after {self.elapsed_seconds:.2f}s (timeout {self.timeout_seconds:.2f}s)"
        if self.observed:
            text += f"; observed {self.observed}"
        return text

    def raise_for_failure(self) -> "CheckResult":
        if not self.passed:
            raise SignalAssertionError(self)
        return self


class SignalAssertions:
    """
    Checks against one MockCollector.

    Usage:
        checks = SignalAssertions(harness.mock_collector())
        await checks.assert_spans_received(200, timeout_seconds=5)
        await checks.assert_span_has_attribute("checkout", "env", "prod", 5)
    """

    def __init__(self, collector: MockCollector, waiter: Optional[PollingWaiter] = None):
        self.collector = collector
        self.waiter = waiter or PollingWaiter()

    async def _poll(
        self,
        predicate: Callable[[SignalSnapshot], bool],
        observe: Callable[[SignalSnapshot], str],
        timeout_seconds: float,
        description: str,
    ) -> CheckResult:
        try:
            elapsed = await self.waiter.wait_until(
                lambda: predicate(self.collector.snapshot()), timeout_seconds, description
            )
        except WaitTimeoutError as e:
            result = CheckResult(
                passed=False,
                description=description,
                timeout_seconds=timeout_seconds,
                observed=observe(self.collector.snapshot()),
                elapsed_seconds=e.elapsed_seconds,
            )
            logger.debug("%s", result)
            return result
        return CheckResult(
            passed=True,
            description=description,
            timeout_seconds=timeout_seconds,
            observed=observe(self.collector.snapshot()),
            elapsed_seconds=elapsed,
        )

    async def check_signal_count_at_least(
        self, signal: Signal, count: int, timeout_seconds: float
    ) -> CheckResult:
        return await self._poll(
            lambda snap: snap.count(signal) >= count,
            lambda snap: f"{snap.count(signal)} {signal.value}",
            timeout_seconds,
            f"at least {count} {signal.value} received",
        )

    async def check_span_exists(self, name: str, timeout_seconds: float) -> CheckResult:
        return await self._poll(
            lambda snap: any(s.name == name for s in snap.spans),
            lambda snap: f"span names {sorted(snap.span_names())}",
            timeout_seconds,
            f"span '{name}' exists",
        )

    async def check_span_absent(self, name: str, wait_seconds: float) -> CheckResult:
        """
        Wait a fixed time, then check once that no span named ``name`` arrived.

        Absence cannot be polled for; the wait is the window in which a
        misrouted span would have shown up.
        """
        await asyncio.sleep(wait_seconds)
        matches = self.collector.snapshot().spans_named(name)
        return CheckResult(
            passed=not matches,
            description=f"span '{name}' absent",
            timeout_seconds=wait_seconds,
            observed=f"{len(matches)} matching span(s)",
            elapsed_seconds=wait_seconds,
        )

    async def check_span_has_attribute(
        self, name: str, key: str, value: str, timeout_seconds: float
    ) -> CheckResult:
        """Wait for span ``name`` to exist, then require ``key == value`` on at least one match."""
        exists = await self.check_span_exists(name, timeout_seconds)
        if not exists.passed:
            return exists

        description = f"span '{name}' has attribute {key}={value}"
        spans = self.collector.snapshot().spans_named(name)
        seen = [
            format_attribute_value(s.attributes[key]) if key in s.attributes else None
            for s in spans
        ]
        return CheckResult(
            passed=value in seen,
            description=description,
            timeout_seconds=timeout_seconds,
            observed=f"{key} values {seen}",
            elapsed_seconds=exists.elapsed_seconds,
        )

    async def check_metric_exists(self, name: str, timeout_seconds: float) -> CheckResult:
        return await self._poll(
            lambda snap: any(m.name == name for m in snap.metrics),
            lambda snap: f"metric names {sorted(snap.metric_names())}",
            timeout_seconds,
            f"metric '{name}' exists",
        )

    async def check_log_exists(self, body: str, timeout_seconds: float) -> CheckResult:
        return await self._poll(
            lambda snap: any(format_attribute_value(r.body) == body for r in snap.logs),
            lambda snap: f"{snap.log_count} log(s)",
            timeout_seconds,
            f"log with body '{body}' exists",
        )

    async def check_resource_attribute(
        self, signal: Signal, key: str, value: str, timeout_seconds: float
    ) -> CheckResult:
        """Wait until some received ``signal`` record carries resource attribute ``key == value``."""

        def matches(snap: SignalSnapshot) -> bool:
            return any(
                key in r.resource_attributes
                and format_attribute_value(r.resource_attributes[key]) == value
                for r in snap.records(signal)
            )

        def observe(snap: SignalSnapshot) -> str:
            values = sorted({
                format_attribute_value(r.resource_attributes[key])
                for r in snap.records(signal)
                if key in r.resource_attributes
            })
            return f"{snap.count(signal)} {signal.value}, {key} values {values}"

        return await self._poll(
            matches,
            observe,
            timeout_seconds,
            f"{signal.value} resource attribute {key}={value}",
        )

    def span_count(self) -> int:
        return self.collector.span_count()

    def metric_count(self) -> int:
        return self.collector.metric_count()

    def log_count(self) -> int:
        return self.collector.log_count()

    async def assert_signal_count_at_least(
        self, signal: Signal, count: int, timeout_seconds: float
    ) -> CheckResult:
        result = await self.check_signal_count_at_least(signal, count, timeout_seconds)
        return result.raise_for_failure()

    async def assert_spans_received(self, count: int, timeout_seconds: float) -> CheckResult:
        return await self.assert_signal_count_at_least(Signal.TRACES, count, timeout_seconds)

    async def assert_metrics_received(self, count: int, timeout_seconds: float) -> CheckResult:
        return await self.assert_signal_count_at_least(Signal.METRICS, count, timeout_seconds)

    async def assert_logs_received(self, count: int, timeout_seconds: float) -> CheckResult:
        return await self.assert_signal_count_at_least(Signal.LOGS, count, timeout_seconds)

    async def assert_span_exists(self, name: str, timeout_seconds: float) -> CheckResult:
        return (await self.check_span_exists(name, timeout_seconds)).raise_for_failure()

    async def assert_span_absent(self, name: str, wait_seconds: float) -> CheckResult:
        return (await self.check_span_absent(name, wait_seconds)).raise_for_failure()

    async def assert_span_has_attribute(
        self, name: str, key: str, value: str, timeout_seconds: float
    ) -> CheckResult:
        result = await self.check_span_has_attribute(name, key, value, timeout_seconds)
        return result.raise_for_failure()

    async def assert_metric_exists(self, name: str, timeout_seconds: float) -> CheckResult:
        return (await self.check_metric_exists(name, timeout_seconds)).raise_for_failure()

    async def assert_log_exists(self, body: str, timeout_seconds: float) -> CheckResult:
        return (await self.check_log_exists(body, timeout_seconds)).raise_for_failure()

    async def assert_resource_attribute(
        self, signal: Signal, key: str, value: str, timeout_seconds: float
    ) -> CheckResult:
        result = await self.check_resource_attribute(signal, key, value, timeout_seconds)
        return result.raise_for_failure()
