"""
Exception hierarchy for the collector testing framework.

Infrastructure failures derive from CollectorTesterError. A failed check
against received telemetry raises SignalAssertionError, which is an
AssertionError and deliberately sits outside that hierarchy so test outcomes
and broken environments stay distinguishable.
"""

from typing import Any, Optional


class CollectorTesterError(Exception):
    """Base class for infrastructure errors raised by the framework."""


class ConfigValidationError(CollectorTesterError):
    """Raised when configuration validation fails."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class HarnessError(CollectorTesterError):
    """Raised when the pipeline harness cannot be set up or torn down."""


class PortAllocationError(HarnessError):
    """Raised when the OS refuses to hand out an ephemeral port."""


class MockEndpointStartError(HarnessError):
    """Raised when the mock OTLP endpoint cannot start serving."""


class MockEndpointShutdownError(HarnessError):
    """Raised when the mock OTLP endpoint does not stop cleanly."""


class PipelineStartError(HarnessError):
    """Raised when the collector container fails to start or become ready."""

    def __init__(self, message: str, logs: str = ""):
        super().__init__(message)
        self.logs = logs


class PipelineShutdownError(HarnessError):
    """Raised when the collector container cannot be stopped."""


class RuntimeCommandError(CollectorTesterError):
    """Raised when a container runtime command fails."""

    def __init__(
        self,
        message: str,
        cmd: Optional[list[str]] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.cmd = cmd or []
        self.returncode = returncode
        self.stderr = stderr


class NoSampleError(CollectorTesterError):
    """Raised when the stats source has no reading for the monitored process."""


class TelemetryError(CollectorTesterError):
    """Base class for telemetry client failures, tagged with the signal."""

    def __init__(self, message: str, signal: str):
        super().__init__(message)
        self.signal = signal


class ExporterBuildError(TelemetryError):
    """Raised when an OTLP exporter or provider cannot be constructed."""


class FlushError(TelemetryError):
    """Raised when a provider does not flush within its timeout."""


class TelemetryShutdownError(TelemetryError):
    """Raised when a provider fails to shut down."""


class WaitTimeoutError(CollectorTesterError, TimeoutError):
    """Raised when a polled condition does not hold before its deadline."""

    def __init__(self, description: str, timeout_seconds: float, elapsed_seconds: float):
        super().__init__(
            f"Timed out after {elapsed_seconds:.3f}s (timeout {timeout_seconds:.3f}s) "
            f"waiting for: {description}"
        )
        self.description = description
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds


class SignalAssertionError(AssertionError):
    """
    Raised when a check against received telemetry fails.

    Attributes:
        result: The failed CheckResult with description, timeout and
            observed state
    """

    def __init__(self, result: Any):
        super().__init__(str(result))
        self.result = result
