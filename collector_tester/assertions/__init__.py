"""
Checks over telemetry received by the mock endpoint.
"""

from .signals import CheckResult, SignalAssertions

__all__ = ["CheckResult", "SignalAssertions"]
