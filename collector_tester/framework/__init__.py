"""
Shared building blocks for the collector testing framework.

Port allocation, polling, pacing, configuration loading and the error
hierarchy used by every other subpackage.
"""

from .errors import (
    CollectorTesterError,
    ConfigValidationError,
    HarnessError,
    NoSampleError,
    SignalAssertionError,
    TelemetryError,
    WaitTimeoutError,
)
from .models import Signal
from .pacing import Ticker
from .polling import PollingWaiter
from .ports import PortAllocator, PortPair

__all__ = [
    "CollectorTesterError",
    "ConfigValidationError",
    "HarnessError",
    "NoSampleError",
    "PollingWaiter",
    "PortAllocator",
    "PortPair",
    "Signal",
    "SignalAssertionError",
    "TelemetryError",
    "Ticker",
    "WaitTimeoutError",
]
