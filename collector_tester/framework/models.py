"""
Shared data models for the collector testing framework.
"""

from enum import Enum


class Signal(Enum):
    """Telemetry signal kinds carried by an OTLP pipeline."""

    TRACES = "traces"
    METRICS = "metrics"
    LOGS = "logs"
