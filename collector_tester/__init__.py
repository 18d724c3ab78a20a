"""
Collector pipeline testing framework.

Drives synthetic telemetry into an OpenTelemetry collector running in a
container, samples the collector's memory while it works, and verifies what
reaches a mock OTLP endpoint downstream.
"""

__version__ = "0.1.0"
