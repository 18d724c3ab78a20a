"""
Synthetic load generation against the collector under test.
"""

from .config import LoadProfile, load_profile
from .generator import LoadGenerator, generate_load
from .models import LoadStats
from .telemetry import ExportProtocol, TelemetryClient

__all__ = [
    "ExportProtocol",
    "LoadGenerator",
    "LoadProfile",
    "LoadStats",
    "TelemetryClient",
    "generate_load",
    "load_profile",
]
