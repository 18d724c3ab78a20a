"""
Memory monitoring and coordinated load tests.
"""

from .coordinator import LoadTestCoordinator, LoadTestResult
from .models import MemoryAnalysis, MemorySample
from .resource_monitor import ProcessStatsSource, ResourceMonitor, StatsSource

__all__ = [
    "LoadTestCoordinator",
    "LoadTestResult",
    "MemoryAnalysis",
    "MemorySample",
    "ProcessStatsSource",
    "ResourceMonitor",
    "StatsSource",
]
