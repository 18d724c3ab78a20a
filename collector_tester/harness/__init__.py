"""
Collector pipeline harness.

Runs the collector under test in a container and points its exporters at an
in-process mock OTLP endpoint.
"""

from .config import HarnessConfig, harness_config
from .harness import PipelineHarness, harness_session
from .mock_collector import MockCollector, SignalSnapshot
from .runtime import ContainerRuntime, ContainerStatsSource, DockerRuntime, MemoryStats

__all__ = [
    "ContainerRuntime",
    "ContainerStatsSource",
    "DockerRuntime",
    "HarnessConfig",
    "MemoryStats",
    "MockCollector",
    "PipelineHarness",
    "SignalSnapshot",
    "harness_config",
    "harness_session",
]
