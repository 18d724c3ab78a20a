"""
Tests for PipelineHarness startup, readiness and teardown.

A fake runtime stands in for Docker; the mock OTLP endpoint is real.
"""

from typing import Optional
from unittest.mock import patch

import pytest

from collector_tester.framework.errors import (
    PipelineShutdownError,
    PipelineStartError,
    RuntimeCommandError,
)
from collector_tester.framework.ports import PortPair
from collector_tester.harness import harness as harness_module
from collector_tester.harness.config import harness_config
from collector_tester.harness.harness import PipelineHarness, harness_session
from collector_tester.harness.mock_collector import MockCollector
from collector_tester.harness.runtime import (
    ContainerHandle,
    ContainerRuntime,
    ContainerSpec,
    ContainerStatsSource,
    MemoryStats,
)


class FakeRuntime(ContainerRuntime):
    """In-memory container runtime."""

    def __init__(self, running: bool = True, fail_start: bool = False, fail_stop: bool = False):
        self.running = running
        self.fail_start = fail_start
        self.fail_stop = fail_stop
        self.specs: list[ContainerSpec] = []
        self.stopped: list[str] = []

    async def start(self, spec: ContainerSpec) -> ContainerHandle:
        self.specs.append(spec)
        if self.fail_start:
            raise RuntimeCommandError("docker create failed", stderr="no such image")
        return ContainerHandle(container_id="c0ffee0000000000", image=spec.image)

    async def is_running(self, container_id: str) -> bool:
        return self.running and container_id not in self.stopped

    async def logs(self, container_id: str, tail: int = 100) -> str:
        return "Error: cannot unmarshal the configuration"

    async def stop(self, container_id: str) -> None:
        if self.fail_stop:
            raise RuntimeCommandError("docker rm failed")
        self.stopped.append(container_id)

    async def stats(self, container_id: str) -> Optional[MemoryStats]:
        return MemoryStats(usage_bytes=1000)


class FixedAllocator:
    def allocate_pair(self) -> PortPair:
        return PortPair(grpc_port=14317, http_port=14318)


class TrackingMockCollector(MockCollector):
    instances: list["TrackingMockCollector"] = []

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("bind_host", "127.0.0.1")
        super().__init__(*args, **kwargs)
        TrackingMockCollector.instances.append(self)


@pytest.fixture(autouse=True)
def tracked_mocks():
    TrackingMockCollector.instances = []
    with patch.object(harness_module, "MockCollector", TrackingMockCollector):
        yield TrackingMockCollector.instances


@pytest.fixture
def ready_port():
    with patch.object(harness_module, "port_accepts_connections", return_value=True) as probe:
        yield probe


@pytest.fixture
def config(collector_config_file):
    return harness_config(collector_config_file, image_tag="0.98.0", startup_timeout_seconds=0.5)


class TestBuildEnvironment:
    """Tests for the collector environment contract."""

    def test_injects_mock_endpoint_and_ports(self, config):
        env = PipelineHarness.build_environment(config, PortPair(4317, 4318), 5555)

        assert env == {
            "OTLP_EXPORTER_ENDPOINT": "127.0.0.1:5555",
            "COLLECTOR_GRPC_PORT": "4317",
            "COLLECTOR_HTTP_PORT": "4318",
        }

    def test_caller_env_wins_over_injected(self, collector_config_file):
        config = harness_config(
            collector_config_file,
            exporter_endpoint_var="PRIMARY_ENDPOINT",
            env={"PRIMARY_ENDPOINT": "10.0.0.1:4317", "EXTRA": "1"},
        )

        env = PipelineHarness.build_environment(config, PortPair(4317, 4318), 5555)

        assert env["PRIMARY_ENDPOINT"] == "10.0.0.1:4317"
        assert env["EXTRA"] == "1"


class TestPipelineHarness:
    """Tests for harness lifecycle."""

    @pytest.mark.asyncio
    async def test_start_wires_container_to_mock(self, config, ready_port, tracked_mocks):
        runtime = FakeRuntime()

        harness = await PipelineHarness.start(config, runtime=runtime, allocator=FixedAllocator())

        mock = tracked_mocks[0]
        spec = runtime.specs[0]
        assert spec.image == "otel/opentelemetry-collector-contrib:0.98.0"
        assert spec.config == b"receivers: {}\n"
        assert spec.config_path == "/etc/otelcol-contrib/config.yaml"
        assert spec.env["OTLP_EXPORTER_ENDPOINT"] == f"127.0.0.1:{mock.port}"
        assert spec.env["COLLECTOR_GRPC_PORT"] == "14317"
        assert spec.published_ports == ()
        assert ready_port.call_args[0] == ("127.0.0.1", 14317)

        assert harness.endpoint() == "http://127.0.0.1:14317"
        assert harness.grpc_endpoint() == "http://127.0.0.1:14317"
        assert harness.http_endpoint() == "http://127.0.0.1:14318"
        assert harness.traces_endpoint() == "http://127.0.0.1:14318/v1/traces"
        assert harness.process_id() == "c0ffee0000000000"
        assert harness.mock_collector() is mock
        assert isinstance(harness.stats_source(), ContainerStatsSource)

        await harness.shutdown()

        assert runtime.stopped == ["c0ffee0000000000"]
        assert not mock.is_running

    @pytest.mark.asyncio
    async def test_bridge_network_publishes_ingress_ports(self, collector_config_file, ready_port):
        config = harness_config(collector_config_file, network_mode="bridge", startup_timeout_seconds=0.5)
        runtime = FakeRuntime()

        harness = await PipelineHarness.start(config, runtime=runtime, allocator=FixedAllocator())
        await harness.shutdown()

        assert not config.uses_host_network
        assert runtime.specs[0].network_mode == "bridge"
        assert runtime.specs[0].published_ports == (14317, 14318)

    @pytest.mark.asyncio
    async def test_runtime_failure_becomes_start_error_and_stops_mock(self, config, ready_port, tracked_mocks):
        with pytest.raises(PipelineStartError) as exc_info:
            await PipelineHarness.start(config, runtime=FakeRuntime(fail_start=True), allocator=FixedAllocator())

        assert isinstance(exc_info.value.__cause__, RuntimeCommandError)
        assert not tracked_mocks[0].is_running

    @pytest.mark.asyncio
    async def test_exited_container_fails_fast_with_logs(self, config, ready_port, tracked_mocks):
        runtime = FakeRuntime(running=False)

        with pytest.raises(PipelineStartError, match="exited during startup") as exc_info:
            await PipelineHarness.start(config, runtime=runtime, allocator=FixedAllocator())

        assert "cannot unmarshal" in exc_info.value.logs
        assert runtime.stopped == ["c0ffee0000000000"]
        assert not tracked_mocks[0].is_running

    @pytest.mark.asyncio
    async def test_readiness_timeout_tears_everything_down(self, config, tracked_mocks):
        runtime = FakeRuntime()

        with patch.object(harness_module, "port_accepts_connections", return_value=False):
            with pytest.raises(PipelineStartError, match="Timed out") as exc_info:
                await PipelineHarness.start(config, runtime=runtime, allocator=FixedAllocator())

        assert exc_info.value.logs
        assert runtime.stopped == ["c0ffee0000000000"]
        assert not tracked_mocks[0].is_running

    @pytest.mark.asyncio
    async def test_shutdown_stops_mock_even_if_container_stop_fails(self, config, ready_port, tracked_mocks):
        runtime = FakeRuntime()
        harness = await PipelineHarness.start(config, runtime=runtime, allocator=FixedAllocator())
        runtime.fail_stop = True

        with pytest.raises(PipelineShutdownError):
            await harness.shutdown()

        assert not tracked_mocks[0].is_running
        await harness.shutdown()

    @pytest.mark.asyncio
    async def test_logs_come_from_runtime(self, config, ready_port):
        harness = await PipelineHarness.start(config, runtime=FakeRuntime(), allocator=FixedAllocator())
        try:
            assert "cannot unmarshal" in await harness.logs()
        finally:
            await harness.shutdown()

    @pytest.mark.asyncio
    async def test_session_shuts_down_on_error(self, config, ready_port, tracked_mocks):
        runtime = FakeRuntime()

        with pytest.raises(RuntimeError, match="test body failed"):
            async with harness_session(config, runtime=runtime, allocator=FixedAllocator()):
                raise RuntimeError("test body failed")

        assert runtime.stopped == ["c0ffee0000000000"]
        assert not tracked_mocks[0].is_running


class TestHarnessConfig:
    """Tests for harness configuration validation."""

    def test_missing_config_file_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="not found"):
            harness_config(tmp_path / "missing.yaml")

    def test_empty_env_key_rejected(self, collector_config_file):
        with pytest.raises(ValueError, match="must not be empty"):
            harness_config(collector_config_file, env={"": "x"})

    def test_env_is_read_only(self, collector_config_file):
        config = harness_config(collector_config_file, env={"A": "1"})
        with pytest.raises(TypeError):
            config.env["B"] = "2"

    def test_image_ref_combines_image_and_tag(self, collector_config_file):
        config = harness_config(collector_config_file, image="my/collector", image_tag="dev")
        assert config.image_ref == "my/collector:dev"
