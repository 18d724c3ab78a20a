"""
Pipeline harness: one collector container wired to one mock OTLP endpoint.

The harness allocates ingress ports, starts the mock endpoint the collector
exports to, launches the collector with both addresses injected through its
environment, and waits until the collector accepts connections.
"""

import asyncio
import logging
import socket
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from ..framework.errors import (
    CollectorTesterError,
    HarnessError,
    PipelineShutdownError,
    PipelineStartError,
    RuntimeCommandError,
    WaitTimeoutError,
)
from ..framework.polling import PollingWaiter
from ..framework.ports import PortAllocator, PortPair
from .config import HarnessConfig
from .mock_collector import MockCollector
from .runtime import (
    ContainerHandle,
    ContainerRuntime,
    ContainerSpec,
    ContainerStatsSource,
    DockerRuntime,
)

logger = logging.getLogger(__name__)

READINESS_INTERVAL_SECONDS = 0.25
LOOPBACK = "127.0.0.1"


def port_accepts_connections(host: str, port: int, timeout: float = 0.5) -> bool:
    """Whether a TCP connect to ``host:port`` succeeds."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


class PipelineHarness:
    """
    A running collector plus the mock endpoint it exports to.

    Create instances with ``await PipelineHarness.start(config)`` or the
    ``harness_session`` context manager.
    """

    def __init__(
        self,
        config: HarnessConfig,
        runtime: ContainerRuntime,
        ports: PortPair,
        mock: MockCollector,
        container: ContainerHandle,
    ):
        self.config = config
        self.runtime = runtime
        self._ports = ports
        self._mock = mock
        self._container = container
        self._closed = False

    @staticmethod
    def build_environment(config: HarnessConfig, ports: PortPair, mock_port: int) -> dict[str, str]:
        """Injected variables, overridden by any caller-supplied ones."""
        env = {
            config.exporter_endpoint_var: f"{config.exporter_host}:{mock_port}",
            config.grpc_port_var: str(ports.grpc_port),
            config.http_port_var: str(ports.http_port),
        }
        env.update(config.env)
        return env

    @classmethod
    async def start(
        cls,
        config: HarnessConfig,
        runtime: Optional[ContainerRuntime] = None,
        allocator: Optional[PortAllocator] = None,
    ) -> "PipelineHarness":
        """
        Bring up the mock endpoint and the collector.

        Anything already started is torn down again if a later step fails.

        Raises:
            PortAllocationError: If ingress ports cannot be reserved
            MockEndpointStartError: If the mock endpoint cannot bind
            PipelineStartError: If the collector fails to start or become ready
        """
        runtime = runtime or DockerRuntime()
        allocator = allocator or PortAllocator()

        ports = allocator.allocate_pair()
        mock = MockCollector().start()
        container: Optional[ContainerHandle] = None

        try:
            spec = ContainerSpec(
                image=config.image_ref,
                config=config.read_template(),
                config_path=config.container_config_path,
                env=cls.build_environment(config, ports, mock.port),
                network_mode=config.network_mode,
                published_ports=() if config.uses_host_network else (ports.grpc_port, ports.http_port),
            )
            try:
                container = await runtime.start(spec)
            except RuntimeCommandError as e:
                raise PipelineStartError(f"Failed to start collector {config.image_ref}: {e}") from e

            await cls._wait_until_ready(config, runtime, container, ports)
        except BaseException as error:
            await cls._abort_start(runtime, container, mock, error)
            raise

        logger.info(
            "Collector %s ready on grpc=%d http=%d, exporting to mock port %d",
            container.short_id, ports.grpc_port, ports.http_port, mock.port,
        )
        return cls(config, runtime, ports, mock, container)

    @staticmethod
    async def _wait_until_ready(
        config: HarnessConfig,
        runtime: ContainerRuntime,
        container: ContainerHandle,
        ports: PortPair,
    ) -> None:
        async def ready() -> bool:
            if not await runtime.is_running(container.container_id):
                logs = await runtime.logs(container.container_id)
                raise PipelineStartError(
                    f"Collector container {container.short_id} exited during startup", logs=logs
                )
            return await asyncio.to_thread(port_accepts_connections, LOOPBACK, ports.grpc_port)

        try:
            await PollingWaiter(READINESS_INTERVAL_SECONDS).wait_until(
                ready,
                config.startup_timeout_seconds,
                f"collector gRPC receiver on port {ports.grpc_port}",
            )
        except WaitTimeoutError as e:
            logs = await runtime.logs(container.container_id)
            raise PipelineStartError(str(e), logs=logs) from e

    @staticmethod
    async def _abort_start(
        runtime: ContainerRuntime,
        container: Optional[ContainerHandle],
        mock: MockCollector,
        error: BaseException,
    ) -> None:
        logger.error("Harness startup failed: %s", error)
        if container is not None:
            try:
                await runtime.stop(container.container_id)
            except CollectorTesterError as e:
                logger.warning("Failed to remove collector container %s: %s", container.short_id, e)
        try:
            mock.shutdown()
        except HarnessError as e:
            logger.warning("Failed to stop mock collector: %s", e)

    @property
    def ports(self) -> PortPair:
        return self._ports

    def grpc_endpoint(self) -> str:
        return f"http://{LOOPBACK}:{self._ports.grpc_port}"

    def endpoint(self) -> str:
        """Primary ingress endpoint (OTLP/gRPC)."""
        return self.grpc_endpoint()

    def http_endpoint(self) -> str:
        return f"http://{LOOPBACK}:{self._ports.http_port}"

    def traces_endpoint(self) -> str:
        return f"{self.http_endpoint()}/v1/traces"

    def process_id(self) -> str:
        """Container id of the collector."""
        return self._container.container_id

    def mock_collector(self) -> MockCollector:
        return self._mock

    def stats_source(self) -> ContainerStatsSource:
        return ContainerStatsSource(self.runtime, self._container.container_id)

    async def logs(self, tail: int = 100) -> str:
        return await self.runtime.logs(self._container.container_id, tail)

    async def shutdown(self) -> None:
        """
        Stop the collector, then the mock endpoint.

        The mock endpoint is stopped even when stopping the collector fails;
        the first error is raised afterwards.
        """
        if self._closed:
            return
        self._closed = True

        first_error: Optional[HarnessError] = None
        try:
            await self.runtime.stop(self._container.container_id)
        except RuntimeCommandError as e:
            first_error = PipelineShutdownError(
                f"Failed to stop collector container {self._container.short_id}: {e}"
            )
            first_error.__cause__ = e
            logger.error("%s", first_error)

        try:
            self._mock.shutdown()
        except HarnessError as e:
            logger.error("Failed to stop mock collector: %s", e)
            if first_error is None:
                first_error = e

        if first_error is not None:
            raise first_error
        logger.info("Harness for %s shut down", self._container.short_id)


@asynccontextmanager
async def harness_session(
    config: HarnessConfig,
    runtime: Optional[ContainerRuntime] = None,
    allocator: Optional[PortAllocator] = None,
) -> AsyncIterator[PipelineHarness]:
    """Start a harness for the duration of an ``async with`` block."""
    harness = await PipelineHarness.start(config, runtime=runtime, allocator=allocator)
    try:
        yield harness
    finally:
        await harness.shutdown()
