"""
Container runtimes for the collector under test.

The Docker implementation drives the ``docker`` CLI for lifecycle commands
and reads memory statistics from the Engine API over its unix socket.
"""

import asyncio
import logging
import os
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import httpx

from ..framework.errors import RuntimeCommandError

logger = logging.getLogger(__name__)

DEFAULT_DOCKER_SOCKET = "/var/run/docker.sock"


@dataclass(frozen=True)
class ContainerSpec:
    """
    Everything needed to start one container.

    Attributes:
        image: Image reference including tag
        config: File contents placed at ``config_path`` before start
        config_path: Absolute path of the config file inside the container
        env: Environment variables
        network_mode: Docker network mode
        published_ports: Ports published host:container
        name: Optional container name
    """

    image: str
    config: bytes
    config_path: str
    env: Mapping[str, str] = field(default_factory=dict)
    network_mode: str = "host"
    published_ports: tuple[int, ...] = ()
    name: Optional[str] = None


@dataclass(frozen=True)
class ContainerHandle:
    """A started container."""

    container_id: str
    image: str

    @property
    def short_id(self) -> str:
        return self.container_id[:12]


@dataclass(frozen=True)
class MemoryStats:
    """
    One memory reading for a container.

    Attributes:
        usage_bytes: Current usage
        max_usage_bytes: Peak usage, 0 when the runtime does not report it
        limit_bytes: Memory limit, if any
    """

    usage_bytes: int
    max_usage_bytes: int = 0
    limit_bytes: Optional[int] = None

    @classmethod
    def from_docker(cls, payload: dict[str, Any]) -> Optional["MemoryStats"]:
        """Parse the ``memory_stats`` block of a Docker stats response."""
        memory = payload.get("memory_stats") or {}
        if "usage" not in memory:
            return None
        return cls(
            usage_bytes=int(memory["usage"]),
            max_usage_bytes=int(memory.get("max_usage", 0) or 0),
            limit_bytes=int(memory["limit"]) if memory.get("limit") else None,
        )


class ContainerRuntime(ABC):
    """Interface the harness uses to run the collector."""

    @abstractmethod
    async def start(self, spec: ContainerSpec) -> ContainerHandle:
        """Create and start a container."""

    @abstractmethod
    async def is_running(self, container_id: str) -> bool:
        """Whether the container is currently running."""

    @abstractmethod
    async def logs(self, container_id: str, tail: int = 100) -> str:
        """Recent container output."""

    @abstractmethod
    async def stop(self, container_id: str) -> None:
        """Stop and remove the container."""

    @abstractmethod
    async def stats(self, container_id: str) -> Optional[MemoryStats]:
        """One-shot memory reading, or None if unavailable."""


class ContainerStatsSource:
    """Reads one container's memory through its runtime's stats API."""

    def __init__(self, runtime: ContainerRuntime, container_id: str):
        self.runtime = runtime
        self.container_id = container_id

    async def read(self) -> Optional[MemoryStats]:
        return await self.runtime.stats(self.container_id)

    @property
    def description(self) -> str:
        return f"container {self.container_id[:12]}"


class DockerRuntime(ContainerRuntime):
    """
    Docker-backed container runtime.

    Lifecycle commands go through the docker CLI in a worker thread so they
    never block the event loop.
    """

    def __init__(
        self,
        docker_binary: str = "docker",
        command_timeout_seconds: int = 120,
        docker_host: Optional[str] = None,
    ):
        self.docker_binary = docker_binary
        self.command_timeout_seconds = command_timeout_seconds
        self.docker_host = docker_host or os.environ.get("DOCKER_HOST", "")

    def _run_command(
        self,
        cmd: list[str],
        timeout: Optional[int] = None,
        capture_output: bool = True,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        """
        Run a docker CLI command.

        Raises:
            RuntimeCommandError: If the command is missing, times out, or
                exits non-zero while ``check`` is set
        """
        logger.debug("Running command: %s", " ".join(cmd))
        try:
            return subprocess.run(
                cmd,
                timeout=timeout or self.command_timeout_seconds,
                capture_output=capture_output,
                text=True,
                check=check,
            )
        except subprocess.CalledProcessError as e:
            raise RuntimeCommandError(
                f"Command failed with exit code {e.returncode}: {' '.join(cmd)}",
                cmd=cmd,
                returncode=e.returncode,
                stderr=(e.stderr or "").strip(),
            ) from e
        except subprocess.TimeoutExpired as e:
            raise RuntimeCommandError(f"Command timed out: {' '.join(cmd)}", cmd=cmd) from e
        except FileNotFoundError as e:
            raise RuntimeCommandError(f"Executable not found: {cmd[0]}", cmd=cmd) from e

    async def _docker(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        return await asyncio.to_thread(
            self._run_command, [self.docker_binary, *args], None, True, check
        )

    def is_available(self) -> bool:
        """Whether a Docker daemon answers ``docker info``."""
        try:
            result = self._run_command([self.docker_binary, "info"], timeout=30, check=False)
        except RuntimeCommandError:
            return False
        return result.returncode == 0

    def _create_args(self, spec: ContainerSpec) -> list[str]:
        args = ["create", "--network", spec.network_mode]
        if spec.name:
            args.extend(["--name", spec.name])
        for key, value in spec.env.items():
            args.extend(["-e", f"{key}={value}"])
        for port in spec.published_ports:
            args.extend(["-p", f"{port}:{port}"])
        args.append(spec.image)
        return args

    async def _copy_config(self, container_id: str, spec: ContainerSpec) -> None:
        fd, path = tempfile.mkstemp(suffix=".yaml", prefix="collector-config-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(spec.config)
            os.chmod(path, 0o644)
            await self._docker("cp", path, f"{container_id}:{spec.config_path}")
        finally:
            os.unlink(path)

    async def start(self, spec: ContainerSpec) -> ContainerHandle:
        result = await self._docker(*self._create_args(spec))
        container_id = result.stdout.strip()
        if not container_id:
            raise RuntimeCommandError("docker create returned no container id")

        try:
            await self._copy_config(container_id, spec)
            await self._docker("start", container_id)
        except RuntimeCommandError:
            try:
                await self.stop(container_id)
            except RuntimeCommandError as cleanup_error:
                logger.warning("Failed to remove container %s: %s", container_id[:12], cleanup_error)
            raise

        logger.info("Started container %s from %s", container_id[:12], spec.image)
        return ContainerHandle(container_id=container_id, image=spec.image)

    async def is_running(self, container_id: str) -> bool:
        result = await self._docker(
            "inspect", "--format", "{{.State.Running}}", container_id, check=False
        )
        return result.returncode == 0 and result.stdout.strip() == "true"

    async def logs(self, container_id: str, tail: int = 100) -> str:
        result = await self._docker("logs", "--tail", str(tail), container_id, check=False)
        return (result.stdout or "") + (result.stderr or "")

    async def stop(self, container_id: str) -> None:
        await self._docker("rm", "--force", container_id)
        logger.debug("Removed container %s", container_id[:12])

    def _api_client(self) -> httpx.AsyncClient:
        if self.docker_host.startswith("tcp://"):
            return httpx.AsyncClient(base_url="http://" + self.docker_host[len("tcp://"):], timeout=10.0)
        socket_path = DEFAULT_DOCKER_SOCKET
        if self.docker_host.startswith("unix://"):
            socket_path = self.docker_host[len("unix://"):]
        transport = httpx.AsyncHTTPTransport(uds=socket_path)
        return httpx.AsyncClient(transport=transport, base_url="http://docker", timeout=10.0)

    async def stats(self, container_id: str) -> Optional[MemoryStats]:
        """
        Read one memory sample from the Engine stats endpoint.

        Returns None when the container is gone or reports no memory block.

        Raises:
            RuntimeCommandError: If the Engine API cannot be reached
        """
        try:
            async with self._api_client() as client:
                response = await client.get(
                    f"/containers/{container_id}/stats",
                    params={"stream": "false", "one-shot": "true"},
                )
        except httpx.HTTPError as e:
            raise RuntimeCommandError(f"Docker stats request failed: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise RuntimeCommandError(
                f"Docker stats returned HTTP {response.status_code}",
                returncode=response.status_code,
                stderr=response.text,
            )
        return MemoryStats.from_docker(response.json())
