"""
Configuration for the pipeline harness.
"""

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

DEFAULT_IMAGE = "otel/opentelemetry-collector-contrib"
DEFAULT_IMAGE_TAG = "latest"
COLLECTOR_CONFIG_PATH = "/etc/otelcol-contrib/config.yaml"


@dataclass(frozen=True)
class HarnessConfig:
    """
    Immutable description of the collector container to run.

    The config template is copied into the container verbatim. It refers to
    the injected variables with the collector's own ``${env:NAME}`` syntax,
    so the harness never rewrites the YAML itself.

    Attributes:
        config_path: Collector config template on the host
        exporter_endpoint_var: Variable that receives the mock endpoint
            address (``host:port``)
        grpc_port_var: Variable that receives the OTLP/gRPC ingress port
        http_port_var: Variable that receives the OTLP/HTTP ingress port
        image: Collector image repository
        image_tag: Collector image tag
        env: Extra variables; these win over injected ones on conflict
        network_mode: Container network mode
        startup_timeout_seconds: Readiness deadline
        exporter_host: Host part of the injected mock endpoint address
        container_config_path: Where the template is placed in the container
    """

    config_path: Path
    exporter_endpoint_var: str = "OTLP_EXPORTER_ENDPOINT"
    grpc_port_var: str = "COLLECTOR_GRPC_PORT"
    http_port_var: str = "COLLECTOR_HTTP_PORT"
    image: str = DEFAULT_IMAGE
    image_tag: str = DEFAULT_IMAGE_TAG
    env: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    network_mode: str = "host"
    startup_timeout_seconds: float = 30.0
    exporter_host: str = "127.0.0.1"
    container_config_path: str = COLLECTOR_CONFIG_PATH

    def __post_init__(self):
        object.__setattr__(self, "config_path", Path(self.config_path))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

        if not self.config_path.is_file():
            raise ValueError(f"Collector config not found: {self.config_path}")
        for name in ("exporter_endpoint_var", "grpc_port_var", "http_port_var", "image", "image_tag"):
            if not getattr(self, name):
                raise ValueError(f"{name} must not be empty")
        if any(not key for key in self.env):
            raise ValueError("Environment variable names must not be empty")
        if self.startup_timeout_seconds <= 0:
            raise ValueError(
                f"startup_timeout_seconds must be positive, got {self.startup_timeout_seconds}"
            )

    @property
    def image_ref(self) -> str:
        return f"{self.image}:{self.image_tag}"

    @property
    def uses_host_network(self) -> bool:
        return self.network_mode == "host"

    def read_template(self) -> bytes:
        """Read the collector config template."""
        return self.config_path.read_bytes()


def harness_config(
    config_path: Path | str,
    exporter_endpoint_var: str = "OTLP_EXPORTER_ENDPOINT",
    env: Optional[Mapping[str, str]] = None,
    **overrides,
) -> HarnessConfig:
    """
    Build a validated HarnessConfig.

    Args:
        config_path: Collector config template on the host
        exporter_endpoint_var: Variable that receives the mock endpoint address
        env: Extra environment variables for the collector
        **overrides: Any other HarnessConfig field

    Raises:
        ValueError: If the template is missing or a field is invalid
    """
    return HarnessConfig(
        config_path=Path(config_path),
        exporter_endpoint_var=exporter_endpoint_var,
        env=dict(env or {}),
        **overrides,
    )
