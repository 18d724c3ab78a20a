"""
Configuration management for the collector testing framework.

This module handles loading, parsing, and validating suite configurations
from YAML files and command-line arguments. A suite configuration describes
which collector config to run, the load profile to drive through it, and how
to judge the collector's memory behaviour.
"""

import copy
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from jsonschema import Draft7Validator

from .errors import ConfigValidationError
from ..harness.config import HarnessConfig, harness_config
from ..load.config import LoadProfile, load_profile

logger = logging.getLogger(__name__)

DURATION_PATTERN = r"^[0-9]+(\.[0-9]+)?(ms|s|m|h|d)$"

_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}

_duration = {
    "oneOf": [
        {"type": "number", "exclusiveMinimum": 0},
        {"type": "string", "pattern": DURATION_PATTERN},
    ]
}

_rate = {"type": "number", "minimum": 0}

# JSON Schema for suite configuration validation
CONFIG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "harness": {
            "type": "object",
            "required": ["config_path"],
            "properties": {
                "config_path": {"type": "string", "minLength": 1},
                "image": {"type": "string", "minLength": 1},
                "image_tag": {"type": "string", "minLength": 1},
                "exporter_endpoint_var": {"type": "string", "minLength": 1},
                "grpc_port_var": {"type": "string", "minLength": 1},
                "http_port_var": {"type": "string", "minLength": 1},
                "network_mode": {"type": "string", "minLength": 1},
                "startup_timeout": _duration,
                "env": {
                    "type": "object",
                    "propertyNames": {"minLength": 1},
                    "additionalProperties": {"type": ["string", "number", "boolean"]},
                },
            },
            "additionalProperties": False,
        },
        "load": {
            "type": "object",
            "properties": {
                "spans_per_second": _rate,
                "metrics_per_second": _rate,
                "logs_per_second": _rate,
                "duration": _duration,
                "attributes_per_span": {"type": "integer", "minimum": 0},
                "unique_span_names": {"type": "integer", "minimum": 1},
                "protocol": {"type": "string", "enum": ["grpc", "http"]},
            },
            "additionalProperties": False,
        },
        "monitor": {
            "type": "object",
            "properties": {
                "interval": _duration,
                "leak_threshold_bytes_per_second": {"type": "number", "minimum": 0},
                "memory_limit_bytes": {"type": "integer", "minimum": 1},
                "projection": _duration,
            },
            "additionalProperties": False,
        },
    },
    "required": ["harness"],
}


def validate_config(data: dict[str, Any]) -> list[str]:
    """
    Validate configuration data against the schema.

    Args:
        data: Configuration dictionary to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    if not isinstance(data, dict):
        return ["root: configuration must be a mapping"]
    validator = Draft7Validator(CONFIG_SCHEMA)
    errors = []
    for error in validator.iter_errors(data):
        path = ".".join(str(p) for p in error.path) if error.path else "root"
        errors.append(f"{path}: {error.message}")
    return errors


def expand_env_vars(value: Any) -> Any:
    """
    Expand environment variables in a string.

    Supports ${VAR_NAME} syntax. Unset variables expand to an empty string.
    Non-string values are returned unchanged.
    """
    if not isinstance(value, str):
        return value

    def replace_env(match):
        return os.environ.get(match.group(1), "")

    return re.sub(r"\$\{([^}:]+)\}", replace_env, value)


def parse_duration(value: Any) -> float:
    """Parse a duration such as ``"500ms"``, ``"30s"``, ``"5m"`` or a bare number of seconds.

    Args:
        value: Duration string or number of seconds

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the value is not a recognised duration
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    match = re.match(r"^\s*([0-9]+(?:\.[0-9]+)?)\s*(ms|s|m|h|d)\s*$", str(value).lower())
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    return float(match.group(1)) * _DURATION_UNITS[match.group(2)]


def format_duration(seconds: float) -> str:
    """Render seconds back into the duration syntax accepted by parse_duration."""
    millis = seconds * 1000
    if seconds < 1 and float(millis).is_integer():
        return f"{int(millis)}ms"
    if float(seconds).is_integer():
        return f"{int(seconds)}s"
    return f"{seconds:.9f}".rstrip("0").rstrip(".") + "s"


@dataclass
class HarnessSection:
    """Harness settings as written in the suite file."""

    config_path: str = ""
    image: str = "otel/opentelemetry-collector-contrib"
    image_tag: str = "latest"
    exporter_endpoint_var: str = "OTLP_EXPORTER_ENDPOINT"
    grpc_port_var: str = "COLLECTOR_GRPC_PORT"
    http_port_var: str = "COLLECTOR_HTTP_PORT"
    network_mode: str = "host"
    startup_timeout_seconds: float = 30.0
    env: dict[str, str] = field(default_factory=dict)


@dataclass
class LoadSection:
    """Load profile settings as written in the suite file."""

    spans_per_second: float = 100
    metrics_per_second: float = 50
    logs_per_second: float = 50
    duration_seconds: float = 60.0
    attributes_per_span: int = 10
    unique_span_names: int = 100
    protocol: str = "grpc"


@dataclass
class MonitorSection:
    """
    Memory monitoring and verdict settings.

    Attributes:
        interval_seconds: Time between memory samples
        leak_threshold_bytes_per_second: Growth rate above which the run is
            reported as leaking
        memory_limit_bytes: Limit used for the out-of-memory projection;
            falls back to the limit the container reports when unset
        projection_seconds: How far ahead to project memory growth
    """

    interval_seconds: float = 0.5
    leak_threshold_bytes_per_second: float = 1_000_000.0
    memory_limit_bytes: Optional[int] = None
    projection_seconds: float = 3600.0


@dataclass
class SuiteConfig:
    """
    Main configuration for one collector load-test suite.

    Attributes:
        name: Suite name used in reports
        harness: Collector container settings
        load: Synthetic load settings
        monitor: Memory sampling and verdict settings
        base_dir: Directory relative config paths are resolved against
    """

    name: str = "collector-load-test"
    harness: HarnessSection = field(default_factory=HarnessSection)
    load: LoadSection = field(default_factory=LoadSection)
    monitor: MonitorSection = field(default_factory=MonitorSection)
    base_dir: Path = field(default_factory=Path.cwd)

    def __post_init__(self):
        if self.load.protocol not in ("grpc", "http"):
            raise ValueError(f"Invalid load protocol: {self.load.protocol}. Must be 'grpc' or 'http'")
        if self.monitor.interval_seconds <= 0:
            raise ValueError("monitor interval must be positive")
        if self.load.duration_seconds <= 0:
            raise ValueError("load duration must be positive")

    @classmethod
    def from_yaml(cls, path: Path | str, validate: bool = True) -> "SuiteConfig":
        """
        Load configuration from a YAML file.

        Relative ``harness.config_path`` values resolve against the YAML
        file's directory.

        Raises:
            FileNotFoundError: If the config file doesn't exist
            yaml.YAMLError: If the YAML is invalid
            ConfigValidationError: If validation fails
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if validate:
            errors = validate_config(data)
            if errors:
                raise ConfigValidationError(
                    f"Configuration validation failed with {len(errors)} error(s)",
                    errors=errors,
                )

        return cls.from_dict(data, base_dir=path.parent)

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: Optional[Path] = None) -> "SuiteConfig":
        """Create configuration from a dictionary, expanding ${VAR} references."""
        data = data or {}
        harness_data = data.get("harness", {}) or {}
        load_data = data.get("load", {}) or {}
        monitor_data = data.get("monitor", {}) or {}

        harness = HarnessSection(
            config_path=expand_env_vars(harness_data.get("config_path", "")),
            image=expand_env_vars(harness_data.get("image", HarnessSection.image)),
            image_tag=expand_env_vars(harness_data.get("image_tag", HarnessSection.image_tag)),
            exporter_endpoint_var=harness_data.get(
                "exporter_endpoint_var", HarnessSection.exporter_endpoint_var
            ),
            grpc_port_var=harness_data.get("grpc_port_var", HarnessSection.grpc_port_var),
            http_port_var=harness_data.get("http_port_var", HarnessSection.http_port_var),
            network_mode=harness_data.get("network_mode", HarnessSection.network_mode),
            startup_timeout_seconds=parse_duration(
                harness_data.get("startup_timeout", HarnessSection.startup_timeout_seconds)
            ),
            env={
                str(k): str(expand_env_vars(v))
                for k, v in (harness_data.get("env", {}) or {}).items()
            },
        )

        load = LoadSection(
            spans_per_second=load_data.get("spans_per_second", LoadSection.spans_per_second),
            metrics_per_second=load_data.get("metrics_per_second", LoadSection.metrics_per_second),
            logs_per_second=load_data.get("logs_per_second", LoadSection.logs_per_second),
            duration_seconds=parse_duration(load_data.get("duration", LoadSection.duration_seconds)),
            attributes_per_span=load_data.get("attributes_per_span", LoadSection.attributes_per_span),
            unique_span_names=load_data.get("unique_span_names", LoadSection.unique_span_names),
            protocol=load_data.get("protocol", LoadSection.protocol),
        )

        monitor = MonitorSection(
            interval_seconds=parse_duration(monitor_data.get("interval", MonitorSection.interval_seconds)),
            leak_threshold_bytes_per_second=monitor_data.get(
                "leak_threshold_bytes_per_second", MonitorSection.leak_threshold_bytes_per_second
            ),
            memory_limit_bytes=monitor_data.get("memory_limit_bytes"),
            projection_seconds=parse_duration(
                monitor_data.get("projection", MonitorSection.projection_seconds)
            ),
        )

        return cls(
            name=data.get("name", "collector-load-test"),
            harness=harness,
            load=load,
            monitor=monitor,
            base_dir=base_dir or Path.cwd(),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to the dictionary layout accepted by from_dict."""
        monitor: dict[str, Any] = {
            "interval": format_duration(self.monitor.interval_seconds),
            "leak_threshold_bytes_per_second": self.monitor.leak_threshold_bytes_per_second,
            "projection": format_duration(self.monitor.projection_seconds),
        }
        if self.monitor.memory_limit_bytes is not None:
            monitor["memory_limit_bytes"] = self.monitor.memory_limit_bytes

        return {
            "name": self.name,
            "harness": {
                "config_path": self.harness.config_path,
                "image": self.harness.image,
                "image_tag": self.harness.image_tag,
                "exporter_endpoint_var": self.harness.exporter_endpoint_var,
                "grpc_port_var": self.harness.grpc_port_var,
                "http_port_var": self.harness.http_port_var,
                "network_mode": self.harness.network_mode,
                "startup_timeout": format_duration(self.harness.startup_timeout_seconds),
                "env": dict(self.harness.env),
            },
            "load": {
                "spans_per_second": self.load.spans_per_second,
                "metrics_per_second": self.load.metrics_per_second,
                "logs_per_second": self.load.logs_per_second,
                "duration": format_duration(self.load.duration_seconds),
                "attributes_per_span": self.load.attributes_per_span,
                "unique_span_names": self.load.unique_span_names,
                "protocol": self.load.protocol,
            },
            "monitor": monitor,
        }

    def merge_cli_args(
        self,
        image_tag: Optional[str] = None,
        duration: Optional[str] = None,
        spans_per_second: Optional[float] = None,
        metrics_per_second: Optional[float] = None,
        logs_per_second: Optional[float] = None,
        monitor_interval: Optional[str] = None,
    ) -> "SuiteConfig":
        """
        Merge command-line arguments into the configuration.

        CLI arguments take precedence over file configuration.

        Returns:
            New SuiteConfig with merged values
        """
        new_config = copy.deepcopy(self)

        if image_tag:
            new_config.harness.image_tag = image_tag
        if duration:
            new_config.load.duration_seconds = parse_duration(duration)
        if spans_per_second is not None:
            new_config.load.spans_per_second = spans_per_second
        if metrics_per_second is not None:
            new_config.load.metrics_per_second = metrics_per_second
        if logs_per_second is not None:
            new_config.load.logs_per_second = logs_per_second
        if monitor_interval:
            new_config.monitor.interval_seconds = parse_duration(monitor_interval)

        new_config.__post_init__()

        return new_config

    def resolve_config_path(self) -> Path:
        """Absolute path of the collector config template."""
        path = Path(self.harness.config_path)
        if not path.is_absolute():
            path = self.base_dir / path
        return path

    def to_harness_config(self) -> HarnessConfig:
        """Build the validated harness configuration."""
        return harness_config(
            self.resolve_config_path(),
            exporter_endpoint_var=self.harness.exporter_endpoint_var,
            grpc_port_var=self.harness.grpc_port_var,
            http_port_var=self.harness.http_port_var,
            image=self.harness.image,
            image_tag=self.harness.image_tag,
            env=self.harness.env,
            network_mode=self.harness.network_mode,
            startup_timeout_seconds=self.harness.startup_timeout_seconds,
        )

    def to_load_profile(self) -> LoadProfile:
        """Build the validated load profile."""
        return load_profile(
            spans_per_second=self.load.spans_per_second,
            metrics_per_second=self.load.metrics_per_second,
            logs_per_second=self.load.logs_per_second,
            duration_seconds=self.load.duration_seconds,
            attributes_per_span=self.load.attributes_per_span,
            unique_span_names=self.load.unique_span_names,
        )


def load_config(
    config_path: Optional[Path | str] = None,
    image_tag: Optional[str] = None,
    duration: Optional[str] = None,
    spans_per_second: Optional[float] = None,
    metrics_per_second: Optional[float] = None,
    logs_per_second: Optional[float] = None,
    monitor_interval: Optional[str] = None,
    validate: bool = True,
) -> SuiteConfig:
    """
    Load and merge configuration from file and CLI arguments.

    This is the main entry point for loading configuration.
    """
    if config_path:
        config = SuiteConfig.from_yaml(config_path, validate=validate)
    else:
        config = SuiteConfig()

    merged = config.merge_cli_args(
        image_tag=image_tag,
        duration=duration,
        spans_per_second=spans_per_second,
        metrics_per_second=metrics_per_second,
        logs_per_second=logs_per_second,
        monitor_interval=monitor_interval,
    )
    logger.debug("Loaded suite configuration %s", merged.name)
    return merged
