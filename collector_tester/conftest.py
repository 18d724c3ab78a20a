"""
Pytest configuration and fixtures for the collector testing framework.

This module provides shared fixtures and configuration for all test types.
"""

from pathlib import Path

import pytest
from hypothesis import settings, Verbosity

from .harness.runtime import DockerRuntime

# Configure Hypothesis profiles
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
)

settings.register_profile(
    "dev",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

E2E_CONFIG_DIR = Path(__file__).parent / "e2e" / "configs"

_docker_available = None


def pytest_configure(config):
    """Configure pytest with custom settings."""
    settings.load_profile("default")


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--collector-image-tag",
        action="store",
        default="latest",
        help="Tag of otel/opentelemetry-collector-contrib to test against",
    )


def docker_available() -> bool:
    """Whether a Docker daemon is reachable, checked once per session."""
    global _docker_available
    if _docker_available is None:
        _docker_available = DockerRuntime().is_available()
    return _docker_available


def pytest_collection_modifyitems(config, items):
    """Skip docker-marked tests when no daemon is reachable."""
    docker_items = [item for item in items if "docker" in item.keywords]
    if not docker_items or docker_available():
        return
    skip_docker = pytest.mark.skip(reason="Docker daemon not available")
    for item in docker_items:
        item.add_marker(skip_docker)


@pytest.fixture
def collector_image_tag(request):
    """Get the collector image tag from command line."""
    return request.config.getoption("--collector-image-tag")


@pytest.fixture
def e2e_config_dir():
    """Directory holding collector config templates for end-to-end tests."""
    return E2E_CONFIG_DIR


@pytest.fixture
def collector_config_file(tmp_path):
    """A minimal collector config template on disk."""
    path = tmp_path / "collector.yaml"
    path.write_text("receivers: {}\n", encoding="utf-8")
    return path
