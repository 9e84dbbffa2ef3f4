"""
servicewrap - Containerized services for integration tests

A ServiceWrapper runs one image/version pair in Docker, starts and stops it
on demand (or as a context manager) and answers is_healthy() with a plain
bool from a service-specific readiness probe.
"""

from .config import ServiceDescriptor, ProbeConfig, load_service_config
from .errors import (
    ServiceWrapError,
    ConfigurationError,
    LaunchError,
    ProbeError,
    TeardownError,
)
from .probes import ReadinessProbe, HttpProbe, ExecProbe, build_probe
from .runtime import DockerRuntime, cleanup_labelled_containers
from .wrapper import ServiceWrapper, ServiceState

__version__ = "0.1.0"

__all__ = [
    'ServiceDescriptor',
    'ProbeConfig',
    'load_service_config',
    'ServiceWrapError',
    'ConfigurationError',
    'LaunchError',
    'ProbeError',
    'TeardownError',
    'ReadinessProbe',
    'HttpProbe',
    'ExecProbe',
    'build_probe',
    'DockerRuntime',
    'cleanup_labelled_containers',
    'ServiceWrapper',
    'ServiceState',
]
