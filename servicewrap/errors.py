"""
errors.py - Error kinds raised by servicewrap

ConfigurationError and LaunchError reach the caller immediately.
ProbeError never leaves ServiceWrapper.is_healthy(); it is turned into False.
TeardownError is logged, and only re-raised when teardown was not running
as cleanup of another failure.
"""


class ServiceWrapError(Exception):
    """Base class for all servicewrap errors."""


class ConfigurationError(ServiceWrapError, ValueError):
    """Invalid service descriptor or probe configuration."""


class LaunchError(ServiceWrapError, RuntimeError):
    """The container runtime could not create or start the service."""


class ProbeError(ServiceWrapError, RuntimeError):
    """Transport failure while probing a running service."""


class TeardownError(ServiceWrapError, RuntimeError):
    """Stopping or removing the container failed."""
