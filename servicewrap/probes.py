"""
probes.py - Readiness probes

A probe answers one question about a running service: is it ready?
check() returns the verdict as a bool. Transport failures (connection
refused, timeouts, unpublished ports, Docker errors) raise ProbeError; the
wrapper turns those into False since "not ready yet" is an expected state.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence, Tuple

import requests
from docker.errors import DockerException

from servicewrap.config.descriptor import ProbeConfig, ServiceDescriptor
from servicewrap.errors import ConfigurationError, ProbeError


class ReadinessProbe(ABC):
    """Base class for readiness probes."""

    @abstractmethod
    def check(self, wrapper) -> bool:
        """
        Probe the wrapper's running instance.

        Args:
            wrapper: Running ServiceWrapper

        Returns:
            True if the service reports ready

        Raises:
            ProbeError: On transport failure
        """


class HttpProbe(ReadinessProbe):
    """
    GET a path on a published port and judge the response.

    Ready means: status code within expected_status and, if required_keys
    is set, a JSON object body containing every one of those keys.
    """

    def __init__(self, port: int, path: str = "/", scheme: str = "http",
                 expected_status: Tuple[int, int] = (200, 299),
                 required_keys: Sequence[str] = (),
                 timeout_s: float = 2.0):
        self.port = port
        self.path = path
        self.scheme = scheme
        self.expected_status = expected_status
        self.required_keys = tuple(required_keys)
        self.timeout_s = timeout_s

    def url(self, wrapper) -> str:
        try:
            base = wrapper.base_url(self.port, scheme=self.scheme)
        except (ValueError, DockerException) as e:
            raise ProbeError(f"Cannot resolve address for port {self.port}: {e}") from e
        return base + self.path

    def check(self, wrapper) -> bool:
        url = self.url(wrapper)

        try:
            response = requests.get(url, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise ProbeError(f"GET {url} failed: {e}") from e

        low, high = self.expected_status
        if not (low <= response.status_code <= high):
            return False

        if not self.required_keys:
            return True

        try:
            document = response.json()
        except ValueError:
            return False

        if not isinstance(document, dict):
            return False

        return all(key in document for key in self.required_keys)

    def __repr__(self):
        return f"HttpProbe({self.scheme}://<host>:{self.port}{self.path})"


class ExecProbe(ReadinessProbe):
    """Run a command inside the container; ready on exit code 0."""

    def __init__(self, command):
        self.command = command

    def check(self, wrapper) -> bool:
        try:
            exit_code, _output = wrapper.exec(self.command)
        except DockerException as e:
            raise ProbeError(f"exec {self.command!r} failed: {e}") from e
        return exit_code == 0

    def __repr__(self):
        return f"ExecProbe({self.command!r})"


def build_probe(config: ProbeConfig, descriptor: ServiceDescriptor) -> ReadinessProbe:
    """
    Create a probe from its configuration.

    Raises:
        ConfigurationError: If an HTTP probe has no port to target
    """
    if config.kind == "exec":
        return ExecProbe(config.command)

    port: Optional[int] = config.port or descriptor.primary_port
    if port is None:
        raise ConfigurationError("HTTP probe needs probe.port or at least one service port")

    if port not in descriptor.ports:
        raise ConfigurationError(f"probe.port {port} is not exposed by the service")

    return HttpProbe(
        port=port,
        path=config.path,
        scheme=config.scheme,
        expected_status=config.expected_status,
        required_keys=config.required_keys,
        timeout_s=config.timeout_s,
    )
