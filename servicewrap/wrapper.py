"""
wrapper.py - Service wrapper

Binds a fixed image/version pair to a lifecycle collaborator and a readiness
probe. The wrapper holds its runtime rather than extending it, so adding a
new service means writing a descriptor and a probe, not a subclass of a
container class.

Lifecycle:
    UNSTARTED -> STARTING -> RUNNING -> STOPPED
                 STARTING -> FAILED   (LaunchError)
    stop() is accepted in every state and always ends in STOPPED.

Usage:
    descriptor = ServiceDescriptor("fusionauth/fusionauth-app", "1.2.0", ports={9011: None})
    probe = HttpProbe(9011, "/.well-known/jwks.json", required_keys=["keys"])

    with ServiceWrapper(descriptor, probe) as svc:
        svc.wait_until_healthy(timeout_s=60)
        ...  # talk to svc.base_url()
"""

import logging
import time
from enum import Enum
from typing import Optional, Tuple

from servicewrap.config.descriptor import ServiceDescriptor
from servicewrap.errors import LaunchError, ProbeError, TeardownError
from servicewrap.probes import ReadinessProbe
from servicewrap.runtime.docker_runtime import DockerRuntime

logger = logging.getLogger('servicewrap.wrapper')


class ServiceState(Enum):
    UNSTARTED = "unstarted"
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


class ServiceWrapper:
    """
    One containerized service with a lifecycle and a health check.

    The wrapper exclusively owns its running instance between start() and
    stop(). No instance exists before start() or after stop().
    """

    def __init__(self, descriptor: ServiceDescriptor,
                 probe: Optional[ReadinessProbe] = None,
                 runtime=None):
        """
        Initialize wrapper. Does not start anything.

        Args:
            descriptor: Image, version, ports and environment to run
            probe: Readiness probe (None means running == healthy)
            runtime: Lifecycle collaborator (DockerRuntime if None)
        """
        self.descriptor = descriptor
        self.probe = probe
        self.runtime = runtime if runtime is not None else DockerRuntime()
        self.state = ServiceState.UNSTARTED
        self.instance = None

    @property
    def name(self) -> str:
        return self.descriptor.image_ref

    @property
    def is_running(self) -> bool:
        return self.state is ServiceState.RUNNING and self.instance is not None

    def start(self, timeout_s: Optional[float] = None) -> 'ServiceWrapper':
        """
        Launch the container and wait until Docker reports it running.

        The service inside may not be ready yet; use is_healthy() or
        wait_until_healthy() for that.

        Args:
            timeout_s: Startup timeout forwarded to the runtime
                (defaults to descriptor.startup_timeout_s)

        Returns:
            self

        Raises:
            LaunchError: If the runtime cannot create or start the container
        """
        if self.is_running:
            return self

        if timeout_s is None:
            timeout_s = self.descriptor.startup_timeout_s

        self.state = ServiceState.STARTING
        d = self.descriptor

        try:
            self.instance = self.runtime.start(
                image=d.image,
                version=d.version,
                environment=d.environment,
                ports=d.ports,
                command=d.command,
                labels=d.labels,
            )
            self.runtime.wait_for_running(self.instance, timeout_s)
        except BaseException:
            # Includes KeyboardInterrupt: a partial instance must not outlive start()
            self.state = ServiceState.FAILED
            self._release(raise_errors=False)
            raise

        self.state = ServiceState.RUNNING
        logger.info(f"{self.name} running")
        return self

    def stop(self, raise_errors: bool = True):
        """
        Stop and remove the running instance.

        Idempotent: safe to call before start(), after a failed start and
        multiple times in a row.

        Args:
            raise_errors: Re-raise TeardownError (it is logged either way)

        Raises:
            TeardownError: If removal failed and raise_errors is True
        """
        try:
            self._release(raise_errors=raise_errors)
        finally:
            self.state = ServiceState.STOPPED

    def _release(self, raise_errors: bool):
        instance, self.instance = self.instance, None
        if instance is None:
            return

        try:
            self.runtime.stop(instance)
        except TeardownError as e:
            logger.warning(f"Teardown of {self.name} failed: {e}")
            if raise_errors:
                raise
        except Exception as e:
            # A runtime that lets a raw transport error through
            logger.warning(f"Teardown of {self.name} failed: {type(e).__name__}: {e}")
            if raise_errors:
                raise TeardownError(f"Teardown of {self.name} failed: {e}") from e

    def is_healthy(self) -> bool:
        """
        Ask the readiness probe whether the service is ready.

        Returns:
            True only if the instance is running and the probe succeeds.
            Never raises for a service that is not ready yet.
        """
        if not self.is_running:
            return False

        if self.probe is None:
            return True

        try:
            return bool(self.probe.check(self))
        except ProbeError as e:
            logger.debug(f"{self.name} not ready: {e}")
            return False

    def wait_until_healthy(self, timeout_s: float = 60.0, interval_s: float = 0.5) -> bool:
        """
        Poll is_healthy() until it succeeds.

        Args:
            timeout_s: Maximum time to wait in seconds
            interval_s: Delay between probes

        Returns:
            True once healthy

        Raises:
            RuntimeError: If the wrapper is not running
            LaunchError: If the container exits while waiting
            TimeoutError: If not healthy after timeout
        """
        if not self.is_running:
            raise RuntimeError(f"{self.name} is not running (state={self.state.value})")

        start_time = time.time()

        while True:
            if self.is_healthy():
                logger.info(f"{self.name} healthy after {time.time() - start_time:.1f}s")
                return True

            status = self.runtime.status(self.instance)
            if status in ('exited', 'dead', 'removed'):
                raise LaunchError(
                    f"{self.name} stopped while waiting for readiness: status={status}\n"
                    f"{self._log_tail()}"
                )

            if time.time() - start_time >= timeout_s:
                break

            time.sleep(interval_s)

        raise TimeoutError(
            f"{self.name} not healthy after {timeout_s}s (probe={self.probe!r})\n"
            f"{self._log_tail()}"
        )

    def _require_instance(self):
        if not self.is_running:
            raise RuntimeError(f"{self.name} is not running (state={self.state.value})")
        return self.instance

    def get_logs(self) -> str:
        return self.runtime.get_logs(self._require_instance())

    def exec(self, command) -> Tuple[int, str]:
        return self.runtime.exec(self._require_instance(), command)

    def get_exposed_port(self, port: Optional[int] = None) -> int:
        """Host port for a container port (defaults to the first exposed port)."""
        if port is None:
            port = self.descriptor.primary_port
        if port is None:
            raise ValueError(f"{self.name} exposes no ports")
        return self.runtime.get_exposed_port(self._require_instance(), port)

    def get_host_ip(self) -> str:
        return self.runtime.get_host_ip(self._require_instance())

    def base_url(self, port: Optional[int] = None, scheme: str = "http") -> str:
        """URL of a published port, e.g. http://localhost:49153"""
        host_port = self.get_exposed_port(port)
        return f"{scheme}://{self.get_host_ip()}:{host_port}"

    def _log_tail(self, lines: int = 20) -> str:
        try:
            logs = self.get_logs()
        except Exception as e:
            return f"(logs unavailable: {e})"
        return "\n".join(logs.splitlines()[-lines:])

    def __enter__(self) -> 'ServiceWrapper':
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        # Don't mask the block's own exception with a teardown failure
        self.stop(raise_errors=exc_type is None)
        return False

    def __repr__(self):
        return f"ServiceWrapper({self.name}, state={self.state.value})"
