"""
docker_runtime.py - Container lifecycle on top of the Docker SDK

DockerRuntime is the lifecycle collaborator used by ServiceWrapper. It knows
how to pull, run, inspect and remove containers; it knows nothing about what
runs inside them.

Every container it starts carries the label servicewrap=true so leftovers
from crashed test runs can be found and removed.
"""

import logging
import os
import time
import uuid
from typing import Dict, Optional, Tuple
from urllib.parse import urlparse

import docker
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from requests import RequestException

from servicewrap.errors import LaunchError, TeardownError

logger = logging.getLogger('servicewrap.runtime')

LABEL_KEY = "servicewrap"
LABEL = f"{LABEL_KEY}=true"
HOST_ENV_VAR = "SERVICEWRAP_HOST"

# docker-py lets transport failures (daemon gone mid-run) through as requests errors
DAEMON_ERRORS = (DockerException, RequestException)


class DockerRuntime:
    """
    Lifecycle collaborator backed by the Docker daemon.

    The Docker client is created on first use, so constructing a runtime
    (and therefore a wrapper) never touches the daemon.
    """

    def __init__(self, client=None, host_override: Optional[str] = None):
        """
        Args:
            client: Docker client (created from the environment if None)
            host_override: Address to reach published ports on
        """
        self._client = client
        self.host_override = host_override

    @property
    def client(self):
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                raise LaunchError(f"Docker daemon is not available: {e}") from e
        return self._client

    def start(self, image: str, version: str = "latest",
              environment: Optional[Dict[str, str]] = None,
              ports: Optional[Dict[int, Optional[int]]] = None,
              command: Optional[str] = None,
              labels: Optional[Dict[str, str]] = None,
              name: Optional[str] = None):
        """
        Pull (if needed) and run a container, detached.

        Returns once Docker reports the container as started, which does not
        mean the service inside is ready.

        Args:
            image: Image repository
            version: Image tag
            environment: Environment variables
            ports: Container port -> host port (None for a random host port)
            command: Command override
            labels: Extra labels
            name: Container name (generated if None)

        Returns:
            docker Container handle

        Raises:
            LaunchError: If the image cannot be found or the container cannot start
        """
        image_ref = f"{image}:{version}"
        name = name or f"servicewrap-{uuid.uuid4().hex[:12]}"

        self._ensure_image(image, version)

        all_labels = dict(labels or {})
        all_labels[LABEL_KEY] = "true"
        all_labels[f"{LABEL_KEY}_service"] = image

        port_bindings = {f"{p}/tcp": host for p, host in (ports or {}).items()}

        logger.info(f"Starting {image_ref} as {name}")
        try:
            container = self.client.containers.run(
                image=image_ref,
                command=command,
                detach=True,
                name=name,
                labels=all_labels,
                environment=environment or {},
                ports=port_bindings,
                # Removal is done in stop() so logs stay readable after a crash
                auto_remove=False,
            )
        except DAEMON_ERRORS as e:
            # run() is create + start; a failed start leaves a created container
            self._remove_by_name(name)
            raise LaunchError(f"Could not start {image_ref}: {e}") from e

        logger.debug(f"Container {name} started (id={container.short_id})")
        return container

    def _ensure_image(self, image: str, version: str):
        image_ref = f"{image}:{version}"
        try:
            self.client.images.get(image_ref)
            return
        except ImageNotFound:
            pass
        except DAEMON_ERRORS as e:
            raise LaunchError(f"Could not inspect image {image_ref}: {e}") from e

        logger.info(f"Pulling image {image_ref}...")
        try:
            self.client.images.pull(image, tag=version)
        except DAEMON_ERRORS as e:
            raise LaunchError(f"Could not pull image {image_ref}: {e}") from e

    def _remove_by_name(self, name: str):
        try:
            self.client.containers.get(name).remove(force=True)
        except NotFound:
            pass
        except DAEMON_ERRORS as e:
            logger.warning(f"Could not remove half-started container {name}: {e}")

    def wait_for_running(self, container, timeout_s: float = 30.0) -> bool:
        """
        Wait for container to be running.

        Args:
            container: Container handle from start()
            timeout_s: Maximum time to wait in seconds

        Returns:
            True if container is running

        Raises:
            LaunchError: If container exits or is not running after timeout
        """
        start_time = time.time()

        while time.time() - start_time < timeout_s:
            try:
                container.reload()
            except DAEMON_ERRORS as e:
                raise LaunchError(f"Container {container.name} disappeared: {e}") from e

            if container.status == 'running':
                return True

            if container.status in ('exited', 'dead'):
                raise LaunchError(
                    f"Container {container.name} failed to start: status={container.status}\n"
                    f"{self._log_tail(container)}"
                )

            time.sleep(0.1)

        raise LaunchError(
            f"Container {container.name} not running after {timeout_s}s "
            f"(status={container.status})"
        )

    def status(self, container) -> str:
        """Current Docker status ('running', 'exited', ...), 'removed' if gone."""
        try:
            container.reload()
        except NotFound:
            return 'removed'
        return container.status

    def stop(self, container, timeout_s: int = 1):
        """
        Stop and remove a container.

        A container that is already gone is not an error.

        Raises:
            TeardownError: If the container cannot be removed (daemon error or unreachable)
        """
        try:
            container.stop(timeout=timeout_s)
        except NotFound:
            return
        except DAEMON_ERRORS as e:
            # Still try to remove it; force also kills
            logger.warning(f"Stopping {container.name} failed, forcing removal: {e}")

        try:
            container.remove(force=True)
        except NotFound:
            pass
        except DAEMON_ERRORS as e:
            raise TeardownError(f"Could not remove container {container.name}: {e}") from e

        logger.debug(f"Container {container.name} removed")

    def get_logs(self, container) -> str:
        """Return combined stdout/stderr of the container."""
        return container.logs(stdout=True, stderr=True).decode('utf-8', errors='replace')

    def exec(self, container, command) -> Tuple[int, str]:
        """
        Run a command inside the container.

        Returns:
            (exit_code, output)
        """
        result = container.exec_run(command)
        output = result.output.decode('utf-8', errors='replace') if result.output else ""
        return result.exit_code, output

    def get_exposed_port(self, container, port: int) -> int:
        """
        Host port published for a container port.

        Raises:
            ValueError: If the port is not published
        """
        container.reload()
        bindings = (container.ports or {}).get(f"{port}/tcp")
        if not bindings:
            raise ValueError(f"Port {port}/tcp is not published by {container.name}")
        return int(bindings[0]['HostPort'])

    def get_host_ip(self, container=None) -> str:
        """
        Address on which published ports can be reached.

        Order: explicit override, $SERVICEWRAP_HOST, host of a tcp:// DOCKER_HOST,
        then localhost.
        """
        if self.host_override:
            return self.host_override

        env_host = os.environ.get(HOST_ENV_VAR)
        if env_host:
            return env_host

        docker_host = os.environ.get("DOCKER_HOST", "")
        if docker_host.startswith("tcp://"):
            hostname = urlparse(docker_host).hostname
            if hostname:
                return hostname

        return "localhost"

    def _log_tail(self, container, lines: int = 20) -> str:
        try:
            logs = self.get_logs(container)
        except DAEMON_ERRORS as e:
            return f"(logs unavailable: {e})"
        return "\n".join(logs.splitlines()[-lines:])


def cleanup_labelled_containers(client=None, label: str = LABEL) -> int:
    """
    Remove all servicewrap containers (running or stopped).

    Utility function for cleanup after tests or crashes.

    Args:
        client: Docker client (creates new one if None)
        label: Label filter

    Returns:
        Number of containers removed
    """
    if client is None:
        client = docker.from_env()

    containers = client.containers.list(all=True, filters={"label": label})

    removed = 0
    for container in containers:
        try:
            container.stop(timeout=1)
        except (NotFound, APIError):
            pass

        try:
            container.remove(force=True)
            removed += 1
        except (NotFound, APIError):
            pass

    return removed
