"""
descriptor.py - Service descriptor and YAML loader

Describes which image to run and how to probe it for readiness.

Design philosophy:
- Keep it simple: plain dataclasses, no schema framework
- Fail fast: raise ConfigurationError naming the offending field
- Immutable: a descriptor never changes once a wrapper holds it

Example YAML:
    service:
      image: fusionauth/fusionauth-app
      version: 1.2.0
      ports:              # list (random host ports) or mapping container: host
        9011: null
      environment:
        FUSIONAUTH_APP_MEMORY: 512M
      startup_timeout_s: 60

    probe:                # optional, defaults to HTTP GET / on the first port
      kind: http          # "http" or "exec"
      path: /.well-known/jwks.json
      port: 9011
      required_keys: [keys]
"""

import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from servicewrap.errors import ConfigurationError


PROBE_KINDS = ("http", "exec")


def _check_port(port: Any, what: str) -> int:
    if isinstance(port, bool) or not isinstance(port, int):
        raise ConfigurationError(f"{what} must be an integer, got {port!r}")
    if not (1 <= port <= 65535):
        raise ConfigurationError(f"{what} must be in [1, 65535], got {port}")
    return port


def _check_timeout(value: Any, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{what} must be a number, got {value!r}")
    if value <= 0:
        raise ConfigurationError(f"{what} must be positive, got {value}")
    return float(value)


def _to_number(value: Any, what: str) -> float:
    """Convert a YAML scalar to float, naming the field on failure."""
    if isinstance(value, bool):
        raise ConfigurationError(f"{what} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{what} must be a number, got {value!r}") from e


@dataclass(frozen=True)
class ServiceDescriptor:
    """
    Image/version pair plus everything needed to launch it.

    Attributes:
        image: Image repository without tag (e.g. "fusionauth/fusionauth-app")
        version: Image tag
        ports: Container port -> host port (None lets Docker pick one)
        environment: Environment variables for the container
        command: Optional command override
        labels: Extra container labels
        startup_timeout_s: How long to wait for the container to run
    """
    image: str
    version: str = "latest"
    ports: Dict[int, Optional[int]] = field(default_factory=dict)
    environment: Dict[str, str] = field(default_factory=dict)
    command: Optional[str] = None
    labels: Dict[str, str] = field(default_factory=dict)
    startup_timeout_s: float = 30.0

    def __post_init__(self):
        """Validate descriptor values."""
        if not isinstance(self.image, str) or not self.image.strip():
            raise ConfigurationError("image must be a non-empty string")

        # A tag in the image name would silently win over `version`
        if ":" in self.image.rsplit("/", 1)[-1]:
            raise ConfigurationError(
                f"image must not carry a tag, use version instead: '{self.image}'"
            )

        if not isinstance(self.version, str) or not self.version.strip():
            raise ConfigurationError("version must be a non-empty string")

        if any(c.isspace() for c in self.version) or ":" in self.version:
            raise ConfigurationError(f"version is not a valid tag: '{self.version}'")

        for what in ("ports", "environment", "labels"):
            if not isinstance(getattr(self, what), dict):
                raise ConfigurationError(
                    f"{what} must be a mapping, got {type(getattr(self, what)).__name__}"
                )

        for container_port, host_port in self.ports.items():
            _check_port(container_port, "container port")
            if host_port is not None:
                _check_port(host_port, f"host port for {container_port}")

        if self.command is not None and not isinstance(self.command, (str, list)):
            raise ConfigurationError(f"command must be a string or a list, got {self.command!r}")

        object.__setattr__(
            self, "startup_timeout_s", _check_timeout(self.startup_timeout_s, "startup_timeout_s")
        )

        # Copy mappings so the caller cannot mutate them behind our back
        object.__setattr__(self, "ports", dict(self.ports))
        object.__setattr__(self, "environment", {str(k): str(v) for k, v in self.environment.items()})
        object.__setattr__(self, "labels", dict(self.labels))

    @property
    def image_ref(self) -> str:
        """Full image reference, image:version."""
        return f"{self.image}:{self.version}"

    @property
    def primary_port(self) -> Optional[int]:
        """First exposed container port, or None."""
        return next(iter(self.ports), None)


@dataclass(frozen=True)
class ProbeConfig:
    """
    Readiness probe configuration.

    Attributes:
        kind: "http" or "exec"
        path: HTTP path to request
        port: Container port to probe (defaults to the descriptor's first port)
        scheme: "http" or "https"
        expected_status: Inclusive range of accepted HTTP status codes
        required_keys: Top-level JSON keys the response must contain
        command: Command to run inside the container (exec probes)
        timeout_s: Per-request timeout
    """
    kind: str = "http"
    path: str = "/"
    port: Optional[int] = None
    scheme: str = "http"
    expected_status: Tuple[int, int] = (200, 299)
    required_keys: Tuple[str, ...] = ()
    command: Optional[str] = None
    timeout_s: float = 2.0

    def __post_init__(self):
        """Validate probe configuration."""
        if self.kind not in PROBE_KINDS:
            raise ConfigurationError(f"probe.kind must be 'http' or 'exec', got '{self.kind}'")

        if self.kind == "exec" and not self.command:
            raise ConfigurationError("probe.command is required for exec probes")

        if self.scheme not in ("http", "https"):
            raise ConfigurationError(f"probe.scheme must be 'http' or 'https', got '{self.scheme}'")

        if not isinstance(self.path, str) or not self.path.startswith("/"):
            raise ConfigurationError(f"probe.path must start with '/', got {self.path!r}")

        if self.port is not None:
            _check_port(self.port, "probe.port")

        if not isinstance(self.expected_status, (list, tuple)) or len(self.expected_status) != 2:
            raise ConfigurationError(
                f"probe.expected_status must be a (low, high) pair, got {self.expected_status!r}"
            )
        low, high = self.expected_status
        if any(isinstance(s, bool) or not isinstance(s, int) for s in (low, high)) \
                or not (100 <= low <= high <= 599):
            raise ConfigurationError(f"probe.expected_status is not a valid range: {self.expected_status!r}")

        if not isinstance(self.required_keys, (list, tuple)):
            raise ConfigurationError(f"probe.required_keys must be a list, got {self.required_keys!r}")

        object.__setattr__(self, "expected_status", (low, high))
        object.__setattr__(self, "timeout_s", _check_timeout(self.timeout_s, "probe.timeout_s"))
        object.__setattr__(self, "required_keys", tuple(self.required_keys))


def _parse_ports(raw: Any) -> Dict[int, Optional[int]]:
    if raw is None:
        return {}

    if isinstance(raw, list):
        return {_check_port(p, "service.ports entry"): None for p in raw}

    if isinstance(raw, dict):
        ports = {}
        for container_port, host_port in raw.items():
            ports[_check_port(container_port, "service.ports key")] = host_port
        return ports

    raise ConfigurationError("service.ports must be a list or a mapping")


def _parse_mapping(raw: Any, what: str) -> Dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{what} must be a mapping")
    return {str(k): str(v) for k, v in raw.items()}


def descriptor_from_dict(data: Dict[str, Any]) -> Tuple[ServiceDescriptor, ProbeConfig]:
    """
    Build a descriptor and probe config from parsed YAML data.

    Args:
        data: Dict with a 'service' section and optional 'probe' section

    Returns:
        (ServiceDescriptor, ProbeConfig)

    Raises:
        ConfigurationError: If required fields are missing or invalid
    """
    if not isinstance(data, dict):
        raise ConfigurationError(f"Service file must contain a YAML dict, got {type(data).__name__}")

    if "service" not in data:
        raise ConfigurationError("Missing required section: 'service'")

    svc = data["service"]
    if not isinstance(svc, dict):
        raise ConfigurationError("'service' section must be a dict")

    if "image" not in svc:
        raise ConfigurationError("Missing required field: service.image")

    # YAML reads 1.2 as a float; tags are always strings
    version = svc.get("version", "latest")
    version = "" if version is None else str(version)

    descriptor = ServiceDescriptor(
        image=svc["image"],
        version=version,
        ports=_parse_ports(svc.get("ports")),
        environment=_parse_mapping(svc.get("environment"), "service.environment"),
        command=svc.get("command"),
        labels=_parse_mapping(svc.get("labels"), "service.labels"),
        startup_timeout_s=_to_number(svc.get("startup_timeout_s", 30.0), "service.startup_timeout_s"),
    )

    probe_data = data.get("probe") or {}
    if not isinstance(probe_data, dict):
        raise ConfigurationError("'probe' section must be a dict")

    expected = probe_data.get("expected_status", (200, 299))
    if isinstance(expected, int):
        expected = (expected, expected)
    elif not isinstance(expected, (list, tuple)) or len(expected) != 2:
        raise ConfigurationError("probe.expected_status must be a status code or [low, high]")

    required_keys = probe_data.get("required_keys") or ()
    if not isinstance(required_keys, (list, tuple)):
        raise ConfigurationError("probe.required_keys must be a list")

    probe = ProbeConfig(
        kind=probe_data.get("kind", "http"),
        path=probe_data.get("path", "/"),
        port=probe_data.get("port"),
        scheme=probe_data.get("scheme", "http"),
        expected_status=tuple(expected),
        required_keys=tuple(str(k) for k in required_keys),
        command=probe_data.get("command"),
        timeout_s=_to_number(probe_data.get("timeout_s", 2.0), "probe.timeout_s"),
    )

    return descriptor, probe


def load_service_config(yaml_path: str) -> Tuple[ServiceDescriptor, ProbeConfig]:
    """
    Load a service descriptor and probe config from a YAML file.

    Args:
        yaml_path: Path to YAML service file

    Returns:
        (ServiceDescriptor, ProbeConfig)

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ConfigurationError: If required fields are missing or invalid
        yaml.YAMLError: If YAML syntax is invalid
    """
    path = Path(yaml_path)
    if not path.exists():
        raise FileNotFoundError(f"Service file not found: {yaml_path}")

    with open(path, 'r') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML syntax in {yaml_path}: {e}")

    return descriptor_from_dict(data)
