"""
fusionauth.py - FusionAuth service wrapper

Runs fusionauth/fusionauth-app and treats it as ready once the JSON Web
Key Set document at /.well-known/jwks.json answers with a "keys" entry.

FusionAuth needs a database to leave maintenance mode; pass DATABASE_URL
and friends through `environment` when the test needs a fully set up
instance.
"""

from typing import Dict, Optional

from servicewrap.config.descriptor import ServiceDescriptor
from servicewrap.probes import HttpProbe
from servicewrap.wrapper import ServiceWrapper

IMAGE = "fusionauth/fusionauth-app"
PORT = 9011
JWKS_PATH = "/.well-known/jwks.json"

DEFAULT_ENVIRONMENT = {
    "FUSIONAUTH_APP_MEMORY": "512M",
    "FUSIONAUTH_APP_RUNTIME_MODE": "development",
    "SEARCH_TYPE": "database",
}


class FusionAuthService(ServiceWrapper):
    """FusionAuth identity server in a container."""

    def __init__(self, version: str = "latest", runtime=None,
                 environment: Optional[Dict[str, str]] = None,
                 host_port: Optional[int] = None,
                 startup_timeout_s: float = 60.0):
        env = dict(DEFAULT_ENVIRONMENT)
        env.update(environment or {})

        descriptor = ServiceDescriptor(
            image=IMAGE,
            version=version,
            ports={PORT: host_port},
            environment=env,
            startup_timeout_s=startup_timeout_s,
        )
        probe = HttpProbe(PORT, JWKS_PATH, required_keys=("keys",), timeout_s=5.0)

        super().__init__(descriptor, probe=probe, runtime=runtime)

    def api_url(self) -> str:
        return self.base_url(PORT)

    def jwks_url(self) -> str:
        return self.api_url() + JWKS_PATH
