"""
servicewrap.services - Ready-made service wrappers

SERVICES maps the names accepted by `servicewrap-run --service` to
wrapper classes taking a `version` keyword.
"""

from .fusionauth import FusionAuthService

SERVICES = {
    'fusionauth': FusionAuthService,
}

__all__ = ['FusionAuthService', 'SERVICES']
