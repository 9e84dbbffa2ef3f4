"""
servicewrap.runtime - Container lifecycle collaborator

Wraps the Docker SDK behind the small start/stop/exec/logs/port surface
that ServiceWrapper needs.
"""

from .docker_runtime import DockerRuntime, cleanup_labelled_containers, LABEL

__all__ = ['DockerRuntime', 'cleanup_labelled_containers', 'LABEL']
