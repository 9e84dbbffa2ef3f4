"""
servicewrap.harness - Command line runner

Starts a service, waits for it to become healthy and always removes it.
"""

from .run_service import RunResult, run_until_healthy, main

__all__ = ['RunResult', 'run_until_healthy', 'main']
