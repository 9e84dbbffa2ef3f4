#!/usr/bin/env python3
"""
run_service.py - Start a wrapped service and check it becomes healthy

Usage:
    servicewrap-run examples/fusionauth.yaml
    servicewrap-run --service fusionauth --version 1.2.0
    servicewrap-run examples/fusionauth.yaml --dry-run
    servicewrap-run --cleanup

The script will:
1. Load the service from YAML (or pick a registered service)
2. Start the container
3. Wait until the readiness probe succeeds
4. Report where the service is reachable
5. Stop and remove the container, whatever happened
"""

import argparse
import logging
import sys
import time
import traceback
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional

import yaml

from servicewrap.config.descriptor import load_service_config
from servicewrap.errors import ConfigurationError, LaunchError
from servicewrap.probes import build_probe
from servicewrap.runtime.docker_runtime import cleanup_labelled_containers
from servicewrap.services import SERVICES
from servicewrap.wrapper import ServiceWrapper


@dataclass
class RunResult:
    """Outcome of one start/probe/stop cycle."""
    success: bool
    startup_sec: float
    url: Optional[str] = None
    logs: Optional[str] = None
    error_message: Optional[str] = None


def run_until_healthy(wrapper: ServiceWrapper, timeout_s: float = 60.0,
                capture_logs: bool = False) -> RunResult:
    """
    Start, wait for health, stop.

    Never raises for launch or readiness failures; they end up in
    RunResult.error_message. The container is always removed.
    """
    start_wall_time = time.time()
    url = None
    logs = None

    try:
        with wrapper:
            wrapper.wait_until_healthy(timeout_s=timeout_s)
            if wrapper.descriptor.ports:
                url = wrapper.base_url()
            if capture_logs:
                logs = wrapper.get_logs()

        return RunResult(
            success=True,
            startup_sec=time.time() - start_wall_time,
            url=url,
            logs=logs,
        )

    except (LaunchError, TimeoutError) as e:
        return RunResult(
            success=False,
            startup_sec=time.time() - start_wall_time,
            error_message=str(e),
        )


def build_wrapper(args: argparse.Namespace) -> ServiceWrapper:
    """Create the wrapper selected on the command line."""
    if args.service:
        cls = SERVICES[args.service]
        return cls(version="latest" if args.version is None else args.version)

    descriptor, probe_config = load_service_config(str(args.config))

    if args.version is not None:
        descriptor = replace(descriptor, version=args.version)

    return ServiceWrapper(descriptor, probe=build_probe(probe_config, descriptor))


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Start a containerized service and wait until it is healthy.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Service described in YAML
  servicewrap-run examples/fusionauth.yaml

  # Built-in service with a pinned version
  servicewrap-run --service fusionauth --version 1.2.0

  # Remove containers left behind by crashed runs
  servicewrap-run --cleanup
        """
    )

    parser.add_argument(
        "config",
        type=Path,
        nargs="?",
        help="Path to service YAML file"
    )

    parser.add_argument(
        "--service",
        choices=sorted(SERVICES),
        default=None,
        help="Use a built-in service instead of a YAML file"
    )

    parser.add_argument(
        "--version",
        default=None,
        help="Override image version (default: from YAML, or 'latest')"
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Seconds to wait for the service to become healthy (default: 60)"
    )

    parser.add_argument(
        "--logs",
        action="store_true",
        help="Print container logs before stopping it"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration without starting anything"
    )

    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Remove all servicewrap containers and exit"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output (debug logging)"
    )

    args = parser.parse_args(argv)

    if not args.cleanup and (args.config is None) == (args.service is None):
        parser.error("give exactly one of a config file or --service")

    return args


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        0 on success, 1 on failure
    """
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='[%(name)s] %(levelname)s: %(message)s',
        stream=sys.stderr
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("docker").setLevel(logging.WARNING)

    try:
        if args.cleanup:
            removed = cleanup_labelled_containers()
            print(f"[Runner] Removed {removed} container(s)")
            return 0

        if args.config is not None and not args.config.exists():
            print(f"ERROR: Service file not found: {args.config}", file=sys.stderr)
            return 1

        wrapper = build_wrapper(args)

        if args.dry_run:
            d = wrapper.descriptor
            print("\n✓ Service configuration valid")
            print(f"  Image: {d.image_ref}")
            print(f"  Ports: {', '.join(str(p) for p in d.ports) or '(none)'}")
            print(f"  Probe: {wrapper.probe!r}")
            print("\n(Use without --dry-run to start it)")
            return 0

        print(f"[Runner] Starting {wrapper.name}...")
        result = run_until_healthy(wrapper, timeout_s=args.timeout, capture_logs=args.logs)

        if result.logs:
            print("\n" + "="*60)
            print("Container logs")
            print("="*60)
            print(result.logs)

        if result.success:
            print(f"\n✓ {wrapper.name} healthy after {result.startup_sec:.1f}s")
            if result.url:
                print(f"  URL: {result.url}")
            return 0
        else:
            print(f"\n✗ {wrapper.name} FAILED")
            print(f"\nError: {result.error_message}", file=sys.stderr)
            return 1

    except FileNotFoundError as e:
        print(f"\nERROR: File not found: {e}", file=sys.stderr)
        return 1

    except (ConfigurationError, yaml.YAMLError) as e:
        print(f"\nERROR: Invalid service configuration:", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        return 1

    except Exception as e:
        print(f"\nERROR: Unexpected error:", file=sys.stderr)
        print(f"  {type(e).__name__}: {e}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
