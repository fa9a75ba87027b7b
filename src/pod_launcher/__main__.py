"""
Entry point for starting or stopping a single build pod.

Usage:
    # Start build 15 in the configured namespace
    python -m pod_launcher start --build-id 15 --container node:12 --token "$SD_TOKEN"

    # Tear it down again
    python -m pod_launcher stop --build-id 15

    # Use a config file (option-bag layout, optionally under 'executor:')
    python -m pod_launcher --config config.yaml stop --build-id 15

Environment overrides (see pod_launcher.config):
    KUBERNETES_HOST, KUBERNETES_TOKEN, KUBERNETES_JOBS_NAMESPACE,
    POD_LAUNCHER_API_URI, POD_LAUNCHER_STORE_URI, POD_LAUNCHER_PREFIX
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from pod_launcher.common.exceptions import LauncherError
from pod_launcher.common.logging import log_exception, setup_logging
from pod_launcher.config import load_config
from pod_launcher.credentials import load_service_account_token, load_template
from pod_launcher.executor import JobDescriptor, PodExecutor

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="pod_launcher",
        description="Start or stop a build pod on Kubernetes",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file (default: built-in defaults + env)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    start = subparsers.add_parser("start", help="Create the build pod")
    start.add_argument("--build-id", type=int, required=True)
    start.add_argument("--container", default=None, help="Container image")
    start.add_argument("--token", default=None, help="Build token passed to the launcher")
    start.add_argument("--api-uri", default=None)
    start.add_argument("--store-uri", default=None)

    stop = subparsers.add_parser("stop", help="Delete the build pod")
    stop.add_argument("--build-id", type=int, required=True)

    return parser.parse_args(argv)


def build_job(args: argparse.Namespace) -> JobDescriptor:
    return JobDescriptor(
        build_id=args.build_id,
        container=getattr(args, "container", None),
        token=getattr(args, "token", None),
        api_uri=getattr(args, "api_uri", None),
        store_uri=getattr(args, "store_uri", None),
    )


async def run(args: argparse.Namespace) -> int:
    """Run one command; returns the process exit code."""
    config = load_config(args.config)
    token = config.kubernetes.token
    if token is None:
        token = load_service_account_token(config.kubernetes.token_path)

    async with PodExecutor(
        config=config,
        template=load_template(config.template_path),
        token=token,
    ) as executor:
        job = build_job(args)
        try:
            if args.command == "start":
                await executor.start(job)
            else:
                await executor.stop(job)
            exit_code = 0
        except (LauncherError, OSError) as e:
            log_exception(
                logger,
                e,
                f"{args.command} failed",
                include_traceback=False,
                build_id=job.build_id,
            )
            exit_code = 1

        print(json.dumps(executor.stats().to_dict()))
        return exit_code


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(level=getattr(logging, args.log_level), json_format=args.json_logs)
    try:
        return asyncio.run(run(args))
    except LauncherError as e:
        log_exception(logger, e, "Launcher configuration error", include_traceback=False)
        return 1


if __name__ == "__main__":
    sys.exit(main())
