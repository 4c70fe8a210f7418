#!/usr/bin/env python3

import argparse
import logging
import sys
from collections.abc import Sequence
from datetime import timedelta
from typing import Optional

from node_cleanup.platform.kube import KubeClient
from node_cleanup.service.aws import AWSService
from node_cleanup.service.cleanup import CleanupConfig, CleanupService
from node_cleanup.util.util import env, parse_duration, setup_logging

logger = logging.getLogger()


def _duration(value: str) -> timedelta:
    try:
        duration = parse_duration(value)
    except ValueError as error:
        raise argparse.ArgumentTypeError(str(error)) from error
    if duration.total_seconds() <= 0:
        raise argparse.ArgumentTypeError(f"Duration must be positive: '{value}'")
    return duration


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Delete Kubernetes nodes whose EC2 instance is no longer running."
    )
    parser.add_argument(
        "--frequency",
        type=_duration,
        default=env("FREQUENCY", default="120s"),
        help="How frequently to check for nodes to cleanup (env: FREQUENCY).",
    )
    parser.add_argument(
        "--dry",
        action="store_true",
        default=env.bool("DRY_RUN", default=False),
        help="Only log, don't delete nodes (env: DRY_RUN).",
    )
    parser.add_argument(
        "--kubeconfig",
        default=env("KUBECONFIG", default=None),
        help="Kubeconfig file, in-cluster config is used when unset "
        "(env: KUBECONFIG).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cleanup pass and exit.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging()

    config = CleanupConfig(frequency=args.frequency, dry_run=args.dry)
    cleanup_service = CleanupService(
        config=config,
        kube_client=KubeClient(config_file=args.kubeconfig),
        aws_service=AWSService(),
    )

    if args.once:
        logger.info("Running a single cleanup pass...")
        results = cleanup_service.reconcile()
        return 0 if results is not None else 1

    cleanup_service.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
