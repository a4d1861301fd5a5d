"""
CLI entry point for the migrate command.

Migrates every Knative service (with its configmap and full revision
history) from the source namespace of one cluster to the destination
namespace of another.

  kn-migration --namespace default --destination-namespace default
  kn-migration -n default --destination-namespace default \\
      --kubeconfig ~/.kube/source.yml --destination-kubeconfig ~/.kube/dest.yml
  kn-migration -n default --destination-namespace default --force --delete

This module is the only place that prints terminal errors and exits.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from ..config import ConfigError, MigrationConfig, resolve_config
from ..errors import MigrationError
from ..logging_setup import DEFAULT_LOG_DIR, setup_logging
from .driver import ClusterMigrator, connect

__all__ = ["main"]

logger = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="kn-migration",
        description="Migrate Knative services from source cluster to destination cluster",
        epilog="Examples:\n"
               "  %(prog)s -n default --destination-namespace default\n"
               "  %(prog)s -n default --destination-namespace default --force --delete\n",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--namespace",
        "-n",
        default="",
        help="The namespace of the source Knative resources",
    )
    parser.add_argument(
        "--kubeconfig",
        default="",
        help="The kubeconfig of the Knative resources (default is KUBECONFIG from environment variable)",
    )
    parser.add_argument(
        "--destination-namespace",
        default="",
        help="The namespace of the destination Knative resources",
    )
    parser.add_argument(
        "--destination-kubeconfig",
        default="",
        help=(
            "The kubeconfig of the destination Knative resources "
            "(default is KUBECONFIG_DESTINATION from environment variable)"
        ),
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Migrate service forcefully, replaces existing service if any.",
    )
    parser.add_argument(
        "--delete",
        action="store_true",
        help="Delete all Knative resources after kn-migration from source cluster",
    )
    parser.add_argument(
        "--config",
        "-c",
        default=None,
        help="Path to YAML settings file (default: config/config.yaml in the working directory, if present)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    parser.add_argument(
        "--log-dir",
        default=DEFAULT_LOG_DIR,
        help="Directory for the run log file (default: logs/ in the working directory)",
    )
    return parser.parse_args(argv)


def _load(args: argparse.Namespace) -> MigrationConfig:
    cfg = resolve_config(args)
    cfg.validate()
    return cfg


def main(argv: Sequence[str] | None = None) -> None:
    args = _parse_args(argv)

    try:
        cfg = _load(args)
    except ConfigError as exc:
        print(exc)
        sys.exit(1)

    try:
        log_path = setup_logging(
            verbose=args.verbose, log_prefix="migrate", log_dir=args.log_dir,
        )
    except OSError as exc:
        print(f"cannot write log file in {args.log_dir}: {exc}")
        sys.exit(1)
    logger.info("Migration config: %s", cfg)
    print(f"Log file: {log_path}")

    try:
        source, destination = connect(cfg)
        summary = ClusterMigrator(source, destination, cfg).run()
    except MigrationError as exc:
        logger.error("Migration failed: %s", exc)
        print(exc)
        sys.exit(1)

    migrated = sum(len(s.revisions) for s in summary.services)
    print(
        f"Migrated {len(summary.services)} service(s) and {migrated} revision(s) "
        f"to namespace {summary.destination_namespace}"
    )
