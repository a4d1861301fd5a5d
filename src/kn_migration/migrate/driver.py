"""
Whole-namespace migration: every service of the source namespace, one
after the other, followed by the optional source cleanup.

The first service that fails stops the run.  Source services are only
deleted once all of them have been migrated.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from ..client import KnativeClient
from ..config import MigrationConfig
from ..errors import NotFoundError
from ..models import MigrationSummary, name_of
from ..report import print_services_with_revisions
from .orchestrator import ServiceMigrator

__all__ = ["ClusterMigrator", "connect"]

logger = logging.getLogger(__name__)

Reporter = Callable[[KnativeClient, str], None]


def connect(cfg: MigrationConfig) -> tuple[KnativeClient, KnativeClient]:
    """Build (source, destination) clients from a validated config."""
    source = KnativeClient.from_kubeconfig(cfg.kubeconfig, cfg.namespace)
    destination = KnativeClient.from_kubeconfig(
        cfg.destination_kubeconfig, cfg.destination_namespace
    )
    return source, destination


class ClusterMigrator:
    """Migrates all services of the source namespace to the destination."""

    def __init__(
        self,
        source: KnativeClient,
        destination: KnativeClient,
        cfg: MigrationConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
        reporter: Reporter = print_services_with_revisions,
    ) -> None:
        self._source = source
        self._destination = destination
        self._cfg = cfg
        self._sleep = sleep
        self._report = reporter

    def run(self) -> MigrationSummary:
        cfg = self._cfg
        summary = MigrationSummary(cfg.namespace, cfg.destination_namespace)

        print("[Source cluster]")
        self._report(self._source, "source")
        print("[Before migration in destination cluster]")
        self._report(self._destination, "destination")

        print("Now migrate all Knative service resources")
        print(f"From the source {cfg.namespace} namespace of cluster {cfg.kubeconfig}")
        print(f"To the destination {cfg.destination_namespace} namespace of cluster {cfg.destination_kubeconfig}")

        summary.namespace_created = self._destination.get_or_create_namespace(
            cfg.destination_namespace
        )
        if summary.namespace_created:
            print(f"Created namespace {cfg.destination_namespace} in destination cluster")
        else:
            print(f"Namespace {cfg.destination_namespace} already exists in destination cluster")

        services = self._source.list_services()
        logger.info("Found %d service(s) in source namespace %s", len(services), cfg.namespace)

        migrator = ServiceMigrator(self._source, self._destination, cfg, sleep=self._sleep)
        for i, service in enumerate(services, 1):
            print(f"[{i}/{len(services)}] Start migrate service {name_of(service)}")
            summary.services.append(migrator.migrate(service))
            print()

        print("[After migration in destination cluster]")
        self._report(self._destination, "destination")

        summary.deleted_services = self._delete_source_services(
            [result.name for result in summary.services]
        )
        return summary

    def _delete_source_services(self, migrated: list[str]) -> list[str]:
        """Delete the *migrated* services from the source.

        Services that appeared in the source after it was listed are left
        alone, they were never copied.
        """
        if not self._cfg.delete:
            print("Migrate without --delete option, skip deleting Knative resource in source cluster")
            return []

        print("Migrate with --delete option, deleting migrated Knative services in source cluster")
        deleted: list[str] = []
        for name in migrated:
            try:
                self._source.delete_service(name)
            except NotFoundError:
                logger.warning("Service %s already gone from source namespace", name)
                continue
            deleted.append(name)
            print(f"  Deleted service {name} in source cluster")
        return deleted
