"""
Migration of a single Knative service from the source to the destination.

Steps, each one a hard gate:
  preflight         refuse (without touching anything) when the service
                    already exists on the destination and --force is off
  configmap         copy ``<service>-config`` if the source has one
  service           delete the existing destination service (--force),
                    then create it from the source spec
  service-status    wait for the destination to report its latest
                    created revision
  configuration     read the UID of the destination Configuration
  revisions         list the source revision history
  revision <name>   replay one source revision, in source order

Any failure is raised as ``ServiceMigrationError`` naming the step.
Nothing already created on the destination is undone.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from ..client import KnativeClient
from ..config import MigrationConfig
from ..errors import (
    AlreadyExistsError,
    ClientError,
    MigrationError,
    NotFoundError,
    PendingDeletionError,
    ServiceMigrationError,
)
from ..models import (
    ServiceResult,
    configmap_name,
    latest_created_revision,
    name_of,
    uid_of,
)
from .replay import ReplayPlan, RevisionReplayer, not_found_policy
from .retry import retry_call

__all__ = ["ServiceMigrator"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ServiceMigrator:
    """Moves one service at a time, configmap and revision history included."""

    def __init__(
        self,
        source: KnativeClient,
        destination: KnativeClient,
        cfg: MigrationConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._source = source
        self._destination = destination
        self._cfg = cfg
        self._sleep = sleep

    def migrate(self, service: dict) -> ServiceResult:
        name = name_of(service)
        result = ServiceResult(name)

        exists = self._step(name, "preflight", lambda: self._destination.service_exists(name))
        if exists and not self._cfg.force:
            raise ServiceMigrationError(
                name,
                "preflight",
                AlreadyExistsError(
                    f"cannot migrate service {name} in namespace "
                    f"{self._destination.namespace} because the service already "
                    f"exists and no --force option was given"
                ),
            )

        result.configmap_copied = self._step(name, "configmap", lambda: self._copy_configmap(name))

        self._step(name, "service", lambda: self._create_service(service, replace=exists))
        result.replaced = exists
        print(f"  Migrated service {name} successfully")

        result.latest_created_revision = self._step(
            name, "service-status", lambda: self._wait_for_latest_revision(name)
        )
        result.configuration_uid = self._step(
            name, "configuration", lambda: self._configuration_uid(name)
        )
        logger.debug(
            "Service %s: latest created revision %s, configuration uid %s",
            name, result.latest_created_revision, result.configuration_uid,
        )

        plan = ReplayPlan(result.latest_created_revision, result.configuration_uid)
        replayer = RevisionReplayer(self._destination, self._cfg, plan, sleep=self._sleep)

        revisions = self._step(
            name, "revisions", lambda: self._source.list_revisions_by_service(name)
        )
        for index, revision in enumerate(revisions):
            if index and self._cfg.revision_interval:
                # Let the destination controllers settle before the next one
                self._sleep(self._cfg.revision_interval)
            rev_name = name_of(revision)
            rev_result = self._step(name, f"revision {rev_name}", lambda: replayer.replay(revision))
            result.revisions.append(rev_result)
            if rev_result.action == "reconciled":
                print(
                    f"  Replaced revision {rev_name} to generation "
                    f"{rev_result.generation} successfully"
                )
            else:
                print(f"  Migrated revision {rev_name} successfully")

        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    @staticmethod
    def _step(service: str, step: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except MigrationError as exc:
            logger.error("Service %s failed at step '%s': %s", service, step, exc)
            raise ServiceMigrationError(service, step, exc) from exc

    def _copy_configmap(self, service_name: str) -> bool:
        cm_name = configmap_name(service_name)
        try:
            configmap = self._source.get_configmap(self._source.namespace, cm_name)
        except NotFoundError:
            print(f"  No configmap for service {service_name}, skip migrate configmap")
            return False

        dst_ns = self._destination.namespace
        try:
            self._destination.create_configmap(dst_ns, configmap)
        except AlreadyExistsError:
            if not self._cfg.force:
                raise
            logger.info("Configmap %s exists in %s, replacing (--force)", cm_name, dst_ns)
            self._destination.replace_configmap(dst_ns, configmap)
        print(f"  Migrated configmap {cm_name} successfully")
        return True

    def _create_service(self, service: dict, replace: bool) -> None:
        name = name_of(service)
        if replace:
            print(
                f"  Deleting service {name} from the destination cluster "
                f"and recreate as replacement"
            )
            self._destination.delete_service(name)
            self._wait_until_removed(name)
        self._destination.create_service(service)

    def _wait_until_removed(self, name: str) -> None:
        """Block until the deleted service and its revisions are gone."""
        def check() -> None:
            if self._destination.service_exists(name):
                raise PendingDeletionError(f"service {name} is still being deleted")
            if self._destination.list_revisions_by_service(name):
                raise PendingDeletionError(f"revisions of service {name} are still being deleted")

        retry_call(
            check, PendingDeletionError, not_found_policy(self._cfg),
            sleep=self._sleep, label=f"removal of service {name}",
        )

    def _wait_for_latest_revision(self, name: str) -> str:
        # latestCreatedRevisionName is empty until the destination's first
        # reconcile pass, which counts as not found.
        def fetch() -> str:
            latest = latest_created_revision(self._destination.get_service(name))
            if not latest:
                raise NotFoundError(f"service {name} reports no latest created revision yet")
            return latest

        return retry_call(
            fetch, NotFoundError, not_found_policy(self._cfg),
            sleep=self._sleep, label=f"status of service {name}",
        )

    def _configuration_uid(self, name: str) -> str:
        configuration = retry_call(
            lambda: self._destination.get_configuration(name),
            NotFoundError,
            not_found_policy(self._cfg),
            sleep=self._sleep,
            label=f"configuration {name}",
        )
        uid = uid_of(configuration)
        if not uid:
            raise ClientError(f"configuration {name} has no uid")
        return uid
