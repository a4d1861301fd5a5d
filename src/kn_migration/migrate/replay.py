"""
Revision history replay for one service.

Creating a Knative service makes the destination cluster fabricate its
first revision on its own, under the same name the source gave to the
service's latest revision.  Replaying that revision with a plain create
would collide with it, so every source revision takes one of two paths:

  CREATE     name differs from the destination's latest created revision:
             create it fresh, owned by the destination Configuration.
  RECONCILE  name equals the latest created revision: fetch the revision
             the destination made and copy the source generation label
             onto it (read-modify-write, repeated on conflict).

The latest created revision name is captured once, right after the
service is created, and never re-read while the history is replayed.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable

from ..client import KnativeClient
from ..config import MigrationConfig
from ..errors import ConflictError, NotFoundError
from ..models import (
    CONFIGURATION_GENERATION_LABEL,
    RevisionResult,
    generation_of,
    name_of,
)
from .retry import BoundedRetry, RetryPolicy

__all__ = [
    "ReplayPlan",
    "ReplayStrategy",
    "RevisionReplayer",
    "conflict_policy",
    "not_found_policy",
]

logger = logging.getLogger(__name__)


def not_found_policy(cfg: MigrationConfig) -> RetryPolicy:
    return RetryPolicy(cfg.max_get_retries, cfg.retry_interval)


def conflict_policy(cfg: MigrationConfig) -> RetryPolicy:
    # Conflicts are retried straight away with a fresh read.
    return RetryPolicy(cfg.max_update_retries, 0.0)


class ReplayStrategy(enum.Enum):
    CREATE = "created"
    RECONCILE = "reconciled"


@dataclass(frozen=True)
class ReplayPlan:
    """Destination facts captured once per service."""
    latest_created_revision: str
    configuration_uid: str


class RevisionReplayer:
    """Reproduces source revisions of one service on the destination."""

    def __init__(
        self,
        destination: KnativeClient,
        cfg: MigrationConfig,
        plan: ReplayPlan,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._destination = destination
        self._cfg = cfg
        self.plan = plan
        self._sleep = sleep

    def strategy_for(self, revision: dict) -> ReplayStrategy:
        if name_of(revision) == self.plan.latest_created_revision:
            return ReplayStrategy.RECONCILE
        return ReplayStrategy.CREATE

    def replay(self, revision: dict) -> RevisionResult:
        """Replay one source *revision*; errors abort the service."""
        if self.strategy_for(revision) is ReplayStrategy.RECONCILE:
            return self._reconcile(revision)
        return self._create(revision)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _budgets(self, what: str) -> tuple[BoundedRetry, BoundedRetry]:
        missing = BoundedRetry(
            NotFoundError, not_found_policy(self._cfg), sleep=self._sleep, label=f"get {what}",
        )
        conflicts = BoundedRetry(
            ConflictError, conflict_policy(self._cfg), sleep=self._sleep, label=f"update {what}",
        )
        return missing, conflicts

    def _create(self, source: dict) -> RevisionResult:
        name = name_of(source)
        missing, conflicts = self._budgets(f"revision {name}")
        uid = self.plan.configuration_uid

        conflicts.call(
            lambda: missing.call(lambda: self._destination.create_revision(source, uid))
        )
        logger.info("Created revision %s (generation %s)", name, generation_of(source))
        return RevisionResult(name, ReplayStrategy.CREATE.value, generation_of(source))

    def _reconcile(self, source: dict) -> RevisionResult:
        name = name_of(source)
        generation = generation_of(source)
        gets, updates = self._budgets(f"revision {name}")

        if generation is None:
            # The reconciled label mirrors the source, even when it has none
            logger.warning(
                "Source revision %s has no %s label; writing an empty value",
                name, CONFIGURATION_GENERATION_LABEL,
            )
            generation = ""

        def read_modify_write() -> dict:
            revision = gets.call(lambda: self._destination.get_revision(name))
            metadata = revision.setdefault("metadata", {})
            labels = dict(metadata.get("labels") or {})
            labels[CONFIGURATION_GENERATION_LABEL] = generation
            metadata["labels"] = labels
            return self._destination.update_revision(revision)

        updates.call(read_modify_write)
        logger.info("Reconciled revision %s to generation %s", name, generation)
        return RevisionResult(name, ReplayStrategy.RECONCILE.value, generation)
