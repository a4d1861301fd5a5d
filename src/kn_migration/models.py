"""
Shared data models, API coordinates and field helpers used across the
kn-migration project.

Knative resources are handled as the plain dicts returned by the
Kubernetes API; the helpers below pull out the few fields the migration
engine cares about.
"""

from __future__ import annotations

from dataclasses import dataclass, field


# ------------------------------------------------------------------
# Knative Serving API coordinates and well-known labels
# ------------------------------------------------------------------

SERVING_GROUP = "serving.knative.dev"
SERVING_VERSION = "v1"
SERVING_API_VERSION = f"{SERVING_GROUP}/{SERVING_VERSION}"

SERVICES = "services"
REVISIONS = "revisions"
CONFIGURATIONS = "configurations"

SERVICE_LABEL = "serving.knative.dev/service"
CONFIGURATION_GENERATION_LABEL = "serving.knative.dev/configurationGeneration"
CONFIGURATION_UID_LABEL = "serving.knative.dev/configurationUID"

CONFIGMAP_SUFFIX = "-config"


def configmap_name(service_name: str) -> str:
    """Name of the ConfigMap that belongs to *service_name* by convention."""
    return f"{service_name}{CONFIGMAP_SUFFIX}"


# ------------------------------------------------------------------
# Field helpers
# ------------------------------------------------------------------

def name_of(obj: dict) -> str:
    return (obj.get("metadata") or {}).get("name", "")


def labels_of(obj: dict) -> dict[str, str]:
    return (obj.get("metadata") or {}).get("labels") or {}


def uid_of(obj: dict) -> str:
    return (obj.get("metadata") or {}).get("uid", "")


def generation_of(revision: dict) -> str | None:
    """The ``configurationGeneration`` label of *revision*, or None."""
    return labels_of(revision).get(CONFIGURATION_GENERATION_LABEL)


def latest_created_revision(service: dict) -> str:
    """``status.latestCreatedRevisionName`` (empty until the first reconcile)."""
    return (service.get("status") or {}).get("latestCreatedRevisionName") or ""


def latest_ready_revision(service: dict) -> str:
    return (service.get("status") or {}).get("latestReadyRevisionName") or ""


def service_url(service: dict) -> str:
    return (service.get("status") or {}).get("url") or ""


def ready_status(obj: dict) -> str:
    """Status of the ``Ready`` condition: "True", "False" or "Unknown"."""
    for cond in (obj.get("status") or {}).get("conditions") or []:
        if cond.get("type") == "Ready":
            return cond.get("status") or "Unknown"
    return "Unknown"


# ------------------------------------------------------------------
# Result records
# ------------------------------------------------------------------

@dataclass
class RevisionResult:
    """Outcome of replaying a single revision."""
    name: str
    action: str  # "created" or "reconciled"
    generation: str | None = None


@dataclass
class ServiceResult:
    name: str
    configmap_copied: bool = False
    replaced: bool = False  # True when --force removed an existing destination service
    configuration_uid: str = ""
    latest_created_revision: str = ""
    revisions: list[RevisionResult] = field(default_factory=list)


@dataclass
class MigrationSummary:
    source_namespace: str
    destination_namespace: str
    namespace_created: bool = False
    services: list[ServiceResult] = field(default_factory=list)
    deleted_services: list[str] = field(default_factory=list)  # removed from the source
