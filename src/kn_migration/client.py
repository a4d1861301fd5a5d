"""
Kubernetes / Knative Serving API client for listing, reading, creating,
updating and deleting services, revisions, configurations, configmaps and
namespaces in a single cluster namespace.

Features:
  - One client per (cluster, namespace) pair
  - Every ``ApiException`` is classified into NotFound / Conflict /
    AlreadyExists / Other (see ``kn_migration.errors``)
  - Dependency injection for the API objects (testability)
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any, Callable, TypeVar

import urllib3
from kubernetes import client, config
from kubernetes.client import ApiException
from kubernetes.config.config_exception import ConfigException

from .errors import (
    AlreadyExistsError,
    ClientError,
    ConflictError,
    NotFoundError,
)
from .models import (
    CONFIGURATION_UID_LABEL,
    CONFIGURATIONS,
    REVISIONS,
    SERVICE_LABEL,
    SERVICES,
    SERVING_API_VERSION,
    SERVING_GROUP,
    SERVING_VERSION,
    name_of,
)

__all__ = ["KnativeClient", "classify_api_error"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CONFIGURATION_LABEL = "serving.knative.dev/configuration"


def _parse_status_body(exc: ApiException) -> dict:
    """Best-effort parse of the ``Status`` object in an API error body."""
    body = getattr(exc, "body", None)
    if not body:
        return {}
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def classify_api_error(exc: ApiException, action: str) -> ClientError:
    """Map an ``ApiException`` onto the migration error taxonomy.

    404 -> NotFoundError, 409 with reason ``AlreadyExists`` ->
    AlreadyExistsError, any other 409 -> ConflictError, everything else
    -> ClientError.
    """
    status_body = _parse_status_body(exc)
    reason = status_body.get("reason") or getattr(exc, "reason", "") or ""
    detail = status_body.get("message") or getattr(exc, "reason", "") or str(exc)
    message = f"{action}: {detail}"

    if exc.status == 404:
        return NotFoundError(message, status=exc.status, reason=reason)
    if exc.status == 409:
        if reason == "AlreadyExists":
            return AlreadyExistsError(message, status=exc.status, reason=reason)
        return ConflictError(message, status=exc.status, reason=reason)
    return ClientError(message, status=exc.status, reason=reason)


class KnativeClient:
    """Client for one namespace of one cluster (Knative Serving and core objects)."""

    def __init__(
        self,
        namespace: str,
        *,
        api_client: client.ApiClient | None = None,
        custom_api: Any = None,
        core_api: Any = None,
        cluster: str = "",
    ) -> None:
        self.namespace = namespace
        self.cluster = cluster
        self._api_client = api_client
        self._custom = custom_api or client.CustomObjectsApi(api_client)
        self._core = core_api or client.CoreV1Api(api_client)

    @classmethod
    def from_kubeconfig(cls, kubeconfig: str, namespace: str) -> "KnativeClient":
        """Build a client for *namespace* from a kubeconfig file."""
        try:
            api_client = config.new_client_from_config(config_file=kubeconfig)
        except (ConfigException, OSError) as exc:
            raise ClientError(f"cannot load kube config {kubeconfig}: {exc}") from exc
        logger.debug("Connected to cluster from %s (namespace %s)", kubeconfig, namespace)
        return cls(namespace, api_client=api_client, cluster=kubeconfig)

    def __repr__(self) -> str:
        return f"KnativeClient(cluster={self.cluster!r}, namespace={self.namespace!r})"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _call(self, action: str, fn: Callable[..., T], **kwargs: Any) -> T:
        logger.debug("%s (%s)", action, self.namespace)
        try:
            return fn(**kwargs)
        except ApiException as exc:
            raise classify_api_error(exc, action) from exc
        except urllib3.exceptions.HTTPError as exc:
            # Connection-level failure, the API server never answered
            raise ClientError(f"{action}: {exc}") from exc

    def _serving(self, plural: str, **kwargs: Any) -> dict[str, Any]:
        return {
            "group": SERVING_GROUP,
            "version": SERVING_VERSION,
            "namespace": self.namespace,
            "plural": plural,
            **kwargs,
        }

    def _to_dict(self, obj: Any) -> dict:
        """Convert a typed core/v1 model into a camelCase dict."""
        if isinstance(obj, dict):
            return obj
        serializer = self._api_client or client.ApiClient()
        return serializer.sanitize_for_serialization(obj)

    # ------------------------------------------------------------------
    # Object preparation
    # ------------------------------------------------------------------

    @staticmethod
    def clean_metadata(raw: dict, namespace: str) -> dict:
        """Keep only the user-owned metadata and rebind the namespace."""
        raw_meta = raw.get("metadata") or {}
        return {
            "name": raw_meta.get("name", ""),
            "namespace": namespace,
            "labels": dict(raw_meta.get("labels") or {}),
            "annotations": dict(raw_meta.get("annotations") or {}),
        }

    @staticmethod
    def prepare_service(service: dict, namespace: str) -> dict:
        """Body for re-creating *service* in *namespace*."""
        return {
            "apiVersion": SERVING_API_VERSION,
            "kind": "Service",
            "metadata": KnativeClient.clean_metadata(service, namespace),
            "spec": copy.deepcopy(service.get("spec") or {}),
        }

    @staticmethod
    def prepare_revision(revision: dict, namespace: str, configuration_uid: str) -> dict:
        """Body for re-creating *revision* under the destination Configuration.

        The owner reference to the Configuration (and the
        ``configurationUID`` label, when present) must carry the UID the
        destination assigned, otherwise the revision is orphaned.
        """
        metadata = KnativeClient.clean_metadata(revision, namespace)
        labels = metadata["labels"]
        if CONFIGURATION_UID_LABEL in labels:
            labels[CONFIGURATION_UID_LABEL] = configuration_uid

        owners = copy.deepcopy((revision.get("metadata") or {}).get("ownerReferences") or [])
        config_owners = [o for o in owners if o.get("kind") == "Configuration"]
        if config_owners:
            for owner in config_owners:
                owner["uid"] = configuration_uid
        elif owners:
            owners[0]["uid"] = configuration_uid
        else:
            owners = [{
                "apiVersion": SERVING_API_VERSION,
                "kind": "Configuration",
                "name": labels.get(_CONFIGURATION_LABEL) or labels.get(SERVICE_LABEL, ""),
                "uid": configuration_uid,
                "controller": True,
                "blockOwnerDeletion": True,
            }]
        metadata["ownerReferences"] = owners

        return {
            "apiVersion": SERVING_API_VERSION,
            "kind": "Revision",
            "metadata": metadata,
            "spec": copy.deepcopy(revision.get("spec") or {}),
        }

    @staticmethod
    def prepare_configmap(configmap: dict, namespace: str) -> dict:
        return {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": KnativeClient.clean_metadata(configmap, namespace),
            "data": dict(configmap.get("data") or {}),
        }

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    def list_services(self) -> list[dict]:
        data = self._call(
            "list services",
            self._custom.list_namespaced_custom_object,
            **self._serving(SERVICES),
        )
        return list(data.get("items") or [])

    def get_service(self, name: str) -> dict:
        return self._call(
            f"get service {name}",
            self._custom.get_namespaced_custom_object,
            **self._serving(SERVICES, name=name),
        )

    def service_exists(self, name: str) -> bool:
        try:
            self.get_service(name)
        except NotFoundError:
            return False
        return True

    def create_service(self, service: dict) -> dict:
        body = self.prepare_service(service, self.namespace)
        return self._call(
            f"create service {name_of(body)}",
            self._custom.create_namespaced_custom_object,
            **self._serving(SERVICES, body=body),
        )

    def delete_service(self, name: str) -> None:
        self._call(
            f"delete service {name}",
            self._custom.delete_namespaced_custom_object,
            **self._serving(SERVICES, name=name),
        )

    # ------------------------------------------------------------------
    # Revisions
    # ------------------------------------------------------------------

    def list_revisions_by_service(self, service_name: str) -> list[dict]:
        """Revisions of *service_name*, in the order the API lists them."""
        data = self._call(
            f"list revisions of service {service_name}",
            self._custom.list_namespaced_custom_object,
            **self._serving(REVISIONS, label_selector=f"{SERVICE_LABEL}={service_name}"),
        )
        return list(data.get("items") or [])

    def get_revision(self, name: str) -> dict:
        return self._call(
            f"get revision {name}",
            self._custom.get_namespaced_custom_object,
            **self._serving(REVISIONS, name=name),
        )

    def create_revision(self, revision: dict, configuration_uid: str) -> dict:
        body = self.prepare_revision(revision, self.namespace, configuration_uid)
        return self._call(
            f"create revision {name_of(body)}",
            self._custom.create_namespaced_custom_object,
            **self._serving(REVISIONS, body=body),
        )

    def update_revision(self, revision: dict) -> dict:
        """Replace *revision*; its ``resourceVersion`` guards against lost updates."""
        name = name_of(revision)
        return self._call(
            f"update revision {name}",
            self._custom.replace_namespaced_custom_object,
            **self._serving(REVISIONS, name=name, body=revision),
        )

    # ------------------------------------------------------------------
    # Configurations
    # ------------------------------------------------------------------

    def get_configuration(self, service_name: str) -> dict:
        """The Configuration owned by *service_name* (same name as the service)."""
        return self._call(
            f"get configuration {service_name}",
            self._custom.get_namespaced_custom_object,
            **self._serving(CONFIGURATIONS, name=service_name),
        )

    # ------------------------------------------------------------------
    # Namespaces and configmaps (core/v1)
    # ------------------------------------------------------------------

    def get_or_create_namespace(self, name: str) -> bool:
        """Ensure namespace *name* exists.  Returns True if it was created."""
        try:
            self._call(f"get namespace {name}", self._core.read_namespace, name=name)
            return False
        except NotFoundError:
            pass
        body = {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}}
        self._call(f"create namespace {name}", self._core.create_namespace, body=body)
        logger.info("Created namespace %s", name)
        return True

    def get_configmap(self, namespace: str, name: str) -> dict:
        obj = self._call(
            f"get configmap {namespace}/{name}",
            self._core.read_namespaced_config_map,
            name=name,
            namespace=namespace,
        )
        return self._to_dict(obj)

    def create_configmap(self, namespace: str, configmap: dict) -> dict:
        body = self.prepare_configmap(configmap, namespace)
        obj = self._call(
            f"create configmap {namespace}/{name_of(body)}",
            self._core.create_namespaced_config_map,
            namespace=namespace,
            body=body,
        )
        return self._to_dict(obj)

    def replace_configmap(self, namespace: str, configmap: dict) -> dict:
        body = self.prepare_configmap(configmap, namespace)
        name = name_of(body)
        obj = self._call(
            f"replace configmap {namespace}/{name}",
            self._core.replace_namespaced_config_map,
            name=name,
            namespace=namespace,
            body=body,
        )
        return self._to_dict(obj)
