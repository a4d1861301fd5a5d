"""
Configuration loading and validation for the Knative service migration.

All settings end up in a single ``MigrationConfig`` value that is passed
explicitly to every component.  Values are resolved in this order:
command-line flags, environment variables (kubeconfig paths only), then
the optional YAML settings file.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ConfigError",
    "MigrationConfig",
    "load_config",
    "resolve_config",
    "validate_k8s_name",
]

# Kubernetes namespace names: DNS-1123 labels, 1-63 chars.
_K8S_NAME_RE = re.compile(r"^[a-z0-9]([-a-z0-9]{0,61}[a-z0-9])?$")

logger = logging.getLogger(__name__)

# Default settings file, relative to the working directory; only read when it exists
DEFAULT_CONFIG_PATH = os.path.join("config", "config.yaml")

ENV_KUBECONFIG = "KUBECONFIG"
ENV_KUBECONFIG_DESTINATION = "KUBECONFIG_DESTINATION"

DEFAULT_MAX_GET_RETRIES = 16
DEFAULT_MAX_UPDATE_RETRIES = 16
DEFAULT_RETRY_INTERVAL = 1.0
DEFAULT_REVISION_INTERVAL = 5.0


class ConfigError(Exception):
    """Raised when required settings are missing or invalid."""


@dataclass(frozen=True)
class MigrationConfig:
    """Everything one migration run needs to know."""
    namespace: str = ""
    kubeconfig: str = ""
    destination_namespace: str = ""
    destination_kubeconfig: str = ""
    force: bool = False
    delete: bool = False
    max_get_retries: int = DEFAULT_MAX_GET_RETRIES
    max_update_retries: int = DEFAULT_MAX_UPDATE_RETRIES
    retry_interval: float = DEFAULT_RETRY_INTERVAL  # seconds between not-found retries
    revision_interval: float = DEFAULT_REVISION_INTERVAL  # seconds between replayed revisions

    def validate(self) -> None:
        """Check that both clusters are fully specified.

        The messages name the flag or environment variable to set, since
        they are shown to the operator as-is.

        Raises:
            ConfigError: On the first missing or invalid input.
        """
        if not self.kubeconfig:
            raise ConfigError(
                "cannot get source cluster kube config, please use --kubeconfig "
                f"or export environment variable {ENV_KUBECONFIG} to set"
            )
        if not self.destination_kubeconfig:
            raise ConfigError(
                "cannot get destination cluster kube config, please use "
                "--destination-kubeconfig or export environment variable "
                f"{ENV_KUBECONFIG_DESTINATION} to set"
            )
        if not self.namespace:
            raise ConfigError(
                "cannot get source cluster namespace, please use --namespace to set"
            )
        if not self.destination_namespace:
            raise ConfigError(
                "cannot get destination cluster namespace, please use "
                "--destination-namespace to set"
            )
        validate_k8s_name(self.namespace, "--namespace")
        validate_k8s_name(self.destination_namespace, "--destination-namespace")
        if self.max_get_retries < 1 or self.max_update_retries < 1:
            raise ConfigError("retry bounds must be at least 1")
        if self.retry_interval < 0 or self.revision_interval < 0:
            raise ConfigError("intervals must not be negative")


def validate_k8s_name(name: str, label: str = "name") -> None:
    """Validate that *name* is a legal Kubernetes namespace name.

    Raises:
        ConfigError: If the name is invalid.
    """
    if not name or not _K8S_NAME_RE.match(name):
        raise ConfigError(
            f"Invalid {label}: {name!r} - must be 1-63 characters of lowercase "
            f"alphanumerics or hyphens, starting and ending with an alphanumeric."
        )


def load_config(config_path: str, required: bool = True) -> dict:
    """Load the YAML settings file.

    Returns an empty dict when the file does not exist and *required* is
    False.

    Raises:
        ConfigError: If a required file is missing or the YAML is not a mapping.
    """
    path = Path(config_path)
    if not path.exists():
        if required:
            raise ConfigError(f"Config file not found: {config_path}")
        return {}

    with open(path, "r") as f:
        try:
            cfg = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Cannot parse config file {config_path}: {exc}") from exc

    if cfg is None:
        cfg = {}
    if not isinstance(cfg, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    for section in ("source", "destination", "migration"):
        if not isinstance(cfg.get(section) or {}, dict):
            raise ConfigError(f"'{section}' in {config_path} must be a mapping")

    logger.debug("Config loaded from %s", config_path)
    return cfg


def _int_setting(section: Mapping[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"migration.{key} must be an integer, got {value!r}")
    return value


def _float_setting(section: Mapping[str, Any], key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"migration.{key} must be a number, got {value!r}")
    return float(value)


def resolve_config(
    args: Any,
    environ: Mapping[str, str] | None = None,
) -> MigrationConfig:
    """Merge parsed CLI *args*, *environ* and the YAML settings file.

    *args* is the ``argparse.Namespace`` from the CLI; attributes that are
    missing are treated as unset.  The result is not validated, call
    ``MigrationConfig.validate()`` before connecting to any cluster.
    """
    if environ is None:
        environ = os.environ

    config_path = getattr(args, "config", None)
    if config_path:
        file_cfg = load_config(config_path, required=True)
    else:
        file_cfg = load_config(DEFAULT_CONFIG_PATH, required=False)

    src_cfg = file_cfg.get("source") or {}
    dst_cfg = file_cfg.get("destination") or {}
    mig_cfg = file_cfg.get("migration") or {}

    kubeconfig = (
        getattr(args, "kubeconfig", None)
        or environ.get(ENV_KUBECONFIG, "")
        or src_cfg.get("kubeconfig", "")
    )
    destination_kubeconfig = (
        getattr(args, "destination_kubeconfig", None)
        or environ.get(ENV_KUBECONFIG_DESTINATION, "")
        or dst_cfg.get("kubeconfig", "")
    )
    namespace = getattr(args, "namespace", None) or src_cfg.get("namespace", "")
    destination_namespace = (
        getattr(args, "destination_namespace", None) or dst_cfg.get("namespace", "")
    )

    return MigrationConfig(
        namespace=str(namespace).strip(),
        kubeconfig=str(kubeconfig).strip(),
        destination_namespace=str(destination_namespace).strip(),
        destination_kubeconfig=str(destination_kubeconfig).strip(),
        force=bool(getattr(args, "force", False)),
        delete=bool(getattr(args, "delete", False)),
        max_get_retries=_int_setting(mig_cfg, "max_get_retries", DEFAULT_MAX_GET_RETRIES),
        max_update_retries=_int_setting(
            mig_cfg, "max_update_retries", DEFAULT_MAX_UPDATE_RETRIES
        ),
        retry_interval=_float_setting(mig_cfg, "retry_interval", DEFAULT_RETRY_INTERVAL),
        revision_interval=_float_setting(
            mig_cfg, "revision_interval", DEFAULT_REVISION_INTERVAL
        ),
    )
