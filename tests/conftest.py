from __future__ import annotations

import pytest

from fakes import FakeCluster
from kn_migration.config import MigrationConfig


class RecordingSleep:
    """Replacement for ``time.sleep`` that only remembers what it was asked."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def source() -> FakeCluster:
    return FakeCluster("source-ns")


@pytest.fixture
def destination() -> FakeCluster:
    return FakeCluster("dest-ns")


@pytest.fixture
def cfg() -> MigrationConfig:
    return MigrationConfig(
        namespace="source-ns",
        kubeconfig="/tmp/source.kubeconfig",
        destination_namespace="dest-ns",
        destination_kubeconfig="/tmp/dest.kubeconfig",
        max_get_retries=4,
        max_update_retries=3,
    )


@pytest.fixture
def no_report():
    calls: list[tuple[str, str]] = []

    def _report(client, label: str) -> None:
        calls.append((client.namespace, label))

    _report.calls = calls  # type: ignore[attr-defined]
    return _report
