from __future__ import annotations

import pytest

from fakes import FakeCluster, make_revision, make_service
from kn_migration.errors import AlreadyExistsError, ClientError, ConflictError, NotFoundError
from kn_migration.models import CONFIGURATION_GENERATION_LABEL, CONFIGURATION_UID_LABEL
from kn_migration.migrate.replay import ReplayPlan, ReplayStrategy, RevisionReplayer


def _count(cluster: FakeCluster, method: str) -> int:
    return sum(1 for m, _ in cluster.calls if m == method)


@pytest.fixture
def replayer(destination, cfg, sleep) -> RevisionReplayer:
    destination.create_service(make_service("foo", template_name="foo-00002"))
    plan = ReplayPlan(
        latest_created_revision="foo-00002",
        configuration_uid=destination.configurations["foo"]["metadata"]["uid"],
    )
    destination.calls.clear()
    return RevisionReplayer(destination, cfg, plan, sleep=sleep)


def test_strategy_is_decided_by_latest_created_name(replayer):
    assert replayer.strategy_for(make_revision("foo", "foo-00002", "2")) is ReplayStrategy.RECONCILE
    assert replayer.strategy_for(make_revision("foo", "foo-00001", "1")) is ReplayStrategy.CREATE


def test_create_binds_revision_to_destination_configuration(replayer, destination):
    result = replayer.replay(make_revision("foo", "foo-00001", "1"))

    assert result.action == "created"
    assert result.generation == "1"
    created = destination.revisions["foo-00001"]
    uid = replayer.plan.configuration_uid
    assert created["metadata"]["namespace"] == "dest-ns"
    assert created["metadata"]["labels"][CONFIGURATION_GENERATION_LABEL] == "1"
    assert created["metadata"]["labels"][CONFIGURATION_UID_LABEL] == uid
    assert created["metadata"]["ownerReferences"][0]["uid"] == uid
    assert _count(destination, "update_revision") == 0


def test_reconcile_overwrites_generation_of_auto_created_revision(replayer, destination):
    assert destination.revisions["foo-00002"]["metadata"]["labels"][CONFIGURATION_GENERATION_LABEL] == "1"

    result = replayer.replay(make_revision("foo", "foo-00002", "2"))

    assert result.action == "reconciled"
    assert result.generation == "2"
    assert destination.revisions["foo-00002"]["metadata"]["labels"][CONFIGURATION_GENERATION_LABEL] == "2"
    assert _count(destination, "create_revision") == 0
    assert _count(destination, "update_revision") == 1


def test_reconcile_waits_for_revision_to_become_visible(replayer, destination, sleep):
    destination.revision_lag["foo-00002"] = 2

    replayer.replay(make_revision("foo", "foo-00002", "2"))

    assert _count(destination, "get_revision") == 3
    assert sleep.calls == [1.0, 1.0]


def test_reconcile_gives_up_after_exactly_max_get_retries(replayer, destination, cfg):
    destination.revision_lag["foo-00002"] = 1000

    with pytest.raises(NotFoundError):
        replayer.replay(make_revision("foo", "foo-00002", "2"))

    assert _count(destination, "get_revision") == cfg.max_get_retries
    assert _count(destination, "update_revision") == 0


def test_reconcile_rereads_and_retries_on_conflict(replayer, destination, sleep):
    destination.update_conflicts["foo-00002"] = 2

    replayer.replay(make_revision("foo", "foo-00002", "2"))

    assert _count(destination, "update_revision") == 3
    assert _count(destination, "get_revision") == 3
    assert sleep.calls == []
    assert destination.revisions["foo-00002"]["metadata"]["labels"][CONFIGURATION_GENERATION_LABEL] == "2"


def test_reconcile_gives_up_after_max_update_retries(replayer, destination, cfg):
    destination.update_conflicts["foo-00002"] = 1000

    with pytest.raises(ConflictError):
        replayer.replay(make_revision("foo", "foo-00002", "2"))

    assert _count(destination, "update_revision") == cfg.max_update_retries


def test_get_and_update_budgets_are_independent(replayer, destination, cfg):
    # Use up all but one of the get budget, then lose several update races.
    destination.revision_lag["foo-00002"] = cfg.max_get_retries - 1
    destination.update_conflicts["foo-00002"] = cfg.max_update_retries - 1

    result = replayer.replay(make_revision("foo", "foo-00002", "2"))

    assert result.generation == "2"


@pytest.mark.parametrize(
    "error",
    [
        ClientError("forbidden", status=403),
        AlreadyExistsError("revision exists", status=409, reason="AlreadyExists"),
    ],
)
def test_create_fails_without_retry_on_other_errors(replayer, destination, sleep, error):
    destination.failures["create_revision"] = error

    with pytest.raises(type(error)):
        replayer.replay(make_revision("foo", "foo-00001", "1"))

    assert _count(destination, "create_revision") == 1
    assert sleep.calls == []


def test_revisions_sharing_the_latest_name_are_all_reconciled(replayer, destination):
    results = [
        replayer.replay(make_revision("foo", "foo-00002", "2")),
        replayer.replay(make_revision("foo", "foo-00002", "3")),
    ]

    assert [r.action for r in results] == ["reconciled", "reconciled"]
    assert _count(destination, "create_revision") == 0
    assert destination.revisions["foo-00002"]["metadata"]["labels"][CONFIGURATION_GENERATION_LABEL] == "3"


def test_reconcile_without_source_generation_clears_destination_value(replayer, destination):
    result = replayer.replay(make_revision("foo", "foo-00002", None))

    assert result.action == "reconciled"
    assert result.generation == ""
    assert _count(destination, "update_revision") == 1
    assert destination.revisions["foo-00002"]["metadata"]["labels"][CONFIGURATION_GENERATION_LABEL] == ""
