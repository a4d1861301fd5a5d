from __future__ import annotations

import pytest

from kn_migration import config as config_module
from kn_migration.errors import ServiceMigrationError, NotFoundError
from kn_migration.migrate import cli
from kn_migration.models import MigrationSummary, RevisionResult, ServiceResult


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.delenv("KUBECONFIG", raising=False)
    monkeypatch.delenv("KUBECONFIG_DESTINATION", raising=False)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", str(tmp_path / "absent.yaml"))
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: str(tmp_path / "migrate.log"))


class _StubMigrator:
    instances: list["_StubMigrator"] = []
    error: Exception | None = None

    def __init__(self, source, destination, cfg) -> None:
        self.cfg = cfg
        _StubMigrator.instances.append(self)

    def run(self) -> MigrationSummary:
        if _StubMigrator.error is not None:
            raise _StubMigrator.error
        summary = MigrationSummary(self.cfg.namespace, self.cfg.destination_namespace)
        summary.services.append(ServiceResult(
            name="foo",
            revisions=[RevisionResult("foo-00001", "created", "1"), RevisionResult("foo-00002", "reconciled", "2")],
        ))
        return summary


@pytest.fixture
def stubs(monkeypatch):
    connected = []
    _StubMigrator.instances = []
    _StubMigrator.error = None

    def _connect(cfg):
        connected.append(cfg)
        return object(), object()

    monkeypatch.setattr(cli, "connect", _connect)
    monkeypatch.setattr(cli, "ClusterMigrator", _StubMigrator)
    return connected


def test_missing_kubeconfig_exits_before_connecting(stubs, capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["-n", "default", "--destination-namespace", "default"])

    assert excinfo.value.code == 1
    out = capsys.readouterr().out
    assert "please use --kubeconfig or export environment variable KUBECONFIG to set" in out
    assert stubs == []


def test_missing_destination_namespace_exits(stubs, capsys, monkeypatch):
    monkeypatch.setenv("KUBECONFIG", "/k/src")
    monkeypatch.setenv("KUBECONFIG_DESTINATION", "/k/dst")

    with pytest.raises(SystemExit):
        cli.main(["-n", "default"])

    assert "--destination-namespace" in capsys.readouterr().out
    assert stubs == []


def test_successful_run_uses_environment_kubeconfigs(stubs, capsys, monkeypatch):
    monkeypatch.setenv("KUBECONFIG", "/k/src")
    monkeypatch.setenv("KUBECONFIG_DESTINATION", "/k/dst")

    cli.main(["-n", "default", "--destination-namespace", "prod", "--force", "--delete"])

    cfg = stubs[0]
    assert cfg.kubeconfig == "/k/src"
    assert cfg.destination_kubeconfig == "/k/dst"
    assert cfg.force and cfg.delete
    out = capsys.readouterr().out
    assert "Migrated 1 service(s) and 2 revision(s) to namespace prod" in out


def test_migration_error_exits_with_status_one(stubs, capsys):
    _StubMigrator.error = ServiceMigrationError("foo", "service-status", NotFoundError("no status"))

    with pytest.raises(SystemExit) as excinfo:
        cli.main([
            "-n", "default",
            "--destination-namespace", "default",
            "--kubeconfig", "/k/src",
            "--destination-kubeconfig", "/k/dst",
        ])

    assert excinfo.value.code == 1
    assert "failed at step 'service-status'" in capsys.readouterr().out


def test_help_lists_the_migration_flags(capsys):
    with pytest.raises(SystemExit):
        cli.main(["--help"])

    out = capsys.readouterr().out
    for flag in ("--namespace", "--kubeconfig", "--destination-namespace",
                 "--destination-kubeconfig", "--force", "--delete"):
        assert flag in out


def test_unwritable_log_dir_exits_cleanly(stubs, capsys, monkeypatch):
    def _denied(**kwargs):
        raise PermissionError(13, "Permission denied", kwargs["log_dir"])

    monkeypatch.setattr(cli, "setup_logging", _denied)

    with pytest.raises(SystemExit) as excinfo:
        cli.main([
            "-n", "default",
            "--destination-namespace", "default",
            "--kubeconfig", "/k/src",
            "--destination-kubeconfig", "/k/dst",
            "--log-dir", "/var/lib/kn-migration",
        ])

    assert excinfo.value.code == 1
    assert "cannot write log file in /var/lib/kn-migration" in capsys.readouterr().out
    assert stubs == []


def test_log_dir_defaults_to_working_directory(stubs, monkeypatch):
    seen = {}

    def _record(**kwargs):
        seen.update(kwargs)
        return "logs/migrate.log"

    monkeypatch.setattr(cli, "setup_logging", _record)

    cli.main([
        "-n", "default",
        "--destination-namespace", "default",
        "--kubeconfig", "/k/src",
        "--destination-kubeconfig", "/k/dst",
    ])

    assert seen["log_dir"] == "logs"
    assert seen["log_prefix"] == "migrate"
