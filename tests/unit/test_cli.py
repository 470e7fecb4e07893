import pytest
from typer.testing import CliRunner

from objversion import persistence, preservation, workflows
from objversion.cli import app
from objversion.persistence import InMemoryObjectRepository
from objversion.preservation import InMemoryPreservationRegistry
from objversion.workflows import InMemoryWorkflowEngine

DRUID = "druid:bc123df4567"

runner = CliRunner()


@pytest.fixture(autouse=True)
def backends(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("OBJVERSION_CONFIG", raising=False)
    repo = InMemoryObjectRepository()
    engine = InMemoryWorkflowEngine()
    registry = InMemoryPreservationRegistry()
    monkeypatch.setattr(persistence, "_repository_instance", repo)
    monkeypatch.setattr(workflows, "_engine_instance", engine)
    monkeypatch.setattr(preservation, "_registry_instance", registry)
    return repo, engine, registry


def _invoke(*args):
    return runner.invoke(app, list(args))


def _accession(registry):
    """Register DRUID and push it through its first accession via the CLI."""
    assert _invoke("object", "register", DRUID, "--workflow", "accessionWF").exit_code == 0
    for step in (
        "start-accession",
        "stage",
        "technical-metadata",
        "shelve",
        "publish",
        "preservation-ingest-initiated",
        "sdr-ingest-received",
        "reset-workspace",
        "end-accession",
    ):
        result = _invoke("workflow", "set-step", DRUID, "accessionWF", step, "completed")
        assert result.exit_code == 0, result.stdout
    registry.set_version(DRUID, 1)


def test_register_and_show():
    result = _invoke("object", "register", DRUID, "--label", "A book")
    assert result.exit_code == 0
    assert f"Registered {DRUID}" in result.stdout

    result = _invoke("object", "show", DRUID)
    assert result.exit_code == 0
    assert f"(lock {DRUID}=1=0)" in result.stdout
    assert "v1 [closed] Initial version" in result.stdout


def test_register_twice_fails():
    _invoke("object", "register", DRUID)

    result = _invoke("object", "register", DRUID)
    assert result.exit_code == 1
    assert "already exists" in result.stdout


def test_show_unknown_object():
    result = _invoke("object", "show", DRUID)

    assert result.exit_code == 1
    assert "Couldn't find object" in result.stdout


def test_open_close_cycle(backends):
    _, _, registry = backends
    _accession(registry)

    result = _invoke("version", "open", DRUID, "--description", "Fix title", "--who", "jcoyne")
    assert result.exit_code == 0, result.stdout
    assert f"Opened version 2 of {DRUID}" in result.stdout

    result = _invoke("version", "status", DRUID)
    assert "version=2 open=True openable=False closeable=True" in result.stdout

    result = _invoke("version", "close", DRUID, "2")
    assert result.exit_code == 0, result.stdout
    assert f"Closed version 2 of {DRUID}" in result.stdout

    result = _invoke("workflow", "show", DRUID, "--workflow-name", "accessionWF")
    assert "accessionWF (active version: 2)" in result.stdout
    assert " * v2 start-accession: waiting" in result.stdout


def test_open_refused_before_accession():
    _invoke("object", "register", DRUID)

    result = _invoke("version", "open", DRUID, "--description", "Too early")
    assert result.exit_code == 1
    assert "Error: Object not yet accessioned" in result.stdout

    result = _invoke(
        "version", "open", DRUID, "--description", "Local", "--assume-accessioned"
    )
    assert result.exit_code == 0


def test_close_without_open_version():
    _invoke("object", "register", DRUID)

    result = _invoke("version", "close", DRUID, "1")
    assert result.exit_code == 1
    assert "not opened for versioning" in result.stdout


def test_status_reports_unknown_objects():
    _invoke("object", "register", DRUID)

    result = _invoke("version", "status", DRUID, "druid:zz999zz9999")
    assert result.exit_code == 0
    assert "druid:zz999zz9999\tnot found" in result.stdout
    assert f"{DRUID}\tversion=1 open=False openable=False" in result.stdout


def test_workflow_show_without_workflows():
    result = _invoke("workflow", "show", DRUID)

    assert result.exit_code == 0
    assert "No workflows found" in result.stdout


def test_set_unknown_step():
    _invoke("object", "register", DRUID, "--workflow", "assemblyWF")

    result = _invoke("workflow", "set-step", DRUID, "assemblyWF", "no-such-step", "completed")
    assert result.exit_code == 1
    assert "No step no-such-step" in result.stdout
