"""Tests for the sfbackup CLI."""

from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from sfbackup import cli as cli_mod
from sfbackup.backup import BackupResult, ObjectExport
from sfbackup.cli import cli
from sfbackup.exceptions import MissingCredentialsError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("SFBACKUP_OBJECTS", "SFBACKUP_USE_BULK_API", "SFBACKUP_GLOBAL_WHERE"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture()
def fake_api(monkeypatch):
    api = MagicMock()
    monkeypatch.setattr(cli_mod, "_connect", lambda: api)
    return api


def test_help():
    result = CliRunner().invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "run" in result.output
    assert "modes" in result.output


def test_run_passes_options_to_backup(fake_api, monkeypatch, tmp_path):
    seen = {}

    def fake_run_backup(api, cfg, progress=True):
        seen["api"] = api
        seen["cfg"] = cfg
        return BackupResult(
            exported=[
                ObjectExport(
                    "Account", "SyncWithoutGlobalWhere", 2, str(tmp_path / "Account.csv")
                )
            ],
            empty=["Lead"],
        )

    monkeypatch.setattr(cli_mod, "run_backup", fake_run_backup)

    result = CliRunner().invoke(
        cli,
        [
            "run",
            "--out",
            str(tmp_path),
            "--object",
            "Account",
            "--object",
            "Lead",
            "--bulk",
            "--where",
            "IsDeleted = false",
            "--soql",
            "Lead=SELECT Id FROM Lead",
            "--no-progress",
        ],
    )

    assert result.exit_code == 0, result.output
    cfg = seen["cfg"]
    assert seen["api"] is fake_api
    assert cfg.output_dir == str(tmp_path)
    assert cfg.objects == ["Account", "Lead"]
    assert cfg.use_bulk_api is True
    assert cfg.global_where == "IsDeleted = false"
    assert cfg.soql_override("lead") == "SELECT Id FROM Lead"
    assert "Account: 2 rows" in result.output
    assert "No data: Lead" in result.output


def test_run_fails_when_an_object_fails(fake_api, monkeypatch):
    monkeypatch.setattr(
        cli_mod,
        "run_backup",
        lambda api, cfg, progress=True: BackupResult(failed={"Account": "boom"}),
    )

    result = CliRunner().invoke(cli, ["run", "--no-progress"])

    assert result.exit_code != 0
    assert "1 object(s) failed" in result.output


def test_run_rejects_bad_soql_option(fake_api):
    result = CliRunner().invoke(cli, ["run", "--soql", "no-equals-sign"])

    assert result.exit_code != 0
    assert "OBJECT=QUERY" in result.output


def test_modes_command(fake_api):
    fake_api.describe_object.return_value = {
        "fields": [{"name": "Id", "type": "id"}, {"name": "Name", "type": "string"}]
    }

    result = CliRunner().invoke(cli, ["modes", "--object", "Account", "--bulk"])

    assert result.exit_code == 0, result.output
    assert "Account: AsyncWithoutGlobalWhere" in result.output
    assert "SELECT Id, Name FROM Account" in result.output


def test_query_all_rows(fake_api):
    fake_api.query_all.return_value = {"totalSize": 0, "done": True, "records": []}

    result = CliRunner().invoke(cli, ["query", "SELECT Id FROM Task", "--all-rows"])

    assert result.exit_code == 0
    fake_api.query_all.assert_called_once_with("SELECT Id FROM Task")
    assert '"totalSize": 0' in result.output


def test_missing_credentials_message(monkeypatch):
    class _API:
        def __init__(self, _cfg):
            pass

        def connect(self):
            raise MissingCredentialsError(["SF_CLIENT_ID", "SF_CLIENT_SECRET"])

    monkeypatch.setattr(cli_mod, "SalesforceAPI", _API)

    result = CliRunner().invoke(cli, ["query", "SELECT Id FROM Account"])

    assert result.exit_code != 0
    assert "Missing Salesforce credentials: SF_CLIENT_ID, SF_CLIENT_SECRET" in result.output
