"""Tests for the command line interface."""

import argparse
import json

import pytest

from tablemigrate import cli
from tablemigrate.models.migration import ExistingTablePolicy, MigrationConfig
from tablemigrate.models.schema import TableIdentifier, parse_table_specs
from tablemigrate.orchestrator import MigrationOrchestrator

from tests.conftest import EMPLOYEES_DDL


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "migration.json"
    path.write_text(json.dumps({
        "name": "cli-test",
        "tables": ["dbo.Employees:EMPLOYEES"],
        "oracle_provider": "rules",
        "knowledge_provider": "none",
        "chunk_size": 10,
        "output_dir": str(tmp_path / "out"),
        "source": {"server": "sql01", "database": "HR", "password": "secret"},
    }))
    return path


@pytest.fixture
def fake_orchestrator(monkeypatch, source, target):
    def factory(config):
        return MigrationOrchestrator(config, source=source, target=target)

    monkeypatch.setattr(cli, "MigrationOrchestrator", factory)
    return target


class TestParseTableSpecs:
    def test_repeated_and_comma_separated(self):
        identifiers = parse_table_specs(["dbo.A:A", "dbo.B, dbo.C:CC"])
        assert identifiers == [
            TableIdentifier("dbo.A", "A"),
            TableIdentifier("dbo.B", "dbo.B"),
            TableIdentifier("dbo.C", "CC"),
        ]

    def test_bad_name(self):
        with pytest.raises(ValueError):
            parse_table_specs(["[dbo.Employees"])


class TestLoadConfig:
    def test_overrides_apply_and_secrets_survive(self, config_file):
        args = argparse.Namespace(
            config=str(config_file),
            oracle=None,
            model=None,
            knowledge=None,
            max_attempts=3,
            chunk_size=None,
            writers=4,
            workers=None,
            on_existing="append",
            missing_columns=None,
            output_dir=None,
            no_reconcile=True,
        )
        config = cli.load_config(args)

        assert config.name == "cli-test"
        assert config.max_translation_attempts == 3
        assert config.writer_count == 4
        assert config.chunk_size == 10
        assert config.on_existing_table == ExistingTablePolicy.APPEND
        assert config.reconcile is False
        assert config.source.password == "secret"

    def test_without_file(self):
        config = cli.load_config(argparse.Namespace(config=None, oracle="rules"))
        assert isinstance(config, MigrationConfig)
        assert config.oracle_provider == "rules"


class TestCommands:
    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 2
        assert "usage" in capsys.readouterr().out

    def test_translate_ddl_file_with_rules(self, tmp_path, capsys):
        ddl_file = tmp_path / "employees.sql"
        ddl_file.write_text(EMPLOYEES_DDL)

        code = cli.main([
            "translate", "--ddl-file", str(ddl_file),
            "--oracle", "rules", "--target-table", "EMPLOYEES",
        ])

        assert code == 0
        out = capsys.readouterr().out
        assert out.startswith("CREATE TABLE EMPLOYEES (")
        assert "EmployeeID INTEGER AUTOINCREMENT NOT NULL" in out

    def test_run_migrates_tables_from_config(self, config_file, fake_orchestrator, capsys):
        code = cli.main(["run", "--config", str(config_file)])

        assert code == 0
        out = capsys.readouterr().out
        assert "MIGRATION COMPLETE" in out
        assert "Status: completed" in out
        assert "Rows: 25/25 written" in out
        assert len(fake_orchestrator.rows("EMPLOYEES")) == 25

    def test_run_reports_failure_exit_code(self, config_file, fake_orchestrator, capsys):
        code = cli.main(["run", "--config", str(config_file), "--table", "dbo.Missing:MISSING"])

        assert code == 1
        assert "Status: failed" in capsys.readouterr().out

    def test_check(self, config_file, fake_orchestrator, capsys):
        assert cli.main(["check", "--config", str(config_file)]) == 0
        assert "EMPLOYEES: does not exist" in capsys.readouterr().out

    def test_reconcile_writes_output(self, config_file, fake_orchestrator, tmp_path):
        cli.main(["run", "--config", str(config_file), "--no-reconcile"])
        output = tmp_path / "recon.json"

        code = cli.main(["reconcile", "--config", str(config_file), "--output", str(output)])

        assert code == 0
        reports = json.loads(output.read_text())
        assert reports[0]["matched"] is True

    def test_missing_config_file(self, tmp_path, capsys):
        code = cli.main(["run", "--config", str(tmp_path / "nope.json")])
        assert code == 1
        assert "Error:" in capsys.readouterr().err
