"""Tests for the command line interface."""

import json

import pytest

from anchor_sentinel import __version__
from anchor_sentinel.cli import create_parser, main

from conftest import FEE_CHECKED_SOURCE, VAULT_FIXED_SOURCE, VAULT_SOURCE


@pytest.fixture(autouse=True)
def clean_env(tmp_path, monkeypatch):
    """Keep SENTINEL_* settings and stray .env files out of the tests."""
    for name in ("SENTINEL_SEVERITY", "SENTINEL_ONLY", "SENTINEL_EXCLUDE", "SENTINEL_WORKERS",
                 "SENTINEL_POC_DIR", "SENTINEL_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    workdir = tmp_path / "cwd"
    workdir.mkdir()
    monkeypatch.chdir(workdir)


def test_parser_commands():
    parser = create_parser()
    args = parser.parse_args(["scan", "programs/", "--only", "V001,V004", "-f", "json"])
    assert args.command == "scan"
    assert args.only == "V001,V004"
    assert args.format == "json"


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "anchor-sentinel" in capsys.readouterr().out


def test_version(capsys):
    assert main(["version"]) == 0
    assert __version__ in capsys.readouterr().out


def test_list(capsys):
    assert main(["list"]) == 0
    out = capsys.readouterr().out
    assert "V001" in out
    assert "V026" in out


class TestScan:
    def test_json_report_and_exit_code(self, write_program, capsys):
        root = write_program(VAULT_SOURCE, "vault")
        assert main(["scan", str(root), "--format", "json"]) == 2

        data = json.loads(capsys.readouterr().out)
        assert data["summary"]["critical"] >= 1
        assert "V001" in {f["id"] for f in data["findings"]}
        assert data["files"][0].endswith("lib.rs")

    def test_clean_program_exits_zero(self, write_program, capsys):
        root = write_program(FEE_CHECKED_SOURCE, "fees")
        assert main(["scan", str(root), "--format", "json"]) == 0
        assert json.loads(capsys.readouterr().out)["summary"]["high"] == 0

    def test_selection(self, write_program, capsys):
        root = write_program(VAULT_SOURCE, "vault")
        main(["scan", str(root), "--format", "json", "--only", "V002"])
        ids = {f["id"] for f in json.loads(capsys.readouterr().out)["findings"]}
        assert ids == {"V002"}

    def test_unknown_detector(self, write_program):
        root = write_program(VAULT_SOURCE, "vault")
        assert main(["scan", str(root), "--only", "V999"]) == 1

    def test_missing_path(self, tmp_path):
        assert main(["scan", str(tmp_path / "missing")]) == 1

    def test_markdown_to_file(self, write_program, tmp_path):
        root = write_program(VAULT_SOURCE, "vault")
        output = tmp_path / "report.md"
        main(["scan", str(root), "--format", "markdown", "--output", str(output)])
        assert output.read_text().startswith("# Anchor-Sentinel Security Report")

    def test_terminal(self, write_program, capsys):
        root = write_program(VAULT_SOURCE, "vault")
        assert main(["scan", str(root)]) == 2
        out = capsys.readouterr().out
        assert "Anchor-Sentinel Scan" in out
        assert "V001" in out

    def test_generate_poc(self, write_program, tmp_path, capsys):
        root = write_program(VAULT_SOURCE, "vault")
        pocs = tmp_path / "pocs"
        main(["scan", str(root), "--format", "json", "--generate-poc", "--poc-dir", str(pocs)])
        assert (pocs / "poc_summary.json").exists()
        assert list(pocs.glob("poc_v001_*.ts"))


class TestDiff:
    def test_fixed_program(self, write_program, capsys):
        old = write_program(VAULT_SOURCE, "old")
        new = write_program(VAULT_FIXED_SOURCE, "new")
        assert main(["diff", str(old), str(new), "--format", "json"]) == 0

        data = json.loads(capsys.readouterr().out)
        assert data["summary"]["new"] == 0
        assert data["summary"]["fixed"] == 1
        assert data["fixed"][0]["id"] == "V001"

    def test_regression_fails(self, write_program, capsys):
        old = write_program(VAULT_FIXED_SOURCE, "old")
        new = write_program(VAULT_SOURCE, "new")
        assert main(["diff", str(old), str(new), "--format", "json"]) == 2

    def test_against_saved_report(self, write_program, tmp_path, capsys):
        old = write_program(VAULT_SOURCE, "old")
        saved = tmp_path / "baseline.json"
        main(["scan", str(old), "--format", "json", "--output", str(saved)])
        capsys.readouterr()

        assert main(["diff", str(saved), str(old), "--format", "json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["summary"]["new"] == data["summary"]["fixed"] == 0


def test_poc_command(write_program, tmp_path):
    root = write_program(VAULT_SOURCE, "vault")
    output = tmp_path / "exploits"
    assert main(["poc", str(root), "--only", "V001", "--output-dir", str(output)]) == 0
    summary = json.loads((output / "poc_summary.json").read_text())
    assert summary["total_pocs"] == 1
    assert summary["pocs"][0]["detector"] == "V001"


def test_model_json(write_program, capsys):
    root = write_program(VAULT_SOURCE, "vault")
    assert main(["model", str(root), "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["programs"][0]["name"] == "vault_program"
    assert data["programs"][0]["instructions"][0]["name"] == "withdraw"
