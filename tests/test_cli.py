# ruff: noqa: E501
from __future__ import annotations

import json
import os

import pytest
from typer.testing import CliRunner

import finance_tracker.cli as cli_mod
from finance_tracker.client import TransactionsApi
from tests.helpers.api_stub import FakeBackend

runner = CliRunner()

GENERIC = "Data,Descrição,Valor\n15/07/2025,Supermercado ABC,150.50\n"


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    # The root callback would attach a handler bound to the runner's stderr
    monkeypatch.setattr(cli_mod, "configure_logging", lambda *a, **kw: None)


@pytest.fixture
def backend(monkeypatch: pytest.MonkeyPatch):
    """Route the CLI's API client to an in-memory backend; expose used settings."""

    fake = FakeBackend()
    fake.settings = []

    def _from_settings(cls, settings, **kwargs):
        fake.settings.append(settings)
        return fake.client()

    monkeypatch.setattr(TransactionsApi, "from_settings", classmethod(_from_settings))
    return fake


def _write(tmp_path, name: str, text: str) -> str:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return str(path)


# ---- preview -----------------------------------------------------------------


def test_preview_prints_one_line_per_candidate(tmp_path):
    result = runner.invoke(cli_mod.app, ["preview", "--csv-path", _write(tmp_path, "x.csv", GENERIC)])
    assert result.exit_code == 0, result.output
    assert "2025-07-15\texpense\t150.50\talimentacao\t0.50\tSupermercado ABC" in result.stdout
    assert "generic: 1 transactions, 0 skipped" in result.output


def test_preview_reads_pasted_text_from_stdin():
    result = runner.invoke(cli_mod.app, ["preview", "--csv-path", "-"], input=GENERIC)
    assert result.exit_code == 0, result.output
    assert "Supermercado ABC" in result.stdout


def test_preview_reports_fatal_errors(tmp_path):
    path = _write(tmp_path, "bad.csv", "Foo,Bar\n1,2\n")
    result = runner.invoke(cli_mod.app, ["preview", "--csv-path", path])
    assert result.exit_code == 1
    assert "required columns not found" in result.output


def test_preview_missing_file(tmp_path):
    result = runner.invoke(cli_mod.app, ["preview", "--csv-path", str(tmp_path / "nope.csv")])
    assert result.exit_code == 1
    assert "cannot read" in result.output


def test_preview_rejects_bad_date_fallback(tmp_path):
    path = _write(tmp_path, "x.csv", GENERIC)
    result = runner.invoke(cli_mod.app, ["preview", "--csv-path", path, "--date-fallback", "07/2025"])
    assert result.exit_code == 1
    assert "--date-fallback" in result.output


def test_preview_with_date_fallback_and_rules_file(tmp_path):
    rules = {
        "version": 3,
        "default_category": "geral",
        "rules": [{"name": "farmacia", "keywords": ["farmácia"], "category": "saude"}],
    }
    rules_path = _write(tmp_path, "rules.json", json.dumps(rules))
    path = _write(tmp_path, "x.csv", "Data,Descrição,Valor\n??,Farmácia Central,12.00\n")
    result = runner.invoke(
        cli_mod.app,
        ["preview", "--csv-path", path, "--date-fallback", "2025-07-01", "--rules-file", rules_path],
    )
    assert result.exit_code == 0, result.output
    assert "2025-07-01\texpense\t12.00\tsaude" in result.stdout
    assert "1 low confidence" in result.output


# ---- import-statement --------------------------------------------------------


def test_import_statement_success(tmp_path, backend):
    path = _write(tmp_path, "x.csv", GENERIC)
    result = runner.invoke(cli_mod.app, ["import-statement", "--csv-path", path])
    assert result.exit_code == 0, result.output
    assert "total=1 success=1 errors=0" in result.stdout
    assert backend.created[0]["descricao"] == "Supermercado ABC"


def test_import_statement_partial_failure_exit_code(tmp_path, backend):
    path = _write(tmp_path, "x.csv", GENERIC + "16/07/2025,Posto\n")
    result = runner.invoke(cli_mod.app, ["import-statement", "--csv-path", path])
    assert result.exit_code == 2
    assert "total=2 success=1 errors=1" in result.stdout
    assert "line 3: expected 3 columns, got 2" in result.output


def test_import_statement_api_base_url_override(tmp_path, backend):
    path = _write(tmp_path, "x.csv", GENERIC)
    result = runner.invoke(
        cli_mod.app,
        ["import-statement", "--csv-path", path, "--api-base-url", "http://other.test"],
    )
    assert result.exit_code == 0, result.output
    assert backend.settings[0].api_base_url == "http://other.test"


def test_import_statement_reads_settings_from_env(tmp_path, backend, monkeypatch):
    monkeypatch.setenv("FT_BULK_THRESHOLD", "0")
    monkeypatch.setenv("FT_API_TOKEN", "tok")
    path = _write(tmp_path, "x.csv", GENERIC)
    result = runner.invoke(cli_mod.app, ["import-statement", "--csv-path", path])
    assert result.exit_code == 0, result.output
    assert len(backend.bulk_calls) == 1
    assert backend.settings[0].api_token == "tok"


def test_dotenv_in_working_directory_is_loaded(tmp_path, backend):
    # conftest chdirs into tmp_path
    (tmp_path / ".env").write_text("FT_API_BASE_URL=http://from-dotenv.test\n", encoding="utf-8")
    path = _write(tmp_path, "x.csv", GENERIC)
    try:
        result = runner.invoke(cli_mod.app, ["import-statement", "--csv-path", path])
    finally:
        dotenv_value = os.environ.pop("FT_API_BASE_URL", None)
    assert result.exit_code == 0, result.output
    assert dotenv_value == "http://from-dotenv.test"
    assert backend.settings[0].api_base_url == "http://from-dotenv.test"


def test_import_statement_fatal_error_makes_no_calls(tmp_path, backend):
    path = _write(tmp_path, "x.csv", "Data,Descrição,Valor\n")
    result = runner.invoke(cli_mod.app, ["import-statement", "--csv-path", path])
    assert result.exit_code == 1
    assert "no data lines" in result.output
    assert backend.calls == []
