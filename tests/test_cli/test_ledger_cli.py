"""Tests for CLI commands."""

import uuid

import pytest
from typer.testing import CliRunner

from clinic_ledger.cli.commands import app
from clinic_ledger.config import get_settings

runner = CliRunner()


@pytest.fixture(autouse=True)
def ledger_db(tmp_path, monkeypatch):
    monkeypatch.setenv("LEDGER_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    monkeypatch.setenv("LEDGER_AUDIT_FALLBACK_DIR", str(tmp_path / "logs"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_init_db():
    result = runner.invoke(app, ["init-db"])
    assert result.exit_code == 0
    assert "Ledger store ready" in result.stdout


def test_seed_and_list_codes():
    result = runner.invoke(app, ["seed-codes"])
    assert result.exit_code == 0
    assert "Seeded 10 billing codes" in result.stdout

    again = runner.invoke(app, ["seed-codes"])
    assert "nothing seeded" in again.stdout

    listing = runner.invoke(app, ["codes", "--category", "Diagnostic"])
    assert listing.exit_code == 0
    assert "XRAY" in listing.stdout
    assert "CONSULT" not in listing.stdout


def test_empty_reports():
    assert "No invoices" in runner.invoke(app, ["invoices"]).stdout
    assert "No invoices became overdue" in runner.invoke(app, ["refresh-overdue"]).stdout

    stats = runner.invoke(app, ["stats"])
    assert stats.exit_code == 0
    assert "Total revenue" in stats.stdout


def test_invoice_errors():
    bad = runner.invoke(app, ["invoice", "not-a-uuid"])
    assert bad.exit_code == 1
    assert "Invalid invoice id" in bad.stdout

    missing = runner.invoke(app, ["invoice", str(uuid.uuid4())])
    assert missing.exit_code == 1
    assert "not_found" in missing.stdout


def test_version():
    result = runner.invoke(app, ["version"])
    assert "clinic-ledger v" in result.stdout
