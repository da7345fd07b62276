"""
Tests for the startup migration runner.

Alembic and the engine are patched out; no database is touched.
"""

from unittest.mock import MagicMock

import pytest

from app.db import migration_runner
from app.db.migration_runner import check_migrations_status, get_sync_database_url, run_migrations


@pytest.fixture
def patched(monkeypatch):
    engine = MagicMock()
    upgrade = MagicMock()
    monkeypatch.setattr(migration_runner, "create_engine", lambda url: engine)
    monkeypatch.setattr(migration_runner, "_alembic_config", MagicMock())
    monkeypatch.setattr(migration_runner.command, "upgrade", upgrade)
    return engine, upgrade


def test_sync_url_uses_psycopg2():
    assert (
        get_sync_database_url("postgresql+asyncpg://u:p@db/gateway")
        == "postgresql+psycopg2://u:p@db/gateway"
    )


def test_up_to_date_skips_upgrade(monkeypatch, patched):
    engine, upgrade = patched
    monkeypatch.setattr(migration_runner, "_get_current_revision", lambda e: "2026_01_01_0000")
    monkeypatch.setattr(migration_runner, "_get_head_revision", lambda c: "2026_01_01_0000")

    run_migrations()

    upgrade.assert_not_called()
    engine.dispose.assert_called_once()


def test_pending_revision_upgrades(monkeypatch, patched):
    _, upgrade = patched
    monkeypatch.setattr(migration_runner, "_get_current_revision", lambda e: None)
    monkeypatch.setattr(migration_runner, "_get_head_revision", lambda c: "2026_01_01_0000")

    run_migrations()

    upgrade.assert_called_once()
    assert upgrade.call_args.args[1] == "head"


def test_failure_is_wrapped(monkeypatch, patched):
    _, upgrade = patched
    upgrade.side_effect = Exception("relation already exists")
    monkeypatch.setattr(migration_runner, "_get_current_revision", lambda e: None)
    monkeypatch.setattr(migration_runner, "_get_head_revision", lambda c: "2026_01_01_0000")

    with pytest.raises(RuntimeError, match="Database migration failed"):
        run_migrations()


def test_status_reports_pending(monkeypatch, patched):
    monkeypatch.setattr(migration_runner, "_get_current_revision", lambda e: None)
    monkeypatch.setattr(migration_runner, "_get_head_revision", lambda c: "2026_01_01_0000")

    status = check_migrations_status()

    assert status.pending is True
    assert status.head_revision == "2026_01_01_0000"
    assert status.error is None


def test_status_without_config(monkeypatch, tmp_path):
    monkeypatch.setattr(migration_runner, "ALEMBIC_INI_PATH", tmp_path / "missing.ini")

    assert check_migrations_status().error == "Alembic config not found"
