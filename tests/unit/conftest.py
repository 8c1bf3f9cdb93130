"""Unit test environment helpers."""

import pytest

from column_packer.sqlalchemy_hook import uninstall_create_table_hook


@pytest.fixture(autouse=True)
def _minimal_env(monkeypatch):
    """Keep unit tests independent of any database configured in the environment."""
    for name in ("DATABASE_URL", "DB_USER", "DB_PASSWORD", "DB_HOST", "DB_PORT", "DB_NAME"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("PACKER_LOG_LEVEL", raising=False)
    monkeypatch.delenv("PACKER_DUMP_ENCODING", raising=False)
    yield


@pytest.fixture(autouse=True)
def _reset_create_table_hook():
    """Never leak an installed CREATE TABLE hook between tests."""
    yield
    uninstall_create_table_hook()
