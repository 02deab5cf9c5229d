"""
Tests for StoreSettings environment loading.
"""

import pytest

from todo_store.config import DEFAULT_BUSY_TIMEOUT_MS, DEFAULT_DATABASE_PATH, StoreSettings


class TestStoreSettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("TODO_DATABASE_PATH", raising=False)
        monkeypatch.delenv("TODO_BUSY_TIMEOUT_MS", raising=False)

        settings = StoreSettings.from_env()
        assert settings.database_path == DEFAULT_DATABASE_PATH
        assert settings.busy_timeout_ms == DEFAULT_BUSY_TIMEOUT_MS

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TODO_DATABASE_PATH", str(tmp_path / "custom.db"))
        monkeypatch.setenv("TODO_BUSY_TIMEOUT_MS", "250")

        settings = StoreSettings.from_env()
        assert settings.database_path == str(tmp_path / "custom.db")
        assert settings.busy_timeout_ms == 250

    def test_blank_path_rejected(self):
        with pytest.raises(ValueError):
            StoreSettings(database_path="  ")

    def test_negative_timeout_rejected(self):
        with pytest.raises(ValueError):
            StoreSettings(busy_timeout_ms=-1)
