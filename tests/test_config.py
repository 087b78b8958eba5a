"""Tests for Config: defaults, runtime updates and settings persistence."""

import json
from pathlib import Path

import pytest

from repair_desk.config import Config, _load_settings, _save_settings


@pytest.fixture
def settings_file(tmp_path):
    """Temporary settings file for isolation."""
    return tmp_path / "settings.json"


@pytest.fixture(autouse=True)
def isolate_config(settings_file, monkeypatch):
    """Redirect settings I/O to a temp file and restore Config afterwards."""
    import repair_desk.config as config_mod
    monkeypatch.setattr(config_mod, "_SETTINGS_FILE", settings_file)

    saved = {
        attr: getattr(Config, attr)
        for attr in (
            "ORDER_NUMBER_PREFIX",
            "INVOICE_NUMBER_PREFIX",
            "DEFAULT_PART_ORDER_LEAD_DAYS",
            "CURRENCY",
            "COMPANY_NAME",
            "API_BASE_URL",
            "API_TIMEOUT",
        )
    }
    yield
    for attr, val in saved.items():
        setattr(Config, attr, val)


class TestConfigDefaults:
    """Verify default configuration values."""

    def test_paths(self):
        assert isinstance(Config.DATABASE_PATH, Path)
        assert isinstance(Config.BACKUP_PATH, Path)

    def test_database_timeout_is_float(self):
        assert isinstance(Config.DATABASE_TIMEOUT, float)
        assert Config.DATABASE_TIMEOUT > 0

    def test_prefixes(self):
        assert Config.ORDER_NUMBER_PREFIX
        assert Config.INVOICE_NUMBER_PREFIX

    def test_lead_days_is_int(self):
        assert isinstance(Config.DEFAULT_PART_ORDER_LEAD_DAYS, int)

    def test_api_timeout_is_int(self):
        assert isinstance(Config.API_TIMEOUT, int)


class TestConfigUpdates:
    def test_update_numbering(self, settings_file):
        Config.update_numbering("RO", "FV")
        assert Config.ORDER_NUMBER_PREFIX == "RO"
        assert Config.INVOICE_NUMBER_PREFIX == "FV"

        data = json.loads(settings_file.read_text(encoding="utf-8"))
        assert data["order_number_prefix"] == "RO"
        assert data["invoice_number_prefix"] == "FV"

    def test_update_procurement_settings(self, settings_file):
        Config.update_procurement_settings(7)
        assert Config.DEFAULT_PART_ORDER_LEAD_DAYS == 7
        data = json.loads(settings_file.read_text(encoding="utf-8"))
        assert data["default_part_order_lead_days"] == 7

    def test_update_billing_settings(self, settings_file):
        Config.update_billing_settings("EUR", "Fix-It Ltd")
        assert Config.CURRENCY == "EUR"
        assert Config.COMPANY_NAME == "Fix-It Ltd"

    def test_update_api_settings(self, settings_file):
        Config.update_api_settings("http://desk:9000", 12)
        assert Config.API_BASE_URL == "http://desk:9000"
        assert Config.API_TIMEOUT == 12

    def test_updates_merge_into_one_file(self, settings_file):
        Config.update_numbering("RO", "FV")
        Config.update_procurement_settings(5)
        data = json.loads(settings_file.read_text(encoding="utf-8"))
        assert data["order_number_prefix"] == "RO"
        assert data["default_part_order_lead_days"] == 5

    def test_prefix_flows_into_numbering(self, repo):
        Config.update_numbering("RO", "FV")
        assert repo.generate_order_number().startswith("RO-")
        assert repo.generate_invoice_number().startswith("FV-")


class TestSettingsFileIO:
    def test_load_nonexistent_returns_empty(self, settings_file):
        assert not settings_file.exists()
        assert _load_settings() == {}

    def test_save_and_load(self, settings_file):
        _save_settings({"currency": "USD", "api_timeout": 5})
        assert settings_file.exists()
        data = _load_settings()
        assert data["currency"] == "USD"
        assert data["api_timeout"] == 5

    def test_corrupt_json_returns_empty(self, settings_file):
        settings_file.write_text("NOT JSON {{{", encoding="utf-8")
        assert _load_settings() == {}
