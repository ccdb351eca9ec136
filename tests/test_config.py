"""Tests for environment-driven settings."""

import importlib

import pytest

import config


@pytest.fixture
def reload_config(monkeypatch):
    yield lambda: importlib.reload(config)
    monkeypatch.undo()
    importlib.reload(config)


class TestEnvParsing:
    def test_fractional_timeout(self, monkeypatch, reload_config):
        monkeypatch.setenv("CRM_TIMEOUT", "2.5")
        assert reload_config().CRM_TIMEOUT == 2.5

    def test_timeout_default_when_blank(self, monkeypatch, reload_config):
        monkeypatch.setenv("CRM_TIMEOUT", "  ")
        assert reload_config().CRM_TIMEOUT == 30.0

    def test_integer_settings_still_parse(self, monkeypatch, reload_config):
        monkeypatch.setenv("CRM_MAX_RETRIES", "5")
        monkeypatch.setenv("CRM_TIMEOUT", "10")
        cfg = reload_config()
        assert cfg.CRM_MAX_RETRIES == 5
        assert cfg.CRM_TIMEOUT == 10.0

    def test_stage_field_per_entity(self):
        assert config.stage_field("deal") == "STAGE_ID"
        assert config.stage_field("lead") == "STATUS_ID"
