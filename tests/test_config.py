"""Tests for configuration and logging setup."""

import logging

import pytest

from audit_scorer.app_logging import ROOT_LOGGER_NAME, is_logging_configured, setup_logging
from audit_scorer.config import (
    AuditScorerConfig,
    find_config_file,
    get_config,
    load_config,
    reset_config,
    save_default_config,
)


class TestConfig:
    """Tests for loading and locating configuration."""

    def test_defaults(self):
        config = get_config()
        weights = config.dimension_weights
        assert (weights.financier, weights.operationnel, weights.commercial, weights.strategique) == (
            0.35, 0.25, 0.20, 0.20,
        )
        assert config.decision.top_items == 3
        assert config.decision.max_recommendations == 5
        assert config.logging.level == "WARNING"

    def test_load_partial_yaml(self, tmp_path):
        path = tmp_path / "audit-config.yaml"
        path.write_text("decision:\n  top_items: 5\n", encoding="utf-8")
        config = load_config(path)
        assert config.decision.top_items == 5
        assert config.dimension_weights.financier == 0.35
        assert get_config() is config

    def test_load_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path) == AuditScorerConfig()

    def test_saved_default_loads_back(self, tmp_path):
        path = tmp_path / "nested" / "config.yaml"
        save_default_config(path)
        assert path.read_text(encoding="utf-8").startswith("# Audit Scorer Configuration")
        assert load_config(path) == AuditScorerConfig()

    def test_reset(self):
        get_config().decision.top_items = 1
        reset_config()
        assert get_config().decision.top_items == 3

    def test_env_variable_wins(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("{}", encoding="utf-8")
        monkeypatch.setenv("AUDIT_SCORER_CONFIG", str(path))
        assert find_config_file() == path

    def test_current_directory(self, tmp_path, monkeypatch):
        monkeypatch.delenv("AUDIT_SCORER_CONFIG", raising=False)
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        assert find_config_file() is None

        (tmp_path / "audit-config.yml").write_text("{}", encoding="utf-8")
        assert find_config_file().name == "audit-config.yml"


class TestLogging:
    """Tests for logging setup."""

    @pytest.fixture(autouse=True)
    def restore_handlers(self):
        logger = logging.getLogger(ROOT_LOGGER_NAME)
        handlers, level = list(logger.handlers), logger.level
        yield
        logger.handlers = handlers
        logger.setLevel(level)

    def test_rich_handler(self):
        from rich.logging import RichHandler

        setup_logging(level="debug")
        logger = logging.getLogger(ROOT_LOGGER_NAME)
        assert is_logging_configured()
        assert logger.level == logging.DEBUG
        assert [type(h) for h in logger.handlers] == [RichHandler]
        assert logger.propagate is False

    def test_plain_handler(self):
        setup_logging(level="ERROR", dev_mode=False)
        logger = logging.getLogger(ROOT_LOGGER_NAME)
        assert logger.level == logging.ERROR
        assert type(logger.handlers[0]) is logging.StreamHandler
