"""Tests for sitewatch.config module."""

from __future__ import annotations

from pathlib import Path

import pytest

from sitewatch.config import (
    DEFAULT_BASE_URL,
    DEFAULT_ROUTES,
    ConfigError,
    load_dotenv_config,
    load_pipeline_options_from_env,
    load_scan_options_from_env,
    parse_critical_types,
)
from sitewatch.records import ErrorType


class TestScanOptionsFromEnv:
    def test_defaults(self):
        options = load_scan_options_from_env()
        assert options.base_url == DEFAULT_BASE_URL
        assert options.max_pages == 50
        assert options.navigation_timeout_ms == 30000
        assert options.save_screenshots is False
        assert options.routes == DEFAULT_ROUTES
        assert options.critical_types == frozenset()
        assert options.debug is False

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("BASE_URL", "https://shop.example.com/")
        monkeypatch.setenv("MAX_PAGES", "5")
        monkeypatch.setenv("CRAWLER_TIMEOUT_MS", "1000")
        monkeypatch.setenv("SAVE_SCREENSHOTS", "true")
        monkeypatch.setenv("SCREENSHOT_PATH", "/tmp/shots")
        monkeypatch.setenv("SITEWATCH_ROUTES", "/a, /b,")
        monkeypatch.setenv("SITEWATCH_CRITICAL_TYPES", "js_error,API_ERROR")
        monkeypatch.setenv("DEBUG_MODE", "1")

        options = load_scan_options_from_env()
        assert options.base_url == "https://shop.example.com"
        assert options.max_pages == 5
        assert options.navigation_timeout_ms == 1000
        assert options.save_screenshots is True
        assert options.screenshot_dir == "/tmp/shots"
        assert options.routes == ["/a", "/b"]
        assert options.critical_types == {ErrorType.js_error, ErrorType.api_error}
        assert options.debug is True

    def test_invalid_int(self, monkeypatch):
        monkeypatch.setenv("MAX_PAGES", "many")
        with pytest.raises(ConfigError, match="MAX_PAGES"):
            load_scan_options_from_env()


class TestPipelineOptionsFromEnv:
    def test_defaults(self):
        options = load_pipeline_options_from_env()
        assert options.max_errors == 50
        assert options.reports_dir == "./reports"
        assert options.duplicate_check_days == 0
        assert options.dry_run is False
        assert options.save_reports is True
        assert options.rate_limit_seconds == 2.0

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("MAX_ERRORS_PER_RUN", "2")
        monkeypatch.setenv("REPORTS_PATH", "out")
        monkeypatch.setenv("DUPLICATE_CHECK_DAYS", "7")
        options = load_pipeline_options_from_env()
        assert options.max_errors == 2
        assert options.reports_dir == "out"
        assert options.duplicate_check_days == 7


class TestParseCriticalTypes:
    def test_unknown_type(self):
        with pytest.raises(ConfigError, match="Unknown error type"):
            parse_critical_types(["segfault"])

    def test_empty(self):
        assert parse_critical_types([]) == frozenset()


class TestLoadDotenvConfig:
    def test_prefers_cwd(self, tmp_path: Path):
        cwd = tmp_path / "project"
        cwd.mkdir()
        (cwd / ".env").write_text("BASE_URL=http://local\n")
        user_env = tmp_path / "user.env"
        user_env.write_text("BASE_URL=http://user\n")
        loaded = []

        result = load_dotenv_config(
            config_env_file=user_env, cwd=cwd, load_env=lambda p: loaded.append(p) or True
        )
        assert result == cwd / ".env"
        assert loaded == [cwd / ".env"]

    def test_falls_back_to_user_config(self, tmp_path: Path):
        user_env = tmp_path / "user.env"
        user_env.write_text("BASE_URL=http://user\n")
        loaded = []

        result = load_dotenv_config(
            config_env_file=user_env,
            cwd=tmp_path,
            load_env=lambda p: loaded.append(p) or True,
        )
        assert result == user_env
        assert loaded == [user_env]

    def test_nothing_found(self, tmp_path: Path):
        result = load_dotenv_config(
            config_env_file=tmp_path / "missing.env",
            cwd=tmp_path,
            load_env=lambda p: True,
        )
        assert result is None
