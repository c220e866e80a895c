"""Global pytest hooks: environment isolation and strict test-accounting guardrails."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

# Variables read by sitewatch.config, tracker, describe and the CLI.
SITEWATCH_ENV_VARS = (
    "BASE_URL",
    "MAX_PAGES",
    "MAX_ERRORS_PER_RUN",
    "CRAWLER_TIMEOUT_MS",
    "SAVE_SCREENSHOTS",
    "SCREENSHOT_PATH",
    "REPORTS_PATH",
    "DEBUG_MODE",
    "SITEWATCH_ROUTES",
    "SITEWATCH_CRITICAL_TYPES",
    "DUPLICATE_CHECK_DAYS",
    "GITHUB_TOKEN",
    "GITHUB_OWNER",
    "GITHUB_REPO",
    "GITHUB_API_URL",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
)


@pytest.fixture(autouse=True)
def _clean_sitewatch_env(monkeypatch):
    """Keep a developer's shell or .env settings out of every test."""
    for name in SITEWATCH_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@dataclass
class _TestAccounting:
    deselected: int = 0
    skipped: int = 0
    xfailed: int = 0
    xpassed: int = 0


_ACCOUNTING = _TestAccounting()


def pytest_deselected(items):  # pragma: no cover - pytest hook
    _ACCOUNTING.deselected += len(items)


def pytest_runtest_logreport(report):  # pragma: no cover - pytest hook
    if report.when not in {"setup", "call"}:
        return

    is_xfail = bool(getattr(report, "wasxfail", False))
    if is_xfail:
        if report.outcome == "skipped":
            _ACCOUNTING.xfailed += 1
        elif report.outcome == "passed":
            _ACCOUNTING.xpassed += 1
        return

    if report.outcome == "skipped":
        _ACCOUNTING.skipped += 1


def pytest_sessionfinish(session, exitstatus):  # pragma: no cover - pytest hook
    violations = []
    if _ACCOUNTING.deselected:
        violations.append(f"deselected={_ACCOUNTING.deselected}")
    if _ACCOUNTING.skipped:
        violations.append(f"skipped={_ACCOUNTING.skipped}")
    if _ACCOUNTING.xfailed:
        violations.append(f"xfailed={_ACCOUNTING.xfailed}")
    if _ACCOUNTING.xpassed:
        violations.append(f"xpassed={_ACCOUNTING.xpassed}")

    if not violations:
        return

    reporter = session.config.pluginmanager.get_plugin("terminalreporter")
    if reporter:
        reporter.write_sep(
            "=",
            "Strict guard failed: test accounting violations detected "
            f"({', '.join(violations)})",
        )
        reporter.write_line(
            "Hard guard requires zero skipped/deselected/xfail/xpass tests."
        )

    session.exitstatus = 1
