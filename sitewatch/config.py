"""Run options, defaults and environment loading."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, FrozenSet, List, Optional

from .records import ErrorType

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:5173"

# Application routes exercised even when nothing links to them.
DEFAULT_ROUTES: List[str] = [
    "/",
    "/produtos",
    "/carrinho",
    "/checkout",
    "/auth",
    "/conta",
    "/personalizacao",
    "/blog",
    "/admin",
    "/admin/dashboard",
    "/admin/products",
    "/admin/orders",
    "/tracking",
    "/payment/success",
    "/payment/pending",
    "/payment/failure",
    "/404-test-page",
    "/nonexistent-route",
]

# Candidates for the dead-click probe.
CLICKABLE_SELECTORS: List[str] = [
    "button:not([disabled])",
    "a[href]",
    "[role='button']",
    "[onclick]",
    "input[type='submit']",
    "input[type='button']",
]

# Elements that count as visible feedback after a click.
OVERLAY_SELECTORS: List[str] = [
    ".modal",
    ".toast",
    ".dialog",
    "[role='dialog']",
    "[role='alert']",
]

MAIN_CONTENT_SELECTORS: List[str] = [
    "main",
    "[role='main']",
    ".content",
    "#content",
]

VIEWPORT = {"width": 1920, "height": 1080}


class ConfigError(ValueError):
    """Raised when configuration is missing or invalid."""


@dataclass
class ScanOptions:
    """Options for a crawl run."""

    base_url: str = DEFAULT_BASE_URL
    max_pages: int = 50
    navigation_timeout_ms: int = 30000
    wait_until: str = "networkidle"
    settle_seconds: float = 2.0
    request_delay_seconds: float = 0.5
    save_screenshots: bool = False
    screenshot_dir: str = "./screenshots"
    routes: List[str] = field(default_factory=lambda: list(DEFAULT_ROUTES))
    include_subdomains: bool = False
    max_clicks_per_page: int = 10
    click_timeout_ms: int = 5000
    click_settle_seconds: float = 1.0
    node_delta_threshold: int = 5
    critical_types: FrozenSet[ErrorType] = frozenset()
    headless: bool = True
    # Log the frontier and every finding at INFO.
    debug: bool = False


@dataclass
class PipelineOptions:
    """Options for a full detect → describe → file run."""

    scan: ScanOptions = field(default_factory=ScanOptions)
    max_errors: int = 50
    dry_run: bool = False
    save_reports: bool = True
    reports_dir: str = "./reports"
    duplicate_check_days: int = 0
    rate_limit_seconds: float = 2.0


def env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


def _env_list(name: str) -> List[str]:
    value = os.getenv(name) or ""
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_critical_types(values: List[str]) -> FrozenSet[ErrorType]:
    """Convert error type names into the set escalated to critical."""
    result = set()
    for value in values:
        try:
            result.add(ErrorType(value.strip().lower()))
        except ValueError as exc:
            raise ConfigError(f"Unknown error type for critical escalation: {value!r}") from exc
    return frozenset(result)


def load_scan_options_from_env() -> ScanOptions:
    """Build :class:`ScanOptions` from environment variables.

    Supported variables:
        BASE_URL, MAX_PAGES, CRAWLER_TIMEOUT_MS, SAVE_SCREENSHOTS,
        SCREENSHOT_PATH, SITEWATCH_ROUTES, SITEWATCH_CRITICAL_TYPES,
        DEBUG_MODE.
    """
    routes = _env_list("SITEWATCH_ROUTES")
    return ScanOptions(
        base_url=(os.getenv("BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
        max_pages=_env_int("MAX_PAGES", 50),
        navigation_timeout_ms=_env_int("CRAWLER_TIMEOUT_MS", 30000),
        save_screenshots=env_bool("SAVE_SCREENSHOTS"),
        screenshot_dir=os.getenv("SCREENSHOT_PATH") or "./screenshots",
        routes=routes or list(DEFAULT_ROUTES),
        critical_types=parse_critical_types(_env_list("SITEWATCH_CRITICAL_TYPES")),
        debug=env_bool("DEBUG_MODE"),
    )


def load_pipeline_options_from_env() -> PipelineOptions:
    """Build :class:`PipelineOptions` from environment variables.

    Adds MAX_ERRORS_PER_RUN, REPORTS_PATH and DUPLICATE_CHECK_DAYS on top of
    the scan variables.
    """
    return PipelineOptions(
        scan=load_scan_options_from_env(),
        max_errors=_env_int("MAX_ERRORS_PER_RUN", 50),
        reports_dir=os.getenv("REPORTS_PATH") or "./reports",
        duplicate_check_days=_env_int("DUPLICATE_CHECK_DAYS", 0),
    )


def load_dotenv_config(
    *,
    config_env_file: Path,
    cwd: Path,
    load_env: Callable[[Path], bool],
) -> Optional[Path]:
    """Load .env from the working directory, else from the user config dir.

    Returns the file that was loaded, if any.
    """
    local_env = cwd / ".env"
    if local_env.is_file():
        load_env(local_env)
        return local_env

    if config_env_file.is_file():
        load_env(config_env_file)
        return config_env_file

    return None
