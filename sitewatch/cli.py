"""Command-line interface for the error detection pipeline."""

from __future__ import annotations

import argparse
import asyncio
import importlib.util
import inspect
import json
import logging
import os
import sys
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from dotenv import load_dotenv

from .config import load_dotenv_config

# Configuration directory for global CLI usage
CONFIG_DIR = Path.home() / ".config" / "sitewatch"
CONFIG_ENV_FILE = CONFIG_DIR / ".env"


def _load_config() -> None:
    """Load .env configuration with fallback to user config directory.

    Search order:
    1. .env in current working directory
    2. ~/.config/sitewatch/.env
    """
    load_dotenv_config(
        config_env_file=CONFIG_ENV_FILE,
        cwd=Path.cwd(),
        load_env=load_dotenv,
    )


_load_config()

from .config import (  # noqa: E402
    ConfigError,
    PipelineOptions,
    ScanOptions,
    env_bool,
    load_pipeline_options_from_env,
    load_scan_options_from_env,
)
from .describe import GeminiDescriptionGenerator  # noqa: E402
from .pipeline import run_pipeline_async  # noqa: E402
from .report import (  # noqa: E402
    EXIT_CRITICAL,
    EXIT_ERRORS,
    EXIT_FAILURE,
    EXIT_OK,
    ExecutionReport,
    exit_code_for,
)
from .site import SiteScanResult, scan_site_async  # noqa: E402
from .tracker import GitHubTracker  # noqa: E402

REQUIRED_ENV_VARS = ("GITHUB_TOKEN", "GITHUB_OWNER", "GITHUB_REPO", "GEMINI_API_KEY")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _apply_scan_overrides(options: ScanOptions, args: argparse.Namespace) -> ScanOptions:
    if args.url:
        options.base_url = args.url.rstrip("/")
    if args.max_pages is not None:
        options.max_pages = args.max_pages
    if args.no_screenshots:
        options.save_screenshots = False
    if args.debug:
        options.debug = True
    return options


def _add_scan_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--url",
        type=str,
        default=None,
        help="Target website URL (default: BASE_URL or http://localhost:5173)",
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help="Maximum pages to crawl (default: MAX_PAGES or 50)",
    )
    parser.add_argument(
        "--no-screenshots",
        action="store_true",
        help="Disable screenshot capture",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging (same as DEBUG_MODE=true)",
    )


# ---------------------------------------------------------------------------
# sitewatch (full pipeline)
# ---------------------------------------------------------------------------


def _parse_run_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sitewatch",
        description="Crawl a site for errors and file issues for new findings.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Exit codes:
  0  no errors found
  1  errors found, none critical
  2  at least one critical error
  3  the pipeline itself failed

Environment:
  GITHUB_TOKEN, GITHUB_OWNER, GITHUB_REPO   issue tracker (required)
  GEMINI_API_KEY                            description generation (required)
  BASE_URL, MAX_PAGES, MAX_ERRORS_PER_RUN, DEBUG_MODE, ...

Examples:
  # Full run with settings from .env
  sitewatch

  # Test run without creating issues
  sitewatch --dry-run

  # Small run against another server
  sitewatch --url http://localhost:3000 --max-pages 10
""",
    )
    _add_scan_arguments(parser)
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run without creating issues",
    )
    parser.add_argument(
        "--max-errors",
        type=int,
        default=None,
        help="Maximum errors to process (default: MAX_ERRORS_PER_RUN or 50)",
    )
    parser.add_argument(
        "--reports-dir",
        type=str,
        default=None,
        help="Directory for report files (default: REPORTS_PATH or ./reports)",
    )
    parser.add_argument(
        "--no-reports",
        action="store_true",
        help="Do not write report files",
    )
    return parser.parse_args(argv)


def _build_pipeline_options(args: argparse.Namespace) -> PipelineOptions:
    options = load_pipeline_options_from_env()
    _apply_scan_overrides(options.scan, args)
    if args.max_errors is not None:
        options.max_errors = args.max_errors
    if args.dry_run:
        options.dry_run = True
    if args.reports_dir:
        options.reports_dir = args.reports_dir
    if args.no_reports:
        options.save_reports = False
    return options


def _print_outcome(report: ExecutionReport, code: int) -> None:
    print("Summary:")
    for line in report.summary:
        print(f"  {line}")
    if report.failed:
        print("Failures:")
        for failure in report.failed:
            print(f"  {failure}")

    if code == EXIT_FAILURE:
        print("The pipeline failed - see failures above.")
    elif code == EXIT_CRITICAL:
        print("CRITICAL errors detected - immediate attention required!")
    elif code == EXIT_ERRORS:
        print("Errors detected - review and fix when possible.")
    else:
        print("No errors detected - site is healthy!")


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the full pipeline."""
    args = _parse_run_args(argv)
    _setup_logging(args.debug or env_bool("DEBUG_MODE"))

    try:
        options = _build_pipeline_options(args)
        report = asyncio.run(run_pipeline_async(options))
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return 130
    except Exception as exc:
        logging.error("System failed: %s", exc)
        if args.debug:
            logging.exception("Full traceback:")
        return EXIT_FAILURE

    code = exit_code_for(report)
    _print_outcome(report, code)
    return code


# ---------------------------------------------------------------------------
# sitewatch-crawl (crawl only)
# ---------------------------------------------------------------------------


def _parse_crawl_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sitewatch-crawl",
        description="Crawl a site and report errors without filing issues.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  # Crawl BASE_URL and print findings as JSON
  sitewatch-crawl

  # Save findings to a file
  sitewatch-crawl --url http://localhost:5173 -o errors.json
""",
    )
    _add_scan_arguments(parser)
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Write findings JSON to this file instead of stdout",
    )
    parser.add_argument(
        "--include-subdomains",
        action="store_true",
        help="Follow links to subdomains of the target site",
    )
    return parser.parse_args(argv)


def _scan_result_to_dict(result: SiteScanResult) -> dict:
    return {
        "errors": [error.to_dict() for error in result.errors],
        "visitedUrls": list(result.visited_urls),
        "stats": dict(result.stats),
    }


def _crawl_exit_code(result: SiteScanResult) -> int:
    if any(error.severity.value == "critical" for error in result.errors):
        return EXIT_CRITICAL
    return EXIT_ERRORS if result.errors else EXIT_OK


def crawl_main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for crawl-only runs."""
    args = _parse_crawl_args(argv)
    _setup_logging(args.debug or env_bool("DEBUG_MODE"))

    try:
        options = _apply_scan_overrides(load_scan_options_from_env(), args)
        if args.include_subdomains:
            options.include_subdomains = True
        result = asyncio.run(scan_site_async(options))
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return 130
    except Exception as exc:
        logging.error("Error: %s", exc)
        if args.debug:
            logging.exception("Full traceback:")
        return EXIT_FAILURE

    output = json.dumps(_scan_result_to_dict(result), indent=2, ensure_ascii=False)
    if args.output:
        path = Path(args.output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(output, encoding="utf-8")
        logging.info("Findings saved to %s", path)
    else:
        print(output)

    for name, count in sorted(result.stats.get("by_type", {}).items()):
        logging.info("%s: %d", name, count)
    return _crawl_exit_code(result)


# ---------------------------------------------------------------------------
# sitewatch-check (pre-flight)
# ---------------------------------------------------------------------------


def _parse_check_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sitewatch-check",
        description="Check configuration and connectivity before a run.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args(argv)


def _check_environment() -> bool:
    missing = [name for name in REQUIRED_ENV_VARS if not os.getenv(name)]
    if missing:
        print(f"   Missing: {', '.join(missing)}")
        return False
    return True


def _check_dependencies() -> bool:
    return importlib.util.find_spec("playwright") is not None


async def _check_generator() -> bool:
    return await GeminiDescriptionGenerator.from_env().test_connection()


async def _check_tracker() -> bool:
    return await GitHubTracker.from_env().test_connection()


async def _run_checks_async() -> Tuple[int, int]:
    checks: List[Tuple[str, Callable[[], object]]] = [
        ("Environment variables", _check_environment),
        ("Dependencies", _check_dependencies),
        ("Description generator connection", _check_generator),
        ("Issue tracker connection", _check_tracker),
    ]
    passed = 0
    for name, check in checks:
        try:
            outcome = check()
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except (ConfigError, OSError) as exc:
            print(f"[FAIL] {name} - {exc}")
            continue
        if outcome:
            print(f"[ OK ] {name}")
            passed += 1
        else:
            print(f"[FAIL] {name}")
    return passed, len(checks)


def check_main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the pre-flight system check."""
    args = _parse_check_args(argv)
    _setup_logging(args.verbose)

    try:
        passed, total = asyncio.run(_run_checks_async())
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return 130

    print(f"\nResults: {passed}/{total} checks passed")
    if passed == total:
        print("System is ready. Try `sitewatch --dry-run` first.")
        return 0
    print("Some checks failed. Check your .env file and API keys,")
    print("and make sure the browser is installed: playwright install chromium")
    return 1


if __name__ == "__main__":
    sys.exit(main())
