"""MCP server exposing the error scanner and issue pipeline.

Provides tools for:
- Scanning a site for runtime, interaction and rendering errors
- Checking whether an issue text duplicates an open tracker issue
- Running the full detect → describe → file pipeline (dry run by default)

Supports both STDIO and HTTP transports.

Usage:
    # STDIO (for desktop MCP clients)
    python -m sitewatch.mcp_server

    # HTTP (for remote access)
    python -m sitewatch.mcp_server --transport http --port 8000

Environment Variables:
    BASE_URL: default target site (default: http://localhost:5173)
    GITHUB_TOKEN, GITHUB_OWNER, GITHUB_REPO: issue tracker
    GEMINI_API_KEY: description generation
"""

from __future__ import annotations

import argparse
import json
import logging
from typing import Optional

from dotenv import load_dotenv
from fastmcp import FastMCP

from .config import load_pipeline_options_from_env, load_scan_options_from_env

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
LOGGER = logging.getLogger(__name__)

# Load .env before reading environment variables
load_dotenv()

mcp = FastMCP(
    name="Site Error Watch",
    instructions="""
    An error detection server for web applications:

    - scan_site: crawl a site in a headless browser and list findings
      (HTTP errors, JavaScript/console errors, dead clicks, rendering problems)
    - check_duplicate: tell whether an issue title/body matches an open issue
    - run_pipeline: scan, generate issue descriptions and file issues;
      dry_run defaults to true so nothing is created unless asked
    """,
)


@mcp.tool
async def scan_site(
    url: Optional[str] = None,
    max_pages: int = 10,
    include_subdomains: bool = False,
    save_screenshots: bool = False,
) -> str:
    """
    Crawl a site and return the findings as JSON.

    Args:
        url: Site to scan (default: BASE_URL)
        max_pages: Maximum pages to visit (default: 10)
        include_subdomains: Follow links to subdomains (default: false)
        save_screenshots: Save a screenshot per visited page (default: false)

    Returns:
        JSON with errors, visitedUrls and stats.
    """
    from .site import scan_site_async

    options = load_scan_options_from_env()
    if url:
        options.base_url = url.rstrip("/")
    options.max_pages = max_pages
    options.include_subdomains = include_subdomains
    options.save_screenshots = save_screenshots

    LOGGER.info("Scanning %s (max_pages=%d)", options.base_url, max_pages)
    result = await scan_site_async(options)
    return json.dumps(
        {
            "errors": [error.to_dict() for error in result.errors],
            "visitedUrls": list(result.visited_urls),
            "stats": dict(result.stats),
        },
        indent=2,
        ensure_ascii=False,
    )


@mcp.tool
async def check_duplicate(title: str, body: str = "") -> str:
    """
    Check whether an issue with similar text is already open.

    Args:
        title: Candidate issue title
        body: Candidate issue body (URLs in it sharpen the match)

    Returns:
        JSON with "duplicate" (bool) and the matching "issue" if any.
        Search failures are reported in "error" and count as not duplicate.
    """
    from .dedup import DuplicateDetector
    from .tracker import GitHubTracker

    detector = DuplicateDetector(GitHubTracker.from_env())
    try:
        issue = await detector.find_duplicate(title, body)
    except Exception as exc:
        LOGGER.warning("Duplicate search failed: %s", exc)
        return json.dumps({"duplicate": False, "issue": None, "error": str(exc)})
    return json.dumps(
        {"duplicate": issue is not None, "issue": issue.to_dict() if issue else None},
        indent=2,
        ensure_ascii=False,
    )


@mcp.tool
async def run_pipeline(
    url: Optional[str] = None,
    max_pages: int = 10,
    max_errors: int = 10,
    dry_run: bool = True,
    save_reports: bool = False,
) -> str:
    """
    Scan a site, describe every finding and file issues for new ones.

    Args:
        url: Site to scan (default: BASE_URL)
        max_pages: Maximum pages to visit (default: 10)
        max_errors: Maximum findings to describe and file (default: 10)
        dry_run: Describe findings but do not create issues (default: true)
        save_reports: Also write report files to REPORTS_PATH (default: false)

    Returns:
        The execution report as JSON, plus the process-style "exitCode".
    """
    from .pipeline import run_pipeline_async
    from .report import exit_code_for

    options = load_pipeline_options_from_env()
    if url:
        options.scan.base_url = url.rstrip("/")
    options.scan.max_pages = max_pages
    options.max_errors = max_errors
    options.dry_run = dry_run
    options.save_reports = save_reports

    report = await run_pipeline_async(options)
    data = report.to_dict()
    data["exitCode"] = exit_code_for(report)
    return json.dumps(data, indent=2, ensure_ascii=False)


def main():
    """CLI entry point for running the MCP server."""
    parser = argparse.ArgumentParser(
        description="Run the site error watch MCP server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # STDIO transport (default)
    python -m sitewatch.mcp_server

    # HTTP transport (for remote access)
    python -m sitewatch.mcp_server --transport http --port 8000
""",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to for HTTP transport (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to for HTTP transport (default: 8000)",
    )

    args = parser.parse_args()

    if args.transport == "http":
        LOGGER.info("Starting MCP server on http://%s:%d/mcp", args.host, args.port)
        mcp.run(transport="http", host=args.host, port=args.port)
    else:
        LOGGER.info("Starting MCP server with STDIO transport")
        mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
