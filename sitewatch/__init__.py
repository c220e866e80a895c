"""Autonomous error detection and issue filing for web applications.

This package drives a headless browser over a site, records what goes
wrong, and files deduplicated issues for the findings. It supports:

- Runtime error capture (HTTP >= 400, failed requests, JS and console errors)
- Dead-click probing of buttons and links
- Static rendering checks (broken images, missing content, overflow)
- Duplicate detection against open GitHub issues
- Issue descriptions generated with Gemini, with a deterministic fallback
- JSON + text execution reports and scriptable exit codes

Example usage:

    from sitewatch import ScanOptions, scan_site_async, run_pipeline_async

    # Crawl only
    result = await scan_site_async(ScanOptions(base_url="http://localhost:5173"))
    for error in result.errors:
        print(error.severity.value, error.type.value, error.message)

    # Full pipeline without creating issues
    from sitewatch import PipelineOptions
    report = await run_pipeline_async(PipelineOptions(dry_run=True))
    print(report.summary)
"""

from __future__ import annotations

from .config import ConfigError, PipelineOptions, ScanOptions
from .dedup import DuplicateDetector, is_similar_issue, jaccard_similarity
from .describe import DescriptionError, GeminiDescriptionGenerator
from .issues import FilingResult, IssueFiler
from .pipeline import HealthCheckError, PipelineOrchestrator, run_pipeline, run_pipeline_async
from .records import CrawlState, ErrorRecord, ErrorType, Issue, IssueDescription, Severity
from .report import ExecutionReport, exit_code_for
from .session import BrowserSessionError, BrowsingSession
from .site import SiteScanResult, SiteScanner, scan_site, scan_site_async
from .tracker import GitHubTracker, TrackerError

__all__ = [
    # Records
    "ErrorRecord",
    "ErrorType",
    "Severity",
    "CrawlState",
    "IssueDescription",
    "Issue",
    # Options
    "ScanOptions",
    "PipelineOptions",
    "ConfigError",
    # Crawl
    "BrowsingSession",
    "BrowserSessionError",
    "SiteScanner",
    "SiteScanResult",
    "scan_site",
    "scan_site_async",
    # Tracker and filing
    "GitHubTracker",
    "TrackerError",
    "DuplicateDetector",
    "is_similar_issue",
    "jaccard_similarity",
    "IssueFiler",
    "FilingResult",
    # Descriptions
    "GeminiDescriptionGenerator",
    "DescriptionError",
    # Pipeline
    "PipelineOrchestrator",
    "HealthCheckError",
    "ExecutionReport",
    "exit_code_for",
    "run_pipeline",
    "run_pipeline_async",
]
