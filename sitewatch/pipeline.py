"""Detect → describe → file pipeline.

Public API::

    from sitewatch.pipeline import run_pipeline_async

    report = await run_pipeline_async()
    print(report.summary)
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional

import httpx

from .config import PipelineOptions, ScanOptions, load_pipeline_options_from_env
from .dedup import DuplicateDetector
from .describe import GeminiDescriptionGenerator
from .issues import IssueFiler
from .records import ErrorRecord, IssueDescription
from .report import (
    ExecutionReport,
    FilingStatus,
    ReportDetail,
    write_report,
)
from .site import SessionFactory, SiteScanResult, scan_site_async
from .tracker import GitHubTracker

LOGGER = logging.getLogger(__name__)

DRY_RUN_REASON = "Dry run mode"
DUPLICATE_REASON = "Duplicate issue already open"

Scanner = Callable[[ScanOptions], Awaitable[SiteScanResult]]


class HealthCheckError(Exception):
    """Raised when a required external service is unreachable."""

    def __init__(self, message: str, service: str):
        self.service = service
        super().__init__(message)


class PipelineOrchestrator:
    """Runs one pipeline pass and produces an :class:`ExecutionReport`.

    Collaborators default to the environment-configured Gemini generator
    and GitHub tracker; tests pass fakes instead.
    """

    def __init__(
        self,
        options: Optional[PipelineOptions] = None,
        *,
        generator: Optional[GeminiDescriptionGenerator] = None,
        tracker: Optional[GitHubTracker] = None,
        filer: Optional[IssueFiler] = None,
        scanner: Optional[Scanner] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self.options = options or load_pipeline_options_from_env()
        self.generator = generator or GeminiDescriptionGenerator.from_env()
        self.tracker = tracker or GitHubTracker.from_env()
        self.filer = filer or IssueFiler(
            self.tracker,
            DuplicateDetector(
                self.tracker, lookback_days=self.options.duplicate_check_days
            ),
            rate_limit_seconds=self.options.rate_limit_seconds,
        )
        self._scanner = scanner or (
            lambda scan_options: scan_site_async(
                scan_options, session_factory=session_factory
            )
        )

    async def execute(self) -> ExecutionReport:
        started_at = datetime.now(timezone.utc)
        report = ExecutionReport(start_time=started_at.isoformat())
        LOGGER.info("Starting autonomous error detection")
        LOGGER.info("Target: %s", self.options.scan.base_url)
        LOGGER.info("Mode: %s", "DRY RUN" if self.options.dry_run else "PRODUCTION")

        try:
            await self.check_health()

            LOGGER.info("Phase 1: error detection")
            errors = await self.detect_errors(report)
            if not errors:
                LOGGER.info("No errors detected, site is healthy")
                report.summary.append("No errors detected - site is healthy")
                return report

            LOGGER.info("Phase 2: issue descriptions (%d errors)", len(errors))
            descriptions = await self.generator.generate_batch_descriptions(errors)
            LOGGER.info("Generated %d issue descriptions", len(descriptions))

            LOGGER.info("Phase 3: issue filing")
            await self.file_issues(errors, descriptions, report)
            report.add_summary_lines()
        except Exception as exc:
            LOGGER.error("Pipeline execution failed: %s", exc)
            report.failed.append(f"System execution failed: {exc}")
        finally:
            self.finalize(report, started_at)
        return report

    async def check_health(self) -> None:
        LOGGER.info("Performing health checks...")
        if not await self.generator.test_connection():
            raise HealthCheckError(
                "Description generator connection failed. Check GEMINI_API_KEY.",
                "generator",
            )
        LOGGER.info("Description generator: connected")

        if not await self.tracker.test_connection():
            raise HealthCheckError(
                "Issue tracker connection failed. Check GITHUB_TOKEN and repository settings.",
                "tracker",
            )
        LOGGER.info("Issue tracker: connected")

        await self.check_target_site()

    async def check_target_site(self) -> bool:
        """Probe the base URL; failures are warnings only."""
        url = self.options.scan.base_url
        try:
            async with httpx.AsyncClient(timeout=10.0, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.warning("Target website check failed: %s", exc)
            LOGGER.info("Continuing anyway, the site may only be reachable from the browser")
            return False
        LOGGER.info("Target website: accessible")
        return True

    async def detect_errors(self, report: ExecutionReport) -> List[ErrorRecord]:
        result = await self._scanner(self.options.scan)
        found = result.errors
        limit = max(0, self.options.max_errors)
        errors = found[:limit]
        if len(found) > limit:
            message = f"Limited to {limit} errors (found {len(found)} total)"
            LOGGER.warning(message)
            report.summary.append(message)

        report.count_errors(errors)
        LOGGER.info("Errors by type: %s", report.by_type)
        LOGGER.info("Errors by severity: %s", report.by_severity)
        return errors

    async def file_issues(
        self,
        errors: List[ErrorRecord],
        descriptions: Dict[str, IssueDescription],
        report: ExecutionReport,
    ) -> None:
        if self.options.dry_run:
            LOGGER.info("DRY RUN: would create issues for the following errors:")
            for error in errors:
                description = descriptions.get(error.id)
                if description is None:
                    continue
                LOGGER.info("  [%s] %s", error.severity.value, description.title)
                report.add_detail(
                    ReportDetail(
                        error=error,
                        status=FilingStatus.skipped,
                        description=description,
                        reason=DRY_RUN_REASON,
                    )
                )
            return

        by_id = {error.id: error for error in errors}
        async for result in self.filer.file_each(descriptions, errors):
            error = by_id[result.error_id]
            description = descriptions.get(result.error_id)
            if result.issue is not None:
                LOGGER.info("Created issue #%d: %s", result.issue.number, result.issue.title)
                detail = ReportDetail(
                    error=error,
                    status=FilingStatus.created,
                    description=description,
                    issue=result.issue,
                )
            elif result.error is not None:
                detail = ReportDetail(
                    error=error,
                    status=FilingStatus.failed,
                    description=description,
                    reason=result.error,
                )
            else:
                LOGGER.info("Skipped issue for error %s (duplicate)", error.id)
                detail = ReportDetail(
                    error=error,
                    status=FilingStatus.skipped,
                    description=description,
                    reason=DUPLICATE_REASON,
                )
            report.add_detail(detail)

    def finalize(self, report: ExecutionReport, started_at: datetime) -> None:
        report.finalize(started_at)
        LOGGER.info("Execution complete in %ds", round(report.duration_ms / 1000))
        for line in report.summary:
            LOGGER.info("  %s", line)
        for failure in report.failed:
            LOGGER.error("  %s", failure)

        if not self.options.save_reports:
            return
        try:
            write_report(report, self.options.reports_dir)
        except OSError as exc:
            LOGGER.error("Failed to save report to %s: %s", self.options.reports_dir, exc)
            report.failed.append(f"Failed to save report: {exc}")


async def run_pipeline_async(
    options: Optional[PipelineOptions] = None, **kwargs
) -> ExecutionReport:
    """
    Run health checks, crawl, describe and file issues for one site.

    Args:
        options: Pipeline options; defaults to the environment configuration.
        **kwargs: Collaborator overrides passed to :class:`PipelineOrchestrator`.

    Returns:
        The finished ExecutionReport (already persisted when enabled).
    """
    return await PipelineOrchestrator(options, **kwargs).execute()


def run_pipeline(options: Optional[PipelineOptions] = None, **kwargs) -> ExecutionReport:
    """Synchronous wrapper for run_pipeline_async."""
    return asyncio.run(run_pipeline_async(options, **kwargs))
