"""Execution report: counts, summary lines, persistence and exit codes."""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .records import ErrorRecord, Issue, IssueDescription, Severity, utc_timestamp

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERRORS = 1
EXIT_CRITICAL = 2
EXIT_FAILURE = 3


class FilingStatus(str, Enum):
    created = "created"
    skipped = "skipped"
    failed = "failed"


@dataclass(slots=True)
class ReportDetail:
    """What happened to one finding during filing."""

    error: ErrorRecord
    status: FilingStatus
    description: Optional[IssueDescription] = None
    issue: Optional[Issue] = None
    reason: Optional[str] = None

    @property
    def error_id(self) -> str:
        return self.error.id

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "errorId": self.error_id,
            "error": self.error.to_dict(),
            "status": self.status.value,
        }
        if self.description is not None:
            data["description"] = self.description.to_dict()
        if self.issue is not None:
            data["issue"] = self.issue.to_dict()
        if self.reason:
            data["reason"] = self.reason
        return data


@dataclass
class ExecutionReport:
    """Outcome of one pipeline run, filled in phase by phase."""

    start_time: str = field(default_factory=utc_timestamp)
    end_time: str = ""
    duration_ms: int = 0
    total_errors: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    by_severity: Dict[str, int] = field(default_factory=dict)
    created: int = 0
    skipped: int = 0
    failed_issues: int = 0
    summary: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    details: List[ReportDetail] = field(default_factory=list)

    def count_errors(self, errors: Iterable[ErrorRecord]) -> None:
        errors = list(errors)
        self.total_errors = len(errors)
        self.by_type = dict(Counter(error.type.value for error in errors))
        self.by_severity = dict(Counter(error.severity.value for error in errors))

    def add_detail(self, detail: ReportDetail) -> None:
        self.details.append(detail)
        if detail.status is FilingStatus.created:
            self.created += 1
        elif detail.status is FilingStatus.skipped:
            self.skipped += 1
        else:
            self.failed_issues += 1

    def add_summary_lines(self) -> None:
        self.summary.extend(summary_lines(self))

    def finalize(self, started_at: datetime) -> None:
        ended_at = datetime.now(timezone.utc)
        self.end_time = ended_at.isoformat()
        self.duration_ms = int((ended_at - started_at).total_seconds() * 1000)

    @property
    def critical_count(self) -> int:
        return self.by_severity.get(Severity.critical.value, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration_ms,
            "errors": {
                "total": self.total_errors,
                "byType": dict(self.by_type),
                "bySeverity": dict(self.by_severity),
            },
            "issues": {
                "created": self.created,
                "skipped": self.skipped,
                "failed": self.failed_issues,
            },
            "summary": list(self.summary),
            "failed": list(self.failed),
            "details": [detail.to_dict() for detail in self.details],
        }


def summary_lines(report: ExecutionReport) -> List[str]:
    """Human-readable lines for critical/high counts, filing and top types."""
    lines = []
    critical = report.critical_count
    high = report.by_severity.get(Severity.high.value, 0)
    if critical:
        lines.append(f"{critical} CRITICAL errors found!")
    if high:
        lines.append(f"{high} HIGH priority errors found")
    if report.created:
        lines.append(f"Created {report.created} issues")
    if report.skipped:
        lines.append(f"Skipped {report.skipped} issues (duplicates or dry run)")

    # Counter.most_common keeps first-seen order for equal counts.
    top = Counter(report.by_type).most_common(3)
    if top:
        lines.append("Top error types: " + ", ".join(f"{name}: {count}" for name, count in top))
    return lines


def render_summary_text(report: ExecutionReport) -> str:
    lines = [
        "# Autonomous Error Detection Report",
        f"Generated: {report.start_time}",
        f"Duration: {round(report.duration_ms / 1000)}s",
        "",
        "## Summary",
        *report.summary,
        "",
        "## Statistics",
        f"- Total Errors: {report.total_errors}",
        f"- Issues Created: {report.created}",
        f"- Issues Skipped: {report.skipped}",
        f"- Issues Failed: {report.failed_issues}",
        "",
        "## Errors by Type",
        *(f"- {name}: {count}" for name, count in report.by_type.items()),
        "",
        "## Errors by Severity",
        *(f"- {name}: {count}" for name, count in report.by_severity.items()),
    ]
    if report.failed:
        lines += ["", "## Failures", *report.failed]
    return "\n".join(lines).strip() + "\n"


def _file_timestamp() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%f")
    return stamp[:-3] + "Z"


def write_report(report: ExecutionReport, reports_dir: str | Path) -> Tuple[Path, Path]:
    """Write the JSON report and the text summary; return both paths."""
    out_dir = Path(reports_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    stamp = _file_timestamp()

    json_path = out_dir / f"error-detection-report-{stamp}.json"
    json_path.write_text(
        json.dumps(report.to_dict(), indent=2, ensure_ascii=False, default=str),
        encoding="utf-8",
    )
    LOGGER.info("Report saved: %s", json_path)

    summary_path = out_dir / f"summary-{stamp}.txt"
    summary_path.write_text(render_summary_text(report), encoding="utf-8")
    LOGGER.info("Summary saved: %s", summary_path)
    return json_path, summary_path


def exit_code_for(report: ExecutionReport) -> int:
    """Map a finished report to the process exit code.

    3 when the run itself failed, 2 for any critical finding, 1 for any
    finding, 0 for a clean site.
    """
    if report.failed:
        return EXIT_FAILURE
    if report.critical_count:
        return EXIT_CRITICAL
    if report.total_errors:
        return EXIT_ERRORS
    return EXIT_OK
