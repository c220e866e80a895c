"""Tests for sitewatch.report module."""

from __future__ import annotations

import json

from sitewatch.records import ErrorRecord, ErrorType, Issue, IssueDescription, Severity
from sitewatch.report import (
    EXIT_CRITICAL,
    EXIT_ERRORS,
    EXIT_FAILURE,
    EXIT_OK,
    ExecutionReport,
    FilingStatus,
    ReportDetail,
    exit_code_for,
    render_summary_text,
    summary_lines,
    write_report,
)


def _record(error_id: str, error_type: ErrorType, severity: Severity) -> ErrorRecord:
    return ErrorRecord(
        id=error_id,
        type=error_type,
        severity=severity,
        url="http://localhost:5173/",
        message="m",
    )


def _report(*pairs) -> ExecutionReport:
    report = ExecutionReport()
    report.count_errors(
        _record(str(i), error_type, severity) for i, (error_type, severity) in enumerate(pairs)
    )
    return report


class TestCounts:
    def test_count_errors(self):
        report = _report(
            (ErrorType.api_error, Severity.high),
            (ErrorType.api_error, Severity.high),
            (ErrorType.dead_click, Severity.medium),
        )
        assert report.total_errors == 3
        assert report.by_type == {"api_error": 2, "dead_click": 1}
        assert report.by_severity == {"high": 2, "medium": 1}

    def test_add_detail_tallies(self):
        report = ExecutionReport()
        record = _record("1", ErrorType.js_error, Severity.high)
        report.add_detail(ReportDetail(record, FilingStatus.created, issue=Issue(1, 1, "t")))
        report.add_detail(ReportDetail(record, FilingStatus.skipped, reason="Dry run mode"))
        report.add_detail(ReportDetail(record, FilingStatus.failed, reason="boom"))
        assert (report.created, report.skipped, report.failed_issues) == (1, 1, 1)


class TestSummary:
    def test_summary_lines(self):
        report = _report(
            (ErrorType.js_error, Severity.critical),
            (ErrorType.api_error, Severity.high),
            (ErrorType.api_error, Severity.high),
            (ErrorType.dead_click, Severity.medium),
            (ErrorType.console_error, Severity.low),
        )
        report.created = 2
        report.skipped = 1
        assert summary_lines(report) == [
            "1 CRITICAL errors found!",
            "2 HIGH priority errors found",
            "Created 2 issues",
            "Skipped 1 issues (duplicates or dry run)",
            "Top error types: api_error: 2, js_error: 1, dead_click: 1",
        ]

    def test_summary_lines_empty(self):
        assert summary_lines(ExecutionReport()) == []

    def test_render_summary_text(self):
        report = _report((ErrorType.dead_click, Severity.medium))
        report.summary.append("Created 1 issues")
        report.failed.append("Failed to save report: disk full")
        text = render_summary_text(report)
        assert text.startswith("# Autonomous Error Detection Report")
        assert "- Total Errors: 1" in text
        assert "- dead_click: 1" in text
        assert "## Failures" in text


class TestExitCodes:
    def test_clean(self):
        assert exit_code_for(ExecutionReport()) == EXIT_OK

    def test_errors(self):
        assert exit_code_for(_report((ErrorType.dead_click, Severity.medium))) == EXIT_ERRORS

    def test_critical(self):
        report = _report(
            (ErrorType.dead_click, Severity.medium), (ErrorType.js_error, Severity.critical)
        )
        assert exit_code_for(report) == EXIT_CRITICAL

    def test_failure_wins(self):
        report = _report((ErrorType.js_error, Severity.critical))
        report.failed.append("System execution failed: x")
        assert exit_code_for(report) == EXIT_FAILURE


class TestPersistence:
    def test_to_dict_shape(self):
        record = _record("1_abc", ErrorType.api_error, Severity.high)
        report = _report((ErrorType.api_error, Severity.high))
        report.add_detail(
            ReportDetail(
                record,
                FilingStatus.skipped,
                description=IssueDescription(title="T", body="B"),
                reason="Dry run mode",
            )
        )
        data = report.to_dict()
        assert set(data) == {
            "startTime",
            "endTime",
            "duration",
            "errors",
            "issues",
            "summary",
            "failed",
            "details",
        }
        assert data["errors"]["byType"] == {"api_error": 1}
        assert data["issues"] == {"created": 0, "skipped": 1, "failed": 0}
        detail = data["details"][0]
        assert detail["errorId"] == "1_abc"
        assert detail["status"] == "skipped"
        assert detail["reason"] == "Dry run mode"
        assert "issue" not in detail

    def test_write_report(self, tmp_path):
        report = _report((ErrorType.dead_click, Severity.medium))
        json_path, summary_path = write_report(report, tmp_path / "reports")

        assert json_path.name.startswith("error-detection-report-")
        assert json_path.suffix == ".json"
        assert summary_path.name.startswith("summary-")
        assert json.loads(json_path.read_text(encoding="utf-8"))["errors"]["total"] == 1
        assert "Total Errors: 1" in summary_path.read_text(encoding="utf-8")
