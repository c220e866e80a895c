from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from sitewatch import dedup, mcp_server, pipeline, site
from sitewatch.config import PipelineOptions, ScanOptions
from sitewatch.records import ErrorRecord, ErrorType, Issue, Severity
from sitewatch.report import ExecutionReport
from sitewatch.site import SiteScanResult


def _tool(tool):
    # Decorated tools are plain functions or FunctionTool wrappers
    # depending on the fastmcp version.
    return getattr(tool, "fn", tool)


@pytest.mark.asyncio
async def test_mcp_scan_site_applies_arguments(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict = {}

    async def fake_scan_site_async(options: ScanOptions, **kwargs):
        captured["options"] = options
        return SiteScanResult(
            errors=[
                ErrorRecord(
                    id="1_abc",
                    type=ErrorType.page_not_found,
                    severity=Severity.medium,
                    url="http://shop.local/x",
                    message="HTTP 404: http://shop.local/x",
                )
            ],
            visited_urls=["http://shop.local/x"],
            stats={"pages_visited": 1},
        )

    monkeypatch.setattr(mcp_server, "load_scan_options_from_env", lambda: ScanOptions())
    monkeypatch.setattr(site, "scan_site_async", fake_scan_site_async)

    output = await _tool(mcp_server.scan_site)(
        url="http://shop.local/", max_pages=3, include_subdomains=True
    )

    options = captured["options"]
    assert options.base_url == "http://shop.local"
    assert options.max_pages == 3
    assert options.include_subdomains is True
    assert options.save_screenshots is False
    data = json.loads(output)
    assert data["errors"][0]["type"] == "page_not_found"
    assert data["visitedUrls"] == ["http://shop.local/x"]


@pytest.mark.asyncio
async def test_mcp_check_duplicate(monkeypatch: pytest.MonkeyPatch) -> None:
    found = Issue(id=1, number=9, title="Erro 404 detectado em /carrinho")
    monkeypatch.setattr("sitewatch.tracker.GitHubTracker.from_env", MagicMock())
    monkeypatch.setattr(
        dedup.DuplicateDetector, "find_duplicate", AsyncMock(return_value=found)
    )

    data = json.loads(await _tool(mcp_server.check_duplicate)(title=found.title))

    assert data["duplicate"] is True
    assert data["issue"]["number"] == 9


@pytest.mark.asyncio
async def test_mcp_check_duplicate_search_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("sitewatch.tracker.GitHubTracker.from_env", MagicMock())
    monkeypatch.setattr(
        dedup.DuplicateDetector,
        "find_duplicate",
        AsyncMock(side_effect=RuntimeError("rate limited")),
    )

    data = json.loads(await _tool(mcp_server.check_duplicate)(title="x"))

    assert data == {"duplicate": False, "issue": None, "error": "rate limited"}


@pytest.mark.asyncio
async def test_mcp_run_pipeline_defaults_to_dry_run(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict = {}

    async def fake_run_pipeline_async(options: PipelineOptions, **kwargs):
        captured["options"] = options
        report = ExecutionReport()
        report.summary.append("No errors detected - site is healthy")
        return report

    monkeypatch.setattr(
        mcp_server, "load_pipeline_options_from_env", lambda: PipelineOptions()
    )
    monkeypatch.setattr(pipeline, "run_pipeline_async", fake_run_pipeline_async)

    data = json.loads(await _tool(mcp_server.run_pipeline)(max_errors=4))

    options = captured["options"]
    assert options.dry_run is True
    assert options.save_reports is False
    assert options.max_errors == 4
    assert data["exitCode"] == 0
    assert data["summary"] == ["No errors detected - site is healthy"]
