"""Tests for sitewatch.audit module."""

from __future__ import annotations

import pytest
from fakes import FakeSession

from sitewatch.audit import _RENDERING_CHECKS_JS, RenderingAuditor
from sitewatch.records import CrawlState, ErrorType, Severity

PAGE = "http://localhost:5173/blog"


@pytest.mark.asyncio
async def test_one_record_per_problem():
    session = FakeSession(
        problems={
            PAGE: [
                {"check": "broken_image", "message": "Broken image: /a.png", "src": "/a.png"},
                {"check": "broken_image", "message": "Broken image: /b.png", "src": "/b.png"},
                {"check": "missing_content", "message": "No main content detected"},
            ]
        }
    )
    session.go_to(PAGE)
    state = CrawlState()

    assert await RenderingAuditor(session, state).audit() == 3
    assert [e.type for e in state.errors] == [ErrorType.rendering_error] * 3
    assert all(e.severity is Severity.low for e in state.errors)
    assert state.errors[0].details["issue"] == "Broken image: /a.png"
    assert state.errors[0].details["src"] == "/a.png"
    assert state.errors[2].details["viewport"] == {"width": 1920, "height": 1080}


@pytest.mark.asyncio
async def test_healthy_page():
    session = FakeSession()
    session.go_to(PAGE)
    state = CrawlState()
    assert await RenderingAuditor(session, state).audit() == 0
    assert state.errors == []


@pytest.mark.asyncio
async def test_script_failure_is_swallowed():
    session = FakeSession()
    session.go_to(PAGE)
    session.failing_scripts.add(_RENDERING_CHECKS_JS)
    state = CrawlState()
    assert await RenderingAuditor(session, state).audit() == 0
    assert state.errors == []
