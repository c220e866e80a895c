"""Tests for sitewatch.probe module (dead-click detection)."""

from __future__ import annotations

import pytest
from fakes import FakeSession

from sitewatch.probe import (
    ClickCandidate,
    DeadClickProber,
    PageSignature,
    click_had_effect,
)
from sitewatch.records import CrawlState, ErrorType, Severity

PAGE = "http://localhost:5173/produtos"


class TestClickHadEffect:
    def test_url_change(self):
        before = PageSignature(url=PAGE, node_count=100)
        after = PageSignature(url=PAGE + "/1", node_count=100)
        assert click_had_effect(before, after)

    def test_node_delta_above_threshold(self):
        before = PageSignature(url=PAGE, node_count=100)
        assert click_had_effect(before, PageSignature(url=PAGE, node_count=106))
        assert click_had_effect(before, PageSignature(url=PAGE, node_count=94))

    def test_node_delta_at_threshold_is_no_effect(self):
        before = PageSignature(url=PAGE, node_count=100)
        assert not click_had_effect(before, PageSignature(url=PAGE, node_count=105))

    def test_overlay(self):
        before = PageSignature(url=PAGE, node_count=100)
        after = PageSignature(url=PAGE, node_count=100, has_overlay=True)
        assert click_had_effect(before, after)

    def test_nothing_changed(self):
        before = PageSignature(url=PAGE, node_count=100)
        assert not click_had_effect(before, PageSignature(url=PAGE, node_count=100))


def _prober(session: FakeSession, state: CrawlState) -> DeadClickProber:
    return DeadClickProber(session, state, settle_seconds=0)


def _session_with(*candidates: dict) -> FakeSession:
    session = FakeSession(clickables={PAGE: list(candidates)})
    session.go_to(PAGE)
    return session


class TestDeadClickProber:
    @pytest.mark.asyncio
    async def test_unresponsive_button_is_dead_click(self):
        session = _session_with({"selector": "button >> nth=0", "text": "Comprar", "href": None})
        state = CrawlState()

        found = await _prober(session, state).probe()

        assert found == 1
        assert len(state.errors) == 1
        record = state.errors[0]
        assert record.type is ErrorType.dead_click
        assert record.severity is Severity.medium
        assert record.message == "Dead click detected: Comprar"
        assert record.url == PAGE

    @pytest.mark.asyncio
    async def test_fragment_link_never_dead(self):
        session = _session_with({"selector": "a[href] >> nth=0", "text": "Top", "href": "#top"})
        state = CrawlState()
        assert await _prober(session, state).probe() == 0
        assert state.errors == []

    @pytest.mark.asyncio
    async def test_dom_change_is_effect(self):
        session = _session_with({"selector": "button >> nth=0", "text": "More", "href": None})

        def grow(s: FakeSession) -> None:
            s.node_counts[PAGE] = 150

        session.click_effects["button >> nth=0"] = grow
        state = CrawlState()
        assert await _prober(session, state).probe() == 0
        assert state.errors == []

    @pytest.mark.asyncio
    async def test_overlay_is_effect(self):
        session = _session_with({"selector": "button >> nth=0", "text": "Login", "href": None})
        session.click_effects["button >> nth=0"] = lambda s: setattr(s, "overlay", True)
        state = CrawlState()
        assert await _prober(session, state).probe() == 0

    @pytest.mark.asyncio
    async def test_navigation_goes_back(self):
        session = _session_with(
            {"selector": "a[href] >> nth=0", "text": "Cart", "href": "/carrinho"},
            {"selector": "button >> nth=0", "text": "Dead", "href": None},
        )
        session.click_effects["a[href] >> nth=0"] = lambda s: s.go_to(
            "http://localhost:5173/carrinho"
        )
        state = CrawlState()

        found = await _prober(session, state).probe()

        assert session.back_calls == 1
        assert session.url == PAGE
        # The second element was probed on the original page.
        assert found == 1
        assert state.errors[0].url == PAGE

    @pytest.mark.asyncio
    async def test_click_exception_is_low_dead_click(self):
        session = _session_with({"selector": "button >> nth=0", "text": "Hidden", "href": None})
        session.failing_clicks.add("button >> nth=0")
        state = CrawlState()

        assert await _prober(session, state).probe() == 1
        record = state.errors[0]
        assert record.severity is Severity.low
        assert record.message == "Click failed: Hidden"
        assert "Timeout" in record.details["error"]

    @pytest.mark.asyncio
    async def test_candidate_limit(self):
        session = _session_with(
            *[{"selector": f"button >> nth={i}", "text": str(i), "href": None} for i in range(15)]
        )
        state = CrawlState()
        await DeadClickProber(session, state, max_elements=10, settle_seconds=0).probe()
        assert len(session.clicks) == 10

    @pytest.mark.asyncio
    async def test_enumeration_failure_records_nothing(self):
        from sitewatch.probe import _FIND_CLICKABLES_JS

        session = _session_with()
        session.failing_scripts.add(_FIND_CLICKABLES_JS)
        state = CrawlState()
        assert await _prober(session, state).probe() == 0
        assert state.errors == []

    @pytest.mark.asyncio
    async def test_navigating_click_with_destroyed_context_goes_back(self):
        cart = "http://localhost:5173/carrinho"
        session = _session_with(
            {"selector": "a[href] >> nth=0", "text": "Cart", "href": "/carrinho"},
            {"selector": "button >> nth=0", "text": "Buy", "href": None},
        )
        session.broken_pages.add(cart)
        session.click_effects["a[href] >> nth=0"] = lambda s: s.go_to(cart)
        state = CrawlState()

        found = await _prober(session, state).probe()

        assert session.back_calls == 1
        assert session.url == PAGE
        assert found == 1
        assert [(e.severity, e.message, e.url) for e in state.errors] == [
            (Severity.medium, "Dead click detected: Buy", PAGE)
        ]

    @pytest.mark.asyncio
    async def test_unreachable_page_stops_probing(self):
        cart = "http://localhost:5173/carrinho"
        session = _session_with(
            {"selector": "a[href] >> nth=0", "text": "Cart", "href": "/carrinho"},
            {"selector": "button >> nth=0", "text": "Buy", "href": None},
        )
        session.click_effects["a[href] >> nth=0"] = lambda s: s.go_to(cart)
        session.failing_back = True
        session.failing.add(PAGE)
        state = CrawlState()
        prober = _prober(session, state)

        assert await prober.probe() == 0

        assert prober.page_lost
        assert session.clicks == ["a[href] >> nth=0"]
        assert session.navigations == [PAGE]
        assert state.errors == []

    @pytest.mark.asyncio
    async def test_go_back_failure_falls_back_to_navigate(self):
        cart = "http://localhost:5173/carrinho"
        session = _session_with({"selector": "a[href] >> nth=0", "text": "Cart", "href": "/carrinho"})
        session.click_effects["a[href] >> nth=0"] = lambda s: s.go_to(cart)
        session.failing_back = True
        prober = _prober(session, CrawlState())

        await prober.probe()

        assert session.navigations == [PAGE]
        assert session.url == PAGE
        assert not prober.page_lost


class TestClickCandidate:
    def test_fragment(self):
        assert ClickCandidate("a", href="#x").is_fragment_link
        assert not ClickCandidate("a", href="/x").is_fragment_link
        assert not ClickCandidate("button").is_fragment_link
