"""Dead-click detection by before/after page signatures."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .config import CLICKABLE_SELECTORS, OVERLAY_SELECTORS
from .records import CrawlState, ErrorType, Severity
from .session import BrowsingSession

LOGGER = logging.getLogger(__name__)

_FIND_CLICKABLES_JS = """(args) => {
    const elements = [];
    for (const selector of args.selectors) {
        document.querySelectorAll(selector).forEach((node, index) => {
            elements.push({
                selector: `${selector} >> nth=${index}`,
                text: (node.textContent || '').trim().substring(0, 50),
                href: node.getAttribute('href'),
            });
        });
    }
    return elements.slice(0, args.limit);
}"""

_NODE_COUNT_JS = "() => document.querySelectorAll('*').length"

_OVERLAY_PRESENT_JS = "(selector) => document.querySelector(selector) !== null"


@dataclass(frozen=True)
class ClickCandidate:
    selector: str
    text: str = ""
    href: Optional[str] = None

    @property
    def is_fragment_link(self) -> bool:
        return bool(self.href) and self.href.startswith("#")


@dataclass(frozen=True)
class PageSignature:
    """Observable page state used to decide whether a click did anything."""

    url: str
    node_count: int
    has_overlay: bool = False


def click_had_effect(
    before: PageSignature, after: PageSignature, *, node_delta_threshold: int = 5
) -> bool:
    """Return True when the click changed the URL, the DOM size or opened an overlay."""
    if before.url != after.url:
        return True
    if abs(after.node_count - before.node_count) > node_delta_threshold:
        return True
    return after.has_overlay


class DeadClickProber:
    """Clicks a bounded sample of interactive elements on the current page."""

    def __init__(
        self,
        session: BrowsingSession,
        state: CrawlState,
        *,
        max_elements: int = 10,
        click_timeout_ms: int = 5000,
        settle_seconds: float = 1.0,
        navigation_timeout_ms: int = 30000,
        node_delta_threshold: int = 5,
    ) -> None:
        self.session = session
        self.state = state
        self.max_elements = max_elements
        self.click_timeout_ms = click_timeout_ms
        self.settle_seconds = settle_seconds
        self.navigation_timeout_ms = navigation_timeout_ms
        self.node_delta_threshold = node_delta_threshold
        self.page_lost = False

    async def find_candidates(self) -> List[ClickCandidate]:
        raw = await self.session.evaluate(
            _FIND_CLICKABLES_JS,
            {"selectors": list(CLICKABLE_SELECTORS), "limit": self.max_elements},
        )
        candidates = []
        for entry in (raw or [])[: self.max_elements]:
            candidates.append(
                ClickCandidate(
                    selector=str(entry.get("selector") or ""),
                    text=str(entry.get("text") or ""),
                    href=entry.get("href"),
                )
            )
        return candidates

    async def signature(self, *, with_overlay: bool = False) -> PageSignature:
        url = self.session.url
        node_count = int(await self.session.evaluate(_NODE_COUNT_JS) or 0)
        has_overlay = False
        if with_overlay:
            has_overlay = bool(
                await self.session.evaluate(
                    _OVERLAY_PRESENT_JS, ", ".join(OVERLAY_SELECTORS)
                )
            )
        return PageSignature(url=url, node_count=node_count, has_overlay=has_overlay)

    async def probe(self) -> int:
        """Probe the current page and return the number of dead clicks found.

        Probing stops early if a click leaves the page and the prober cannot
        get back; ``page_lost`` is then True.
        """
        self.page_lost = False
        try:
            candidates = await self.find_candidates()
        except Exception as exc:
            LOGGER.warning("Could not enumerate clickable elements: %s", exc)
            return 0

        found = 0
        for candidate in candidates:
            if await self.probe_element(candidate):
                found += 1
            if self.page_lost:
                LOGGER.warning(
                    "Stopped probing after %s: could not return to the page",
                    candidate.selector,
                )
                break
        return found

    async def probe_element(self, candidate: ClickCandidate) -> bool:
        """Click one element; return True if a dead_click finding was recorded."""
        try:
            before = await self.signature()
        except Exception as exc:
            LOGGER.warning("Could not read page state before %s: %s", candidate.selector, exc)
            return False

        try:
            await self.session.click(candidate.selector, timeout_ms=self.click_timeout_ms)
        except Exception as exc:
            self.state.record(
                ErrorType.dead_click,
                Severity.low,
                f"Click failed: {candidate.text}",
                url=before.url or None,
                details={
                    "selector": candidate.selector,
                    "text": candidate.text,
                    "error": str(exc),
                },
            )
            if self.session.url != before.url:
                await self._return_to(before.url)
            return True

        await asyncio.sleep(self.settle_seconds)
        try:
            after = await self.signature(with_overlay=True)
        except Exception as exc:
            # A navigating click can destroy the execution context.
            if self.session.url != before.url:
                LOGGER.debug("Click on %s navigated to %s", candidate.selector, self.session.url)
                await self._return_to(before.url)
            else:
                LOGGER.warning("Could not read page state after %s: %s", candidate.selector, exc)
            return False

        dead = not click_had_effect(
            before, after, node_delta_threshold=self.node_delta_threshold
        ) and not candidate.is_fragment_link
        if dead:
            self.state.record(
                ErrorType.dead_click,
                Severity.medium,
                f"Dead click detected: {candidate.text}",
                url=before.url or None,
                details=_dead_click_details(candidate, before, after),
            )

        if before.url != after.url:
            await self._return_to(before.url)
        return dead

    async def _return_to(self, url: str) -> None:
        try:
            await self.session.go_back(timeout_ms=self.navigation_timeout_ms)
        except Exception as exc:
            LOGGER.debug("go_back failed (%s); navigating to %s", exc, url)
        if self.session.url == url:
            return
        try:
            await self.session.navigate(url, timeout_ms=self.navigation_timeout_ms)
        except Exception as exc:
            LOGGER.warning("Could not return to %s: %s", url, exc)
            self.page_lost = True


def _dead_click_details(
    candidate: ClickCandidate, before: PageSignature, after: PageSignature
) -> Dict[str, Any]:
    return {
        "selector": candidate.selector,
        "text": candidate.text,
        "href": candidate.href,
        "initialUrl": before.url,
        "afterUrl": after.url,
        "nodeCountBefore": before.node_count,
        "nodeCountAfter": after.node_count,
    }
