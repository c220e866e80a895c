"""Static rendering checks run once per visited page."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from .config import MAIN_CONTENT_SELECTORS, VIEWPORT
from .records import CrawlState, ErrorType, Severity
from .session import BrowsingSession

LOGGER = logging.getLogger(__name__)

_RENDERING_CHECKS_JS = """(args) => {
    const problems = [];

    document.querySelectorAll('img').forEach((img, index) => {
        if (!img.complete || img.naturalWidth === 0) {
            problems.push({
                check: 'broken_image',
                message: `Broken image: ${img.src || 'Image ' + index}`,
                src: img.src || null,
            });
        }
    });

    const hasContent = args.mainSelectors.some((selector) => {
        const element = document.querySelector(selector);
        return !!(element && element.textContent && element.textContent.trim().length > 0);
    });
    if (!hasContent) {
        problems.push({check: 'missing_content', message: 'No main content detected'});
    }

    const scrollWidth = document.body ? document.body.scrollWidth : 0;
    const viewportWidth = window.innerWidth;
    if (scrollWidth > viewportWidth * args.overflowRatio) {
        problems.push({
            check: 'horizontal_overflow',
            message: 'Horizontal scroll detected - possible layout issue',
            scrollWidth,
            viewportWidth,
        });
    }

    return problems;
}"""


class RenderingAuditor:
    def __init__(
        self,
        session: BrowsingSession,
        state: CrawlState,
        *,
        overflow_ratio: float = 1.1,
    ) -> None:
        self.session = session
        self.state = state
        self.overflow_ratio = overflow_ratio

    async def collect_problems(self) -> List[Dict[str, Any]]:
        problems = await self.session.evaluate(
            _RENDERING_CHECKS_JS,
            {
                "mainSelectors": list(MAIN_CONTENT_SELECTORS),
                "overflowRatio": self.overflow_ratio,
            },
        )
        return list(problems or [])

    async def audit(self) -> int:
        """Record one rendering_error per problem and return how many were found."""
        try:
            problems = await self.collect_problems()
        except Exception as exc:
            LOGGER.warning("Rendering checks failed on %s: %s", self.session.url, exc)
            return 0

        for problem in problems:
            message = str(problem.get("message") or "Rendering problem")
            details = {key: value for key, value in problem.items() if key != "message"}
            details["issue"] = message
            details["viewport"] = dict(VIEWPORT)
            self.state.record(
                ErrorType.rendering_error,
                Severity.low,
                message,
                url=self.session.url or None,
                details=details,
            )
        return len(problems)
