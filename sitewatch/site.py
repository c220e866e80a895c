"""Site crawler: URL discovery and the page-by-page error scan."""

from __future__ import annotations

import asyncio
import logging
import re
from collections import Counter, deque
from dataclasses import dataclass, field, replace
from functools import lru_cache
from pathlib import Path
from time import time
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import urlparse, urlunparse

import tldextract

from .audit import RenderingAuditor
from .capture import ErrorCapture
from .config import ScanOptions
from .probe import DeadClickProber
from .records import CrawlState, ErrorRecord, ErrorType, Severity
from .session import BrowsingSession

LOGGER = logging.getLogger(__name__)

_EXTRACT_LINKS_JS = (
    "() => Array.from(document.querySelectorAll('a[href]'), (a) => a.href)"
)

# Markers in a redirect target that indicate the app bounced to an error page.
_ERROR_PATH_MARKERS = ("404", "error")

SessionFactory = Callable[[], BrowsingSession]


@dataclass
class SiteScanResult:
    """Result of a site scan."""

    errors: List[ErrorRecord] = field(default_factory=list)
    visited_urls: List[str] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)


def _normalize_host(host: Optional[str]) -> str:
    """Normalize hostname by removing port and lowercasing."""
    if not host:
        return ""
    return host.split(":")[0].lower()


@lru_cache(maxsize=256)
def _registrable_domain(host: str) -> Optional[str]:
    """Extract the registrable domain from a hostname."""
    if not host:
        return None
    extracted = tldextract.extract(host)
    if not extracted.domain or not extracted.suffix:
        return host
    domain = ".".join(part for part in (extracted.domain, extracted.suffix) if part)
    return domain or host


def normalize_url(url: str) -> str:
    """Drop the fragment and give an empty path a trailing slash."""
    parsed = urlparse(url.strip())
    path = parsed.path or "/"
    return urlunparse(parsed._replace(path=path, fragment=""))


def is_same_site(url: str, base_url: str, *, include_subdomains: bool = False) -> bool:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return False
    host = _normalize_host(parsed.netloc)
    base_host = _normalize_host(urlparse(base_url).netloc)
    if not host or not base_host:
        return False
    if host == base_host:
        return True
    if include_subdomains:
        return _registrable_domain(host) == _registrable_domain(base_host)
    return False


def build_frontier(
    base_url: str,
    links: Iterable[str],
    routes: Iterable[str],
    *,
    max_pages: int,
    include_subdomains: bool = False,
) -> List[str]:
    """Merge discovered links with well-known routes, dedup, cap to ``max_pages``."""
    base = base_url.rstrip("/")
    ordered: List[str] = []
    seen = set()

    def _add(candidate: str) -> None:
        normalized = normalize_url(candidate)
        if normalized in seen:
            return
        seen.add(normalized)
        ordered.append(normalized)

    for link in links:
        if link and is_same_site(link, base, include_subdomains=include_subdomains):
            _add(link)
    for route in routes:
        _add(base + "/" + route.lstrip("/"))

    return ordered[: max(0, max_pages)]


def _screenshot_filename(url: str) -> str:
    return f"error-{int(time() * 1000)}-{re.sub(r'[^a-zA-Z0-9]', '_', url)}.png"


class SiteScanner:
    """Drives discovery and the crawl loop over one browsing session.

    Lifecycle: ``INIT`` (session launched, listeners attached) →
    ``DISCOVER`` → ``CRAWL`` → ``DONE``. Discovery and every crawl
    iteration are fault isolated; findings accumulate in ``self.state``.
    """

    def __init__(
        self,
        options: ScanOptions,
        *,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self.options = options
        self.base_url = normalize_url(options.base_url)
        self._session_factory = session_factory or (
            lambda: BrowsingSession(headless=options.headless)
        )
        self.state = CrawlState(
            critical_types=options.critical_types,
            default_url=self.base_url,
            verbose=options.debug,
        )
        self.visit_order: List[str] = []
        self.session: Optional[BrowsingSession] = None

    async def run(self) -> SiteScanResult:
        LOGGER.info("Starting error scan of %s (max_pages=%d)", self.base_url, self.options.max_pages)
        async with self._session_factory() as session:
            self.session = session
            ErrorCapture(session, self.state).attach()
            await self.discover()
            await self.crawl()
        LOGGER.info(
            "Scan complete: %d pages visited, %d findings",
            len(self.visit_order),
            len(self.state.errors),
        )
        return self._result()

    async def discover(self) -> List[str]:
        LOGGER.info("Discovering URLs...")
        try:
            await self.session.navigate(
                self.base_url,
                wait_until=self.options.wait_until,
                timeout_ms=self.options.navigation_timeout_ms,
            )
            links = await self.session.evaluate(_EXTRACT_LINKS_JS) or []
            frontier = build_frontier(
                self.base_url,
                links,
                self.options.routes,
                max_pages=self.options.max_pages,
                include_subdomains=self.options.include_subdomains,
            )
        except Exception as exc:
            LOGGER.error("URL discovery failed, falling back to base URL: %s", exc)
            frontier = [self.base_url]

        if not frontier:
            frontier = [self.base_url]
        self.state.frontier = deque(frontier)
        LOGGER.info("Found %d URLs to crawl", len(frontier))
        LOGGER.log(
            logging.INFO if self.options.debug else logging.DEBUG,
            "URLs to visit: %s",
            frontier,
        )
        return frontier

    async def crawl(self) -> None:
        while self.state.frontier:
            url = self.state.frontier.popleft()
            if url in self.state.visited_urls:
                continue
            self.state.visited_urls.add(url)
            self.visit_order.append(url)
            self.state.default_url = url

            LOGGER.info("Crawling: %s", url)
            try:
                await self.visit(url)
            except Exception as exc:
                LOGGER.error("Error crawling %s: %s", url, exc)
                self.state.record(
                    ErrorType.rendering_error,
                    Severity.medium,
                    f"Failed to crawl page {url}: {exc}",
                    url=url,
                    details={"error": str(exc), "url": url},
                )
            await asyncio.sleep(self.options.request_delay_seconds)

    async def visit(self, url: str) -> None:
        first_finding = len(self.state.errors)
        result = await self.session.navigate(
            url,
            wait_until=self.options.wait_until,
            timeout_ms=self.options.navigation_timeout_ms,
        )
        final_url = result.final_url
        if (
            final_url
            and normalize_url(final_url) != url
            and _looks_like_error_page(final_url)
        ):
            self.state.record(
                ErrorType.invalid_redirect,
                Severity.medium,
                f"Invalid redirect from {url} to {final_url}",
                url=url,
                details={"originalUrl": url, "finalUrl": final_url, "status": result.status},
            )

        await asyncio.sleep(self.options.settle_seconds)

        await DeadClickProber(
            self.session,
            self.state,
            max_elements=self.options.max_clicks_per_page,
            click_timeout_ms=self.options.click_timeout_ms,
            settle_seconds=self.options.click_settle_seconds,
            navigation_timeout_ms=self.options.navigation_timeout_ms,
            node_delta_threshold=self.options.node_delta_threshold,
        ).probe()
        await RenderingAuditor(self.session, self.state).audit()

        if self.options.save_screenshots:
            await self._capture_screenshot(url, first_finding)

    async def _capture_screenshot(self, url: str, first_finding: int) -> Optional[str]:
        path = str(Path(self.options.screenshot_dir) / _screenshot_filename(url))
        try:
            saved = await self.session.screenshot(path)
        except Exception as exc:
            LOGGER.warning("Screenshot failed for %s: %s", url, exc)
            return None
        errors = self.state.errors
        for index in range(first_finding, len(errors)):
            if errors[index].screenshot_path is None:
                errors[index] = replace(errors[index], screenshot_path=saved)
        return saved

    def _result(self) -> SiteScanResult:
        errors = list(self.state.errors)
        by_type = Counter(error.type.value for error in errors)
        return SiteScanResult(
            errors=errors,
            visited_urls=list(self.visit_order),
            stats={
                "pages_visited": len(self.visit_order),
                "error_count": len(errors),
                "by_type": dict(by_type),
            },
        )


def _looks_like_error_page(url: str) -> bool:
    lowered = urlparse(url).path.lower()
    return any(marker in lowered for marker in _ERROR_PATH_MARKERS)


async def scan_site_async(
    options: Optional[ScanOptions] = None,
    *,
    session_factory: Optional[SessionFactory] = None,
) -> SiteScanResult:
    """
    Crawl a site and collect runtime, interaction and rendering findings.

    Args:
        options: Scan options; defaults to :class:`ScanOptions`.
        session_factory: Optional factory returning an async-context-manager
            browsing session (used by tests to inject a fake browser).

    Returns:
        SiteScanResult with findings, visited URLs (in visit order) and stats.
    """
    scanner = SiteScanner(options or ScanOptions(), session_factory=session_factory)
    return await scanner.run()


def scan_site(
    options: Optional[ScanOptions] = None,
    *,
    session_factory: Optional[SessionFactory] = None,
) -> SiteScanResult:
    """Synchronous wrapper for scan_site_async."""
    return asyncio.run(scan_site_async(options, session_factory=session_factory))
