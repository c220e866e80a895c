"""Headless browser session built on Playwright.

The session exposes a small surface (navigate, evaluate, click, go back,
screenshot) plus four event slots. Native Playwright event objects are
converted into plain signal dataclasses before they reach the registered
callbacks, so listeners never depend on Playwright types.

Example usage:

    from sitewatch.session import BrowsingSession

    async with BrowsingSession(headless=True) as session:
        session.on_console_message(lambda signal: print(signal.text))
        result = await session.navigate("https://example.com")
        print(result.final_url, result.status)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .config import VIEWPORT

LOGGER = logging.getLogger(__name__)


class BrowserSessionError(RuntimeError):
    """Raised when the browser cannot be started or is used before launch."""


@dataclass(frozen=True)
class NavigationResult:
    final_url: str
    status: Optional[int] = None


@dataclass(frozen=True)
class PageErrorSignal:
    """Uncaught script exception raised inside the page."""

    message: str
    stack: Optional[str] = None


@dataclass(frozen=True)
class ConsoleSignal:
    level: str
    text: str


@dataclass(frozen=True)
class ResponseSignal:
    url: str
    status: int
    status_text: str = ""
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RequestFailureSignal:
    """Request that never got a response (DNS, connection, abort)."""

    url: str
    method: str = "GET"
    failure: str = "Unknown error"


class BrowsingSession:
    """A single Playwright page with event subscription slots."""

    def __init__(
        self,
        *,
        headless: bool = True,
        viewport: Optional[Dict[str, int]] = None,
        launch_args: Optional[List[str]] = None,
    ) -> None:
        self.headless = headless
        self.viewport = dict(viewport or VIEWPORT)
        self.launch_args = list(
            launch_args
            if launch_args is not None
            else ["--no-sandbox", "--disable-setuid-sandbox"]
        )
        self._playwright = None
        self._browser = None
        self._page = None
        self._page_error_callbacks: List[Callable[[PageErrorSignal], None]] = []
        self._console_callbacks: List[Callable[[ConsoleSignal], None]] = []
        self._response_callbacks: List[Callable[[ResponseSignal], None]] = []
        self._request_failed_callbacks: List[
            Callable[[RequestFailureSignal], None]
        ] = []

    async def __aenter__(self) -> "BrowsingSession":
        await self.launch()
        await self.new_page()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def launch(self) -> None:
        try:
            from playwright.async_api import async_playwright
        except ImportError as exc:  # pragma: no cover - environment dependent
            raise BrowserSessionError(
                "Playwright is required for crawling. "
                "Install browsers with 'playwright install chromium'."
            ) from exc

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=self.launch_args,
        )
        LOGGER.debug("Browser launched (headless=%s)", self.headless)

    async def new_page(self) -> None:
        if self._browser is None:
            raise BrowserSessionError("Browser not launched")
        self._page = await self._browser.new_page(viewport=self.viewport)
        self._page.on("pageerror", self._dispatch_page_error)
        self._page.on("console", self._dispatch_console)
        self._page.on("response", self._dispatch_response)
        self._page.on("requestfailed", self._dispatch_request_failed)

    @property
    def page(self):
        if self._page is None:
            raise BrowserSessionError("No page open; call new_page() first")
        return self._page

    @property
    def url(self) -> str:
        if self._page is None:
            return ""
        return self._page.url or ""

    # ------------------------------------------------------------------
    # Event slots
    # ------------------------------------------------------------------

    def on_page_error(self, callback: Callable[[PageErrorSignal], None]) -> None:
        self._page_error_callbacks.append(callback)

    def on_console_message(self, callback: Callable[[ConsoleSignal], None]) -> None:
        self._console_callbacks.append(callback)

    def on_response(self, callback: Callable[[ResponseSignal], None]) -> None:
        self._response_callbacks.append(callback)

    def on_request_failed(
        self, callback: Callable[[RequestFailureSignal], None]
    ) -> None:
        self._request_failed_callbacks.append(callback)

    def _dispatch_page_error(self, error: Any) -> None:
        signal = PageErrorSignal(
            message=str(getattr(error, "message", None) or error),
            stack=getattr(error, "stack", None),
        )
        for callback in self._page_error_callbacks:
            callback(signal)

    def _dispatch_console(self, message: Any) -> None:
        signal = ConsoleSignal(level=str(message.type), text=str(message.text))
        for callback in self._console_callbacks:
            callback(signal)

    def _dispatch_response(self, response: Any) -> None:
        signal = ResponseSignal(
            url=str(response.url),
            status=int(response.status),
            status_text=str(response.status_text or ""),
            headers=dict(response.headers or {}),
        )
        for callback in self._response_callbacks:
            callback(signal)

    def _dispatch_request_failed(self, request: Any) -> None:
        signal = RequestFailureSignal(
            url=str(request.url),
            method=str(request.method),
            failure=request.failure or "Unknown error",
        )
        for callback in self._request_failed_callbacks:
            callback(signal)

    # ------------------------------------------------------------------
    # Page operations
    # ------------------------------------------------------------------

    async def navigate(
        self,
        url: str,
        *,
        wait_until: str = "networkidle",
        timeout_ms: int = 30000,
    ) -> NavigationResult:
        response = await self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        if response is None:
            return NavigationResult(final_url=self.url or url)
        return NavigationResult(final_url=response.url, status=response.status)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if arg is None:
            return await self.page.evaluate(script)
        return await self.page.evaluate(script, arg)

    async def click(self, selector: str, *, timeout_ms: int = 5000) -> None:
        await self.page.click(selector, timeout=timeout_ms)

    async def go_back(self, *, timeout_ms: int = 30000) -> None:
        await self.page.go_back(wait_until="networkidle", timeout=timeout_ms)

    async def screenshot(self, path: str) -> str:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        await self.page.screenshot(path=str(target), full_page=True)
        return str(target)

    async def close(self) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._browser = None
            self._page = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
