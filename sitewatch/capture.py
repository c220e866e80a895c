"""Event listeners that turn browser signals into findings."""

from __future__ import annotations

import logging

from .records import CrawlState, ErrorType, Severity
from .session import (
    BrowsingSession,
    ConsoleSignal,
    PageErrorSignal,
    RequestFailureSignal,
    ResponseSignal,
)

LOGGER = logging.getLogger(__name__)


class ErrorCapture:
    """Listener set attached to a session for the lifetime of a run.

    Every handler appends to ``state.errors`` and returns immediately;
    nothing here awaits or raises back into the browser event loop.
    """

    def __init__(self, session: BrowsingSession, state: CrawlState) -> None:
        self.session = session
        self.state = state

    def attach(self) -> None:
        self.session.on_page_error(self.handle_page_error)
        self.session.on_console_message(self.handle_console_message)
        self.session.on_response(self.handle_response)
        self.session.on_request_failed(self.handle_request_failed)

    def _current_url(self) -> str:
        return self.session.url or self.state.default_url

    def handle_page_error(self, signal: PageErrorSignal) -> None:
        self.state.record(
            ErrorType.js_error,
            Severity.high,
            f"JavaScript Error: {signal.message}",
            url=self._current_url(),
            details={"error": signal.message, "stack": signal.stack},
            stack_trace=signal.stack,
        )

    def handle_console_message(self, signal: ConsoleSignal) -> None:
        if signal.level != "error":
            return
        self.state.record(
            ErrorType.console_error,
            Severity.medium,
            f"Console Error: {signal.text}",
            url=self._current_url(),
            details={"consoleMessage": signal.text, "type": signal.level},
        )

    def handle_response(self, signal: ResponseSignal) -> None:
        if signal.status < 400:
            return
        error_type = (
            ErrorType.page_not_found if signal.status == 404 else ErrorType.api_error
        )
        severity = Severity.high if signal.status >= 500 else Severity.medium
        self.state.record(
            error_type,
            severity,
            f"HTTP {signal.status}: {signal.url}",
            url=self._current_url(),
            details={
                "status": signal.status,
                "statusText": signal.status_text,
                "requestUrl": signal.url,
                "headers": dict(signal.headers),
            },
        )

    def handle_request_failed(self, signal: RequestFailureSignal) -> None:
        self.state.record(
            ErrorType.api_error,
            Severity.high,
            f"Request Failed: {signal.url}",
            url=self._current_url(),
            details={
                "url": signal.url,
                "method": signal.method,
                "failure": signal.failure,
            },
        )
