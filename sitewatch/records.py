"""Data structures for crawl findings and tracker issues."""

from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from time import time
from typing import Any, Deque, Dict, FrozenSet, List, Optional, Set

LOGGER = logging.getLogger(__name__)


class ErrorType(str, Enum):
    """Kind of problem found on the target site."""

    page_not_found = "page_not_found"
    invalid_redirect = "invalid_redirect"
    dead_click = "dead_click"
    js_error = "js_error"
    api_error = "api_error"
    rendering_error = "rendering_error"
    console_error = "console_error"


class Severity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


def new_error_id() -> str:
    """Return an id of the form ``<epoch-millis>_<9 hex chars>``."""
    return f"{int(time() * 1000)}_{uuid.uuid4().hex[:9]}"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ErrorRecord:
    """A single finding about the target site.

    Records are created once during a crawl run and never modified; a
    screenshot path is attached by building a copy with
    :func:`dataclasses.replace`.
    """

    id: str
    type: ErrorType
    severity: Severity
    url: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_timestamp)
    screenshot_path: Optional[str] = None
    stack_trace: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "url": self.url,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }
        if self.screenshot_path:
            data["screenshot"] = self.screenshot_path
        if self.stack_trace:
            data["stackTrace"] = self.stack_trace
        return data


@dataclass
class CrawlState:
    """Mutable state of one crawl run.

    ``frontier`` holds URLs still to visit, ``visited_urls`` the ones the
    crawl loop has taken off the frontier, ``errors`` every finding in the
    order it was captured. With ``verbose`` every finding is logged at INFO.
    """

    visited_urls: Set[str] = field(default_factory=set)
    frontier: Deque[str] = field(default_factory=deque)
    errors: List[ErrorRecord] = field(default_factory=list)
    critical_types: FrozenSet[ErrorType] = frozenset()
    default_url: str = ""
    verbose: bool = False

    def record(
        self,
        error_type: ErrorType,
        severity: Severity,
        message: str,
        *,
        url: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        stack_trace: Optional[str] = None,
    ) -> ErrorRecord:
        """Create a finding, append it to ``errors`` and return it."""
        if error_type in self.critical_types:
            severity = Severity.critical
        record = ErrorRecord(
            id=new_error_id(),
            type=error_type,
            severity=severity,
            url=url or self.default_url,
            message=message,
            details=dict(details or {}),
            stack_trace=stack_trace,
        )
        self.errors.append(record)
        LOGGER.log(
            logging.INFO if self.verbose else logging.DEBUG,
            "Finding [%s/%s] %s (%s)",
            record.type.value,
            record.severity.value,
            record.message,
            record.url,
        )
        return record


@dataclass(slots=True)
class IssueDescription:
    """Human-readable issue text produced for one finding."""

    title: str
    body: str
    labels: List[str] = field(default_factory=list)
    priority: str = "medium"
    assignee: Optional[str] = None
    milestone_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "body": self.body,
            "labels": list(self.labels),
            "priority": self.priority,
            "assignee": self.assignee or "",
            "milestone": self.milestone_name or "",
        }


@dataclass(slots=True)
class Issue:
    """An issue as returned by the tracker."""

    id: int
    number: int
    title: str
    body: str = ""
    state: str = "open"
    labels: List[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    url: str = ""

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Issue":
        labels = []
        for label in raw.get("labels") or []:
            if isinstance(label, dict):
                name = label.get("name")
            else:
                name = label
            if name:
                labels.append(str(name))
        return cls(
            id=int(raw.get("id") or 0),
            number=int(raw.get("number") or 0),
            title=raw.get("title") or "",
            body=raw.get("body") or "",
            state=raw.get("state") or "open",
            labels=labels,
            created_at=raw.get("created_at") or "",
            updated_at=raw.get("updated_at") or "",
            url=raw.get("html_url") or raw.get("url") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "number": self.number,
            "title": self.title,
            "body": self.body,
            "state": self.state,
            "labels": list(self.labels),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "url": self.url,
        }
