"""Issue filing: duplicate check, title tagging, milestone lookup."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional, Sequence

from .dedup import DuplicateDetector
from .records import ErrorRecord, Issue, IssueDescription
from .tracker import GitHubTracker

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class FilingResult:
    """Outcome of filing one finding.

    ``issue`` is set when an issue was created, ``error`` when creation
    failed; neither means the finding was a duplicate.
    """

    error_id: str
    issue: Optional[Issue] = None
    error: Optional[str] = None

    @property
    def is_duplicate(self) -> bool:
        return self.issue is None and self.error is None


def short_id(error_id: str) -> str:
    """Return the short tag of an error id used in issue titles."""
    _, sep, rest = error_id.partition("_")
    if sep and rest:
        return rest[:6]
    return error_id[:6]


def tagged_title(title: str, error_id: str) -> str:
    return f"[{short_id(error_id)}] {title}"


class IssueFiler:
    def __init__(
        self,
        tracker: GitHubTracker,
        detector: Optional[DuplicateDetector] = None,
        *,
        rate_limit_seconds: float = 2.0,
    ) -> None:
        self.tracker = tracker
        self.detector = detector or DuplicateDetector(tracker)
        self.rate_limit_seconds = rate_limit_seconds

    async def find_milestone_id(self, name: str) -> Optional[int]:
        """Resolve a milestone by case-insensitive substring; None if unknown."""
        try:
            milestones = await self.tracker.list_milestones(state="open")
        except Exception as exc:
            LOGGER.warning("Milestone lookup failed: %s", exc)
            return None
        needle = name.lower()
        for milestone in milestones:
            if needle in milestone.title.lower():
                return milestone.number
        return None

    async def create_issue(
        self, description: IssueDescription, error_id: str
    ) -> Optional[Issue]:
        """Create an issue unless a similar one is open.

        Returns None for duplicates. Raises TrackerError if creation fails.
        """
        LOGGER.info("Creating issue: %s", description.title)
        if await self.detector.is_duplicate(description.title, description.body):
            LOGGER.info("Duplicate issue detected, skipping creation")
            return None

        milestone_id = None
        if description.milestone_name:
            milestone_id = await self.find_milestone_id(description.milestone_name)

        issue = await self.tracker.create_issue(
            tagged_title(description.title, error_id),
            description.body,
            labels=description.labels,
            assignee=description.assignee,
            milestone_id=milestone_id,
        )
        LOGGER.info("Issue created: #%d - %s", issue.number, issue.url)
        return issue

    async def file_each(
        self,
        descriptions: Dict[str, IssueDescription],
        errors: Sequence[ErrorRecord],
    ) -> AsyncIterator[FilingResult]:
        """Yield one FilingResult per described error, strictly in order."""
        pending = [error for error in errors if error.id in descriptions]
        for index, error in enumerate(pending):
            if index:
                await asyncio.sleep(self.rate_limit_seconds)
            try:
                issue = await self.create_issue(descriptions[error.id], error.id)
            except Exception as exc:
                LOGGER.error("Failed to create issue for error %s: %s", error.id, exc)
                yield FilingResult(error_id=error.id, error=str(exc))
                continue
            yield FilingResult(error_id=error.id, issue=issue)

    async def create_multiple_issues(
        self,
        descriptions: Dict[str, IssueDescription],
        errors: Sequence[ErrorRecord],
    ) -> Dict[str, Optional[Issue]]:
        """File every described error; failures and duplicates map to None."""
        LOGGER.info("Creating %d issues...", len(descriptions))
        results: Dict[str, Optional[Issue]] = {}
        async for result in self.file_each(descriptions, errors):
            results[result.error_id] = result.issue
        return results
