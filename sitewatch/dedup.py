"""Duplicate detection of candidate issues against open tracker issues."""

from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from typing import List, Optional

from .records import Issue
from .tracker import GitHubTracker

LOGGER = logging.getLogger(__name__)

TITLE_SIMILARITY_THRESHOLD = 0.8
BODY_SIMILARITY_THRESHOLD = 0.6
BODY_PREFIX_CHARS = 200

STOPWORDS = frozenset({"erro", "error", "detectado", "detected"})

_URL_PATTERN = re.compile(r"https?://[^\s]+")
_URL_CONTEXT_PATTERN = re.compile(r"URL.*?(?:https?://[^\s]+)", re.IGNORECASE)
_TYPE_PATTERN = re.compile(r"Type:\s*(\w+)", re.IGNORECASE)


def extract_keywords(title: str, limit: int = 3) -> str:
    """Return up to ``limit`` meaningful words of the title for a search query."""
    words = re.sub(r"[^\w\s]", " ", title.lower()).split()
    keywords = [word for word in words if len(word) > 3 and word not in STOPWORDS]
    return " ".join(keywords[:limit])


def extract_error_context(body: str) -> str:
    """Return a URL mention from the body, else the value of a ``Type:`` marker."""
    match = _URL_CONTEXT_PATTERN.search(body)
    if match:
        return match.group(0)
    match = _TYPE_PATTERN.search(body)
    if match:
        return match.group(1)
    return ""


def extract_url(body: str) -> Optional[str]:
    match = _URL_PATTERN.search(body)
    return match.group(0) if match else None


def jaccard_similarity(first: str, second: str) -> float:
    """|A ∩ B| / |A ∪ B| over whitespace-separated lowercase words."""
    set1 = set(first.lower().split())
    set2 = set(second.lower().split())
    union = set1 | set2
    if not union:
        return 1.0
    return len(set1 & set2) / len(union)


def is_similar_issue(title1: str, body1: str, title2: str, body2: str) -> bool:
    if jaccard_similarity(title1, title2) > TITLE_SIMILARITY_THRESHOLD:
        return True

    url1 = extract_url(body1)
    url2 = extract_url(body2)
    if url1 and url2 and url1 == url2:
        similarity = jaccard_similarity(
            body1[:BODY_PREFIX_CHARS], body2[:BODY_PREFIX_CHARS]
        )
        return similarity > BODY_SIMILARITY_THRESHOLD

    return False


def build_search_queries(title: str, body: str) -> List[str]:
    return [query for query in (extract_keywords(title), extract_error_context(body)) if query]


class DuplicateDetector:
    """Decides whether a candidate issue is already open in the tracker.

    Search failures fail open: the candidate is treated as new so issue
    filing keeps working while the search endpoint is unavailable.
    """

    def __init__(
        self,
        tracker: GitHubTracker,
        *,
        lookback_days: int = 0,
        per_page: int = 10,
    ) -> None:
        self.tracker = tracker
        self.lookback_days = lookback_days
        self.per_page = per_page

    def _created_since(self) -> Optional[date]:
        if self.lookback_days <= 0:
            return None
        return date.today() - timedelta(days=self.lookback_days)

    async def find_duplicate(self, title: str, body: str) -> Optional[Issue]:
        for query in build_search_queries(title, body):
            candidates = await self.tracker.search_open_issues(
                query, per_page=self.per_page, created_since=self._created_since()
            )
            for issue in candidates:
                if is_similar_issue(title, body, issue.title, issue.body or ""):
                    LOGGER.info("Found similar issue: #%d - %s", issue.number, issue.title)
                    return issue
        return None

    async def is_duplicate(self, title: str, body: str) -> bool:
        try:
            return await self.find_duplicate(title, body) is not None
        except Exception as exc:
            LOGGER.warning("Duplicate check failed, treating as new issue: %s", exc)
            return False
