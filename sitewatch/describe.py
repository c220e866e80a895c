"""Issue description generation with the Gemini REST API.

The generator never lets a failure escape ``generate_description``: an
API error or an unparsable response falls back to a deterministic
template built from the finding itself.

Environment:
    GEMINI_API_KEY  required
    GEMINI_MODEL    optional, defaults to ``DEFAULT_MODEL``
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence
from urllib.parse import urlparse

import httpx

from .config import ConfigError
from .records import ErrorRecord, ErrorType, IssueDescription, Severity

LOGGER = logging.getLogger(__name__)

DEFAULT_API_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.0-flash"

MAX_TITLE_LENGTH = 80

VALID_LABELS = frozenset(
    {
        "bug",
        "enhancement",
        "frontend",
        "backend",
        "ui",
        "api",
        "security",
        "performance",
        "a11y",
        "mobile",
        "critical",
        "high-priority",
        "medium-priority",
        "low-priority",
        "error-detection",
        "automation",
        "crawler",
    }
)

DEFAULT_LABELS: Dict[ErrorType, List[str]] = {
    ErrorType.page_not_found: ["bug", "frontend", "routing"],
    ErrorType.invalid_redirect: ["bug", "frontend", "routing"],
    ErrorType.dead_click: ["bug", "frontend", "ui"],
    ErrorType.js_error: ["bug", "frontend", "javascript"],
    ErrorType.api_error: ["bug", "backend", "api"],
    ErrorType.rendering_error: ["bug", "frontend", "ui"],
    ErrorType.console_error: ["bug", "frontend", "javascript"],
}

FALLBACK_TITLES: Dict[ErrorType, str] = {
    ErrorType.page_not_found: "Page not found (404)",
    ErrorType.invalid_redirect: "Invalid redirect detected",
    ErrorType.dead_click: "Clickable element without effect",
    ErrorType.js_error: "JavaScript error detected",
    ErrorType.api_error: "API request failure",
    ErrorType.rendering_error: "Rendering problem",
    ErrorType.console_error: "Browser console error",
}

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_TITLE_MARKUP = re.compile(r"[#*`]")


class DescriptionError(Exception):
    """Raised when the generation API call fails or returns nothing usable."""


# ---------------------------------------------------------------------------
# Prompt and response handling
# ---------------------------------------------------------------------------


def build_prompt(record: ErrorRecord) -> str:
    site = urlparse(record.url).netloc or record.url
    lines = [
        f"# Error report for {site}",
        "",
        "## Error Details",
        f"**Type:** {record.type.value}",
        f"**Severity:** {record.severity.value}",
        f"**URL:** {record.url}",
        f"**Message:** {record.message}",
        f"**Timestamp:** {record.timestamp}",
        "",
        "**Technical Details:**",
        json.dumps(record.details, indent=2, default=str),
    ]
    if record.stack_trace:
        lines += ["", "**Stack Trace:**", record.stack_trace]
    lines += [
        "",
        "## Your Task",
        "Analyze this error and write a GitHub issue with:",
        "1. A clear, concise title (50-80 characters)",
        "2. A markdown description: problem summary, steps to reproduce,",
        "   expected vs actual behavior, technical analysis, suggested fixes",
        f"3. Labels chosen from: {', '.join(sorted(VALID_LABELS))}",
        "4. A priority: low, medium, high or critical",
        "",
        "Respond with JSON only:",
        '{"title": "...", "body": "...", "labels": ["bug"], '
        '"priority": "medium", "assignee": "", "milestone": ""}',
    ]
    return "\n".join(lines)


def sanitize_title(title: str) -> str:
    """Strip markdown markup, cap at 80 characters and capitalise."""
    cleaned = _TITLE_MARKUP.sub("", title).strip()
    if len(cleaned) > MAX_TITLE_LENGTH:
        cleaned = cleaned[: MAX_TITLE_LENGTH - 3] + "..."
    return cleaned[:1].upper() + cleaned[1:]


def default_labels(error_type: ErrorType) -> List[str]:
    return list(DEFAULT_LABELS.get(error_type, ["bug", "error-detection"]))


def validate_labels(labels: Iterable[Any], error_type: ErrorType) -> List[str]:
    """Keep allow-listed labels and add the defaults for the error type."""
    result: List[str] = []
    for label in labels:
        if isinstance(label, str) and label.lower() in VALID_LABELS and label not in result:
            result.append(label)
    for label in default_labels(error_type):
        if label not in result:
            result.append(label)
    return result


def validate_priority(priority: Any) -> str:
    valid = {severity.value for severity in Severity}
    return priority if priority in valid else Severity.medium.value


def enhance_body(body: str, record: ErrorRecord) -> str:
    """Append a technical-details footer identifying the finding."""
    parts = [
        body.rstrip(),
        "",
        "---",
        "",
        "## Technical Details",
        "",
        f"**Error ID:** `{record.id}`",
        f"**Detected:** {record.timestamp}",
        f"**URL:** {record.url}",
        f"**Type:** {record.type.value}",
        f"**Severity:** {record.severity.value}",
        "",
        "<details>",
        "<summary>Raw Error Data</summary>",
        "",
        "```json",
        json.dumps(record.details, indent=2, default=str),
        "```",
        "",
        "</details>",
    ]
    if record.stack_trace:
        parts += [
            "",
            "<details>",
            "<summary>Stack Trace</summary>",
            "",
            "```",
            record.stack_trace,
            "```",
            "",
            "</details>",
        ]
    parts += ["", "---", "", "**Generated by:** sitewatch error detection"]
    return "\n".join(parts)


def fallback_description(record: ErrorRecord) -> IssueDescription:
    """Deterministic description used when generation is unavailable."""
    title = FALLBACK_TITLES.get(record.type, "Automatically detected error")
    parts = [
        "## Automatically Detected Error",
        "",
        f"**Description:** {record.message}",
        "",
        f"**URL:** {record.url}",
        f"**Type:** {record.type.value}",
        f"**Severity:** {record.severity.value}",
        f"**Detected:** {record.timestamp}",
        "",
        "### Technical Details",
        "",
        "```json",
        json.dumps(record.details, indent=2, default=str),
        "```",
    ]
    if record.stack_trace:
        parts += ["", "### Stack Trace", "", "```", record.stack_trace, "```"]
    parts += [
        "",
        "### Next Steps",
        "",
        "1. Reproduce the error at the URL above",
        "2. Analyze the related code",
        "3. Implement a fix",
        "4. Test the fix",
        "5. Check for regressions",
        "",
        "---",
        "",
        f"**Error ID:** `{record.id}`",
    ]
    return IssueDescription(
        title=f"{title} - {record.url}",
        body="\n".join(parts),
        labels=default_labels(record.type),
        priority=record.severity.value,
    )


def parse_response(text: str, record: ErrorRecord) -> IssueDescription:
    """Parse the model output; raise DescriptionError if it is unusable."""
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise DescriptionError("No JSON found in response")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise DescriptionError(f"Invalid JSON in response: {exc}") from exc
    if not isinstance(parsed, dict) or not parsed.get("title") or not parsed.get("body"):
        raise DescriptionError("Missing required fields in response")

    labels = parsed.get("labels") or []
    if not isinstance(labels, list):
        labels = []
    return IssueDescription(
        title=sanitize_title(str(parsed["title"])),
        body=enhance_body(str(parsed["body"]), record),
        labels=validate_labels(labels, record.type),
        priority=validate_priority(parsed.get("priority") or record.severity.value),
        assignee=parsed.get("assignee") or None,
        milestone_name=parsed.get("milestone") or None,
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class GeminiDescriptionGenerator:
    """Turns findings into issue descriptions via ``generateContent``."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 60.0,
        request_delay_seconds: float = 1.0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.request_delay_seconds = request_delay_seconds

    @classmethod
    def from_env(cls) -> "GeminiDescriptionGenerator":
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ConfigError("GEMINI_API_KEY not found in environment variables")
        return cls(api_key, model=os.getenv("GEMINI_MODEL") or DEFAULT_MODEL)

    async def generate_text(self, prompt: str) -> str:
        url = f"{self.api_url}/models/{self.model}:generateContent"
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url, json=payload, headers={"x-goog-api-key": self.api_key}
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise DescriptionError(
                f"Gemini API error: {exc.response.status_code} - {exc.response.text}"
            ) from exc
        except httpx.RequestError as exc:
            raise DescriptionError(f"Request failed: {exc}") from exc
        except ValueError as exc:
            raise DescriptionError(f"Invalid JSON from Gemini: {exc}") from exc

        return _response_text(data)

    async def test_connection(self) -> bool:
        try:
            text = await self.generate_text('Test connection - respond with "OK"')
        except DescriptionError as exc:
            LOGGER.error("Gemini connection test failed: %s", exc)
            return False
        return "ok" in text.lower()

    async def generate_description(self, record: ErrorRecord) -> IssueDescription:
        LOGGER.info("Generating issue description for: %s - %s", record.type.value, record.message)
        try:
            text = await self.generate_text(build_prompt(record))
            return parse_response(text, record)
        except DescriptionError as exc:
            LOGGER.warning("Using fallback description for %s: %s", record.id, exc)
            return fallback_description(record)

    async def generate_batch_descriptions(
        self, records: Sequence[ErrorRecord]
    ) -> Dict[str, IssueDescription]:
        """Describe each record in turn, pausing between requests."""
        LOGGER.info("Generating descriptions for %d errors...", len(records))
        descriptions: Dict[str, IssueDescription] = {}
        for index, record in enumerate(records):
            if index:
                await asyncio.sleep(self.request_delay_seconds)
            descriptions[record.id] = await self.generate_description(record)
        return descriptions


def _response_text(data: Any) -> str:
    try:
        candidates = data.get("candidates") or []
        if not candidates:
            raise DescriptionError("Empty response from Gemini")
        content: Optional[Dict[str, Any]] = candidates[0].get("content") or {}
        parts = content.get("parts") or []
        text = "".join(
            str(part.get("text") or "") for part in parts if isinstance(part, dict)
        )
    except (AttributeError, IndexError, KeyError, TypeError) as exc:
        raise DescriptionError(f"Unexpected response shape from Gemini: {exc}") from exc
    if not text:
        raise DescriptionError("Empty response from Gemini")
    return text
