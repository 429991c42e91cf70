# ruff: noqa: E501

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from datetime import date
from typing import Any

from .config import Settings
from .http_client import HttpClient
from .models import NOT_SPECIFIED, Extraction
from .utils import today_utc

log = logging.getLogger(__name__)

# Field order matters: the endpoint is asked to emit properties in this order.
FIELDS: tuple[str, ...] = (
    "durationSpecified",
    "durationMonths",
    "renewalMentioned",
    "startSpecified",
    "startIso",
    "startDescriptor",
)

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "durationSpecified": {"type": "BOOLEAN"},
        "durationMonths": {"type": "INTEGER"},
        "renewalMentioned": {"type": "BOOLEAN"},
        "startSpecified": {"type": "BOOLEAN"},
        "startIso": {"type": "STRING"},
        "startDescriptor": {"type": "STRING"},
    },
    "required": list(FIELDS),
    "propertyOrdering": list(FIELDS),
}

INSTRUCTION = (
    "You read Australian job advertisements and report contract terms. "
    "Answer only from the advertisement text; never guess.\n"
    "- durationSpecified: true if a concrete contract length or end date is stated.\n"
    "- durationMonths: that length in whole months (weeks / 4.33, years * 12, round to nearest); 0 if not stated.\n"
    "- renewalMentioned: true if extension, renewal or 'view to perm' language appears.\n"
    "- startSpecified: true if any start timing is given (a date, 'ASAP', 'immediate', 'early March', ...).\n"
    "- startIso: the first calendar day implied by that start signal as YYYY-MM-DD, relative to the reference date; "
    "'ASAP' or 'immediate' means the reference date. Empty string if no start timing.\n"
    f"- startDescriptor: the start timing as a short phrase (max 6 words), or exactly '{NOT_SPECIFIED}'."
)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ExtractionError(RuntimeError):
    """The endpoint returned no usable structured answer for one posting."""


class StructuredExtractor:
    """
    Schema-constrained extraction via the Gemini `generateContent` REST call.

    Transport failures are retried by the HttpClient; a reply that does not
    match RESPONSE_SCHEMA raises ExtractionError and is not retried.
    """

    def __init__(
        self,
        settings: Settings,
        client: HttpClient,
        *,
        reference_date: Callable[[], date] = today_utc,
    ):
        self._settings = settings
        self._client = client
        self._reference_date = reference_date

    @property
    def url(self) -> str:
        base = self._settings.extract_base_url.rstrip("/")
        return f"{base}/models/{self._settings.model}:generateContent"

    def build_payload(self, text: str) -> dict[str, Any]:
        text = text[: self._settings.max_input_chars]
        user = f"Reference date: {self._reference_date().isoformat()}\n\nAdvertisement:\n{text}"
        return {
            "systemInstruction": {"parts": [{"text": INSTRUCTION}]},
            "contents": [{"role": "user", "parts": [{"text": user}]}],
            "generationConfig": {
                "temperature": 0,
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }

    def extract(self, text: str) -> Extraction:
        data = self._client.send_json(
            "POST",
            self.url,
            headers={
                "Content-Type": "application/json",
                "x-goog-api-key": self._settings.api_key,
            },
            json_body=self.build_payload(text),
        )
        candidate = candidate_text(data)
        log.debug("Extraction returned %d chars", len(candidate))
        return parse_extraction(candidate)


def candidate_text(data: Any) -> str:
    """Return candidates[0].content.parts[*].text joined, or raise with upstream feedback."""
    if not isinstance(data, dict):
        raise ExtractionError(f"expected a JSON object from the extraction endpoint, got {type(data).__name__}")

    candidates = data.get("candidates") or []
    first = candidates[0] if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict) else {}
    content = first.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        parts = []
    text = "".join(p.get("text", "") for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str))
    if text.strip():
        return text

    feedback = _feedback(data, first)
    raise ExtractionError("extraction returned no candidate text" + (f" ({feedback})" if feedback else ""))


def parse_extraction(raw: str) -> Extraction:
    """Parse and validate the candidate JSON; extra, missing or mistyped fields are rejected."""
    try:
        obj = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"candidate is not valid JSON: {e}; starts: {raw[:120]!r}") from e
    if not isinstance(obj, dict):
        raise ExtractionError(f"candidate must be a JSON object, got {type(obj).__name__}")

    missing = [f for f in FIELDS if f not in obj]
    extra = sorted(k for k in obj if k not in FIELDS)
    if missing or extra:
        raise ExtractionError(f"candidate does not match schema (missing={missing}, unexpected={extra})")

    for name in ("durationSpecified", "renewalMentioned", "startSpecified"):
        if not isinstance(obj[name], bool):
            raise ExtractionError(f"{name} must be a boolean, got {obj[name]!r}")

    months = obj["durationMonths"]
    if isinstance(months, bool) or not isinstance(months, int) or months < 0:
        raise ExtractionError(f"durationMonths must be a non-negative integer, got {months!r}")

    start_iso = obj["startIso"]
    if not isinstance(start_iso, str):
        raise ExtractionError(f"startIso must be a string, got {start_iso!r}")
    start_iso = start_iso.strip()
    if start_iso:
        try:
            if not _ISO_DATE_RE.match(start_iso):
                raise ValueError("not YYYY-MM-DD")
            date.fromisoformat(start_iso)
        except ValueError as e:
            raise ExtractionError(f"startIso must be YYYY-MM-DD or empty, got {start_iso!r}") from e

    descriptor = obj["startDescriptor"]
    if not isinstance(descriptor, str):
        raise ExtractionError(f"startDescriptor must be a string, got {descriptor!r}")

    return Extraction(
        duration_specified=obj["durationSpecified"],
        duration_months=months,
        renewal_mentioned=obj["renewalMentioned"],
        start_specified=obj["startSpecified"],
        start_iso=start_iso,
        start_descriptor=descriptor.strip() or NOT_SPECIFIED,
    )


def _feedback(data: dict[str, Any], candidate: dict[str, Any]) -> str:
    bits = []
    prompt_feedback = data.get("promptFeedback")
    if isinstance(prompt_feedback, dict):
        if prompt_feedback.get("blockReason"):
            bits.append(f"blockReason={prompt_feedback['blockReason']}")
        if prompt_feedback.get("blockReasonMessage"):
            bits.append(f"blockReasonMessage={prompt_feedback['blockReasonMessage']}")
    if candidate.get("finishReason"):
        bits.append(f"finishReason={candidate['finishReason']}")
    return ", ".join(bits)
