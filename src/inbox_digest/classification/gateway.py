from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Dict, Mapping, Optional, Protocol, Union

from inbox_digest.errors import ClassificationError
from inbox_digest.models import Category, Classification, MailMessage, parse_category

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5
SHORT_SUMMARY_MAX = 110
FAILED_SUMMARY = "classification failed"

CATEGORY_DEFINITIONS: Dict[Category, str] = {
    Category.URGENT: "needs a reply or decision today; deadlines, outages, escalations",
    Category.TODO: "asks the reader to do something, without same-day pressure",
    Category.WAITING: "the reader is waiting on someone else; confirmations of pending requests",
    Category.SECURITY_ALERT: "sign-in alerts, password resets, 2FA codes, suspicious activity",
    Category.CREATOR_NEWSLETTERS: "essays and newsletters written by individual creators (Substack, Beehiiv, Ghost)",
    Category.SOCIAL_COMMUNITY: "notifications from social networks, forums, Discord, GitHub discussions, Meetup",
    Category.PROMOTIONS: "marketing, sales, coupons, product announcements",
    Category.FINANCIAL: "bank statements, invoices, bills, tax documents, payment receipts from banks",
    Category.PURCHASES: "order confirmations, shipping and delivery updates, store receipts",
    Category.MISC: "anything that fits none of the above",
}

DEPTH_RULES = (
    "Summary depth rules:\n"
    "- creator_newsletters: long-form summary, 3-5 sentences, plus details.key_points (list of strings).\n"
    "- social_community: one short highlight; set details.platform to the network name "
    "(e.g. LinkedIn, Reddit, Discord, GitHub).\n"
    f"- every other category: exactly one sentence under {SHORT_SUMMARY_MAX} characters.\n"
)

RESPONSE_SHAPE = (
    "Respond with a single JSON object and nothing else:\n"
    '{"category": "<one of the categories>", "confidence": <number 0..1>, '
    '"summary": "<string>", "reasoning": "<one short sentence>", "details": {<category specific>}}\n'
)

_FENCE_RE = re.compile(r"```(?:[A-Za-z]+)?\s*(.*?)```", re.DOTALL)


class Classifier(Protocol):
    def complete(self, prompt: str) -> Union[str, Mapping[str, Any]]: ...


def build_prompt(message: MailMessage, *, body_chars: int = 2000) -> str:
    categories = "\n".join(
        f"- {category.value}: {definition}" for category, definition in CATEGORY_DEFINITIONS.items()
    )
    body = (message.body_excerpt or "")[:body_chars]
    return (
        "You triage a personal Gmail inbox. Classify the email below into exactly one category.\n"
        "\n"
        f"Categories:\n{categories}\n"
        "\n"
        f"{DEPTH_RULES}"
        "\n"
        f"{RESPONSE_SHAPE}"
        "\n"
        "Email:\n"
        f"From: {message.from_email}\n"
        f"Subject: {message.subject}\n"
        f"Body:\n{body}\n"
    )


def _first_balanced_object(text: str) -> Optional[str]:
    """Return the first balanced {...} span, ignoring braces inside JSON strings."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def _loads_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def decode_verdict(verdict: Union[str, Mapping[str, Any], None]) -> Dict[str, Any]:
    """
    Turn a raw classifier verdict into a dict.

    Accepts, in order: structured data (a mapping or a JSON document),
    a fenced code block, then the first balanced brace span inside prose.
    """
    if isinstance(verdict, Mapping):
        return dict(verdict)
    if not isinstance(verdict, str) or not verdict.strip():
        raise ClassificationError(f"Empty or non-text verdict: {type(verdict).__name__}")

    text = verdict.strip()
    data = _loads_object(text)
    if data is not None:
        return data

    match = _FENCE_RE.search(text)
    if match:
        data = _loads_object(match.group(1).strip())
        if data is not None:
            return data

    span = _first_balanced_object(text)
    if span:
        data = _loads_object(span)
        if data is not None:
            return data

    raise ClassificationError("Verdict contains no parsable JSON object")


def clamp_confidence(value: Any) -> float:
    # bool is an int subclass but never a meaningful confidence.
    if isinstance(value, bool) or value is None:
        return DEFAULT_CONFIDENCE
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return DEFAULT_CONFIDENCE
    if not isinstance(value, (int, float)) or math.isnan(value):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, float(value)))


def _text(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split())


def _details(category: Category, value: Any) -> Dict[str, Any]:
    if not isinstance(value, Mapping):
        return {}
    details = {str(k): v for k, v in value.items()}
    if category is Category.SOCIAL_COMMUNITY:
        platform = details.get("platform")
        if not isinstance(platform, str) or not platform.strip():
            details.pop("platform", None)
        else:
            details["platform"] = platform.strip()
    if "key_points" in details:
        points = details["key_points"]
        if isinstance(points, list):
            details["key_points"] = [_text(p) for p in points if _text(p)]
        else:
            details.pop("key_points")
    return details


def validate_verdict(data: Mapping[str, Any]) -> Classification:
    """Validate a decoded verdict into a canonical Classification or raise ClassificationError."""
    category = parse_category(data.get("category"))
    if category is None:
        raise ClassificationError(f"Unknown category {data.get('category')!r}")

    summary = _text(data.get("summary"))
    if category not in (Category.CREATOR_NEWSLETTERS, Category.SOCIAL_COMMUNITY) and len(summary) >= SHORT_SUMMARY_MAX:
        summary = summary[: SHORT_SUMMARY_MAX - 2].rstrip() + "…"

    return Classification(
        category=category,
        confidence=clamp_confidence(data.get("confidence")),
        summary=summary,
        reasoning=_text(data.get("reasoning") or data.get("reason")),
        details=_details(category, data.get("details")),
    )


def fallback_classification(cause: str) -> Classification:
    return Classification(
        category=Category.MISC,
        confidence=0.0,
        summary=FAILED_SUMMARY,
        reasoning=cause,
    )


class ClassificationGateway:
    """Single entry point for classifying a message. classify() never raises."""

    def __init__(self, classifier: Classifier, *, body_chars: int = 2000):
        self.classifier = classifier
        self.body_chars = body_chars

    def classify(self, message: MailMessage) -> Classification:
        try:
            prompt = build_prompt(message, body_chars=self.body_chars)
            verdict = self.classifier.complete(prompt)
            classification = validate_verdict(decode_verdict(verdict))
        except Exception as exc:
            cause = f"{type(exc).__name__}: {exc}"
            logger.warning("[CLASSIFY] fallback message_id=%s err=%s", message.message_id, cause)
            return fallback_classification(cause)

        logger.debug(
            "[CLASSIFY] message_id=%s category=%s confidence=%.2f",
            message.message_id,
            classification.category.value,
            classification.confidence,
        )
        return classification
