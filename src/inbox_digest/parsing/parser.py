from __future__ import annotations

import base64
import html
import re
from typing import Any, Dict, Optional

from inbox_digest.models import MailMessage


def extract_body_from_payload(payload: dict) -> str:
    """
    Extract plain text body from Gmail message payload.
    Falls back to HTML (tags stripped) if plain text is unavailable.
    """
    def decode(data: str) -> str:
        return base64.urlsafe_b64decode(data).decode("utf-8", errors="replace")

    def find_part(part: dict, mime_type: str) -> Optional[str]:
        # Depth-first search through multipart payloads.
        if part.get("mimeType") == mime_type and part.get("body", {}).get("data"):
            return decode(part["body"]["data"])
        for child in part.get("parts", []) or []:
            found = find_part(child, mime_type)
            if found:
                return found
        return None

    if payload.get("body", {}).get("data"):
        body = decode(payload["body"]["data"])
        if payload.get("mimeType") == "text/html":
            return strip_html(body)
        return body

    text = find_part(payload, "text/plain")
    if text:
        return text

    html_body = find_part(payload, "text/html")
    if html_body:
        return strip_html(html_body)

    return ""


def strip_html(markup: str) -> str:
    markup = re.sub(r"(?is)<(script|style)\b.*?</\1>", " ", markup)
    return html.unescape(re.sub(r"<[^>]+>", " ", markup))


def clean_text(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def message_from_resource(msg: Dict[str, Any], *, body_chars: int = 2000) -> MailMessage:
    """Normalize a Gmail message resource (format=full) into a MailMessage."""
    payload = msg.get("payload", {})
    headers = {h["name"].lower(): h["value"] for h in payload.get("headers", [])}
    label_ids = [str(x) for x in (msg.get("labelIds") or [])]
    label_set = set(label_ids)

    body = clean_text(extract_body_from_payload(payload)) or clean_text(msg.get("snippet", ""))

    return MailMessage(
        message_id=msg["id"],
        thread_id=msg.get("threadId") or msg["id"],
        subject=headers.get("subject", ""),
        from_email=headers.get("from", ""),
        body_excerpt=body[:body_chars],
        internal_date_ms=int(msg.get("internalDate") or 0),
        is_unread="UNREAD" in label_set,
        is_starred="STARRED" in label_set,
        is_important="IMPORTANT" in label_set,
        label_ids=label_ids,
    )
