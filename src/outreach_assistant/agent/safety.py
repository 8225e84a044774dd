# src/outreach_assistant/agent/safety.py

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..config import OutreachConfig

_SSN_PATTERN = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")


@dataclass(slots=True, frozen=True)
class OutreachDecision:
    allowed: bool
    error: str | None = None
    reason: str | None = None
    limit: int | None = None
    matched_keywords: list[str] = field(default_factory=list)


def find_sensitive_keywords(text: str, keywords: Iterable[str]) -> list[str]:
    """
    Best-effort: flag messages that look like they carry credentials or payment details.

    Keywords match on word boundaries, case-insensitively, with an optional plural ending
    ("passwords", "SSNs"). A bare SSN-shaped number counts as a match for "ssn".
    """
    t = (text or "").lower()
    found: list[str] = []
    for kw in keywords:
        kw = kw.strip().lower()
        if not kw or kw in found:
            continue
        if re.search(rf"(?<!\w){re.escape(kw)}(?:e?s)?(?!\w)", t):
            found.append(kw)
    if "ssn" not in found and _SSN_PATTERN.search(t):
        found.append("ssn")
    return found


def evaluate_outreach(
    message: str,
    recipient_count: int,
    config: OutreachConfig,
    *,
    confirmed: bool = False,
) -> OutreachDecision:
    """Gate a send_messages call: hard recipient cap first, then the confirmation rules."""
    if recipient_count > config.max_recipients:
        return OutreachDecision(
            allowed=False,
            error="too_many_recipients",
            reason=(
                f"Messaging {recipient_count} recipients exceeds the limit of "
                f"{config.max_recipients} per request."
            ),
            limit=config.max_recipients,
        )

    reasons: list[str] = []
    if recipient_count > config.confirmation_threshold:
        reasons.append(
            f"Messaging {recipient_count} recipients exceeds the confirmation threshold of "
            f"{config.confirmation_threshold}."
        )

    matched = find_sensitive_keywords(message, config.sensitive_keywords)
    if matched:
        reasons.append(f"The message mentions sensitive information ({', '.join(matched)}).")

    if reasons and not confirmed:
        return OutreachDecision(
            allowed=False,
            error="confirmation_required",
            reason=" ".join(reasons),
            limit=config.confirmation_threshold,
            matched_keywords=matched,
        )

    return OutreachDecision(allowed=True, matched_keywords=matched)
