"""Valuableness and severity rules for vulnerability records."""

import logging
import re
from typing import List, Optional, Tuple

from .models import (
    SEVERITY_CRITICAL,
    SEVERITY_HIGH,
    SEVERITY_LEVELS,
    SEVERITY_LOW,
    SEVERITY_MEDIUM,
    VulnInfo,
)

logger = logging.getLogger(__name__)

CVE_PATTERN = re.compile(r"\bCVE-\d{4}-\d{4,}\b", re.IGNORECASE)

URGENT_KEYWORDS = ["rce", "auth bypass", "exploited", "wormable", "mass scanning"]

# Checked in order, first match wins
_SEVERITY_HINTS = [
    (SEVERITY_CRITICAL, ["critical", "remote code execution", "rce", "actively exploited", "zero-day", "0-day"]),
    (SEVERITY_HIGH, ["high", "privilege escalation", "auth bypass", "authentication bypass", "sql injection"]),
    (SEVERITY_MEDIUM, ["medium", "moderate", "xss", "cross-site", "denial of service"]),
]


def severity_rank(severity: str) -> int:
    """Position of severity in SEVERITY_LEVELS, -1 if unknown."""
    for i, level in enumerate(SEVERITY_LEVELS):
        if level.lower() == (severity or "").lower():
            return i
    return -1


def severity_from_text(text: str) -> str:
    """Guess a severity level from free text."""
    text_lower = (text or "").lower()
    for level, hints in _SEVERITY_HINTS:
        for hint in hints:
            if re.search(rf"\b{re.escape(hint)}\b", text_lower):
                return level
    return SEVERITY_LOW


def find_cve(text: str) -> str:
    """Return the first CVE id in text (upper-cased), or ""."""
    match = CVE_PATTERN.search(text or "")
    return match.group(0).upper() if match else ""


def is_valuable(
    item: VulnInfo,
    keywords: List[str],
    deny_keywords: List[str],
    min_severity: Optional[str] = SEVERITY_HIGH,
) -> Tuple[bool, str]:
    """
    Determine if a record is worth a notification.

    Returns:
        Tuple of (valuable: bool, reason: str)
    """
    # Check deny keywords first
    text_to_check = f"{item.title} {item.description}".lower()
    for deny_kw in deny_keywords:
        if deny_kw.lower() in text_to_check:
            return False, f"Matched deny keyword: {deny_kw}"

    if min_severity and severity_rank(item.severity) >= severity_rank(min_severity) >= 0:
        return True, f"Severity {item.severity} >= {min_severity}"

    for urgent_kw in URGENT_KEYWORDS:
        if urgent_kw in text_to_check:
            for kw in keywords:
                if kw.lower() in text_to_check:
                    return True, f"Urgent keyword match: {urgent_kw} + {kw}"

    for kw in keywords:
        if kw.lower() in text_to_check:
            return True, f"Keyword match: {kw}"

    return False, "No matching criteria"
