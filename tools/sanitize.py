"""
Scrubbing of third-party text before it reaches a model prompt.

News headlines come from public feeds and are rendered verbatim into every
participant's prompt. Fragments that read like instructions to the model, or
like the JSON decision format itself, are replaced with ``[REDACTED]``.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

_INJECTION_PATTERNS = [
    re.compile(r"ignore\s+(all\s+)?(previous|prior)\s+instructions", re.IGNORECASE),
    re.compile(r"you\s+are\s+now\s+(a|an)\s+", re.IGNORECASE),
    re.compile(r"\bsystem\s*:\s*", re.IGNORECASE),
    re.compile(r"<\s*/?\s*system\s*>", re.IGNORECASE),
    re.compile(r"\bassistant\s*:\s*", re.IGNORECASE),
    re.compile(r"forget\s+(everything|all|your)\s+", re.IGNORECASE),
    re.compile(r"new\s+instructions?\s*:", re.IGNORECASE),
    re.compile(r"override\s+(your\s+)?(instructions|rules|prompt)", re.IGNORECASE),
    re.compile(r"\"?(action|stock_code|proceed_with_trading)\"?\s*:\s*\"?", re.IGNORECASE),
    re.compile(r"respond\s+(only\s+)?with\s*:", re.IGNORECASE),
]


def sanitize_prompt_text(text: str, source: str = "text") -> str:
    """Return ``text`` with instruction-like fragments redacted.

    Safe to call on any string; clean input comes back unchanged.
    """
    cleaned = text
    hits = 0
    for pattern in _INJECTION_PATTERNS:
        cleaned, n = pattern.subn(REDACTED, cleaned)
        hits += n

    if hits:
        logger.warning(f"Redacted {hits} instruction-like fragment(s) from {source}")
    return cleaned
