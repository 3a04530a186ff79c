"""Keep generation prompts inside provider content policies."""
from __future__ import annotations

import logging
import re

log = logging.getLogger(__name__)

FALLBACK_PROMPT = "Professional product advertisement video"
MIN_PROMPT_LENGTH = 10

_BLOCKED_TERMS = re.compile(
    r"\b(nude|naked|explicit|nsfw|porn|sex|sexual|erotic"
    r"|violence|violent|blood|gore|kill|murder"
    r"|hate|racist|discrimination)\b",
    re.IGNORECASE,
)
_REWRITES = [
    (re.compile(r"\b(close.?up|intimate)\s+(of|on|with)\s+(body|skin|nude|naked)\b", re.IGNORECASE),
     "professional product shot"),
    (re.compile(r"\b(touching|feeling)\s+(body|skin|nude|naked)\b", re.IGNORECASE),
     "applying product"),
]


def sanitize_prompt(prompt: str | None, fallback: str = FALLBACK_PROMPT) -> str:
    """Rewrite risky phrasing, strip blocked terms; fall back when little is left."""
    text = prompt or ""
    for pattern, replacement in _REWRITES:
        text = pattern.sub(replacement, text)
    text = _BLOCKED_TERMS.sub("", text)
    text = re.sub(r"\s{2,}", " ", text)
    text = re.sub(r"\s+([,.;:!?])", r"\1", text).strip(" ,;")
    if len(text) < MIN_PROMPT_LENGTH:
        if prompt:
            log.info("Prompt reduced to %r after sanitizing; using fallback", text)
        return fallback
    if text != (prompt or "").strip():
        log.debug("Sanitized prompt: %r -> %r", prompt, text)
    return text


def sanitize_video_prompt(prompt: str | None) -> str:
    return sanitize_prompt(prompt, FALLBACK_PROMPT)


def sanitize_image_prompt(prompt: str | None) -> str:
    return sanitize_prompt(prompt, "Professional product photograph")
