"""Text-completion plumbing shared by every LLM-backed step.

Each step (intent classification, script writing, plan decisions) receives a
plain ``complete(prompt) -> str`` callable.  The real backends live in
``canvasplan.utils.gemini_client`` and ``utils.hf_client``; tests pass a
scripted fake.  Nothing in here raises on bad model output: callers get
``None`` / ``""`` and fall back to deterministic defaults.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable

from .config import Config, DEFAULT_GEMINI_MODEL, DEFAULT_HF_MODEL, MAX_RETRIES, RETRY_DELAY

log = logging.getLogger(__name__)

CompletionFn = Callable[[str], str]

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


# ---------------------------------------------------------------------------
# Calling the model
# ---------------------------------------------------------------------------

def offline_completion(prompt: str) -> str:
    """Backend used when no API key is configured.

    An empty object parses, so keyword overrides still classify requests and
    every other step takes its deterministic fallback.
    """
    return "{}"


def safe_complete(complete: CompletionFn, prompt: str, purpose: str) -> str:
    """Call the completion function; transport failures become an empty response."""
    try:
        text = complete(prompt)
    except Exception as exc:
        log.warning("%s: completion failed, using fallback (%s)", purpose, exc)
        return ""
    text = text or ""
    log.debug("%s raw response: %s", purpose, text[:2000])
    return text


def build_completion_fn(config: Config) -> CompletionFn:
    """Pick the completion backend for this config."""
    provider = config.resolved_provider()
    if provider == "gemini":
        from .utils.gemini_client import GeminiClient

        client = GeminiClient(config.gemini_api_key, model=config.llm_model or DEFAULT_GEMINI_MODEL)
        log.info("Using Gemini completion backend (%s)", client.model)
        return client.complete
    if provider == "hf":
        from utils.hf_client import HFClient

        hf = HFClient(
            config.llm_model or DEFAULT_HF_MODEL, config.hf_token,
            max_retries=MAX_RETRIES, retry_delay=RETRY_DELAY,
        )
        log.info("Using Hugging Face completion backend (%s)", hf.model)
        return hf.complete
    log.info("No completion backend configured; running offline")
    return offline_completion


# ---------------------------------------------------------------------------
# Reading the response
# ---------------------------------------------------------------------------

def extract_first_json(text: str) -> dict | None:
    """Extract the first JSON object from a text response, or None."""
    if not text or not text.strip():
        return None
    # Try direct parse
    try:
        value = json.loads(text.strip())
        if isinstance(value, dict):
            return value
    except json.JSONDecodeError:
        pass
    # Prefer the inside of a markdown code fence
    fence = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL)
    if fence:
        found = _scan_objects(fence.group(1))
        if found is not None:
            return found
    return _scan_objects(text)


def _scan_objects(text: str) -> dict | None:
    start = text.find("{")
    while start != -1:
        end = _matching_brace(text, start)
        if end is not None:
            try:
                value = json.loads(text[start:end + 1])
                if isinstance(value, dict):
                    return value
            except json.JSONDecodeError:
                pass
        start = text.find("{", start + 1)
    return None


def _matching_brace(text: str, start: int) -> int | None:
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def coerce_number(value: Any) -> float | None:
    """Numbers, numeric strings and strings like '20s' or 'about 30 seconds'."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        m = _NUMBER_RE.search(value)
        if m:
            return float(m.group(0))
    return None


def coerce_text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None
