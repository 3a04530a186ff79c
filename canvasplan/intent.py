"""Intent classification: one LLM call, then a fixed chain of keyword overrides.

The model's guess is treated as a draft.  Deterministic rules then correct the
cases it reliably gets wrong:

  1. task rules (first match wins): video keywords, plugin keywords, image-edit
     verbs on a selected image.  Plugin detection runs before the image-edit
     rule so "remove the background" becomes a plugin call, not an edit.
  2. enrichment rules (all that match): script policy for videos, counts,
     durations and "the 2nd image" style references.

When the completion cannot be parsed the task is ``unknown`` and no rule runs.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Callable, get_args

from schemas import CanvasContext, IntentResult, TaskKind

from .llm import CompletionFn, coerce_number, coerce_text, extract_first_json, safe_complete

log = logging.getLogger(__name__)

TASKS = get_args(TaskKind)

_VIDEO_RE = re.compile(r"\b(vidoe|video|videos|animation|animate|clip|reel)\b", re.IGNORECASE)
_EDIT_RE = re.compile(r"\b(add|remove|replace|edit|change|modify|erase|inpaint|outpaint|insert|put)\b", re.IGNORECASE)
_GENERATE_N_RE = re.compile(r"\b(generate|create|make)\s+\d+\s*(images?|pics?|pictures?)\b", re.IGNORECASE)
_COUNT_RE = re.compile(r"\b(\d+)\s*(images?|pics?|pictures?|photos?|variations?)\b", re.IGNORECASE)
_SECONDS_RE = re.compile(r"\b(\d+)\s*(?:-\s*)?(s|sec|secs|seconds?)\b", re.IGNORECASE)
_MINUTES_RE = re.compile(r"\b(\d+|a|one)\s*(?:-\s*)?(min|mins|minutes?)\b", re.IGNORECASE)
_NO_SCRIPT_RE = re.compile(
    r"\b(no\s+script|without\s+(a\s+)?script|skip\s+(the\s+)?script|don'?t\s+(generate|write)\s+(a\s+)?script)\b",
    re.IGNORECASE,
)
_PROVIDED_SCRIPT_RE = re.compile(r"\b(script|scene)\s*:", re.IGNORECASE)
_ORDINAL_WORDS = {"first": 1, "second": 2, "third": 3, "fourth": 4, "fifth": 5,
                  "1st": 1, "2nd": 2, "3rd": 3, "4th": 4, "5th": 5}
_ORDINAL_RE = re.compile(
    r"\b(first|second|third|fourth|fifth|1st|2nd|3rd|4th|5th)\s+(image|picture|photo|pic)\b", re.IGNORECASE
)
_NUMBERED_IMAGE_RE = re.compile(r"\b(?:image|picture|photo|pic)\s*#?\s*(\d+)\b", re.IGNORECASE)

# Checked in order; the first pattern that matches names the plugin.
PLUGIN_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("remove-bg", re.compile(
        r"\b(remove|erase|delete|cut\s+out)\s+(the\s+)?(background|bg)\b|\bremove-?bg\b|\bbackground\s+removal\b",
        re.IGNORECASE)),
    ("upscale", re.compile(r"\b(upscale|upscaling|upres|increase\s+(the\s+)?resolution)\b", re.IGNORECASE)),
    ("vectorize-image", re.compile(r"\b(vectori[sz]e|vector\s+version|svg)\b", re.IGNORECASE)),
    ("expand-image", re.compile(r"\b(expand|outpaint|extend)\s+(the\s+)?(image|picture|canvas|frame|borders?)\b",
                                re.IGNORECASE)),
    ("erase-replace", re.compile(r"\b(erase|inpaint)\b", re.IGNORECASE)),
    ("multiangle-camera", re.compile(
        r"\b(multi-?angle|different\s+angles?|other\s+angles?|rotate\s+(the\s+)?camera)\b", re.IGNORECASE)),
    ("storyboard-generator", re.compile(r"\bstory-?board\b", re.IGNORECASE)),
    ("next-scene", re.compile(r"\bnext[\s-]scene\b", re.IGNORECASE)),
]


@dataclass(frozen=True)
class OverrideRule:
    name: str
    matches: Callable[[str, IntentResult, CanvasContext], bool]
    apply: Callable[[str, IntentResult, CanvasContext], IntentResult]


def detect_plugin(message: str) -> str | None:
    for plugin_id, pattern in PLUGIN_PATTERNS:
        if pattern.search(message):
            return plugin_id
    return None


def parse_referenced_index(message: str) -> int | None:
    m = _ORDINAL_RE.search(message)
    if m:
        return _ORDINAL_WORDS[m.group(1).lower()]
    m = _NUMBERED_IMAGE_RE.search(message)
    if m:
        return int(m.group(1))
    return None


def parse_duration_seconds(message: str) -> int | None:
    m = _SECONDS_RE.search(message)
    if m:
        return int(m.group(1))
    m = _MINUTES_RE.search(message)
    if m:
        amount = m.group(1).lower()
        return 60 * (1 if amount in ("a", "one") else int(amount))
    return None


# ---------------------------------------------------------------------------
# Task rules
# ---------------------------------------------------------------------------

def _wants_video(message: str, intent: IntentResult, ctx: CanvasContext) -> bool:
    return bool(_VIDEO_RE.search(message)) and intent.task not in ("delete_content", "explain")


def _to_video(message: str, intent: IntentResult, ctx: CanvasContext) -> IntentResult:
    has_images = bool(ctx.selected_image_ids)
    return intent.model_copy(update={
        "task": "image_to_video" if has_images else "text_to_video",
        "needs_reference_image": has_images,
    })


def _wants_plugin(message: str, intent: IntentResult, ctx: CanvasContext) -> bool:
    return intent.task != "explain" and detect_plugin(message) is not None


def _to_plugin(message: str, intent: IntentResult, ctx: CanvasContext) -> IntentResult:
    return intent.model_copy(update={"task": "plugin_action", "plugin_id": detect_plugin(message)})


def _wants_image_edit(message: str, intent: IntentResult, ctx: CanvasContext) -> bool:
    return (
        bool(ctx.selected_image_ids)
        and intent.task in ("text_to_image", "unknown")
        and bool(_EDIT_RE.search(message))
        and not _GENERATE_N_RE.search(message)
    )


def _to_image_edit(message: str, intent: IntentResult, ctx: CanvasContext) -> IntentResult:
    return intent.model_copy(update={
        "task": "image_to_image",
        "count": intent.count or 1,
        "needs_reference_image": True,
    })


TASK_RULES: list[OverrideRule] = [
    OverrideRule("video-keyword", _wants_video, _to_video),
    OverrideRule("plugin-keyword", _wants_plugin, _to_plugin),
    OverrideRule("image-edit-verb", _wants_image_edit, _to_image_edit),
]


# ---------------------------------------------------------------------------
# Enrichment rules
# ---------------------------------------------------------------------------

def _is_video(message: str, intent: IntentResult, ctx: CanvasContext) -> bool:
    return intent.is_video


def _script_policy(message: str, intent: IntentResult, ctx: CanvasContext) -> IntentResult:
    opted_out = bool(_NO_SCRIPT_RE.search(message) or _PROVIDED_SCRIPT_RE.search(message))
    return intent.model_copy(update={"needs_script": not opted_out})


def _missing_count(message: str, intent: IntentResult, ctx: CanvasContext) -> bool:
    return intent.count is None and bool(_COUNT_RE.search(message))


def _fill_count(message: str, intent: IntentResult, ctx: CanvasContext) -> IntentResult:
    return intent.model_copy(update={"count": int(_COUNT_RE.search(message).group(1))})


def _missing_duration(message: str, intent: IntentResult, ctx: CanvasContext) -> bool:
    return intent.is_video and intent.duration_seconds is None and parse_duration_seconds(message) is not None


def _fill_duration(message: str, intent: IntentResult, ctx: CanvasContext) -> IntentResult:
    return intent.model_copy(update={"duration_seconds": parse_duration_seconds(message)})


def _missing_reference_index(message: str, intent: IntentResult, ctx: CanvasContext) -> bool:
    return intent.referenced_image_index is None and parse_referenced_index(message) is not None


def _fill_reference_index(message: str, intent: IntentResult, ctx: CanvasContext) -> IntentResult:
    return intent.model_copy(update={"referenced_image_index": parse_referenced_index(message)})


ENRICHMENT_RULES: list[OverrideRule] = [
    OverrideRule("video-script-policy", _is_video, _script_policy),
    OverrideRule("count-fallback", _missing_count, _fill_count),
    OverrideRule("duration-fallback", _missing_duration, _fill_duration),
    OverrideRule("image-ordinal", _missing_reference_index, _fill_reference_index),
]


def apply_overrides(
    message: str,
    intent: IntentResult,
    context: CanvasContext,
    task_rules: list[OverrideRule] | None = None,
    enrichment_rules: list[OverrideRule] | None = None,
) -> IntentResult:
    for rule in task_rules if task_rules is not None else TASK_RULES:
        if rule.matches(message, intent, context):
            log.debug("Override rule %s fired", rule.name)
            intent = rule.apply(message, intent, context)
            break
    for rule in enrichment_rules if enrichment_rules is not None else ENRICHMENT_RULES:
        if rule.matches(message, intent, context):
            log.debug("Enrichment rule %s fired", rule.name)
            intent = rule.apply(message, intent, context)
    return intent


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

_PROMPT_TEMPLATE = """You classify requests sent to a creative canvas assistant that plans image,
video and music generation.

Tasks:
- text_to_image: new images from a description
- image_to_image: edit or restyle the selected image(s)
- text_to_video: a video from a description
- image_to_video: a video that starts from / uses the selected image(s)
- plugin_action: run a tool on the selected image ({plugins})
- delete_content: remove nodes from the canvas
- explain: questions about what the assistant can do
- unknown: anything else

The user has {selected} image(s) selected on the canvas.

Respond with ONLY a JSON object, no markdown:
{{
  "task": "<one of the tasks above>",
  "goal": "<what the user wants to achieve, or null>",
  "product": "<product being advertised, or null>",
  "topic": "<short topic of the content, or null>",
  "durationSeconds": <number or null>,
  "count": <number of images, or null>,
  "platform": "<instagram_reel | youtube | website | other, or null>",
  "style": "<visual style, or null>",
  "aspectRatio": "<e.g. 16:9, or null>",
  "resolution": "<e.g. 1080p, or null>",
  "model": "<model the user asked for by name, or null>",
  "pluginId": "<plugin id for plugin_action, or null>",
  "explanation": "<one sentence on how you understood the request>"
}}

User message: {message}"""


def _field(data: dict, *keys: str):
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _positive_int(value) -> int | None:
    number = coerce_number(value)
    if number is None or number <= 0:
        return None
    return int(math.ceil(number))


def intent_from_payload(data: dict, message: str) -> IntentResult:
    """Map a parsed completion (camelCase or snake_case keys) onto IntentResult."""
    task = coerce_text(_field(data, "task", "intent"))
    if task not in TASKS:
        task = "unknown"
    return IntentResult(
        task=task,
        goal=coerce_text(_field(data, "goal")),
        product=coerce_text(_field(data, "product")),
        topic=coerce_text(_field(data, "topic")),
        prompt=message.strip() or None,
        duration_seconds=_positive_int(_field(data, "durationSeconds", "duration_seconds", "duration")),
        count=_positive_int(_field(data, "count")),
        platform=coerce_text(_field(data, "platform")),
        style=coerce_text(_field(data, "style")),
        aspect_ratio=coerce_text(_field(data, "aspectRatio", "aspect_ratio")),
        resolution=coerce_text(_field(data, "resolution")),
        model=coerce_text(_field(data, "model")),
        plugin_id=coerce_text(_field(data, "pluginId", "plugin_id")),
        explanation=coerce_text(_field(data, "explanation")) or "",
    )


def classify_intent(
    message: str,
    context: CanvasContext,
    complete: CompletionFn,
    plugin_ids: list[str] | None = None,
) -> IntentResult:
    prompt = _PROMPT_TEMPLATE.format(
        plugins=", ".join(plugin_ids or [p for p, _ in PLUGIN_PATTERNS]),
        selected=len(context.selected_image_ids),
        message=message,
    )
    raw = safe_complete(complete, prompt, "intent")
    data = extract_first_json(raw)
    if data is None:
        log.info("Intent response not parseable; task unknown")
        return IntentResult(
            task="unknown",
            prompt=message.strip() or None,
            explanation=raw.strip() or "I couldn't work out what you'd like me to create.",
        )
    intent = apply_overrides(message, intent_from_payload(data, message), context)
    log.info("Intent: task=%s plugin=%s needs_script=%s", intent.task, intent.plugin_id, intent.needs_script)
    return intent
