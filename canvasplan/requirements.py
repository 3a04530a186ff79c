"""Requirement collection: which questions to ask and how answers land in Requirements."""
from __future__ import annotations

import logging
import math
import re

from schemas import (
    CanvasContext, IntentResult, QuestionOption, RequirementKey, RequirementQuestion, Requirements,
)

from .config import DURATION_BUCKETS, PLATFORM_ASPECT
from .llm import coerce_number
from .registry import CapabilityRegistry

log = logging.getLogger(__name__)

# Unanswerable replies to these leave the slot empty and the question is asked again.
REASK_KEYS = ("duration", "reference_images", "transition_mode")

_OPTION_RE = re.compile(r"\boption\s+([a-z])\b", re.IGNORECASE)
_ASPECT_RE = re.compile(r"\b(\d{1,2})\s*[:x]\s*(\d{1,2})\b")
_ASPECT_WORDS = {
    "vertical": "9:16", "portrait": "9:16", "tall": "9:16",
    "widescreen": "16:9", "horizontal": "16:9", "landscape": "16:9", "wide": "16:9",
    "square": "1:1",
}
_NO = ("n", "no", "nope", "nah", "skip", "don't", "dont")


def _options(*items: tuple[str, str, str]) -> list[QuestionOption]:
    return [QuestionOption(label=label, value=value, text=text) for label, value, text in items]


def topic_question() -> RequirementQuestion:
    return RequirementQuestion(
        key="topic",
        question="What is the video about? (Give a short topic/product/story in 1 line)",
    )


def duration_question() -> RequirementQuestion:
    labels = "ABCD"
    return RequirementQuestion(
        key="duration",
        question="How long should the video be?",
        options=_options(*[(labels[i], str(s), f"{s} seconds") for i, s in enumerate(DURATION_BUCKETS)]),
    )


def platform_question() -> RequirementQuestion:
    return RequirementQuestion(
        key="platform",
        question="Where will this video be posted?",
        options=_options(
            ("A", "instagram_reel", "Instagram Reel / TikTok"),
            ("B", "youtube", "YouTube"),
            ("C", "website", "Website / landing page"),
            ("D", "other", "Other"),
        ),
    )


def aspect_question() -> RequirementQuestion:
    return RequirementQuestion(
        key="aspect_ratio",
        question="Which aspect ratio?",
        options=_options(
            ("A", "9:16", "9:16 (vertical)"),
            ("B", "16:9", "16:9 (widescreen)"),
            ("C", "1:1", "1:1 (square)"),
        ),
    )


def resolution_question() -> RequirementQuestion:
    return RequirementQuestion(
        key="resolution",
        question="Which resolution?",
        options=_options(("A", "720p", "720p (faster)"), ("B", "1080p", "1080p (sharper)")),
    )


def reference_count_question() -> RequirementQuestion:
    return RequirementQuestion(
        key="reference_images",
        question="You have several images selected. How many should I use as references?",
        options=_options(("A", "1", "Just the first one"), ("B", "2", "The first two")),
    )


def reference_selection_question() -> RequirementQuestion:
    return RequirementQuestion(
        key="reference_images",
        question="Which image should I work on? Select it on the canvas and reply 'ready'.",
    )


def transition_mode_question() -> RequirementQuestion:
    return RequirementQuestion(
        key="transition_mode",
        question="The video needs several clips. How should they connect?",
        options=_options(
            ("A", "first_last", "First-Last Frame (recommended): a generated boundary image between clips"),
            ("B", "first_frame", "First Frame: one generated starting image per clip"),
            ("C", "single", "Single Image: every clip starts from the same reference"),
        ),
    )


def script_confirmation_question() -> RequirementQuestion:
    return RequirementQuestion(
        key="needs_script_confirmation",
        question="Should I write a scene-by-scene script for you to review before planning?",
        options=_options(("A", "yes", "Yes, show me the script first"), ("B", "no", "No, go straight to the plan")),
    )


# ---------------------------------------------------------------------------
# Seeding and questions
# ---------------------------------------------------------------------------

def requirements_from_intent(intent: IntentResult, context: CanvasContext) -> Requirements:
    """Initial Requirements for a new request; the referenced image (if any) becomes primary."""
    refs = [] if intent.task == "text_to_image" else list(context.selected_image_ids)
    idx = intent.referenced_image_index
    if idx is not None and 1 <= idx <= len(refs):
        refs.insert(0, refs.pop(idx - 1))
    return Requirements(
        task=intent.task,
        goal=intent.goal,
        topic=intent.topic or intent.product,
        product=intent.product,
        prompt=intent.prompt,
        duration_seconds=intent.duration_seconds,
        platform=intent.platform,
        style=intent.style,
        aspect_ratio=intent.aspect_ratio,
        resolution=intent.resolution,
        model=intent.model,
        reference_image_ids=refs,
        needs_script=intent.needs_script,
        count=intent.count,
        plugin_id=intent.plugin_id,
    )


def needs_transition_mode(requirements: Requirements, max_clip_seconds: int) -> bool:
    if not requirements.is_video or requirements.mode is not None:
        return False
    if len(requirements.reference_image_ids) >= 2:
        return True
    return requirements.duration_seconds is not None and requirements.duration_seconds > max_clip_seconds


def build_requirement_questions(
    intent: IntentResult,
    context: CanvasContext,
    registry: CapabilityRegistry | None = None,
) -> list[RequirementQuestion]:
    """Questions for whatever the request leaves open, in asking order."""
    registry = registry or CapabilityRegistry.default()
    selected = len(context.selected_image_ids)
    questions: list[RequirementQuestion] = []

    if intent.is_video:
        if not (intent.topic or intent.product or intent.goal):
            questions.append(topic_question())
        if intent.duration_seconds is None:
            questions.append(duration_question())
        if intent.platform is None:
            questions.append(platform_question())
        if intent.aspect_ratio is None:
            questions.append(aspect_question())
        if intent.resolution is None:
            questions.append(resolution_question())
        if intent.task == "image_to_video" and selected >= 2:
            questions.append(reference_count_question())
        max_clip = registry.max_clip_seconds(registry.resolve(intent.model, "video"))
        if selected >= 2 or (intent.duration_seconds is not None and intent.duration_seconds > max_clip):
            questions.append(transition_mode_question())
        if intent.needs_script:
            questions.append(script_confirmation_question())
        return questions

    if selected == 0:
        if intent.task in ("image_to_image", "delete_content"):
            questions.append(reference_selection_question())
        elif intent.task == "plugin_action":
            plugin = registry.plugin(intent.plugin_id)
            if plugin is None or plugin.image_to_image:
                questions.append(reference_selection_question())
    return questions


def slot_filled(requirements: Requirements, key: RequirementKey) -> bool:
    """Whether a question can be skipped because an earlier answer already settled it."""
    if key == "topic":
        return bool(requirements.topic or requirements.product or requirements.goal)
    if key == "duration":
        return requirements.duration_seconds is not None
    if key == "platform":
        return requirements.platform is not None
    if key == "aspect_ratio":
        return requirements.aspect_ratio is not None
    if key == "resolution":
        return requirements.resolution is not None
    if key == "reference_images":
        return bool(requirements.reference_image_ids)
    if key == "transition_mode":
        return requirements.mode is not None
    return False


def question_settled(requirements: Requirements, question: RequirementQuestion) -> bool:
    """Whether an earlier answer already settled this question so it can be skipped."""
    if question.key == "reference_images" and question.options:
        # how many of the selected images to use; the selection itself always fills the slot
        return False
    return slot_filled(requirements, question.key)


# ---------------------------------------------------------------------------
# Answers
# ---------------------------------------------------------------------------

def match_option(question: RequirementQuestion, answer: str) -> str | None:
    """Option value for an answer given by label, 'option X' or value."""
    text = answer.strip()
    low = text.lower().rstrip(").:")
    for opt in question.options:
        if low == opt.label.lower():
            return opt.value
    m = _OPTION_RE.search(text)
    if m:
        for opt in question.options:
            if opt.label.lower() == m.group(1).lower():
                return opt.value
    for opt in question.options:
        if low == opt.value.lower() or low == opt.text.lower():
            return opt.value
    return None


def _normalize_aspect(value: str) -> str:
    m = _ASPECT_RE.search(value)
    if m:
        return f"{int(m.group(1))}:{int(m.group(2))}"
    for word, ratio in _ASPECT_WORDS.items():
        if word in value.lower():
            return ratio
    return value


def _normalize_resolution(value: str) -> str:
    return f"{value}p" if value.isdigit() else value


def _transition_mode(value: str) -> str | None:
    low = value.lower()
    if low in ("single", "first_frame", "first_last"):
        return low
    if "last" in low:
        return "first_last"
    if "first" in low:
        return "first_frame"
    if any(w in low for w in ("single", "same", "one image")):
        return "single"
    return None


def apply_requirement_answer(
    requirements: Requirements,
    question: RequirementQuestion,
    answer: str,
    context: CanvasContext | None = None,
) -> Requirements:
    """Return updated Requirements. Never fails: unmatched answers are stored as raw text."""
    value = match_option(question, answer)
    if value is None:
        value = answer.strip()
    key = question.key
    update: dict = {}

    if key == "topic":
        update["topic"] = value
    elif key == "duration":
        seconds = coerce_number(value)
        if seconds is not None and seconds > 0:
            update["duration_seconds"] = int(math.ceil(seconds))
    elif key == "platform":
        update["platform"] = value
        if requirements.aspect_ratio is None and value in PLATFORM_ASPECT:
            update["aspect_ratio"] = PLATFORM_ASPECT[value]
    elif key == "aspect_ratio":
        update["aspect_ratio"] = _normalize_aspect(value)
    elif key == "resolution":
        update["resolution"] = _normalize_resolution(value)
    elif key == "reference_images":
        pool = list(context.selected_image_ids) if context and context.selected_image_ids else list(
            requirements.reference_image_ids)
        count = coerce_number(value)
        if count is not None and count >= 1:
            pool = pool[:int(count)]
        update["reference_image_ids"] = pool
    elif key == "transition_mode":
        mode = _transition_mode(value)
        if mode is not None:
            update["mode"] = mode
    elif key == "needs_script_confirmation":
        first = value.lower().split()[0] if value.strip() else ""
        update["needs_script"] = first.strip(",.!") not in _NO

    if not update:
        log.info("Answer %r for %s left requirements unchanged", answer, key)
    return requirements.model_copy(update=update)
