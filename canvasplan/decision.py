"""Decide what the user wants to do with a previewed plan."""
from __future__ import annotations

import logging
import math
import re

from schemas import PlanChanges, PlanDecision

from .llm import CompletionFn, coerce_number, coerce_text, extract_first_json, safe_complete
from .registry import CapabilityRegistry

log = logging.getLogger(__name__)

CLARIFY_REPLY = "Do you want me to execute this plan, cancel it, or change something (model/frame/count)?"

_EXECUTE_RE = re.compile(
    r"^(a|yes|yeah|yep|yup|ok|okay|sure|go|go ahead|do it|run it|proceed|execute|execute it|generate|"
    r"generate it|start|confirm|confirmed|approve|approved|looks good|sounds good|let'?s go)"
    r"(\s+please)?$",
    re.IGNORECASE,
)
_CANCEL_RE = re.compile(
    r"^(b|no|nope|cancel|cancel it|stop|abort|never ?mind|forget it|discard|don'?t)(\s+please)?$",
    re.IGNORECASE,
)

_PROMPT_TEMPLATE = """A user is reviewing a generation plan on a creative canvas.

PLAN
{summary}

Available image models: {image_models}
Available video models: {video_models}

Decide what the user wants:
- EXECUTE: run the plan as it is
- CANCEL: drop the plan
- EDIT_PLAN: change something; fill in only the fields they want changed
- CLARIFY: you cannot tell

Respond with ONLY a JSON object, no markdown:
{{
  "intent": "EXECUTE | CANCEL | EDIT_PLAN | CLARIFY",
  "changes": {{"model": null, "aspectRatio": null, "resolution": null, "count": null, "prompt": null, "durationSeconds": null}},
  "reply": "<one short sentence for the user>"
}}

User message: {message}"""


def _normalize(message: str) -> str:
    return re.sub(r"[\s.!,]+$", "", message.strip()).strip()


def quick_decision(message: str) -> PlanDecision | None:
    """Option labels and simple yes/no messages, no model call needed."""
    text = _normalize(message)
    if _EXECUTE_RE.match(text):
        return PlanDecision(intent="EXECUTE", reply="Executing the plan.")
    if _CANCEL_RE.match(text):
        return PlanDecision(intent="CANCEL", reply="Plan cancelled.")
    return None


def _changes_from_payload(data) -> PlanChanges:
    if not isinstance(data, dict):
        return PlanChanges()
    count = coerce_number(data.get("count"))
    duration = coerce_number(data.get("durationSeconds", data.get("duration_seconds")))
    return PlanChanges(
        model=coerce_text(data.get("model")),
        aspect_ratio=coerce_text(data.get("aspectRatio", data.get("aspect_ratio"))),
        resolution=coerce_text(data.get("resolution")),
        count=int(count) if count is not None and count >= 1 else None,
        prompt=coerce_text(data.get("prompt")),
        duration_seconds=int(math.ceil(duration)) if duration is not None and duration > 0 else None,
    )


def resolve_plan_decision(
    message: str,
    plan_summary: str,
    complete: CompletionFn,
    registry: CapabilityRegistry | None = None,
) -> PlanDecision:
    quick = quick_decision(message)
    if quick is not None:
        log.debug("Plan decision short-circuit: %s", quick.intent)
        return quick

    registry = registry or CapabilityRegistry.default()
    prompt = _PROMPT_TEMPLATE.format(
        summary=plan_summary,
        image_models=", ".join(registry.names("image")),
        video_models=", ".join(registry.names("video")),
        message=message,
    )
    data = extract_first_json(safe_complete(complete, prompt, "plan decision"))
    if data is None:
        return PlanDecision(intent="CLARIFY", reply=CLARIFY_REPLY)

    intent = coerce_text(data.get("intent"))
    intent = intent.upper() if intent else None
    if intent not in ("EXECUTE", "CANCEL", "EDIT_PLAN", "CLARIFY"):
        return PlanDecision(intent="CLARIFY", reply=CLARIFY_REPLY)
    changes = _changes_from_payload(data.get("changes"))
    if intent == "EDIT_PLAN" and changes.is_empty():
        return PlanDecision(intent="CLARIFY", reply=CLARIFY_REPLY)
    reply = coerce_text(data.get("reply")) or (CLARIFY_REPLY if intent == "CLARIFY" else "")
    decision = PlanDecision(intent=intent, changes=changes, reply=reply)
    log.info("Plan decision: %s %s", decision.intent, changes.describe())
    return decision
