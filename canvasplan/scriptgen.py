"""Script planner: a scene-by-scene script sized to the clips the video model can render."""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass

from schemas import Requirements, ScenePlan, ScriptPlan

from .config import DEFAULT_DURATION_SECONDS, DEFAULT_SCENE_SECONDS
from .llm import CompletionFn, coerce_number, coerce_text, extract_first_json, safe_complete

log = logging.getLogger(__name__)

_MODE_HINTS = {
    "first_last": "Clips are joined by generated boundary frames: each scene must end where the next one begins.",
    "first_frame": "Each clip starts from its own generated frame: make every scene's opening image self-contained.",
    "single": "Every clip starts from the same reference image: keep the subject and setting identical.",
}


@dataclass
class ScriptRequest:
    topic: str
    duration_seconds: int
    max_clip_seconds: int
    target_clips: int
    mode: str | None = None
    product: str | None = None
    goal: str | None = None
    platform: str | None = None
    style: str | None = None
    feedback: str | None = None          # user's change request when revising
    previous: ScriptPlan | None = None   # script being revised

    @property
    def force_single(self) -> bool:
        return self.target_clips == 1


def extract_topic(prompt: str) -> str:
    """Extract the main topic from a user prompt."""
    # Strip common prefixes
    cleaned = re.sub(
        r"^(make|create|generate|build|produce)\s+(me\s+)?(a\s+|an\s+)?([\w\s-]*?\s+)?(video|short|clip|reel|ad|animation)\s+(about|on|for|of)\s+",
        "",
        prompt.strip(),
        flags=re.IGNORECASE,
    )
    return cleaned.strip() or prompt.strip()


def script_request_for(
    requirements: Requirements,
    max_clip_seconds: int,
    feedback: str | None = None,
    previous: ScriptPlan | None = None,
) -> ScriptRequest:
    duration = requirements.duration_seconds or DEFAULT_DURATION_SECONDS
    topic = (
        requirements.topic or requirements.product or requirements.goal
        or extract_topic(requirements.prompt or "") or "a short promotional video"
    )
    return ScriptRequest(
        topic=topic,
        duration_seconds=duration,
        max_clip_seconds=max_clip_seconds,
        target_clips=max(1, math.ceil(duration / max_clip_seconds)),
        mode=requirements.mode,
        product=requirements.product,
        goal=requirements.goal,
        platform=requirements.platform,
        style=requirements.style,
        feedback=feedback,
        previous=previous,
    )


# ---------------------------------------------------------------------------
# Script service
# ---------------------------------------------------------------------------

_PROMPT_TEMPLATE = """You write scripts for short AI-generated videos{platform}.

Write a script for a {duration}-second video about: {topic}
{details}
The video will be rendered as exactly {clips} clip(s), each at most {max_clip} seconds long.
{mode_hint}
Consistency rules:
- Keep the same main subject, wardrobe, colour palette and lighting in every scene.
- Each scene prompt describes one continuous shot a video model can render: subject, action, camera, light.
- No on-screen text, captions, logos or watermarks.
{revision}
Respond with ONLY a JSON object, no markdown:
{{
  "script": "<two or three sentence narrative>",
  "style": "<visual style in a few words>",
  "scenes": [
    {{"scene": 1, "prompt": "<shot description>", "durationSeconds": <seconds>}}
  ]
}}"""


def _build_prompt(request: ScriptRequest) -> str:
    details = []
    if request.product:
        details.append(f"Product: {request.product}")
    if request.goal:
        details.append(f"Goal: {request.goal}")
    if request.style:
        details.append(f"Style: {request.style}")
    revision = ""
    if request.previous is not None:
        previous = "\n".join(
            f"{s.scene}. ({s.duration_seconds}s) {s.prompt}" for s in request.previous.scenes
        )
        revision = f"\nCurrent script:\n{request.previous.script}\n{previous}\n"
    if request.feedback:
        revision += f"\nRevise the script according to this feedback: {request.feedback}\n"
    return _PROMPT_TEMPLATE.format(
        platform=f" on {request.platform}" if request.platform else "",
        duration=request.duration_seconds,
        topic=request.topic,
        details="\n".join(details),
        clips=request.target_clips,
        max_clip=request.max_clip_seconds,
        mode_hint=_MODE_HINTS.get(request.mode or "", ""),
        revision=revision,
    )


def fallback_script(request: ScriptRequest) -> ScriptPlan:
    """Single-scene script used when the script service gives nothing usable."""
    return ScriptPlan(
        script=f"Create a {request.duration_seconds}s video about {request.topic}.",
        scenes=[ScenePlan(scene=1, prompt=request.topic, duration_seconds=request.duration_seconds)],
        style=request.style,
    )


def normalize_script(data: dict, request: ScriptRequest) -> ScriptPlan:
    """Deterministic cleanup of the service's scenes: filter, pad/truncate, clamp, renumber."""
    raw_scenes: list[tuple[str, int]] = []
    for item in data.get("scenes") or []:
        if not isinstance(item, dict):
            continue
        prompt = coerce_text(item.get("prompt") or item.get("description") or item.get("visual"))
        seconds = coerce_number(item.get("durationSeconds", item.get("duration_seconds", item.get("duration"))))
        if seconds is None:
            seconds = DEFAULT_SCENE_SECONDS
        if not prompt or seconds <= 0:
            continue
        raw_scenes.append((prompt, int(math.ceil(seconds))))

    script_text = coerce_text(data.get("script")) or ""
    style = coerce_text(data.get("style")) or request.style
    if not raw_scenes:
        log.info("Script response had no usable scenes; using fallback")
        plan = fallback_script(request)
        return plan.model_copy(update={"script": script_text or plan.script, "style": style})

    if request.force_single:
        raw_scenes = [(raw_scenes[0][0], request.duration_seconds)]
    else:
        raw_scenes = raw_scenes[:request.target_clips]
        while len(raw_scenes) < request.target_clips:
            raw_scenes.append(raw_scenes[-1])
        raw_scenes = [(p, min(s, request.max_clip_seconds)) for p, s in raw_scenes]

    scenes = [ScenePlan(scene=i + 1, prompt=p, duration_seconds=s) for i, (p, s) in enumerate(raw_scenes)]
    if not script_text:
        script_text = " ".join(s.prompt for s in scenes)
    return ScriptPlan(script=script_text, scenes=scenes, style=style)


def generate_script_plan(request: ScriptRequest, complete: CompletionFn) -> ScriptPlan:
    raw = safe_complete(complete, _build_prompt(request), "script")
    data = extract_first_json(raw)
    if data is None:
        log.info("Script response not parseable; using fallback")
        return fallback_script(request)
    plan = normalize_script(data, request)
    log.info("Script: %d scene(s), %ds total", len(plan.scenes), plan.total_seconds)
    return plan


# ---------------------------------------------------------------------------
# User-supplied scenes
# ---------------------------------------------------------------------------

_SCENE_SPLIT_RE = re.compile(r"\bscene\s*\d*\s*:", re.IGNORECASE)
_SCRIPT_RE = re.compile(r"\bscript\s*:\s*(.*)", re.IGNORECASE | re.DOTALL)


def parse_user_script(text: str) -> ScriptPlan | None:
    """Parse scenes the user typed into their request.

    Format: one ``scene:`` marker per scene, optional pipe-separated length::

        script: a day in the life of our coffee cup
        scene: cup on a sunny windowsill | 6
        scene: steam rising in slow motion | 4

    Length defaults to DEFAULT_SCENE_SECONDS.  Returns None when no scene
    markers are present.
    """
    pieces = _SCENE_SPLIT_RE.split(text)
    if len(pieces) < 2:
        return None

    script_text = ""
    m = _SCRIPT_RE.search(pieces[0])
    if m:
        script_text = m.group(1).strip()

    scenes: list[ScenePlan] = []
    for piece in pieces[1:]:
        parts = [p.strip() for p in piece.strip().split("|")]
        if not parts[0]:
            continue
        seconds = DEFAULT_SCENE_SECONDS
        for extra in parts[1:]:
            number = coerce_number(extra)
            if number is not None and number > 0:
                seconds = int(math.ceil(number))
        scenes.append(ScenePlan(scene=len(scenes) + 1, prompt=parts[0], duration_seconds=seconds))

    if not scenes:
        return None
    return ScriptPlan(script=script_text or " ".join(s.prompt for s in scenes), scenes=scenes)


def rescale_script(plan: ScriptPlan, total_seconds: int) -> ScriptPlan:
    """Stretch or shrink scene lengths proportionally so they add up to total_seconds.

    Every scene keeps at least one second, so a total shorter than the scene
    count leaves the script slightly longer than asked.
    """
    current = plan.total_seconds
    if current == total_seconds or total_seconds <= 0:
        return plan
    durations = [max(1, s.duration_seconds * total_seconds // current) for s in plan.scenes]
    i = 0
    while sum(durations) < total_seconds:
        durations[i % len(durations)] += 1
        i += 1
    scenes = [s.model_copy(update={"duration_seconds": d}) for s, d in zip(plan.scenes, durations)]
    return plan.model_copy(update={"scenes": scenes})


def format_script_review(plan: ScriptPlan) -> str:
    lines = ["SCRIPT", plan.script, "", "SCENES"]
    for s in plan.scenes:
        lines.append(f"{s.scene}. ({s.duration_seconds}s) {s.prompt}")
    if plan.style:
        lines += ["", f"Style: {plan.style}"]
    lines += ["", "A) Approve the script", "Or tell me what to change."]
    return "\n".join(lines)
