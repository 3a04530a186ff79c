"""Plan synthesis: Requirements (+ reviewed script) -> CanvasInstructionPlan.

Synthesis is pure.  The same Requirements and script always produce the same
steps; only the plan id and compile timestamp change between runs.  Step ids
are role names (``script``, ``music``, ``frames``, ``video-1`` ...) that are
unique inside one plan.

Video plans are built in three connection modes:

  single       one video step, every clip starts from the same reference (or none)
  first_frame  one generated frame per clip, frame i feeds clip i
  first_last   N+1 boundary frames; clip i runs from frame i to frame i+1
"""
from __future__ import annotations

import logging
import re
import time
import uuid

from schemas import (
    ApplyPluginStep, CanvasInstructionPlan, ConnectSequentiallyStep, CreateImageNode, CreateMusicNode,
    CreateTextNode, CreateVideoNode, DeleteNodeStep, FrameConnection, GroupNodesStep, ImageBatchConfig,
    ImageGeneratorConfig, ModelCapability, MusicGeneratorConfig, PlanMetadata, Requirements, ScenePlan,
    ScriptPlan, SourceGoal, TextNodeConfig, Timeline, TimelineClip, VideoBatchConfig, VideoGeneratorConfig,
    IMAGE_TASKS,
)

from .config import (
    DEFAULT_DURATION_SECONDS, DEFAULT_IMAGE_ASPECT, DEFAULT_RESOLUTION, DEFAULT_VIDEO_ASPECT, PLATFORM_ASPECT,
)
from .registry import CapabilityRegistry
from .sanitizer import sanitize_image_prompt, sanitize_video_prompt
from .scriptgen import extract_topic

log = logging.getLogger(__name__)

STRENGTH_PREFIXES = {
    "high": "Match the reference image closely: same subject, composition and colours. ",
    "medium": "Use the reference image as guidance for subject and style. ",
    "low": "Take loose inspiration from the reference image. ",
}
CONSISTENCY_SUFFIX = " Keep the same subject, palette, lighting and camera style as the previous shot."
SOUNDTRACK_DIRECTIVE = " Audio: the shared background score continues under this clip; do not add new music."

GOAL_TYPES = {
    "text_to_video": "STORY_VIDEO",
    "image_to_video": "IMAGE_ANIMATION",
    "text_to_image": "IMAGE_GENERATION",
    "image_to_image": "IMAGE_EDIT",
    "plugin_action": "PLUGIN_ACTION",
    "delete_content": "DELETE_CONTENT",
}
TASK_LABELS = {
    "text_to_video": "Text to video",
    "image_to_video": "Image to video",
    "text_to_image": "Text to image",
    "image_to_image": "Image edit",
    "plugin_action": "Plugin",
    "delete_content": "Delete",
}


class PlanningError(ValueError):
    """Synthesis was asked for something it cannot plan."""


# ---------------------------------------------------------------------------
# Clip arithmetic
# ---------------------------------------------------------------------------

def expand_scenes_to_clips(scenes: list[ScenePlan], requested_total: int, max_clip: int) -> list[ScenePlan]:
    """Split scenes longer than max_clip, then repeat the last clip until requested_total is covered.

    Every returned clip is at most max_clip seconds and the clips sum to at
    least requested_total.
    """
    if max_clip <= 0:
        raise ValueError(f"max_clip must be positive, got {max_clip}")
    if not scenes:
        raise ValueError("at least one scene is required")

    pieces: list[tuple[str, int]] = []
    for scene in scenes:
        remaining = scene.duration_seconds
        while remaining > 0:
            take = min(remaining, max_clip)
            pieces.append((scene.prompt, take))
            remaining -= take

    total = sum(seconds for _, seconds in pieces)
    while total < requested_total:
        pieces.append(pieces[-1])
        total += pieces[-1][1]

    return [ScenePlan(scene=i + 1, prompt=p, duration_seconds=s) for i, (p, s) in enumerate(pieces)]


def snap_clip_durations(clips: list[ScenePlan], supported: list[int] | None, max_clip: int) -> list[ScenePlan]:
    """Round each clip up to the nearest duration the model accepts (never past max_clip)."""
    if not supported:
        return clips
    allowed = sorted(d for d in supported if d <= max_clip) or sorted(supported)
    snapped = []
    for clip in clips:
        fits = [d for d in allowed if d >= clip.duration_seconds]
        seconds = fits[0] if fits else allowed[-1]
        snapped.append(clip.model_copy(update={"duration_seconds": seconds}))
    return snapped


def boundary_times(clips: list[ScenePlan]) -> list[int]:
    """0, end of clip 1, end of clip 2, ... (N+1 values)."""
    times = [0]
    for clip in clips:
        times.append(times[-1] + clip.duration_seconds)
    return times


def resolve_mode(requirements: Requirements, video_model: ModelCapability, clip_count: int) -> str:
    if requirements.mode:
        return requirements.mode
    if clip_count == 1:
        return "single"
    return "first_last" if video_model.first_last_frame else "first_frame"


# ---------------------------------------------------------------------------
# Video plans
# ---------------------------------------------------------------------------

def _topic(requirements: Requirements) -> str:
    return (
        requirements.topic or requirements.product or requirements.goal
        or extract_topic(requirements.prompt or "") or "Cinematic video"
    )


def _style_suffix(requirements: Requirements) -> str:
    return f" Style: {requirements.style}." if requirements.style else ""


def _build_video_plan(requirements: Requirements, script: ScriptPlan | None, registry: CapabilityRegistry):
    video_model = registry.resolve(requirements.model, "video")
    if video_model is None:
        raise PlanningError("The capability registry has no video models")
    max_clip = registry.max_clip_seconds(video_model)
    duration = requirements.duration_seconds or DEFAULT_DURATION_SECONDS
    aspect = requirements.aspect_ratio or PLATFORM_ASPECT.get(requirements.platform or "", DEFAULT_VIDEO_ASPECT)
    resolution = requirements.resolution or DEFAULT_RESOLUTION
    topic = _topic(requirements)

    scenes = script.scenes if script is not None and script.scenes else [
        ScenePlan(scene=1, prompt=topic, duration_seconds=duration)
    ]
    clips = expand_scenes_to_clips(scenes, duration, max_clip)
    multi = len(clips) > 1
    if multi:
        clips = snap_clip_durations(clips, registry.supported_durations(video_model), max_clip)
    mode = resolve_mode(requirements, video_model, len(clips))
    times = boundary_times(clips)

    refs = requirements.reference_image_ids
    prefix = STRENGTH_PREFIXES[requirements.reference_strength] if refs else ""
    style = _style_suffix(requirements)
    soundtrack = SOUNDTRACK_DIRECTIVE if multi else ""
    video_prompts = [sanitize_video_prompt(c.prompt + style) + soundtrack for c in clips]

    steps: list = []
    needs: list[str] = []

    if script is not None and script.script:
        steps.append(CreateTextNode(
            id="script",
            config_template=TextNodeConfig(content=script.script),
            explanation="Script, kept on the canvas for reference",
        ))
        needs.append("script")

    music_prompt = None
    music_model = registry.default_model("music") if multi else None
    if music_model is not None:
        music_prompt = sanitize_video_prompt(f"Instrumental background score for a video about {topic}.{style}")
        steps.append(CreateMusicNode(
            id="music",
            config_template=MusicGeneratorConfig(model=music_model.id, prompt=music_prompt, duration=times[-1]),
            explanation="One soundtrack shared by every clip",
        ))
        needs.append("music")

    image_model = None
    frame_prompts: list[str] = []
    video_step_ids: list[str] = []

    if mode == "single":
        primary = requirements.primary_reference
        connection = None
        if primary:
            connection = FrameConnection(
                connection_type="FIRST_FRAME_ONLY", first_frame_source="REFERENCE", first_frame_id=primary,
            )
        steps.append(CreateVideoNode(
            id="video",
            count=len(clips),
            config_template=VideoGeneratorConfig(
                model=video_model.id, prompt=video_prompts[0], aspect_ratio=aspect, resolution=resolution,
                duration=clips[0].duration_seconds, connect_to_frames=connection,
            ),
            batch_configs=[
                VideoBatchConfig(prompt=p, duration=c.duration_seconds) for p, c in zip(video_prompts, clips)
            ] if multi else None,
            explanation=f"{len(clips)} clip(s) from {'the primary reference' if primary else 'text'}",
        ))
        video_step_ids.append("video")
    else:
        image_model = registry.resolve_image_model(requirements.image_model, img2img=bool(refs))
        if image_model is None:
            raise PlanningError("The capability registry has no image models")
        if mode == "first_last":
            frame_prompts.append(f"{prefix}First frame (0s): {clips[0].prompt}{style}")
            for k, clip in enumerate(clips, start=1):
                frame_prompts.append(f"{prefix}Last frame ({times[k]}s) for clip {k}: {clip.prompt}{style}{CONSISTENCY_SUFFIX}")
        else:
            for k, clip in enumerate(clips, start=1):
                suffix = CONSISTENCY_SUFFIX if k > 1 else ""
                frame_prompts.append(f"{prefix}Opening frame ({times[k - 1]}s) of clip {k}: {clip.prompt}{style}{suffix}")
        frame_prompts = [sanitize_image_prompt(p) for p in frame_prompts]
        steps.append(CreateImageNode(
            id="frames",
            count=len(frame_prompts),
            config_template=ImageGeneratorConfig(
                model=image_model.id, prompt=frame_prompts[0], aspect_ratio=aspect, target_ids=list(refs),
            ),
            batch_configs=[ImageBatchConfig(prompt=p) for p in frame_prompts] if len(frame_prompts) > 1 else None,
            explanation="Boundary frames between clips" if mode == "first_last" else "One opening frame per clip",
        ))
        needs.append("frames")
        for i, clip in enumerate(clips):
            if mode == "first_last":
                connection = FrameConnection(
                    connection_type="FIRST_LAST_FRAME",
                    first_frame_source="GENERATED", first_frame_step_id="frames", first_frame_index=i,
                    last_frame_source="GENERATED", last_frame_step_id="frames", last_frame_index=i + 1,
                )
            else:
                connection = FrameConnection(
                    connection_type="FIRST_FRAME_ONLY",
                    first_frame_source="GENERATED", first_frame_step_id="frames", first_frame_index=i,
                )
            step_id = f"video-{i + 1}"
            steps.append(CreateVideoNode(
                id=step_id,
                config_template=VideoGeneratorConfig(
                    model=video_model.id, prompt=video_prompts[i], aspect_ratio=aspect, resolution=resolution,
                    duration=clip.duration_seconds, connect_to_frames=connection,
                ),
                explanation=f"Clip {i + 1} ({times[i]}s-{times[i + 1]}s)",
            ))
            video_step_ids.append(step_id)
    needs.append("video")

    if len(video_step_ids) > 1:
        steps.append(ConnectSequentiallyStep(
            id="sequence", step_ids=video_step_ids, explanation="Play the clips in order",
        ))
    if multi:
        steps.append(GroupNodesStep(
            id="group",
            step_ids=[s.id for s in steps],
            group_type="video-sequence",
            label=topic[:60],
        ))

    timeline = Timeline(
        clips=[
            TimelineClip(index=i + 1, start=times[i], end=times[i + 1], prompt=c.prompt) for i, c in enumerate(clips)
        ],
        marks=" | ".join(f"{t}s" for t in times),
    )

    summary = ["PLAN PARAMETERS", f"- Task: {TASK_LABELS[requirements.task]}"]
    summary.append(f"- Video model: {video_model.name} ({video_model.id})")
    summary.append(f"- Duration: {times[-1]}s in {len(clips)} clip(s), max {max_clip}s per clip")
    summary.append(f"- Aspect ratio: {aspect}")
    summary.append(f"- Resolution: {resolution}")
    summary.append(f"- Clip connection: {mode}")
    if image_model is not None:
        summary.append(f"- Frame image model: {image_model.name}")
    if refs:
        summary.append(
            f"- References: {refs[0]} (primary)" + "".join(f", {r}" for r in refs[1:])
            + f"; strength {requirements.reference_strength}"
        )
    if requirements.style:
        summary.append(f"- Style: {requirements.style}")
    if script is not None and script.script:
        summary += ["", "SCRIPT", script.script]
    if music_prompt:
        summary += ["", "SHARED MUSIC", f"{music_model.name}: {music_prompt}"]
    if frame_prompts:
        summary += ["", "IMAGE PROMPTS"]
        summary += [f"{i + 1}. {p}" for i, p in enumerate(frame_prompts)]
    summary += ["", "VIDEO PROMPTS"]
    summary += [f"{i + 1}. ({times[i]}-{times[i + 1]}s) {p}" for i, p in enumerate(video_prompts)]
    summary += ["", "TIMELINE", timeline.marks]

    goal = SourceGoal(
        goal_type=GOAL_TYPES[requirements.task],
        topic=topic,
        duration_seconds=duration,
        aspect_ratio=aspect,
        resolution=resolution,
        model=video_model.id,
        needs=needs,
    )
    return steps, "\n".join(summary), goal, timeline


# ---------------------------------------------------------------------------
# Image, plugin and delete plans
# ---------------------------------------------------------------------------

def _build_image_plan(requirements: Requirements, registry: CapabilityRegistry):
    img2img = requirements.task == "image_to_image"
    model = registry.resolve_image_model(requirements.model, img2img)
    if model is None:
        raise PlanningError("The capability registry has no image models")
    count = requirements.count or 1
    aspect = requirements.aspect_ratio or DEFAULT_IMAGE_ASPECT
    prompt = sanitize_image_prompt((requirements.prompt or _topic(requirements)) + _style_suffix(requirements))
    targets = list(requirements.reference_image_ids) if img2img else []
    step = CreateImageNode(
        id="images",
        count=count,
        config_template=ImageGeneratorConfig(
            model=model.id, prompt=prompt, aspect_ratio=aspect, resolution=requirements.resolution,
            target_ids=targets,
        ),
        explanation=f"Edit {len(targets)} reference image(s)" if img2img else f"{count} new image(s)",
    )
    summary = [
        "PLAN PARAMETERS",
        f"- Task: {TASK_LABELS[requirements.task]}",
        f"- Image model: {model.name} ({model.id})",
        f"- Count: {count}",
        f"- Aspect ratio: {aspect}",
    ]
    if requirements.resolution:
        summary.append(f"- Resolution: {requirements.resolution}")
    if targets:
        summary.append("- References: " + ", ".join(targets))
    summary += ["", "IMAGE PROMPT", prompt]
    goal = SourceGoal(
        goal_type=GOAL_TYPES[requirements.task], topic=requirements.topic, aspect_ratio=aspect,
        resolution=requirements.resolution, model=model.id, needs=["images"],
    )
    return [step], "\n".join(summary), goal


def plugin_parameters(plugin_id: str, prompt: str) -> dict:
    """Parameters the request states explicitly; the plugin's defaults cover the rest."""
    params: dict = {}
    if plugin_id == "upscale":
        m = re.search(r"\b([24])\s*x\b|\bx\s*([24])\b", prompt, re.IGNORECASE)
        if m:
            params["scale"] = int(m.group(1) or m.group(2))
    elif plugin_id == "vectorize-image":
        if re.search(r"\b(mono(chrome)?|black\s+and\s+white|b&w)\b", prompt, re.IGNORECASE):
            params["mode"] = "monochrome"
    elif plugin_id == "expand-image":
        m = re.search(r"\b(left|right|top|bottom)\b", prompt, re.IGNORECASE)
        if m:
            params["direction"] = m.group(1).lower()
    elif plugin_id == "erase-replace" and prompt:
        params["instruction"] = prompt
    return params


def _build_plugin_plan(requirements: Requirements, registry: CapabilityRegistry):
    plugin = registry.plugin(requirements.plugin_id)
    if plugin is None:
        raise PlanningError(f"Unknown plugin {requirements.plugin_id!r}")
    params = plugin_parameters(plugin.id, requirements.prompt or "")
    step = ApplyPluginStep(
        id="plugin",
        plugin_id=plugin.id,
        target_ids=list(requirements.reference_image_ids),
        parameters=params,
        explanation=plugin.description,
    )
    summary = ["PLAN PARAMETERS", f"- Task: {TASK_LABELS['plugin_action']}", f"- Plugin: {plugin.name} ({plugin.id})"]
    if requirements.reference_image_ids:
        summary.append("- Targets: " + ", ".join(requirements.reference_image_ids))
    if plugin.parameters:
        summary += ["", "PARAMETERS"]
        for name, description in plugin.parameters.items():
            value = params.get(name, "default")
            summary.append(f"- {name} = {value} ({description})")
    goal = SourceGoal(goal_type=GOAL_TYPES["plugin_action"], model=plugin.id, needs=["plugin"])
    return [step], "\n".join(summary), goal


def _build_delete_plan(requirements: Requirements):
    if not requirements.reference_image_ids:
        raise PlanningError("Nothing selected to delete")
    step = DeleteNodeStep(id="delete", target_ids=list(requirements.reference_image_ids))
    summary = [
        "PLAN PARAMETERS",
        f"- Task: {TASK_LABELS['delete_content']}",
        "- Remove: " + ", ".join(requirements.reference_image_ids),
    ]
    goal = SourceGoal(goal_type=GOAL_TYPES["delete_content"], needs=["delete"])
    return [step], "\n".join(summary), goal


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def synthesize_plan(
    requirements: Requirements,
    script: ScriptPlan | None = None,
    registry: CapabilityRegistry | None = None,
) -> CanvasInstructionPlan:
    registry = registry or CapabilityRegistry.default()
    timeline = None
    if requirements.is_video:
        steps, summary, goal, timeline = _build_video_plan(requirements, script, registry)
    elif requirements.task in IMAGE_TASKS:
        steps, summary, goal = _build_image_plan(requirements, registry)
    elif requirements.task == "plugin_action":
        steps, summary, goal = _build_plugin_plan(requirements, registry)
    elif requirements.task == "delete_content":
        steps, summary, goal = _build_delete_plan(requirements)
    else:
        raise PlanningError(f"No plan can be built for task {requirements.task!r}")

    plan = CanvasInstructionPlan(
        id=f"plan-{uuid.uuid4()}",
        summary=summary,
        steps=steps,
        metadata=PlanMetadata(source_goal=goal, compiled_at=time.time()),
        requires_confirmation=True,
        timeline=timeline,
    )
    log.info("Synthesized %s plan %s with %d step(s)", requirements.task, plan.id, len(steps))
    return plan
