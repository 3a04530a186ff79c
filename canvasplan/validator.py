"""Plan validation against the capability registry.

Errors are structural defects and block execution.  Warnings are capability
mismatches; each comes with auto-fixes that patch Requirements so the plan can
be re-synthesized, never the plan steps themselves.
"""
from __future__ import annotations

import itertools
import logging
import re

from schemas import (
    CanvasInstructionPlan, ChoosePrimaryReference, ConnectSequentiallyStep, CreateImageNode, CreateVideoNode,
    GroupNodesStep, ApplyPluginStep, Requirements, SetAspectRatio, SetConnectionMode,
    SetReferenceStrength, SetResolution, SetVideoDuration, SwitchImageModel, ValidationResult, IMAGE_TASKS,
)

from .registry import CapabilityRegistry

log = logging.getLogger(__name__)

_RESOLUTION_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([kp]?)", re.IGNORECASE)


def resolution_value(resolution: str) -> float | None:
    """Rough pixel height for comparing labels like '720p', '1440' or '2K'."""
    m = _RESOLUTION_RE.search(resolution or "")
    if not m:
        return None
    value = float(m.group(1))
    return value * 1024 if m.group(2).lower() == "k" else value


def aspect_value(aspect: str) -> float | None:
    m = re.match(r"^\s*(\d+(?:\.\d+)?)\s*:\s*(\d+(?:\.\d+)?)\s*$", aspect or "")
    if not m or float(m.group(2)) == 0:
        return None
    return float(m.group(1)) / float(m.group(2))


def closest_duration(seconds: int, supported: list[int]) -> int:
    """Nearest supported duration; ties go to the longer one."""
    return min(supported, key=lambda d: (abs(d - seconds), -d))


def closest_resolution(resolution: str, options: list[str]) -> str:
    target = resolution_value(resolution)
    if target is None:
        return options[0]
    scored = [(o, resolution_value(o)) for o in options]
    scored = [(o, v) for o, v in scored if v is not None] or [(options[0], 0.0)]
    return min(scored, key=lambda ov: (abs(ov[1] - target), -ov[1]))[0]


def closest_aspect(aspect: str, options: list[str]) -> str:
    target = aspect_value(aspect)
    if target is None:
        return options[0]
    scored = [(o, aspect_value(o)) for o in options]
    scored = [(o, v) for o, v in scored if v is not None] or [(options[0], 0.0)]
    return min(scored, key=lambda ov: abs(ov[1] - target))[0]


class _Collector:
    def __init__(self) -> None:
        self.errors: list[str] = []
        self.warnings: list[str] = []
        self.fixes: list = []
        self._ids = itertools.count(1)
        self._seen: set[tuple] = set()

    def fix(self, cls, label: str, **fields) -> None:
        key = (cls.__name__, tuple(sorted(fields.items())))
        if key in self._seen:
            return
        self._seen.add(key)
        self.fixes.append(cls(id=f"fix-{next(self._ids)}", label=label, **fields))


# ---------------------------------------------------------------------------
# Structural checks (blocking)
# ---------------------------------------------------------------------------

def _check_structure(plan: CanvasInstructionPlan, out: _Collector) -> None:
    ids = [s.id for s in plan.steps]
    for dup in sorted({i for i in ids if ids.count(i) > 1}):
        out.errors.append(f"Step id {dup!r} is used more than once.")
    known = set(ids)
    for step in plan.steps:
        if isinstance(step, (ConnectSequentiallyStep, GroupNodesStep)):
            for ref in step.step_ids:
                if ref not in known:
                    out.errors.append(f"Step {step.id!r} references unknown step {ref!r}.")
        if isinstance(step, ApplyPluginStep) and step.target_step_id and step.target_step_id not in known:
            out.errors.append(f"Step {step.id!r} targets unknown step {step.target_step_id!r}.")


def _check_connections(plan: CanvasInstructionPlan, out: _Collector) -> None:
    boundary_users: dict[str, int] = {}
    for step in plan.steps:
        if not isinstance(step, CreateVideoNode):
            continue
        conn = step.config_template.connect_to_frames
        if conn is None:
            continue
        if conn.connection_type == "FIRST_LAST_FRAME":
            if conn.first_frame_index is None or conn.last_frame_index is None:
                out.errors.append(f"Clip step {step.id!r} uses FIRST_LAST_FRAME but is missing frame indices.")
                continue
            if not conn.first_frame_step_id or not conn.last_frame_step_id:
                out.errors.append(f"Clip step {step.id!r} uses FIRST_LAST_FRAME but is missing frame step ids.")
                continue
            refs = [(conn.first_frame_step_id, conn.first_frame_index), (conn.last_frame_step_id, conn.last_frame_index)]
            boundary_users[conn.first_frame_step_id] = boundary_users.get(conn.first_frame_step_id, 0) + 1
        elif conn.first_frame_source == "REFERENCE":
            if not conn.first_frame_id:
                out.errors.append(f"Clip step {step.id!r} uses a reference frame but names no image.")
            continue
        else:
            if conn.first_frame_step_id is None or conn.first_frame_index is None:
                out.errors.append(f"Clip step {step.id!r} uses FIRST_FRAME_ONLY but is missing its frame step or index.")
                continue
            refs = [(conn.first_frame_step_id, conn.first_frame_index)]

        for step_id, index in refs:
            source = plan.step(step_id)
            if not isinstance(source, CreateImageNode):
                out.errors.append(f"Clip step {step.id!r} takes frames from {step_id!r}, which is not an image step.")
            elif not 0 <= index < source.count:
                out.errors.append(
                    f"Clip step {step.id!r} uses frame {index} of {step_id!r}, which only has {source.count} image(s)."
                )

    for step_id, clips in boundary_users.items():
        source = plan.step(step_id)
        if isinstance(source, CreateImageNode) and source.count != clips + 1:
            out.errors.append(
                f"Boundary frame step {step_id!r} has {source.count} image(s) for {clips} clip(s); expected {clips + 1}."
            )


# ---------------------------------------------------------------------------
# Capability checks (warnings + fixes)
# ---------------------------------------------------------------------------

def _clip_durations(step: CreateVideoNode) -> list[int]:
    if step.batch_configs:
        return [b.duration for b in step.batch_configs]
    return [step.config_template.duration] * step.count


def _check_video(plan, requirements: Requirements, registry: CapabilityRegistry, out: _Collector) -> None:
    video_steps = [s for s in plan.steps if isinstance(s, CreateVideoNode)]
    total_clips = sum(s.count for s in video_steps)
    for step in video_steps:
        cfg = step.config_template
        model = registry.find(cfg.model, "video")
        if model is None:
            out.errors.append(f"Clip step {step.id!r} uses unknown video model {cfg.model!r}.")
            continue

        supported = registry.supported_durations(model)
        max_clip = registry.max_clip_seconds(model)
        allowed = supported or list(range(1, max_clip + 1))
        for seconds in sorted(set(_clip_durations(step))):
            if seconds in allowed:
                continue
            out.warnings.append(
                f"{seconds}s is not a clip length {model.name} supports "
                f"({', '.join(str(d) for d in allowed) if supported else f'up to {max_clip}'}s)."
            )
            if total_clips == 1:
                best = closest_duration(seconds, allowed)
                out.fix(SetVideoDuration, f"Set video duration to {best} seconds", seconds=best)

        if model.resolutions and cfg.resolution not in model.resolutions:
            best = closest_resolution(cfg.resolution, model.resolutions)
            out.warnings.append(f"{model.name} does not render {cfg.resolution}.")
            out.fix(SetResolution, f"Set resolution to {best}", resolution=best)

        if model.aspect_ratios and cfg.aspect_ratio not in model.aspect_ratios:
            best = closest_aspect(cfg.aspect_ratio, model.aspect_ratios)
            out.warnings.append(f"{model.name} does not support aspect ratio {cfg.aspect_ratio}.")
            out.fix(SetAspectRatio, f"Set aspect ratio to {best}", aspect_ratio=best)

        conn = cfg.connect_to_frames
        if conn is not None and conn.connection_type == "FIRST_LAST_FRAME" and not model.first_last_frame:
            out.warnings.append(f"{model.name} cannot be conditioned on a last frame.")
            out.fix(SetConnectionMode, "Switch to first-frame mode", mode="first_frame")


def _check_images(plan, requirements: Requirements, registry: CapabilityRegistry, out: _Collector) -> None:
    for step in plan.steps:
        if not isinstance(step, CreateImageNode):
            continue
        cfg = step.config_template
        model = registry.find(cfg.model, "image")
        if model is None:
            out.errors.append(f"Image step {step.id!r} uses unknown image model {cfg.model!r}.")
            continue
        if cfg.target_ids and not model.image_to_image:
            replacement = registry.default_img2img_model()
            out.warnings.append(f"{model.name} cannot work from reference images.")
            if replacement is not None:
                out.fix(SwitchImageModel, f"Switch image model to {replacement.name}", model=replacement.id)
        if requirements.task not in IMAGE_TASKS:
            continue
        if cfg.resolution and model.resolutions and cfg.resolution not in model.resolutions:
            best = closest_resolution(cfg.resolution, model.resolutions)
            out.warnings.append(f"{model.name} does not render {cfg.resolution}.")
            out.fix(SetResolution, f"Set resolution to {best}", resolution=best)
        if model.aspect_ratios and cfg.aspect_ratio not in model.aspect_ratios:
            best = closest_aspect(cfg.aspect_ratio, model.aspect_ratios)
            out.warnings.append(f"{model.name} does not support aspect ratio {cfg.aspect_ratio}.")
            out.fix(SetAspectRatio, f"Set aspect ratio to {best}", aspect_ratio=best)


def _check_plugins(plan, registry: CapabilityRegistry, out: _Collector) -> None:
    for step in plan.steps:
        if isinstance(step, ApplyPluginStep):
            plugin = registry.plugin(step.plugin_id)
            if plugin is None:
                out.errors.append(f"Step {step.id!r} uses unknown plugin {step.plugin_id!r}.")
            elif plugin.image_to_image and not (step.target_ids or step.target_step_id):
                out.errors.append(f"{plugin.name} needs an image to work on.")


def _check_references(requirements: Requirements, out: _Collector) -> None:
    refs = requirements.reference_image_ids
    if len(refs) < 2:
        return
    out.warnings.append(
        f"{len(refs)} reference images selected; {refs[0]} is the primary reference "
        f"(strength {requirements.reference_strength})."
    )
    for ref in refs[1:]:
        out.fix(ChoosePrimaryReference, f"Use {ref} as the primary reference", reference_id=ref, optional=True)
    for strength in ("low", "medium", "high"):
        if strength != requirements.reference_strength:
            out.fix(SetReferenceStrength, f"Set reference strength to {strength}", strength=strength, optional=True)


def validate_plan(
    plan: CanvasInstructionPlan,
    requirements: Requirements,
    registry: CapabilityRegistry | None = None,
) -> ValidationResult:
    registry = registry or CapabilityRegistry.default()
    out = _Collector()
    if not plan.steps:
        out.errors.append("Plan has no steps.")
    _check_structure(plan, out)
    _check_connections(plan, out)
    if requirements.is_video:
        _check_video(plan, requirements, registry, out)
    _check_images(plan, requirements, registry, out)
    _check_plugins(plan, registry, out)
    if requirements.is_video:
        _check_references(requirements, out)
    result = ValidationResult(ok=not out.errors, errors=out.errors, warnings=out.warnings, fixes=out.fixes)
    log.info("Validated %s: %d error(s), %d warning(s)", plan.id, len(result.errors), len(result.warnings))
    return result


def apply_auto_fix(requirements: Requirements, fix) -> Requirements:
    """Apply one auto-fix patch to Requirements."""
    if isinstance(fix, SetVideoDuration):
        update = {"duration_seconds": fix.seconds}
    elif isinstance(fix, SetResolution):
        update = {"resolution": fix.resolution}
    elif isinstance(fix, SetAspectRatio):
        update = {"aspect_ratio": fix.aspect_ratio}
    elif isinstance(fix, SwitchImageModel):
        update = {"model" if requirements.task in IMAGE_TASKS else "image_model": fix.model}
    elif isinstance(fix, SetConnectionMode):
        update = {"mode": fix.mode}
    elif isinstance(fix, ChoosePrimaryReference):
        refs = [r for r in requirements.reference_image_ids if r != fix.reference_id]
        update = {"reference_image_ids": [fix.reference_id] + refs}
    elif isinstance(fix, SetReferenceStrength):
        update = {"reference_strength": fix.strength}
    else:
        raise TypeError(f"Unsupported auto-fix {type(fix).__name__}")
    return requirements.model_copy(update=update)
