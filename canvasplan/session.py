"""Conversation state machine for one chat.

    IDLE --request--> COLLECTING_REQUIREMENTS --answers--> SCRIPT_REVIEW --approve--> GRAPH_PREVIEW
                                                                                     |  execute -> IDLE
                                                              EDIT_CONFIRMATION <-- edit
                                                                apply / reject --> GRAPH_PREVIEW

A turn takes a Session and returns a new one; nothing is kept on the
orchestrator between turns.  Each (phase, event) pair maps to one handler and
the set of phases that handler may leave the session in.  "cancel" resets to
IDLE from any phase.  A plan preview is discarded when the user starts an
unrelated request instead of answering it.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

from schemas import (
    CanvasContext, PlanChanges, PlanDecision, Phase, Requirements, ScenePlan, Session, TurnResult, IMAGE_TASKS,
)

from .decision import CLARIFY_REPLY, resolve_plan_decision
from .intent import classify_intent, detect_plugin
from .llm import CompletionFn
from .planner import PlanningError, expand_scenes_to_clips, synthesize_plan
from .registry import CapabilityRegistry, UnknownReferenceError
from .requirements import (
    REASK_KEYS, apply_requirement_answer, build_requirement_questions, needs_transition_mode,
    question_settled, requirements_from_intent, slot_filled, transition_mode_question,
)
from .scriptgen import (
    format_script_review, generate_script_plan, parse_user_script, rescale_script, script_request_for,
)
from .validator import apply_auto_fix, validate_plan

log = logging.getLogger(__name__)

PREVIEW_OPTIONS = "A) Execute  B) Cancel, or tell me what to change."
EDIT_OPTIONS = "A) Apply these changes  B) Keep the current plan"

_CANCEL_RE = re.compile(
    r"^(cancel|stop|abort|reset|start over|never ?mind)(\s+(it|that|this|please))*[.!]*$", re.IGNORECASE
)
_APPROVE_RE = re.compile(
    r"^(a|approve|approved|yes|yep|ok|okay|looks good|sounds good|good|great|perfect|continue|next)\b", re.IGNORECASE
)
_APPLY_RE = re.compile(r"^(a|apply|yes|yep|ok|okay|confirm|do it|sure)\b", re.IGNORECASE)
_REJECT_RE = re.compile(r"^(b|keep|reject|no|nope|discard|don'?t)\b", re.IGNORECASE)
_NEW_REQUEST_RE = re.compile(
    r"\b(create|generate|make|produce|design|draw)\b.*\b(images?|pictures?|photos?|videos?|clips?|animation|reel)\b",
    re.IGNORECASE,
)
_VIDEO_WORD_RE = re.compile(r"\b(video|videos|clip|clips|animation|animate|reel)\b", re.IGNORECASE)


class Event(str, Enum):
    REQUEST = "request"
    ANSWER = "answer"
    APPROVE_SCRIPT = "approve_script"
    REVISE_SCRIPT = "revise_script"
    EXECUTE = "execute"
    EDIT = "edit"
    CLARIFY = "clarify"
    NEW_REQUEST = "new_request"
    APPLY_EDIT = "apply_edit"
    REJECT_EDIT = "reject_edit"
    UNCLEAR = "unclear"
    CANCEL = "cancel"


@dataclass(frozen=True)
class Transition:
    handler: str
    targets: frozenset


_P = Phase
_AFTER_REQUEST = frozenset({_P.IDLE, _P.COLLECTING_REQUIREMENTS, _P.SCRIPT_REVIEW, _P.GRAPH_PREVIEW})

TRANSITIONS: dict[tuple[Phase, Event], Transition] = {
    (_P.IDLE, Event.REQUEST): Transition("_on_request", _AFTER_REQUEST),
    (_P.COLLECTING_REQUIREMENTS, Event.ANSWER): Transition(
        "_on_answer", frozenset({_P.IDLE, _P.COLLECTING_REQUIREMENTS, _P.SCRIPT_REVIEW, _P.GRAPH_PREVIEW})),
    (_P.SCRIPT_REVIEW, Event.ANSWER): Transition(
        "_on_answer", frozenset({_P.IDLE, _P.SCRIPT_REVIEW, _P.GRAPH_PREVIEW})),
    (_P.SCRIPT_REVIEW, Event.APPROVE_SCRIPT): Transition(
        "_on_approve_script", frozenset({_P.IDLE, _P.SCRIPT_REVIEW, _P.GRAPH_PREVIEW})),
    (_P.SCRIPT_REVIEW, Event.REVISE_SCRIPT): Transition("_on_revise_script", frozenset({_P.SCRIPT_REVIEW})),
    (_P.GRAPH_PREVIEW, Event.EXECUTE): Transition("_on_execute", frozenset({_P.IDLE, _P.GRAPH_PREVIEW})),
    (_P.GRAPH_PREVIEW, Event.EDIT): Transition("_on_edit", frozenset({_P.GRAPH_PREVIEW, _P.EDIT_CONFIRMATION})),
    (_P.GRAPH_PREVIEW, Event.CLARIFY): Transition("_on_clarify", frozenset({_P.GRAPH_PREVIEW})),
    (_P.GRAPH_PREVIEW, Event.NEW_REQUEST): Transition("_on_new_request", _AFTER_REQUEST),
    (_P.EDIT_CONFIRMATION, Event.APPLY_EDIT): Transition("_on_apply_edit", frozenset({_P.IDLE, _P.GRAPH_PREVIEW})),
    (_P.EDIT_CONFIRMATION, Event.REJECT_EDIT): Transition("_on_reject_edit", frozenset({_P.GRAPH_PREVIEW})),
    (_P.EDIT_CONFIRMATION, Event.UNCLEAR): Transition("_on_unclear_edit", frozenset({_P.EDIT_CONFIRMATION})),
}
for _phase in Phase:
    TRANSITIONS[(_phase, Event.CANCEL)] = Transition("_on_cancel", frozenset({_P.IDLE}))


def reset_session(session: Session) -> Session:
    """A fresh IDLE session that keeps the conversation id and canvas context."""
    return Session(session_id=session.session_id, context=session.context, turn=session.turn)


class SessionOrchestrator:
    def __init__(self, complete: CompletionFn, registry: CapabilityRegistry | None = None) -> None:
        self.complete = complete
        self.registry = registry or CapabilityRegistry.default()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def new_session(self, context: CanvasContext | None = None) -> Session:
        return Session(context=context or CanvasContext())

    def handle_message(self, session: Session, message: str, context: CanvasContext | None = None) -> TurnResult:
        session = session.model_copy(deep=True)
        if context is not None:
            session.context = context
        session.turn += 1

        event, payload = self._detect_event(session, message)
        transition = TRANSITIONS[(session.phase, event)]
        before = session.phase
        result: TurnResult = getattr(self, transition.handler)(session, message, payload)
        after = result.session.phase
        if after not in transition.targets:
            raise RuntimeError(f"{transition.handler} moved session from {before.value} to {after.value}")
        log.info("Session %s: %s --%s--> %s", session.session_id, before.value, event.value, after.value)
        return result

    def apply_fix(self, session: Session, fix_id: str) -> TurnResult:
        """Apply one of the validator's auto-fixes and re-synthesize the plan."""
        session = session.model_copy(deep=True)
        session.turn += 1
        if session.phase != Phase.GRAPH_PREVIEW or session.validation is None:
            return TurnResult(session=session, reply="There is no plan preview to fix right now.")
        fix = session.validation.fix(fix_id)
        if fix is None:
            known = ", ".join(f.id for f in session.validation.fixes) or "none"
            return TurnResult(session=session, reply=f"Unknown fix {fix_id!r}. Available fixes: {known}.")
        session.requirements = apply_auto_fix(session.requirements, fix)
        log.info("Session %s: applied %s (%s)", session.session_id, fix.id, fix.kind)
        return self._reply(session, f"Applied: {fix.label}\n\n" + self._synthesize(session))

    # ------------------------------------------------------------------
    # Event detection
    # ------------------------------------------------------------------

    def _detect_event(self, session: Session, message: str):
        text = message.strip()
        if _CANCEL_RE.match(text):
            return Event.CANCEL, None
        phase = session.phase
        if phase == Phase.IDLE:
            return Event.REQUEST, None
        if phase == Phase.COLLECTING_REQUIREMENTS:
            return Event.ANSWER, None
        if phase == Phase.SCRIPT_REVIEW:
            if session.current_question is not None:
                return Event.ANSWER, None
            if _APPROVE_RE.match(text):
                return Event.APPROVE_SCRIPT, None
            return Event.REVISE_SCRIPT, None
        if phase == Phase.GRAPH_PREVIEW:
            if self._is_unrelated_request(session, text):
                return Event.NEW_REQUEST, None
            decision = resolve_plan_decision(text, session.graph_plan.summary, self.complete, self.registry)
            events = {
                "EXECUTE": Event.EXECUTE,
                "CANCEL": Event.CANCEL,
                "EDIT_PLAN": Event.EDIT,
                "CLARIFY": Event.CLARIFY,
            }
            return events[decision.intent], decision
        if _APPLY_RE.match(text):
            return Event.APPLY_EDIT, None
        if _REJECT_RE.match(text):
            return Event.REJECT_EDIT, None
        return Event.UNCLEAR, None

    def _is_unrelated_request(self, session: Session, message: str) -> bool:
        """A fresh creation request for a different kind of output than the plan on screen."""
        requirements = session.requirements
        if requirements is None:
            return False
        plugin_id = detect_plugin(message)
        # on a video plan, plugin words ("increase the resolution", "next scene") are edits
        if plugin_id is not None and not requirements.is_video and plugin_id != requirements.plugin_id:
            return True
        if not _NEW_REQUEST_RE.search(message):
            return False
        return bool(_VIDEO_WORD_RE.search(message)) != requirements.is_video

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_request(self, session: Session, message: str, payload) -> TurnResult:
        context = session.context
        plugin_ids = [p.id for p in self.registry.models("plugin")]
        intent = classify_intent(message, context, self.complete, plugin_ids)

        if intent.task == "unknown":
            return self._reply(session, intent.explanation + "\nTry something like \"make a 20 second video about our new sneakers\".")
        if intent.task == "explain":
            return self._reply(session, self.registry.describe())

        selected = len(context.selected_image_ids)
        if intent.referenced_image_index is not None and intent.referenced_image_index > selected:
            return self._reply(
                session,
                f"You mentioned image {intent.referenced_image_index}, but only {selected} image(s) are selected."
                " Select the image on the canvas and try again.",
            )
        if intent.task == "plugin_action":
            try:
                plugin = self.registry.require(intent.plugin_id or "", "plugin")
            except UnknownReferenceError as exc:
                return self._reply(session, exc.user_message)
            intent = intent.model_copy(update={"plugin_id": plugin.id})

        notes: list[str] = []
        requirements = requirements_from_intent(intent, context)
        if requirements.model:
            try:
                requirements = self._with_model(requirements, requirements.model)
            except UnknownReferenceError as exc:
                notes.append(exc.user_message + " I'll use the default model.")
                requirements = requirements.model_copy(update={"model": None})
                intent = intent.model_copy(update={"model": None})

        if requirements.is_video:
            user_script = parse_user_script(message)
            if user_script is not None:
                session.script_plan = user_script
                session.script_frozen = True
                requirements = requirements.model_copy(update={
                    "needs_script": False,
                    "duration_seconds": requirements.duration_seconds or user_script.total_seconds,
                })
                notes.append(f"Using your {len(user_script.scenes)} scene(s) as the script.")

        session.requirements = requirements
        session.pending_questions = build_requirement_questions(intent, context, self.registry)
        session.current_question_index = 0
        if intent.explanation:
            notes.insert(0, intent.explanation)
        reply = self._ask_next(session)
        return self._reply(session, "\n".join(notes + [reply]) if notes else reply)

    def _on_answer(self, session: Session, message: str, payload) -> TurnResult:
        question = session.current_question
        session.requirements = apply_requirement_answer(session.requirements, question, message, session.context)
        if question.key in REASK_KEYS and not slot_filled(session.requirements, question.key):
            return self._reply(session, "Sorry, I didn't catch that.\n" + question.render())
        session.current_question_index += 1
        return self._reply(session, self._ask_next(session))

    def _on_approve_script(self, session: Session, message: str, payload) -> TurnResult:
        if self._mode_unresolved(session):
            session.pending_questions = [transition_mode_question()]
            session.current_question_index = 0
            return self._reply(session, session.pending_questions[0].render())
        return self._reply(session, self._synthesize(session))

    def _on_revise_script(self, session: Session, message: str, payload) -> TurnResult:
        request = script_request_for(
            session.requirements, self._max_clip(session.requirements),
            feedback=message, previous=session.script_plan,
        )
        session.script_plan = generate_script_plan(request, self.complete)
        return self._reply(session, "Here's the revised script.\n\n" + format_script_review(session.script_plan))

    def _on_execute(self, session: Session, message: str, decision: PlanDecision) -> TurnResult:
        validation = session.validation
        if validation is not None and validation.errors:
            lines = ["This plan can't run yet:"] + [f"- {e}" for e in validation.errors]
            return self._reply(session, "\n".join(lines + ["", PREVIEW_OPTIONS]))
        plan = session.graph_plan
        fresh = reset_session(session)
        log.info("Session %s: plan %s approved for execution", session.session_id, plan.id)
        return self._reply(fresh, "Sending the plan to the canvas.", plan=plan)

    def _on_edit(self, session: Session, message: str, decision: PlanDecision) -> TurnResult:
        changes = decision.changes
        if changes.model:
            try:
                model = self._find_model_for(session.requirements, changes.model)
            except UnknownReferenceError as exc:
                return self._reply(session, exc.user_message + " The plan is unchanged.\n" + PREVIEW_OPTIONS)
            changes = changes.model_copy(update={"model": model.id})

        lines = ["I'll make these changes:"] + [f"- {line}" for line in changes.describe()]
        if changes.count is not None and session.requirements.is_video:
            lines.append("(The number of clips follows the duration, so the count is ignored for videos.)")
        session.pending_edit = changes
        session.phase = Phase.EDIT_CONFIRMATION
        return self._reply(session, "\n".join(lines + [EDIT_OPTIONS]))

    def _on_clarify(self, session: Session, message: str, decision: PlanDecision) -> TurnResult:
        return self._reply(session, decision.reply or CLARIFY_REPLY)

    def _on_new_request(self, session: Session, message: str, payload) -> TurnResult:
        log.info("Session %s: unrelated request, discarding plan", session.session_id)
        result = self._on_request(reset_session(session), message, None)
        result.reply = "Starting over with your new request.\n\n" + result.reply
        return result

    def _on_apply_edit(self, session: Session, message: str, payload) -> TurnResult:
        changes = session.pending_edit
        session.requirements = self._apply_changes(session.requirements, changes)
        session.pending_edit = None
        note = self._fit_script_to_duration(session) if changes.duration_seconds else ""
        return self._reply(session, note + "Updated plan:\n\n" + self._synthesize(session))

    def _on_reject_edit(self, session: Session, message: str, payload) -> TurnResult:
        session.pending_edit = None
        session.phase = Phase.GRAPH_PREVIEW
        return self._reply(session, "Kept the current plan.\n" + PREVIEW_OPTIONS)

    def _on_unclear_edit(self, session: Session, message: str, payload) -> TurnResult:
        return self._reply(session, "Should I apply the change?\n" + EDIT_OPTIONS)

    def _on_cancel(self, session: Session, message: str, payload) -> TurnResult:
        if session.phase == Phase.IDLE:
            return self._reply(session, "Nothing to cancel. What would you like to create?")
        return self._reply(reset_session(session), "Cancelled. What would you like to create next?")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _reply(session: Session, text: str, plan=None) -> TurnResult:
        return TurnResult(session=session, reply=text, plan_to_execute=plan)

    def _max_clip(self, requirements: Requirements) -> int:
        return self.registry.max_clip_seconds(self.registry.resolve(requirements.model, "video"))

    def _clip_count(self, session: Session) -> int:
        requirements = session.requirements
        duration = requirements.duration_seconds or 0
        scenes = session.script_plan.scenes if session.script_plan else [
            ScenePlan(scene=1, prompt="clip", duration_seconds=max(duration, 1))
        ]
        return len(expand_scenes_to_clips(scenes, duration, self._max_clip(requirements)))

    def _mode_unresolved(self, session: Session) -> bool:
        requirements = session.requirements
        if not requirements.is_video or requirements.mode is not None:
            return False
        return len(requirements.reference_image_ids) >= 2 or self._clip_count(session) > 1

    def _ensure_mode_question(self, session: Session) -> None:
        """Ask for the connection mode before the script question once a multi-clip video is known."""
        requirements = session.requirements
        remaining = session.pending_questions[session.current_question_index:]
        if any(q.key == "transition_mode" for q in remaining):
            return
        if not needs_transition_mode(requirements, self._max_clip(requirements)):
            return
        position = len(session.pending_questions)
        for i, q in enumerate(remaining):
            if q.key == "needs_script_confirmation":
                position = session.current_question_index + i
                break
        session.pending_questions.insert(position, transition_mode_question())

    def _ask_next(self, session: Session) -> str:
        """Ask the next open question, or move on once everything is known."""
        self._ensure_mode_question(session)
        while session.current_question is not None:
            question = session.current_question
            if question_settled(session.requirements, question):
                session.current_question_index += 1
                continue
            if session.phase != Phase.SCRIPT_REVIEW:
                session.phase = Phase.COLLECTING_REQUIREMENTS
            return question.render()
        session.pending_questions = []
        session.current_question_index = 0
        return self._advance(session)

    def _advance(self, session: Session) -> str:
        requirements = session.requirements
        if requirements.is_video and requirements.needs_script and session.script_plan is None:
            request = script_request_for(requirements, self._max_clip(requirements))
            session.script_plan = generate_script_plan(request, self.complete)
            session.phase = Phase.SCRIPT_REVIEW
            return "Here's a script for your video.\n\n" + format_script_review(session.script_plan)
        if self._mode_unresolved(session):
            session.pending_questions = [transition_mode_question()]
            session.current_question_index = 0
            if session.phase != Phase.SCRIPT_REVIEW:
                session.phase = Phase.COLLECTING_REQUIREMENTS
            return session.pending_questions[0].render()
        return self._synthesize(session)

    def _synthesize(self, session: Session) -> str:
        try:
            plan = synthesize_plan(session.requirements, session.script_plan, self.registry)
        except PlanningError as exc:
            log.warning("Session %s: planning failed: %s", session.session_id, exc)
            for name, value in reset_session(session):
                setattr(session, name, value)
            return f"I couldn't build a plan: {exc}"
        validation = validate_plan(plan, session.requirements, self.registry)
        session.graph_plan = plan
        session.validation = validation
        session.pending_questions = []
        session.current_question_index = 0
        session.phase = Phase.GRAPH_PREVIEW
        return preview_text(plan.summary, validation)

    def _fit_script_to_duration(self, session: Session) -> str:
        """Keep the script and the requested length in step after a duration edit."""
        requirements = session.requirements
        script = session.script_plan
        if script is None or not requirements.is_video:
            return ""
        if session.script_frozen:
            session.requirements = requirements.model_copy(update={"duration_seconds": script.total_seconds})
            return f"Your scenes set the length, so the video stays {script.total_seconds}s.\n"
        session.script_plan = rescale_script(script, requirements.duration_seconds)
        return f"Scene lengths rescaled to fit {requirements.duration_seconds}s.\n"

    def _find_model_for(self, requirements: Requirements, query: str):
        if requirements.task in IMAGE_TASKS:
            return self.registry.require(query, "image")
        if requirements.is_video:
            found = self.registry.find(query, "video") or self.registry.find(query, "image")
            if found is None:
                raise UnknownReferenceError(
                    "model", query, self.registry.names("video") + self.registry.names("image"))
            return found
        return self.registry.require(query, "plugin")

    def _with_model(self, requirements: Requirements, query: str) -> Requirements:
        model = self._find_model_for(requirements, query)
        if requirements.is_video and model.kind == "image":
            return requirements.model_copy(update={"model": None, "image_model": model.id})
        if requirements.task == "plugin_action":
            return requirements.model_copy(update={"model": None, "plugin_id": model.id})
        return requirements.model_copy(update={"model": model.id})

    def _apply_changes(self, requirements: Requirements, changes: PlanChanges) -> Requirements:
        if changes.model:
            requirements = self._with_model(requirements, changes.model)
        update: dict = {}
        if changes.aspect_ratio:
            update["aspect_ratio"] = changes.aspect_ratio
        if changes.resolution:
            update["resolution"] = changes.resolution
        if changes.duration_seconds and requirements.is_video:
            update["duration_seconds"] = changes.duration_seconds
        if changes.count and not requirements.is_video:
            update["count"] = changes.count
        if changes.prompt:
            update["style" if requirements.is_video else "prompt"] = changes.prompt
        return requirements.model_copy(update=update)


def preview_text(summary: str, validation) -> str:
    """The plan summary (shown once) followed by validation results and the options."""
    lines = [summary]
    if validation.errors:
        lines += ["", "BLOCKING ISSUES"] + [f"- {e}" for e in validation.errors]
    if validation.warnings:
        lines += ["", "WARNINGS"] + [f"- {w}" for w in validation.warnings]
    if validation.fixes:
        lines += ["", "AUTO-FIXES"] + [f"- [{f.id}] {f.label}" for f in validation.fixes]
    lines += ["", PREVIEW_OPTIONS]
    return "\n".join(lines)
