import pytest
from canvasplan.decision import CLARIFY_REPLY
from canvasplan.session import PREVIEW_OPTIONS, TRANSITIONS, Event, SessionOrchestrator
from schemas import CanvasContext, ChoosePrimaryReference, Phase, ValidationResult

SUNSET_INTENT = {
    "task": "text_to_video", "topic": "sunset", "platform": "youtube", "aspectRatio": "16:9",
    "resolution": "720p", "model": "Zorblax",
}
SUNSET_REQUEST = "make a 6 second video of a sunset with the Zorblax model, no script"


def _scenes(*durations):
    return [{"scene": i + 1, "prompt": f"shot {i + 1}", "durationSeconds": d} for i, d in enumerate(durations)]


class Chat:
    """Drives one conversation through the orchestrator, keeping the latest session."""

    def __init__(self, scripted, registry, *replies, selected=()):
        self.complete = scripted(*replies)
        self.orchestrator = SessionOrchestrator(self.complete, registry)
        self.context = CanvasContext(selected_image_ids=list(selected))
        self.session = self.orchestrator.new_session(self.context)
        self.result = None

    def say(self, message):
        self.result = self.orchestrator.handle_message(self.session, message, self.context)
        self.session = self.result.session
        return self.result.reply

    def fix(self, fix_id):
        self.result = self.orchestrator.apply_fix(self.session, fix_id)
        self.session = self.result.session
        return self.result.reply

    @property
    def phase(self):
        return self.session.phase


def _sunset_preview(scripted, registry, *replies):
    chat = Chat(scripted, registry, SUNSET_INTENT, *replies)
    chat.say(SUNSET_REQUEST)
    assert chat.phase == Phase.GRAPH_PREVIEW
    return chat


def test_every_transition_has_a_handler():
    for transition in TRANSITIONS.values():
        assert hasattr(SessionOrchestrator, transition.handler)
    for phase in Phase:
        assert (phase, Event.CANCEL) in TRANSITIONS


def test_full_video_flow(scripted, registry):
    chat = Chat(
        scripted, registry,
        {"task": "text_to_video", "topic": "new sneakers", "durationSeconds": 20, "platform": "youtube",
         "explanation": "A 20 second sneaker video."},
        {"script": "Sneakers on the move.", "scenes": _scenes(8, 8, 4)},
    )
    reply = chat.say("make a 20 second video about our new sneakers")
    assert chat.phase == Phase.COLLECTING_REQUIREMENTS
    assert reply.startswith("A 20 second sneaker video.")
    assert chat.session.current_question.key == "aspect_ratio"

    chat.say("B")
    assert chat.session.current_question.key == "resolution"
    chat.say("A")
    assert chat.session.current_question.key == "transition_mode"
    chat.say("A")
    assert chat.session.current_question.key == "needs_script_confirmation"

    reply = chat.say("yes")
    assert chat.phase == Phase.SCRIPT_REVIEW
    assert "Sneakers on the move." in reply

    reply = chat.say("looks good")
    assert chat.phase == Phase.GRAPH_PREVIEW
    assert reply.count("PLAN PARAMETERS") == 1
    assert reply.endswith(PREVIEW_OPTIONS)
    plan = chat.session.graph_plan
    assert plan.step("frames").count == 4
    assert plan.step("script").config_template.content == "Sneakers on the move."

    reply = chat.say("A")
    assert chat.result.plan_to_execute.id == plan.id
    assert chat.phase == Phase.IDLE
    assert chat.session.requirements is None
    assert len(chat.complete.prompts) == 2


def test_turns_do_not_mutate_input(scripted, registry):
    chat = Chat(scripted, registry, SUNSET_INTENT)
    before = chat.session
    chat.say(SUNSET_REQUEST)
    assert before.phase == Phase.IDLE
    assert before.graph_plan is None
    assert chat.session.turn == before.turn + 1


def test_unparseable_request_stays_idle(scripted, registry):
    chat = Chat(scripted, registry, "not json at all")
    reply = chat.say("do the thing")
    assert chat.phase == Phase.IDLE
    assert "not json at all" in reply


def test_explain(scripted, registry):
    chat = Chat(scripted, registry, {"task": "explain"})
    reply = chat.say("what can you do?")
    assert chat.phase == Phase.IDLE
    assert "VIDEO MODELS" in reply


def test_referenced_image_out_of_range(scripted, registry):
    chat = Chat(scripted, registry, {"task": "image_to_video"}, selected=["img-a"])
    reply = chat.say("animate the 3rd image")
    assert chat.phase == Phase.IDLE
    assert "image 3" in reply
    assert "only 1 image(s)" in reply


def test_unknown_model_in_request_falls_back(scripted, registry):
    chat = Chat(scripted, registry, SUNSET_INTENT)
    reply = chat.say(SUNSET_REQUEST)
    assert 'called "Zorblax"' in reply
    assert "PLAN PARAMETERS" in reply
    assert chat.session.graph_plan.step("video").config_template.model == "veo-3.1"


def test_edit_then_auto_fix(scripted, registry):
    chat = _sunset_preview(scripted, registry, {"intent": "EDIT_PLAN", "changes": {"model": "Sora 2 Pro"}})
    reply = chat.say("switch to Sora 2 Pro")
    assert chat.phase == Phase.EDIT_CONFIRMATION
    assert "Model: sora-2-pro" in reply

    reply = chat.say("A")
    assert chat.phase == Phase.GRAPH_PREVIEW
    assert chat.session.graph_plan.step("video").config_template.model == "sora-2-pro"
    assert "[fix-1] Set video duration to 8 seconds" in reply

    reply = chat.fix("fix-1")
    assert reply.startswith("Applied: Set video duration to 8 seconds")
    assert chat.session.graph_plan.step("video").config_template.duration == 8
    assert chat.session.validation.warnings == []


def test_edit_with_unknown_model_keeps_plan(scripted, registry):
    chat = _sunset_preview(scripted, registry, {"intent": "EDIT_PLAN", "changes": {"model": "Zorblax 9"}})
    plan_id = chat.session.graph_plan.id
    reply = chat.say("use Zorblax 9 instead")
    assert chat.phase == Phase.GRAPH_PREVIEW
    assert "Zorblax 9" in reply
    assert "The plan is unchanged." in reply
    assert chat.session.graph_plan.id == plan_id


def test_edit_unclear_then_rejected(scripted, registry):
    chat = _sunset_preview(scripted, registry, {"intent": "EDIT_PLAN", "changes": {"aspectRatio": "9:16"}})
    plan_id = chat.session.graph_plan.id
    chat.say("make it vertical")
    assert chat.phase == Phase.EDIT_CONFIRMATION

    chat.say("hmm maybe")
    assert chat.phase == Phase.EDIT_CONFIRMATION

    reply = chat.say("keep the current one")
    assert chat.phase == Phase.GRAPH_PREVIEW
    assert chat.session.pending_edit is None
    assert chat.session.graph_plan.id == plan_id
    assert "PLAN PARAMETERS" not in reply


def test_edit_applied(scripted, registry):
    chat = _sunset_preview(scripted, registry, {"intent": "EDIT_PLAN", "changes": {"aspectRatio": "9:16"}})
    chat.say("make it vertical")
    chat.say("apply")
    assert chat.session.graph_plan.step("video").config_template.aspect_ratio == "9:16"
    assert chat.session.requirements.aspect_ratio == "9:16"


def test_clarify(scripted, registry):
    chat = _sunset_preview(scripted, registry, "what?")
    reply = chat.say("hmm, what about the colours")
    assert chat.phase == Phase.GRAPH_PREVIEW
    assert reply == CLARIFY_REPLY


def test_cancel_from_any_phase(scripted, registry):
    chat = Chat(scripted, registry, {"task": "text_to_video"})
    assert chat.say("cancel").startswith("Nothing to cancel")
    chat.say("make a video about coffee")
    assert chat.phase == Phase.COLLECTING_REQUIREMENTS
    reply = chat.say("cancel")
    assert chat.phase == Phase.IDLE
    assert chat.session.requirements is None
    assert reply.startswith("Cancelled")


def test_unrelated_request_discards_preview(scripted, registry):
    chat = _sunset_preview(scripted, registry, {"task": "text_to_image", "topic": "red car"})
    reply = chat.say("generate 2 images of a red car")
    assert reply.startswith("Starting over")
    assert chat.phase == Phase.GRAPH_PREVIEW
    assert chat.session.graph_plan.step("images").count == 2


def test_execute_refused_with_blocking_errors(scripted, registry):
    chat = _sunset_preview(scripted, registry)
    chat.session.validation = ValidationResult(ok=False, errors=["Something is broken."])
    reply = chat.say("A")
    assert chat.phase == Phase.GRAPH_PREVIEW
    assert chat.result.plan_to_execute is None
    assert "Something is broken." in reply


def test_duration_reasked_then_mode_asked(scripted, registry):
    chat = Chat(scripted, registry, {"task": "text_to_video", "topic": "coffee", "platform": "youtube",
                                     "aspectRatio": "16:9", "resolution": "720p"})
    chat.say("make a video about coffee, no script")
    assert chat.session.current_question.key == "duration"

    reply = chat.say("not sure")
    assert reply.startswith("Sorry, I didn't catch that.")
    assert chat.session.current_question.key == "duration"

    chat.say("C")
    assert chat.session.current_question.key == "transition_mode"
    chat.say("B")
    plan = chat.session.graph_plan
    assert plan.step("frames").count == 5
    assert len(plan.steps_of("video-generator")) == 5


def test_script_revision(scripted, registry):
    chat = Chat(
        scripted, registry,
        {"task": "text_to_video", "topic": "coffee", "durationSeconds": 8, "platform": "youtube",
         "aspectRatio": "16:9", "resolution": "720p"},
        {"script": "Steam.", "scenes": _scenes(8)},
        {"script": "Upbeat.", "scenes": _scenes(8)},
    )
    chat.say("make an 8 second video about coffee")
    assert chat.session.current_question.key == "needs_script_confirmation"
    chat.say("yes")
    assert chat.phase == Phase.SCRIPT_REVIEW

    chat.say("make it more upbeat")
    assert chat.phase == Phase.SCRIPT_REVIEW
    assert chat.session.script_plan.script == "Upbeat."
    assert "feedback: make it more upbeat" in chat.complete.prompts[-1]

    chat.say("approve")
    assert chat.phase == Phase.GRAPH_PREVIEW
    assert chat.session.graph_plan.step("script").config_template.content == "Upbeat."


def test_user_scenes_are_used_verbatim(scripted, registry):
    chat = Chat(scripted, registry, {"task": "text_to_video", "topic": "coffee", "platform": "youtube",
                                     "aspectRatio": "16:9", "resolution": "720p"})
    reply = chat.say("make a video\nscene: cup on a windowsill | 6\nscene: steam rising | 4")
    assert "Using your 2 scene(s)" in reply
    assert chat.session.script_frozen
    assert chat.session.requirements.duration_seconds == 10
    assert chat.session.current_question.key == "transition_mode"

    chat.say("A")
    plan = chat.session.graph_plan
    assert plan.step("frames").count == 3
    assert [v.config_template.duration for v in plan.steps_of("video-generator")] == [6, 4]
    assert len(chat.complete.prompts) == 1


def test_two_references_and_primary_fix(scripted, registry):
    chat = Chat(
        scripted, registry,
        {"task": "image_to_video", "topic": "shoe", "platform": "youtube", "aspectRatio": "16:9", "resolution": "720p"},
        selected=["img-1", "img-2"],
    )
    chat.say("animate these into a 6 second clip, no script")
    assert chat.session.current_question.key == "reference_images"
    chat.say("B")
    assert chat.session.current_question.key == "transition_mode"
    chat.say("C")
    video = chat.session.graph_plan.step("video")
    assert video.config_template.connect_to_frames.first_frame_id == "img-1"

    [choose] = [f for f in chat.session.validation.fixes if isinstance(f, ChoosePrimaryReference)]
    chat.fix(choose.id)
    video = chat.session.graph_plan.step("video")
    assert video.config_template.connect_to_frames.first_frame_id == "img-2"


def test_plugin_request(scripted, registry):
    chat = Chat(scripted, registry, {"task": "image_to_image"}, selected=["img-1"])
    chat.say("remove the background")
    step = chat.session.graph_plan.step("plugin")
    assert step.plugin_id == "remove-bg"
    assert step.target_ids == ["img-1"]


def test_unknown_plugin(scripted, registry):
    chat = Chat(scripted, registry, {"task": "plugin_action", "pluginId": "teleport"}, selected=["img-1"])
    reply = chat.say("teleport this picture")
    assert chat.phase == Phase.IDLE
    assert 'plugin called "teleport"' in reply


def test_apply_fix_without_preview(scripted, registry):
    chat = Chat(scripted, registry)
    assert chat.fix("fix-1") == "There is no plan preview to fix right now."
    chat = _sunset_preview(scripted, registry)
    assert chat.fix("fix-99").startswith("Unknown fix 'fix-99'")


def test_plugin_words_edit_a_video_plan(scripted, registry):
    chat = _sunset_preview(
        scripted, registry,
        {"intent": "EDIT_PLAN", "changes": {"resolution": "1080p"}},
        {"intent": "EDIT_PLAN", "changes": {"prompt": "brighter lighting"}},
    )
    plan_id = chat.session.graph_plan.id
    reply = chat.say("increase the resolution to 1080p")
    assert chat.phase == Phase.EDIT_CONFIRMATION
    assert "Resolution: 1080p" in reply
    assert chat.session.requirements.task == "text_to_video"

    chat.say("B")
    reply = chat.say("make the next scene brighter")
    assert chat.phase == Phase.EDIT_CONFIRMATION
    assert "Prompt: brighter lighting" in reply
    assert chat.session.graph_plan.id == plan_id


def test_messages_that_start_with_cancel_words(scripted, registry):
    chat = _sunset_preview(scripted, registry, {"intent": "EDIT_PLAN", "changes": {"aspectRatio": "9:16"}})
    chat.say("reset the aspect ratio to 9:16")
    assert chat.phase == Phase.EDIT_CONFIRMATION
    assert chat.session.pending_edit.aspect_ratio == "9:16"

    chat = Chat(scripted, registry, {"task": "text_to_video", "topic": "stop motion cat", "platform": "youtube",
                                     "aspectRatio": "16:9", "resolution": "720p"})
    assert chat.say("stop.").startswith("Nothing to cancel")
    chat.say("stop motion video of a cat, 6 seconds")
    assert chat.phase == Phase.COLLECTING_REQUIREMENTS
    assert chat.session.requirements.duration_seconds == 6
    assert chat.say("cancel it please").startswith("Cancelled")


def test_model_edit_resegments_clips(scripted, registry):
    chat = Chat(
        scripted, registry,
        {"task": "text_to_video", "topic": "sneakers", "durationSeconds": 20, "platform": "youtube",
         "aspectRatio": "9:16", "resolution": "720p", "model": "Kling 2.5 Turbo Pro"},
        {"intent": "EDIT_PLAN", "changes": {"model": "Veo 3.1", "aspectRatio": "16:9", "resolution": "1080p"}},
    )
    chat.say("make a 20 second video about sneakers on Kling, no script")
    assert chat.session.current_question.key == "transition_mode"
    chat.say("A")
    before = chat.session.graph_plan.steps_of("video-generator")
    assert [v.config_template.duration for v in before] == [10, 10]

    chat.say("use model Veo 3.1, make it 16:9, 1080p")
    assert chat.phase == Phase.EDIT_CONFIRMATION
    chat.say("A")
    requirements = chat.session.requirements
    assert (requirements.model, requirements.aspect_ratio, requirements.resolution) == ("veo-3.1", "16:9", "1080p")
    videos = chat.session.graph_plan.steps_of("video-generator")
    assert [v.config_template.duration for v in videos] == [8, 8, 4]
    assert {v.config_template.model for v in videos} == {"veo-3.1"}
    assert chat.session.graph_plan.step("frames").count == 4
    assert chat.session.validation.warnings == []


def test_duration_edit_rescales_generated_script(scripted, registry):
    chat = Chat(
        scripted, registry,
        {"task": "text_to_video", "topic": "sneakers", "durationSeconds": 20, "platform": "youtube",
         "aspectRatio": "16:9", "resolution": "720p"},
        {"script": "Sneakers on the move.", "scenes": _scenes(8, 8, 4)},
        {"intent": "EDIT_PLAN", "changes": {"durationSeconds": 12}},
    )
    chat.say("make a 20 second video about sneakers")
    chat.say("A")
    chat.say("yes")
    chat.say("approve")
    assert chat.phase == Phase.GRAPH_PREVIEW

    chat.say("make it 12 seconds long")
    reply = chat.say("A")
    assert "Scene lengths rescaled to fit 12s." in reply
    assert [s.duration_seconds for s in chat.session.script_plan.scenes] == [5, 5, 2]
    assert chat.session.graph_plan.step("script").config_template.content == "Sneakers on the move."


def test_duration_edit_keeps_user_scenes(scripted, registry):
    chat = Chat(
        scripted, registry,
        {"task": "text_to_video", "topic": "coffee", "platform": "youtube", "aspectRatio": "16:9",
         "resolution": "720p"},
        {"intent": "EDIT_PLAN", "changes": {"durationSeconds": 30}},
    )
    chat.say("make a video\nscene: cup on a windowsill | 6\nscene: steam rising | 4")
    chat.say("A")
    chat.say("make it 30 seconds")
    reply = chat.say("A")
    assert "Your scenes set the length, so the video stays 10s." in reply
    assert chat.session.requirements.duration_seconds == 10
    videos = chat.session.graph_plan.steps_of("video-generator")
    assert [v.config_template.duration for v in videos] == [6, 4]
