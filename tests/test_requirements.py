import pytest
from canvasplan.requirements import (
    apply_requirement_answer, build_requirement_questions, duration_question, match_option, platform_question,
    question_settled, reference_count_question, requirements_from_intent, script_confirmation_question,
    slot_filled, transition_mode_question, aspect_question, resolution_question,
)
from schemas import CanvasContext, IntentResult, Requirements

def _keys(questions):
    return [q.key for q in questions]

def test_video_questions_in_order(registry):
    intent = IntentResult(task="text_to_video", needs_script=True)
    questions = build_requirement_questions(intent, CanvasContext(), registry)
    assert _keys(questions) == [
        "topic", "duration", "platform", "aspect_ratio", "resolution", "needs_script_confirmation",
    ]

def test_long_video_asks_mode_before_script(registry):
    intent = IntentResult(task="text_to_video", topic="sneakers", duration_seconds=20, platform="youtube",
                          aspect_ratio="16:9", resolution="720p", needs_script=True)
    questions = build_requirement_questions(intent, CanvasContext(), registry)
    assert _keys(questions) == ["transition_mode", "needs_script_confirmation"]

def test_long_model_clip_needs_no_mode(registry):
    intent = IntentResult(task="text_to_video", topic="sneakers", duration_seconds=12, platform="youtube",
                          aspect_ratio="16:9", resolution="720p", model="sora-2-pro")
    assert build_requirement_questions(intent, CanvasContext(), registry) == []

def test_image_to_video_with_two_selected(registry):
    intent = IntentResult(task="image_to_video", topic="shoe", duration_seconds=6, platform="youtube",
                          aspect_ratio="16:9", resolution="720p")
    context = CanvasContext(selected_image_ids=["img-1", "img-2"])
    assert _keys(build_requirement_questions(intent, context, registry)) == ["reference_images", "transition_mode"]

@pytest.mark.parametrize("task", ["image_to_image", "delete_content"])
def test_edit_without_selection_asks_for_image(registry, task):
    questions = build_requirement_questions(IntentResult(task=task), CanvasContext(), registry)
    assert _keys(questions) == ["reference_images"]
    assert questions[0].options == []

def test_text_to_image_needs_nothing(registry):
    assert build_requirement_questions(IntentResult(task="text_to_image"), CanvasContext(), registry) == []

def test_requirements_from_intent_moves_referenced_image_first():
    intent = IntentResult(task="image_to_video", referenced_image_index=2)
    req = requirements_from_intent(intent, CanvasContext(selected_image_ids=["a", "b", "c"]))
    assert req.reference_image_ids == ["b", "a", "c"]
    req = requirements_from_intent(IntentResult(task="text_to_image"), CanvasContext(selected_image_ids=["a"]))
    assert req.reference_image_ids == []

def test_match_option():
    q = platform_question()
    assert match_option(q, "b") == "youtube"
    assert match_option(q, "Option C") == "website"
    assert match_option(q, "youtube") == "youtube"
    assert match_option(q, "A)") == "instagram_reel"
    assert match_option(q, "somewhere") is None

def test_duration_answer():
    req = Requirements(task="text_to_video")
    assert apply_requirement_answer(req, duration_question(), "B").duration_seconds == 20
    assert apply_requirement_answer(req, duration_question(), "about 30 seconds").duration_seconds == 30
    unchanged = apply_requirement_answer(req, duration_question(), "not sure")
    assert not slot_filled(unchanged, "duration")

def test_platform_answer_sets_aspect():
    req = apply_requirement_answer(Requirements(task="text_to_video"), platform_question(), "A")
    assert req.platform == "instagram_reel"
    assert req.aspect_ratio == "9:16"
    assert slot_filled(req, "aspect_ratio")

def test_aspect_and_resolution_normalized():
    req = Requirements(task="text_to_video")
    assert apply_requirement_answer(req, aspect_question(), "vertical please").aspect_ratio == "9:16"
    assert apply_requirement_answer(req, aspect_question(), "4x3").aspect_ratio == "4:3"
    assert apply_requirement_answer(req, resolution_question(), "1080").resolution == "1080p"

@pytest.mark.parametrize("answer,mode", [
    ("A", "first_last"),
    ("first frame only", "first_frame"),
    ("use the same image for all", "single"),
    ("hmm", None),
])
def test_transition_mode_answer(answer, mode):
    req = apply_requirement_answer(Requirements(task="text_to_video"), transition_mode_question(), answer)
    assert req.mode == mode

def test_script_confirmation_answer():
    req = Requirements(task="text_to_video", needs_script=True)
    assert apply_requirement_answer(req, script_confirmation_question(), "no thanks").needs_script is False
    assert apply_requirement_answer(req, script_confirmation_question(), "B").needs_script is False
    assert apply_requirement_answer(req, script_confirmation_question(), "yes").needs_script is True

def test_reference_count_answer():
    context = CanvasContext(selected_image_ids=["a", "b", "c"])
    req = Requirements(task="image_to_video", reference_image_ids=["a", "b", "c"])
    assert apply_requirement_answer(req, reference_count_question(), "A", context).reference_image_ids == ["a"]
    # the count question is asked even though the selection already fills the slot
    assert not question_settled(req, reference_count_question())
