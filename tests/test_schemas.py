import pytest
from pydantic import TypeAdapter, ValidationError
from schemas import (
    AutoFix, CanvasInstructionPlan, CreateImageNode, ModelCapability, PlanChanges, RequirementQuestion,
    Requirements, ScenePlan, ScriptPlan, Session, ValidationResult,
)

def test_model_capability_from_camel_case():
    cap = ModelCapability.model_validate({
        "id": "veo-3.1",
        "name": "Veo 3.1",
        "kind": "video",
        "firstLastFrame": True,
        "temporal": {"supportedDurations": [4, 6, 8], "maxOutputSeconds": 8},
    })
    assert cap.first_last_frame is True
    assert cap.temporal.supported_durations == [4, 6, 8]
    assert cap.image_to_image is False

def test_model_capability_invalid_kind():
    with pytest.raises(ValidationError):
        ModelCapability(id="x", name="X", kind="sound")

def test_scene_plan_rejects_zero_duration():
    with pytest.raises(ValidationError):
        ScenePlan(scene=1, prompt="a shot", duration_seconds=0)

def test_script_plan_total():
    plan = ScriptPlan(scenes=[
        ScenePlan(scene=1, prompt="one", duration_seconds=8),
        ScenePlan(scene=2, prompt="two", duration_seconds=4),
    ])
    assert plan.total_seconds == 12

def test_requirements_primary_reference():
    req = Requirements(task="image_to_video", reference_image_ids=["img-2", "img-1"])
    assert req.is_video
    assert req.primary_reference == "img-2"
    assert req.reference_strength == "medium"

def test_question_render():
    q = RequirementQuestion.model_validate({
        "key": "resolution",
        "question": "Which resolution?",
        "options": [{"label": "A", "value": "720p", "text": "720p"}],
    })
    assert q.render() == "Which resolution?\nA) 720p"

def test_batch_configs_must_match_count():
    with pytest.raises(ValidationError):
        CreateImageNode(
            id="frames",
            count=3,
            config_template={"model": "m", "prompt": "p", "aspect_ratio": "16:9"},
            batch_configs=[{"prompt": "a"}, {"prompt": "b"}],
        )

def test_plan_steps_discriminated_from_wire_format():
    plan = CanvasInstructionPlan.model_validate({
        "id": "plan-1",
        "summary": "s",
        "steps": [
            {"id": "frames", "action": "CREATE_NODE", "nodeType": "image-generator",
             "configTemplate": {"model": "m", "prompt": "p", "aspectRatio": "16:9"}},
            {"id": "delete", "action": "DELETE_NODE", "targetIds": ["img-1"]},
        ],
        "metadata": {"sourceGoal": {"goalType": "DELETE_CONTENT"}, "compiledAt": 0},
    })
    assert isinstance(plan.step("frames"), CreateImageNode)
    assert plan.step("delete").target_ids == ["img-1"]
    assert plan.steps_of("image-generator")[0].id == "frames"
    payload = plan.to_engine_payload()
    assert payload["requiresConfirmation"] is True
    assert payload["steps"][0]["configTemplate"]["aspectRatio"] == "16:9"

def test_auto_fix_union():
    fix = TypeAdapter(AutoFix).validate_python(
        {"kind": "set_video_duration", "id": "fix-1", "label": "Set video duration to 8 seconds", "seconds": 8}
    )
    assert fix.seconds == 8
    result = ValidationResult(ok=True, fixes=[fix])
    assert result.fix("fix-1") is fix
    assert result.fix("fix-9") is None

def test_plan_changes_empty():
    assert PlanChanges().is_empty()
    changes = PlanChanges(aspect_ratio="9:16")
    assert not changes.is_empty()
    assert changes.describe() == ["Aspect ratio: 9:16"]

def test_session_defaults():
    session = Session()
    assert session.phase == "IDLE"
    assert session.current_question is None
    assert len(session.session_id) == 8
