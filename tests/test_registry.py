import json
import pytest
from canvasplan.registry import CapabilityRegistry, RegistryError, UnknownReferenceError, normalize_model_query

def test_normalize_model_query():
    assert normalize_model_query("change the model to Veo 3.1") == "Veo 3.1"
    assert normalize_model_query("use kling") == "kling"
    assert normalize_model_query("the Sora 2 Pro model") == "Sora 2 Pro"

def test_find_by_id_name_and_fragment(registry):
    assert registry.find("veo-3.1", "video").id == "veo-3.1"
    assert registry.find("Veo 3.1 Fast", "video").id == "veo-3.1-fast"
    assert registry.find("switch to kling", "video").id == "kling-2.5-turbo-pro"
    assert registry.find("seedream45", "image").id == "seedream-4.5"
    assert registry.find("veo", "image") is None

def test_require_unknown_lists_alternatives(registry):
    with pytest.raises(UnknownReferenceError) as exc:
        registry.require("Zorblax 9", "video")
    assert "Veo 3.1" in exc.value.alternatives
    assert "Zorblax 9" in exc.value.user_message

def test_defaults(registry):
    assert registry.default_model("video").id == "veo-3.1"
    assert registry.default_model("image").id == "flux-1.1-pro"
    assert registry.default_model("music").id == "udio-v2"
    # the default image model cannot take references
    assert registry.default_img2img_model().id == "google-nano-banana"
    assert registry.resolve_image_model(None, img2img=False).id == "flux-1.1-pro"
    assert registry.resolve_image_model("imagen", img2img=True).id == "imagen-4"

def test_max_clip_seconds(registry):
    assert registry.max_clip_seconds(registry.find("veo-3.1")) == 8
    assert registry.max_clip_seconds(registry.find("sora-2-pro")) == 12
    assert registry.max_clip_seconds(None) == 8

def test_preferred_default_when_none_flagged():
    registry = CapabilityRegistry.default()
    unflagged = [m.model_copy(update={"is_default": False}) for m in registry.models("video")]
    assert CapabilityRegistry(unflagged).default_model("video").id == "veo-3.1-fast"

def test_from_file_errors(tmp_path):
    bad = tmp_path / "caps.json"
    bad.write_text("{not json")
    with pytest.raises(RegistryError):
        CapabilityRegistry.from_file(bad)
    bad.write_text(json.dumps({"models": [{"id": "x"}]}))
    with pytest.raises(RegistryError):
        CapabilityRegistry.from_file(bad)

def test_describe(registry):
    text = registry.describe()
    assert "VIDEO MODELS" in text
    assert "Veo 3.1 (4, 6, 8s clips, first/last frame)" in text
    assert "[remove-bg]" in text
