import pytest
from canvasplan import config as config_module
from canvasplan.config import Config
from canvasplan.llm import (
    build_completion_fn, coerce_number, coerce_text, extract_first_json, offline_completion, safe_complete,
)

def test_extract_plain_json():
    assert extract_first_json('{"task": "explain"}') == {"task": "explain"}

def test_extract_fenced_json():
    text = 'Here you go:\n```json\n{"task": "text_to_video", "count": null}\n```'
    assert extract_first_json(text) == {"task": "text_to_video", "count": None}

def test_extract_skips_braces_inside_strings():
    text = 'Sure! {"reply": "use {curly} braces", "n": 2} and {"second": true}'
    assert extract_first_json(text) == {"reply": "use {curly} braces", "n": 2}

def test_extract_nothing():
    assert extract_first_json("no json here") is None
    assert extract_first_json("") is None
    assert extract_first_json("[1, 2, 3]") is None

def test_coerce_number():
    assert coerce_number("about 30 seconds") == 30.0
    assert coerce_number(12) == 12.0
    assert coerce_number(True) is None
    assert coerce_number("soon") is None

def test_coerce_text():
    assert coerce_text("  veo  ") == "veo"
    assert coerce_text("") is None
    assert coerce_text({"a": 1}) is None

def test_safe_complete_swallows_transport_errors():
    def broken(prompt):
        raise RuntimeError("503")
    assert safe_complete(broken, "hi", "test") == ""

def test_offline_backend(tmp_path, monkeypatch):
    for var in ("HF_TOKEN", "GEMINI_API_KEY", "CANVASPLAN_LLM_PROVIDER"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "missing.json")
    cfg = Config.load()
    assert cfg.resolved_provider() == "offline"
    complete = build_completion_fn(cfg)
    assert complete is offline_completion
    assert extract_first_json(complete("anything")) == {}

def test_config_env_over_file(tmp_path, monkeypatch):
    monkeypatch.setattr(config_module, "CONFIG_DIR", tmp_path)
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.json")
    for var in ("HF_TOKEN", "GEMINI_API_KEY", "CANVASPLAN_LLM_PROVIDER", "CANVASPLAN_LLM_MODEL",
                "CANVASPLAN_REGISTRY", "CANVASPLAN_RUNS_DIR"):
        monkeypatch.delenv(var, raising=False)

    Config(hf_token="hf_file", llm_provider="hf", runs_dir=tmp_path / "out").save()
    cfg = Config.load()
    assert cfg.hf_token == "hf_file"
    assert cfg.resolved_provider() == "hf"
    assert cfg.runs_dir == tmp_path / "out"

    monkeypatch.setenv("CANVASPLAN_LLM_PROVIDER", "gemini")
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    cfg = Config.load()
    assert cfg.llm_provider == "gemini"
    assert cfg.gemini_api_key == "g-key"

def test_config_ignores_unknown_provider(tmp_path, monkeypatch):
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "missing.json")
    monkeypatch.setenv("CANVASPLAN_LLM_PROVIDER", "openai")
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("HF_TOKEN", raising=False)
    assert Config.load().llm_provider == "auto"

class _FakeInference:
    calls = 0

    def __init__(self, token=None):
        self.token = token

    def chat_completion(self, model, messages, max_tokens, temperature):
        _FakeInference.calls += 1
        if _FakeInference.calls == 1:
            raise ConnectionError("reset")
        message = type("Message", (), {"content": f"{model}: {messages[-1]['content']}"})
        choice = type("Choice", (), {"message": message})
        return type("Response", (), {"choices": [choice]})

def test_hf_client_retries(monkeypatch):
    import utils.hf_client as hf_module

    monkeypatch.setattr(hf_module, "InferenceClient", _FakeInference)
    monkeypatch.setattr(hf_module.time, "sleep", lambda seconds: None)
    _FakeInference.calls = 0
    client = hf_module.HFClient("some/model", token="hf_x")
    assert client.complete("plan this") == "some/model: plan this"
    assert _FakeInference.calls == 2

def test_hf_client_needs_token(monkeypatch):
    from utils.hf_client import HFClient

    monkeypatch.delenv("HF_TOKEN", raising=False)
    with pytest.raises(ValueError):
        HFClient("some/model")
