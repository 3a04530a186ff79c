"""Settings, API keys and planning defaults."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

CONFIG_DIR = Path.home() / ".canvasplan"
CONFIG_FILE = CONFIG_DIR / "config.json"

# Planning defaults
DEFAULT_DURATION_SECONDS = 8
DURATION_BUCKETS = (8, 20, 40, 60)   # answer options offered for video length
FALLBACK_MAX_CLIP_SECONDS = 8        # when a video model declares no temporal limits
DEFAULT_SCENE_SECONDS = 6            # scene length when the script service omits one
DEFAULT_RESOLUTION = "720p"
DEFAULT_IMAGE_ASPECT = "1:1"
DEFAULT_VIDEO_ASPECT = "16:9"
PLATFORM_ASPECT = {
    "instagram_reel": "9:16",
    "youtube": "16:9",
    "website": "16:9",
}

# Text completion
LLM_PROVIDERS = ("auto", "gemini", "hf", "offline")
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_HF_MODEL = "meta-llama/Llama-3.1-8B-Instruct"

# Retry
MAX_RETRIES = 3
RETRY_DELAY = 2  # seconds, doubled per attempt


@dataclass
class Config:
    hf_token: str = ""
    gemini_api_key: str = ""
    llm_provider: str = "auto"
    llm_model: str = ""          # empty: provider default
    registry_path: Path | None = None  # alternative capability registry JSON
    runs_dir: Path = field(default_factory=lambda: Path("runs"))

    @classmethod
    def load(cls) -> "Config":
        """Load config from env vars then config file."""
        cfg = cls()

        # Env var takes priority
        token = os.environ.get("HF_TOKEN", "")
        gemini_key = os.environ.get("GEMINI_API_KEY", "")
        provider = os.environ.get("CANVASPLAN_LLM_PROVIDER", "")
        model = os.environ.get("CANVASPLAN_LLM_MODEL", "")
        registry = os.environ.get("CANVASPLAN_REGISTRY", "")
        runs = os.environ.get("CANVASPLAN_RUNS_DIR", "")

        # Fall back to config file
        if CONFIG_FILE.exists():
            try:
                data = json.loads(CONFIG_FILE.read_text(encoding="utf-8-sig"))
                token = token or data.get("hf_token", "")
                gemini_key = gemini_key or data.get("gemini_api_key", "")
                provider = provider or data.get("llm_provider", "")
                model = model or data.get("llm_model", "")
                registry = registry or data.get("registry_path", "")
                runs = runs or data.get("runs_dir", "")
            except (json.JSONDecodeError, OSError):
                pass

        cfg.hf_token = token
        cfg.gemini_api_key = gemini_key
        if provider in LLM_PROVIDERS:
            cfg.llm_provider = provider
        cfg.llm_model = model
        if registry:
            cfg.registry_path = Path(registry)
        if runs:
            cfg.runs_dir = Path(runs)
        return cfg

    def save(self) -> None:
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        data = {
            "hf_token": self.hf_token,
            "gemini_api_key": self.gemini_api_key,
            "llm_provider": self.llm_provider,
            "llm_model": self.llm_model,
            "runs_dir": str(self.runs_dir),
        }
        if self.registry_path:
            data["registry_path"] = str(self.registry_path)
        CONFIG_FILE.write_text(json.dumps(data, indent=2))

    def resolved_provider(self) -> str:
        """The provider actually used when llm_provider is 'auto'."""
        if self.llm_provider != "auto":
            return self.llm_provider
        if self.gemini_api_key:
            return "gemini"
        if self.hf_token:
            return "hf"
        return "offline"
