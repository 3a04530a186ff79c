"""Config read/write routes."""
from __future__ import annotations

from pathlib import Path

from litestar import get, post
from litestar.exceptions import HTTPException

from canvasplan.config import LLM_PROVIDERS, Config
from webui.backend.models import ConfigPayload
from webui.backend.session_manager import session_manager


@get("/api/config")
async def get_config() -> ConfigPayload:
    cfg = Config.load()
    return ConfigPayload(
        # Mask secret keys, show only the ends
        hf_token=_mask(cfg.hf_token),
        gemini_api_key=_mask(cfg.gemini_api_key),
        llm_provider=cfg.llm_provider,
        llm_model=cfg.llm_model,
        registry_path=str(cfg.registry_path or ""),
        runs_dir=str(cfg.runs_dir),
    )


@post("/api/config", status_code=200)
async def save_config(data: ConfigPayload) -> dict:
    if data.llm_provider not in LLM_PROVIDERS:
        raise HTTPException(status_code=400, detail=f"llm_provider must be one of {', '.join(LLM_PROVIDERS)}")
    cfg = Config.load()
    # Only update secrets if the user sent a non-masked value
    if data.hf_token and "…" not in data.hf_token:
        cfg.hf_token = data.hf_token
    if data.gemini_api_key and "…" not in data.gemini_api_key:
        cfg.gemini_api_key = data.gemini_api_key
    cfg.llm_provider = data.llm_provider
    cfg.llm_model = data.llm_model
    cfg.registry_path = Path(data.registry_path) if data.registry_path else None
    cfg.runs_dir = Path(data.runs_dir)
    cfg.save()
    # New sessions pick up the new backend
    session_manager.configure()
    return {"ok": True}


def _mask(value: str) -> str:
    if not value:
        return ""
    return value[:4] + "…" + value[-4:] if len(value) > 8 else "…"
