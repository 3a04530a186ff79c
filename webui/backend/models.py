"""Pydantic request/response models for the canvasplan Web API."""
from __future__ import annotations

from pydantic import BaseModel, Field


class CreateSessionRequest(BaseModel):
    selected_image_ids: list[str] = Field(default_factory=list)


class MessageRequest(BaseModel):
    message: str = Field(min_length=1)
    # None keeps the selection the session already has
    selected_image_ids: list[str] | None = None


class SessionView(BaseModel):
    session_id: str
    phase: str
    pending_question: str | None = None   # rendered question with its options
    requirements: dict | None = None
    plan: dict | None = None              # engine payload of the previewed plan
    validation: dict | None = None


class TurnResponse(BaseModel):
    session: SessionView
    reply: str
    plan_to_execute: dict | None = None   # set once, on the approving turn
    plan_path: str | None = None          # where the outbox wrote it


class ModelSummary(BaseModel):
    id: str
    name: str
    kind: str
    is_default: bool = False
    description: str = ""


class ConfigPayload(BaseModel):
    hf_token: str = ""
    gemini_api_key: str = ""
    llm_provider: str = "auto"
    llm_model: str = ""
    registry_path: str = ""
    runs_dir: str = "runs"
