"""Capability registry listing."""
from __future__ import annotations

from litestar import get

from webui.backend.models import ModelSummary
from webui.backend.session_manager import session_manager


@get("/api/models")
async def list_models(kind: str | None = None) -> list[ModelSummary]:
    registry = session_manager.orchestrator.registry
    return [
        ModelSummary(id=m.id, name=m.name, kind=m.kind, is_default=m.is_default, description=m.description)
        for m in registry.models(kind)
    ]
