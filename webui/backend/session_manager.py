"""Session lifecycle: create, look up, run turns one at a time per session."""
from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Callable

from .models import SessionView, TurnResponse

# Root of the canvasplan repo (two levels up from this file)
REPO_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(REPO_ROOT))

from canvasplan.config import Config
from canvasplan.llm import build_completion_fn
from canvasplan.registry import CapabilityRegistry
from canvasplan.session import SessionOrchestrator
from schemas import CanvasContext, Session, TurnResult
from utils import PlanOutbox

log = logging.getLogger(__name__)


class StaleTurnError(RuntimeError):
    """The session changed while a turn was being computed; the result was dropped."""


def session_view(session: Session) -> SessionView:
    question = session.current_question
    return SessionView(
        session_id=session.session_id,
        phase=session.phase.value,
        pending_question=question.render() if question else None,
        requirements=session.requirements.model_dump(mode="json") if session.requirements else None,
        plan=session.graph_plan.to_engine_payload() if session.graph_plan else None,
        validation=session.validation.model_dump(mode="json") if session.validation else None,
    )


class SessionManager:
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._orchestrator: SessionOrchestrator | None = None
        self._outbox: PlanOutbox | None = None

    def configure(self, orchestrator: SessionOrchestrator | None = None, outbox: PlanOutbox | None = None) -> None:
        """Swap the orchestrator/outbox; None rebuilds them from the saved config on next use."""
        self._orchestrator = orchestrator
        self._outbox = outbox

    def clear(self) -> None:
        self._sessions.clear()
        self._locks.clear()

    @property
    def orchestrator(self) -> SessionOrchestrator:
        if self._orchestrator is None:
            config = Config.load()
            registry = (
                CapabilityRegistry.from_file(config.registry_path)
                if config.registry_path else CapabilityRegistry.default()
            )
            self._orchestrator = SessionOrchestrator(build_completion_fn(config), registry)
        return self._orchestrator

    @property
    def outbox(self) -> PlanOutbox:
        if self._outbox is None:
            self._outbox = PlanOutbox(str(Config.load().runs_dir))
        return self._outbox

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create(self, selected_image_ids: list[str]) -> Session:
        session = self.orchestrator.new_session(CanvasContext(selected_image_ids=selected_image_ids))
        self._sessions[session.session_id] = session
        self._locks[session.session_id] = asyncio.Lock()
        log.info("Session %s created", session.session_id)
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        self._locks.pop(session_id, None)
        return self._sessions.pop(session_id, None) is not None

    async def send_message(
        self, session_id: str, message: str, selected_image_ids: list[str] | None = None
    ) -> TurnResponse | None:
        context = CanvasContext(selected_image_ids=selected_image_ids) if selected_image_ids is not None else None
        return await self._run_turn(
            session_id, lambda s: self.orchestrator.handle_message(s, message, context)
        )

    async def apply_fix(self, session_id: str, fix_id: str) -> TurnResponse | None:
        return await self._run_turn(session_id, lambda s: self.orchestrator.apply_fix(s, fix_id))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _run_turn(self, session_id: str, turn: Callable[[Session], TurnResult]) -> TurnResponse | None:
        lock = self._locks.get(session_id)
        if lock is None:
            return None
        async with lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            started_at = session.turn
            # LLM calls block; keep them off the event loop
            result = await asyncio.to_thread(turn, session)

            current = self._sessions.get(session_id)
            if current is None:
                log.info("Session %s deleted during a turn; result dropped", session_id)
                return None
            if current.turn != started_at:
                raise StaleTurnError(f"Session {session_id!r} changed while the turn was running")
            self._sessions[session_id] = result.session

        response = TurnResponse(session=session_view(result.session), reply=result.reply)
        if result.plan_to_execute is not None:
            response.plan_to_execute = result.plan_to_execute.to_engine_payload()
            response.plan_path = str(self.outbox.write(result.plan_to_execute, session_id))
            log.info("Session %s: plan written to %s", session_id, response.plan_path)
        return response


# Singleton
session_manager = SessionManager()
