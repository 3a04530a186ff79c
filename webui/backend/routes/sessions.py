"""Chat session routes."""
from __future__ import annotations

from litestar import delete, get, post
from litestar.exceptions import HTTPException, NotFoundException

from webui.backend.models import CreateSessionRequest, MessageRequest, SessionView, TurnResponse
from webui.backend.session_manager import StaleTurnError, session_manager, session_view


@post("/api/sessions")
async def create_session(data: CreateSessionRequest) -> SessionView:
    session = session_manager.create(data.selected_image_ids)
    return session_view(session)


@get("/api/sessions/{session_id:str}")
async def get_session(session_id: str) -> SessionView:
    session = session_manager.get(session_id)
    if session is None:
        raise NotFoundException(f"Session {session_id!r} not found")
    return session_view(session)


@post("/api/sessions/{session_id:str}/messages", status_code=200)
async def send_message(session_id: str, data: MessageRequest) -> TurnResponse:
    try:
        response = await session_manager.send_message(session_id, data.message, data.selected_image_ids)
    except StaleTurnError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    if response is None:
        raise NotFoundException(f"Session {session_id!r} not found")
    return response


@post("/api/sessions/{session_id:str}/fixes/{fix_id:str}", status_code=200)
async def apply_fix(session_id: str, fix_id: str) -> TurnResponse:
    try:
        response = await session_manager.apply_fix(session_id, fix_id)
    except StaleTurnError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    if response is None:
        raise NotFoundException(f"Session {session_id!r} not found")
    return response


@delete("/api/sessions/{session_id:str}")
async def delete_session(session_id: str) -> None:
    if not session_manager.delete(session_id):
        raise NotFoundException(f"Session {session_id!r} not found")
