import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.core.dependencies import get_session_store
from app.schemas.command import SessionCreate, SessionCreated
from app.services.session_store import SessionStore, new_session_id


logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/session",
    summary="Регистрация сессии",
    description="Сохраняет учётные данные, полученные OAuth слоем, и выдаёт новый sessionId.",
    response_model=SessionCreated,
)
async def create_session(payload: SessionCreate, store: SessionStore = Depends(get_session_store)):
    session_id = new_session_id()
    await store.set(session_id, payload.credential)
    logger.info(f"Создана сессия {session_id}")
    return SessionCreated(session_id=session_id)


@router.get("/tokens/{session_id}", summary="Учётные данные сессии")
async def get_tokens(session_id: str, store: SessionStore = Depends(get_session_store)):
    tokens = await store.get(session_id)
    if tokens is None:
        return JSONResponse(status_code=404, content={"error": "Session not found"})
    return {"tokens": tokens}


@router.delete("/session/{session_id}", summary="Завершение сессии")
async def delete_session(session_id: str, store: SessionStore = Depends(get_session_store)):
    await store.delete(session_id)
    return {"success": True}
