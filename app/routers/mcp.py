from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.core.dependencies import get_context_repository, get_dispatcher
from app.core.errors import PersistenceError
from app.repositories.context_repository import ContextRepository
from app.schemas.command import CommandRequest, CommandResponse, ErrorResponse
from app.services.command_dispatcher import CommandDispatcher


logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/execute",
    summary="Выполнить команду",
    description="Командный протокол: {method, params, sessionId}. Возвращает {result, context?} или {error}.",
    response_model=CommandResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def execute(payload: CommandRequest, dispatcher: CommandDispatcher = Depends(get_dispatcher)):
    result = await dispatcher.execute(payload.method, payload.params, payload.session_id)
    return result.to_response()


@router.get("/health", summary="Проверка состояния")
async def health(repository: ContextRepository = Depends(get_context_repository)):
    try:
        await repository.ping()
    except PersistenceError as e:
        logger.warning(f"Health check: база недоступна: {e}")
        return JSONResponse(status_code=503, content={
            "status": "unhealthy",
            "database": "disconnected",
            "error": str(e),
        })
    return {
        "status": "healthy",
        "database": "connected",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/debug/context/{session_id}", summary="Содержимое базы для сессии")
async def debug_context(session_id: str, repository: ContextRepository = Depends(get_context_repository)):
    context = await repository.get_context(session_id)
    history = await repository.get_conversation_history(session_id, 50)
    preferences = await repository.get_user_preferences(session_id)

    return {
        "sessionId": session_id,
        "context": context,
        "historyCount": len(history),
        "history": history,
        "preferences": preferences,
        "collections": {
            "hasContext": context is not None,
            "hasHistory": len(history) > 0,
            "hasPreferences": len(preferences) > 0,
        },
    }
