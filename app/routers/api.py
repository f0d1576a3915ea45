import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse, Response

from app.core.dependencies import get_dispatcher, get_speech_service
from app.core.errors import ValidationError
from app.schemas.command import ErrorResponse, QueryRequest, QueryResponse, SpeechRequest
from app.services.command_dispatcher import CommandDispatcher, Method
from app.services.speech_service import SpeechService


logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/query",
    summary="Вопрос ассистенту",
    description="Упрощённый вход: {query, currentLocation?}; sessionId в заголовке X-Session-Id или в теле.",
    response_model=QueryResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def query(
    payload: QueryRequest,
    x_session_id: Optional[str] = Header(default=None),
    dispatcher: CommandDispatcher = Depends(get_dispatcher),
):
    if not payload.query:
        raise ValidationError("Query is required")
    params = {"query": payload.query}
    if payload.current_location:
        params["currentLocation"] = payload.current_location

    result = await dispatcher.execute(Method.QUERY, params, x_session_id or payload.session_id)
    return result.result


@router.post("/speech/tts",
    summary="Синтез речи",
    response_class=Response,
    responses={200: {"content": {"audio/mpeg": {}}}, 503: {"model": ErrorResponse}},
)
async def text_to_speech(payload: SpeechRequest, speech: SpeechService = Depends(get_speech_service)):
    if not payload.text:
        raise ValidationError("Text is required")

    audio = await speech.text_to_speech(payload.text, voice_id=payload.voice_id, model_id=payload.model_id)
    if not audio:
        return JSONResponse(status_code=503, content={
            "error": "Text-to-speech not available",
            "message": "ElevenLabs API key not configured. Set ELEVENLABS_API_KEY in the environment.",
        })
    return Response(content=audio, media_type="audio/mpeg")


@router.get("/speech/voices", summary="Доступные голоса")
async def voices(speech: SpeechService = Depends(get_speech_service)):
    return {"voices": await speech.get_voices()}
