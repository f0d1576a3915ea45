from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional


class CommandRequest(BaseModel):
    """Конверт командного протокола"""
    model_config = ConfigDict(populate_by_name=True)

    method: str = Field(description="Имя метода (query, get_context, save_preference, ...)")
    params: Optional[Dict[str, Any]] = Field(default_factory=dict)
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class CommandResponse(BaseModel):
    result: Any = None
    context: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: str
    message: Optional[str] = None


class QueryRequest(BaseModel):
    """Упрощённый запрос: вопрос на естественном языке"""
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(default="", description="Текст запроса")
    current_location: Optional[str] = Field(default=None, alias="currentLocation")
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class QueryResponse(BaseModel):
    """
    Плоский ответ ассистента. Имена полей читают клиентские рендереры,
    поэтому они сохраняются как есть; неизвестные ключи пропускаются дальше.
    """
    model_config = ConfigDict(extra="allow")

    content: Optional[Any] = None
    events: Optional[Any] = None
    travelTimes: Optional[Any] = None
    link: Optional[Any] = None
    contacts: Optional[Any] = None
    tasks: Optional[Any] = None
    meeting: Optional[Any] = None
    files: Optional[Any] = None
    notes: Optional[Any] = None
    messages: Optional[Any] = None


class SessionCreate(BaseModel):
    credential: Dict[str, Any] = Field(description="Токены, полученные OAuth слоем")


class SessionCreated(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")


class SpeechRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(default="")
    voice_id: Optional[str] = Field(default=None, alias="voiceId")
    model_id: Optional[str] = Field(default=None, alias="modelId")
