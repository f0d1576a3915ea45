"""
CommandDispatcher - единая точка входа командного протокола.

execute(method, params, session_id):
1. проверяет сессию (AuthError)
2. разбирает метод в Method (UnknownMethodError)
3. читает снимок контекста, истории и предпочтений до любых изменений
4. вызывает обработчик метода и фиксирует изменения состояния

Для query запись в хранилище - обогащение: сбой пишется в лог и не ломает ответ.
Для явных команд работы с контекстом ошибки хранилища возвращаются вызывающему.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, assert_never

from app.core.errors import (
    AssistantError,
    AuthError,
    PersistenceError,
    UnknownMethodError,
    UpstreamError,
    ValidationError,
)
from app.repositories.context_repository import ContextRepository
from app.services.assistant import Assistant, AssistantFactory
from app.services.session_store import Credential, SessionStore

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_WINDOW = 10
DEFAULT_HISTORY_LIMIT = 50

# Поле контекста -> ключ результата ассистента.
# Перезаписываются на каждом query, даже если ключа нет в ответе.
LAST_RESULT_FIELDS = {
    "lastResponse": "content",
    "lastEvents": "events",
    "lastTravelTimes": "travelTimes",
    "lastMeeting": "meeting",
    "lastTasks": "tasks",
    "lastFiles": "files",
    "lastContacts": "contacts",
    "lastMessages": "messages",
    "lastVideos": "videos",
    "lastWeather": "weather",
    "lastForecasts": "forecasts",
    "lastPlaces": "places",
    "lastTimezone": "timezone",
    "lastForms": "forms",
    "lastResults": "results",
    "lastPlaylists": "playlists",
}


class Method(str, Enum):
    """Закрытый набор методов командного протокола"""
    QUERY = "query"
    GET_SCHEDULE = "get_schedule"
    GET_TRAVEL_TIME = "get_travel_time"
    SAVE_CONTEXT = "save_context"
    GET_CONTEXT = "get_context"
    GET_CONVERSATION_HISTORY = "get_conversation_history"
    SAVE_PREFERENCE = "save_preference"
    GET_PREFERENCES = "get_preferences"
    SEARCH_CONTEXT = "search_context"
    UPDATE_LOCATION = "update_location"
    CLEAR_CONTEXT = "clear_context"

    @classmethod
    def parse(cls, value: Any) -> "Method":
        try:
            return cls(value)
        except ValueError:
            raise UnknownMethodError(value) from None


@dataclass
class Snapshot:
    """Состояние сессии на момент начала команды"""
    context: Optional[Dict[str, Any]] = None
    history: List[Dict[str, Any]] = field(default_factory=list)
    preferences: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Command:
    method: Method
    session_id: str
    credential: Credential
    params: Dict[str, Any]
    snapshot: Snapshot


@dataclass
class CommandResult:
    result: Any
    context: Optional[Dict[str, Any]] = None

    def to_response(self) -> Dict[str, Any]:
        response = {"result": self.result}
        if self.context is not None:
            response["context"] = self.context
        return response


Handler = Callable[[Command], Awaitable[CommandResult]]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require(params: Mapping[str, Any], name: str) -> Any:
    value = params.get(name)
    if value is None or value == "":
        raise ValidationError(f"{name} is required")
    return value


class CommandDispatcher:
    def __init__(
        self,
        session_store: SessionStore,
        repository: ContextRepository,
        assistant_factory: AssistantFactory,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        history_default_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        self.session_store = session_store
        self.repository = repository
        self.assistant_factory = assistant_factory
        self.history_window = history_window
        self.history_default_limit = history_default_limit

    async def execute(self, method: Any, params: Optional[Mapping[str, Any]], session_id: Optional[str]) -> CommandResult:
        if not session_id:
            raise AuthError("sessionId is required")
        credential = await self.session_store.get(session_id)
        if credential is None:
            raise AuthError("Invalid session")

        command_method = Method.parse(method)
        if params is not None and not isinstance(params, Mapping):
            raise ValidationError("params must be an object")

        snapshot = await self._load_snapshot(session_id)
        command = Command(
            method=command_method,
            session_id=session_id,
            credential=credential,
            params=dict(params or {}),
            snapshot=snapshot,
        )
        logger.info(f"[{session_id}] команда {command_method.value}")
        return await self._route(command_method)(command)

    def _route(self, method: Method) -> Handler:
        match method:
            case Method.QUERY:
                return self._query
            case Method.GET_SCHEDULE:
                return self._get_schedule
            case Method.GET_TRAVEL_TIME:
                return self._get_travel_time
            case Method.SAVE_CONTEXT:
                return self._save_context
            case Method.GET_CONTEXT:
                return self._get_context
            case Method.GET_CONVERSATION_HISTORY:
                return self._get_conversation_history
            case Method.SAVE_PREFERENCE:
                return self._save_preference
            case Method.GET_PREFERENCES:
                return self._get_preferences
            case Method.SEARCH_CONTEXT:
                return self._search_context
            case Method.UPDATE_LOCATION:
                return self._update_location
            case Method.CLEAR_CONTEXT:
                return self._clear_context
            case _:
                assert_never(method)

    # === Снимок и обогащение ===

    async def _load_snapshot(self, session_id: str) -> Snapshot:
        snapshot = Snapshot()
        try:
            snapshot.context = await self.repository.get_context(session_id)
            snapshot.history = await self.repository.get_conversation_history(session_id, self.history_window)
            snapshot.preferences = await self.repository.get_user_preferences(session_id)
        except PersistenceError as e:
            logger.warning(f"[{session_id}] контекст из базы недоступен: {e}")
        return snapshot

    async def _enrich(self, session_id: str, action: str, operation: Awaitable[Any]) -> None:
        """Запись-обогащение: ошибка хранилища не прерывает ответ"""
        try:
            await operation
        except PersistenceError as e:
            logger.warning(f"[{session_id}] не удалось {action}: {e}")

    async def _call_assistant(self, call: Awaitable[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            result = await call
        except AssistantError:
            raise
        except Exception as e:
            logger.error(f"Ошибка ассистента: {e}")
            raise UpstreamError(str(e)) from e
        if not isinstance(result, Mapping):
            raise UpstreamError("Assistant returned a non-object result")
        return dict(result)

    def _assistant(self, command: Command) -> Assistant:
        return self.assistant_factory(command.credential)

    # === Обработчики ===

    async def _query(self, command: Command) -> CommandResult:
        session_id = command.session_id
        snapshot = command.snapshot
        query = _require(command.params, "query")
        context = snapshot.context or {}
        location = command.params.get("currentLocation") or context.get("currentLocation")

        await self._enrich(session_id, "сохранить запрос в историю", self.repository.add_conversation_history(
            session_id, {"role": "user", "content": query, "method": Method.QUERY.value}
        ))

        result = await self._call_assistant(self._assistant(command).process_query(
            query, location, snapshot.history, snapshot.context, snapshot.preferences
        ))

        await self._enrich(session_id, "сохранить ответ в историю", self.repository.add_conversation_history(
            session_id,
            {"role": "assistant", "content": result.get("content"), "method": Method.QUERY.value, "metadata": result},
        ))

        updates = {"lastQuery": query}
        for context_field, result_key in LAST_RESULT_FIELDS.items():
            updates[context_field] = result.get(result_key)
        updates["lastUpdated"] = _now_iso()
        # счётчик увеличивается от сохранённого значения, а не от снимка
        await self._enrich(session_id, "обновить контекст", self.repository.save_context(
            session_id, updates, increments={"conversationCount": 1}
        ))

        return CommandResult(
            result=result,
            context={
                "hasHistory": len(snapshot.history) > 0,
                "historyCount": len(snapshot.history),
                "preferences": snapshot.preferences,
            },
        )

    async def _get_schedule(self, command: Command) -> CommandResult:
        query = command.params.get("query") or "get schedule"
        schedule = await self._call_assistant(
            self._assistant(command).handle_schedule_query(query, command.params.get("date"))
        )
        await self._enrich(command.session_id, "сохранить расписание", self.repository.save_context(
            command.session_id, {"lastSchedule": schedule, "lastQuery": Method.GET_SCHEDULE.value}
        ))
        return CommandResult(result=schedule)

    async def _get_travel_time(self, command: Command) -> CommandResult:
        params = command.params
        query = params.get("query")
        if not query:
            origin = _require(params, "origin")
            destination = _require(params, "destination")
            query = f"travel time from {origin} to {destination}"
        location = (command.snapshot.context or {}).get("currentLocation")
        travel_time = await self._call_assistant(self._assistant(command).handle_travel_query(query, location))
        await self._enrich(command.session_id, "сохранить время в пути", self.repository.save_context(
            command.session_id, {"lastTravelTime": travel_time, "lastQuery": Method.GET_TRAVEL_TIME.value}
        ))
        return CommandResult(result=travel_time)

    async def _save_context(self, command: Command) -> CommandResult:
        fields = command.params.get("context") or {}
        if not isinstance(fields, Mapping):
            raise ValidationError("context must be an object")
        return CommandResult(result=await self.repository.save_context(command.session_id, fields))

    async def _get_context(self, command: Command) -> CommandResult:
        return CommandResult(result=await self.repository.get_context(command.session_id) or {})

    async def _get_conversation_history(self, command: Command) -> CommandResult:
        limit = command.params.get("limit") or self.history_default_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError("limit must be a positive integer")
        return CommandResult(result=await self.repository.get_conversation_history(command.session_id, limit))

    async def _save_preference(self, command: Command) -> CommandResult:
        key = _require(command.params, "key")
        value = command.params.get("value")
        return CommandResult(result=await self.repository.save_user_preference(command.session_id, key, value))

    async def _get_preferences(self, command: Command) -> CommandResult:
        return CommandResult(result=await self.repository.get_user_preferences(command.session_id))

    async def _search_context(self, command: Command) -> CommandResult:
        query = _require(command.params, "query")
        return CommandResult(result=await self.repository.search_contexts(str(query), command.session_id))

    async def _update_location(self, command: Command) -> CommandResult:
        location = _require(command.params, "location")
        await self.repository.save_context(command.session_id, {
            "currentLocation": location,
            "locationUpdatedAt": _now_iso(),
        })
        return CommandResult(result={"success": True, "location": location})

    async def _clear_context(self, command: Command) -> CommandResult:
        return CommandResult(result=await self.repository.delete_context(command.session_id))
