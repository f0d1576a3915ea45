"""
Ассистент - внешний коллаборатор, превращающий запрос на естественном языке в результат.

Диспетчер видит только протокол Assistant; конкретная реализация выбирается
при сборке приложения (OpenAI или заглушка, если ключ не настроен).
"""
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

from openai import AsyncOpenAI

from app.core.errors import UpstreamError
from app.utils.prompt_manager import prompt_manager

logger = logging.getLogger(__name__)

# Ключи, которые клиентские рендереры распознают в ответе
RESULT_KEYS = (
    "content", "events", "travelTimes", "link", "contacts", "tasks", "meeting", "files", "notes", "messages",
)
ENRICHMENT_KEYS = (
    "videos", "weather", "forecasts", "places", "timezone", "forms", "results", "playlists",
)
ALLOWED_KEYS = frozenset(RESULT_KEYS + ENRICHMENT_KEYS + ("type",))

MAX_HISTORY_MESSAGES = 10


class Assistant(Protocol):
    async def process_query(
        self,
        text: str,
        location: Optional[str],
        history: List[Dict[str, Any]],
        context: Optional[Dict[str, Any]],
        preferences: Dict[str, Any],
    ) -> Dict[str, Any]: ...

    async def handle_schedule_query(self, query: str, date: Optional[str] = None) -> Dict[str, Any]: ...

    async def handle_travel_query(self, query: str, location: Optional[str] = None) -> Dict[str, Any]: ...


AssistantFactory = Callable[[Dict[str, Any]], Assistant]


def _json_text(value: Any) -> str:
    return json.dumps(value or {}, ensure_ascii=False, default=str)


def parse_reply(raw: str) -> Dict[str, Any]:
    """
    Разбирает ответ модели: JSON объект с допустимыми ключами.
    Если модель вернула не JSON, весь текст становится content.
    """
    text = (raw or "").strip()
    if text.startswith("```"):
        text = text.split("```")[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return {"type": "text", "content": (raw or "").strip()}
    if not isinstance(data, dict):
        return {"type": "text", "content": (raw or "").strip()}

    result = {key: value for key, value in data.items() if key in ALLOWED_KEYS}
    result.setdefault("type", "text")
    result.setdefault("content", "")
    return result


class OpenAIAssistant:
    """Ассистент на основе OpenAI chat completions"""

    def __init__(self, credential: Dict[str, Any], client: AsyncOpenAI, model: str):
        # credential передаётся дальше в возможности, которым нужен OAuth токен
        self.credential = credential
        self.client = client
        self.model = model

    def _build_messages(self, text, location, history, context, preferences) -> List[Dict[str, str]]:
        system_prompt = prompt_manager.render(
            "assistant_system",
            location=location or "unknown",
            preferences=_json_text(preferences),
            context=_json_text({k: v for k, v in (context or {}).items() if k.startswith("last") or k == "currentLocation"}),
        )
        messages = [{"role": "system", "content": system_prompt}]
        for turn in history[-MAX_HISTORY_MESSAGES:]:
            if turn.get("role") in ("user", "assistant") and turn.get("content"):
                messages.append({"role": turn["role"], "content": turn["content"]})
        messages.append({"role": "user", "content": text})
        return messages

    async def process_query(self, text, location, history, context, preferences) -> Dict[str, Any]:
        messages = self._build_messages(text, location, history, context, preferences)
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                response_format={"type": "json_object"},
                max_tokens=800,
                temperature=0.3
            )
        except Exception as e:
            logger.error(f"Ошибка OpenAI API: {e}")
            raise UpstreamError(f"Assistant request failed: {e}") from e

        reply = response.choices[0].message.content
        return parse_reply(reply)

    async def handle_schedule_query(self, query: str, date: Optional[str] = None) -> Dict[str, Any]:
        text = f"{query} (date: {date})" if date else query
        return await self.process_query(text, None, [], None, {})

    async def handle_travel_query(self, query: str, location: Optional[str] = None) -> Dict[str, Any]:
        return await self.process_query(query, location, [], None, {})


class DisabledAssistant:
    """Заглушка, когда OPENAI_API_KEY не задан"""

    def __init__(self, credential: Optional[Dict[str, Any]] = None):
        self.credential = credential

    async def process_query(self, text, location, history, context, preferences) -> Dict[str, Any]:
        raise UpstreamError("Assistant is not configured: set OPENAI_API_KEY")

    async def handle_schedule_query(self, query: str, date: Optional[str] = None) -> Dict[str, Any]:
        raise UpstreamError("Assistant is not configured: set OPENAI_API_KEY")

    async def handle_travel_query(self, query: str, location: Optional[str] = None) -> Dict[str, Any]:
        raise UpstreamError("Assistant is not configured: set OPENAI_API_KEY")


def build_assistant_factory(settings) -> AssistantFactory:
    """Возвращает фабрику ассистентов для текущих настроек"""
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY не задан, ассистент отключён")
        return DisabledAssistant

    client_kwargs = {"api_key": settings.openai_api_key}
    if settings.openai_base_url:
        client_kwargs["base_url"] = settings.openai_base_url
    client = AsyncOpenAI(**client_kwargs)

    def factory(credential: Dict[str, Any]) -> Assistant:
        return OpenAIAssistant(credential, client=client, model=settings.gpt_model_fast)

    return factory
