"""
ContextRepository - хранение контекста сессий, истории диалога и предпочтений.

Все ошибки хранилища пробрасываются вызывающему как PersistenceError.
Документ сливается под блокировкой строки (SELECT ... FOR UPDATE), поле за полем.
Транзакций между коллекциями нет: delete_context выполняет независимые удаления.
"""
import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from tortoise.exceptions import IntegrityError
from tortoise.transactions import in_transaction

from app.core.db import close_db, init_db, ping_db
from app.core.errors import PersistenceError
from app.models._json import json_encoder
from app.models.context import RESERVED_KEYS, ConversationContext, iter_text
from app.models.conversation_turn import ConversationTurn
from app.models.session_data import SessionData
from app.models.user_preference import UserPreference

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50
DEFAULT_SEARCH_LIMIT = 10
TURN_ROLES = ("user", "assistant")


def _strip_reserved(fields: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in fields.items() if key not in RESERVED_KEYS}


async def _merge_document(
    model: Union[Type[ConversationContext], Type[SessionData]],
    session_id: str,
    updates: Mapping[str, Any],
    increments: Optional[Mapping[str, int]] = None,
) -> None:
    """
    Сливает updates в JSON документ сессии внутри транзакции с блокировкой строки.
    increments прибавляются к сохранённым значениям под той же блокировкой.
    """
    for attempt in range(2):
        try:
            async with in_transaction():
                record = await model.filter(session_id=session_id).select_for_update().first()
                data = dict(record.data or {}) if record else {}
                data.update(updates)
                for key, step in (increments or {}).items():
                    data[key] = (data.get(key) or 0) + step
                if record is None:
                    await model.create(session_id=session_id, data=data)
                else:
                    record.data = data
                    await record.save()
            return
        except IntegrityError:
            # первую запись сессии успел вставить параллельный запрос
            if attempt:
                raise
            logger.debug(f"Параллельная вставка {model.__name__} для {session_id}, повтор слиянием")


class ContextRepository:
    def __init__(self, db_url: str, generate_schemas: bool = False, search_limit: int = DEFAULT_SEARCH_LIMIT):
        self.db_url = db_url
        self.generate_schemas = generate_schemas
        self.search_limit = search_limit
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """
        Подключается к хранилищу один раз; повторные вызовы ничего не делают.

        Raises:
            StoreConnectionError: с причиной (auth / network / timeout) и подсказкой
        """
        if self._connected:
            return
        async with self._lock:
            if self._connected:
                return
            await init_db(self.db_url, generate_schemas=self.generate_schemas)
            self._connected = True

    async def disconnect(self) -> None:
        if self._connected:
            await close_db()
            self._connected = False
            logger.info("Отключено от базы данных")

    async def ping(self) -> None:
        await self.connect()
        try:
            await ping_db()
        except Exception as e:
            raise PersistenceError(f"Database ping failed: {e}") from e

    # === Контекст ===

    async def save_context(
        self,
        session_id: str,
        fields: Mapping[str, Any],
        increments: Optional[Mapping[str, int]] = None,
    ) -> Dict[str, bool]:
        """
        Сливает переданные поля в документ контекста (upsert).
        Отсутствующие поля не трогаются, явный None перезаписывает значение.

        Args:
            increments: счётчики, увеличиваемые относительно сохранённого значения,
                например {"conversationCount": 1}
        """
        await self.connect()
        try:
            await _merge_document(
                ConversationContext, session_id, _strip_reserved(fields), _strip_reserved(increments or {})
            )
            return {"success": True}
        except Exception as e:
            logger.error(f"Ошибка сохранения контекста {session_id}: {e}")
            raise PersistenceError(f"Failed to save context: {e}") from e

    async def get_context(self, session_id: str) -> Optional[Dict[str, Any]]:
        await self.connect()
        try:
            context = await ConversationContext.get_or_none(session_id=session_id)
            return context.to_document() if context else None
        except Exception as e:
            logger.error(f"Ошибка чтения контекста {session_id}: {e}")
            raise PersistenceError(f"Failed to get context: {e}") from e

    async def search_contexts(self, query: str, session_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Ищет подстроку без учёта регистра во всех текстовых полях контекстов.
        Возвращает не больше search_limit документов, свежие первыми.

        Кандидаты отбираются в базе по колонке search_text, затем совпадение
        проверяется по каждому строковому значению отдельно.
        """
        await self.connect()
        needle = query.lower()
        try:
            queryset = ConversationContext.filter(search_text__contains=needle)
            if session_id:
                queryset = queryset.filter(session_id=session_id)
            results = []
            for context in await queryset.order_by("-updated_at", "-id"):
                if any(needle in text.lower() for text in iter_text(context.data)):
                    results.append(context.to_document())
                    if len(results) >= self.search_limit:
                        break
            return results
        except Exception as e:
            logger.error(f"Ошибка поиска по контекстам: {e}")
            raise PersistenceError(f"Failed to search contexts: {e}") from e

    async def delete_context(self, session_id: str) -> Dict[str, bool]:
        """
        Удаляет контекст, историю, предпочтения и данные сессии.
        Операция не атомарна: при частичном сбое часть записей может остаться.
        """
        await self.connect()
        try:
            await asyncio.gather(
                ConversationContext.filter(session_id=session_id).delete(),
                ConversationTurn.filter(session_id=session_id).delete(),
                UserPreference.filter(session_id=session_id).delete(),
                SessionData.filter(session_id=session_id).delete(),
            )
            logger.info(f"Контекст сессии {session_id} удалён")
            return {"success": True}
        except Exception as e:
            logger.error(f"Ошибка удаления контекста {session_id}: {e}")
            raise PersistenceError(f"Failed to delete context: {e}") from e

    # === История диалога ===

    async def add_conversation_history(self, session_id: str, turn: Mapping[str, Any]) -> Dict[str, bool]:
        """Добавляет реплику; timestamp назначается хранилищем"""
        role = turn.get("role")
        if role not in TURN_ROLES:
            raise PersistenceError(f"Invalid conversation role: {role!r}")
        await self.connect()
        try:
            await ConversationTurn.create(
                session_id=session_id,
                role=role,
                content=turn.get("content"),
                method=turn.get("method"),
                metadata=turn.get("metadata"),
            )
            return {"success": True}
        except Exception as e:
            logger.error(f"Ошибка добавления в историю {session_id}: {e}")
            raise PersistenceError(f"Failed to add conversation history: {e}") from e

    async def get_conversation_history(self, session_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Dict[str, Any]]:
        """Последние `limit` реплик в хронологическом порядке"""
        await self.connect()
        try:
            turns = await (
                ConversationTurn.filter(session_id=session_id)
                .order_by("-timestamp", "-id")
                .limit(limit)
            )
            return [turn.to_dict() for turn in reversed(turns)]
        except Exception as e:
            logger.error(f"Ошибка чтения истории {session_id}: {e}")
            raise PersistenceError(f"Failed to get conversation history: {e}") from e

    # === Предпочтения ===

    async def save_user_preference(self, session_id: str, key: str, value: Any) -> Dict[str, bool]:
        await self.connect()
        try:
            # JSONField считает строку уже закодированным JSON, поэтому значение кодируется всегда
            await UserPreference.update_or_create(
                defaults={"value": json_encoder(value)},
                session_id=session_id,
                key=key,
            )
            return {"success": True}
        except Exception as e:
            logger.error(f"Ошибка сохранения предпочтения {key} для {session_id}: {e}")
            raise PersistenceError(f"Failed to save user preference: {e}") from e

    async def get_user_preferences(self, session_id: str) -> Dict[str, Any]:
        await self.connect()
        try:
            preferences = await UserPreference.filter(session_id=session_id).order_by("id")
            return {pref.key: pref.value for pref in preferences}
        except Exception as e:
            logger.error(f"Ошибка чтения предпочтений {session_id}: {e}")
            raise PersistenceError(f"Failed to get user preferences: {e}") from e

    # === Данные сессии ===

    async def save_session_data(self, session_id: str, data: Mapping[str, Any]) -> Dict[str, bool]:
        await self.connect()
        try:
            await _merge_document(SessionData, session_id, _strip_reserved(data))
            return {"success": True}
        except Exception as e:
            logger.error(f"Ошибка сохранения данных сессии {session_id}: {e}")
            raise PersistenceError(f"Failed to save session data: {e}") from e

    async def get_session_data(self, session_id: str) -> Optional[Dict[str, Any]]:
        await self.connect()
        try:
            record = await SessionData.get_or_none(session_id=session_id)
            return record.to_document() if record else None
        except Exception as e:
            logger.error(f"Ошибка чтения данных сессии {session_id}: {e}")
            raise PersistenceError(f"Failed to get session data: {e}") from e
