"""
Хранилища сессий: sessionId -> учётные данные OAuth.

Реализации взаимозаменяемы и передаются диспетчеру при создании.
"""
import json
import logging
import secrets
import string
import time
from typing import Any, Dict, Optional, Protocol

import redis.asyncio as aioredis

from app.core.errors import PersistenceError
from app.models.session_credential import SessionCredential

logger = logging.getLogger(__name__)

Credential = Dict[str, Any]

_ALPHABET = string.ascii_lowercase + string.digits


def new_session_id() -> str:
    """session_<миллисекунды>_<9 случайных символов>"""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


class SessionStore(Protocol):
    async def get(self, session_id: str) -> Optional[Credential]: ...

    async def set(self, session_id: str, credential: Credential) -> None: ...

    async def delete(self, session_id: str) -> None: ...


class InMemorySessionStore:
    """Сессии в памяти процесса; теряются при перезапуске"""

    def __init__(self):
        self._sessions: Dict[str, Credential] = {}

    async def get(self, session_id: str) -> Optional[Credential]:
        return self._sessions.get(session_id)

    async def set(self, session_id: str, credential: Credential) -> None:
        self._sessions[session_id] = dict(credential)

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)


class RedisSessionStore:
    """Сессии в Redis без TTL, ключ session:<id>"""

    def __init__(self, redis_client: aioredis.Redis, prefix: str = "session:"):
        self.redis = redis_client
        self.prefix = prefix

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    async def get(self, session_id: str) -> Optional[Credential]:
        try:
            data = await self.redis.get(self._key(session_id))
        except Exception as e:
            logger.error(f"Ошибка чтения сессии {session_id} из Redis: {e}")
            raise PersistenceError(f"Session store unavailable: {e}") from e
        return json.loads(data) if data else None

    async def set(self, session_id: str, credential: Credential) -> None:
        try:
            await self.redis.set(self._key(session_id), json.dumps(credential, ensure_ascii=False, default=str))
        except Exception as e:
            logger.error(f"Ошибка записи сессии {session_id} в Redis: {e}")
            raise PersistenceError(f"Session store unavailable: {e}") from e

    async def delete(self, session_id: str) -> None:
        try:
            await self.redis.delete(self._key(session_id))
        except Exception as e:
            logger.error(f"Ошибка удаления сессии {session_id} из Redis: {e}")
            raise PersistenceError(f"Session store unavailable: {e}") from e


class DatabaseSessionStore:
    """Сессии в таблице session_credentials (через Tortoise)"""

    def __init__(self, repository):
        # Репозиторий отвечает за ленивое подключение к базе
        self.repository = repository

    async def get(self, session_id: str) -> Optional[Credential]:
        await self.repository.connect()
        try:
            record = await SessionCredential.get_or_none(session_id=session_id)
        except Exception as e:
            logger.error(f"Ошибка чтения сессии {session_id}: {e}")
            raise PersistenceError(f"Session store unavailable: {e}") from e
        return record.credential if record else None

    async def set(self, session_id: str, credential: Credential) -> None:
        await self.repository.connect()
        try:
            await SessionCredential.update_or_create(defaults={"credential": dict(credential)}, session_id=session_id)
        except Exception as e:
            logger.error(f"Ошибка записи сессии {session_id}: {e}")
            raise PersistenceError(f"Session store unavailable: {e}") from e

    async def delete(self, session_id: str) -> None:
        await self.repository.connect()
        try:
            await SessionCredential.filter(session_id=session_id).delete()
        except Exception as e:
            logger.error(f"Ошибка удаления сессии {session_id}: {e}")
            raise PersistenceError(f"Session store unavailable: {e}") from e
