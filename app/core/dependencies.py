"""
Сборка сервисов приложения.
Каждый провайдер создаёт объект лениво и кэширует его на процесс;
в тестах провайдеры подменяются через app.dependency_overrides.
"""
import logging
from typing import Optional

from app.core.config import get_settings
from app.repositories.context_repository import ContextRepository
from app.services.assistant import build_assistant_factory
from app.services.command_dispatcher import CommandDispatcher
from app.services.redis_client import get_redis_client
from app.services.session_store import (
    DatabaseSessionStore,
    InMemorySessionStore,
    RedisSessionStore,
    SessionStore,
)
from app.services.speech_service import SpeechService, build_speech_service

logger = logging.getLogger(__name__)

_repository: Optional[ContextRepository] = None
_session_store: Optional[SessionStore] = None
_dispatcher: Optional[CommandDispatcher] = None
_speech_service: Optional[SpeechService] = None


def get_context_repository() -> ContextRepository:
    global _repository
    if _repository is None:
        settings = get_settings()
        _repository = ContextRepository(
            db_url=settings.database_url,
            generate_schemas=settings.db_generate_schemas,
            search_limit=settings.search_limit,
        )
    return _repository


async def get_session_store() -> SessionStore:
    global _session_store
    if _session_store is None:
        backend = get_settings().session_backend.lower()
        if backend == "redis":
            _session_store = RedisSessionStore(await get_redis_client())
        elif backend == "database":
            _session_store = DatabaseSessionStore(get_context_repository())
        else:
            if backend != "memory":
                logger.warning(f"Неизвестный session_backend '{backend}', используется memory")
            _session_store = InMemorySessionStore()
        logger.info(f"Хранилище сессий: {type(_session_store).__name__}")
    return _session_store


async def get_dispatcher() -> CommandDispatcher:
    global _dispatcher
    if _dispatcher is None:
        settings = get_settings()
        _dispatcher = CommandDispatcher(
            session_store=await get_session_store(),
            repository=get_context_repository(),
            assistant_factory=build_assistant_factory(settings),
            history_window=settings.history_window,
            history_default_limit=settings.history_default_limit,
        )
    return _dispatcher


def get_speech_service() -> SpeechService:
    global _speech_service
    if _speech_service is None:
        _speech_service = build_speech_service(get_settings())
    return _speech_service


def reset_dependencies() -> None:
    """Сбросить кэшированные сервисы (для тестирования)"""
    global _repository, _session_store, _dispatcher, _speech_service
    _repository = None
    _session_store = None
    _dispatcher = None
    _speech_service = None
