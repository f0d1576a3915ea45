import os
import sys
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

# Добавляем корневую директорию проекта в путь Python
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from app.core.logging_config import setup_test_logging
from app.repositories.context_repository import ContextRepository
from app.services.command_dispatcher import CommandDispatcher
from app.services.session_store import InMemorySessionStore

SESSION_ID = "session_1700000000000_abc123xyz"
CREDENTIAL = {"access_token": "ya29.test", "refresh_token": "1//refresh", "token_type": "Bearer"}


def pytest_configure(config):
    """Регистрируем кастомные маркеры"""
    config.addinivalue_line(
        "markers", "database: marks tests that use database"
    )
    setup_test_logging("DEBUG")


class FakeAssistant:
    """Ассистент для тестов: запоминает вызовы и возвращает заранее заданный результат"""

    def __init__(self, result: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None):
        self.result = result if result is not None else {"type": "text", "content": "Готово"}
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def process_query(self, text, location, history, context, preferences):
        self.calls.append({
            "method": "process_query",
            "text": text,
            "location": location,
            "history": list(history),
            "context": context,
            "preferences": dict(preferences),
        })
        if self.error:
            raise self.error
        return self.result

    async def handle_schedule_query(self, query, date=None):
        self.calls.append({"method": "handle_schedule_query", "query": query, "date": date})
        if self.error:
            raise self.error
        return {"type": "schedule", "content": "2 events", "events": [{"summary": "Standup"}]}

    async def handle_travel_query(self, query, location=None):
        self.calls.append({"method": "handle_travel_query", "query": query, "location": location})
        if self.error:
            raise self.error
        return {"type": "travel", "content": "25 min", "travelTimes": {"driving": "25 min"}}


@pytest_asyncio.fixture
async def repository():
    """Репозиторий на in-memory SQLite, схема создаётся перед каждым тестом"""
    repo = ContextRepository("sqlite://:memory:", generate_schemas=True)
    await repo.connect()
    yield repo
    await repo.disconnect()


@pytest_asyncio.fixture
async def session_store():
    store = InMemorySessionStore()
    await store.set(SESSION_ID, CREDENTIAL)
    return store


@pytest.fixture
def assistant():
    return FakeAssistant(result={
        "type": "calendar",
        "content": "You have 1 event today",
        "events": [{"summary": "Standup", "start": "2026-10-19T09:00:00Z"}],
    })


@pytest.fixture
def dispatcher(session_store, repository, assistant):
    return CommandDispatcher(
        session_store=session_store,
        repository=repository,
        assistant_factory=lambda credential: assistant,
    )
