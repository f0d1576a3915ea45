#!/usr/bin/env python3
"""
MCP сервер ассистента.
Каждый инструмент - тонкая обёртка над CommandDispatcher.execute.
"""

import asyncio
import logging
import sys
from typing import Any, Dict, Optional

from fastmcp import FastMCP

from app.core.dependencies import get_context_repository, get_dispatcher
from app.core.errors import AssistantError, PersistenceError
from app.services.command_dispatcher import Method

from .models import MCPCommandResponse

logger = logging.getLogger(__name__)

mcp = FastMCP("WorkspaceAssistant")


async def run_command(method: str, params: Optional[Dict[str, Any]], session_id: str) -> Dict[str, Any]:
    """Выполняет команду и упаковывает результат или ошибку в ответ MCP"""
    dispatcher = await get_dispatcher()
    try:
        result = await dispatcher.execute(method, params or {}, session_id)
    except AssistantError as e:
        logger.warning(f"Команда {method} для {session_id} не выполнена: {e}")
        return MCPCommandResponse(success=False, method=str(method), error=e.message).model_dump(exclude_none=True)
    return MCPCommandResponse(
        success=True, method=str(method), result=result.result, context=result.context
    ).model_dump(exclude_none=True)


@mcp.tool()
async def execute(session_id: str, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Выполняет произвольную команду протокола контекста.

    Args:
        session_id: ID сессии пользователя
        method: query, get_schedule, get_travel_time, save_context, get_context,
            get_conversation_history, save_preference, get_preferences,
            search_context, update_location, clear_context
        params: параметры команды
    """
    return await run_command(method, params, session_id)


@mcp.tool()
async def ask(session_id: str, query: str, current_location: Optional[str] = None) -> Dict[str, Any]:
    """Задаёт вопрос ассистенту с учётом истории и контекста сессии"""
    params = {"query": query}
    if current_location:
        params["currentLocation"] = current_location
    return await run_command(Method.QUERY.value, params, session_id)


@mcp.tool()
async def get_context(session_id: str) -> Dict[str, Any]:
    """Возвращает документ контекста сессии"""
    return await run_command(Method.GET_CONTEXT.value, {}, session_id)


@mcp.tool()
async def get_conversation_history(session_id: str, limit: int = 50) -> Dict[str, Any]:
    """Последние реплики диалога в хронологическом порядке"""
    return await run_command(Method.GET_CONVERSATION_HISTORY.value, {"limit": limit}, session_id)


@mcp.tool()
async def save_preference(session_id: str, key: str, value: Any) -> Dict[str, Any]:
    """Сохраняет предпочтение пользователя (например tone=formal)"""
    return await run_command(Method.SAVE_PREFERENCE.value, {"key": key, "value": value}, session_id)


@mcp.tool()
async def get_preferences(session_id: str) -> Dict[str, Any]:
    return await run_command(Method.GET_PREFERENCES.value, {}, session_id)


@mcp.tool()
async def search_context(session_id: str, query: str) -> Dict[str, Any]:
    """Ищет текст в сохранённом контексте сессии"""
    return await run_command(Method.SEARCH_CONTEXT.value, {"query": query}, session_id)


@mcp.tool()
async def update_location(session_id: str, location: str) -> Dict[str, Any]:
    return await run_command(Method.UPDATE_LOCATION.value, {"location": location}, session_id)


@mcp.tool()
async def clear_context(session_id: str) -> Dict[str, Any]:
    """Удаляет контекст, историю и предпочтения сессии"""
    return await run_command(Method.CLEAR_CONTEXT.value, {}, session_id)


async def init_mcp_server() -> bool:
    """
    Проверяет подключение к базе перед запуском MCP сервера.
    Рабочее соединение откроется заново в цикле событий сервера при первой команде.
    """
    repository = get_context_repository()
    try:
        await repository.connect()
        await repository.disconnect()
        logger.info("MCP сервер: база доступна")
        return True
    except PersistenceError as e:
        logger.error(f"Ошибка инициализации MCP сервера: {e}")
        return False


def main():
    """Запуск как stdio сервер"""
    if not asyncio.run(init_mcp_server()):
        logger.error("Не удалось запустить MCP сервер")
        sys.exit(1)
    mcp.run()


def main_http():
    """Запуск как HTTP сервер"""
    if not asyncio.run(init_mcp_server()):
        logger.error("Не удалось запустить MCP сервер")
        sys.exit(1)
    mcp.run(transport="http", host="0.0.0.0", port=8001)


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "--http":
        main_http()
    else:
        main()
