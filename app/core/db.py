"""
Подключение Tortoise ORM.
Соединение одно на процесс: создаётся лениво и переиспользуется всеми запросами.
"""
import asyncio
import logging
import socket
from typing import Any, Dict

from tortoise import Tortoise, connections

from app.core.errors import StoreConnectionError

logger = logging.getLogger(__name__)

MODEL_MODULES = [
    "app.models.context",
    "app.models.conversation_turn",
    "app.models.user_preference",
    "app.models.session_data",
    "app.models.session_credential",
]


def build_tortoise_config(db_url: str) -> Dict[str, Any]:
    return {
        "connections": {"default": db_url},
        "apps": {
            "models": {
                "models": list(MODEL_MODULES),
                "default_connection": "default",
            }
        },
    }


def mask_dsn(dsn: str) -> str:
    """
    Скрывает пароль в строке подключения для логов.
    Хост не может содержать '@', поэтому учётные данные - всё до последнего '@';
    пароль может содержать ':', '/' и '@'.
    """
    scheme, separator, rest = dsn.partition("://")
    if not separator or "@" not in rest:
        return dsn
    userinfo, _, hostinfo = rest.rpartition("@")
    user, colon, _ = userinfo.partition(":")
    if not colon:
        return dsn
    return f"{scheme}://{user}:****@{hostinfo}"


def classify_connection_error(error: BaseException) -> tuple[str, str]:
    """
    Определяет причину ошибки подключения и подсказку для исправления.

    Returns:
        (reason, hint), где reason: auth | network | timeout | unknown
    """
    message = str(error).lower()

    if isinstance(error, (asyncio.TimeoutError, TimeoutError)) or "timeout" in message or "timed out" in message:
        return "timeout", "check network connectivity and that the database host is reachable"
    if "authentication" in message or "password" in message or "bad auth" in message:
        return "auth", "check DB_USER / DB_PASSWORD (or the credentials inside DB_URL)"
    if isinstance(error, (socket.gaierror, ConnectionRefusedError, OSError)) or "could not connect" in message \
            or "name or service not known" in message or "connection refused" in message:
        return "network", "check DB_HOST / DB_PORT and that the database server is running and allows this client"
    return "unknown", "see the chained exception for details"


async def init_db(db_url: str, generate_schemas: bool = False) -> None:
    """
    Инициализирует Tortoise и проверяет соединение запросом SELECT 1.

    Raises:
        StoreConnectionError: если подключиться не удалось
    """
    logger.info(f"Подключение к базе данных: {mask_dsn(db_url)}")
    try:
        await Tortoise.init(config=build_tortoise_config(db_url))
        await connections.get("default").execute_query("SELECT 1")
        if generate_schemas:
            await Tortoise.generate_schemas(safe=True)
    except Exception as e:
        reason, hint = classify_connection_error(e)
        logger.error(f"Ошибка подключения к базе данных ({reason}): {e}")
        logger.error(f"   → {hint}")
        await close_db()
        raise StoreConnectionError(f"Database connection failed: {e}", reason=reason, hint=hint) from e

    logger.info("База данных подключена")


async def ping_db() -> None:
    await connections.get("default").execute_query("SELECT 1")


async def close_db() -> None:
    try:
        await Tortoise.close_connections()
    except Exception as e:
        logger.warning(f"Ошибка при закрытии соединений: {e}")
