"""
Redis клиент для хранилища сессий.
"""
import redis.asyncio as redis
from app.core.config import get_settings

redis_client = None

async def get_redis_client() -> redis.Redis:
    """Получить общий Redis клиент (создаётся лениво)"""
    global redis_client
    if redis_client is None:
        settings = get_settings()
        redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password,
            decode_responses=True
        )
    return redis_client

async def close_redis_client():
    """Закрыть Redis клиент при остановке приложения"""
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
