from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from app.core.config import get_settings
from app.core.dependencies import get_context_repository
from app.core.errors import AssistantError, PersistenceError
from app.core.logging_config import setup_logging
from app.routers import api, auth, mcp
from app.services.redis_client import close_redis_client


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings = get_settings()
    setup_logging(settings.log_level)
    repository = get_context_repository()
    try:
        await repository.connect()
    except PersistenceError as e:
        # Сервер работает и без базы: контекст просто не подмешивается
        logger.error(f"Не удалось подключиться к базе: {e}")
        logger.warning("Сервер продолжает работу без подключения к базе")
    yield
    # Shutdown
    await repository.disconnect()
    await close_redis_client()


app = FastAPI(
    title="Workspace Assistant API",
    description="Контекстный ассистент для календаря, почты, документов и других сервисов",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AssistantError)
async def assistant_error_handler(request: Request, exc: AssistantError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Некорректный конверт запроса: 400 {error} вместо 422 {detail}"""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())[1:]) or "body"
        problems.append(f"{location}: {error.get('msg')}")
    message = f"Invalid request: {'; '.join(problems)}"
    logger.info(f"{request.method} {request.url.path}: {message}")
    return JSONResponse(status_code=400, content={"error": message})


app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(api.router, prefix="/api", tags=["api"])
app.include_router(mcp.router, prefix="/mcp", tags=["mcp"])

__all__ = ["app"]
