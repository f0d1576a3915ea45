from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from urllib.parse import urlparse


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Параметры базы данных
    db_host: str = Field(default="localhost")
    db_port: int = Field(default=5432)
    db_name: str = Field(default="workspace_assistant")
    db_user: str = Field(default="user")
    db_password: str = Field(default="password")
    db_url: str | None = Field(default=None)
    db_generate_schemas: bool = Field(default=False)

    # Redis и хранилище сессий
    redis_url: str = Field(default="redis://localhost:6379/0")
    session_backend: str = Field(default="memory")  # memory | redis | database

    # Ассистент
    openai_api_key: str | None = Field(default=None)
    openai_base_url: str | None = Field(default=None)
    gpt_model_fast: str = Field(default="gpt-4.1-mini")

    # Синтез речи
    elevenlabs_api_key: str | None = Field(default=None)
    elevenlabs_base_url: str = Field(default="https://api.elevenlabs.io/v1")
    elevenlabs_voice_id: str = Field(default="21m00Tcm4TlvDq8ikWAM")
    elevenlabs_model_id: str = Field(default="eleven_multilingual_v2")

    # Контекст диалога
    history_window: int = Field(default=10)
    history_default_limit: int = Field(default=50)
    search_limit: int = Field(default=10)

    allowed_origins: str = Field(default="*")
    log_level: str = Field(default="INFO")

    @property
    def redis_host(self) -> str:
        """Извлекает host из REDIS_URL"""
        parsed = urlparse(self.redis_url)
        return parsed.hostname or "localhost"

    @property
    def redis_port(self) -> int:
        """Извлекает port из REDIS_URL"""
        parsed = urlparse(self.redis_url)
        return parsed.port or 6379

    @property
    def redis_db(self) -> int:
        """Извлекает database из REDIS_URL"""
        parsed = urlparse(self.redis_url)
        if parsed.path and parsed.path != '/':
            db_part = parsed.path.lstrip('/')
            if db_part.isdigit():
                return int(db_part)
        return 0

    @property
    def redis_password(self) -> Optional[str]:
        """Извлекает password из REDIS_URL"""
        parsed = urlparse(self.redis_url)
        return parsed.password

    @property
    def postgres_dsn(self) -> str:
        """Конструирует DSN для PostgreSQL из отдельных параметров"""
        return f"postgres://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def database_url(self) -> str:
        """DB_URL имеет приоритет над отдельными параметрами"""
        return self.db_url or self.postgres_dsn

    @property
    def origins(self) -> list[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


settings = None

def get_settings() -> Settings:
    """Получить настройки приложения с ленивой инициализацией"""
    global settings
    if settings is None:
        settings = Settings()
    return settings

def reset_settings():
    """Сбросить кэшированные настройки (для тестирования)"""
    global settings
    settings = None
