"""
Иерархия ошибок сервиса контекста.
Каждый класс знает свой HTTP статус, чтобы шлюз мог отобразить ошибку в ответ.
"""
from typing import Optional


class AssistantError(Exception):
    """Базовая ошибка сервиса"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(AssistantError):
    """Отсутствует sessionId или для него не найдены учётные данные"""
    status_code = 401


class ValidationError(AssistantError):
    """Не передан обязательный параметр команды"""
    status_code = 400


class UnknownMethodError(AssistantError):
    """Неизвестный метод командного протокола"""
    status_code = 400

    def __init__(self, method):
        super().__init__(f"Unknown method: {method}")
        self.method = method


class PersistenceError(AssistantError):
    """Хранилище недоступно или операция с ним завершилась ошибкой"""
    status_code = 503


class StoreConnectionError(PersistenceError):
    """
    Не удалось подключиться к хранилищу.

    reason: auth | network | timeout | unknown
    hint: что проверить, чтобы исправить подключение
    """

    def __init__(self, message: str, reason: str = "unknown", hint: Optional[str] = None):
        super().__init__(message)
        self.reason = reason
        self.hint = hint

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} ({self.reason}: {self.hint})"
        return f"{self.message} ({self.reason})"


class UpstreamError(AssistantError):
    """Ошибка внешнего сервиса (ассистент, карты, синтез речи)"""
    status_code = 502
