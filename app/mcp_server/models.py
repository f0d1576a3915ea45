"""
Модели ответов MCP сервера
"""

from typing import Any, Optional
from pydantic import BaseModel


class MCPResponse(BaseModel):
    """Базовый ответ MCP"""
    success: bool
    error: Optional[str] = None


class MCPCommandResponse(MCPResponse):
    """Ответ на команду протокола контекста"""
    method: str
    result: Any = None
    context: Optional[dict] = None
