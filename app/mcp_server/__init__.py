"""
MCP сервер ассистента.
Открывает команды протокола контекста как инструменты MCP.
"""

from .server import mcp, init_mcp_server, run_command
from .models import MCPResponse, MCPCommandResponse

__all__ = [
    'mcp',
    'init_mcp_server',
    'run_command',
    'MCPResponse',
    'MCPCommandResponse',
]
