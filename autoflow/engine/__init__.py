"""
Workflow Engine Adapter

REST and MCP clients for the external workflow engine, and the gateway that
picks between them per call.
"""

from .client import EngineClient, McpClient, N8nRestClient
from .gateway import EngineGateway

__all__ = [
    'EngineClient',
    'EngineGateway',
    'McpClient',
    'N8nRestClient',
]
