"""
Clients for the external workflow engine.

Two transports reach the same engine: its public REST API (authenticated with
an API key header) and an MCP bridge server (bearer token) that exposes a few
extra management calls. Both speak JSON over httpx and turn every transport
or HTTP failure into an EngineError.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from autoflow.errors import ConfigurationError, EngineError

logger = logging.getLogger(__name__)


class EngineClient(ABC):
    """Operations the rest of the application needs from the engine."""

    name: str = "engine"

    @abstractmethod
    async def create_workflow(self, document: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def get_workflow(self, workflow_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def update_workflow(self, workflow_id: str, document: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def delete_workflow(self, workflow_id: str) -> None:
        ...

    @abstractmethod
    async def list_workflows(self) -> Any:
        ...

    @abstractmethod
    async def run_workflow(self, workflow_id: str, input_data: Optional[Dict[str, Any]] = None) -> Any:
        ...

    @abstractmethod
    async def list_executions(self, workflow_id: str, limit: int = 50) -> Any:
        ...


class _HttpEngineClient(EngineClient):
    def __init__(
        self,
        base_url: Optional[str],
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _ensure_configured(self) -> None:
        if not self.base_url:
            raise ConfigurationError(f"{self.name} base URL is not configured")

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        self._ensure_configured()
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{self.name} {method} {path} failed: {e.__class__.__name__}")
            raise EngineError(
                f"{self.name} request failed: {e.__class__.__name__}",
                detail={"path": path},
            ) from e

        if not response.is_success:
            logger.error(f"{self.name} {method} {path} returned HTTP {response.status_code}")
            try:
                body: Any = response.json()
            except ValueError:
                body = response.text
            raise EngineError(
                f"{self.name} returned HTTP {response.status_code}",
                detail={"path": path, "engine_response": body},
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text


class N8nRestClient(_HttpEngineClient):
    """Direct access to the engine's /api/v1 REST API."""

    name = "n8n API"

    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str],
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, timeout=timeout, transport=transport)
        self.api_key = api_key

    def _headers(self) -> Dict[str, str]:
        return {**super()._headers(), "X-N8N-API-KEY": self.api_key or ""}

    def _ensure_configured(self) -> None:
        if not self.base_url or not self.api_key:
            raise ConfigurationError("N8N_API_URL and N8N_API_KEY must be configured")

    async def create_workflow(self, document: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/api/v1/workflows", json=document)

    async def get_workflow(self, workflow_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/v1/workflows/{workflow_id}")

    async def update_workflow(self, workflow_id: str, document: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", f"/api/v1/workflows/{workflow_id}", json=document)

    async def delete_workflow(self, workflow_id: str) -> None:
        await self._request("DELETE", f"/api/v1/workflows/{workflow_id}")

    async def list_workflows(self) -> Any:
        return await self._request("GET", "/api/v1/workflows")

    async def run_workflow(self, workflow_id: str, input_data: Optional[Dict[str, Any]] = None) -> Any:
        # The REST API runs the saved workflow as-is; input data is not forwarded
        return await self._request("POST", f"/api/v1/workflows/{workflow_id}/run")

    async def list_executions(self, workflow_id: str, limit: int = 50) -> Any:
        return await self._request("GET", f"/api/v1/workflows/{workflow_id}/executions")


class McpClient(_HttpEngineClient):
    """Management calls through the MCP bridge server in front of the engine."""

    name = "MCP server"

    def __init__(
        self,
        base_url: Optional[str],
        auth_token: Optional[str],
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, timeout=timeout, transport=transport)
        self.auth_token = auth_token

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def test_connection(self) -> bool:
        """True when the bridge answers its health check."""
        if not self.base_url:
            return False
        try:
            await self._request("GET", "/health")
        except EngineError as e:
            logger.warning(f"MCP server not available: {e.message}")
            return False
        return True

    async def create_workflow(self, document: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/workflows", json=document)

    async def get_workflow(self, workflow_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/workflows/{workflow_id}")

    async def update_workflow(self, workflow_id: str, document: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", f"/workflows/{workflow_id}", json=document)

    async def delete_workflow(self, workflow_id: str) -> None:
        await self._request("DELETE", f"/workflows/{workflow_id}")

    async def list_workflows(self) -> Any:
        return await self._request("GET", "/workflows")

    async def run_workflow(self, workflow_id: str, input_data: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request(
            "POST", f"/workflows/{workflow_id}/execute", json={"data": input_data or {}}
        )

    async def list_executions(self, workflow_id: str, limit: int = 50) -> Any:
        return await self._request(
            "GET", f"/workflows/{workflow_id}/executions", params={"limit": limit}
        )

    async def set_workflow_status(self, workflow_id: str, active: bool) -> Any:
        return await self._request("PATCH", f"/workflows/{workflow_id}/status", json={"active": active})

    async def validate_workflow(self, document: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/workflows/validate", json=document)
