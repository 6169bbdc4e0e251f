import logging
from typing import Any, Dict, Optional

from autoflow.engine.client import EngineClient, McpClient, N8nRestClient
from autoflow.errors import EngineError

logger = logging.getLogger(__name__)

VALIDATION_UNAVAILABLE = "Validation not available without MCP"


class EngineGateway(EngineClient):
    """
    Routes engine calls through the MCP bridge when it is reachable and
    through the REST API otherwise.

    The bridge is probed on every call, so it can come and go between
    requests. A call that fails on the bridge is retried once over REST.
    """

    name = "engine gateway"

    def __init__(self, rest: N8nRestClient, mcp: Optional[McpClient] = None):
        self.rest = rest
        self.mcp = mcp

    async def _mcp_available(self) -> bool:
        return self.mcp is not None and await self.mcp.test_connection()

    async def _call(self, operation: str, *args, **kwargs) -> Any:
        if await self._mcp_available():
            try:
                return await getattr(self.mcp, operation)(*args, **kwargs)
            except EngineError as e:
                logger.warning(f"MCP {operation} failed ({e.message}), using direct n8n API")
        return await getattr(self.rest, operation)(*args, **kwargs)

    async def create_workflow(self, document: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call("create_workflow", document)

    async def get_workflow(self, workflow_id: str) -> Dict[str, Any]:
        return await self._call("get_workflow", workflow_id)

    async def update_workflow(self, workflow_id: str, document: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call("update_workflow", workflow_id, document)

    async def delete_workflow(self, workflow_id: str) -> None:
        await self._call("delete_workflow", workflow_id)

    async def list_workflows(self) -> Any:
        return await self._call("list_workflows")

    async def run_workflow(self, workflow_id: str, input_data: Optional[Dict[str, Any]] = None) -> Any:
        return await self._call("run_workflow", workflow_id, input_data)

    async def list_executions(self, workflow_id: str, limit: int = 50) -> Any:
        return await self._call("list_executions", workflow_id, limit)

    async def validate_workflow(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """
        Only the bridge can validate. Without it the document is accepted with
        a warning; a bridge that answers with an error marks it invalid.
        """
        if not await self._mcp_available():
            return {"valid": True, "warnings": [VALIDATION_UNAVAILABLE]}
        try:
            return await self.mcp.validate_workflow(document)
        except EngineError as e:
            return {"valid": False, "errors": [e.message]}

    async def set_workflow_status(self, workflow_id: str, active: bool) -> Any:
        if await self._mcp_available():
            try:
                return await self.mcp.set_workflow_status(workflow_id, active)
            except EngineError as e:
                logger.warning(f"MCP status update failed ({e.message})")

        # Without the bridge: read the workflow, flip active, write it back
        document = await self.get_workflow(workflow_id)
        if not isinstance(document, dict):
            raise EngineError(
                "Engine returned no workflow to update", detail={"workflow_id": workflow_id}
            )
        document["active"] = active
        return await self.update_workflow(workflow_id, document)
