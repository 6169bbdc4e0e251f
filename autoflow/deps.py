"""
FastAPI dependencies.

This is the only place, together with the CLI, that reads settings to build
the vault, the OAuth exchange and the engine clients.
"""
from functools import lru_cache
from typing import Annotated, Generator, Optional

from fastapi import Depends, Header, HTTPException
from sqlmodel import Session

from autoflow.ai.interpreter import WorkflowInterpreter
from autoflow.config import settings
from autoflow.credentials import CredentialVault, OAuthExchange, SQLCredentialStore
from autoflow.database import engine
from autoflow.engine import EngineGateway, McpClient, N8nRestClient
from autoflow.workflows.service import WorkflowService


def get_db() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_db)]


def get_current_user(x_user_id: Annotated[Optional[str], Header()] = None) -> str:
    # Authentication happens upstream; it forwards the user id in this header
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id


CurrentUser = Annotated[str, Depends(get_current_user)]


@lru_cache
def get_vault() -> CredentialVault:
    return CredentialVault(
        SQLCredentialStore(engine),
        settings.ENCRYPTION_KEY,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )


@lru_cache
def get_oauth_exchange() -> OAuthExchange:
    return OAuthExchange(timeout=settings.HTTP_TIMEOUT_SECONDS)


@lru_cache
def get_engine_gateway() -> EngineGateway:
    rest = N8nRestClient(
        settings.N8N_API_URL, settings.N8N_API_KEY, timeout=settings.HTTP_TIMEOUT_SECONDS
    )
    mcp = McpClient(
        settings.N8N_MCP_URL, settings.MCP_AUTH_TOKEN, timeout=settings.HTTP_TIMEOUT_SECONDS
    )
    return EngineGateway(rest, mcp)


VaultDep = Annotated[CredentialVault, Depends(get_vault)]
ExchangeDep = Annotated[OAuthExchange, Depends(get_oauth_exchange)]
GatewayDep = Annotated[EngineGateway, Depends(get_engine_gateway)]


def get_workflow_service(vault: VaultDep, gateway: GatewayDep) -> WorkflowService:
    return WorkflowService(vault, gateway)


WorkflowServiceDep = Annotated[WorkflowService, Depends(get_workflow_service)]


def get_interpreter(workflow_service: WorkflowServiceDep) -> WorkflowInterpreter:
    return WorkflowInterpreter(
        workflow_service,
        api_key=settings.OPENROUTER_API_KEY,
        base_url=settings.OPENROUTER_BASE_URL,
        model=settings.OPENROUTER_DEFAULT_MODEL,
        default_headers={"X-Title": settings.PROJECT_NAME},
    )


InterpreterDep = Annotated[WorkflowInterpreter, Depends(get_interpreter)]
