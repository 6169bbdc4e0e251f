"""
Credentials API router.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from autoflow.config import settings
from autoflow.credentials.oauth import make_state, verify_state
from autoflow.credentials.registry import get_credential_requirements
from autoflow.credentials.service import get_active_credential
from autoflow.deps import CurrentUser, ExchangeDep, VaultDep
from autoflow.errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Pydantic Schemas
# =============================================================================

class CredentialCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    service: str
    data: Dict[str, Any]
    # Check the credential against the provider before saving it
    check: bool = Field(default=True, alias="validate")


class OAuthUrlRequest(BaseModel):
    service: str
    clientId: Optional[str] = None
    redirectUri: Optional[str] = None


class OAuthCallbackRequest(BaseModel):
    service: str
    code: str
    state: Optional[str] = None
    clientId: Optional[str] = None
    clientSecret: Optional[str] = None
    redirectUri: Optional[str] = None


def _client_pair(service: str, client_id: Optional[str], client_secret: Optional[str] = None):
    configured_id, configured_secret = settings.oauth_client(service)
    return client_id or configured_id, client_secret or configured_secret


# =============================================================================
# CRUD Endpoints
# =============================================================================

@router.get("/")
def list_credentials(vault: VaultDep, current_user: CurrentUser) -> List[Dict[str, Any]]:
    """List the current user's credentials without their secrets."""
    return [c.summary() for c in vault.list_credentials(current_user)]


@router.post("/", status_code=201)
async def create_credential(
    body: CredentialCreate, vault: VaultDep, current_user: CurrentUser
) -> Dict[str, Any]:
    if body.check:
        result = await vault.validate(body.service, body.data)
        if not result.valid:
            raise ValidationError("Invalid credentials", detail={"error": result.detail})

    credential = vault.store(current_user, body.service, body.data)
    return {
        "id": credential.id,
        "service": credential.service_id,
        "message": f"{body.service} credentials saved successfully",
    }


@router.delete("/{credential_id}")
def delete_credential(credential_id: str, vault: VaultDep, current_user: CurrentUser) -> Dict[str, Any]:
    vault.delete(current_user, credential_id)
    return {"success": True}


@router.post("/{credential_id}/test")
async def test_credential(
    credential_id: str, vault: VaultDep, exchange: ExchangeDep, current_user: CurrentUser
) -> Dict[str, Any]:
    """Check a stored credential against its provider, refreshing an expired OAuth token first."""
    record = vault.get_owned(current_user, credential_id)
    client_id, client_secret = _client_pair(record.service_id, None)
    if client_id and client_secret:
        await get_active_credential(
            vault, exchange, current_user, record.service_id, client_id, client_secret
        )
    result = await vault.test(current_user, credential_id)
    return result.model_dump(exclude_none=True)


@router.get("/requirements/{service}")
def credential_requirements(service: str, current_user: CurrentUser) -> Dict[str, Any]:
    return get_credential_requirements(service)


# =============================================================================
# OAuth Implementation
# =============================================================================

@router.post("/oauth/url")
def oauth_url(body: OAuthUrlRequest, exchange: ExchangeDep, current_user: CurrentUser) -> Dict[str, str]:
    """Start an authorization-code flow for the current user."""
    client_id, _ = _client_pair(body.service, body.clientId)
    if not client_id:
        raise ConfigurationError(
            f"OAuth for {body.service} is not configured on the server",
            detail={"service": body.service},
        )
    state = make_state(current_user)
    auth_url = exchange.build_authorization_url(
        body.service, client_id, body.redirectUri or settings.OAUTH_REDIRECT_URI, state
    )
    return {"authUrl": auth_url, "state": state}


@router.post("/oauth/callback")
async def oauth_callback(
    body: OAuthCallbackRequest, vault: VaultDep, exchange: ExchangeDep, current_user: CurrentUser
) -> Dict[str, Any]:
    """Exchange the authorization code and store the resulting token set."""
    if not verify_state(body.state, current_user):
        raise ValidationError("Invalid state parameter")

    client_id, client_secret = _client_pair(body.service, body.clientId, body.clientSecret)
    if not client_id or not client_secret:
        raise ValidationError("Missing required OAuth parameters", detail={"service": body.service})

    # A failed exchange raises before anything is stored
    token_set = await exchange.exchange_code(
        body.service,
        body.code,
        client_id,
        client_secret,
        body.redirectUri or settings.OAUTH_REDIRECT_URI,
    )
    credential = vault.store(current_user, body.service, token_set)
    return {
        "id": credential.id,
        "service": credential.service_id,
        "message": f"{body.service} connected successfully",
    }
