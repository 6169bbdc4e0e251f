"""
Static table of the external services a workflow can touch.

Loaded once at import time and never mutated.
"""
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from autoflow.errors import NotFoundError


class AuthKind(str, Enum):
    API_KEY = "api_key"
    OAUTH2 = "oauth"


@dataclass(frozen=True)
class ServiceConfig:
    service_id: str
    display_name: str
    auth_kind: AuthKind
    liveness_url: str
    scope: Optional[str] = None
    authorize_url: Optional[str] = None
    token_url: Optional[str] = None

    @property
    def is_oauth(self) -> bool:
        return self.auth_kind == AuthKind.OAUTH2

    @property
    def supports_refresh(self) -> bool:
        return self.is_oauth and bool(self.token_url)


@dataclass(frozen=True)
class EngineCredentialType:
    """How the workflow engine names a credential slot for a service."""

    type: str
    name: str
    fields: tuple


SERVICE_REGISTRY: Mapping[str, ServiceConfig] = MappingProxyType(
    {
        "typeform": ServiceConfig(
            service_id="typeform",
            display_name="Typeform",
            auth_kind=AuthKind.OAUTH2,
            authorize_url="https://api.typeform.com/oauth/authorize",
            token_url="https://api.typeform.com/oauth/token",
            scope="accounts:read forms:read responses:read",
            liveness_url="https://api.typeform.com/me",
        ),
        "slack": ServiceConfig(
            service_id="slack",
            display_name="Slack",
            auth_kind=AuthKind.OAUTH2,
            authorize_url="https://slack.com/oauth/v2/authorize",
            token_url="https://slack.com/api/oauth.v2.access",
            scope="chat:write channels:read",
            liveness_url="https://slack.com/api/auth.test",
        ),
        "gmail": ServiceConfig(
            service_id="gmail",
            display_name="Gmail",
            auth_kind=AuthKind.OAUTH2,
            authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            scope="https://www.googleapis.com/auth/gmail.send",
            liveness_url="https://www.googleapis.com/gmail/v1/users/me/profile",
        ),
        "google-sheets": ServiceConfig(
            service_id="google-sheets",
            display_name="Google Sheets",
            auth_kind=AuthKind.OAUTH2,
            authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            scope="https://www.googleapis.com/auth/spreadsheets",
            liveness_url="https://sheets.googleapis.com/v4/spreadsheets",
        ),
        "openai": ServiceConfig(
            service_id="openai",
            display_name="OpenAI",
            auth_kind=AuthKind.API_KEY,
            liveness_url="https://api.openai.com/v1/models",
        ),
    }
)

ENGINE_CREDENTIAL_TYPES: Mapping[str, EngineCredentialType] = MappingProxyType(
    {
        "typeform": EngineCredentialType("typeformApi", "Typeform API", ("accessToken",)),
        "openai": EngineCredentialType("openAiApi", "OpenAI API", ("apiKey",)),
        "slack": EngineCredentialType("slackApi", "Slack API", ("accessToken",)),
        "gmail": EngineCredentialType("gmailOAuth2", "Gmail OAuth2", ("oauthTokenData",)),
        "google-sheets": EngineCredentialType(
            "googleSheetsOAuth2Api", "Google Sheets OAuth2", ("oauthTokenData",)
        ),
    }
)

API_KEY_INSTRUCTIONS: Dict[str, List[str]] = {
    "openai": [
        "Go to https://platform.openai.com/api-keys",
        "Sign in to your OpenAI account",
        'Click "Create new secret key"',
        "Copy the generated API key",
        "Paste it in the field below",
    ],
}
DEFAULT_INSTRUCTIONS = ["Contact your service provider for API key setup instructions"]


def get_service(service_id: str) -> ServiceConfig:
    config = SERVICE_REGISTRY.get(service_id)
    if config is None:
        raise NotFoundError(f"Unknown service: {service_id}", detail={"service": service_id})
    return config


def list_services() -> List[ServiceConfig]:
    return list(SERVICE_REGISTRY.values())


def get_api_key_instructions(service_id: str) -> List[str]:
    return list(API_KEY_INSTRUCTIONS.get(service_id, DEFAULT_INSTRUCTIONS))


def get_credential_requirements(service_id: str) -> Dict[str, Any]:
    """
    Describe what a user must provide to connect a service.

    The shape is consumed by clients that prompt the user for the missing
    credential.
    """
    config = get_service(service_id)
    requirements: Dict[str, Any] = {
        "service": service_id,
        "name": config.display_name,
        "type": config.auth_kind.value,
    }

    if config.is_oauth:
        requirements.update(
            requiresOAuth=True,
            scope=config.scope,
            description=f"Connect your {config.display_name} account to enable automation",
        )
    else:
        requirements.update(
            requiresApiKey=True,
            description=f"Enter your {config.display_name} API key to enable automation",
            instructions=get_api_key_instructions(service_id),
        )
    return requirements
