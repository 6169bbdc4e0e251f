"""
Credentials Management Module

Encrypted storage, validation and OAuth flows for the external services
a compiled workflow references.
"""

from .oauth import OAuthExchange, make_state, verify_state
from .registry import AuthKind, ServiceConfig, SERVICE_REGISTRY, get_credential_requirements, get_service
from .service import CredentialVault, ValidationResult, get_active_credential
from .store import CredentialStore, InMemoryCredentialStore, SQLCredentialStore

__all__ = [
    'AuthKind',
    'CredentialStore',
    'CredentialVault',
    'InMemoryCredentialStore',
    'OAuthExchange',
    'SERVICE_REGISTRY',
    'SQLCredentialStore',
    'ServiceConfig',
    'ValidationResult',
    'get_active_credential',
    'get_credential_requirements',
    'get_service',
    'make_state',
    'verify_state',
]
