"""
Credential vault: encrypted per-(user, service) secrets.
"""
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import BaseModel

from autoflow.credentials.models import Credential, utcnow
from autoflow.credentials.oauth import OAuthExchange
from autoflow.credentials.registry import ServiceConfig, get_service, SERVICE_REGISTRY
from autoflow.credentials.store import CredentialStore, DuplicateCredentialError
from autoflow.errors import (
    ConfigurationError,
    DecryptionError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from autoflow.utils.security import decrypt_string, encrypt_string

logger = logging.getLogger(__name__)


class ValidationResult(BaseModel):
    valid: bool
    detail: Optional[str] = None
    data: Optional[Any] = None


class CredentialVault:
    """
    Stores, retrieves and checks credentials for the owning user.

    Concurrency: store() looks the (user, service) record up and then updates or
    inserts it. Two concurrent stores for the same key are not serialized here;
    the last write wins. When the backing store rejects a duplicate insert the
    vault updates the record that won the race instead of creating a second one.
    """

    def __init__(
        self,
        store: CredentialStore,
        secret: str,
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not secret:
            raise ConfigurationError("Encryption key not configured")
        self.store_backend = store
        self._secret = secret
        self.timeout = timeout
        self.transport = transport

    # =========================================================================
    # Storage
    # =========================================================================

    def store(self, user_id: str, service_id: str, payload: Dict[str, Any]) -> Credential:
        if service_id not in SERVICE_REGISTRY:
            raise ValidationError(f"Unknown service: {service_id}", detail={"service": service_id})
        if not isinstance(payload, dict) or not payload:
            raise ValidationError("Credential data must be a non-empty object")

        encrypted = encrypt_string(json.dumps(payload), self._secret)

        existing = self.store_backend.find(user_id, service_id)
        if existing is None:
            record = Credential(user_id=user_id, service_id=service_id, encrypted_payload=encrypted)
            try:
                credential = self.store_backend.insert(record)
                logger.info(f"Stored new {service_id} credential for user {user_id}")
                return credential
            except DuplicateCredentialError:
                logger.warning(
                    f"Concurrent store for {service_id} / user {user_id}, updating winning record"
                )
                existing = self.store_backend.find(user_id, service_id)
                if existing is None:
                    raise

        existing.encrypted_payload = encrypted
        existing.updated_at = utcnow()
        credential = self.store_backend.update(existing)
        logger.info(f"Updated {service_id} credential for user {user_id}")
        return credential

    def _decrypt(self, record: Credential) -> Dict[str, Any]:
        try:
            decrypted = decrypt_string(record.encrypted_payload, self._secret)
            payload = json.loads(decrypted)
        except DecryptionError:
            logger.error(f"Failed to decrypt credential {record.id}")
            raise
        except json.JSONDecodeError as e:
            logger.error(f"Credential {record.id} decrypted to unreadable data")
            raise DecryptionError("Failed to decrypt credentials") from e
        if not isinstance(payload, dict):
            raise DecryptionError("Failed to decrypt credentials")
        return payload

    def retrieve_record(
        self, user_id: str, service_id: str
    ) -> Optional[Tuple[Credential, Dict[str, Any]]]:
        record = self.store_backend.find(user_id, service_id)
        if record is None:
            return None
        return record, self._decrypt(record)

    def retrieve(self, user_id: str, service_id: str) -> Optional[Dict[str, Any]]:
        """Decrypted payload for (user, service), or None when nothing is stored."""
        found = self.retrieve_record(user_id, service_id)
        return found[1] if found else None

    def get_owned(self, user_id: str, credential_id: str) -> Credential:
        record = self.store_backend.get(credential_id)
        if record is None or record.user_id != user_id:
            raise NotFoundError("Credential not found", detail={"credential_id": credential_id})
        return record

    def list_credentials(self, user_id: str) -> List[Credential]:
        return self.store_backend.list_for_user(user_id)

    def credential_map(self, user_id: str) -> Dict[str, str]:
        """serviceId -> credentialId for everything the user has stored."""
        return {c.service_id: c.id for c in self.list_credentials(user_id)}

    def delete(self, user_id: str, credential_id: str) -> None:
        record = self.get_owned(user_id, credential_id)
        self.store_backend.delete(record.id)
        logger.info(f"Deleted {record.service_id} credential for user {user_id}")

    # =========================================================================
    # Validation
    # =========================================================================

    @staticmethod
    def _secret_for(config: ServiceConfig, payload: Dict[str, Any]) -> Optional[str]:
        if config.is_oauth:
            return payload.get("access_token")
        return payload.get("apiKey") or payload.get("api_key")

    async def _probe(self, config: ServiceConfig, token: str) -> Any:
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(config.liveness_url, headers=headers)
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                f"{config.display_name} liveness check failed: {e.__class__.__name__}"
            ) from e

        if not response.is_success:
            raise ExternalServiceError(
                f"{config.display_name} returned HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError:
            return response.text

        # Slack reports auth failures with HTTP 200 and ok=false
        if isinstance(data, dict) and data.get("ok") is False:
            raise ExternalServiceError(
                f"{config.display_name} rejected the credential: {data.get('error', 'unknown error')}"
            )
        return data

    async def validate(self, service_id: str, payload: Dict[str, Any]) -> ValidationResult:
        """
        Checks a credential against the service's liveness endpoint.

        Never raises for remote failures; they come back as valid=False.
        """
        config = get_service(service_id)
        token = self._secret_for(config, payload or {})
        if not token:
            field = "access_token" if config.is_oauth else "apiKey"
            return ValidationResult(valid=False, detail=f"Missing {field} for {config.display_name}")

        try:
            data = await self._probe(config, token)
        except ExternalServiceError as e:
            logger.warning(f"Credential validation failed for {service_id}: {e.message}")
            return ValidationResult(valid=False, detail=e.message)

        return ValidationResult(valid=True, data=data)

    async def test(self, user_id: str, credential_id: str) -> ValidationResult:
        record = self.get_owned(user_id, credential_id)
        return await self.validate(record.service_id, self._decrypt(record))


def _parse_timestamp(val: Any) -> Optional[datetime]:
    """Helper to parse timestamps safely from int, float, string or datetime."""
    if not val:
        return None
    if isinstance(val, datetime):
        parsed = val
    elif isinstance(val, (int, float)):
        parsed = datetime.fromtimestamp(val, tz=timezone.utc)
    elif isinstance(val, str):
        try:
            parsed = datetime.fromisoformat(val)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def token_expiry(token_set: Dict[str, Any], issued_at: datetime) -> Optional[datetime]:
    """When an OAuth token set stops being valid, if it says so."""
    expires_in = token_set.get("expires_in")
    if not expires_in:
        return None
    try:
        seconds = float(expires_in)
    except (TypeError, ValueError):
        return None
    issued = _parse_timestamp(token_set.get("refreshed_at")) or _parse_timestamp(issued_at)
    return issued + timedelta(seconds=seconds)


async def get_active_credential(
    vault: CredentialVault,
    exchange: OAuthExchange,
    user_id: str,
    service_id: str,
    client_id: Optional[str],
    client_secret: Optional[str],
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    """
    Fetches a credential and refreshes it first if its access token expired.

    A failed refresh raises OAuthExchangeError and leaves the stored record untouched.
    """
    found = vault.retrieve_record(user_id, service_id)
    if found is None:
        return None
    record, payload = found

    expiry = token_expiry(payload, record.updated_at)
    now = now or utcnow()
    if expiry is None or expiry > now:
        return payload

    if not payload.get("refresh_token"):
        logger.debug(f"{service_id} token for user {user_id} expired and cannot be refreshed")
        return payload

    if not client_id or not client_secret:
        raise ConfigurationError(f"No OAuth client configured for {service_id}")

    logger.debug(f"{service_id} token for user {user_id} expired at {expiry}, refreshing")
    refreshed = await exchange.refresh_token(service_id, payload, client_id, client_secret)
    vault.store(user_id, service_id, refreshed)
    return refreshed

