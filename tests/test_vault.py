import logging
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from autoflow.credentials import CredentialVault, InMemoryCredentialStore, OAuthExchange, get_active_credential
from autoflow.credentials.service import token_expiry
from autoflow.credentials.store import DuplicateCredentialError
from autoflow.errors import ConfigurationError, DecryptionError, NotFoundError, OAuthExchangeError, ValidationError

from tests.utils import SECRET, json_transport

OPENAI_MODELS = "https://api.openai.com/v1/models"
SLACK_AUTH_TEST = "https://slack.com/api/auth.test"
GOOGLE_TOKEN = "https://oauth2.googleapis.com/token"


@pytest.fixture(params=["memory", "sql"])
def vault(request, memory_vault, sql_vault):
    return memory_vault if request.param == "memory" else sql_vault


def test_store_then_retrieve(vault):
    vault.store("u1", "openai", {"apiKey": "sk-123"})
    assert vault.retrieve("u1", "openai") == {"apiKey": "sk-123"}


def test_retrieve_missing_returns_none(vault):
    assert vault.retrieve("u1", "slack") is None


def test_store_twice_keeps_one_record_and_id(vault):
    first = vault.store("u1", "openai", {"apiKey": "sk-1"})
    second = vault.store("u1", "openai", {"apiKey": "sk-2"})
    assert first.id == second.id
    assert len(vault.list_credentials("u1")) == 1
    assert vault.retrieve("u1", "openai") == {"apiKey": "sk-2"}


def test_credentials_are_scoped_to_user(vault):
    vault.store("u1", "openai", {"apiKey": "sk-1"})
    vault.store("u2", "openai", {"apiKey": "sk-2"})
    assert vault.retrieve("u1", "openai") == {"apiKey": "sk-1"}
    assert vault.retrieve("u2", "openai") == {"apiKey": "sk-2"}
    assert vault.credential_map("u1") == {"openai": vault.list_credentials("u1")[0].id}


def test_payload_is_encrypted_at_rest(vault):
    record = vault.store("u1", "openai", {"apiKey": "sk-plaintext"})
    stored = vault.store_backend.get(record.id)
    assert "sk-plaintext" not in stored.encrypted_payload
    assert ":" in stored.encrypted_payload


def test_summary_has_no_payload(vault):
    record = vault.store("u1", "openai", {"apiKey": "sk-123"})
    summary = record.summary()
    assert set(summary) == {"id", "service", "createdAt", "updatedAt"}
    assert summary["service"] == "openai"


@pytest.mark.parametrize("payload", [{}, None, "sk-123", ["a"]])
def test_store_rejects_bad_payload(vault, payload):
    with pytest.raises(ValidationError):
        vault.store("u1", "openai", payload)


def test_store_rejects_unknown_service(vault):
    with pytest.raises(ValidationError):
        vault.store("u1", "dropbox", {"apiKey": "x"})


def test_wrong_secret_raises_decryption_error(sql_engine):
    from autoflow.credentials import SQLCredentialStore

    store = SQLCredentialStore(sql_engine)
    CredentialVault(store, "secret-a").store("u1", "openai", {"apiKey": "sk-123"})
    other = CredentialVault(store, "secret-b")
    try:
        payload = other.retrieve("u1", "openai")
    except DecryptionError:
        return
    # A wrong key that happens to unpad cleanly must still never yield the payload
    assert payload != {"apiKey": "sk-123"}


def test_corrupted_record_raises_decryption_error(vault):
    record = vault.store("u1", "openai", {"apiKey": "sk-123"})
    record.encrypted_payload = "garbage"
    vault.store_backend.update(record)
    with pytest.raises(DecryptionError):
        vault.retrieve("u1", "openai")


def test_missing_secret_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        CredentialVault(InMemoryCredentialStore(), "")


def test_delete_checks_ownership(vault):
    record = vault.store("u1", "openai", {"apiKey": "sk-123"})
    with pytest.raises(NotFoundError):
        vault.delete("u2", record.id)
    vault.delete("u1", record.id)
    assert vault.retrieve("u1", "openai") is None


def test_duplicate_insert_falls_back_to_update():
    class RacyStore(InMemoryCredentialStore):
        """find() misses once, as if another request inserted in between."""

        def __init__(self):
            super().__init__()
            self.missed = False

        def find(self, user_id, service_id):
            if not self.missed:
                self.missed = True
                return None
            return super().find(user_id, service_id)

    store = RacyStore()
    winner = CredentialVault(InMemoryCredentialStore(), SECRET)
    # seed the racing record directly
    seeded = winner.store("u1", "openai", {"apiKey": "sk-first"})
    store.insert(seeded)

    vault = CredentialVault(store, SECRET)
    record = vault.store("u1", "openai", {"apiKey": "sk-second"})
    assert record.id == seeded.id
    assert vault.retrieve("u1", "openai") == {"apiKey": "sk-second"}


def test_sql_store_enforces_unique_key(sql_vault):
    from autoflow.credentials.models import Credential

    sql_vault.store("u1", "openai", {"apiKey": "sk-1"})
    with pytest.raises(DuplicateCredentialError):
        sql_vault.store_backend.insert(
            Credential(user_id="u1", service_id="openai", encrypted_payload="x:y")
        )


def test_secrets_are_not_logged(vault, caplog):
    with caplog.at_level(logging.DEBUG, logger="autoflow"):
        vault.store("u1", "openai", {"apiKey": "sk-very-secret"})
        vault.retrieve("u1", "openai")
    assert "sk-very-secret" not in caplog.text


# --- validation ---


@pytest.mark.asyncio
async def test_validate_api_key_success():
    transport = json_transport({("GET", OPENAI_MODELS): (200, {"data": [{"id": "gpt-4"}]})})
    vault = CredentialVault(InMemoryCredentialStore(), SECRET, transport=transport)
    result = await vault.validate("openai", {"apiKey": "sk-123"})
    assert result.valid is True
    assert transport.requests[0].headers["Authorization"] == "Bearer sk-123"


@pytest.mark.asyncio
async def test_validate_rejected_key_is_invalid_not_raised():
    transport = json_transport({("GET", OPENAI_MODELS): (401, {"error": "invalid_api_key"})})
    vault = CredentialVault(InMemoryCredentialStore(), SECRET, transport=transport)
    result = await vault.validate("openai", {"apiKey": "sk-bad"})
    assert result.valid is False
    assert "401" in result.detail


@pytest.mark.asyncio
async def test_validate_slack_ok_false_is_invalid():
    transport = json_transport({("GET", SLACK_AUTH_TEST): (200, {"ok": False, "error": "invalid_auth"})})
    vault = CredentialVault(InMemoryCredentialStore(), SECRET, transport=transport)
    result = await vault.validate("slack", {"access_token": "xoxb-1"})
    assert result.valid is False
    assert "invalid_auth" in result.detail


@pytest.mark.asyncio
async def test_validate_network_failure_is_invalid():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    vault = CredentialVault(InMemoryCredentialStore(), SECRET, transport=httpx.MockTransport(handler))
    result = await vault.validate("openai", {"apiKey": "sk-123"})
    assert result.valid is False


@pytest.mark.asyncio
async def test_validate_missing_token_skips_network():
    transport = json_transport({})
    vault = CredentialVault(InMemoryCredentialStore(), SECRET, transport=transport)
    result = await vault.validate("slack", {"refresh_token": "r"})
    assert result.valid is False
    assert result.detail == "Missing access_token for Slack"
    assert transport.requests == []


@pytest.mark.asyncio
async def test_test_credential_checks_owner():
    transport = json_transport({("GET", OPENAI_MODELS): (200, {"data": []})})
    vault = CredentialVault(InMemoryCredentialStore(), SECRET, transport=transport)
    record = vault.store("u1", "openai", {"apiKey": "sk-123"})
    assert (await vault.test("u1", record.id)).valid is True
    with pytest.raises(NotFoundError):
        await vault.test("u2", record.id)


# --- refresh on expiry ---


def test_token_expiry_uses_refreshed_at_first():
    issued = datetime(2024, 1, 1, tzinfo=timezone.utc)
    token_set = {"expires_in": 3600, "refreshed_at": "2024-01-02T00:00:00+00:00"}
    assert token_expiry(token_set, issued) == datetime(2024, 1, 2, 1, tzinfo=timezone.utc)
    assert token_expiry({"expires_in": 60}, issued) == issued + timedelta(seconds=60)
    assert token_expiry({}, issued) is None


@pytest.mark.asyncio
async def test_get_active_credential_refreshes_expired_token():
    transport = json_transport(
        {("POST", GOOGLE_TOKEN): (200, {"access_token": "new-at", "expires_in": 3600})}
    )
    vault = CredentialVault(InMemoryCredentialStore(), SECRET)
    vault.store("u1", "gmail", {"access_token": "old-at", "refresh_token": "rt", "expires_in": 60})
    exchange = OAuthExchange(transport=transport)

    later = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = await get_active_credential(vault, exchange, "u1", "gmail", "cid", "csecret", now=later)

    assert payload["access_token"] == "new-at"
    assert payload["refresh_token"] == "rt"
    assert "refreshed_at" in payload
    assert vault.retrieve("u1", "gmail")["access_token"] == "new-at"


@pytest.mark.asyncio
async def test_get_active_credential_returns_fresh_token_untouched():
    transport = json_transport({})
    vault = CredentialVault(InMemoryCredentialStore(), SECRET)
    vault.store("u1", "gmail", {"access_token": "at", "refresh_token": "rt", "expires_in": 3600})
    payload = await get_active_credential(
        vault, OAuthExchange(transport=transport), "u1", "gmail", "cid", "csecret"
    )
    assert payload["access_token"] == "at"
    assert transport.requests == []


@pytest.mark.asyncio
async def test_failed_refresh_leaves_record_untouched():
    transport = json_transport({("POST", GOOGLE_TOKEN): (400, {"error": "invalid_grant"})})
    vault = CredentialVault(InMemoryCredentialStore(), SECRET)
    vault.store("u1", "gmail", {"access_token": "old-at", "refresh_token": "rt", "expires_in": 60})

    later = datetime.now(timezone.utc) + timedelta(hours=1)
    with pytest.raises(OAuthExchangeError):
        await get_active_credential(
            vault, OAuthExchange(transport=transport), "u1", "gmail", "cid", "csecret", now=later
        )
    assert vault.retrieve("u1", "gmail")["access_token"] == "old-at"


@pytest.mark.asyncio
async def test_refresh_without_client_is_configuration_error():
    vault = CredentialVault(InMemoryCredentialStore(), SECRET)
    vault.store("u1", "gmail", {"access_token": "old-at", "refresh_token": "rt", "expires_in": 60})
    later = datetime.now(timezone.utc) + timedelta(hours=1)
    with pytest.raises(ConfigurationError):
        await get_active_credential(vault, OAuthExchange(), "u1", "gmail", None, None, now=later)
