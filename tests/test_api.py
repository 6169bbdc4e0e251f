import httpx
import pytest
from fastapi.testclient import TestClient
from openai import AsyncOpenAI

from autoflow.ai.interpreter import WorkflowInterpreter
from autoflow.ai.router import FALLBACK_REPLY
from autoflow.config import settings
from autoflow.credentials import CredentialVault, InMemoryCredentialStore, OAuthExchange
from autoflow.deps import get_db, get_engine_gateway, get_interpreter, get_oauth_exchange, get_vault
from autoflow.engine import EngineGateway, N8nRestClient
from autoflow.main import app
from autoflow.workflows.service import WorkflowService
from tests.utils import SECRET, json_transport

N8N = "http://n8n.test"
WORKFLOWS = f"{N8N}/api/v1/workflows"
OPENAI_MODELS = "https://api.openai.com/v1/models"
SLACK_TOKEN = "https://slack.com/api/oauth.v2.access"
GOOGLE_TOKEN = "https://oauth2.googleapis.com/token"
GMAIL_PROFILE = "https://www.googleapis.com/gmail/v1/users/me/profile"

USER = {"X-User-Id": "u1"}
OTHER_USER = {"X-User-Id": "u2"}

SPEC = {
    "name": "Lead summary",
    "trigger": {"kind": "manual"},
    "actions": [{"kind": "openai", "prompt": "Summarize"}, {"kind": "slack", "channel": "#leads"}],
    "requiredServices": ["openai", "slack"],
}

CONFIGURATION = {"nodes": [{"name": "Manual Trigger", "type": "n8n-nodes-base.manualTrigger"}], "connections": {}}

ENGINE_ROUTES = {
    ("POST", WORKFLOWS): (200, {"id": "100", "active": False}),
    ("GET", f"{WORKFLOWS}/100"): (200, {"id": "100", "name": "wf", "active": False}),
    ("PUT", f"{WORKFLOWS}/100"): (200, {"id": "100", "active": True}),
    ("DELETE", f"{WORKFLOWS}/100"): (200, {"id": "100"}),
    ("POST", f"{WORKFLOWS}/100/run"): (200, {"executionId": "e1"}),
    ("GET", f"{WORKFLOWS}/100/executions"): (200, {"data": []}),
}


@pytest.fixture
def http_transport():
    return json_transport(
        {
            ("GET", OPENAI_MODELS): (401, {"error": "invalid_api_key"}),
            ("POST", SLACK_TOKEN): (200, {"ok": True, "access_token": "xoxb-new", "team": {"id": "T1"}}),
            ("POST", GOOGLE_TOKEN): (200, {"access_token": "ya29-new", "expires_in": 3599}),
            ("GET", GMAIL_PROFILE): (200, {"emailAddress": "me@example.com"}),
            **ENGINE_ROUTES,
        }
    )


@pytest.fixture
def vault(http_transport):
    return CredentialVault(InMemoryCredentialStore(), SECRET, transport=http_transport)


@pytest.fixture
def gateway(http_transport):
    return EngineGateway(N8nRestClient(N8N, "n8n-key", transport=http_transport))


@pytest.fixture
def client(session, vault, gateway, http_transport):
    app.dependency_overrides[get_db] = lambda: session
    app.dependency_overrides[get_vault] = lambda: vault
    app.dependency_overrides[get_engine_gateway] = lambda: gateway
    app.dependency_overrides[get_oauth_exchange] = lambda: OAuthExchange(transport=http_transport)
    app.dependency_overrides[get_interpreter] = lambda: WorkflowInterpreter(
        WorkflowService(vault, gateway), api_key=None
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_requests_without_user_are_rejected(client):
    assert client.get("/api/v1/credentials/").status_code == 401
    assert client.get("/api/v1/workflows/").status_code == 401


# --- credentials ---


def test_store_list_and_delete_credential(client):
    response = client.post(
        "/api/v1/credentials/",
        json={"service": "openai", "data": {"apiKey": "sk-1"}, "validate": False},
        headers=USER,
    )
    assert response.status_code == 201
    credential_id = response.json()["id"]

    listed = client.get("/api/v1/credentials/", headers=USER).json()
    assert [c["id"] for c in listed] == [credential_id]
    assert set(listed[0]) == {"id", "service", "createdAt", "updatedAt"}
    assert client.get("/api/v1/credentials/", headers=OTHER_USER).json() == []

    assert client.delete(f"/api/v1/credentials/{credential_id}", headers=OTHER_USER).status_code == 404
    assert client.delete(f"/api/v1/credentials/{credential_id}", headers=USER).json() == {"success": True}
    assert client.get("/api/v1/credentials/", headers=USER).json() == []


def test_invalid_credential_is_not_stored(client, vault):
    response = client.post(
        "/api/v1/credentials/", json={"service": "openai", "data": {"apiKey": "sk-bad"}}, headers=USER
    )
    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "Invalid credentials"
    assert body["error_code"] == "validation_error"
    assert "401" in body["error"]
    assert vault.list_credentials("u1") == []


def test_unknown_service_is_rejected(client):
    response = client.post(
        "/api/v1/credentials/", json={"service": "dropbox", "data": {"k": "v"}, "validate": False}, headers=USER
    )
    assert response.status_code == 400


def test_malformed_body_returns_422(client):
    response = client.post("/api/v1/credentials/", json={"service": "openai"}, headers=USER)
    assert response.status_code == 422


def test_credential_test_route(client, vault):
    credential = vault.store("u1", "openai", {"apiKey": "sk-1"})
    response = client.post(f"/api/v1/credentials/{credential.id}/test", headers=USER)
    assert response.status_code == 200
    assert response.json()["valid"] is False


def test_credential_test_route_refreshes_expired_token(client, vault, http_transport, monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", "google-cid")
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_SECRET", "google-cs")
    credential = vault.store(
        "u1",
        "gmail",
        {
            "access_token": "ya29-old",
            "refresh_token": "rt",
            "expires_in": 3599,
            "refreshed_at": "2020-01-01T00:00:00+00:00",
        },
    )

    response = client.post(f"/api/v1/credentials/{credential.id}/test", headers=USER)

    assert response.json()["valid"] is True
    assert vault.retrieve("u1", "gmail")["access_token"] == "ya29-new"
    profile_call = [r for r in http_transport.requests if str(r.url) == GMAIL_PROFILE][-1]
    assert profile_call.headers["Authorization"] == "Bearer ya29-new"


def test_requirements_route(client):
    body = client.get("/api/v1/credentials/requirements/openai", headers=USER).json()
    assert body["requiresApiKey"] is True
    assert client.get("/api/v1/credentials/requirements/dropbox", headers=USER).status_code == 404


def test_oauth_url(client):
    response = client.post(
        "/api/v1/credentials/oauth/url",
        json={"service": "slack", "clientId": "cid", "redirectUri": "http://localhost/cb"},
        headers=USER,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["authUrl"].startswith("https://slack.com/oauth/v2/authorize?")
    assert body["state"].startswith("u1:")


def test_oauth_url_for_api_key_service_is_rejected(client):
    response = client.post(
        "/api/v1/credentials/oauth/url", json={"service": "openai", "clientId": "cid"}, headers=USER
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "unsupported_auth_kind"


def test_oauth_callback_stores_token_set(client, vault):
    response = client.post(
        "/api/v1/credentials/oauth/callback",
        json={"service": "slack", "code": "c0de", "state": "u1:1700000000000", "clientId": "cid", "clientSecret": "cs"},
        headers=USER,
    )
    assert response.status_code == 200
    assert vault.retrieve("u1", "slack")["access_token"] == "xoxb-new"


def test_oauth_callback_rejects_foreign_state(client, vault):
    response = client.post(
        "/api/v1/credentials/oauth/callback",
        json={"service": "slack", "code": "c0de", "state": "u2:1700000000000", "clientId": "cid", "clientSecret": "cs"},
        headers=USER,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid state parameter"
    assert vault.retrieve("u1", "slack") is None


def test_failed_oauth_exchange_stores_nothing(client, vault):
    failing = json_transport({("POST", SLACK_TOKEN): (200, {"ok": False, "error": "invalid_code"})})
    app.dependency_overrides[get_oauth_exchange] = lambda: OAuthExchange(transport=failing)

    response = client.post(
        "/api/v1/credentials/oauth/callback",
        json={"service": "slack", "code": "bad", "state": "u1:1700000000000", "clientId": "cid", "clientSecret": "cs"},
        headers=USER,
    )

    assert response.status_code == 502
    assert response.json()["error_code"] == "oauth_exchange_failed"
    assert response.json()["service"] == "slack"
    assert vault.retrieve("u1", "slack") is None


# --- workflows ---


def test_compile_route_reports_missing_then_compiles(client, vault):
    response = client.post("/api/v1/workflows/compile", json={"spec": SPEC}, headers=USER)
    assert response.json() == {"ready": False, "missingServices": ["openai", "slack"]}

    vault.store("u1", "openai", {"apiKey": "sk-1"})
    vault.store("u1", "slack", {"access_token": "xoxb"})
    body = client.post("/api/v1/workflows/compile", json={"spec": SPEC, "save": True}, headers=USER).json()
    assert body["ready"] is True
    assert len(body["workflow"]["nodes"]) == 3
    assert client.get(f"/api/v1/workflows/{body['id']}", headers=USER).json()["status"] is False


def test_live_compile_route_lists_rejected_credentials(client, vault):
    vault.store("u1", "openai", {"apiKey": "sk-revoked"})
    spec = {**SPEC, "actions": SPEC["actions"][:1], "requiredServices": ["openai"]}

    body = client.post("/api/v1/workflows/compile", json={"spec": spec, "live": True}, headers=USER).json()

    assert body == {"ready": False, "missingServices": [], "invalidServices": ["openai"]}


def test_compile_route_rejects_malformed_spec(client):
    response = client.post("/api/v1/workflows/compile", json={"spec": {"actions": []}}, headers=USER)
    assert response.status_code == 400
    assert response.json()["errors"]


def test_workflow_lifecycle(client, http_transport):
    created = client.post(
        "/api/v1/workflows/", json={"name": "wf", "configuration": CONFIGURATION}, headers=USER
    )
    assert created.status_code == 201
    workflow_id = created.json()["id"]

    listed = client.get("/api/v1/workflows/", headers=USER)
    assert listed.headers["X-Total-Count"] == "1"
    assert [w["id"] for w in listed.json()] == [workflow_id]
    assert client.get(f"/api/v1/workflows/{workflow_id}", headers=OTHER_USER).status_code == 404

    detail = client.get(f"/api/v1/workflows/{workflow_id}", headers=USER).json()
    assert detail["configuration"] == CONFIGURATION

    assert client.post(f"/api/v1/workflows/{workflow_id}/run", headers=USER).json() == {"executionId": "e1"}
    history = client.get(f"/api/v1/workflows/{workflow_id}/history", headers=USER).json()
    assert [entry["status"] for entry in history["local"]] == ["queued"]
    log_id = history["local"][0]["id"]
    assert client.get(f"/api/v1/workflows/{workflow_id}/history/{log_id}", headers=USER).json()["id"] == log_id

    activated = client.post(f"/api/v1/workflows/{workflow_id}/activate", json={"active": True}, headers=USER)
    assert activated.json() == {"id": workflow_id, "status": True}

    clone = client.post(f"/api/v1/workflows/{workflow_id}/clone", headers=USER)
    assert clone.status_code == 201
    assert clone.json()["name"] == "wf (Clone)"

    renamed = client.put(f"/api/v1/workflows/{workflow_id}", json={"name": "renamed"}, headers=USER)
    assert renamed.json()["name"] == "renamed"

    assert client.delete(f"/api/v1/workflows/{workflow_id}", headers=USER).json() == {"success": True}
    assert client.get(f"/api/v1/workflows/{workflow_id}", headers=USER).status_code == 404


def test_unknown_execution_log_is_not_found(client):
    response = client.post(
        "/api/v1/workflows/", json={"name": "wf", "configuration": CONFIGURATION}, headers=USER
    )
    workflow_id = response.json()["id"]
    history = client.get(f"/api/v1/workflows/{workflow_id}/history/missing", headers=USER)
    assert history.status_code == 404
    assert history.json()["error_code"] == "not_found"


def test_engine_failure_maps_to_502(client):
    app.dependency_overrides[get_engine_gateway] = lambda: EngineGateway(
        N8nRestClient(N8N, "n8n-key", transport=json_transport({}))
    )
    response = client.post(
        "/api/v1/workflows/", json={"name": "wf", "configuration": CONFIGURATION}, headers=USER
    )
    assert response.status_code == 502
    assert response.json()["error_code"] == "engine_error"
    assert client.get("/api/v1/workflows/", headers=USER).json() == []


# --- chat ---


def test_chat_without_ai_key_returns_fallback_reply(client):
    response = client.post("/api/v1/chat/", json={"messages": [{"role": "user", "content": "hi"}]}, headers=USER)
    assert response.status_code == 200
    body = response.json()
    assert body["choices"][0]["message"]["content"] == FALLBACK_REPLY
    assert body["functionResults"] == []


def test_chat_runs_tool_calls(client, vault, gateway):
    def handler(request):
        return httpx.Response(
            200,
            json={
                "id": "chatcmpl-1",
                "object": "chat.completion",
                "created": 1700000000,
                "model": "test-model",
                "choices": [
                    {
                        "index": 0,
                        "finish_reason": "tool_calls",
                        "message": {
                            "role": "assistant",
                            "content": "Let me check.",
                            "tool_calls": [
                                {
                                    "id": "call_1",
                                    "type": "function",
                                    "function": {
                                        "name": "request_credentials",
                                        "arguments": '{"service": "slack", "message": "Connect Slack"}',
                                    },
                                }
                            ],
                        },
                    }
                ],
            },
        )

    ai = AsyncOpenAI(
        base_url="http://ai.test/v1",
        api_key="test-key",
        max_retries=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    app.dependency_overrides[get_interpreter] = lambda: WorkflowInterpreter(
        WorkflowService(vault, gateway), api_key=None, client=ai
    )

    body = client.post(
        "/api/v1/chat/", json={"messages": [{"role": "user", "content": "post to slack"}]}, headers=USER
    ).json()

    assert body["choices"][0]["message"]["content"] == "Let me check."
    assert body["functionResults"][0]["type"] == "credential_request"


def test_missing_credentials_route(client, vault):
    vault.store("u1", "slack", {"access_token": "xoxb"})
    body = client.post(
        "/api/v1/chat/missing-credentials", json={"text": "Summarize with GPT and post to Slack"}, headers=USER
    ).json()
    assert [m["service"] for m in body] == ["openai"]
