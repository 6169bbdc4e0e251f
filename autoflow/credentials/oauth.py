"""
OAuth2 authorization-code and refresh-token flows for registered services.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

import httpx

from autoflow.credentials.registry import SERVICE_REGISTRY, ServiceConfig
from autoflow.errors import OAuthExchangeError, UnsupportedAuthKind, UnsupportedRefresh

logger = logging.getLogger(__name__)


def make_state(user_id: str, now_ms: Optional[int] = None) -> str:
    """Opaque state value binding an authorization request to the requesting user."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{user_id}:{now_ms}"


def verify_state(state: Optional[str], user_id: str) -> bool:
    # Prefix match only: anyone who knows a user id can forge a passing state.
    # Signing the state or keeping it server side would close that gap.
    return bool(state) and state.startswith(user_id)


class OAuthExchange:
    def __init__(
        self,
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        registry: Mapping[str, ServiceConfig] = SERVICE_REGISTRY,
    ):
        self.timeout = timeout
        self.transport = transport
        self.registry = registry

    def _oauth_config(self, service_id: str) -> ServiceConfig:
        config = self.registry.get(service_id)
        if config is None or not config.is_oauth:
            raise UnsupportedAuthKind(
                f"OAuth not supported for service: {service_id}",
                detail={"service": service_id},
            )
        return config

    def build_authorization_url(
        self, service_id: str, client_id: str, redirect_uri: str, state: str
    ) -> str:
        config = self._oauth_config(service_id)
        params = {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "scope": config.scope or "",
            "response_type": "code",
            "state": state,
        }
        return f"{config.authorize_url}?{urlencode(params, safe=':')}"

    async def _post_token(self, config: ServiceConfig, data: Dict[str, str]) -> Dict[str, Any]:
        headers = {"Accept": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(config.token_url, data=data, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Token request to {config.service_id} failed: {e.__class__.__name__}")
            raise OAuthExchangeError(
                f"Could not reach {config.display_name} token endpoint",
                service_id=config.service_id,
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            logger.error(f"Token request to {config.service_id} returned HTTP {response.status_code}")
            raise OAuthExchangeError(
                f"{config.display_name} rejected the token request (HTTP {response.status_code})",
                service_id=config.service_id,
                detail={"provider_response": body if body is not None else response.text},
            )

        if not isinstance(body, dict):
            raise OAuthExchangeError(
                f"{config.display_name} returned an unreadable token response",
                service_id=config.service_id,
            )

        # Some providers (Slack) report failures with HTTP 200
        if body.get("ok") is False or "error" in body:
            raise OAuthExchangeError(
                f"{config.display_name} rejected the token request: {body.get('error', 'unknown error')}",
                service_id=config.service_id,
                detail={"provider_response": body},
            )
        return body

    async def exchange_code(
        self,
        service_id: str,
        code: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
    ) -> Dict[str, Any]:
        """Trade an authorization code for the provider's native token set."""
        config = self._oauth_config(service_id)
        token_set = await self._post_token(
            config,
            {
                "grant_type": "authorization_code",
                "code": code,
                "client_id": client_id,
                "client_secret": client_secret,
                "redirect_uri": redirect_uri,
            },
        )
        logger.info(f"Exchanged authorization code for {service_id}")
        return token_set

    async def refresh_token(
        self,
        service_id: str,
        token_set: Dict[str, Any],
        client_id: str,
        client_secret: str,
    ) -> Dict[str, Any]:
        """
        Refresh an OAuth token set.

        Returned fields are merged over the old set and a refreshed_at
        timestamp is stamped on the result.
        """
        config = self.registry.get(service_id)
        if config is None or not config.supports_refresh or not token_set.get("refresh_token"):
            raise UnsupportedRefresh(
                f"Token refresh not supported for service: {service_id}",
                detail={"service": service_id},
            )

        new_tokens = await self._post_token(
            config,
            {
                "grant_type": "refresh_token",
                "refresh_token": token_set["refresh_token"],
                "client_id": client_id,
                "client_secret": client_secret,
            },
        )
        logger.info(f"Refreshed {service_id} token")
        return {
            **token_set,
            **new_tokens,
            "refreshed_at": datetime.now(timezone.utc).isoformat(),
        }
