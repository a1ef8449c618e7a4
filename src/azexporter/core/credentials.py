# src/azexporter/core/credentials.py
"""
Credential providers supply bearer tokens for one Azure API family.

The pipeline only needs `await provider.get_credential()`; any failure to
obtain a token is reported as AuthError.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from ..models.azure import Credential
from .exceptions import AuthError

logger = logging.getLogger(__name__)

ARM_SCOPE = "https://management.azure.com/.default"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

# Tokens are refreshed this many seconds before they expire.
REFRESH_MARGIN_SECONDS = 300


class CredentialProvider(ABC):
    """Abstract source of access tokens."""

    @abstractmethod
    async def get_credential(self) -> Credential:
        pass

    async def close(self):
        pass


class StaticCredentialProvider(CredentialProvider):
    """Returns a fixed token, e.g. one injected by the environment."""

    def __init__(self, token: str):
        if not token:
            raise AuthError("Static credential requires a non-empty token")
        self._credential = Credential(token=token)

    async def get_credential(self) -> Credential:
        return self._credential


class ClientSecretCredentialProvider(CredentialProvider):
    """OAuth2 client-credentials flow against Microsoft Entra ID."""

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        scope: str,
        authority_host: str = "https://login.microsoftonline.com",
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.token_url = f"{authority_host.rstrip('/')}/{tenant_id}/oauth2/v2.0/token"
        self._http = http
        self._owns_http = http is None
        self._credential: Optional[Credential] = None
        self._lock = asyncio.Lock()

    async def get_credential(self) -> Credential:
        cached = self._credential
        if cached is not None and not cached.expires_within(REFRESH_MARGIN_SECONDS):
            return cached

        async with self._lock:
            # Double-check after acquiring the lock, another task may have refreshed it.
            cached = self._credential
            if cached is not None and not cached.expires_within(REFRESH_MARGIN_SECONDS):
                return cached
            self._credential = await self._fetch_token()
            return self._credential

    async def _fetch_token(self) -> Credential:
        if not (self.tenant_id and self.client_id and self.client_secret):
            raise AuthError("AZURE_TENANT_ID, AZURE_CLIENT_ID and AZURE_CLIENT_SECRET must be set")

        if self._http is None:
            from ..utils.http_client import get_async_http_client

            self._http = get_async_http_client()

        data = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": self.scope,
        }
        try:
            response = await self._http.post(self.token_url, data=data)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise AuthError(f"Failed to acquire token for scope '{self.scope}': {e}") from e
        except ValueError as e:
            raise AuthError(f"Invalid token response for scope '{self.scope}': {e}") from e

        token = payload.get("access_token")
        if not token:
            raise AuthError(f"Token response for scope '{self.scope}' has no access_token")

        expires_in = int(payload.get("expires_in", 3600))
        expires_on = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        logger.debug("Acquired token for scope '%s' valid for %ds", self.scope, expires_in)
        return Credential(token=token, expires_on=expires_on)

    async def close(self):
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None
