# tests/core/test_credentials.py

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import respx
from httpx import Response

from azexporter.core.credentials import (
    ARM_SCOPE,
    ClientSecretCredentialProvider,
    StaticCredentialProvider,
)
from azexporter.core.exceptions import AuthError
from azexporter.models.azure import Credential

TOKEN_URL = "https://login.example.com/tenant-1/oauth2/v2.0/token"


def _provider(http, **kwargs):
    params = dict(
        tenant_id="tenant-1",
        client_id="client-1",
        client_secret="secret-1",
        scope=ARM_SCOPE,
        authority_host="https://login.example.com/",
        http=http,
    )
    params.update(kwargs)
    return ClientSecretCredentialProvider(**params)


@pytest.mark.asyncio
async def test_static_provider_returns_token():
    provider = StaticCredentialProvider("abc")

    credential = await provider.get_credential()

    assert credential.token == "abc"
    assert credential.expires_on is None


def test_static_provider_requires_token():
    with pytest.raises(AuthError):
        StaticCredentialProvider("")


@pytest.mark.asyncio
@respx.mock
async def test_client_secret_flow_posts_form_and_caches_token():
    route = respx.post(TOKEN_URL).mock(return_value=Response(200, json={"access_token": "tok", "expires_in": 3600}))

    async with httpx.AsyncClient() as http:
        provider = _provider(http)
        first = await provider.get_credential()
        second = await provider.get_credential()

    assert first.token == "tok"
    assert second is first
    assert route.call_count == 1
    body = route.calls.last.request.content.decode()
    assert "grant_type=client_credentials" in body
    assert "client_id=client-1" in body
    assert "scope=https%3A%2F%2Fmanagement.azure.com%2F.default" in body


@pytest.mark.asyncio
@respx.mock
async def test_token_is_refreshed_before_expiry():
    route = respx.post(TOKEN_URL).mock(return_value=Response(200, json={"access_token": "fresh", "expires_in": 3600}))

    async with httpx.AsyncClient() as http:
        provider = _provider(http)
        provider._credential = Credential(token="stale", expires_on=datetime.now(timezone.utc) + timedelta(seconds=60))
        credential = await provider.get_credential()

    assert credential.token == "fresh"
    assert route.call_count == 1


@pytest.mark.asyncio
@respx.mock
async def test_concurrent_callers_share_one_token_request():
    route = respx.post(TOKEN_URL).mock(return_value=Response(200, json={"access_token": "tok", "expires_in": 3600}))

    async with httpx.AsyncClient() as http:
        provider = _provider(http)
        credentials = await asyncio.gather(*(provider.get_credential() for _ in range(5)))

    assert {credential.token for credential in credentials} == {"tok"}
    assert route.call_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        Response(401, json={"error": "invalid_client"}),
        Response(200, text="not json"),
        Response(200, json={"token_type": "Bearer"}),
    ],
)
@respx.mock
async def test_token_failures_raise_auth_error(response):
    respx.post(TOKEN_URL).mock(return_value=response)

    async with httpx.AsyncClient() as http:
        with pytest.raises(AuthError):
            await _provider(http).get_credential()


@pytest.mark.asyncio
@respx.mock
async def test_transport_failure_raises_auth_error():
    respx.post(TOKEN_URL).mock(side_effect=httpx.ConnectError("unreachable"))

    async with httpx.AsyncClient() as http:
        with pytest.raises(AuthError):
            await _provider(http).get_credential()


@pytest.mark.asyncio
async def test_missing_client_configuration_raises_auth_error():
    provider = _provider(http=None, client_secret=None)

    with pytest.raises(AuthError):
        await provider.get_credential()
