import logging
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import pytest_asyncio

from app.config import Settings
from app.core.errors import ERROR_MESSAGES, ErrorCode
from app.integrations.xero.exceptions import UpstreamAuthError
from app.integrations.xero.router import STATE_COOKIE
from app.integrations.xero.schemas import XeroTokenData
from app.main import create_application

FRONTEND = "https://frontend.example"


class ContactsApi:
    def __init__(self) -> None:
        self.contacts = [{"ContactID": "c1", "Name": "Acme"}]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"Contacts": self.contacts})


@pytest.fixture
def app(session_factory, fake_oauth):
    settings = Settings(
        frontend_url=FRONTEND,
        rate_limit_enabled=False,
        database_auto_create=False,
    )
    return create_application(
        settings=settings,
        session_factory=session_factory,
        xero_oauth=fake_oauth,
        api_transport=httpx.MockTransport(ContactsApi()),
    )


@pytest_asyncio.fixture
async def client(app):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as client:
        yield client


def _query(location: str) -> dict[str, list[str]]:
    return parse_qs(urlparse(location).query)


async def _begin_flow(client: httpx.AsyncClient) -> str:
    response = await client.get("/api/auth/connect")
    return _query(response.headers["location"])["state"][0]


async def _callback(client: httpx.AsyncClient, cookie: str | None, **params) -> httpx.Response:
    headers = {"Cookie": f"{STATE_COOKIE}={cookie}"} if cookie else {}
    return await client.get("/api/auth/callback", params=params, headers=headers)


@pytest.mark.asyncio
async def test_health(client) -> None:
    response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "OK"


@pytest.mark.asyncio
async def test_connect_redirects_to_xero_and_pins_state(client, oauth_config) -> None:
    response = await client.get("/api/auth/connect")

    assert response.status_code == 307
    location = response.headers["location"]
    assert location.startswith(oauth_config.authorization_url)
    state = _query(location)["state"][0]
    set_cookie = response.headers["set-cookie"]
    assert f"{STATE_COOKIE}={state}" in set_cookie
    assert "httponly" in set_cookie.lower()
    assert "shh-secret" not in location


@pytest.mark.asyncio
async def test_callback_success_redirects_with_company(client, fake_oauth) -> None:
    state = await _begin_flow(client)

    response = await _callback(client, state, code="code-1", state=state)

    assert response.status_code == 302
    location = response.headers["location"]
    assert location.startswith(FRONTEND)
    assert _query(location) == {"success": ["true"], "company": ["co1"]}
    assert "access-1" not in location
    assert fake_oauth.exchange_calls == ["code-1"]


@pytest.mark.asyncio
async def test_callback_state_is_single_use(client, fake_oauth) -> None:
    state = await _begin_flow(client)
    await _callback(client, state, code="code-1", state=state)

    replay = await _callback(client, state, code="code-2", state=state)

    assert _query(replay.headers["location"]) == {
        "error": [ERROR_MESSAGES[ErrorCode.INVALID_OAUTH_STATE]]
    }
    assert fake_oauth.exchange_calls == ["code-1"]


@pytest.mark.asyncio
async def test_callback_rejects_unknown_state(client, fake_oauth) -> None:
    response = await _callback(client, "forged", code="code-1", state="forged")

    assert _query(response.headers["location"]) == {
        "error": [ERROR_MESSAGES[ErrorCode.INVALID_OAUTH_STATE]]
    }
    assert fake_oauth.exchange_calls == []


@pytest.mark.asyncio
async def test_callback_invalid_state_is_logged_as_rejection(client, caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="app.integrations.xero.router"):
        await _callback(client, "forged", code="code-1", state="forged")

    assert f"Rejected Xero callback [{ErrorCode.INVALID_OAUTH_STATE.value}]" in caplog.text


@pytest.mark.asyncio
async def test_callback_rejects_state_cookie_mismatch(client, fake_oauth) -> None:
    state = await _begin_flow(client)

    response = await _callback(client, "someone-else", code="code-1", state=state)

    assert "error" in _query(response.headers["location"])
    assert fake_oauth.exchange_calls == []


@pytest.mark.asyncio
async def test_callback_with_idp_error(client, fake_oauth) -> None:
    state = await _begin_flow(client)

    response = await _callback(client, state, error="access_denied", state=state)

    assert _query(response.headers["location"]) == {
        "error": [ERROR_MESSAGES[ErrorCode.AUTHORIZATION_DENIED]]
    }
    assert fake_oauth.exchange_calls == []


@pytest.mark.asyncio
async def test_callback_without_code(client) -> None:
    state = await _begin_flow(client)

    response = await _callback(client, state, state=state)

    assert response.status_code == 302
    assert "error" in _query(response.headers["location"])


@pytest.mark.asyncio
async def test_callback_exchange_failure_is_sanitized(client, fake_oauth) -> None:
    fake_oauth.exchange_error = UpstreamAuthError("invalid code xyz for client-123", "invalid_grant")
    state = await _begin_flow(client)

    response = await _callback(client, state, code="bad", state=state)

    location = response.headers["location"]
    assert _query(location) == {"error": [ERROR_MESSAGES[ErrorCode.XERO_AUTH_FAILED]]}
    assert "client-123" not in location


@pytest.mark.asyncio
async def test_callback_unexpected_failure_still_redirects(client, fake_oauth) -> None:
    fake_oauth.exchange_error = RuntimeError("database exploded at host db-7")
    state = await _begin_flow(client)

    response = await _callback(client, state, code="code-1", state=state)

    assert response.status_code == 302
    location = response.headers["location"]
    assert location.startswith(FRONTEND)
    assert _query(location) == {"error": [ERROR_MESSAGES[ErrorCode.INTERNAL_ERROR]]}
    assert "db-7" not in location


@pytest.mark.asyncio
async def test_status_lists_connections_without_tokens(client, app) -> None:
    await app.state.xero_service.complete_authorization("code-1")

    response = await client.get("/api/auth/status")

    assert response.status_code == 200
    body = response.json()
    assert [item["company_id"] for item in body] == ["co1"]
    assert body[0]["is_expired"] is False
    assert "access_token" not in body[0]
    assert "refresh_token" not in body[0]

    filtered = await client.get("/api/auth/status", params={"company_id": "ghost"})
    assert filtered.json() == []


@pytest.mark.asyncio
async def test_disconnect(client, app) -> None:
    await app.state.xero_service.complete_authorization("code-1")

    response = await client.delete("/api/auth/connections/co1")
    assert response.status_code == 200
    assert response.json() == {"deleted": True}

    again = await client.delete("/api/auth/connections/co1")
    assert again.status_code == 404
    assert again.json()["detail"]["error_code"] == ErrorCode.XERO_NOT_CONNECTED.value


@pytest.mark.asyncio
async def test_manual_refresh(client, app, fake_oauth) -> None:
    await app.state.xero_service.complete_authorization("code-1")

    response = await client.post("/api/auth/connections/co1/refresh")

    assert response.status_code == 200
    assert response.json()["company_id"] == "co1"
    assert fake_oauth.refresh_calls == ["refresh-1"]


@pytest.mark.asyncio
async def test_manual_refresh_unknown_company(client) -> None:
    response = await client.post("/api/auth/connections/ghost/refresh")

    assert response.status_code == 404
    assert response.json()["error_code"] == ErrorCode.XERO_NOT_CONNECTED.value


@pytest.mark.asyncio
async def test_manual_refresh_rejected(client, app, fake_oauth) -> None:
    await app.state.xero_service.complete_authorization("code-1")
    fake_oauth.refresh_error = UpstreamAuthError("revoked", "invalid_grant")

    response = await client.post("/api/auth/connections/co1/refresh")

    assert response.status_code == 401
    assert response.json()["error_code"] == ErrorCode.XERO_REAUTHORIZATION_REQUIRED.value


@pytest.mark.asyncio
async def test_contacts_for_connected_company(client, app) -> None:
    await app.state.xero_service.complete_authorization("code-1")

    response = await client.get("/api/contacts/co1")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["company_id"] == "co1"
    assert body["data"]["total_count"] == 1
    assert body["data"]["contacts"][0]["Name"] == "Acme"


@pytest.mark.asyncio
async def test_contacts_for_unconnected_company(client) -> None:
    response = await client.get("/api/contacts/ghost")

    assert response.status_code == 404
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_contacts_when_refresh_fails(client, app, fake_oauth) -> None:
    await app.state.xero_service.store.upsert(
        "co1",
        XeroTokenData(
            access_token="old-access",
            refresh_token="old-refresh",
            expires_at=datetime.now(timezone.utc) - timedelta(seconds=1),
        ),
    )
    fake_oauth.refresh_error = UpstreamAuthError("revoked", "invalid_grant")

    response = await client.get("/api/contacts/co1")

    assert response.status_code == 401
    assert "old-refresh" not in response.text


@pytest.mark.asyncio
async def test_contacts_sync(client, app) -> None:
    await app.state.xero_service.complete_authorization("code-1")

    response = await client.post("/api/contacts/sync/co1")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Customer sync completed successfully"
    assert body["data"]["sync_results"] == {
        "total_fetched": 1,
        "new_contacts": 0,
        "updated_contacts": 0,
        "errors": [],
    }
