import httpx
import pytest

from app.integrations.xero.exceptions import (
    NotConnectedError,
    UpstreamApiError,
    UpstreamTimeoutError,
)
from app.integrations.xero.fetchers import ContactsFetcher
from app.integrations.xero.fetchers.contacts import CONTACTS_PATH


class RecordingApi:
    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response


def _fetcher(service, oauth_config, handler) -> ContactsFetcher:
    return ContactsFetcher(service, oauth_config, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_sends_bearer_and_tenant_headers(service, oauth_config) -> None:
    await service.complete_authorization("code-1")
    api = RecordingApi(httpx.Response(200, json={"Contacts": [{"ContactID": "c1", "Name": "Acme"}]}))

    contacts = await _fetcher(service, oauth_config, api).fetch("co1")

    assert contacts == [{"ContactID": "c1", "Name": "Acme"}]
    request = api.requests[0]
    assert str(request.url) == f"{oauth_config.api_base_url}{CONTACTS_PATH}"
    assert request.headers["Authorization"] == "Bearer access-1"
    assert request.headers["Xero-tenant-id"] == "co1"
    assert request.headers["Accept"] == "application/json"


@pytest.mark.asyncio
async def test_empty_contact_list_is_not_a_failure(service, oauth_config) -> None:
    await service.complete_authorization("code-1")

    contacts = await _fetcher(service, oauth_config, RecordingApi(httpx.Response(200, json={}))).fetch("co1")

    assert contacts == []


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_before_the_call(service, oauth_config, fake_oauth, clock) -> None:
    await service.complete_authorization("code-1")
    clock.advance(3601)
    api = RecordingApi(httpx.Response(200, json={"Contacts": []}))

    await _fetcher(service, oauth_config, api).fetch("co1")

    assert fake_oauth.refresh_calls == ["refresh-1"]
    assert api.requests[0].headers["Authorization"] == "Bearer access-2"


@pytest.mark.asyncio
async def test_non_2xx_raises_upstream_api_error(service, oauth_config) -> None:
    await service.complete_authorization("code-1")
    api = RecordingApi(httpx.Response(503, json={"Title": "Service Unavailable"}))

    with pytest.raises(UpstreamApiError) as exc_info:
        await _fetcher(service, oauth_config, api).fetch("co1")

    assert exc_info.value.status_code == 503
    assert exc_info.value.endpoint == CONTACTS_PATH


@pytest.mark.asyncio
async def test_api_timeout_raises_timeout_error(service, oauth_config) -> None:
    await service.complete_authorization("code-1")

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("slow", request=request)

    with pytest.raises(UpstreamTimeoutError):
        await _fetcher(service, oauth_config, handler).fetch("co1")


@pytest.mark.asyncio
async def test_unconnected_company_never_hits_the_api(service, oauth_config) -> None:
    api = RecordingApi(httpx.Response(200, json={"Contacts": []}))

    with pytest.raises(NotConnectedError):
        await _fetcher(service, oauth_config, api).fetch("ghost")

    assert api.requests == []


@pytest.mark.asyncio
async def test_sync_summarises_fetched_contacts(service, oauth_config) -> None:
    await service.complete_authorization("code-1")
    api = RecordingApi(httpx.Response(200, json={"Contacts": [{"ContactID": "1"}, {"ContactID": "2"}]}))

    result = await _fetcher(service, oauth_config, api).sync("co1")

    assert result.total_fetched == 2
    assert result.new_contacts == 0
    assert result.updated_contacts == 0
    assert result.errors == []


@pytest.mark.asyncio
async def test_non_object_json_body_raises_upstream_api_error(service, oauth_config) -> None:
    await service.complete_authorization("code-1")
    api = RecordingApi(httpx.Response(200, json=[{"ContactID": "c1"}]))

    with pytest.raises(UpstreamApiError) as exc_info:
        await _fetcher(service, oauth_config, api).fetch("co1")

    assert exc_info.value.endpoint == CONTACTS_PATH
