"""In-process stand-ins for Xero and the wall clock."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from app.integrations.xero.exceptions import UpstreamAuthError
from app.integrations.xero.oauth import XeroOAuth, XeroOAuthConfig
from app.integrations.xero.schemas import XeroTenantConnection, XeroTokenResponse


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def tenant(tenant_id: str, name: Optional[str] = None) -> XeroTenantConnection:
    return XeroTenantConnection(tenantId=tenant_id, tenantName=name)


class FakeXeroOAuth(XeroOAuth):
    """XeroOAuth with the network calls replaced; refresh tokens rotate like Xero's."""

    def __init__(self, config: XeroOAuthConfig) -> None:
        super().__init__(config)
        self.tenants: list[XeroTenantConnection] = [tenant("co1", "Company One")]
        self.expires_in = 3600
        self.exchange_error: Optional[Exception] = None
        self.refresh_error: Optional[Exception] = None
        self.revoke_error: Optional[Exception] = None
        self.exchange_calls: list[str] = []
        self.refresh_calls: list[str] = []
        self.revoke_calls: list[str] = []
        self._issued = 0
        self._spent_refresh_tokens: set[str] = set()

    def _issue(self) -> XeroTokenResponse:
        self._issued += 1
        return XeroTokenResponse(
            access_token=f"access-{self._issued}",
            refresh_token=f"refresh-{self._issued}",
            expires_in=self.expires_in,
            scope="accounting.contacts offline_access",
        )

    async def exchange_code_for_tokens(self, code: str) -> XeroTokenResponse:
        self.exchange_calls.append(code)
        if self.exchange_error:
            raise self.exchange_error
        return self._issue()

    async def get_connections(self, access_token: str) -> list[XeroTenantConnection]:
        return list(self.tenants)

    async def refresh_tokens(self, refresh_token: str) -> XeroTokenResponse:
        self.refresh_calls.append(refresh_token)
        # Give concurrent callers a chance to interleave
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        if self.refresh_error:
            raise self.refresh_error
        if refresh_token in self._spent_refresh_tokens:
            raise UpstreamAuthError("Refresh token already used", "invalid_grant")
        self._spent_refresh_tokens.add(refresh_token)
        return self._issue()

    async def revoke_token(self, token: str) -> bool:
        self.revoke_calls.append(token)
        if self.revoke_error:
            raise self.revoke_error
        return True
