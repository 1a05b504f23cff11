"""
Xero Token Service
Token lifecycle for connected Xero companies: authorization, expiry checks,
refresh-on-demand and disconnect.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from app.integrations.xero.exceptions import (
    NoTenantConnectionsError,
    NotConnectedError,
    ReauthorizationRequiredError,
    UpstreamAuthError,
    XeroIntegrationError,
)
from app.integrations.xero.oauth import XeroOAuth
from app.integrations.xero.schemas import (
    TokenRecord,
    TokenStatus,
    XeroTokenData,
    XeroTokenResponse,
)
from app.integrations.xero.token_refresh_lock import TokenRefreshLock
from app.integrations.xero.token_store import XeroTokenStore

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class XeroTokenService:
    """
    Service for Xero token management.

    Handles:
    - Create-or-update of tokens after the OAuth callback
    - Expiry detection and refresh before every protected call
    - Manual refresh
    - Connection status and disconnect

    Every read-check-refresh-write sequence for a company runs under that
    company's lock. Failures from the OAuth client or the store are never
    hidden; they propagate (refresh rejections as ReauthorizationRequiredError).
    """

    def __init__(
        self,
        store: XeroTokenStore,
        oauth: XeroOAuth,
        locks: Optional[TokenRefreshLock] = None,
        clock: Callable[[], datetime] = _utc_now,
        refresh_margin: timedelta = timedelta(0),
    ):
        self.store = store
        self.oauth = oauth
        self.locks = locks or TokenRefreshLock()
        self.clock = clock
        self.refresh_margin = refresh_margin

    def calculate_expiry(self, expires_in: int) -> datetime:
        """Absolute expiry for a token issued now with the given lifetime."""
        return self.clock() + timedelta(seconds=expires_in)

    def needs_refresh(self, record: TokenRecord) -> bool:
        """Whether the access token is expired (or inside the refresh margin)."""
        return self.clock() >= record.expires_at - self.refresh_margin

    async def complete_authorization(self, code: str) -> TokenRecord:
        """
        Finish the OAuth flow for an authorization code.

        Multi-tenant grants are not disambiguated: the first connection
        Xero returns becomes the stored company.

        Returns:
            Stored TokenRecord for the resolved company

        Raises:
            UpstreamAuthError: If code exchange or connection lookup fails
            NoTenantConnectionsError: If Xero granted no tenant
            StorageError: If the token cannot be stored
        """
        token_response = await self.oauth.exchange_code_for_tokens(code)
        connections = await self.oauth.get_connections(token_response.access_token)

        if not connections:
            logger.warning("Xero authorization granted no tenant connections")
            raise NoTenantConnectionsError(
                "No Xero organisations were authorized",
                "no_tenant_connections",
            )

        connection = connections[0]
        if len(connections) > 1:
            logger.info(
                "Xero authorization granted %d tenants; using first (%s)",
                len(connections),
                connection.tenant_id,
            )

        token_data = self._token_data(token_response, tenant_name=connection.tenant_name)

        async with self.locks.hold(connection.tenant_id):
            record = await self.store.upsert(connection.tenant_id, token_data)

        logger.info("Xero connected for company %s", record.company_id)
        return record

    async def ensure_fresh_access_token(self, company_id: str) -> TokenRecord:
        """
        Get a token record whose access token is usable now.

        Refreshes first if the stored token has expired. The record is
        re-read after taking the company lock, so a request that waited on
        a concurrent refresh reuses its result instead of refreshing again.

        Raises:
            NotConnectedError: If the company has no stored token
            ReauthorizationRequiredError: If Xero rejects the refresh token
        """
        async with self.locks.hold(company_id):
            record = await self._get_record(company_id)

            if not self.needs_refresh(record):
                return record

            logger.info("Token expired for company %s, refreshing", company_id)
            return await self._refresh_locked(record)

    async def refresh(self, company_id: str) -> TokenRecord:
        """
        Force a token refresh regardless of expiry.

        Raises:
            NotConnectedError: If the company has no stored token
            ReauthorizationRequiredError: If Xero rejects the refresh token
        """
        async with self.locks.hold(company_id):
            record = await self._get_record(company_id)
            return await self._refresh_locked(record)

    async def disconnect(self, company_id: str) -> bool:
        """
        Disconnect Xero (revoke tokens and delete record).

        Revocation at Xero is best effort; the local record is removed
        either way.

        Returns:
            True if a connection was removed, False if none existed
        """
        async with self.locks.hold(company_id):
            record = await self.store.find_by_company_id(company_id)
            if record is None:
                return False

            try:
                await self.oauth.revoke_token(record.refresh_token)
            except XeroIntegrationError as exc:
                logger.warning(
                    "Token revocation failed for company %s (%s); deleting local record",
                    company_id,
                    exc.error_code,
                )

            deleted = await self.store.delete(company_id)

        self.locks.release_lock(company_id)
        logger.info("Xero disconnected for company %s", company_id)
        return deleted

    async def get_status(self, company_id: Optional[str] = None) -> list[TokenStatus]:
        """
        Connection status for one company or for all of them.

        is_expired is computed from the clock on every call.
        """
        if company_id is not None:
            record = await self.store.find_by_company_id(company_id)
            records = [record] if record else []
        else:
            records = await self.store.list_all()

        now = self.clock()
        return [
            TokenStatus(
                company_id=record.company_id,
                tenant_name=record.tenant_name,
                is_expired=record.is_expired_at(now),
                expires_at=record.expires_at,
                created_at=record.created_at,
                last_refreshed_at=record.last_refreshed_at,
            )
            for record in records
        ]

    async def _get_record(self, company_id: str) -> TokenRecord:
        record = await self.store.find_by_company_id(company_id)
        if record is None:
            raise NotConnectedError(company_id)
        return record

    async def _refresh_locked(self, record: TokenRecord) -> TokenRecord:
        """Refresh and persist; caller must hold the company lock."""
        try:
            token_response = await self.oauth.refresh_tokens(record.refresh_token)
        except UpstreamAuthError as exc:
            if exc.error_code == "transport_error":
                raise
            logger.error(
                "Token refresh rejected for company %s (%s)",
                record.company_id,
                exc.error_code,
            )
            raise ReauthorizationRequiredError(record.company_id, exc.error_code) from exc

        token_data = self._token_data(
            token_response,
            previous=record,
        )
        refreshed = await self.store.upsert(record.company_id, token_data)

        logger.info("Refreshed tokens for company %s", record.company_id)
        return refreshed

    def _token_data(
        self,
        token_response: XeroTokenResponse,
        tenant_name: Optional[str] = None,
        previous: Optional[TokenRecord] = None,
    ) -> XeroTokenData:
        return XeroTokenData(
            access_token=token_response.access_token,
            refresh_token=token_response.refresh_token,
            expires_at=self.calculate_expiry(token_response.expires_in),
            token_type=token_response.token_type or "Bearer",
            scope=token_response.scope or (previous.scope if previous else ""),
            id_token=token_response.id_token or (previous.id_token if previous else None),
            tenant_name=tenant_name,
        )
