"""
Base Fetcher
Common functionality for Xero resource fetchers.
"""

import logging
from typing import Any, Optional

import httpx

from app.integrations.xero.exceptions import UpstreamApiError, UpstreamTimeoutError
from app.integrations.xero.oauth import XeroOAuthConfig
from app.integrations.xero.rate_limiter import XeroRateLimiter
from app.integrations.xero.service import XeroTokenService

logger = logging.getLogger(__name__)


class BaseFetcher:
    """Base class for Xero resource fetchers."""

    def __init__(
        self,
        token_service: XeroTokenService,
        config: XeroOAuthConfig,
        rate_limiter: Optional[XeroRateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize base fetcher.

        Args:
            token_service: Supplies fresh tokens per company
            config: Xero endpoints and timeout
            rate_limiter: Optional rate limiter (creates default if None)
            transport: Optional httpx transport (tests inject a mock)
        """
        self.token_service = token_service
        self.config = config
        self.rate_limiter = rate_limiter or XeroRateLimiter()
        self._transport = transport

    async def _get(self, company_id: str, path: str) -> dict[str, Any]:
        """
        GET a Xero API path on behalf of a company.

        Raises:
            NotConnectedError: If the company has no stored token
            ReauthorizationRequiredError: If the token cannot be refreshed
            UpstreamApiError: On non-2xx responses or a body that is not a JSON object
            UpstreamTimeoutError: If Xero does not answer in time
        """
        record = await self.token_service.ensure_fresh_access_token(company_id)

        await self.rate_limiter.acquire(company_id)
        url = f"{self.config.api_base_url}{path}"

        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.get(
                    url,
                    headers={
                        "Authorization": f"{record.token_type} {record.access_token}",
                        "Xero-tenant-id": record.company_id,
                        "Accept": "application/json",
                    },
                )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeoutError(f"Xero API call to {path} timed out", "timeout") from exc
        except httpx.HTTPError as exc:
            raise UpstreamApiError(f"Xero API call to {path} failed", endpoint=path) from exc

        if not response.is_success:
            logger.error(
                "Xero API error for company %s: %s returned %s",
                company_id,
                path,
                response.status_code,
            )
            raise UpstreamApiError(
                f"Xero API returned {response.status_code}",
                status_code=response.status_code,
                endpoint=path,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamApiError(
                "Xero API returned a non-JSON body",
                status_code=response.status_code,
                endpoint=path,
            ) from exc

        # Xero wraps every collection in an object, e.g. {"Contacts": [...]}
        if not isinstance(payload, dict):
            raise UpstreamApiError(
                f"Xero API returned a JSON {type(payload).__name__}, expected an object",
                status_code=response.status_code,
                endpoint=path,
            )
        return payload
