"""
Xero OAuth 2.0 Utilities
Handles authorization URL generation, token exchange, refresh and revocation.
"""

import base64
import logging
import secrets
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ConfigDict, SecretStr, ValidationError

from app.config import Settings
from app.integrations.xero.exceptions import UpstreamAuthError, UpstreamTimeoutError
from app.integrations.xero.schemas import XeroTenantConnection, XeroTokenResponse

logger = logging.getLogger(__name__)


class XeroOAuthConfig(BaseModel):
    """Explicit configuration for the Xero OAuth client."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: SecretStr
    redirect_uri: str
    scopes: str = "accounting.contacts offline_access"
    timeout_seconds: float = 30.0

    # Xero OAuth 2.0 endpoints
    authorization_url: str = "https://login.xero.com/identity/connect/authorize"
    token_url: str = "https://identity.xero.com/connect/token"
    revocation_url: str = "https://identity.xero.com/connect/revocation"
    api_base_url: str = "https://api.xero.com"

    @property
    def connections_url(self) -> str:
        return f"{self.api_base_url}/connections"

    @classmethod
    def from_settings(cls, settings: Settings) -> "XeroOAuthConfig":
        return cls(
            client_id=settings.xero_client_id,
            client_secret=settings.xero_client_secret,
            redirect_uri=settings.xero_redirect_uri,
            scopes=settings.xero_scopes,
            timeout_seconds=settings.xero_request_timeout_seconds,
        )


class XeroOAuth:
    """
    Xero OAuth 2.0 client.

    Handles:
    - Authorization URL generation
    - Authorization code exchange for tokens
    - Token refresh
    - Token revocation
    - Connection (tenant) lookup

    Every call is a single round trip with a bounded timeout. Retrying is
    left to the caller.
    """

    def __init__(
        self,
        config: XeroOAuthConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport

    @staticmethod
    def generate_state() -> str:
        """Generate a cryptographically secure state parameter."""
        return secrets.token_urlsafe(32)

    def get_authorization_url(self, state: str) -> str:
        """
        Generate the Xero authorization URL.

        Args:
            state: CSRF protection token (cached until the callback)

        Returns:
            Full authorization URL to redirect user to
        """
        params = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "scope": self.config.scopes,
            "state": state,
            "access_type": "offline",
        }
        return f"{self.config.authorization_url}?{urlencode(params)}"

    def _get_auth_header(self) -> str:
        """Generate Basic auth header for token requests."""
        secret = self.config.client_secret.get_secret_value()
        credentials = f"{self.config.client_id}:{secret}"
        encoded = base64.b64encode(credentials.encode()).decode()
        return f"Basic {encoded}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.timeout_seconds,
            transport=self._transport,
        )

    async def _send(self, method: str, url: str, operation: str, **kwargs: Any) -> httpx.Response:
        try:
            async with self._client() as client:
                return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("Xero %s timed out after %.1fs", operation, self.config.timeout_seconds)
            raise UpstreamTimeoutError(
                message=f"Xero {operation} timed out",
                error_code="timeout",
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Xero %s transport error: %s", operation, type(exc).__name__)
            raise UpstreamAuthError(
                message=f"Xero {operation} request failed",
                error_code="transport_error",
            ) from exc

    async def _token_request(self, data: dict[str, str], operation: str) -> XeroTokenResponse:
        response = await self._send(
            "POST",
            self.config.token_url,
            operation,
            headers={
                "Authorization": self._get_auth_header(),
                "Content-Type": "application/x-www-form-urlencoded",
            },
            data=data,
        )

        if response.status_code != 200:
            error_data = _safe_json(response)
            logger.error(
                "Xero %s rejected (status %s, error %s)",
                operation,
                response.status_code,
                error_data.get("error", "unknown_error"),
            )
            raise UpstreamAuthError(
                message=error_data.get("error_description", f"Xero {operation} failed"),
                error_code=error_data.get("error", "unknown_error"),
            )

        try:
            return XeroTokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise UpstreamAuthError(
                message=f"Malformed token response from Xero {operation}",
                error_code="invalid_token_response",
            ) from exc

    async def exchange_code_for_tokens(self, code: str) -> XeroTokenResponse:
        """
        Exchange authorization code for access and refresh tokens.

        Args:
            code: Authorization code from Xero callback

        Returns:
            Parsed token response

        Raises:
            UpstreamAuthError: If token exchange is rejected
            UpstreamTimeoutError: If Xero does not answer in time
        """
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri,
            },
            "token exchange",
        )

    async def refresh_tokens(self, refresh_token: str) -> XeroTokenResponse:
        """
        Refresh access token using refresh token.

        Xero rotates both tokens on each refresh, so the old refresh token
        is dead once this succeeds.

        Raises:
            UpstreamAuthError: If refresh fails
            UpstreamTimeoutError: If Xero does not answer in time
        """
        return await self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            "token refresh",
        )

    async def get_connections(self, access_token: str) -> list[XeroTenantConnection]:
        """
        Get list of authorized Xero tenants (organizations).

        After OAuth, user may have authorized access to multiple orgs.
        We need the tenant_id to make API calls.

        Raises:
            UpstreamAuthError: If request fails
        """
        response = await self._send(
            "GET",
            self.config.connections_url,
            "connections lookup",
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
        )

        if not response.is_success:
            logger.error("Xero connections lookup failed (status %s)", response.status_code)
            raise UpstreamAuthError(
                message="Failed to fetch Xero connections",
                error_code="connection_error",
            )

        try:
            payload = response.json()
            return [XeroTenantConnection.model_validate(item) for item in payload]
        except (TypeError, ValueError, ValidationError) as exc:
            raise UpstreamAuthError(
                message="Malformed connections response from Xero",
                error_code="connection_error",
            ) from exc

    async def revoke_token(self, token: str) -> bool:
        """
        Revoke a token (access or refresh).

        Raises:
            UpstreamAuthError: If revocation fails
        """
        response = await self._send(
            "POST",
            self.config.revocation_url,
            "token revocation",
            headers={
                "Authorization": self._get_auth_header(),
                "Content-Type": "application/x-www-form-urlencoded",
            },
            data={"token": token},
        )

        # Xero returns 200 even if token is already revoked
        if response.status_code not in (200, 204):
            raise UpstreamAuthError(
                message="Token revocation failed",
                error_code="revocation_error",
            )

        return True


def _safe_json(response: httpx.Response) -> dict:
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
