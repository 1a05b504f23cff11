"""
Xero Integration Exceptions
Custom exceptions for the Xero token lifecycle and API proxy.
"""

from typing import Optional


class XeroIntegrationError(Exception):
    """Base exception for Xero integration errors."""

    default_error_code = "xero_error"

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        self.error_code = error_code or self.default_error_code
        super().__init__(self.message)


class UpstreamAuthError(XeroIntegrationError):
    """Xero identity server rejected a grant or request."""

    default_error_code = "upstream_auth_error"


class UpstreamApiError(XeroIntegrationError):
    """Exception for Xero resource API errors."""

    default_error_code = "upstream_api_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
    ):
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class UpstreamTimeoutError(XeroIntegrationError, TimeoutError):
    """Outbound call to Xero exceeded its timeout."""

    default_error_code = "upstream_timeout"


class StorageError(XeroIntegrationError):
    """Token persistence failed."""

    default_error_code = "storage_error"


class NotConnectedError(XeroIntegrationError):
    """No token record exists for the company."""

    default_error_code = "not_connected"

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"No Xero connection for company {company_id}")


class NoTenantConnectionsError(XeroIntegrationError):
    """Authorization succeeded but no Xero tenant was granted."""

    default_error_code = "no_tenant_connections"


class ReauthorizationRequiredError(XeroIntegrationError):
    """Refresh token is no longer usable; the user must connect again."""

    default_error_code = "reauthorization_required"

    def __init__(self, company_id: str, reason: Optional[str] = None):
        self.company_id = company_id
        self.reason = reason
        super().__init__(f"Token refresh failed for company {company_id}")


class InvalidStateError(XeroIntegrationError):
    """OAuth callback state is missing, unknown, expired or mismatched."""

    default_error_code = "invalid_state"
