"""
Xero Integration Schemas
Request/response models for Xero OAuth endpoints and the token lifecycle.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Xero Identity Payloads
# =============================================================================

class XeroTokenResponse(BaseModel):
    """Token endpoint payload (authorization_code and refresh_token grants)."""

    access_token: str
    refresh_token: str
    expires_in: int = Field(..., gt=0)
    token_type: str = "Bearer"
    scope: str = ""
    id_token: Optional[str] = None


class XeroTenantConnection(BaseModel):
    """Single entry from the Xero connections endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    tenant_id: str = Field(..., alias="tenantId")
    tenant_name: Optional[str] = Field(None, alias="tenantName")
    tenant_type: Optional[str] = Field(None, alias="tenantType")
    connection_id: Optional[str] = Field(None, alias="id")


# =============================================================================
# Internal Models (for service layer)
# =============================================================================

class XeroTokenData(BaseModel):
    """Values written by an upsert."""

    access_token: str
    refresh_token: str
    expires_at: datetime
    token_type: str = "Bearer"
    scope: str = ""
    id_token: Optional[str] = None
    tenant_name: Optional[str] = None


class TokenRecord(BaseModel):
    """Immutable snapshot of a stored token."""

    model_config = ConfigDict(frozen=True)

    company_id: str
    tenant_name: Optional[str] = None
    access_token: str
    refresh_token: str
    id_token: Optional[str] = None
    token_type: str = "Bearer"
    scope: str = ""
    expires_at: datetime
    last_refreshed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    def is_expired_at(self, now: datetime) -> bool:
        return now >= self.expires_at


class TokenStatus(BaseModel):
    """Connection status projection (never includes credentials)."""

    company_id: str
    tenant_name: Optional[str] = None
    is_expired: bool
    expires_at: datetime
    created_at: datetime
    last_refreshed_at: Optional[datetime] = None


class ContactsSyncResult(BaseModel):
    """Summary of a contacts sync run."""

    total_fetched: int
    new_contacts: int = 0
    updated_contacts: int = 0
    errors: list[str] = Field(default_factory=list)


# =============================================================================
# Response Models
# =============================================================================

class XeroDisconnectResponse(BaseModel):
    """Response after disconnecting Xero."""

    deleted: bool = Field(
        ...,
        description="Whether a stored connection was removed"
    )


class XeroRefreshResponse(BaseModel):
    """Response after manual token refresh."""

    company_id: str = Field(
        ...,
        description="Xero tenant whose tokens were refreshed"
    )
    expires_at: datetime = Field(
        ...,
        description="New token expiry time"
    )


class ContactsData(BaseModel):
    contacts: list[dict[str, Any]]
    total_count: int
    company_id: str
    fetched_at: datetime


class ContactsResponse(BaseModel):
    """Response from the contacts endpoint."""

    success: bool = True
    data: ContactsData


class ContactsSyncData(BaseModel):
    sync_results: ContactsSyncResult
    company_id: str
    synced_at: datetime


class ContactsSyncResponse(BaseModel):
    """Response from the contacts sync endpoint."""

    success: bool = True
    message: str
    data: ContactsSyncData
