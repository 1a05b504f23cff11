"""
Xero Token Model
Stores OAuth 2.0 tokens for Xero API integration.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Text, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.database.base import Base, TimestampMixin, UUIDMixin


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class XeroToken(Base, UUIDMixin, TimestampMixin):
    """
    Xero OAuth token storage.

    One row per Xero company (tenant). Tokens are rotated on each refresh
    (Xero requirement), so rows are updated in place rather than appended.

    Attributes:
        id: Unique identifier (UUID)
        company_id: Xero tenant identifier (unique)
        tenant_name: Xero organisation display name
        access_token: Short-lived token for API calls (30 min)
        refresh_token: Long-lived token for refreshing (60 days)
        id_token: OIDC identity token (optional)
        token_type: Token type (usually "Bearer")
        scope: Granted OAuth scopes
        expires_at: When access_token expires
        last_refreshed_at: When tokens were last issued or refreshed
        created_at: Timestamp of creation
        updated_at: Timestamp of last update

    Security Note:
        Token columns hold Fernet ciphertext when TOKEN_ENCRYPTION_KEY is set.
    """

    company_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        comment="Xero tenant identifier",
    )

    tenant_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Xero organization/company name",
    )

    # OAuth tokens
    access_token: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    refresh_token: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    id_token: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="OIDC identity token",
    )

    token_type: Mapped[str] = mapped_column(
        String(50),
        default="Bearer",
        nullable=False,
    )

    scope: Mapped[str] = mapped_column(
        Text,
        default="",
        nullable=False,
        comment="Space-separated OAuth scopes",
    )

    # Token expiration
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When access_token expires",
    )

    last_refreshed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_xero_tokens_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<XeroToken(id={self.id}, company_id={self.company_id!r})>"
