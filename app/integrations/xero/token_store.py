"""
Xero Token Store
Persistence for Xero OAuth tokens, one row per company.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.integrations.xero.exceptions import StorageError
from app.integrations.xero.schemas import TokenRecord, XeroTokenData
from app.models.xero_token import XeroToken, ensure_utc
from app.services.token_cipher import TokenCipher

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class XeroTokenStore:
    """
    Token storage backed by SQLAlchemy.

    Handles:
    - Lookup by company
    - Atomic insert-or-update per company
    - Deletion on disconnect
    - Listing for status views

    Callers get TokenRecord snapshots, never live ORM rows.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: Optional[TokenCipher] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.cipher = cipher
        self.clock = clock

    def _seal(self, value: Optional[str]) -> Optional[str]:
        return self.cipher.encrypt(value) if self.cipher else value

    def _open(self, value: Optional[str]) -> Optional[str]:
        return self.cipher.decrypt(value) if self.cipher else value

    def _to_record(self, token: XeroToken) -> TokenRecord:
        return TokenRecord(
            company_id=token.company_id,
            tenant_name=token.tenant_name,
            access_token=self._open(token.access_token),
            refresh_token=self._open(token.refresh_token),
            id_token=self._open(token.id_token),
            token_type=token.token_type,
            scope=token.scope,
            expires_at=ensure_utc(token.expires_at),
            last_refreshed_at=ensure_utc(token.last_refreshed_at),
            created_at=ensure_utc(token.created_at),
            updated_at=ensure_utc(token.updated_at),
        )

    async def find_by_company_id(self, company_id: str) -> Optional[TokenRecord]:
        """
        Get the token record for a company.

        Returns:
            TokenRecord if exists, None otherwise

        Raises:
            StorageError: On any database failure
        """
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(XeroToken).where(XeroToken.company_id == company_id)
                )
                token = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Token lookup failed for company %s", company_id, exc_info=exc)
            raise StorageError("Token lookup failed", "lookup_failed") from exc

        return self._to_record(token) if token else None

    async def upsert(self, company_id: str, token_data: XeroTokenData) -> TokenRecord:
        """
        Insert or update the token row for a company in one statement.

        Uses INSERT ... ON CONFLICT (company_id) DO UPDATE so concurrent
        callbacks/refreshes can never create a second row. created_at is
        only written on insert.

        Raises:
            StorageError: On any database failure
        """
        now = self.clock()
        values = {
            "access_token": self._seal(token_data.access_token),
            "refresh_token": self._seal(token_data.refresh_token),
            "id_token": self._seal(token_data.id_token),
            "token_type": token_data.token_type,
            "scope": token_data.scope,
            "expires_at": ensure_utc(token_data.expires_at),
            "last_refreshed_at": now,
            "updated_at": now,
        }
        if token_data.tenant_name is not None:
            values["tenant_name"] = token_data.tenant_name

        try:
            async with self.session_factory() as session:
                insert = _UPSERT_DIALECTS.get(session.get_bind().dialect.name)
                if insert is None:
                    raise StorageError(
                        f"Unsupported database dialect: {session.get_bind().dialect.name}",
                        "unsupported_dialect",
                    )

                statement = insert(XeroToken).values(
                    company_id=company_id,
                    created_at=now,
                    **values,
                )
                statement = statement.on_conflict_do_update(
                    index_elements=[XeroToken.company_id],
                    set_=values,
                )
                await session.execute(statement)

                result = await session.execute(
                    select(XeroToken)
                    .where(XeroToken.company_id == company_id)
                    .execution_options(populate_existing=True)
                )
                token = result.scalar_one()
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Token upsert failed for company %s", company_id, exc_info=exc)
            raise StorageError("Token upsert failed", "upsert_failed") from exc

        logger.debug("Stored tokens for company %s", company_id)
        return self._to_record(token)

    async def delete(self, company_id: str) -> bool:
        """
        Delete the token row for a company.

        Returns:
            True if a row was removed, False if no connection existed
        """
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(XeroToken).where(XeroToken.company_id == company_id)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Token delete failed for company %s", company_id, exc_info=exc)
            raise StorageError("Token delete failed", "delete_failed") from exc

        return result.rowcount > 0

    async def list_all(self) -> list[TokenRecord]:
        """List every stored token, oldest connection first."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(XeroToken).order_by(XeroToken.created_at, XeroToken.company_id)
                )
                tokens = result.scalars().all()
        except SQLAlchemyError as exc:
            logger.error("Token listing failed", exc_info=exc)
            raise StorageError("Token listing failed", "list_failed") from exc

        return [self._to_record(token) for token in tokens]
