"""
Contacts Fetcher
Fetches contacts from the Xero Accounting API.
"""

import logging
from typing import Any

from app.integrations.xero.fetchers.base import BaseFetcher
from app.integrations.xero.schemas import ContactsSyncResult

logger = logging.getLogger(__name__)

CONTACTS_PATH = "/api.xro/2.0/Contacts"


class ContactsFetcher(BaseFetcher):
    """Fetcher for Xero contacts."""

    async def fetch(self, company_id: str) -> list[dict[str, Any]]:
        """
        Fetch all contacts for a company.

        An empty list is a valid result (the organisation has no contacts).
        """
        payload = await self._get(company_id, CONTACTS_PATH)
        contacts = payload.get("Contacts") or []

        logger.info("Fetched %d contacts from Xero for company %s", len(contacts), company_id)
        return contacts

    async def sync(self, company_id: str) -> ContactsSyncResult:
        """
        Pull contacts for a company and summarise the run.

        Nothing is persisted locally yet, so new/updated counts stay at zero.
        """
        contacts = await self.fetch(company_id)
        result = ContactsSyncResult(total_fetched=len(contacts))

        logger.info(
            "Customer sync completed for company %s: %d contacts processed",
            company_id,
            result.total_fetched,
        )
        return result
