"""
Xero Data Fetchers
Resource fetchers that run on top of the token lifecycle.

- ContactsFetcher: Fetches contacts and produces sync summaries
"""

from app.integrations.xero.fetchers.contacts import ContactsFetcher

__all__ = [
    "ContactsFetcher",
]
