"""
Models Package
SQLAlchemy ORM models for the application.
"""

from app.models.xero_token import XeroToken

__all__ = [
    "XeroToken",
]
