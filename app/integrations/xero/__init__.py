"""
Xero Integration Package
OAuth 2.0 connection lifecycle and contacts access for the Xero accounting API.

Submodules are imported directly (oauth, token_store, service, router, ...);
the package itself only re-exports the error hierarchy so that lower layers
such as app.services can raise these errors without import cycles.
"""

from app.integrations.xero.exceptions import (
    NotConnectedError,
    ReauthorizationRequiredError,
    StorageError,
    XeroIntegrationError,
)

__all__ = [
    "XeroIntegrationError",
    "NotConnectedError",
    "ReauthorizationRequiredError",
    "StorageError",
]
