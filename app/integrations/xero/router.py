"""
Xero Integration Router
API endpoints for the Xero OAuth 2.0 flow, connection management and contacts.
"""

import logging
from datetime import datetime, timezone
from typing import Annotated, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Cookie, Depends, Query, Request, status
from fastapi.responses import RedirectResponse

from app.config import Settings
from app.core.errors import (
    ErrorCode,
    ERROR_MESSAGES,
    create_error_response,
    get_error_code_for_exception,
    sanitize_error_message,
)
from app.integrations.xero.exceptions import InvalidStateError, XeroIntegrationError
from app.integrations.xero.fetchers import ContactsFetcher
from app.integrations.xero.oauth import XeroOAuth
from app.integrations.xero.schemas import (
    ContactsData,
    ContactsResponse,
    ContactsSyncData,
    ContactsSyncResponse,
    TokenStatus,
    XeroDisconnectResponse,
    XeroRefreshResponse,
)
from app.integrations.xero.service import XeroTokenService
from app.integrations.xero.state_store import OAuthStateStore

logger = logging.getLogger(__name__)

STATE_COOKIE = "xero_oauth_state"

auth_router = APIRouter(prefix="/api/auth", tags=["Xero Authentication"])
contacts_router = APIRouter(prefix="/api/contacts", tags=["Xero Contacts"])


# =============================================================================
# Dependencies
# =============================================================================

def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_xero_oauth(request: Request) -> XeroOAuth:
    return request.app.state.xero_oauth


def get_xero_service(request: Request) -> XeroTokenService:
    """Dependency to get the app-wide XeroTokenService (shares refresh locks)."""
    return request.app.state.xero_service


def get_state_store(request: Request) -> OAuthStateStore:
    return request.app.state.oauth_state_store


def get_contacts_fetcher(request: Request) -> ContactsFetcher:
    return request.app.state.contacts_fetcher


SettingsDep = Annotated[Settings, Depends(get_settings_dep)]
XeroServiceDep = Annotated[XeroTokenService, Depends(get_xero_service)]
ContactsFetcherDep = Annotated[ContactsFetcher, Depends(get_contacts_fetcher)]


def _frontend_redirect(settings: Settings, params: dict[str, str]) -> RedirectResponse:
    response = RedirectResponse(
        url=f"{settings.frontend_url}?{urlencode(params)}",
        status_code=status.HTTP_302_FOUND,
    )
    response.delete_cookie(STATE_COOKIE)
    return response


# =============================================================================
# Authentication Endpoints
# =============================================================================

@auth_router.get(
    "/connect",
    summary="Start Xero OAuth flow",
    description="Redirect the browser to Xero for consent.",
)
async def connect_xero(
    settings: SettingsDep,
    xero_oauth: Annotated[XeroOAuth, Depends(get_xero_oauth)],
    state_store: Annotated[OAuthStateStore, Depends(get_state_store)],
) -> RedirectResponse:
    """
    Initiate Xero OAuth 2.0 authorization flow.

    The state is cached server-side and pinned to the browser with a
    short-lived cookie; the callback requires both to match.
    """
    state = XeroOAuth.generate_state()
    state_store.save_state(state)

    response = RedirectResponse(
        url=xero_oauth.get_authorization_url(state),
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )
    response.set_cookie(
        STATE_COOKIE,
        state,
        max_age=int(state_store.lifetime.total_seconds()),
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )
    logger.info("Redirecting to Xero authorization")
    return response


@auth_router.get(
    "/callback",
    summary="Handle Xero OAuth callback",
    description="Validate state, exchange the code for tokens and redirect to the frontend.",
)
async def xero_callback(
    settings: SettingsDep,
    xero_service: XeroServiceDep,
    state_store: Annotated[OAuthStateStore, Depends(get_state_store)],
    code: Optional[str] = Query(None, description="Authorization code from Xero"),
    state: Optional[str] = Query(None, description="State token for CSRF validation"),
    error: Optional[str] = Query(None, description="Error reported by Xero"),
    state_cookie: Optional[str] = Cookie(None, alias=STATE_COOKIE),
) -> RedirectResponse:
    """
    Handle OAuth 2.0 callback from Xero.

    Always answers with a redirect to the frontend: success=true&company=<id>
    on success, error=<message> otherwise. Raw upstream errors and tokens
    never reach the query string.
    """
    # One-time use: consume before anything else
    state_valid = bool(state) and state_store.consume_state(state)
    state_valid = state_valid and state_cookie is not None and state == state_cookie

    if error:
        logger.warning("Xero authorization returned error %s", error)
        return _frontend_redirect(
            settings, {"error": ERROR_MESSAGES[ErrorCode.AUTHORIZATION_DENIED]}
        )

    try:
        if not state_valid:
            raise InvalidStateError("Xero callback state is missing, unknown or mismatched")

        if not code:
            return _frontend_redirect(
                settings, {"error": ERROR_MESSAGES[ErrorCode.AUTHORIZATION_DENIED]}
            )

        record = await xero_service.complete_authorization(code)
    except XeroIntegrationError as e:
        error_code, http_status = get_error_code_for_exception(e)
        log_details = http_status >= status.HTTP_500_INTERNAL_SERVER_ERROR
        if not log_details:
            logger.warning("Rejected Xero callback [%s]: %s", error_code.value, e)
        return _frontend_redirect(
            settings, {"error": sanitize_error_message(e, error_code, log_details=log_details)}
        )
    except Exception as e:
        # The browser is mid-redirect; it gets the generic message, not a JSON 500
        return _frontend_redirect(
            settings, {"error": sanitize_error_message(e, ErrorCode.INTERNAL_ERROR)}
        )

    return _frontend_redirect(
        settings, {"success": "true", "company": record.company_id}
    )


@auth_router.get(
    "/status",
    response_model=list[TokenStatus],
    summary="Get Xero connection status",
    description="Connection status for one company, or for every connected company.",
)
async def get_xero_status(
    xero_service: XeroServiceDep,
    company_id: Optional[str] = Query(None, description="Restrict to one company"),
) -> list[TokenStatus]:
    return await xero_service.get_status(company_id)


@auth_router.delete(
    "/connections/{company_id}",
    response_model=XeroDisconnectResponse,
    summary="Disconnect Xero",
    description="Revoke tokens and remove the stored Xero connection.",
)
async def disconnect_xero(
    company_id: str,
    xero_service: XeroServiceDep,
    fetcher: ContactsFetcherDep,
) -> XeroDisconnectResponse:
    deleted = await xero_service.disconnect(company_id)
    fetcher.rate_limiter.forget(company_id)

    if not deleted:
        raise create_error_response(
            ErrorCode.XERO_NOT_CONNECTED,
            http_status=status.HTTP_404_NOT_FOUND,
        )

    return XeroDisconnectResponse(deleted=True)


@auth_router.post(
    "/connections/{company_id}/refresh",
    response_model=XeroRefreshResponse,
    summary="Manually refresh Xero tokens",
    description="Force refresh of Xero access tokens.",
)
async def refresh_xero_tokens(
    company_id: str,
    xero_service: XeroServiceDep,
) -> XeroRefreshResponse:
    """
    Manually refresh Xero tokens.

    Normally tokens are refreshed automatically before API calls.
    """
    record = await xero_service.refresh(company_id)
    return XeroRefreshResponse(company_id=record.company_id, expires_at=record.expires_at)


# =============================================================================
# Contacts Endpoints
# =============================================================================

@contacts_router.get(
    "/{company_id}",
    response_model=ContactsResponse,
    summary="Fetch Xero contacts",
    description="Fetch contacts for a connected company, refreshing tokens if needed.",
)
async def get_contacts(
    company_id: str,
    fetcher: ContactsFetcherDep,
) -> ContactsResponse:
    contacts = await fetcher.fetch(company_id)

    return ContactsResponse(
        data=ContactsData(
            contacts=contacts,
            total_count=len(contacts),
            company_id=company_id,
            fetched_at=datetime.now(timezone.utc),
        )
    )


@contacts_router.post(
    "/sync/{company_id}",
    response_model=ContactsSyncResponse,
    summary="Sync Xero contacts",
    description="Pull contacts from Xero and report a sync summary.",
)
async def sync_contacts(
    company_id: str,
    fetcher: ContactsFetcherDep,
) -> ContactsSyncResponse:
    sync_results = await fetcher.sync(company_id)

    return ContactsSyncResponse(
        message="Customer sync completed successfully",
        data=ContactsSyncData(
            sync_results=sync_results,
            company_id=company_id,
            synced_at=datetime.now(timezone.utc),
        ),
    )
