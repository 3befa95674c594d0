"""
Google OAuth connect flow: authorize -> Google consent -> callback -> dashboard.
State is a signed, 10-minute, single-use cookie bound to the session user.
"""
import logging
import urllib.parse
from typing import Callable, Optional

from fastapi import APIRouter, Cookie, Depends, Request
from fastapi.responses import RedirectResponse

from ..auth import (
    STATE_COOKIE,
    STATE_TTL_SECONDS,
    get_current_user,
    get_optional_user,
    get_store,
    get_store_factory,
    sign_state,
    verify_state,
)
from ..errors import ReplyMateError
from ..services.google_auth import (
    exchange_code_for_tokens,
    generate_state,
    get_authorization_url,
)
from ..settings import settings
from ..store import Store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google", tags=["google"])


def _redirect_uri(request: Request) -> str:
    return settings.GOOGLE_REDIRECT_URI or str(request.url_for("google_callback"))


def _dashboard_redirect(**query) -> RedirectResponse:
    sep = "&" if "?" in settings.DASHBOARD_URL else "?"
    resp = RedirectResponse(url=f"{settings.DASHBOARD_URL}{sep}{urllib.parse.urlencode(query)}", status_code=302)
    resp.delete_cookie(STATE_COOKIE, path="/")
    return resp


@router.get("/authorize")
def google_authorize(request: Request, user_id: str = Depends(get_current_user)):
    """Start Google OAuth: set the state cookie and redirect to the consent screen."""
    state = generate_state()
    url = get_authorization_url(state, _redirect_uri(request))
    resp = RedirectResponse(url=url, status_code=302)
    resp.set_cookie(
        STATE_COOKIE,
        sign_state(state, user_id),
        max_age=STATE_TTL_SECONDS,
        path="/",
        httponly=True,
        samesite="lax",
        secure=request.url.scheme == "https",
    )
    return resp


@router.get("/callback", name="google_callback")
def google_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    google_oauth_state: Optional[str] = Cookie(default=None),
    user_id: Optional[str] = Depends(get_optional_user),
    store_factory: Callable[[str], Store] = Depends(get_store_factory),
):
    """OAuth callback from Google. Always redirects to the dashboard; the state cookie is consumed."""
    if error:
        return _dashboard_redirect(google_error=error)
    if not user_id:
        return _dashboard_redirect(google_error="unauthorized")
    if not code or not state:
        return _dashboard_redirect(google_error="missing_code_or_state")
    if not verify_state(google_oauth_state, state, user_id):
        logger.warning("OAuth state mismatch for user %s", user_id)
        return _dashboard_redirect(google_error="invalid_state")
    try:
        grant = exchange_code_for_tokens(code, _redirect_uri(request))
    except ReplyMateError as e:
        logger.warning("Token exchange failed for user %s: %s", user_id, e.message)
        return _dashboard_redirect(google_error="token_exchange_failed")
    store_factory(user_id).upsert_google_connection(
        access_token=grant.access_token,
        refresh_token=grant.refresh_token,
        token_type=grant.token_type,
        scope=grant.scope,
        expires_at=grant.expires_at,
    )
    logger.info("Google account connected for user %s", user_id)
    return _dashboard_redirect(google="connected")


@router.post("/disconnect")
def google_disconnect(store: Store = Depends(get_store)):
    store.delete_google_connection()
    logger.info("Google account disconnected for user %s", store.user_id)
    return {"success": True}
