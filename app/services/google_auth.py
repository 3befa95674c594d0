"""
Google OAuth 2.0 and Business Profile account/location helpers for ReplyMate.
Uses GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET (redirect URI from settings or the request).
"""
import logging
import secrets
import urllib.parse
from datetime import datetime, timedelta, timezone
from typing import List, NamedTuple, Optional

import requests

from ..errors import ConfigurationError, ProviderError, ReauthRequired
from ..review_models import LocationHandle
from ..settings import settings
from .google_http import error_message, google_request

logger = logging.getLogger(__name__)

# Scope for Business Profile API (manage listings, reply to reviews)
SCOPE = "https://www.googleapis.com/auth/business.manage"

# OAuth URLs
AUTH_BASE = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
# Account/location APIs
ACCOUNTS_LIST_URL = "https://mybusinessaccountmanagement.googleapis.com/v1/accounts"
LOCATIONS_LIST_TEMPLATE = "https://mybusinessbusinessinformation.googleapis.com/v1/{account}/locations"
LOCATIONS_PAGE_SIZE = 100
LOCATIONS_READ_MASK = "name,storeCode,metadata"

DEFAULT_EXPIRES_IN = 3600


class TokenGrant(NamedTuple):
    access_token: str
    refresh_token: Optional[str]
    expires_at: datetime
    token_type: Optional[str] = None
    scope: Optional[str] = None


def _client_credentials():
    client_id = settings.GOOGLE_CLIENT_ID
    client_secret = settings.GOOGLE_CLIENT_SECRET
    if not client_id or not client_secret:
        raise ConfigurationError("Google OAuth not configured (GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET)")
    return client_id, client_secret


def get_authorization_url(state: str, redirect_uri: str) -> str:
    """Build Google OAuth authorization URL. Redirect user here to start OAuth."""
    client_id = settings.GOOGLE_CLIENT_ID
    if not client_id:
        raise ConfigurationError("Google OAuth not configured (GOOGLE_CLIENT_ID)")
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": SCOPE,
        "state": state,
        "access_type": "offline",
        "prompt": "consent",  # Force consent to get refresh_token
        "include_granted_scopes": "true",
    }
    return f"{AUTH_BASE}?{urllib.parse.urlencode(params)}"


def generate_state() -> str:
    """Generate a cryptographically secure state string for OAuth."""
    return secrets.token_urlsafe(32)


def _post_token(data: dict) -> dict:
    try:
        r = requests.post(
            TOKEN_URL,
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        raise ProviderError(f"Google token request failed: {e}") from e
    if not r.ok:
        try:
            payload = r.json()
        except ValueError:
            payload = {}
        if isinstance(payload, dict) and payload.get("error") == "invalid_grant":
            raise ReauthRequired()
        raise ProviderError(error_message(r, "Could not obtain Google access token"), status=r.status_code)
    return r.json()


def _grant_from(data: dict, now: Optional[datetime] = None) -> TokenGrant:
    access = data.get("access_token")
    if not access:
        raise ProviderError("No access_token in token response")
    now = now or datetime.now(timezone.utc)
    expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
    return TokenGrant(
        access_token=access,
        refresh_token=data.get("refresh_token"),
        expires_at=now + timedelta(seconds=expires_in),
        token_type=data.get("token_type"),
        scope=data.get("scope"),
    )


def exchange_code_for_tokens(code: str, redirect_uri: str) -> TokenGrant:
    """
    Exchange authorization code for tokens.
    refresh_token may be None when Google does not re-issue it (repeat consent).
    """
    client_id, client_secret = _client_credentials()
    data = _post_token({
        "code": code,
        "client_id": client_id,
        "client_secret": client_secret,
        "redirect_uri": redirect_uri,
        "grant_type": "authorization_code",
    })
    return _grant_from(data)


def refresh_access_token(refresh_token: str) -> TokenGrant:
    """
    Get a new access_token using refresh_token.
    Google does not always rotate the refresh token, so grant.refresh_token may be None.
    Raises ReauthRequired on invalid_grant.
    """
    client_id, client_secret = _client_credentials()
    data = _post_token({
        "refresh_token": refresh_token,
        "client_id": client_id,
        "client_secret": client_secret,
        "grant_type": "refresh_token",
    })
    return _grant_from(data)


def list_accounts(access_token: str) -> List[str]:
    """Return account resource names (accounts/123) reachable with the token."""
    accounts: List[str] = []
    page_token = None
    while True:
        params = {"pageToken": page_token} if page_token else None
        data = google_request("GET", ACCOUNTS_LIST_URL, "Account Management", access_token, params=params)
        for acc in data.get("accounts") or []:
            name = acc.get("name")
            if name and name not in accounts:
                accounts.append(name)
        page_token = data.get("nextPageToken")
        if not page_token:
            break
    return accounts


def _matches(location: dict, place_id: str) -> bool:
    meta = location.get("metadata") or {}
    return meta.get("placeId") == place_id or location.get("storeCode") == place_id


def find_location_in_account(account_name: str, place_id: str, access_token: str) -> Optional[str]:
    """Page through an account's locations; return the first matching location name."""
    url = LOCATIONS_LIST_TEMPLATE.format(account=account_name)
    page_token = None
    while True:
        params = {"readMask": LOCATIONS_READ_MASK, "pageSize": LOCATIONS_PAGE_SIZE}
        if page_token:
            params["pageToken"] = page_token
        data = google_request("GET", url, "Business Information", access_token, params=params)
        locations = data.get("locations") or []
        logger.debug("Account %s: %d location(s) on this page", account_name, len(locations))
        for loc in locations:
            if loc.get("name") and _matches(loc, place_id):
                return loc["name"]
        page_token = data.get("nextPageToken")
        if not page_token:
            return None


def resolve_location(place_id: str, access_token: str) -> Optional[LocationHandle]:
    """
    Find the Business Profile location whose Place ID (or store code) equals place_id.
    First match in account-then-page order wins. Returns None when nothing matches.
    """
    accounts = list_accounts(access_token)
    logger.info("Resolving Place ID %s across %d account(s)", place_id, len(accounts))
    for account_name in accounts:
        location_name = find_location_in_account(account_name, place_id, access_token)
        if not location_name:
            continue
        if not location_name.startswith("accounts/"):
            location_name = f"{account_name}/{location_name}"
        logger.info("Resolved Place ID %s to %s", place_id, location_name)
        return LocationHandle(account_name=account_name, location_name=location_name)
    return None
