"""
Thin requests wrapper for Google APIs: bearer auth, timeout, and uniform ProviderError
for transport failures, non-2xx responses and non-JSON bodies. A 401 on a
bearer call is ReauthRequired.
"""
import logging
from typing import Optional

import requests

from ..errors import ProviderError, ReauthRequired
from ..settings import settings

logger = logging.getLogger(__name__)


def error_message(response: requests.Response, fallback: str) -> str:
    """Extract Google's error message ({"error": {"message"}} or {"error": "..."})."""
    try:
        data = response.json()
    except ValueError:
        return f"{fallback} (Status: {response.status_code})"
    if not isinstance(data, dict):
        return f"{fallback} (Status: {response.status_code})"
    err = data.get("error")
    if isinstance(err, dict):
        msg = err.get("message") or err.get("status")
    else:
        msg = data.get("error_description") or err or data.get("message")
    return f"{msg or fallback} (Status: {response.status_code})"


def google_request(
    method: str,
    url: str,
    api_name: str,
    access_token: Optional[str] = None,
    params: Optional[dict] = None,
    json: Optional[dict] = None,
) -> dict:
    """Call a Google endpoint and return the decoded JSON body."""
    headers = {"Content-Type": "application/json"}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    try:
        r = requests.request(
            method,
            url,
            headers=headers,
            params=params,
            json=json,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        logger.warning("Google %s API request failed: %s", api_name, e)
        raise ProviderError(f"Google {api_name} API request failed: {e}") from e
    if r.status_code == 401 and access_token:
        # Access token revoked or rejected
        logger.warning("Google %s API rejected the access token", api_name)
        raise ReauthRequired()
    if not r.ok:
        msg = error_message(r, f"Google {api_name} API request failed")
        logger.error("Google %s API error: %s", api_name, msg)
        raise ProviderError(f"Google {api_name} API Error: {msg}", status=r.status_code)
    try:
        data = r.json()
    except ValueError as e:
        raise ProviderError(f"Google {api_name} API returned a non-JSON body") from e
    if not isinstance(data, dict):
        raise ProviderError(f"Google {api_name} API returned an unexpected payload")
    return data
