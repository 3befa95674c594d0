"""
ReplyMate: review sync and reply orchestration.

Sync: token -> location (resolved once per sync) -> Business Profile reviews, falling back
to Places details exactly once when the primary path is unavailable. Reply: token ->
cached or resolved location -> PUT reply -> mirror into the stored review.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from ..cache import cache_location, forget_location, get_cached_location
from ..errors import (
    ConnectionRequired,
    NotFoundError,
    ProviderError,
    ReauthRequired,
    ValidationError,
)
from ..review_models import (
    Business,
    BusinessSummary,
    FetchResult,
    GoogleConnection,
    LocationHandle,
    ReplyResponse,
    SyncResponse,
)
from .google_auth import resolve_location
from .google_reviews import fetch_all_reviews, post_reply, review_id_only
from .places import fetch_reviews_from_place_details
from .reconciliation import reconcile
from .review_normalizer import REPLY_AUTHOR
from .token_manager import ensure_fresh_token

logger = logging.getLogger(__name__)

PRIMARY_MESSAGE = "Synced {count} review(s) from Google Business Profile."
FALLBACK_MESSAGE = (
    "Reviews synced using the Google Places API, which returns at most 5 reviews. "
    "Connect your Google Business Profile to sync all reviews and replies."
)
REAUTH_HINT = " Your Google connection has expired, please reconnect your Google account."


def _require_business(store, business_id: Optional[str]) -> Business:
    if not business_id:
        raise ValidationError("Business ID is required")
    business = store.get_business(business_id)
    if not business:
        raise NotFoundError("Business not found or access denied")
    return business


def locate(
    connection: GoogleConnection,
    place_id: str,
    access_token: str,
    use_cache: bool = True,
) -> Optional[LocationHandle]:
    """Location handle for place_id; a cache miss always re-resolves."""
    if use_cache:
        handle = get_cached_location(connection.id, place_id)
        if handle is not None:
            return handle
    handle = resolve_location(place_id, access_token)
    if handle is not None:
        cache_location(connection.id, place_id, handle)
    return handle


def _fetch_primary(store, connection: GoogleConnection, business: Business) -> Optional[FetchResult]:
    access_token, connection = ensure_fresh_token(store, connection)
    location = locate(connection, business.place_id, access_token, use_cache=False)
    if location is None:
        logger.warning("No Business Profile location matches Place ID %s", business.place_id)
        return None
    return fetch_all_reviews(location, access_token)


def sync_business_reviews(store, business_id: Optional[str], now: Optional[datetime] = None) -> SyncResponse:
    """
    Sync one business. Resolver miss, ReauthRequired or ProviderError on the primary path
    turn into a single Places fallback; only a fallback failure is raised.
    ConfigurationError is never converted into a fallback.
    """
    business = _require_business(store, business_id)
    now = now or datetime.now(timezone.utc)
    fetched: Optional[FetchResult] = None
    reauth_required = False

    connection = store.get_google_connection()
    if connection is None:
        logger.info("Business %s: no Google connection, using Places API", business.id)
    else:
        try:
            fetched = _fetch_primary(store, connection, business)
        except ReauthRequired as e:
            reauth_required = True
            logger.warning("Business %s: %s Falling back to Places API", business.id, e.message)
        except ProviderError as e:
            logger.warning("Business %s: primary fetch failed (%s), falling back to Places API", business.id, e.message)

    if fetched is None:
        fetched = fetch_reviews_from_place_details(business.place_id)

    result = reconcile(store, business, fetched, now=now)
    refreshed = store.get_business(business.id) or business

    if fetched.used_fallback:
        message = FALLBACK_MESSAGE + (REAUTH_HINT if reauth_required else "")
    else:
        message = PRIMARY_MESSAGE.format(count=len(fetched.reviews))
    logger.info(
        "Sync business %s: %d inserted, %d updated, places=%s",
        business.id, result.inserted, result.updated, fetched.used_fallback,
    )
    return SyncResponse(
        inserted=result.inserted,
        updated=result.updated,
        reviewCount=len(fetched.reviews),
        usedPlacesAPI=fetched.used_fallback,
        reauthRequired=reauth_required,
        message=message,
        business=BusinessSummary(
            id=refreshed.id,
            rating=refreshed.rating,
            total_reviews=refreshed.total_reviews,
            last_sync_at=refreshed.last_sync_at,
        ),
    )


def post_business_reply(
    store,
    business_id: Optional[str],
    review_id: Optional[str],
    reply_text: Optional[str],
) -> ReplyResponse:
    """Post a reply to Google, then mirror it into the stored review. No fallback."""
    if not business_id or not review_id or not (reply_text or "").strip():
        raise ValidationError("Missing required fields: businessId, reviewId, replyText")
    business = _require_business(store, business_id)

    connection = store.get_google_connection()
    if connection is None:
        raise ConnectionRequired()
    access_token, connection = ensure_fresh_token(store, connection)

    location = locate(connection, business.place_id, access_token)
    if location is None:
        raise NotFoundError("Google Business Profile location not found for this business")

    try:
        result = post_reply(location, review_id, reply_text, access_token)
    except ProviderError:
        # Handle may be stale; next attempt re-resolves
        forget_location(connection.id, business.place_id)
        raise

    mirrored = store.mirror_reply(business.id, review_id, result.comment, REPLY_AUTHOR, result.replied_at)
    if not mirrored and review_id_only(review_id) != review_id:
        mirrored = store.mirror_reply(
            business.id, review_id_only(review_id), result.comment, REPLY_AUTHOR, result.replied_at
        )
    if not mirrored:
        logger.warning("Reply posted but no stored review %s for business %s", review_id, business.id)
    logger.info("Posted reply to review %s for business %s", result.review_id, business.id)
    return ReplyResponse(replied_at=result.replied_at)
