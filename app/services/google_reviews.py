"""
ReplyMate: Fetch reviews from Google Business Profile and post replies.
Uses v4 API: list reviews (paginated), updateReply for posting.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError as PayloadError

from ..errors import ProviderError
from ..review_models import (
    FetchResult,
    GoogleReviewPayload,
    LocationHandle,
    ReplyResult,
    ReviewSource,
)
from .google_http import google_request
from .review_normalizer import parse_timestamp

logger = logging.getLogger(__name__)

API_BASE = "https://mybusiness.googleapis.com/v4"
REVIEWS_PAGE_SIZE = 50
MAX_REPLY_LENGTH = 4096


def reviews_url(location: LocationHandle) -> str:
    return f"{API_BASE}/{location.location_name}/reviews"


def review_id_only(review_id: str) -> str:
    """accounts/1/locations/2/reviews/abc -> abc"""
    review_id = (review_id or "").strip().rstrip("/")
    if "/" in review_id:
        return review_id.split("/")[-1]
    return review_id


def fetch_all_reviews(location: LocationHandle, access_token: str) -> FetchResult:
    """
    Fetch all reviews for a location (handles pagination).
    Provider order is kept; averageRating / totalReviewCount from the last page that
    carries them win.
    """
    url = reviews_url(location)
    reviews: List[GoogleReviewPayload] = []
    average_rating: Optional[float] = None
    total_count: Optional[int] = None
    page_token = None
    while True:
        params = {"pageSize": REVIEWS_PAGE_SIZE}
        if page_token:
            params["pageToken"] = page_token
        data = google_request("GET", url, "My Business", access_token, params=params)
        raw = data.get("reviews") or []
        if not isinstance(raw, list):
            raise ProviderError("Google My Business API returned malformed reviews")
        try:
            reviews.extend(GoogleReviewPayload.model_validate(rev) for rev in raw)
        except PayloadError as e:
            logger.error("Malformed review payload for %s: %s", location.location_name, e)
            raise ProviderError("Google My Business API returned malformed reviews") from e
        if any(not (rev.name or rev.reviewId) for rev in reviews):
            logger.error("Review without name or reviewId for %s", location.location_name)
            raise ProviderError("Google My Business API returned a review without an id")
        if data.get("averageRating") is not None:
            average_rating = float(data["averageRating"])
        if data.get("totalReviewCount") is not None:
            total_count = int(data["totalReviewCount"])
        page_token = data.get("nextPageToken")
        if not page_token:
            break
    logger.info("Fetched %d review(s) for %s", len(reviews), location.location_name)
    return FetchResult(
        source=ReviewSource.GOOGLE_BUSINESS,
        reviews=reviews,
        average_rating=average_rating,
        total_review_count=total_count,
    )


def post_reply(
    location: LocationHandle,
    review_id: str,
    reply_text: str,
    access_token: str,
) -> ReplyResult:
    """
    Post or update the reply to a review. Text is truncated to 4096 characters.
    Raises ProviderError on API failure; nothing is written locally here.
    """
    bare_id = review_id_only(review_id)
    url = f"{reviews_url(location)}/{bare_id}/reply"
    comment = (reply_text or "")[:MAX_REPLY_LENGTH]
    data = google_request("PUT", url, "My Business", access_token, json={"comment": comment})
    replied_at = parse_timestamp(data.get("updateTime")) or datetime.now(timezone.utc)
    return ReplyResult(review_id=bare_id, comment=data.get("comment") or comment, replied_at=replied_at)
