"""
Normalize provider review payloads (Business Profile v4, Places details) into ReviewRecord.
"""
import hashlib
import re
from datetime import datetime, timezone
from typing import Optional, Union

from ..errors import ProviderError
from ..review_models import (
    GoogleReviewPayload,
    PlacesReviewPayload,
    ReviewRecord,
)

# Map API star rating enum to integer 1-5
STAR_MAP = {
    "ONE": 1,
    "TWO": 2,
    "THREE": 3,
    "FOUR": 4,
    "FIVE": 5,
}

# Unknown / unspecified / zero ratings are stored as 1 so charts stay in the 1-5 domain
MIN_RATING = 1
MAX_RATING = 5

ANONYMOUS_AUTHOR = "Anonymous"
# Label mirrored into reply_author for replies made by the business
REPLY_AUTHOR = "Business Owner"

_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


def normalize_rating(value: Union[str, int, float, None]) -> int:
    if value is None:
        return MIN_RATING
    if isinstance(value, str):
        key = value.strip().upper().replace("STAR_RATING_", "")
        if key in STAR_MAP:
            return STAR_MAP[key]
        try:
            value = float(key)
        except ValueError:
            return MIN_RATING
    try:
        n = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return MIN_RATING
    if n < MIN_RATING:
        return MIN_RATING
    return min(n, MAX_RATING)


def parse_timestamp(s: Optional[str]) -> Optional[datetime]:
    """Parse RFC 3339 (Google sends up to nanoseconds and a trailing Z). Returns aware UTC."""
    if not s:
        return None
    s = str(s).strip().replace("Z", "+00:00")
    s = _FRACTION_RE.sub(r".\1", s)
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def places_review_id(place_id: str, review: PlacesReviewPayload) -> str:
    """Places reviews carry no id; derive a stable one from place, timestamp and author."""
    author_hash = hashlib.sha256((review.author_name or "").encode("utf-8")).hexdigest()[:8]
    return f"places_{place_id}_{review.time}_{author_hash}"


def normalize_google_review(review: GoogleReviewPayload, fetched_at: datetime) -> ReviewRecord:
    review_id = review.name or review.reviewId
    if not review_id:
        raise ProviderError("Business Profile review without name or reviewId")
    reviewer = review.reviewer
    reply = review.reviewReply
    has_reply = bool(reply and reply.comment)
    comment = (review.comment or "").strip()
    return ReviewRecord(
        google_review_id=review_id,
        author_name=(reviewer.displayName if reviewer and reviewer.displayName else ANONYMOUS_AUTHOR)[:500],
        author_photo_url=reviewer.profilePhotoUrl if reviewer else None,
        rating=normalize_rating(review.starRating),
        text=comment or None,
        language=review.reviewerLanguage,
        has_reply=has_reply,
        reply_text=reply.comment.strip() if has_reply else None,
        reply_author=REPLY_AUTHOR if has_reply else None,
        replied_at=parse_timestamp(reply.updateTime) if has_reply else None,
        review_created_at=parse_timestamp(review.createTime) or fetched_at,
    )


def normalize_places_review(review: PlacesReviewPayload, place_id: str, fetched_at: datetime) -> ReviewRecord:
    created = datetime.fromtimestamp(review.time, tz=timezone.utc) if review.time else fetched_at
    text = (review.text or "").strip()
    return ReviewRecord(
        google_review_id=places_review_id(place_id, review),
        author_name=(review.author_name or ANONYMOUS_AUTHOR)[:500],
        author_photo_url=review.profile_photo_url,
        rating=normalize_rating(review.rating),
        text=text or None,
        language=review.language,
        review_created_at=created,
    )


def normalize_review(
    review: Union[GoogleReviewPayload, PlacesReviewPayload],
    place_id: str,
    fetched_at: datetime,
) -> ReviewRecord:
    if isinstance(review, GoogleReviewPayload):
        return normalize_google_review(review, fetched_at)
    return normalize_places_review(review, place_id, fetched_at)
