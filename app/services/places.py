"""
Google Places API (place details). Public data keyed by GOOGLE_PLACES_API_KEY:
fallback review source (max 5 reviews, no reply data) and business onboarding lookup.
"""
import logging
from typing import Optional

from pydantic import ValidationError as PayloadError

from ..errors import ConfigurationError, ProviderError
from ..review_models import FetchResult, PlacesReviewPayload, ReviewSource
from ..settings import settings
from .google_http import google_request

logger = logging.getLogger(__name__)

PLACE_DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
REVIEW_FIELDS = "reviews,rating,user_ratings_total"
BUSINESS_FIELDS = "name,formatted_address,formatted_phone_number,website,rating,user_ratings_total,types"

# Places returns at most this many reviews per place
PLACES_REVIEW_LIMIT = 5


def _api_key() -> str:
    key = settings.GOOGLE_PLACES_API_KEY
    if not key:
        raise ConfigurationError("Google Places API key not configured (GOOGLE_PLACES_API_KEY)")
    return key


def _place_details(place_id: str, fields: str, ok_statuses=("OK",)) -> dict:
    params = {"place_id": place_id, "fields": fields, "key": _api_key()}
    data = google_request("GET", PLACE_DETAILS_URL, "Places", params=params)
    status = data.get("status")
    if status not in ok_statuses:
        msg = data.get("error_message") or f"Google Places API error: {status}"
        logger.error("Place details for %s failed: %s", place_id, status)
        raise ProviderError(msg)
    return data.get("result") or {}


def _optional_float(v) -> Optional[float]:
    return float(v) if v is not None else None


def _optional_int(v) -> Optional[int]:
    return int(v) if v is not None else None


def fetch_reviews_from_place_details(place_id: str) -> FetchResult:
    """One place-details call; returns up to 5 reviews plus aggregate rating/count."""
    result = _place_details(place_id, REVIEW_FIELDS, ok_statuses=("OK", "ZERO_RESULTS"))
    raw = result.get("reviews") or []
    try:
        reviews = [PlacesReviewPayload.model_validate(r) for r in raw[:PLACES_REVIEW_LIMIT]]
    except PayloadError as e:
        raise ProviderError("Google Places API returned malformed reviews") from e
    logger.info("Places API returned %d review(s) for %s", len(reviews), place_id)
    return FetchResult(
        source=ReviewSource.PLACES,
        reviews=reviews,
        average_rating=_optional_float(result.get("rating")),
        total_review_count=_optional_int(result.get("user_ratings_total")),
    )


def fetch_place_details(place_id: str) -> dict:
    """
    Business fields for onboarding, mapped to businesses columns.
    Anything but status OK is a ProviderError.
    """
    place = _place_details(place_id, BUSINESS_FIELDS)
    types = place.get("types") or []
    return {
        "name": place.get("name"),
        "address": place.get("formatted_address"),
        "phone": place.get("formatted_phone_number"),
        "website": place.get("website"),
        "rating": _optional_float(place.get("rating")),
        "total_reviews": _optional_int(place.get("user_ratings_total")) or 0,
        "category": types[0] if types else None,
    }
