"""
Business onboarding (Place ID -> businesses row) and owner-verified delete.
"""
import logging
from typing import Optional

from ..errors import NotFoundError, ProviderError, ValidationError
from ..review_models import Business
from .places import fetch_place_details

logger = logging.getLogger(__name__)


def connect_business(store, place_id: Optional[str]) -> Business:
    place_id = (place_id or "").strip()
    if not place_id:
        raise ValidationError("Place ID is required")
    if store.find_business_by_place_id(place_id):
        raise ValidationError("This business has already been added")
    try:
        details = fetch_place_details(place_id)
    except ProviderError as e:
        raise ValidationError(e.message) from e
    business = store.create_business({"place_id": place_id, **details})
    logger.info("Connected business %s (Place ID %s)", business.id, place_id)
    return business


def remove_business(store, business_id: str) -> None:
    """Ownership is checked with the caller-scoped store; the delete runs elevated."""
    if not store.get_business(business_id):
        raise NotFoundError("Business not found or access denied")
    store.as_elevated().delete_business(business_id)
