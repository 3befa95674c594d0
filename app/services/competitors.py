"""
Competitor review sync. Competitors only have public data, so the Places details
endpoint is the sole source (at most 5 reviews).
"""
from ..errors import NotFoundError
from .places import fetch_reviews_from_place_details
from .reconciliation import reconcile_competitor

SYNC_MESSAGE = "Competitor data synced. {count} review(s) (the Places API returns at most 5 reviews)."


def sync_competitor(store, competitor_id: str) -> dict:
    competitor = store.get_competitor(competitor_id)
    if not competitor:
        raise NotFoundError("Competitor not found")
    fetched = fetch_reviews_from_place_details(competitor.competitor_place_id)
    result = reconcile_competitor(store, competitor, fetched)
    refreshed = store.get_competitor(competitor_id) or competitor
    return {
        "success": True,
        "inserted": result.inserted,
        "updated": result.updated,
        "competitor": {
            "id": refreshed.id,
            "rating": refreshed.rating,
            "total_reviews": refreshed.total_reviews,
            "last_sync_at": refreshed.last_sync_at,
        },
        "message": SYNC_MESSAGE.format(count=len(fetched.reviews)),
    }
