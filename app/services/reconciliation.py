"""
Reconcile fetched reviews against stored ones, keyed by (owner, google_review_id).
One engine for business sync (primary or Places) and competitor sync.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Tuple

from ..review_models import (
    Business,
    Competitor,
    FetchResult,
    ReconcileResult,
    ReviewRecord,
    StoredReview,
)
from .review_normalizer import normalize_review

logger = logging.getLogger(__name__)

REPLY_FIELDS = ("has_reply", "reply_text", "reply_author", "replied_at")


def dedupe_by_external_id(records: List[ReviewRecord]) -> List[ReviewRecord]:
    """Duplicate ids in one batch collapse to the last occurrence."""
    by_id: Dict[str, ReviewRecord] = {}
    for r in records:
        by_id[r.google_review_id] = r
    return list(by_id.values())


def _carry_reply(record: ReviewRecord, stored: StoredReview) -> ReviewRecord:
    return record.model_copy(update={f: getattr(stored, f) for f in REPLY_FIELDS})


def plan_reconciliation(
    records: List[ReviewRecord],
    existing: Mapping[str, object],
    preserve_replies: bool = False,
) -> Tuple[List[ReviewRecord], int, int]:
    """
    Returns (rows_to_write, inserted, updated).
    With preserve_replies, an existing row that has a reply keeps its reply fields
    (the Places source has no reply data).
    """
    rows: List[ReviewRecord] = []
    inserted = updated = 0
    for record in dedupe_by_external_id(records):
        stored = existing.get(record.google_review_id)
        if stored is None:
            inserted += 1
            rows.append(record)
            continue
        updated += 1
        if preserve_replies and isinstance(stored, StoredReview) and stored.has_reply:
            record = _carry_reply(record, stored)
        rows.append(record)
    return rows, inserted, updated


def _normalize_all(fetched: FetchResult, place_id: str, fetched_at: datetime) -> List[ReviewRecord]:
    return [normalize_review(p, place_id, fetched_at) for p in fetched.reviews]


def reconcile(
    store,
    business: Business,
    fetched: FetchResult,
    now: Optional[datetime] = None,
) -> ReconcileResult:
    """
    Upsert fetched reviews for a business and refresh its cached rating / total_reviews /
    last_sync_at. Running it twice with the same input inserts nothing the second time.
    """
    now = now or datetime.now(timezone.utc)
    records = _normalize_all(fetched, business.place_id, now)
    existing = store.load_reviews_by_external_id(business.id)
    rows, inserted, updated = plan_reconciliation(records, existing, preserve_replies=fetched.used_fallback)
    store.upsert_reviews(business.id, rows, now, preserve_replies=fetched.used_fallback)

    rating = fetched.average_rating if fetched.average_rating is not None else business.rating
    total = fetched.total_review_count if fetched.total_review_count is not None else business.total_reviews
    store.update_business_stats(business.id, rating, total, now)
    logger.info(
        "Reconciled business %s (%s): %d inserted, %d updated",
        business.id, fetched.source.value, inserted, updated,
    )
    return ReconcileResult(inserted=inserted, updated=updated)


def reconcile_competitor(
    store,
    competitor: Competitor,
    fetched: FetchResult,
    now: Optional[datetime] = None,
) -> ReconcileResult:
    now = now or datetime.now(timezone.utc)
    records = _normalize_all(fetched, competitor.competitor_place_id, now)
    existing = store.load_competitor_reviews_by_external_id(competitor.id)
    rows, inserted, updated = plan_reconciliation(records, existing)
    store.upsert_competitor_reviews(competitor.id, rows, now)

    rating = fetched.average_rating if fetched.average_rating is not None else competitor.rating
    total = fetched.total_review_count if fetched.total_review_count is not None else competitor.total_reviews
    store.update_competitor_stats(competitor.id, rating, total, now)
    logger.info("Reconciled competitor %s: %d inserted, %d updated", competitor.id, inserted, updated)
    return ReconcileResult(inserted=inserted, updated=updated)
