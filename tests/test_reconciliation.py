"""Reconciliation: insert vs update by external id, idempotence, reply preservation."""
from app.review_models import (
    Competitor,
    FetchResult,
    GoogleReviewPayload,
    PlacesReviewPayload,
    ReviewRecord,
    ReviewSource,
    StoredReview,
)
from app.services.reconciliation import (
    dedupe_by_external_id,
    plan_reconciliation,
    reconcile,
    reconcile_competitor,
)
from app.services.review_normalizer import places_review_id
from conftest import utc

NOW = utc(2025, 3, 1, 12, 0)


def _primary(*ids, avg=4.3, total=10):
    return FetchResult(
        source=ReviewSource.GOOGLE_BUSINESS,
        reviews=[GoogleReviewPayload(reviewId=i, starRating="FOUR", comment=f"text {i}") for i in ids],
        average_rating=avg,
        total_review_count=total,
    )


def _places(*payloads, avg=4.0, total=50):
    return FetchResult(source=ReviewSource.PLACES, reviews=list(payloads), average_rating=avg, total_review_count=total)


def _record(gid, **extra):
    return ReviewRecord(google_review_id=gid, author_name="A", rating=5, review_created_at=NOW, **extra)


def test_first_sync_inserts_and_updates_business_stats(store, db, business):
    result = reconcile(store, business, _primary("r1", "r2", "r3"), now=NOW)

    assert (result.inserted, result.updated) == (3, 0)
    stored = db.businesses["biz-1"]
    assert stored.rating == 4.3
    assert stored.total_reviews == 10
    assert stored.last_sync_at == NOW
    assert len(db.reviews) == 3


def test_second_identical_sync_only_updates(store, db, business):
    reconcile(store, business, _primary("r1", "r2", "r3"), now=NOW)
    snapshot = {k: v.model_dump() for k, v in db.reviews.items()}

    result = reconcile(store, db.businesses["biz-1"], _primary("r1", "r2", "r3"), now=NOW)

    assert (result.inserted, result.updated) == (0, 3)
    assert len(db.reviews) == 3
    assert {k: v.model_dump() for k, v in db.reviews.items()} == snapshot


def test_duplicate_ids_in_batch_collapse_to_last():
    records = [_record("r1", text="first"), _record("r2"), _record("r1", text="last")]
    deduped = dedupe_by_external_id(records)
    assert [r.google_review_id for r in deduped] == ["r1", "r2"]
    assert deduped[0].text == "last"

    rows, inserted, updated = plan_reconciliation(records, {})
    assert (inserted, updated) == (2, 0)
    assert len(rows) == 2


def test_fallback_keeps_stored_reply(store, db, business):
    review = PlacesReviewPayload(author_name="Zeynep", rating=5, text="Süper", time=1700000000)
    other = PlacesReviewPayload(author_name="Can", rating=4, text="İyi", time=1700000100)
    gid = places_review_id("P1", review)
    db.reviews[("biz-1", gid)] = StoredReview(
        id="rev-9", business_id="biz-1", google_review_id=gid, author_name="Zeynep", rating=5,
        has_reply=True, reply_text="Thanks!", reply_author="Business Owner", replied_at=utc(2025, 2, 1),
        review_created_at=utc(2023, 11, 14),
    )

    result = reconcile(store, business, _places(review, other), now=NOW)

    assert (result.inserted, result.updated) == (1, 1)
    kept = db.reviews[("biz-1", gid)]
    assert kept.id == "rev-9"
    assert kept.has_reply is True
    assert kept.reply_text == "Thanks!"
    assert kept.reply_author == "Business Owner"
    assert kept.replied_at == utc(2025, 2, 1)


def test_reply_not_in_fallback_batch_is_untouched(store, db, business):
    db.reviews[("biz-1", "r9")] = StoredReview(
        id="rev-9", business_id="biz-1", google_review_id="r9", author_name="Old", rating=4,
        has_reply=True, reply_text="Thanks!", review_created_at=utc(2024, 1, 1),
    )
    before = db.reviews[("biz-1", "r9")].model_dump()

    reconcile(store, business, _places(
        PlacesReviewPayload(author_name="A", rating=5, time=1),
        PlacesReviewPayload(author_name="B", rating=3, time=2),
    ), now=NOW)

    assert db.reviews[("biz-1", "r9")].model_dump() == before
    assert len(db.reviews) == 3



def test_fallback_keeps_reply_mirrored_during_sync(store, db, business, monkeypatch):
    review = PlacesReviewPayload(author_name="Zeynep", rating=5, time=1700000000)
    gid = places_review_id("P1", review)
    db.reviews[("biz-1", gid)] = StoredReview(
        id="rev-9", business_id="biz-1", google_review_id=gid, author_name="Zeynep", rating=5,
        review_created_at=utc(2023, 11, 14),
    )
    load = store.load_reviews_by_external_id

    def load_then_reply(business_id):
        existing = load(business_id)
        store.mirror_reply(business_id, gid, "Thanks!", "Business Owner", utc(2025, 2, 1))
        return existing

    monkeypatch.setattr(store, "load_reviews_by_external_id", load_then_reply)
    reconcile(store, business, _places(review), now=NOW)

    kept = db.reviews[("biz-1", gid)]
    assert kept.has_reply is True
    assert kept.reply_text == "Thanks!"
    assert kept.fetched_at == NOW

def test_primary_source_overwrites_reply_fields():
    stored = StoredReview(
        id="x", business_id="biz-1", google_review_id="r1", author_name="A", rating=5,
        has_reply=True, reply_text="Old reply", review_created_at=NOW,
    )
    rows, _, updated = plan_reconciliation([_record("r1")], {"r1": stored}, preserve_replies=False)
    assert updated == 1
    assert rows[0].has_reply is False
    assert rows[0].reply_text is None


def test_null_aggregates_keep_cached_business_stats(store, db, business):
    db.businesses["biz-1"] = business.model_copy(update={"rating": 3.9, "total_reviews": 42})
    reconcile(store, db.businesses["biz-1"], _places(avg=None, total=None), now=NOW)
    stored = db.businesses["biz-1"]
    assert stored.rating == 3.9
    assert stored.total_reviews == 42
    assert stored.last_sync_at == NOW


def test_competitor_reviews_use_same_engine(store, db, business):
    db.competitors["comp-1"] = Competitor(id="comp-1", business_id="biz-1", competitor_place_id="C1")
    fetched = _places(
        PlacesReviewPayload(author_name="A", rating=5, time=10),
        PlacesReviewPayload(author_name="B", rating=0, time=20),
        avg=4.1, total=300,
    )
    first = reconcile_competitor(store, db.competitors["comp-1"], fetched, now=NOW)
    second = reconcile_competitor(store, db.competitors["comp-1"], fetched, now=NOW)

    assert (first.inserted, first.updated) == (2, 0)
    assert (second.inserted, second.updated) == (0, 2)
    assert len(db.competitor_reviews) == 2
    assert sorted(r["rating"] for r in db.competitor_reviews.values()) == [1, 5]
    comp = db.competitors["comp-1"]
    assert comp.rating == 4.1
    assert comp.total_reviews == 300
