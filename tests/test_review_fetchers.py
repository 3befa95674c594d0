"""Business Profile and Places review fetchers, and the reply poster."""
import pytest
import requests

from app.errors import ConfigurationError, ProviderError, ReauthRequired
from app.review_models import LocationHandle, ReviewSource
from app.services import google_reviews, places
from app.settings import settings
from conftest import utc

LOCATION = LocationHandle(account_name="accounts/1", location_name="accounts/1/locations/11")
REVIEWS_URL = "https://mybusiness.googleapis.com/v4/accounts/1/locations/11/reviews"


def _review(rid, stars="FIVE", **extra):
    data = {
        "name": f"accounts/1/locations/11/reviews/{rid}",
        "reviewId": rid,
        "reviewer": {"displayName": f"Reviewer {rid}"},
        "starRating": stars,
        "comment": f"comment {rid}",
        "createTime": "2025-01-02T03:04:05Z",
    }
    data.update(extra)
    return data


@pytest.fixture
def places_key(monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_PLACES_API_KEY", "places-key")


def test_fetch_all_reviews_follows_pages(fake_http):
    fake_http.add("GET", REVIEWS_URL, {
        "reviews": [_review("r1"), _review("r2", "THREE")],
        "averageRating": 4.0,
        "totalReviewCount": 9,
        "nextPageToken": "n2",
    })
    fake_http.add("GET", REVIEWS_URL, {
        "reviews": [_review("r3", "ONE")],
        "averageRating": 4.3,
        "totalReviewCount": 10,
    }, page_token="n2")

    result = google_reviews.fetch_all_reviews(LOCATION, "tok")

    assert result.source == ReviewSource.GOOGLE_BUSINESS
    assert not result.used_fallback
    assert [r.reviewId for r in result.reviews] == ["r1", "r2", "r3"]
    # Last page's aggregates win
    assert result.average_rating == 4.3
    assert result.total_review_count == 10
    assert fake_http.calls[0]["params"]["pageSize"] == 50
    assert fake_http.calls[0]["timeout"] == settings.HTTP_TIMEOUT_SECONDS


def test_fetch_all_reviews_empty_location(fake_http):
    fake_http.add("GET", REVIEWS_URL, {})
    result = google_reviews.fetch_all_reviews(LOCATION, "tok")
    assert result.reviews == []
    assert result.average_rating is None
    assert result.total_review_count is None


def test_fetch_all_reviews_non_2xx_is_provider_error(fake_http):
    fake_http.add("GET", REVIEWS_URL, {"error": {"message": "Permission denied"}}, status=403)
    with pytest.raises(ProviderError) as exc:
        google_reviews.fetch_all_reviews(LOCATION, "tok")
    assert "Permission denied" in exc.value.message


def test_fetch_all_reviews_malformed_body(fake_http):
    fake_http.add("GET", REVIEWS_URL, {"reviews": "nope"})
    with pytest.raises(ProviderError):
        google_reviews.fetch_all_reviews(LOCATION, "tok")


def test_fetch_all_reviews_review_without_id(fake_http):
    fake_http.add("GET", REVIEWS_URL, {"reviews": [_review("r1"), {"starRating": "FIVE", "comment": "hi"}]})
    with pytest.raises(ProviderError):
        google_reviews.fetch_all_reviews(LOCATION, "tok")


def test_fetch_all_reviews_rejected_token_requires_reauth(fake_http):
    fake_http.add("GET", REVIEWS_URL, {"error": {"code": 401, "message": "Invalid Credentials"}}, status=401)
    with pytest.raises(ReauthRequired):
        google_reviews.fetch_all_reviews(LOCATION, "tok")


def test_fetch_all_reviews_timeout(fake_http):
    fake_http.add_error("GET", REVIEWS_URL, requests.Timeout("timed out"))
    with pytest.raises(ProviderError):
        google_reviews.fetch_all_reviews(LOCATION, "tok")


def test_places_fetch_returns_reviews_and_aggregates(fake_http, places_key):
    fake_http.add("GET", places.PLACE_DETAILS_URL, {
        "status": "OK",
        "result": {
            "rating": 4.6,
            "user_ratings_total": 120,
            "reviews": [
                {"author_name": "Ayşe", "rating": 5, "text": "Harika", "time": 1700000000},
                {"author_name": "Mehmet", "rating": 2, "text": "Yavaş", "time": 1700000500},
            ],
        },
    })
    result = places.fetch_reviews_from_place_details("P1")

    assert result.used_fallback
    assert len(result.reviews) == 2
    assert result.average_rating == 4.6
    assert result.total_review_count == 120
    params = fake_http.calls[0]["params"]
    assert params["place_id"] == "P1"
    assert params["fields"] == "reviews,rating,user_ratings_total"
    assert params["key"] == "places-key"


def test_places_zero_results_is_empty_success(fake_http, places_key):
    fake_http.add("GET", places.PLACE_DETAILS_URL, {"status": "ZERO_RESULTS"})
    result = places.fetch_reviews_from_place_details("P1")
    assert result.reviews == []
    assert result.average_rating is None


def test_places_error_status_carries_message(fake_http, places_key):
    fake_http.add("GET", places.PLACE_DETAILS_URL, {"status": "REQUEST_DENIED", "error_message": "The provided API key is invalid."})
    with pytest.raises(ProviderError) as exc:
        places.fetch_reviews_from_place_details("P1")
    assert exc.value.message == "The provided API key is invalid."


def test_places_without_key_is_configuration_error(fake_http, monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_PLACES_API_KEY", None)
    with pytest.raises(ConfigurationError):
        places.fetch_reviews_from_place_details("P1")
    assert fake_http.calls == []


def test_place_details_for_onboarding(fake_http, places_key):
    fake_http.add("GET", places.PLACE_DETAILS_URL, {
        "status": "OK",
        "result": {
            "name": "Kahve Evi",
            "formatted_address": "Istiklal Cd. 1, Istanbul",
            "formatted_phone_number": "0212 000 00 00",
            "rating": 4.4,
            "user_ratings_total": 87,
            "types": ["cafe", "food"],
        },
    })
    details = places.fetch_place_details("P1")
    assert details["name"] == "Kahve Evi"
    assert details["category"] == "cafe"
    assert details["total_reviews"] == 87
    assert details["website"] is None


def test_post_reply_uses_bare_review_id_and_truncates(fake_http):
    fake_http.add("PUT", f"{REVIEWS_URL}/abc/reply", {"comment": "ok", "updateTime": "2025-05-01T10:00:00Z"})
    result = google_reviews.post_reply(LOCATION, "accounts/1/locations/11/reviews/abc", "x" * 5000, "tok")

    call = fake_http.calls[0]
    assert len(call["json"]["comment"]) == 4096
    assert call["headers"]["Authorization"] == "Bearer tok"
    assert result.review_id == "abc"
    assert result.replied_at == utc(2025, 5, 1, 10, 0)


def test_post_reply_without_update_time_uses_now(fake_http):
    fake_http.add("PUT", f"{REVIEWS_URL}/abc/reply", {})
    result = google_reviews.post_reply(LOCATION, "abc", "Thanks!", "tok")
    assert result.comment == "Thanks!"
    assert result.replied_at.tzinfo is not None


def test_post_reply_error_carries_provider_message(fake_http):
    fake_http.add("PUT", f"{REVIEWS_URL}/abc/reply", {"error": {"message": "Review not found"}}, status=404)
    with pytest.raises(ProviderError) as exc:
        google_reviews.post_reply(LOCATION, "abc", "Thanks!", "tok")
    assert "Review not found" in exc.value.message
    assert exc.value.status == 404


def test_post_reply_with_revoked_token_requires_reauth(fake_http):
    fake_http.add("PUT", f"{REVIEWS_URL}/abc/reply", {"error": {"code": 401, "status": "UNAUTHENTICATED"}}, status=401)
    with pytest.raises(ReauthRequired):
        google_reviews.post_reply(LOCATION, "abc", "Thanks!", "tok")
