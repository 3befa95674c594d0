"""
Shared fixtures: in-memory store (same interface as app.store.Store), fake Google HTTP,
and a TestClient whose routes use the in-memory store. No network, no database.
"""
import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("DATABASE_URL", "")

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from app.auth import create_session_token, get_store_factory
from app.cache import clear_location_cache
from app.errors import NotFoundError
from app.main import app
from app.review_models import (
    Business,
    Competitor,
    GoogleConnection,
    ReviewRecord,
    StoredReview,
    Template,
)
from app.services import google_http
from app.services.reconciliation import REPLY_FIELDS

USER_ID = "user-1"


class MemoryDB:
    def __init__(self):
        self.businesses: Dict[str, Business] = {}
        self.connections: Dict[str, GoogleConnection] = {}
        self.reviews: Dict[Tuple[str, str], StoredReview] = {}
        self.competitors: Dict[str, Competitor] = {}
        self.competitor_reviews: Dict[Tuple[str, str], dict] = {}
        self.templates: List[dict] = []
        self.upsert_batches: List[int] = []


class InMemoryStore:
    def __init__(self, user_id: str, db: MemoryDB, elevated: bool = False):
        self.user_id = user_id
        self.db = db
        self.elevated = elevated

    def as_elevated(self):
        return InMemoryStore(self.user_id, self.db, elevated=True)

    # businesses

    def get_business(self, business_id):
        b = self.db.businesses.get(business_id)
        return b if b and b.user_id == self.user_id else None

    def find_business_by_place_id(self, place_id):
        for b in self.db.businesses.values():
            if b.user_id == self.user_id and b.place_id == place_id:
                return b
        return None

    def create_business(self, fields):
        b = Business(id=str(uuid.uuid4()), user_id=self.user_id, **fields)
        self.db.businesses[b.id] = b
        return b

    def delete_business(self, business_id):
        if not self.elevated:
            raise PermissionError("delete_business requires an elevated store")
        self.db.businesses.pop(business_id, None)
        for key in [k for k in self.db.reviews if k[0] == business_id]:
            del self.db.reviews[key]

    def update_business_stats(self, business_id, rating, total_reviews, last_sync_at):
        b = self.get_business(business_id)
        self.db.businesses[business_id] = b.model_copy(update={
            "rating": rating,
            "total_reviews": total_reviews or 0,
            "last_sync_at": last_sync_at,
        })

    # google connection

    def get_google_connection(self):
        return self.db.connections.get(self.user_id)

    def upsert_google_connection(self, access_token, refresh_token, token_type, scope, expires_at):
        current = self.db.connections.get(self.user_id)
        conn = GoogleConnection(
            id=current.id if current else f"conn-{self.user_id}",
            user_id=self.user_id,
            access_token=access_token,
            refresh_token=refresh_token or (current.refresh_token if current else None),
            token_type=token_type,
            scope=scope,
            expires_at=expires_at,
        )
        self.db.connections[self.user_id] = conn
        return conn

    def update_connection_tokens(self, connection_id, access_token, refresh_token, expires_at):
        current = self.db.connections.get(self.user_id)
        if current and current.id == connection_id:
            self.db.connections[self.user_id] = current.model_copy(update={
                "access_token": access_token,
                "refresh_token": refresh_token,
                "expires_at": expires_at,
            })

    def delete_google_connection(self):
        self.db.connections.pop(self.user_id, None)

    # reviews

    def _require_business(self, business_id):
        if not self.get_business(business_id):
            raise NotFoundError("Business not found or access denied")

    def load_reviews_by_external_id(self, business_id):
        self._require_business(business_id)
        return {gid: r for (bid, gid), r in self.db.reviews.items() if bid == business_id}

    def upsert_reviews(self, business_id, records: List[ReviewRecord], fetched_at, preserve_replies=False):
        if not records:
            return
        self._require_business(business_id)
        for r in records:
            key = (business_id, r.google_review_id)
            current = self.db.reviews.get(key)
            if preserve_replies and current and current.has_reply and not r.has_reply:
                r = r.model_copy(update={f: getattr(current, f) for f in REPLY_FIELDS})
            self.db.reviews[key] = StoredReview(
                **r.model_dump(),
                id=current.id if current else str(uuid.uuid4()),
                business_id=business_id,
                fetched_at=fetched_at,
            )
        self.db.upsert_batches.append(len(records))

    def mirror_reply(self, business_id, google_review_id, reply_text, reply_author, replied_at):
        self._require_business(business_id)
        key = (business_id, google_review_id)
        current = self.db.reviews.get(key)
        if current is None:
            return 0
        self.db.reviews[key] = current.model_copy(update={
            "has_reply": True,
            "reply_text": reply_text,
            "reply_author": reply_author,
            "replied_at": replied_at,
        })
        return 1

    def list_reviews(self, business_id, limit=50, offset=0, has_reply=None):
        self._require_business(business_id)
        rows = [r for (bid, _), r in self.db.reviews.items() if bid == business_id]
        if has_reply is not None:
            rows = [r for r in rows if r.has_reply == has_reply]
        rows.sort(key=lambda r: r.review_created_at, reverse=True)
        return rows[offset:offset + limit], len(rows)

    def get_review(self, review_id):
        for r in self.db.reviews.values():
            if r.id == review_id and self.get_business(r.business_id):
                return r
        return None

    def find_template(self, business_id, tone, language):
        for t in self.db.templates:
            if (t["business_id"], t["tone_type"], t["language"]) == (business_id, tone, language):
                return Template(instructions=t.get("instructions"), example_response=t.get("example_response"))
        return None

    # competitors

    def get_competitor(self, competitor_id):
        c = self.db.competitors.get(competitor_id)
        return c if c and self.get_business(c.business_id) else None

    def load_competitor_reviews_by_external_id(self, competitor_id):
        return {gid: row["id"] for (cid, gid), row in self.db.competitor_reviews.items() if cid == competitor_id}

    def upsert_competitor_reviews(self, competitor_id, records, fetched_at):
        if not records:
            return
        if not self.get_competitor(competitor_id):
            raise NotFoundError("Competitor not found")
        for r in records:
            key = (competitor_id, r.google_review_id)
            current = self.db.competitor_reviews.get(key)
            row = r.model_dump()
            row.update(id=current["id"] if current else str(uuid.uuid4()), fetched_at=fetched_at)
            self.db.competitor_reviews[key] = row

    def update_competitor_stats(self, competitor_id, rating, total_reviews, last_sync_at):
        c = self.db.competitors[competitor_id]
        self.db.competitors[competitor_id] = c.model_copy(update={
            "rating": rating,
            "total_reviews": total_reviews or 0,
            "last_sync_at": last_sync_at,
        })


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeHTTP:
    """Stands in for requests.request; routes by (method, url, pageToken)."""

    def __init__(self):
        self.routes: Dict[tuple, object] = {}
        self.calls: List[dict] = []

    def add(self, method: str, url: str, payload=None, status: int = 200, page_token: Optional[str] = None):
        self.routes[(method, url, page_token)] = FakeResponse(status, payload)

    def add_error(self, method: str, url: str, exc: Exception, page_token: Optional[str] = None):
        self.routes[(method, url, page_token)] = exc

    def urls(self):
        return [c["url"] for c in self.calls]

    def __call__(self, method, url, headers=None, params=None, json=None, timeout=None, **kwargs):
        self.calls.append({
            "method": method,
            "url": url,
            "headers": headers or {},
            "params": params or {},
            "json": json,
            "timeout": timeout,
        })
        token = (params or {}).get("pageToken")
        route = self.routes.get((method, url, token))
        if route is None:
            raise AssertionError(f"Unexpected request: {method} {url} pageToken={token}")
        if isinstance(route, Exception):
            raise route
        return route


@pytest.fixture(autouse=True)
def _empty_location_cache():
    clear_location_cache()
    yield
    clear_location_cache()


@pytest.fixture
def db():
    return MemoryDB()


@pytest.fixture
def store(db):
    return InMemoryStore(USER_ID, db)


@pytest.fixture
def business(db):
    b = Business(id="biz-1", user_id=USER_ID, place_id="P1", name="Kahve Evi", total_reviews=0)
    db.businesses[b.id] = b
    return b


@pytest.fixture
def connection(db):
    conn = GoogleConnection(
        id="conn-1",
        user_id=USER_ID,
        access_token="valid-token",
        refresh_token="refresh-1",
        expires_at=None,
    )
    db.connections[USER_ID] = conn
    return conn


@pytest.fixture
def fake_http(monkeypatch):
    fake = FakeHTTP()
    monkeypatch.setattr(google_http.requests, "request", fake)
    return fake


@pytest.fixture
def client(db):
    app.dependency_overrides[get_store_factory] = lambda: (lambda user_id: InMemoryStore(user_id, db))
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_session_token(USER_ID)}"}


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
