"""
ReplyMate storage. A Store is bound to the session user: every read/write is filtered
by business ownership. as_elevated() returns a store that skips the ownership filter;
it is only used after ownership was verified through the caller-scoped store.
"""
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from .db import get_conn
from .errors import NotFoundError
from .review_models import (
    Business,
    Competitor,
    GoogleConnection,
    ReviewRecord,
    StoredReview,
    Template,
)

logger = logging.getLogger(__name__)

BUSINESS_COLUMNS = """id, user_id, place_id, name, address, phone, website, category, rating,
    total_reviews, last_sync_at, default_language, default_tone, custom_instructions, is_active"""

REVIEW_COLUMNS = """id, business_id, google_review_id, author_name, author_photo_url, rating, text,
    language, has_reply, reply_text, reply_author, replied_at, review_created_at, fetched_at"""

_REVIEW_INSERT = """INSERT INTO reviews
       (business_id, google_review_id, author_name, author_photo_url, rating, text, language,
        has_reply, reply_text, reply_author, replied_at, review_created_at, fetched_at)
       VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
       ON CONFLICT (business_id, google_review_id) DO UPDATE SET
         author_name = EXCLUDED.author_name,
         author_photo_url = EXCLUDED.author_photo_url,
         rating = EXCLUDED.rating,
         text = EXCLUDED.text,
         language = EXCLUDED.language,
         review_created_at = EXCLUDED.review_created_at,
         fetched_at = EXCLUDED.fetched_at,
"""

UPSERT_REVIEW_SQL = _REVIEW_INSERT + """         has_reply = EXCLUDED.has_reply,
         reply_text = EXCLUDED.reply_text,
         reply_author = EXCLUDED.reply_author,
         replied_at = EXCLUDED.replied_at"""

# Sources without reply data never clear a stored reply, even one mirrored mid-sync
UPSERT_REVIEW_KEEP_REPLY_SQL = _REVIEW_INSERT + """         has_reply = reviews.has_reply OR EXCLUDED.has_reply,
         reply_text = CASE WHEN EXCLUDED.has_reply THEN EXCLUDED.reply_text ELSE reviews.reply_text END,
         reply_author = CASE WHEN EXCLUDED.has_reply THEN EXCLUDED.reply_author ELSE reviews.reply_author END,
         replied_at = CASE WHEN EXCLUDED.has_reply THEN EXCLUDED.replied_at ELSE reviews.replied_at END"""

UPSERT_COMPETITOR_REVIEW_SQL = """INSERT INTO competitor_reviews
       (competitor_id, google_review_id, author_name, author_photo_url, rating, text, language,
        review_created_at, fetched_at)
       VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
       ON CONFLICT (competitor_id, google_review_id) DO UPDATE SET
         author_name = EXCLUDED.author_name,
         author_photo_url = EXCLUDED.author_photo_url,
         rating = EXCLUDED.rating,
         text = EXCLUDED.text,
         language = EXCLUDED.language,
         review_created_at = EXCLUDED.review_created_at,
         fetched_at = EXCLUDED.fetched_at"""


def _is_uuid(value) -> bool:
    """Ids are UUID columns; anything else cannot match a row."""
    try:
        uuid.UUID(str(value))
    except (TypeError, ValueError):
        return False
    return True


def _clean(row: Optional[dict]) -> Optional[dict]:
    """psycopg returns UUID/Decimal; models expect str/float."""
    if row is None:
        return None
    out = {}
    for k, v in row.items():
        if isinstance(v, uuid.UUID):
            v = str(v)
        elif isinstance(v, Decimal):
            v = float(v)
        out[k] = v
    return out


class Store:
    def __init__(self, user_id: str, connect=get_conn, elevated: bool = False):
        self.user_id = user_id
        self._connect = connect
        self.elevated = elevated

    def as_elevated(self) -> "Store":
        return Store(self.user_id, connect=self._connect, elevated=True)

    # ----- Businesses -----

    def get_business(self, business_id: str) -> Optional[Business]:
        if not _is_uuid(business_id):
            return None
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {BUSINESS_COLUMNS} FROM businesses WHERE id = %s AND user_id = %s",
                (business_id, self.user_id),
            ).fetchone()
        return Business(**_clean(row)) if row else None

    def find_business_by_place_id(self, place_id: str) -> Optional[Business]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {BUSINESS_COLUMNS} FROM businesses WHERE place_id = %s AND user_id = %s",
                (place_id, self.user_id),
            ).fetchone()
        return Business(**_clean(row)) if row else None

    def create_business(self, fields: dict) -> Business:
        with self._connect() as conn:
            row = conn.execute(
                f"""INSERT INTO businesses
                   (user_id, place_id, name, address, phone, website, category, rating, total_reviews, is_active)
                   VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, TRUE)
                   RETURNING {BUSINESS_COLUMNS}""",
                (
                    self.user_id,
                    fields["place_id"],
                    fields.get("name"),
                    fields.get("address"),
                    fields.get("phone"),
                    fields.get("website"),
                    fields.get("category"),
                    fields.get("rating"),
                    fields.get("total_reviews") or 0,
                ),
            ).fetchone()
            conn.commit()
        return Business(**_clean(row))

    def delete_business(self, business_id: str) -> None:
        """Elevated only: callers verify ownership with the scoped store first."""
        if not self.elevated:
            raise PermissionError("delete_business requires an elevated store")
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM businesses WHERE id = %s",
                (business_id,),
            )
            conn.commit()
        logger.info("Deleted business %s for user %s", business_id, self.user_id)

    def update_business_stats(
        self,
        business_id: str,
        rating: Optional[float],
        total_reviews: Optional[int],
        last_sync_at: datetime,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """UPDATE businesses
                   SET rating = %s, total_reviews = %s, last_sync_at = %s, updated_at = NOW()
                   WHERE id = %s AND user_id = %s""",
                (rating, total_reviews or 0, last_sync_at, business_id, self.user_id),
            )
            conn.commit()

    # ----- Google connection -----

    def get_google_connection(self) -> Optional[GoogleConnection]:
        with self._connect() as conn:
            row = conn.execute(
                """SELECT id, user_id, access_token, refresh_token, token_type, scope, expires_at
                   FROM google_connections WHERE user_id = %s""",
                (self.user_id,),
            ).fetchone()
        return GoogleConnection(**_clean(row)) if row else None

    def upsert_google_connection(
        self,
        access_token: str,
        refresh_token: Optional[str],
        token_type: Optional[str],
        scope: Optional[str],
        expires_at: datetime,
    ) -> GoogleConnection:
        """One connection per user. A missing refresh_token keeps the stored one."""
        with self._connect() as conn:
            row = conn.execute(
                """INSERT INTO google_connections
                   (user_id, access_token, refresh_token, token_type, scope, expires_at)
                   VALUES (%s, %s, %s, %s, %s, %s)
                   ON CONFLICT (user_id) DO UPDATE SET
                     access_token = EXCLUDED.access_token,
                     refresh_token = COALESCE(EXCLUDED.refresh_token, google_connections.refresh_token),
                     token_type = EXCLUDED.token_type,
                     scope = EXCLUDED.scope,
                     expires_at = EXCLUDED.expires_at,
                     updated_at = NOW()
                   RETURNING id, user_id, access_token, refresh_token, token_type, scope, expires_at""",
                (self.user_id, access_token, refresh_token, token_type, scope, expires_at),
            ).fetchone()
            conn.commit()
        return GoogleConnection(**_clean(row))

    def update_connection_tokens(
        self,
        connection_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: datetime,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """UPDATE google_connections
                   SET access_token = %s, refresh_token = %s, expires_at = %s, updated_at = NOW()
                   WHERE id = %s AND user_id = %s""",
                (access_token, refresh_token, expires_at, connection_id, self.user_id),
            )
            conn.commit()

    def delete_google_connection(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM google_connections WHERE user_id = %s", (self.user_id,))
            conn.commit()

    # ----- Reviews -----

    def _require_business(self, conn, business_id: str) -> None:
        if not _is_uuid(business_id):
            raise NotFoundError("Business not found or access denied")
        owned = conn.execute(
            "SELECT 1 FROM businesses WHERE id = %s AND user_id = %s",
            (business_id, self.user_id),
        ).fetchone()
        if not owned:
            raise NotFoundError("Business not found or access denied")

    def load_reviews_by_external_id(self, business_id: str) -> Dict[str, StoredReview]:
        with self._connect() as conn:
            self._require_business(conn, business_id)
            rows = conn.execute(
                f"SELECT {REVIEW_COLUMNS} FROM reviews WHERE business_id = %s",
                (business_id,),
            ).fetchall()
        out = {}
        for row in rows:
            review = StoredReview(**_clean(row))
            out[review.google_review_id] = review
        return out

    def upsert_reviews(
        self,
        business_id: str,
        records: List[ReviewRecord],
        fetched_at: datetime,
        preserve_replies: bool = False,
    ) -> None:
        """Write one batch in a single transaction. preserve_replies keeps stored replies."""
        if not records:
            return
        with self._connect() as conn:
            self._require_business(conn, business_id)
            with conn.cursor() as cur:
                cur.executemany(
                    UPSERT_REVIEW_KEEP_REPLY_SQL if preserve_replies else UPSERT_REVIEW_SQL,
                    [
                        (
                            business_id,
                            r.google_review_id,
                            r.author_name,
                            r.author_photo_url,
                            r.rating,
                            r.text,
                            r.language,
                            r.has_reply,
                            r.reply_text,
                            r.reply_author,
                            r.replied_at,
                            r.review_created_at,
                            fetched_at,
                        )
                        for r in records
                    ],
                )
            conn.commit()
        logger.debug("Upserted %d review(s) for business %s", len(records), business_id)

    def mirror_reply(
        self,
        business_id: str,
        google_review_id: str,
        reply_text: str,
        reply_author: str,
        replied_at: datetime,
    ) -> int:
        with self._connect() as conn:
            self._require_business(conn, business_id)
            cur = conn.execute(
                """UPDATE reviews
                   SET has_reply = TRUE, reply_text = %s, reply_author = %s, replied_at = %s
                   WHERE business_id = %s AND google_review_id = %s""",
                (reply_text, reply_author, replied_at, business_id, google_review_id),
            )
            conn.commit()
        return cur.rowcount

    def list_reviews(
        self,
        business_id: str,
        limit: int = 50,
        offset: int = 0,
        has_reply: Optional[bool] = None,
    ) -> Tuple[List[StoredReview], int]:
        where = "business_id = %s"
        params: list = [business_id]
        if has_reply is not None:
            where += " AND has_reply = %s"
            params.append(has_reply)
        with self._connect() as conn:
            self._require_business(conn, business_id)
            rows = conn.execute(
                f"""SELECT {REVIEW_COLUMNS} FROM reviews WHERE {where}
                    ORDER BY review_created_at DESC LIMIT %s OFFSET %s""",
                (*params, limit, offset),
            ).fetchall()
            total = conn.execute(
                f"SELECT COUNT(*) AS n FROM reviews WHERE {where}",
                tuple(params),
            ).fetchone()["n"]
        return [StoredReview(**_clean(r)) for r in rows], int(total or 0)

    def get_review(self, review_id: str) -> Optional[StoredReview]:
        if not _is_uuid(review_id):
            return None
        with self._connect() as conn:
            row = conn.execute(
                f"""SELECT {", ".join("r." + c.strip() for c in REVIEW_COLUMNS.split(","))}
                    FROM reviews r JOIN businesses b ON b.id = r.business_id
                    WHERE r.id = %s AND b.user_id = %s""",
                (review_id, self.user_id),
            ).fetchone()
        return StoredReview(**_clean(row)) if row else None

    # ----- Templates -----

    def find_template(self, business_id: str, tone: str, language: str) -> Optional[Template]:
        with self._connect() as conn:
            row = conn.execute(
                """SELECT t.instructions, t.example_response
                   FROM tone_templates t JOIN businesses b ON b.id = t.business_id
                   WHERE t.business_id = %s AND b.user_id = %s AND t.tone_type = %s AND t.language = %s
                   LIMIT 1""",
                (business_id, self.user_id, tone, language),
            ).fetchone()
        return Template(**row) if row else None

    # ----- Competitors -----

    def get_competitor(self, competitor_id: str) -> Optional[Competitor]:
        if not _is_uuid(competitor_id):
            return None
        with self._connect() as conn:
            row = conn.execute(
                """SELECT c.id, c.business_id, c.competitor_place_id, c.name, c.rating,
                          c.total_reviews, c.last_sync_at
                   FROM competitors c JOIN businesses b ON b.id = c.business_id
                   WHERE c.id = %s AND b.user_id = %s""",
                (competitor_id, self.user_id),
            ).fetchone()
        return Competitor(**_clean(row)) if row else None

    def load_competitor_reviews_by_external_id(self, competitor_id: str) -> Dict[str, str]:
        """google_review_id -> row id (competitor reviews carry no reply state)."""
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT cr.id, cr.google_review_id
                   FROM competitor_reviews cr
                   JOIN competitors c ON c.id = cr.competitor_id
                   JOIN businesses b ON b.id = c.business_id
                   WHERE cr.competitor_id = %s AND b.user_id = %s""",
                (competitor_id, self.user_id),
            ).fetchall()
        return {r["google_review_id"]: str(r["id"]) for r in rows}

    def upsert_competitor_reviews(
        self, competitor_id: str, records: List[ReviewRecord], fetched_at: datetime
    ) -> None:
        if not records:
            return
        if not self.get_competitor(competitor_id):
            raise NotFoundError("Competitor not found")
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.executemany(
                    UPSERT_COMPETITOR_REVIEW_SQL,
                    [
                        (
                            competitor_id,
                            r.google_review_id,
                            r.author_name,
                            r.author_photo_url,
                            r.rating,
                            r.text,
                            r.language,
                            r.review_created_at,
                            fetched_at,
                        )
                        for r in records
                    ],
                )
            conn.commit()

    def update_competitor_stats(
        self,
        competitor_id: str,
        rating: Optional[float],
        total_reviews: Optional[int],
        last_sync_at: datetime,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """UPDATE competitors
                   SET rating = %s, total_reviews = %s, last_sync_at = %s, updated_at = NOW()
                   WHERE id = %s AND business_id IN (SELECT id FROM businesses WHERE user_id = %s)""",
                (rating, total_reviews or 0, last_sync_at, competitor_id, self.user_id),
            )
            conn.commit()
