"""
ReplyMate database schema. user_id is the auth provider's user id (TEXT).
Reversible migration: see REVIEW_SCHEMA_DOWN at bottom.
"""

# Up migration: creates all ReplyMate tables
REVIEW_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS businesses (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id TEXT NOT NULL,
    place_id VARCHAR(255) NOT NULL,
    name VARCHAR(500),
    address TEXT,
    phone VARCHAR(100),
    website TEXT,
    category VARCHAR(200),
    rating NUMERIC(2, 1) CHECK (rating IS NULL OR rating BETWEEN 0 AND 5),
    total_reviews INTEGER NOT NULL DEFAULT 0 CHECK (total_reviews >= 0),
    last_sync_at TIMESTAMP WITH TIME ZONE,
    default_language VARCHAR(50),
    default_tone VARCHAR(50),
    custom_instructions TEXT,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_businesses_user_place ON businesses(user_id, place_id);

-- One Google OAuth credential per user
CREATE TABLE IF NOT EXISTS google_connections (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id TEXT NOT NULL,
    access_token TEXT NOT NULL,
    refresh_token TEXT,
    token_type VARCHAR(50),
    scope TEXT,
    expires_at TIMESTAMP WITH TIME ZONE,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_google_connections_user ON google_connections(user_id);

-- Cached copy of Google reviews
CREATE TABLE IF NOT EXISTS reviews (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    business_id UUID NOT NULL REFERENCES businesses(id) ON DELETE CASCADE,
    google_review_id VARCHAR(500) NOT NULL,
    author_name VARCHAR(500),
    author_photo_url TEXT,
    rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
    text TEXT,
    language VARCHAR(20),
    has_reply BOOLEAN NOT NULL DEFAULT FALSE,
    reply_text TEXT,
    reply_author VARCHAR(200),
    replied_at TIMESTAMP WITH TIME ZONE,
    review_created_at TIMESTAMP WITH TIME ZONE,
    fetched_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_reviews_business_google_id ON reviews(business_id, google_review_id);
CREATE INDEX IF NOT EXISTS idx_reviews_created ON reviews(business_id, review_created_at DESC);
CREATE INDEX IF NOT EXISTS idx_reviews_no_reply ON reviews(business_id, has_reply) WHERE has_reply = FALSE;

CREATE TABLE IF NOT EXISTS competitors (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    business_id UUID NOT NULL REFERENCES businesses(id) ON DELETE CASCADE,
    competitor_place_id VARCHAR(255) NOT NULL,
    name VARCHAR(500),
    rating NUMERIC(2, 1),
    total_reviews INTEGER NOT NULL DEFAULT 0,
    last_sync_at TIMESTAMP WITH TIME ZONE,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_competitors_business_place ON competitors(business_id, competitor_place_id);

CREATE TABLE IF NOT EXISTS competitor_reviews (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    competitor_id UUID NOT NULL REFERENCES competitors(id) ON DELETE CASCADE,
    google_review_id VARCHAR(500) NOT NULL,
    author_name VARCHAR(500),
    author_photo_url TEXT,
    rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
    text TEXT,
    language VARCHAR(20),
    review_created_at TIMESTAMP WITH TIME ZONE,
    fetched_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_competitor_reviews_google_id ON competitor_reviews(competitor_id, google_review_id);

-- Per-business tone templates (managed by the dashboard)
CREATE TABLE IF NOT EXISTS tone_templates (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    business_id UUID NOT NULL REFERENCES businesses(id) ON DELETE CASCADE,
    name VARCHAR(200),
    tone_type VARCHAR(50) NOT NULL,
    language VARCHAR(50) NOT NULL,
    instructions TEXT,
    example_response TEXT,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_tone_templates_lookup ON tone_templates(business_id, tone_type, language);
"""

# Down migration (reversible), run manually if needed
REVIEW_SCHEMA_DOWN = """
DROP TABLE IF EXISTS tone_templates;
DROP TABLE IF EXISTS competitor_reviews;
DROP TABLE IF EXISTS competitors;
DROP TABLE IF EXISTS reviews;
DROP TABLE IF EXISTS google_connections;
DROP TABLE IF EXISTS businesses;
"""


def split_schema_statements(sql: str):
    """Split a schema script on ';' (no function bodies in this schema)."""
    return [s for s in sql.split(";") if s.strip()]


def run_review_schema(get_conn):
    """Run review schema SQL statement by statement."""
    statements = split_schema_statements(REVIEW_SCHEMA_SQL)
    for stmt in statements:
        stmt = stmt.strip()
        if not stmt:
            continue
        try:
            with get_conn() as conn:
                conn.execute(stmt)
                conn.commit()
        except Exception as e:
            # Idempotent: "already exists" is fine
            if "already exists" not in str(e).lower():
                raise
