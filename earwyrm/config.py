"""Constants, thresholds, and API settings."""

import os

# ── Paths ──────────────────────────────────────────────────────────────
DB_DIR = os.path.expanduser("~/.earwyrm")
DB_PATH = os.path.join(DB_DIR, "earwyrm.db")

# ── Hosted store (Supabase / PostgREST) ───────────────────────────────
# Credentials are read from the environment when a store is created.
SUPABASE_URL_ENV = "SUPABASE_URL"
SUPABASE_KEY_ENV = "SUPABASE_SERVICE_ROLE_KEY"
REST_PATH = "/rest/v1"
LYRICS_TABLE = "lyrics"
REST_USER_AGENT = "EarwyrmMaintenance/1.0 (canonical lyric backfill)"
REST_RATE_LIMIT = 0.0   # seconds between requests
FETCH_BATCH_SIZE = 1000  # rows per page when paginating the corpus

LYRIC_COLUMNS = (
    "id",
    "user_id",
    "content",
    "song_title",
    "artist_name",
    "reaction_count",
    "canonical_lyric_id",
    "is_public",
    "created_at",
)

# ── Matching ───────────────────────────────────────────────────────────
SCORE_EXACT = 2       # normalized texts are equal
SCORE_SUBSTRING = 1   # one normalized text contains the other
SCORE_NONE = -1
MIN_GROUP_SIZE = 2    # a song group needs someone to match against

# ── Test fixture (seed-test / cleanup-test) ────────────────────────────
# Four saves of one line and two of another should render as clusters of
# 4 and 2; the second song feeds the "more from this artist" listing.
TEST_ARTIST = "Test Artist Alpha"
TEST_USER_IDS = [
    "11111111-1111-1111-1111-111111111111",
    "22222222-2222-2222-2222-222222222222",
    "33333333-3333-3333-3333-333333333333",
    "44444444-4444-4444-4444-444444444444",
    "55555555-5555-5555-5555-555555555555",
    "66666666-6666-6666-6666-666666666666",
]
TEST_LYRICS = [
    (0, "We're just two lost souls swimming in a fish bowl", "Test Song Alpha"),
    (1, "We're just two lost souls swimming in a fish bowl", "Test Song Alpha"),
    (2, "We’re just two lost souls swimming in a fish bowl", "Test Song Alpha"),
    (3, "we're just two lost souls  swimming in a fish bowl", "Test Song Alpha"),
    (4, "How I wish you were here", "Test Song Alpha"),
    (5, "How I wish, how I wish you were here", "Test Song Alpha"),
    (0, "All in all it was just a brick in the wall", "Test Song Beta"),
]
