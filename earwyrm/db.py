"""SQLite schema, connection, and all local lyric store operations.

The local DB mirrors the hosted ``lyrics`` table closely enough to run the
backfill and clustering offline (pull first, or seed the test fixture).
Reads return LyricRecords; writes take plain column values.
"""

import os
import sqlite3
import uuid
from datetime import datetime, timezone

from earwyrm.config import DB_PATH
from earwyrm.normalize import song_key
from earwyrm.records import LyricRecord

SCHEMA = """
CREATE TABLE IF NOT EXISTS lyrics (
    id                  TEXT PRIMARY KEY,
    user_id             TEXT,
    content             TEXT NOT NULL,
    song_title          TEXT,
    artist_name         TEXT,
    reaction_count      INTEGER DEFAULT 0,
    canonical_lyric_id  TEXT,
    is_public           INTEGER DEFAULT 1,
    created_at          TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_lyrics_song ON lyrics(lower(trim(song_title)));
CREATE INDEX IF NOT EXISTS idx_lyrics_canonical ON lyrics(canonical_lyric_id);

CREATE TABLE IF NOT EXISTS sync_state (
    key   TEXT PRIMARY KEY,
    value TEXT
);
"""


def get_connection(db_path=None):
    """Get a SQLite connection, creating the DB and schema if needed."""
    path = db_path or DB_PATH
    if path != ":memory:":
        os.makedirs(os.path.dirname(path), exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.executescript(SCHEMA)
    return conn


def _now():
    return datetime.now(timezone.utc).isoformat()


# ── Sync state ─────────────────────────────────────────────────────────

def get_sync_state(conn, key):
    row = conn.execute("SELECT value FROM sync_state WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else None


def set_sync_state(conn, key, value):
    conn.execute(
        "INSERT INTO sync_state (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (key, value),
    )
    conn.commit()


def mark_synced(conn, key):
    """Record the current UTC time under key (e.g. "last_pull")."""
    set_sync_state(conn, key, _now())


# ── Writes ─────────────────────────────────────────────────────────────

def insert_lyric(conn, *, content, song_title=None, artist_name=None,
                 user_id=None, reaction_count=0, canonical_lyric_id=None,
                 is_public=True, created_at=None, lyric_id=None):
    """Insert a lyric and return its id (uuid4 unless given)."""
    lyric_id = lyric_id or str(uuid.uuid4())
    conn.execute(
        """INSERT INTO lyrics
           (id, user_id, content, song_title, artist_name, reaction_count,
            canonical_lyric_id, is_public, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (lyric_id, user_id, content, song_title, artist_name, reaction_count,
         canonical_lyric_id, int(is_public), created_at or _now()),
    )
    return lyric_id


def upsert_lyric(conn, record):
    """Insert or replace a LyricRecord (used when pulling from the hosted store)."""
    row = record.to_row()
    conn.execute(
        """INSERT INTO lyrics
           (id, user_id, content, song_title, artist_name, reaction_count,
            canonical_lyric_id, is_public, created_at)
           VALUES (:id, :user_id, :content, :song_title, :artist_name,
                   :reaction_count, :canonical_lyric_id, :is_public, :created_at)
           ON CONFLICT(id) DO UPDATE SET
               user_id = excluded.user_id,
               content = excluded.content,
               song_title = excluded.song_title,
               artist_name = excluded.artist_name,
               reaction_count = excluded.reaction_count,
               canonical_lyric_id = excluded.canonical_lyric_id,
               is_public = excluded.is_public,
               created_at = excluded.created_at""",
        {**row, "is_public": int(row["is_public"]),
         "created_at": row["created_at"] or _now()},
    )


def set_canonical_lyric_id(conn, lyric_id, canonical_id):
    """Single-field update keyed by id. Returns the number of rows changed."""
    cur = conn.execute(
        "UPDATE lyrics SET canonical_lyric_id = ? WHERE id = ?",
        (canonical_id, lyric_id),
    )
    return cur.rowcount


def delete_by_artist(conn, artist_name):
    """Delete every lyric credited to artist_name. Returns rows deleted."""
    cur = conn.execute("DELETE FROM lyrics WHERE artist_name = ?", (artist_name,))
    conn.commit()
    return cur.rowcount


# ── Reads ──────────────────────────────────────────────────────────────

def _records(rows):
    return [LyricRecord.from_row(r) for r in rows]


def get_lyric(conn, lyric_id):
    row = conn.execute("SELECT * FROM lyrics WHERE id = ?", (lyric_id,)).fetchone()
    return LyricRecord.from_row(row) if row else None


def fetch_backfill_candidates(conn):
    """All public lyrics with a song title, oldest first."""
    return _records(conn.execute(
        """SELECT * FROM lyrics
           WHERE is_public = 1 AND song_title IS NOT NULL
           ORDER BY created_at, rowid"""
    ).fetchall())


def lyrics_for_song(conn, song_title):
    """Public lyrics whose title matches song_title (trimmed, case-insensitive)."""
    key = song_key(song_title)
    if key is None:
        return []
    return _records(conn.execute(
        """SELECT * FROM lyrics
           WHERE is_public = 1 AND lower(trim(song_title)) = ?
           ORDER BY created_at, rowid""",
        (key,),
    ).fetchall())


def lyrics_for_artist(conn, artist_name):
    """Public lyrics by an artist (trimmed, case-insensitive), newest first."""
    key = (artist_name or "").strip().lower()
    return _records(conn.execute(
        """SELECT * FROM lyrics
           WHERE is_public = 1 AND lower(trim(artist_name)) = ?
           ORDER BY created_at DESC, rowid DESC""",
        (key,),
    ).fetchall())


def all_public_lyrics(conn):
    return _records(conn.execute(
        "SELECT * FROM lyrics WHERE is_public = 1 ORDER BY created_at, rowid"
    ).fetchall())


# ── Stats ──────────────────────────────────────────────────────────────

def db_stats(conn):
    stats = {}
    queries = {
        "lyrics": "SELECT COUNT(*) AS n FROM lyrics",
        "public": "SELECT COUNT(*) AS n FROM lyrics WHERE is_public = 1",
        "titled": "SELECT COUNT(*) AS n FROM lyrics WHERE song_title IS NOT NULL",
        "linked": "SELECT COUNT(*) AS n FROM lyrics WHERE canonical_lyric_id IS NOT NULL",
        "roots": """SELECT COUNT(DISTINCT canonical_lyric_id) AS n FROM lyrics
                    WHERE canonical_lyric_id IS NOT NULL""",
    }
    for name, sql in queries.items():
        stats[name] = conn.execute(sql).fetchone()["n"]
    return stats
