"""Hosted lyric store over the Supabase REST (PostgREST) gateway.

Needs SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY; the service-role key
bypasses row-level security, which the backfill needs to update other
users' lyrics.

Filters use PostgREST query syntax (``column=op.value``).  Reads are
coerced into LyricRecords here so nothing downstream sees raw JSON.
"""

import os

from earwyrm.config import (
    FETCH_BATCH_SIZE,
    LYRIC_COLUMNS,
    LYRICS_TABLE,
    REST_PATH,
    REST_RATE_LIMIT,
    REST_USER_AGENT,
    SUPABASE_KEY_ENV,
    SUPABASE_URL_ENV,
)
from earwyrm.http_utils import api_request_with_retry, create_session
from earwyrm.normalize import song_key
from earwyrm.records import LyricRecord

_SELECT = ",".join(LYRIC_COLUMNS)


def _escape_like(value):
    """Escape LIKE wildcards in a value used inside an ilike pattern."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SupabaseStore:
    """Read/write access to the hosted ``lyrics`` table."""

    def __init__(self, url=None, key=None, session=None, rate_limit=REST_RATE_LIMIT):
        url = url or os.environ.get(SUPABASE_URL_ENV)
        key = key or os.environ.get(SUPABASE_KEY_ENV)
        if not url or not key:
            raise ValueError(f"Set {SUPABASE_URL_ENV} and {SUPABASE_KEY_ENV} env vars")
        self.base_url = f"{url.rstrip('/')}{REST_PATH}/{LYRICS_TABLE}"
        self.session = session or create_session(REST_USER_AGENT, api_key=key)
        self.rate_limit = rate_limit

    def _request(self, method, params=None, json=None, headers=None):
        return api_request_with_retry(
            self.session, method, self.base_url,
            params=params, json=json, headers=headers,
            rate_limit=self.rate_limit,
        )

    def _select(self, filters, order="created_at.asc,id.asc", limit=None, offset=None):
        params = {"select": _SELECT, **filters, "order": order}
        if limit is not None:
            params["limit"] = str(limit)
        if offset is not None:
            params["offset"] = str(offset)
        rows = self._request("GET", params=params) or []
        return [LyricRecord.from_row(r) for r in rows]

    # ── Reads ──────────────────────────────────────────────────────────

    def fetch_backfill_candidates(self, batch_size=FETCH_BATCH_SIZE, verbose=False):
        """All public lyrics with a song title, oldest first.

        Pages through the table until a short or empty page; the matcher
        needs complete song groups.
        """
        records = []
        offset = 0
        while True:
            page = self._select(
                {"is_public": "eq.true", "song_title": "not.is.null"},
                limit=batch_size, offset=offset,
            )
            records.extend(page)
            if verbose:
                print(f"    fetched {len(records)} lyrics")
            if len(page) < batch_size:
                break
            offset += batch_size
        return records

    def lyrics_for_song(self, song_title):
        """Public lyrics for a song title (trimmed, case-insensitive).

        Stored titles may carry stray whitespace, so the query is a
        wildcard ilike and exact key equality is checked here.
        """
        key = song_key(song_title)
        if key is None:
            return []
        rows = self._select({
            "is_public": "eq.true",
            "song_title": f"ilike.*{_escape_like(key)}*",
        })
        return [r for r in rows if song_key(r.song_title) == key]

    def lyrics_for_artist(self, artist_name):
        """Public lyrics for an artist (trimmed, case-insensitive), newest first."""
        key = (artist_name or "").strip().lower()
        rows = self._select(
            {"is_public": "eq.true", "artist_name": f"ilike.*{_escape_like(key)}*"},
            order="created_at.desc,id.desc",
        )
        return [r for r in rows if (r.artist_name or "").strip().lower() == key]

    def get_lyric(self, lyric_id):
        rows = self._select({"id": f"eq.{lyric_id}"}, limit=1)
        return rows[0] if rows else None

    # ── Writes ─────────────────────────────────────────────────────────

    def set_canonical_lyric_id(self, lyric_id, canonical_id):
        """Single-field PATCH of canonical_lyric_id; safe to repeat."""
        self._request(
            "PATCH",
            params={"id": f"eq.{lyric_id}"},
            json={"canonical_lyric_id": canonical_id},
            headers={"Prefer": "return=minimal"},
        )

    def insert_lyric(self, **fields):
        """Insert one lyric row and return it as a LyricRecord."""
        rows = self._request(
            "POST",
            json=fields,
            headers={"Prefer": "return=representation"},
        )
        return LyricRecord.from_row(rows[0])

    def delete_by_artist(self, artist_name):
        """Delete every lyric credited to artist_name. Returns rows deleted."""
        rows = self._request(
            "DELETE",
            params={"artist_name": f"eq.{artist_name}"},
            headers={"Prefer": "return=representation"},
        )
        return len(rows or [])
