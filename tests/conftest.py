"""Shared fixtures for earwyrm tests."""

import json
from datetime import datetime, timedelta, timezone

import pytest
import requests

from earwyrm import db
from earwyrm.records import LyricRecord

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def conn():
    """Fresh in-memory database with schema applied."""
    c = db.get_connection(db_path=":memory:")
    yield c
    c.close()


def lyric(id, content, *, song="Song X", minute=0, reactions=0,
          canonical=None, public=True, artist="Artist"):
    """Build a LyricRecord created `minute` minutes after T0."""
    return LyricRecord(
        id=id,
        content=content,
        song_title=song,
        artist_name=artist,
        reaction_count=reactions,
        canonical_lyric_id=canonical,
        is_public=public,
        created_at=T0 + timedelta(minutes=minute),
    )


def make_lyric(conn, *, lyric_id, content, song="Song X", artist="Artist",
               minute=0, reactions=0, canonical=None, public=True):
    """Insert a minimal lyric into the test DB and return its id."""
    return db.insert_lyric(
        conn,
        lyric_id=lyric_id,
        content=content,
        song_title=song,
        artist_name=artist,
        reaction_count=reactions,
        canonical_lyric_id=canonical,
        is_public=public,
        created_at=(T0 + timedelta(minutes=minute)).isoformat(),
    )


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code=200, body=None, headers=None):
        self.status_code = status_code
        self.headers = headers or {}
        self.content = b"" if body is None else json.dumps(body).encode()
        self._body = body

    def json(self):
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    """Records requests and replays queued responses in order."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, params=None, json=None, headers=None):
        self.calls.append({"method": method, "url": url, "params": params,
                           "json": json, "headers": headers})
        return self.responses.pop(0)
