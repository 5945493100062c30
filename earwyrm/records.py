"""LyricRecord: the typed row both stores hand to the matching core.

Rows arrive as loose dicts (REST JSON) or sqlite3.Row objects; from_row()
coerces them once at the store boundary so canonical.py and cluster.py can
rely on plain attribute access and sane defaults.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone


@dataclass(frozen=True)
class LyricRecord:
    id: object                         # opaque (uuid string in both stores)
    content: str
    song_title: str = None
    artist_name: str = None
    reaction_count: int = 0
    canonical_lyric_id: object = None  # None = own root (or unmatched)
    is_public: bool = True
    created_at: datetime = None
    user_id: object = None

    @property
    def root_id(self):
        """Cluster key: the canonical pointer, or the record's own id."""
        if self.canonical_lyric_id is None:
            return self.id
        return self.canonical_lyric_id

    @classmethod
    def from_row(cls, row):
        """Build a record from a store row (dict or sqlite3.Row)."""
        data = dict(row)
        return cls(
            id=data["id"],
            content=data.get("content") or "",
            song_title=data.get("song_title"),
            artist_name=data.get("artist_name"),
            reaction_count=int(data.get("reaction_count") or 0),
            canonical_lyric_id=_pointer(data.get("canonical_lyric_id")),
            is_public=bool(data.get("is_public", True)),
            created_at=parse_timestamp(data.get("created_at")),
            user_id=data.get("user_id"),
        )

    def to_row(self):
        """Column dict for store writes (timestamp as ISO-8601)."""
        row = asdict(self)
        if self.created_at is not None:
            row["created_at"] = self.created_at.isoformat()
        return row


def _pointer(value):
    # Empty strings from loose JSON mean "no pointer"; 0 is a real id
    if value is None or value == "":
        return None
    return value


def parse_timestamp(value):
    """Parse an ISO-8601 timestamp into an aware datetime (UTC if naive)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
