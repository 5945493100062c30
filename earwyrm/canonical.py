"""Canonical lyric matching and backfill.

Duplicate saves of the same line for the same song are linked to one root
record through canonical_lyric_id, so popularity can be aggregated across
them.  Matching:

1. Only public records with a song title take part
2. Records are grouped by song_key(song_title); groups of one are skipped
3. Each group is walked oldest first (created_at, input order on ties)
4. An unlinked record is compared with every other record of its group,
   except later records that are still unlinked (they get their turn):
     exact normalized match  → score 2
     substring either way    → score 1
     otherwise               → no match
   Best score wins; ties go to the higher reaction_count.
5. The record is linked to the match's root (its canonical_lyric_id, or the
   match itself), so chains never grow past one hop.
6. The walk repeats until a pass adds no link, so records that only match
   something linked later in the walk still get linked.

Already-linked records are never touched, and neither are records that
some other record already points at (they are roots).  Re-running over the
same data yields no new links; new submissions can still link on a later
run.

resolve_canonical_links() is pure.  Persisting the result is apply_links(),
which isolates each write so one failure never blocks the rest of the batch.
"""

import time
from datetime import datetime, timezone

from earwyrm.config import MIN_GROUP_SIZE, SCORE_EXACT, SCORE_NONE, SCORE_SUBSTRING
from earwyrm.http_utils import progress_line
from earwyrm.normalize import normalize_lyric_text, song_key

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def match_score(a, b):
    """Score two *normalized* lyric texts: 2 exact, 1 substring, -1 none."""
    if a == b:
        return SCORE_EXACT
    if a in b or b in a:
        return SCORE_SUBSTRING
    return SCORE_NONE


def group_by_song(records):
    """Partition public, titled records by song_key(). Insertion-ordered."""
    groups = {}
    for rec in records:
        if not rec.is_public:
            continue
        key = song_key(rec.song_title)
        if key is None:
            continue
        groups.setdefault(key, []).append(rec)
    return groups


def _created_key(rec):
    # Missing timestamps sort first; naive ones are taken as UTC
    dt = rec.created_at
    if dt is None:
        return _EARLIEST
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _oldest_first(group):
    # sorted() is stable, so equal timestamps keep input order
    return sorted(group, key=_created_key)


def _root(rec, links):
    """Where a link to rec should point: its current pointer, or rec itself."""
    if rec.id in links:
        return links[rec.id]
    if rec.canonical_lyric_id is not None:
        return rec.canonical_lyric_id
    return rec.id


def _best_match(text, candidates, normalized):
    """Best-scoring candidate record for normalized text, or None."""
    best = None
    best_score = SCORE_NONE
    for other in candidates:
        score = match_score(text, normalized[other.id])
        if score <= 0:
            continue
        if score > best_score or (
            score == best_score and other.reaction_count > best.reaction_count
        ):
            best = other
            best_score = score
    return best


def _resolve_group(group, targets, links):
    """Link the unlinked records of one song group. Updates links in place."""
    ordered = _oldest_first(group)
    normalized = {r.id: normalize_lyric_text(r.content) for r in ordered}

    def linked(rec):
        return rec.canonical_lyric_id is not None or rec.id in links

    added = True
    while added:
        added = False
        for i, lyric in enumerate(ordered):
            if linked(lyric) or lyric.id in targets:
                continue
            candidates = [
                o for j, o in enumerate(ordered)
                if o.id != lyric.id and (j < i or linked(o))
            ]
            match = _best_match(normalized[lyric.id], candidates, normalized)
            if match is None:
                continue
            root = _root(match, links)
            links[lyric.id] = root
            targets.add(root)
            added = True


def resolve_canonical_links(records):
    """Propose canonical_lyric_id values for a batch of LyricRecords.

    Returns {lyric_id: canonical_id} for the records linked in this pass,
    in the order they were linked.  Records that already have a canonical
    id are left out.
    """
    records = list(records)
    # Anything already pointed at is a root, wherever the pointer comes from
    targets = {r.canonical_lyric_id for r in records
               if r.canonical_lyric_id is not None}
    links = {}
    for group in group_by_song(records).values():
        if len(group) < MIN_GROUP_SIZE:
            continue
        _resolve_group(group, targets, links)
    return links


def resolve_canonical_link(records, lyric_id):
    """Canonical id for one record, matched against its song group only.

    Meant for linking a new submission at creation time: records should be
    the song group fetched from the store, including the new record.
    Returns None when the record stays unlinked.
    """
    records = list(records)
    lyric = next((r for r in records if r.id == lyric_id), None)
    if lyric is None:
        return None
    key = song_key(lyric.song_title)
    if key is None:
        return None
    group = [r for r in records if song_key(r.song_title) == key]
    return resolve_canonical_links(group).get(lyric_id)


def apply_links(links, write, verbose=True):
    """Persist links one at a time via write(lyric_id, canonical_id).

    A failed write is reported with its record id and counted; processing
    continues with the next record.  Returns (updated, errors).
    """
    updated = 0
    errors = 0
    total = len(links)
    t_start = time.monotonic()

    for i, (lyric_id, canonical_id) in enumerate(links.items(), 1):
        try:
            write(lyric_id, canonical_id)
        except Exception as e:
            errors += 1
            if verbose:
                print(f"    ERROR on {lyric_id}: {e}")
            continue
        updated += 1
        if verbose:
            elapsed = time.monotonic() - t_start
            print(f"  {progress_line(i, total, elapsed)} "
                  f"Linked {lyric_id} → {canonical_id}")

    if verbose:
        elapsed = time.monotonic() - t_start
        print(f"\n  Done: {updated} linked ({errors} errors, {elapsed:.0f}s)")
    return updated, errors


def backfill(records, write, dry_run=False, verbose=True):
    """Resolve canonical links for a full corpus and write them back.

    Args:
        records: the complete public corpus as LyricRecords (partial song
            groups miss matches)
        write: callable(lyric_id, canonical_id) persisting one link
        dry_run: report proposed links without writing
        verbose: print progress

    Returns (links, updated, errors).
    """
    records = list(records)
    links = resolve_canonical_links(records)

    if verbose:
        print(f"  {len(records)} lyrics, {len(links)} new links")

    if dry_run:
        if verbose:
            by_id = {r.id: r for r in records}
            for lyric_id, canonical_id in links.items():
                title = by_id[lyric_id].song_title
                print(f"    would link {lyric_id} → {canonical_id} (song: \"{title}\")")
        return links, 0, 0

    if not links:
        return links, 0, 0

    updated, errors = apply_links(links, write, verbose=verbose)
    return links, updated, errors
