"""CLI with subcommands for earwyrm lyric maintenance."""

import argparse
import csv
import sys

from earwyrm import db
from earwyrm.canonical import backfill, resolve_canonical_link
from earwyrm.cluster import cluster_by_canonical, sort_by_size
from earwyrm.config import TEST_ARTIST, TEST_LYRICS, TEST_USER_IDS


def _remote_store():
    """SupabaseStore from the environment, or exit with a usage message."""
    from earwyrm.supabase import SupabaseStore
    try:
        return SupabaseStore()
    except ValueError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)


def cmd_pull(args):
    """Copy public lyrics from the hosted store into the local DB."""
    store = _remote_store()
    conn = db.get_connection()
    print("Fetching public lyrics from the hosted store...")
    records = store.fetch_backfill_candidates(verbose=True)
    for rec in records:
        db.upsert_lyric(conn, rec)
    conn.commit()
    db.mark_synced(conn, "last_pull")
    print(f"  Stored {len(records)} lyrics locally")
    conn.close()


def cmd_backfill(args):
    """Link duplicate lyrics to their canonical root."""
    if args.remote:
        store = _remote_store()
        print("Fetching public lyrics from the hosted store...")
        records = store.fetch_backfill_candidates(verbose=True)
        print("Resolving canonical links...")
        backfill(records, store.set_canonical_lyric_id, dry_run=args.dry_run)
        return

    conn = db.get_connection()
    records = db.fetch_backfill_candidates(conn)
    print("Resolving canonical links...")

    def write(lyric_id, canonical_id):
        if db.set_canonical_lyric_id(conn, lyric_id, canonical_id) == 0:
            raise LookupError(f"no lyric with id {lyric_id}")
        conn.commit()

    _, updated, _ = backfill(records, write, dry_run=args.dry_run)
    if updated and not args.dry_run:
        db.mark_synced(conn, "last_backfill")
    conn.close()


def cmd_link(args):
    """Link one lyric against its song group (creation-time path)."""
    conn = None
    if args.remote:
        store = _remote_store()
        get_lyric, fetch_song = store.get_lyric, store.lyrics_for_song
        write = store.set_canonical_lyric_id
    else:
        conn = db.get_connection()
        get_lyric = lambda lyric_id: db.get_lyric(conn, lyric_id)
        fetch_song = lambda title: db.lyrics_for_song(conn, title)

        def write(lyric_id, canonical_id):
            db.set_canonical_lyric_id(conn, lyric_id, canonical_id)
            conn.commit()

    lyric = get_lyric(args.lyric_id)
    if lyric is None:
        print(f"  No lyric with id {args.lyric_id}")
    elif lyric.canonical_lyric_id is not None:
        print(f"  Already linked → {lyric.canonical_lyric_id}")
    else:
        canonical_id = resolve_canonical_link(fetch_song(lyric.song_title), lyric.id)
        if canonical_id is None:
            print("  No match in song group")
        else:
            write(lyric.id, canonical_id)
            print(f"  Linked {lyric.id} → {canonical_id}")

    if conn is not None:
        conn.close()


def _print_clusters(clusters):
    for group in clusters:
        rep = group.representative
        print(f"  \"{rep.content}\"")
        print(f"      {rep.song_title or '?'} / {rep.artist_name or '?'} "
              f"· {group.total_reactions} reactions")
        if group.member_count > 1:
            print(f"      {group.member_count} people saved this")


def cmd_clusters(args):
    """Show lyrics for a song or artist, clustered by canonical root."""
    if args.remote:
        store = _remote_store()
        fetch_song, fetch_artist = store.lyrics_for_song, store.lyrics_for_artist
        conn = None
    else:
        conn = db.get_connection()
        fetch_song = lambda title: db.lyrics_for_song(conn, title)
        fetch_artist = lambda name: db.lyrics_for_artist(conn, name)

    records = fetch_song(args.song) if args.song else fetch_artist(args.artist)
    if not records:
        print("  No lyrics here yet")
    else:
        clusters = cluster_by_canonical(records)
        if args.sort == "size":
            clusters = sort_by_size(clusters)
        print(f"  {len(records)} lyrics in {len(clusters)} clusters:")
        _print_clusters(clusters)

    if conn is not None:
        conn.close()


def cmd_status(args):
    """Show local database statistics."""
    conn = db.get_connection()
    stats = db.db_stats(conn)
    print(f"  Lyrics:             {stats['lyrics']}")
    print(f"  Public:             {stats['public']}")
    print(f"  With song title:    {stats['titled']}")
    print(f"  Linked to a root:   {stats['linked']}")
    print(f"  Canonical roots:    {stats['roots']}")
    print(f"  Last pull:          {db.get_sync_state(conn, 'last_pull') or 'never'}")
    print(f"  Last backfill:      {db.get_sync_state(conn, 'last_backfill') or 'never'}")
    conn.close()


def cmd_export(args):
    """Export clusters of the local DB to CSV."""
    conn = db.get_connection()
    clusters = sort_by_size(cluster_by_canonical(db.all_public_lyrics(conn)))
    conn.close()
    if not clusters:
        print("No data to export. Run 'pull' or 'seed-test' first.")
        return

    fieldnames = ["canonical_id", "representative_id", "song_title",
                  "artist_name", "content", "member_count", "total_reactions"]

    def rows():
        for group in clusters:
            rep = group.representative
            yield {
                "canonical_id": group.key,
                "representative_id": rep.id,
                "song_title": rep.song_title,
                "artist_name": rep.artist_name,
                "content": rep.content,
                "member_count": group.member_count,
                "total_reactions": group.total_reactions,
            }

    out = args.output
    if out == "-":
        writer = csv.DictWriter(sys.stdout, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows())
    else:
        with open(out, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(rows())
        print(f"Exported {len(clusters)} clusters to {out}")


def cmd_seed_test(args):
    """Insert duplicate test lyrics to eyeball clustering."""
    if args.remote:
        store = _remote_store()
        removed = store.delete_by_artist(TEST_ARTIST)
    else:
        conn = db.get_connection()
        removed = db.delete_by_artist(conn, TEST_ARTIST)
    print(f"  Cleaned up {removed} previous test lyrics")

    for user_idx, content, song in TEST_LYRICS:
        fields = dict(
            content=content,
            song_title=song,
            artist_name=TEST_ARTIST,
            user_id=TEST_USER_IDS[user_idx],
            is_public=True,
        )
        try:
            if args.remote:
                lyric_id = store.insert_lyric(
                    **fields, is_current=False, theme="signature", tags=[],
                ).id
            else:
                lyric_id = db.insert_lyric(conn, **fields)
        except Exception as e:
            print(f"    ERROR inserting \"{content[:40]}\": {e}")
            continue
        print(f"  Inserted \"{content[:40]}...\" ({lyric_id})")

    if not args.remote:
        conn.commit()
        conn.close()
    print("Run 'backfill' to link the duplicates.")


def cmd_cleanup_test(args):
    """Delete the lyrics created by seed-test."""
    if args.remote:
        removed = _remote_store().delete_by_artist(TEST_ARTIST)
    else:
        conn = db.get_connection()
        removed = db.delete_by_artist(conn, TEST_ARTIST)
        conn.close()
    print(f"  Deleted {removed} test lyrics")


def main():
    parser = argparse.ArgumentParser(
        prog="earwyrm",
        description="earwyrm lyric maintenance: canonical links and clusters",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # pull
    p_pull = subparsers.add_parser("pull", help="Copy hosted lyrics into the local DB")
    p_pull.set_defaults(func=cmd_pull)

    # backfill
    p_backfill = subparsers.add_parser("backfill", help="Link duplicate lyrics")
    p_backfill.add_argument("--remote", action="store_true",
                            help="Run against the hosted store (default: local DB)")
    p_backfill.add_argument("--dry-run", action="store_true",
                            help="Show proposed links without writing them")
    p_backfill.set_defaults(func=cmd_backfill)

    # link
    p_link = subparsers.add_parser("link", help="Link one lyric against its song")
    p_link.add_argument("lyric_id", help="Lyric id")
    p_link.add_argument("--remote", action="store_true",
                        help="Use the hosted store (default: local DB)")
    p_link.set_defaults(func=cmd_link)

    # clusters
    p_clusters = subparsers.add_parser("clusters", help="Show clustered lyrics")
    target = p_clusters.add_mutually_exclusive_group(required=True)
    target.add_argument("--song", help="Song title")
    target.add_argument("--artist", help="Artist name")
    p_clusters.add_argument("--sort", choices=["size", "discovery"], default="size",
                            help="Cluster order (default: size)")
    p_clusters.add_argument("--remote", action="store_true",
                            help="Use the hosted store (default: local DB)")
    p_clusters.set_defaults(func=cmd_clusters)

    # status
    p_status = subparsers.add_parser("status", help="Show local DB statistics")
    p_status.set_defaults(func=cmd_status)

    # export
    p_export = subparsers.add_parser("export", help="Export clusters to CSV")
    p_export.add_argument("-o", "--output", default="-",
                          help="Output file (default: stdout)")
    p_export.set_defaults(func=cmd_export)

    # seed-test / cleanup-test
    p_seed = subparsers.add_parser("seed-test", help="Insert duplicate test lyrics")
    p_seed.add_argument("--remote", action="store_true",
                        help="Use the hosted store (default: local DB)")
    p_seed.set_defaults(func=cmd_seed_test)

    p_cleanup = subparsers.add_parser("cleanup-test", help="Delete seeded test lyrics")
    p_cleanup.add_argument("--remote", action="store_true",
                           help="Use the hosted store (default: local DB)")
    p_cleanup.set_defaults(func=cmd_cleanup_test)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)
