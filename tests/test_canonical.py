"""Tests for canonical lyric matching and the backfill write loop."""

from dataclasses import replace
from datetime import datetime

from earwyrm.canonical import (
    apply_links,
    backfill,
    group_by_song,
    match_score,
    resolve_canonical_link,
    resolve_canonical_links,
)
from tests.conftest import lyric


def _apply(records, links):
    """Write links back into the records, like a store round-trip would."""
    out = []
    for r in records:
        if r.id in links:
            r = replace(r, canonical_lyric_id=links[r.id])
        out.append(r)
    return out


class TestMatchScore:
    """Tests for match_score() on normalized strings."""

    def test_exact(self):
        assert match_score("hello world", "hello world") == 2

    def test_substring_either_direction(self):
        assert match_score("hello world", "hello world, my friend") == 1
        assert match_score("hello world, my friend", "hello world") == 1

    def test_no_match(self):
        assert match_score("hello world", "goodbye moon") == -1


class TestGroupBySong:
    """Tests for group_by_song() filtering and keys."""

    def test_groups_case_insensitive_trimmed(self):
        records = [
            lyric("a", "x", song="Song X"),
            lyric("b", "x", song="  song x "),
        ]
        groups = group_by_song(records)
        assert list(groups) == ["song x"]
        assert [r.id for r in groups["song x"]] == ["a", "b"]

    def test_private_and_untitled_excluded(self):
        records = [
            lyric("a", "x", public=False),
            lyric("b", "x", song=None),
            lyric("c", "x", song="   "),
        ]
        assert group_by_song(records) == {}


class TestResolveCanonicalLinks:
    """Tests for resolve_canonical_links()."""

    def test_end_to_end_scenario(self):
        records = [
            lyric(1, "we are the champions", song="X", minute=0, reactions=10),
            lyric(2, "We Are The Champions", song="X", minute=1, reactions=2),
            lyric(3, "we are the champions", song="Y", minute=2, reactions=0),
        ]
        assert resolve_canonical_links(records) == {2: 1}

    def test_no_cross_song_matching(self):
        records = [
            lyric("a", "same words", song="Song A"),
            lyric("b", "same words", song="Song B", minute=1),
        ]
        assert resolve_canonical_links(records) == {}

    def test_duplicates_point_at_existing_root(self):
        """B and C both link straight to A, never to each other."""
        records = [
            lyric("a", "Hold me closer", minute=0),
            lyric("b", "hold me closer", minute=1, reactions=5),
            lyric("c", "Hold  me closer", minute=2, reactions=1),
        ]
        links = resolve_canonical_links(records)
        assert links == {"b": "a", "c": "a"}

    def test_existing_pointer_collapses_to_root(self):
        """Matching a linked record uses its root, not the record itself."""
        records = [
            lyric("root", "tiny dancer", minute=0),
            lyric("dup", "tiny dancer", minute=1, reactions=9, canonical="root"),
            lyric("new", "Tiny Dancer", minute=2),
        ]
        assert resolve_canonical_links(records) == {"new": "root"}

    def test_exact_beats_substring(self):
        records = [
            lyric("d", "hello world", minute=0),
            lyric("e", "hello world, my friend", minute=1, reactions=50),
            lyric("f", "Hello World", minute=2),
        ]
        links = resolve_canonical_links(records)
        assert links["e"] == "d"
        assert links["f"] == "d"

    def test_substring_links(self):
        records = [
            lyric("d", "hello world", minute=0),
            lyric("e", "hello world, my friend", minute=1),
        ]
        assert resolve_canonical_links(records) == {"e": "d"}

    def test_tie_prefers_more_reactions(self):
        """Equal scores go to the candidate with more reactions."""
        records = [
            lyric("low", "first half", minute=0, reactions=1),
            lyric("high", "second half", minute=1, reactions=7),
            lyric("new", "first half and second half", minute=2),
        ]
        links = resolve_canonical_links(records)
        assert links["new"] == "high"
        # "first half" then matches the now-linked new record
        assert links == {"new": "high", "low": "high"}

    def test_tie_keeps_first_on_equal_reactions(self):
        records = [
            lyric("p", "first half", minute=0, reactions=3),
            lyric("q", "second half", minute=1, reactions=3),
            lyric("new", "first half and second half", minute=2),
        ]
        links = resolve_canonical_links(records)
        assert links == {"new": "p", "q": "p"}

    def test_processed_oldest_first_regardless_of_input_order(self):
        records = [
            lyric("late", "bad moon rising", minute=5),
            lyric("early", "Bad Moon Rising", minute=0),
        ]
        assert resolve_canonical_links(records) == {"late": "early"}

    def test_equal_timestamps_keep_input_order(self):
        records = [
            lyric("first", "bad moon rising", minute=0),
            lyric("second", "bad moon rising", minute=0),
        ]
        assert resolve_canonical_links(records) == {"second": "first"}

    def test_already_linked_untouched(self):
        """b keeps its pointer; a joins b's cluster."""
        records = [
            lyric("a", "shine on", minute=0),
            lyric("b", "shine on", minute=1, canonical="elsewhere"),
        ]
        assert resolve_canonical_links(records) == {"a": "elsewhere"}

    def test_roots_not_relinked(self):
        """A record others point at stays a root even if it matches."""
        records = [
            lyric("old", "purple rain", minute=0),
            lyric("root", "purple rain", minute=1),
            lyric("member", "purple rain", minute=2, canonical="root"),
        ]
        links = resolve_canonical_links(records)
        assert "root" not in links
        assert links == {"old": "root"}

    def test_chains_stay_one_hop(self):
        records = [lyric(i, "over the rainbow", minute=i) for i in range(6)]
        links = resolve_canonical_links(records)
        assert set(links.values()) == {0}
        assert not set(links) & set(links.values())

    def test_private_records_ignored(self):
        records = [
            lyric("a", "same", minute=0, public=False),
            lyric("b", "same", minute=1),
        ]
        assert resolve_canonical_links(records) == {}

    def test_single_member_group(self):
        assert resolve_canonical_links([lyric("a", "alone")]) == {}

    def test_empty_input(self):
        assert resolve_canonical_links([]) == {}

    def test_no_match_left_unlinked(self):
        records = [
            lyric("a", "one thing", minute=0),
            lyric("b", "another thing entirely", minute=1),
        ]
        assert resolve_canonical_links(records) == {}

    def test_rerun_after_apply_is_empty(self):
        records = [
            lyric("a", "Don’t stop believin’", minute=0, reactions=2),
            lyric("b", "don't stop believin'", minute=1, reactions=8),
            lyric("c", "just a small town girl, don't stop believin'", minute=2),
            lyric("d", "Livin' in a lonely world", minute=3),
            lyric("e", "livin' in a lonely world", minute=4, song="Other"),
        ]
        first = resolve_canonical_links(records)
        assert first == {"b": "a", "c": "a"}
        assert resolve_canonical_links(_apply(records, first)) == {}

    def test_new_submission_links_on_later_run(self):
        records = [lyric("a", "yellow submarine", minute=0)]
        assert resolve_canonical_links(records) == {}
        records.append(lyric("b", "Yellow Submarine", minute=1))
        assert resolve_canonical_links(records) == {"b": "a"}

    def test_older_record_joins_newer_linked_record(self):
        """An unlinked record may match a later one that already has a root."""
        records = [
            lyric("A", "hold on", minute=0),
            lyric("B", "Hold on", minute=1, canonical="R"),
        ]
        links = resolve_canonical_links(records)
        assert links == {"A": "R"}
        assert resolve_canonical_links(_apply(records, links)) == {}

    def test_later_unlinked_records_are_not_candidates(self):
        records = [
            lyric("a", "hold me closer", minute=0),
            lyric("b", "hold me closer", minute=1),
        ]
        links = resolve_canonical_links(records)
        assert "a" not in links
        assert links == {"b": "a"}

    def test_record_targeted_from_another_song_stays_root(self):
        """A pointer from any song makes its target a root."""
        records = [
            lyric("a", "here comes the sun", song="Sun", minute=0),
            lyric("b", "Here comes the sun", song="Sun", minute=1),
            lyric("c", "doo doo doo", song="Other", minute=2, canonical="b"),
        ]
        assert resolve_canonical_links(records) == {}

    def test_missing_created_at_sorts_first(self):
        records = [
            lyric("dated", "come together", minute=0),
            replace(lyric("undated", "Come Together"), created_at=None),
        ]
        assert resolve_canonical_links(records) == {"dated": "undated"}

    def test_naive_and_aware_timestamps_mix(self):
        """Naive timestamps are taken as UTC when ordering."""
        records = [
            replace(lyric("naive", "let it be"), created_at=datetime(2024, 3, 1, 12, 5)),
            lyric("aware", "let it be", minute=1),
            replace(lyric("none", "let it be"), created_at=None),
        ]
        links = resolve_canonical_links(records)
        assert list(links.items()) == [("aware", "none"), ("naive", "none")]

    def test_zero_is_a_real_id(self):
        records = [
            lyric(0, "strawberry fields", minute=0),
            lyric(1, "Strawberry Fields", minute=1),
            lyric(2, "strawberry fields", minute=2),
        ]
        first = resolve_canonical_links(records)
        assert first == {1: 0, 2: 0}
        assert resolve_canonical_links(_apply(records, first)) == {}

    def test_pointer_to_zero_collapses(self):
        records = [
            lyric(0, "blackbird", minute=0),
            lyric(1, "blackbird", minute=1, canonical=0),
            lyric(2, "Blackbird", minute=2),
        ]
        assert resolve_canonical_links(records) == {2: 0}


class TestResolveCanonicalLink:
    """Tests for the single-record, creation-time variant."""

    def test_links_new_record(self):
        group = [
            lyric("a", "let it be", minute=0),
            lyric("new", "Let it be…", minute=1),
        ]
        # "let it be..." contains "let it be"
        assert resolve_canonical_link(group, "new") == "a"

    def test_ignores_other_songs(self):
        records = [
            lyric("a", "let it be", song="Other"),
            lyric("new", "let it be", minute=1),
        ]
        assert resolve_canonical_link(records, "new") is None

    def test_unknown_id(self):
        assert resolve_canonical_link([lyric("a", "x")], "missing") is None

    def test_untitled_record(self):
        records = [lyric("a", "x", song=None), lyric("b", "x", song=None, minute=1)]
        assert resolve_canonical_link(records, "b") is None


class TestApplyLinks:
    """Tests for apply_links() failure isolation."""

    def test_writes_in_order(self):
        written = []
        updated, errors = apply_links(
            {"b": "a", "c": "a"}, lambda l, c: written.append((l, c)), verbose=False,
        )
        assert written == [("b", "a"), ("c", "a")]
        assert (updated, errors) == (2, 0)

    def test_failed_write_does_not_stop_batch(self, capsys):
        written = []

        def write(lyric_id, canonical_id):
            if lyric_id == "b":
                raise RuntimeError("permission denied")
            written.append(lyric_id)

        updated, errors = apply_links({"b": "a", "c": "a", "d": "a"}, write)
        assert written == ["c", "d"]
        assert (updated, errors) == (2, 1)
        out = capsys.readouterr().out
        assert "ERROR on b: permission denied" in out
        assert "Done: 2 linked (1 errors" in out

    def test_empty(self):
        assert apply_links({}, lambda l, c: None, verbose=False) == (0, 0)


class TestBackfill:
    """Tests for backfill() resolve + write."""

    def test_writes_links(self):
        records = [
            lyric("a", "wonderwall", minute=0),
            lyric("b", "Wonderwall", minute=1),
        ]
        written = {}
        links, updated, errors = backfill(
            records, written.__setitem__, verbose=False,
        )
        assert links == {"b": "a"}
        assert written == {"b": "a"}
        assert (updated, errors) == (1, 0)

    def test_dry_run_writes_nothing(self, capsys):
        records = [
            lyric("a", "wonderwall", minute=0),
            lyric("b", "Wonderwall", minute=1),
        ]
        written = {}
        links, updated, errors = backfill(records, written.__setitem__, dry_run=True)
        assert links == {"b": "a"}
        assert written == {}
        assert (updated, errors) == (0, 0)
        assert "would link b → a" in capsys.readouterr().out
