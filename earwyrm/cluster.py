"""Read-time clustering of lyrics that share a canonical root.

Listing views show one card per cluster: the most-reacted member stands in
for the group, carrying the group's total reactions, with "N people saved
this" underneath.  Nothing here is cached or persisted; clusters are rebuilt
from whatever list the caller fetched.
"""

from dataclasses import dataclass, field, replace


@dataclass
class ClusterGroup:
    key: object                  # canonical_lyric_id, or the lone record's id
    representative: object       # LyricRecord with reaction_count = total
    members: list = field(default_factory=list)
    total_reactions: int = 0

    @property
    def member_count(self):
        return len(self.members)


def cluster_by_canonical(records):
    """Group LyricRecords by canonical_lyric_id (own id when unset).

    Groups come back in order of first appearance.  The representative is
    the member with the most reactions, first one wins on ties.
    """
    grouped = {}
    for rec in records:
        grouped.setdefault(rec.root_id, []).append(rec)

    clusters = []
    for key, members in grouped.items():
        best = members[0]
        for rec in members[1:]:
            if rec.reaction_count > best.reaction_count:
                best = rec
        total = sum(rec.reaction_count for rec in members)
        clusters.append(ClusterGroup(
            key=key,
            representative=replace(best, reaction_count=total),
            members=members,
            total_reactions=total,
        ))
    return clusters


def sort_by_size(clusters):
    """Largest clusters first; equal sizes keep their discovery order."""
    return sorted(clusters, key=lambda c: c.member_count, reverse=True)
