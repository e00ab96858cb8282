"""Tests for within- and cross-segment candidate clustering."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from narrative_graph.models import EntityType, Facet
from narrative_graph.resolution.clustering import (
    EntityCluster,
    average_embeddings,
    cluster_across_segments,
    cluster_by_segment,
    cluster_to_candidate,
    cluster_within_segment,
    compute_candidate_similarity,
    merge_facets,
    select_primary_name,
)
from narrative_graph.resolution.thresholds import ResolutionThresholds

if TYPE_CHECKING:
    from conftest import MakeCandidate

E = [0.3, 0.1, 0.7]


class TestCandidateSimilarity:
    """Tests for pairwise clustering similarity."""

    def test_weighted_embedding_and_name(self, make_candidate: MakeCandidate) -> None:
        a = make_candidate("Harry Potter", embedding=E)
        b = make_candidate("Harry", embedding=E)
        # 0.4 * 1.0 + 0.6 * 0.9
        assert compute_candidate_similarity(a, b) == pytest.approx(0.94)

    def test_different_types_never_similar(self, make_candidate: MakeCandidate) -> None:
        a = make_candidate("Paris", embedding=E)
        b = make_candidate("Paris", type=EntityType.LOCATION, embedding=E)
        assert compute_candidate_similarity(a, b) == 0.0

    def test_overflowing_embeddings_fall_back_to_name(self, make_candidate: MakeCandidate) -> None:
        a = make_candidate("Harry", embedding=[1e308, 1e308])
        b = make_candidate("Harry", embedding=[1e308, 1e308])
        # embedding term degrades to 0; 0.6 * 1.0 from the exact name
        assert compute_candidate_similarity(a, b) == pytest.approx(0.6)


class TestClusterWithinSegment:
    """Tests for greedy first-fit clustering."""

    def test_aliases_cluster_together(self, make_candidate: MakeCandidate) -> None:
        clusters = cluster_within_segment(
            [make_candidate("Harry", embedding=E), make_candidate("Harry Potter", embedding=E)]
        )

        assert len(clusters) == 1
        cluster = clusters[0]
        assert cluster.primary_name == "Harry Potter"
        assert cluster.aliases == ["Harry", "Harry Potter"]
        assert len(cluster.members) == 2

    def test_no_embeddings_keeps_aliases_apart(self, make_candidate: MakeCandidate) -> None:
        """Name similarity alone (0.6 * 0.9) stays below 0.75."""
        clusters = cluster_within_segment(
            [make_candidate("Harry"), make_candidate("Harry Potter")]
        )
        assert len(clusters) == 2

    def test_threshold_is_strict(self, make_candidate: MakeCandidate) -> None:
        candidates = [make_candidate("Harry", embedding=E), make_candidate("Harry Potter", embedding=E)]

        assert len(cluster_within_segment(candidates, ResolutionThresholds(within_segment=0.95))) == 2
        assert len(cluster_within_segment(candidates, ResolutionThresholds(within_segment=0.9))) == 1

    def test_first_fit_not_best_fit(self, make_candidate: MakeCandidate) -> None:
        """A candidate joins the first qualifying cluster even if a later one fits better."""
        candidates = [
            make_candidate("Harry", embedding=E),
            make_candidate("Potter", embedding=E),
            make_candidate("Harry Potter", embedding=E),
        ]

        clusters = cluster_within_segment(candidates)

        assert [c.aliases for c in clusters] == [["Harry", "Harry Potter"], ["Potter"]]

    def test_creation_order_preserved(self, make_candidate: MakeCandidate) -> None:
        clusters = cluster_within_segment(
            [make_candidate("Ron"), make_candidate("Hermione"), make_candidate("Neville")]
        )
        assert [c.primary_name for c in clusters] == ["Ron", "Hermione", "Neville"]

    def test_facets_and_mentions_merged(self, make_candidate: MakeCandidate) -> None:
        clusters = cluster_within_segment(
            [
                make_candidate(
                    "Harry",
                    embedding=E,
                    facets=[("trait", "brave"), ("appearance", "scar")],
                    mentions=["Harry"],
                ),
                make_candidate(
                    "Harry Potter",
                    embedding=E,
                    facets=[("trait", "brave"), ("role", "seeker")],
                    mentions=["Harry Potter"],
                ),
            ]
        )

        cluster = clusters[0]
        assert [f.dedup_key for f in cluster.merged_facets] == [
            "trait:brave",
            "appearance:scar",
            "role:seeker",
        ]
        assert [m.text for m in cluster.mentions] == ["Harry", "Harry Potter"]
        assert cluster.segment_ids == ["seg-1"]


class TestClusterHelpers:
    """Tests for primary name, embedding and facet merging."""

    def test_primary_name_longest(self, make_candidate: MakeCandidate) -> None:
        members = [make_candidate("Harry"), make_candidate("Harry Potter"), make_candidate("Potter")]
        assert select_primary_name(members) == "Harry Potter"

    def test_primary_name_tie_goes_to_first(self, make_candidate: MakeCandidate) -> None:
        members = [make_candidate("Bob"), make_candidate("Ann")]
        assert select_primary_name(members) == "Bob"

    def test_average_embeddings(self, make_candidate: MakeCandidate) -> None:
        members = [make_candidate("A", embedding=[1.0, 0.0]), make_candidate("B", embedding=[0.0, 1.0])]
        assert average_embeddings(members) == pytest.approx([0.5, 0.5])

    def test_average_skips_mismatched_lengths(self, make_candidate: MakeCandidate) -> None:
        members = [
            make_candidate("A", embedding=[1.0, 0.0]),
            make_candidate("B", embedding=[0.0, 1.0, 0.0]),
            make_candidate("C", embedding=[0.0, 1.0]),
        ]
        assert average_embeddings(members) == pytest.approx([0.5, 0.5])

    def test_average_without_embeddings(self, make_candidate: MakeCandidate) -> None:
        assert average_embeddings([make_candidate("A"), make_candidate("B")]) == []
        assert average_embeddings([]) == []

    def test_merge_facets_first_wins(self, make_candidate: MakeCandidate) -> None:
        members = [
            make_candidate("A", facets=[("trait", "brave")]),
            make_candidate("B", facets=[("trait", "brave"), ("trait", "loyal")]),
        ]
        assert merge_facets(members) == [
            Facet(type="trait", content="brave"),
            Facet(type="trait", content="loyal"),
        ]


class TestClusterAcrossSegments:
    """Tests for the cross-segment merge pass."""

    def test_groups_by_segment_in_first_seen_order(self, make_candidate: MakeCandidate) -> None:
        by_segment = cluster_by_segment(
            [
                make_candidate("Ron", segment_id="s2"),
                make_candidate("Harry", segment_id="s1"),
                make_candidate("Hermione", segment_id="s2"),
            ]
        )
        assert list(by_segment) == ["s2", "s1"]
        assert [c.primary_name for c in by_segment["s2"]] == ["Ron", "Hermione"]

    def test_merges_same_entity_across_segments(self, make_candidate: MakeCandidate) -> None:
        clusters = cluster_across_segments(
            [
                make_candidate("Harry Potter", embedding=E, segment_id="s1"),
                make_candidate("Harry", embedding=E, segment_id="s2"),
            ]
        )

        assert len(clusters) == 1
        cluster = clusters[0]
        assert cluster.primary_name == "Harry Potter"
        assert cluster.aliases == ["Harry Potter", "Harry"]
        assert cluster.segment_ids == ["s1", "s2"]
        assert cluster.merged_embedding == pytest.approx(E)

    def test_stricter_than_within_segment(self, make_candidate: MakeCandidate) -> None:
        """0.4 * 0.5 + 0.6 * 0.9 = 0.74 would not pass 0.85 across segments."""
        clusters = cluster_across_segments(
            [
                make_candidate("Harry Potter", embedding=[1.0, 0.0], segment_id="s1"),
                make_candidate("Harry", embedding=[0.5, 0.8660254037844386], segment_id="s2"),
            ]
        )
        assert len(clusters) == 2

    def test_types_kept_apart(self, make_candidate: MakeCandidate) -> None:
        clusters = cluster_across_segments(
            [
                make_candidate("Paris", embedding=E, segment_id="s1"),
                make_candidate("Paris", type=EntityType.LOCATION, embedding=E, segment_id="s2"),
            ]
        )
        assert sorted(c.type.value for c in clusters) == ["character", "location"]

    def test_single_cluster_returned_as_is(self, make_candidate: MakeCandidate) -> None:
        clusters = cluster_across_segments([make_candidate("Harry")])
        assert len(clusters) == 1
        assert cluster_across_segments([]) == []

    def test_every_candidate_in_exactly_one_cluster(self, make_candidate: MakeCandidate) -> None:
        candidates = [
            make_candidate("Harry Potter", embedding=E, segment_id="s1"),
            make_candidate("Harry", embedding=E, segment_id="s1"),
            make_candidate("Hogwarts", type=EntityType.LOCATION, segment_id="s1"),
            make_candidate("Harry", embedding=E, segment_id="s2"),
            make_candidate("Ron", embedding=[0.0, 1.0, 0.0], segment_id="s2"),
        ]

        clusters = cluster_across_segments(candidates)

        members = [id(m) for c in clusters for m in c.members]
        assert sorted(members) == sorted(id(c) for c in candidates)


class TestClusterToCandidate:
    """Tests for projecting a cluster back into a candidate."""

    def test_projection(self, make_candidate: MakeCandidate) -> None:
        cluster = EntityCluster.from_candidate(
            make_candidate("Harry", embedding=E, segment_id="s1", document_order=3)
        )

        candidate = cluster_to_candidate(cluster)

        assert candidate.name == "Harry"
        assert candidate.type == EntityType.CHARACTER
        assert candidate.embedding == E
        assert candidate.segment_id == "s1"
        assert candidate.document_order == 3
