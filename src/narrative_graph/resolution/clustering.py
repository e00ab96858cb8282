"""Batch clustering of entity candidates before graph resolution.

Merges the different ways a batch of extracted candidates names one entity
("Harry Potter", "Harry", "Potter") so each entity reaches the graph once.

Strategy (greedy, first-fit, order-dependent):
- Within a segment: each candidate joins the FIRST same-type cluster whose
  average similarity to its members exceeds ``within_segment``, otherwise it
  starts a new cluster
- Across segments: segment clusters are merged the same way against a
  stricter threshold (``within_segment + 0.1``)
- Candidate similarity = 0.4 * embedding cosine + 0.6 * name similarity

Iteration order and first-match semantics are part of the contract: the same
input always yields the same partition. Clusters partition their input and
are always type-homogeneous.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from narrative_graph.models.candidate import EntityCandidate, Facet, Mention
from narrative_graph.models.enums import EntityType
from narrative_graph.resolution.similarity import cosine_similarity, score_name_similarity

if TYPE_CHECKING:
    from narrative_graph.resolution.thresholds import ResolutionThresholds

logger = logging.getLogger(__name__)

EMBEDDING_WEIGHT = 0.4
NAME_WEIGHT = 0.6

# Added to the within-segment threshold when merging across segments
CROSS_SEGMENT_MARGIN = 0.1

DEFAULT_WITHIN_SEGMENT_THRESHOLD = 0.75


def _within_segment(thresholds: ResolutionThresholds | None) -> float:
    if thresholds is None:
        return DEFAULT_WITHIN_SEGMENT_THRESHOLD
    return thresholds.within_segment


@dataclass
class EntityCluster:
    """A provisional merge of candidates believed to denote one entity."""

    primary_name: str
    """Longest member name (first member at that length wins ties)."""

    type: EntityType
    aliases: list[str]
    """All member names, deduplicated."""

    members: list[EntityCandidate]
    merged_embedding: list[float]
    """Componentwise mean of member embeddings."""

    merged_facets: list[Facet]
    """Member facets deduplicated by ``type:content``, first occurrence wins."""

    mentions: list[Mention] = field(default_factory=list)  # pyright: ignore[reportUnknownVariableType]
    segment_ids: list[str] = field(default_factory=list)  # pyright: ignore[reportUnknownVariableType]

    @classmethod
    def from_candidate(cls, candidate: EntityCandidate) -> EntityCluster:
        """Start a singleton cluster."""
        return cls(
            primary_name=candidate.name,
            type=candidate.type,
            aliases=[candidate.name],
            members=[candidate],
            merged_embedding=list(candidate.embedding),
            merged_facets=list(candidate.facets),
            mentions=list(candidate.mentions),
            segment_ids=[candidate.segment_id] if candidate.segment_id else [],
        )

    def add_candidate(self, candidate: EntityCandidate) -> None:
        self.members.append(candidate)
        self.aliases.append(candidate.name)
        self.mentions.extend(candidate.mentions)
        if candidate.segment_id and candidate.segment_id not in self.segment_ids:
            self.segment_ids.append(candidate.segment_id)

    def absorb(self, other: EntityCluster) -> None:
        """Take over all members of another cluster."""
        self.members.extend(other.members)
        self.aliases.extend(other.aliases)
        self.mentions.extend(other.mentions)
        self.segment_ids.extend(s for s in other.segment_ids if s not in self.segment_ids)

    def copy(self) -> EntityCluster:
        return EntityCluster(
            primary_name=self.primary_name,
            type=self.type,
            aliases=list(self.aliases),
            members=list(self.members),
            merged_embedding=list(self.merged_embedding),
            merged_facets=list(self.merged_facets),
            mentions=list(self.mentions),
            segment_ids=list(self.segment_ids),
        )

    def finalize(self) -> EntityCluster:
        """Recompute derived fields from the members."""
        return EntityCluster(
            primary_name=select_primary_name(self.members),
            type=self.type,
            aliases=list(dict.fromkeys(self.aliases)),
            members=self.members,
            merged_embedding=average_embeddings(self.members),
            merged_facets=merge_facets(self.members),
            mentions=self.mentions,
            segment_ids=self.segment_ids,
        )


def compute_candidate_similarity(a: EntityCandidate, b: EntityCandidate) -> float:
    """Pairwise similarity used for clustering (0 across types)."""
    if a.type != b.type:
        return 0.0

    embedding_sim = cosine_similarity(a.embedding, b.embedding)
    name_sim = score_name_similarity(a.name, b.name)

    return embedding_sim * EMBEDDING_WEIGHT + name_sim * NAME_WEIGHT


def compute_cluster_similarity(candidate: EntityCandidate, cluster: EntityCluster) -> float:
    """Average similarity of a candidate to every member of a cluster."""
    if not cluster.members:
        return 0.0

    scores = [compute_candidate_similarity(candidate, m) for m in cluster.members]
    return sum(scores) / len(scores)


def select_primary_name(members: Sequence[EntityCandidate]) -> str:
    """Longest member name; the first member at the maximum length wins."""
    primary = members[0]
    for member in members[1:]:
        if len(member.name) > len(primary.name):
            primary = member
    return primary.name


def average_embeddings(members: Sequence[EntityCandidate]) -> list[float]:
    """Componentwise mean of member embeddings.

    The first member fixes the dimension; members with a different length
    are left out rather than failing the cluster.
    """
    if not members:
        return []

    dim = len(members[0].embedding)
    vectors = [m.embedding for m in members if len(m.embedding) == dim]
    if dim == 0 or not vectors:
        return []

    return np.mean(np.asarray(vectors, dtype=np.float64), axis=0).tolist()


def merge_facets(members: Sequence[EntityCandidate]) -> list[Facet]:
    """Facets of all members, deduplicated by ``type:content``."""
    seen: dict[str, Facet] = {}
    for member in members:
        for facet in member.facets:
            seen.setdefault(facet.dedup_key, facet)
    return list(seen.values())


def cluster_within_segment(
    entities: Sequence[EntityCandidate],
    thresholds: ResolutionThresholds | None = None,
) -> list[EntityCluster]:
    """Greedy first-fit agglomerative clustering of one segment's candidates.

    Args:
        entities: Candidates in input order.
        thresholds: ``within_segment`` is the average similarity a candidate
            must exceed to join a cluster (default 0.75).

    Returns:
        Finalized clusters in creation order.
    """
    within_segment_threshold = _within_segment(thresholds)
    clusters: list[EntityCluster] = []

    for entity in entities:
        for cluster in clusters:
            if cluster.type != entity.type:
                continue

            if compute_cluster_similarity(entity, cluster) > within_segment_threshold:
                cluster.add_candidate(entity)
                break
        else:
            clusters.append(EntityCluster.from_candidate(entity))

    return [cluster.finalize() for cluster in clusters]


def cluster_by_segment(
    entities: Sequence[EntityCandidate],
    thresholds: ResolutionThresholds | None = None,
) -> dict[str, list[EntityCluster]]:
    """Group candidates by segment (first-seen order) and cluster each group."""
    by_segment: dict[str, list[EntityCandidate]] = {}
    for entity in entities:
        by_segment.setdefault(entity.segment_id, []).append(entity)

    return {
        segment_id: cluster_within_segment(segment_entities, thresholds)
        for segment_id, segment_entities in by_segment.items()
    }


def compute_cross_cluster_similarity(cluster: EntityCluster, existing: EntityCluster) -> float:
    """Similarity between two clusters from their merged embeddings and names.

    Name similarity also considers the existing cluster's aliases.
    """
    embedding_sim = cosine_similarity(cluster.merged_embedding, existing.merged_embedding)
    name_sim = score_name_similarity(cluster.primary_name, existing.primary_name, existing.aliases)
    return embedding_sim * EMBEDDING_WEIGHT + name_sim * NAME_WEIGHT


def cluster_across_segments(
    entities: Sequence[EntityCandidate],
    thresholds: ResolutionThresholds | None = None,
) -> list[EntityCluster]:
    """Cluster within each segment, then merge clusters across segments.

    The cross-segment pass compares each segment cluster against the merged
    clusters built so far, using their state as of the start of the pass
    (merged embedding and primary name are recomputed once, at the end).
    """
    by_segment = cluster_by_segment(entities, thresholds)
    all_clusters = [c for clusters in by_segment.values() for c in clusters]

    if len(all_clusters) <= 1:
        return all_clusters

    cross_segment_threshold = _within_segment(thresholds) + CROSS_SEGMENT_MARGIN
    merged_clusters: list[EntityCluster] = []

    for cluster in all_clusters:
        for existing in merged_clusters:
            if existing.type != cluster.type:
                continue

            if compute_cross_cluster_similarity(cluster, existing) > cross_segment_threshold:
                existing.absorb(cluster)
                logger.debug(
                    "Cross-segment merge: %r into %r",
                    cluster.primary_name,
                    existing.primary_name,
                )
                break
        else:
            merged_clusters.append(cluster.copy())

    return [cluster.finalize() for cluster in merged_clusters]


def cluster_to_candidate(cluster: EntityCluster) -> EntityCandidate:
    """Project a cluster back into a candidate for scoring."""
    return EntityCandidate(
        name=cluster.primary_name,
        type=cluster.type,
        embedding=cluster.merged_embedding,
        facets=cluster.merged_facets,
        mentions=cluster.mentions,
        segment_id=cluster.segment_ids[0] if cluster.segment_ids else "",
        document_order=cluster.members[0].document_order if cluster.members else None,
    )
