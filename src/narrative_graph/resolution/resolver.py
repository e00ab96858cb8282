"""Entity resolution orchestrator.

Algorithm overview:
1. Ensure the phonetic encoder is loaded (process-wide, once)

2. Cluster all extracted candidates
   - within each segment (greedy first-fit)
   - then across segments (stricter threshold)

3. Build blocking indices once from the existing entities

4. For each cluster:
   a. Project the cluster back into a candidate
   b. Filter existing entities via blocking (type + token/phonetic keys)
   c. Score the filtered entities (weights per entity type)
   d. Apply three-tier thresholding (MERGE / REVIEW / CREATE)

5. Return per-cluster results and aggregate stats

Nothing is persisted and nothing external is called. REVIEW results that
would benefit from external arbitration are only counted.

Utility functions:
- get_resolution_candidates: Ranked merge targets for one cluster, no decision
- map_to_legacy_decision: Compatibility shim for older pipeline stages
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from narrative_graph.models.candidate import EntityCandidate, ExistingEntity
from narrative_graph.models.enums import LegacyDecision, ResolutionDecision, type_key
from narrative_graph.resolution.blocking import (
    build_blocking_index,
    filter_by_blocking,
    get_blocking_stats,
)
from narrative_graph.resolution.clustering import (
    EntityCluster,
    cluster_across_segments,
    cluster_to_candidate,
)
from narrative_graph.resolution.phonetics import ensure_phonetic_ready
from narrative_graph.resolution.similarity import (
    GraphContextAccessor,
    ScoredCandidate,
    SimilarityScorer,
)
from narrative_graph.resolution.thresholds import (
    ClusterResolutionResult,
    ResolutionConfig,
    needs_llm_refinement,
    resolve_cluster,
    summarize_decision,
)

logger = logging.getLogger(__name__)


@dataclass
class ResolverOptions:
    """Per-call options for ``resolve_entities``."""

    document_id: str
    user_id: str
    config: dict[str, Any] | None = None
    """Partial ``ResolutionConfig`` overrides (top-level keys replace).

    Accepted keys: ``weights_by_type``, ``default_weights``, ``thresholds``,
    ``use_llm_refinement``, ``llm_score_range``. Unknown keys are rejected.
    """


@dataclass
class ResolutionStats:
    """Aggregate counts for one resolution call."""

    total_clusters: int = 0
    auto_merged: int = 0
    needs_review: int = 0
    created: int = 0
    llm_refinement_needed: int = 0
    """REVIEW results recommended for external arbitration."""


@dataclass
class ResolveResult:
    """Result of resolving a batch of extracted candidates."""

    results: list[ClusterResolutionResult] = field(default_factory=list)  # pyright: ignore[reportUnknownVariableType]
    stats: ResolutionStats = field(default_factory=ResolutionStats)


class EntityResolver:
    """Resolves extracted candidates against existing graph entities.

    Usage:
        resolver = EntityResolver(ResolutionConfig.from_settings())
        result = resolver.resolve(candidates, existing, document_id="doc-1")
        for r in result.results:
            print(r.decision, r.target_id)

    The resolver holds only its configuration; every call builds and
    discards its own clusters and blocking index, so one instance may be
    shared across threads.
    """

    def __init__(self, config: ResolutionConfig | None = None) -> None:
        """Initialize the resolver.

        Args:
            config: Resolution config (default from settings).
        """
        self._config = config or ResolutionConfig.from_settings()
        self._scorer = SimilarityScorer(
            weights_by_type=self._config.weights_by_type,
            default_weights=self._config.default_weights,
        )

    @property
    def config(self) -> ResolutionConfig:
        return self._config

    def resolve(
        self,
        extracted: Sequence[EntityCandidate],
        existing: Sequence[ExistingEntity],
        *,
        document_id: str = "",
        get_graph_context: GraphContextAccessor | None = None,
    ) -> ResolveResult:
        """Resolve extracted candidates against existing entities.

        Args:
            extracted: Candidates from extraction, in document order.
            existing: Graph entities to match against.
            document_id: Used for logging only.
            get_graph_context: Optional synchronous graph-context lookup.

        Returns:
            ResolveResult with one result per cluster, in cluster order.

        Raises:
            Whatever the phonetic encoder load raised, if it failed.
        """
        ensure_phonetic_ready()

        logger.info(
            "Starting entity resolution for document %s: %d extracted, %d existing",
            document_id,
            len(extracted),
            len(existing),
        )

        thresholds = self._config.thresholds

        clusters = cluster_across_segments(extracted, thresholds)
        logger.info(
            "Clustering complete: %d clusters from %d candidates",
            len(clusters),
            len(extracted),
        )

        index = build_blocking_index(existing)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Blocking index: %s", get_blocking_stats(index))

        stats = ResolutionStats(total_clusters=len(clusters))
        results: list[ClusterResolutionResult] = []

        for cluster in clusters:
            candidate = cluster_to_candidate(cluster)
            blocked = filter_by_blocking(cluster, existing, index)
            scored = self._scorer.score_candidates(candidate, blocked, get_graph_context)

            result = resolve_cluster(cluster, scored, thresholds)
            results.append(result)

            logger.debug(
                "Cluster %r (%d members, %d blocked candidates): %s",
                cluster.primary_name,
                len(cluster.members),
                len(blocked),
                summarize_decision(result),
            )

            if result.decision == ResolutionDecision.MERGE:
                stats.auto_merged += 1
            elif result.decision == ResolutionDecision.REVIEW:
                stats.needs_review += 1
                if self._config.use_llm_refinement and needs_llm_refinement(
                    result, self._config.llm_score_range
                ):
                    stats.llm_refinement_needed += 1
                    logger.debug(
                        "Cluster %r flagged for external refinement", cluster.primary_name
                    )
            else:
                stats.created += 1

        logger.info(
            "Entity resolution complete: %d clusters, %d merged, %d review, "
            "%d created, %d refinement recommended",
            stats.total_clusters,
            stats.auto_merged,
            stats.needs_review,
            stats.created,
            stats.llm_refinement_needed,
        )

        return ResolveResult(results=results, stats=stats)

    def get_resolution_candidates(
        self,
        cluster: EntityCluster,
        existing: Sequence[ExistingEntity],
        get_graph_context: GraphContextAccessor | None = None,
    ) -> list[ScoredCandidate]:
        """Rank every same-type existing entity against a cluster.

        No blocking and no decision: a reviewer choosing a merge target
        wants every option of the cluster's type.
        """
        cluster_type = type_key(cluster.type)
        same_type = [e for e in existing if type_key(e.type) == cluster_type]
        candidate = cluster_to_candidate(cluster)
        return self._scorer.score_candidates(candidate, same_type, get_graph_context)


def resolve_entities(
    extracted: Sequence[EntityCandidate],
    existing: Sequence[ExistingEntity],
    options: ResolverOptions,
    get_graph_context: GraphContextAccessor | None = None,
) -> ResolveResult:
    """Resolve extracted candidates with settings defaults plus overrides."""
    config = ResolutionConfig.from_settings().with_overrides(options.config)
    return EntityResolver(config).resolve(
        extracted,
        existing,
        document_id=options.document_id,
        get_graph_context=get_graph_context,
    )


def get_resolution_candidates(
    cluster: EntityCluster,
    existing: Sequence[ExistingEntity],
    config: dict[str, Any] | None = None,
    get_graph_context: GraphContextAccessor | None = None,
) -> list[ScoredCandidate]:
    """Ranked merge targets for one cluster, without a decision."""
    resolver = EntityResolver(ResolutionConfig.from_settings().with_overrides(config))
    return resolver.get_resolution_candidates(cluster, existing, get_graph_context)


def map_to_legacy_decision(result: ClusterResolutionResult) -> LegacyDecision:
    """Map a resolution decision onto the older four-way vocabulary.

    MERGE with new facets is ADD_FACET, plain MERGE stays MERGE. REVIEW and
    CREATE are both NEW until a review-queue consumer exists.
    """
    if result.decision == ResolutionDecision.MERGE:
        return LegacyDecision.ADD_FACET if result.new_facets else LegacyDecision.MERGE
    return LegacyDecision.NEW
