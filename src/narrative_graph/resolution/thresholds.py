"""Three-tier thresholding for entity resolution.

Routes each cluster to a decision from its best-scored candidate:
- MERGE (score >= auto_merge): same entity, proceed automatically
- REVIEW (review <= score < auto_merge): near-duplicate, needs a decision
- CREATE (score < review): likely a different entity

Two adjustments sit between the tiers:
- Signal veto: at score >= 0.7, a weak name signal (or a weak but nonzero
  type signal) forces CREATE. Guards against embedding-dominated false merges.
- Confidence promotion: a moderate score (> 0.65) whose signals agree
  (confidence > 0.7) is merged instead of reviewed.

Thresholds are trusted as given; nothing here checks that
``auto_merge >= review``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from narrative_graph.config import settings
from narrative_graph.models.candidate import Facet
from narrative_graph.models.enums import EntityType, ResolutionDecision
from narrative_graph.resolution.clustering import EntityCluster
from narrative_graph.resolution.similarity import (
    DEFAULT_WEIGHTS,
    WEIGHTS_BY_TYPE,
    ScoredCandidate,
    SignalBreakdown,
    SignalWeights,
)

# Veto is only considered for scores that would otherwise merge or promote
VETO_MIN_SCORE = 0.7

# Confidence promotion: REVIEW-range scores above this with confident signals merge
PROMOTION_MIN_SCORE = 0.65
PROMOTION_MIN_CONFIDENCE = 0.7

# REVIEW decisions below this confidence are worth external arbitration
REFINEMENT_MAX_CONFIDENCE = 0.6


class ResolutionThresholds(BaseModel):
    """Score thresholds for clustering and decisions."""

    model_config = ConfigDict(extra="forbid")

    auto_merge: float = 0.85
    review: float = 0.5
    within_segment: float = 0.75
    """Clustering only: average similarity needed to join a cluster."""

    veto: float = 0.3


class ScoreRange(BaseModel):
    """Inclusive score range."""

    model_config = ConfigDict(extra="forbid")

    minimum: float = 0.5
    maximum: float = 0.85

    def __contains__(self, score: float) -> bool:
        return self.minimum <= score <= self.maximum


class ResolutionConfig(BaseModel):
    """Per-call resolution configuration."""

    model_config = ConfigDict(extra="forbid")

    weights_by_type: dict[EntityType, SignalWeights] = Field(
        default_factory=lambda: dict(WEIGHTS_BY_TYPE)
    )
    default_weights: SignalWeights = DEFAULT_WEIGHTS
    thresholds: ResolutionThresholds = Field(default_factory=ResolutionThresholds)
    use_llm_refinement: bool = True
    llm_score_range: ScoreRange = Field(default_factory=ScoreRange)

    @classmethod
    def from_settings(cls) -> ResolutionConfig:
        """Defaults taken from environment-backed settings."""
        return cls(
            thresholds=ResolutionThresholds(
                auto_merge=settings.entity_resolution_t_auto_merge,
                review=settings.entity_resolution_t_review,
                within_segment=settings.entity_resolution_t_within_segment,
                veto=settings.entity_resolution_t_veto,
            ),
            use_llm_refinement=settings.entity_resolution_use_llm_refinement,
            llm_score_range=ScoreRange(
                minimum=settings.entity_resolution_llm_score_min,
                maximum=settings.entity_resolution_llm_score_max,
            ),
        )

    def with_overrides(self, overrides: dict[str, Any] | None) -> ResolutionConfig:
        """Shallow merge of a partial config over this one.

        Top-level keys replace whole values (a ``thresholds`` override must
        carry every threshold it wants to differ from the model defaults).
        """
        if not overrides:
            return self
        return ResolutionConfig.model_validate({**dict(self), **overrides})


DEFAULT_THRESHOLDS = ResolutionThresholds()


@dataclass
class ResolutionResult:
    """Decision for one cluster."""

    decision: ResolutionDecision
    score: float
    confidence: float
    reason: str
    target_id: str | None = None
    """Existing entity id (MERGE / REVIEW only)."""

    signals: SignalBreakdown | None = None


@dataclass(kw_only=True)
class ClusterResolutionResult(ResolutionResult):
    """Decision for one cluster, with the cluster it was made for."""

    cluster: EntityCluster
    new_facets: list[Facet] | None = None
    """Cluster's merged facets, set for MERGE and REVIEW."""


def check_signal_veto(
    signals: SignalBreakdown,
    score: float,
    veto_threshold: float = DEFAULT_THRESHOLDS.veto,
) -> str | None:
    """Return a veto reason if one key signal disagrees with a high score."""
    if score < VETO_MIN_SCORE:
        return None

    if signals.name < veto_threshold:
        return f"Name mismatch ({signals.name:.2f}) despite high overall score"

    if 0 < signals.type < veto_threshold:
        return f"Type mismatch ({signals.type:.2f}) despite high overall score"

    return None


def make_decision(
    scored_candidate: ScoredCandidate | None,
    thresholds: ResolutionThresholds = DEFAULT_THRESHOLDS,
) -> ResolutionResult:
    """Decide MERGE / REVIEW / CREATE from the best-scored candidate."""
    if scored_candidate is None or scored_candidate.score < thresholds.review:
        return ResolutionResult(
            decision=ResolutionDecision.CREATE,
            score=scored_candidate.score if scored_candidate else 0.0,
            signals=scored_candidate.signals if scored_candidate else None,
            confidence=0.0,
            reason="No candidates above review threshold",
        )

    score = scored_candidate.score
    signals = scored_candidate.signals
    confidence = scored_candidate.confidence
    target_id = scored_candidate.entity.id

    veto_reason = check_signal_veto(signals, score, thresholds.veto)
    if veto_reason:
        return ResolutionResult(
            decision=ResolutionDecision.CREATE,
            score=score,
            signals=signals,
            confidence=confidence,
            reason=veto_reason,
        )

    if score >= thresholds.auto_merge:
        return ResolutionResult(
            decision=ResolutionDecision.MERGE,
            target_id=target_id,
            score=score,
            signals=signals,
            confidence=confidence,
            reason=f"High score ({score:.3f}) above auto-merge threshold",
        )

    if confidence > PROMOTION_MIN_CONFIDENCE and score > PROMOTION_MIN_SCORE:
        return ResolutionResult(
            decision=ResolutionDecision.MERGE,
            target_id=target_id,
            score=score,
            signals=signals,
            confidence=confidence,
            reason=f"Moderate score ({score:.3f}) with high confidence ({confidence:.2f})",
        )

    return ResolutionResult(
        decision=ResolutionDecision.REVIEW,
        target_id=target_id,
        score=score,
        signals=signals,
        confidence=confidence,
        reason=f"Score ({score:.3f}) in review range with confidence {confidence:.2f}",
    )


def resolve_from_scores(
    scored_candidates: Sequence[ScoredCandidate],
    thresholds: ResolutionThresholds = DEFAULT_THRESHOLDS,
) -> ResolutionResult:
    """Decide from a ranked candidate list (best first)."""
    if not scored_candidates:
        return ResolutionResult(
            decision=ResolutionDecision.CREATE,
            score=0.0,
            confidence=0.0,
            reason="No candidates found",
        )

    return make_decision(scored_candidates[0], thresholds)


def resolve_cluster(
    cluster: EntityCluster,
    scored_candidates: Sequence[ScoredCandidate],
    thresholds: ResolutionThresholds = DEFAULT_THRESHOLDS,
) -> ClusterResolutionResult:
    """Resolve one cluster, carrying its facets onto MERGE / REVIEW results."""
    result = resolve_from_scores(scored_candidates, thresholds)
    carries_facets = result.decision in (ResolutionDecision.MERGE, ResolutionDecision.REVIEW)

    return ClusterResolutionResult(
        decision=result.decision,
        score=result.score,
        confidence=result.confidence,
        reason=result.reason,
        target_id=result.target_id,
        signals=result.signals,
        cluster=cluster,
        new_facets=cluster.merged_facets if carries_facets else None,
    )


def batch_resolve(
    clusters: Sequence[EntityCluster],
    scored_candidates_per_cluster: Sequence[Sequence[ScoredCandidate]],
    thresholds: ResolutionThresholds = DEFAULT_THRESHOLDS,
) -> list[ClusterResolutionResult]:
    """Resolve clusters against their ranked candidates (paired by index)."""
    return [
        resolve_cluster(
            cluster,
            scored_candidates_per_cluster[i] if i < len(scored_candidates_per_cluster) else [],
            thresholds,
        )
        for i, cluster in enumerate(clusters)
    ]


def needs_llm_refinement(
    result: ResolutionResult,
    llm_score_range: ScoreRange | None = None,
) -> bool:
    """Recommend external arbitration for ambiguous REVIEW decisions.

    True only for REVIEW results whose score is in range and whose signals
    disagree (confidence < 0.6). This only flags; nothing is called.
    """
    if result.decision != ResolutionDecision.REVIEW:
        return False

    score_range = llm_score_range or ScoreRange()
    return result.score in score_range and result.confidence < REFINEMENT_MAX_CONFIDENCE


def summarize_decision(result: ResolutionResult) -> str:
    """One-line human readable summary of a decision."""
    signals = result.signals
    signal_summary = (
        f"emb={signals.embedding:.2f}, name={signals.name:.2f}, "
        f"type={signals.type:.2f}, graph={signals.graph:.2f}"
        if signals
        else "no signals"
    )

    if result.decision == ResolutionDecision.CREATE:
        return f"CREATE (score={result.score:.3f}, {signal_summary})"

    return (
        f"{result.decision.value} (score={result.score:.3f}, "
        f"conf={result.confidence:.2f}, {signal_summary})"
    )
