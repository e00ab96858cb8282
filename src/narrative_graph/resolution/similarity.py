"""Multi-signal similarity scoring with per-type weighting.

This module scores an entity candidate against existing graph entities.

Signals (each in [0, 1]):
- embedding: cosine similarity of embeddings, negative values clamped to 0
- name: best of several string heuristics across the name and its aliases
- type: exact type match, with character/character_state partially compatible
- graph: co-occurrence context (always 0 in this version, see
  ``score_graph_context``)

Key principles:
- Signals are independent; weights are chosen by the candidate's entity type
- Confidence measures signal AGREEMENT, not magnitude: a candidate whose
  non-zero signals disagree gets low confidence even with a decent score
- Malformed vectors degrade to 0 similarity, they never raise
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
from pydantic import BaseModel, ConfigDict
from rapidfuzz.distance import Levenshtein

from narrative_graph.models.candidate import EntityCandidate, ExistingEntity
from narrative_graph.models.enums import EntityType, type_key
from narrative_graph.resolution.alias_patterns import (
    compute_alias_pattern_score,
    is_substring_match,
    normalize_name_for_matching,
    phonetic_match,
    token_overlap,
)

logger = logging.getLogger(__name__)


class SignalWeights(BaseModel):
    """Weight of each signal in the combined score."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    embedding: float
    name: float
    type: float
    graph: float


DEFAULT_WEIGHTS = SignalWeights(embedding=0.5, name=0.3, type=0.1, graph=0.1)

# Signal weight profiles per entity type (sum to 1.0)
WEIGHTS_BY_TYPE: dict[EntityType, SignalWeights] = {
    EntityType.CHARACTER: SignalWeights(embedding=0.5, name=0.3, type=0.1, graph=0.1),
    EntityType.LOCATION: SignalWeights(embedding=0.4, name=0.4, type=0.1, graph=0.1),
    EntityType.EVENT: SignalWeights(embedding=0.55, name=0.2, type=0.1, graph=0.15),
    EntityType.CONCEPT: SignalWeights(embedding=0.6, name=0.15, type=0.1, graph=0.15),
    EntityType.OTHER: SignalWeights(embedding=0.5, name=0.3, type=0.1, graph=0.1),
    EntityType.CHARACTER_STATE: SignalWeights(embedding=0.5, name=0.3, type=0.1, graph=0.1),
    EntityType.ARC: SignalWeights(embedding=0.5, name=0.3, type=0.1, graph=0.1),
}

# Maximum variance of values in [0, 1] (e.g. [0, 1]); normalizes confidence
MAX_SIGNAL_VARIANCE = 0.25

# Pairs of distinct types that may still denote the same entity
COMPATIBLE_TYPES = {
    (EntityType.CHARACTER.value, EntityType.CHARACTER_STATE.value),
    (EntityType.CHARACTER_STATE.value, EntityType.CHARACTER.value),
}
COMPATIBLE_TYPE_SCORE = 0.8


@dataclass
class SignalBreakdown:
    """Individual signal scores for one candidate/entity pair."""

    embedding: float
    name: float
    type: float
    graph: float

    def values(self) -> list[float]:
        return [self.embedding, self.name, self.type, self.graph]


@dataclass
class ScoredCandidate:
    """An existing entity scored against a candidate."""

    entity: ExistingEntity
    score: float
    """Weighted score (0-1, higher = more similar)."""

    signals: SignalBreakdown
    confidence: float
    """Signal agreement (0-1, higher = signals agree)."""


@dataclass
class GraphContext:
    """Where an entity occurs in the graph."""

    segment_ids: list[str] = field(default_factory=list)  # pyright: ignore[reportUnknownVariableType]
    neighbor_entity_ids: list[str] = field(default_factory=list)  # pyright: ignore[reportUnknownVariableType]


GraphContextAccessor = Callable[[str], GraphContext | Awaitable[GraphContext] | None]
"""Caller-supplied lookup of an existing entity's graph context by id."""


# ── Embedding Similarity ────────────────────────────────────────────────────


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors.

    Returns a value in [-1, 1]; 0 if the lengths differ, either vector is
    empty, either norm is zero, or the arithmetic overflows.
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    a_np = np.asarray(a, dtype=np.float64)
    b_np = np.asarray(b, dtype=np.float64)

    with np.errstate(over="ignore", invalid="ignore"):
        denom = float(np.linalg.norm(a_np) * np.linalg.norm(b_np))
        if denom == 0 or not np.isfinite(denom):
            return 0.0
        sim = float(np.dot(a_np, b_np) / denom)

    return sim if np.isfinite(sim) else 0.0


def score_embedding_similarity(candidate: EntityCandidate, existing: ExistingEntity) -> float:
    """Embedding signal: cosine similarity clamped to [0, 1]."""
    if not existing.embedding:
        return 0.0
    return max(0.0, cosine_similarity(candidate.embedding, existing.embedding))


# ── Name Similarity ─────────────────────────────────────────────────────────


def levenshtein_similarity(a: str, b: str) -> float:
    """``1 - edit_distance / max_length``; 1.0 for two empty strings."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a, b) / max_len


def score_name_similarity(
    candidate_name: str,
    existing_name: str,
    existing_aliases: Sequence[str] | None = None,
) -> float:
    """Best name match across the existing name and its aliases.

    Strategies per name, best wins:
    - Exact match after normalization: 1.0 (returns immediately)
    - Substring containment: 0.9
    - Phonetic match (double metaphone): 0.85
    - Alias pattern score
    - Token overlap (Jaccard) * 0.8
    - Levenshtein similarity * 0.7
    """
    names_to_check = [existing_name, *(existing_aliases or [])]
    norm_candidate = normalize_name_for_matching(candidate_name)
    best_score = 0.0

    for name in names_to_check:
        norm_name = normalize_name_for_matching(name)

        if norm_candidate == norm_name:
            return 1.0

        if is_substring_match(candidate_name, name):
            best_score = max(best_score, 0.9)
            continue

        if phonetic_match(candidate_name, name):
            best_score = max(best_score, 0.85)

        best_score = max(best_score, compute_alias_pattern_score(candidate_name, name))
        best_score = max(best_score, token_overlap(candidate_name, name) * 0.8)
        best_score = max(best_score, levenshtein_similarity(norm_candidate, norm_name) * 0.7)

    return min(1.0, best_score)


# ── Type Matching ───────────────────────────────────────────────────────────


def score_type_match(candidate_type: str | Enum, existing_type: str | Enum) -> float:
    """Type signal: 1.0 identical, 0.8 for character/character_state, else 0."""
    a = type_key(candidate_type)
    b = type_key(existing_type)

    if a == b:
        return 1.0
    if (a, b) in COMPATIBLE_TYPES:
        return COMPATIBLE_TYPE_SCORE
    return 0.0


# ── Graph Context ───────────────────────────────────────────────────────────


def score_graph_context(
    candidate_context: GraphContext,
    existing_context: GraphContext,
) -> float:
    """Graph context signal. Always 0 in this version.

    Graph edges are only written after resolution, so during a first
    extraction there is no context to compare. Segment and neighbor overlap
    scoring belongs to incremental re-analysis, which is not wired up yet.
    """
    return 0.0


def resolve_graph_context(
    get_graph_context: GraphContextAccessor | None,
    entity_id: str,
) -> GraphContext | None:
    """Call the accessor synchronously.

    An accessor that hands back an awaitable has no context for this
    scoring round: the awaitable is discarded, not awaited.
    """
    if get_graph_context is None:
        return None

    context = get_graph_context(entity_id)
    if inspect.isawaitable(context):
        if inspect.iscoroutine(context):
            context.close()
        logger.debug("Graph context for %s is not available synchronously; ignoring", entity_id)
        return None

    return context


# ── Combined Scoring ────────────────────────────────────────────────────────


def compute_signal_breakdown(
    candidate: EntityCandidate,
    existing: ExistingEntity,
    candidate_context: GraphContext | None = None,
    existing_context: GraphContext | None = None,
) -> SignalBreakdown:
    """Compute all four signals for a candidate/entity pair."""
    graph = 0.0
    if candidate_context is not None and existing_context is not None:
        graph = score_graph_context(candidate_context, existing_context)

    return SignalBreakdown(
        embedding=score_embedding_similarity(candidate, existing),
        name=score_name_similarity(candidate.name, existing.name, existing.aliases),
        type=score_type_match(candidate.type, existing.type),
        graph=graph,
    )


def compute_weighted_score(signals: SignalBreakdown, weights: SignalWeights) -> float:
    """Dot product of signals and weights."""
    return (
        signals.embedding * weights.embedding
        + signals.name * weights.name
        + signals.type * weights.type
        + signals.graph * weights.graph
    )


def compute_confidence(signals: SignalBreakdown) -> float:
    """Confidence from the agreement of the non-zero signals.

    Lower variance = higher confidence. Missing (zero) signals are ignored
    rather than counted as disagreement.
    """
    non_zero = [v for v in signals.values() if v > 0]
    if not non_zero:
        return 0.0

    variance = float(np.var(non_zero))
    normalized_variance = min(max(variance / MAX_SIGNAL_VARIANCE, 0.0), 1.0)
    return 1.0 - normalized_variance


class SimilarityScorer:
    """Scores entity candidates against existing entities.

    Usage:
        scorer = SimilarityScorer()
        ranked = scorer.score_candidates(candidate, existing_entities)
        best = ranked[0] if ranked else None
    """

    def __init__(
        self,
        weights_by_type: dict[EntityType, SignalWeights] | None = None,
        default_weights: SignalWeights | None = None,
    ) -> None:
        """Initialize the scorer.

        Args:
            weights_by_type: Weight profile per entity type.
            default_weights: Profile for types missing from ``weights_by_type``.
        """
        self._weights_by_type = WEIGHTS_BY_TYPE if weights_by_type is None else weights_by_type
        self._default_weights = default_weights or DEFAULT_WEIGHTS

    def weights_for(self, entity_type: EntityType) -> SignalWeights:
        return self._weights_by_type.get(entity_type, self._default_weights)

    def score_candidate(
        self,
        candidate: EntityCandidate,
        existing: ExistingEntity,
        candidate_context: GraphContext | None = None,
        existing_context: GraphContext | None = None,
    ) -> ScoredCandidate:
        """Score a candidate against one existing entity."""
        signals = compute_signal_breakdown(candidate, existing, candidate_context, existing_context)

        return ScoredCandidate(
            entity=existing,
            score=compute_weighted_score(signals, self.weights_for(candidate.type)),
            signals=signals,
            confidence=compute_confidence(signals),
        )

    def score_candidates(
        self,
        candidate: EntityCandidate,
        existing_entities: Sequence[ExistingEntity],
        get_graph_context: GraphContextAccessor | None = None,
    ) -> list[ScoredCandidate]:
        """Score a candidate against many entities, best first."""
        candidate_context = GraphContext(
            segment_ids=[m.segment_id for m in candidate.mentions if m.segment_id is not None],
        )

        scored = [
            self.score_candidate(
                candidate,
                existing,
                candidate_context,
                resolve_graph_context(get_graph_context, existing.id),
            )
            for existing in existing_entities
        ]

        scored.sort(key=lambda s: s.score, reverse=True)
        return scored


_default_scorer = SimilarityScorer()


def score_candidate(
    candidate: EntityCandidate,
    existing: ExistingEntity,
    candidate_context: GraphContext | None = None,
    existing_context: GraphContext | None = None,
) -> ScoredCandidate:
    """Score a candidate against one entity using the default weights."""
    return _default_scorer.score_candidate(candidate, existing, candidate_context, existing_context)


def score_candidates(
    candidate: EntityCandidate,
    existing_entities: Sequence[ExistingEntity],
    get_graph_context: GraphContextAccessor | None = None,
) -> list[ScoredCandidate]:
    """Score a candidate against many entities using the default weights."""
    return _default_scorer.score_candidates(candidate, existing_entities, get_graph_context)
