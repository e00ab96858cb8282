"""Entity resolution for narrative knowledge graphs.

Decides, for every extracted candidate, whether it is an entity already in
the graph (MERGE), a near-duplicate needing review (REVIEW), or new (CREATE).

Submodules:
- phonetics: Process-wide double metaphone encoder
- alias_patterns: Name normalization, tokens, alias and phonetic matching
- similarity: Multi-signal similarity scoring with per-type weighting
- clustering: Within- and cross-segment candidate clustering
- blocking: Inverted indices that limit which entities get scored
- thresholds: Three-tier decisions with signal veto and confidence promotion
- resolver: Main resolution algorithm
- merge_review: Post-extraction near-duplicate discovery
"""

from narrative_graph.resolution.merge_review import MergeCandidatePair, find_merge_candidates
from narrative_graph.resolution.phonetics import ensure_phonetic_ready
from narrative_graph.resolution.resolver import (
    EntityResolver,
    ResolverOptions,
    ResolveResult,
    get_resolution_candidates,
    map_to_legacy_decision,
    resolve_entities,
)
from narrative_graph.resolution.similarity import SimilarityScorer
from narrative_graph.resolution.thresholds import ResolutionConfig, ResolutionResult

__all__ = [
    "EntityResolver",
    "MergeCandidatePair",
    "ResolutionConfig",
    "ResolutionResult",
    "ResolveResult",
    "ResolverOptions",
    "SimilarityScorer",
    "ensure_phonetic_ready",
    "find_merge_candidates",
    "get_resolution_candidates",
    "map_to_legacy_decision",
    "resolve_entities",
]
