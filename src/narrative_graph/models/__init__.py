"""Data model for narrative-graph entity resolution."""

from narrative_graph.models.candidate import EntityCandidate, ExistingEntity, Facet, Mention
from narrative_graph.models.enums import EntityType, LegacyDecision, ResolutionDecision, type_key

__all__ = [
    "EntityCandidate",
    "EntityType",
    "ExistingEntity",
    "Facet",
    "LegacyDecision",
    "Mention",
    "ResolutionDecision",
    "type_key",
]
