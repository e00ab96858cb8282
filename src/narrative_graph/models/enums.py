"""Enumerations for the narrative-graph data model."""

from enum import Enum


class EntityType(str, Enum):
    """What kind of narrative entity a candidate denotes.

    Each type has its own signal weight profile during scoring.
    """

    CHARACTER = "character"
    LOCATION = "location"
    EVENT = "event"
    CONCEPT = "concept"
    OTHER = "other"
    CHARACTER_STATE = "character_state"  # A character at a point in the story
    ARC = "arc"


class ResolutionDecision(str, Enum):
    """Outcome of resolving one cluster against the graph."""

    MERGE = "MERGE"  # Same entity as an existing node
    REVIEW = "REVIEW"  # Near-duplicate, needs a human (or external) decision
    CREATE = "CREATE"  # Genuinely new entity


class LegacyDecision(str, Enum):
    """Decision vocabulary used by older pipeline stages."""

    MERGE = "MERGE"
    UPDATE = "UPDATE"
    ADD_FACET = "ADD_FACET"
    NEW = "NEW"


def type_key(value: str | Enum) -> str:
    """Return the plain string form of an entity type.

    Existing graph entities carry free-form type strings while candidates
    carry ``EntityType`` members; indices and comparisons use this key.
    """
    if isinstance(value, Enum):
        return str(value.value)
    return value
