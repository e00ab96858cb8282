"""Pydantic contracts for entities entering resolution.

``EntityCandidate`` is what the upstream extractor proposes for a segment;
``ExistingEntity`` is a graph-resident node supplied by the caller. Both are
read-only inputs: resolution never mutates or persists them.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from narrative_graph.models.enums import EntityType


class Facet(BaseModel):
    """A free-form attribute of an entity (e.g. appearance, role)."""

    type: str = Field(description="Facet kind (e.g. 'appearance', 'trait', 'role')")
    content: str = Field(description="Facet text")

    @property
    def dedup_key(self) -> str:
        """Key used to deduplicate facets across cluster members."""
        return f"{self.type}:{self.content}"


class Mention(BaseModel):
    """A textual mention of an entity."""

    text: str
    segment_id: str | None = None


class EntityCandidate(BaseModel):
    """One proposed entity mention from extraction, scoped to a segment."""

    name: str = Field(description="Surface name as extracted (e.g. 'Harry Potter')")
    type: EntityType
    embedding: list[float] = Field(  # pyright: ignore[reportUnknownVariableType]
        default_factory=list,
        description="Fixed-length embedding; empty when none was computed",
    )
    facets: list[Facet] = Field(default_factory=list)  # pyright: ignore[reportUnknownVariableType]
    mentions: list[Mention] = Field(default_factory=list)  # pyright: ignore[reportUnknownVariableType]
    segment_id: str = ""
    document_order: int | None = Field(
        default=None,
        description="Position hint within the document",
    )


class ExistingEntity(BaseModel):
    """A graph-resident entity that candidates are compared against."""

    id: str
    name: str
    type: str
    embedding: list[float] | None = None
    aliases: list[str] | None = None
    facets: list[Facet] = Field(default_factory=list)  # pyright: ignore[reportUnknownVariableType]
    mention_count: int = 0
