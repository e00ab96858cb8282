"""Shared pytest fixtures for narrative-graph tests."""

from __future__ import annotations

from collections.abc import Callable, Generator

import pytest

from narrative_graph.models import EntityCandidate, EntityType, ExistingEntity, Facet, Mention
from narrative_graph.resolution import phonetics

# Type aliases for factory fixtures
MakeCandidate = Callable[..., EntityCandidate]
MakeExisting = Callable[..., ExistingEntity]


@pytest.fixture(autouse=True)
def _reset_phonetics() -> Generator[None, None, None]:
    """Every test starts and ends without a loaded phonetic encoder."""
    phonetics.reset_phonetic_encoder()
    yield
    phonetics.reset_phonetic_encoder()


@pytest.fixture
def phonetics_ready() -> None:
    """Load the real double metaphone encoder for this test."""
    phonetics.ensure_phonetic_ready()


@pytest.fixture
def make_candidate() -> MakeCandidate:
    """Factory fixture for creating EntityCandidate instances."""

    def _make(
        name: str,
        *,
        type: EntityType = EntityType.CHARACTER,
        embedding: list[float] | None = None,
        segment_id: str = "seg-1",
        facets: list[tuple[str, str]] | None = None,
        mentions: list[str] | None = None,
        document_order: int | None = None,
    ) -> EntityCandidate:
        return EntityCandidate(
            name=name,
            type=type,
            embedding=embedding or [],
            facets=[Facet(type=t, content=c) for t, c in facets or []],
            mentions=[Mention(text=m, segment_id=segment_id) for m in mentions or []],
            segment_id=segment_id,
            document_order=document_order,
        )

    return _make


@pytest.fixture
def make_existing() -> MakeExisting:
    """Factory fixture for creating ExistingEntity instances."""

    def _make(
        id: str,
        name: str,
        *,
        type: str = "character",
        embedding: list[float] | None = None,
        aliases: list[str] | None = None,
    ) -> ExistingEntity:
        return ExistingEntity(
            id=id,
            name=name,
            type=type,
            embedding=embedding,
            aliases=aliases,
        )

    return _make
