"""Candidate pool retrieval via blocking indices.

Scoring every cluster against every existing entity is O(m * n). Blocking
builds three inverted indices once per resolution call and only scores the
entities that share a key with the cluster:

1. Name token index: "harry" -> {entity ids}   (names and aliases)
2. Phonetic code index: "HR" -> {entity ids}    (primary double metaphone)
3. Type index: "character" -> {entity ids}       (hard filter)

A candidate must share the cluster's type AND at least one token or phonetic
code. The index is built from immutable inputs and discarded after the call.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field

from narrative_graph.models.candidate import ExistingEntity
from narrative_graph.models.enums import type_key
from narrative_graph.resolution.alias_patterns import get_name_tokens, get_phonetic_codes
from narrative_graph.resolution.clustering import EntityCluster

logger = logging.getLogger(__name__)


def _index() -> defaultdict[str, set[str]]:
    return defaultdict(set)


@dataclass
class BlockingIndex:
    """Inverted indices over existing entities, keyed to entity ids."""

    by_name_token: defaultdict[str, set[str]] = field(default_factory=_index)
    by_phonetic_code: defaultdict[str, set[str]] = field(default_factory=_index)
    by_type: defaultdict[str, set[str]] = field(default_factory=_index)


@dataclass
class BlockingStats:
    """Index size summary for debugging."""

    name_token_count: int
    phonetic_code_count: int
    type_count: int
    avg_entities_per_token: float


def build_blocking_index(entities: Sequence[ExistingEntity]) -> BlockingIndex:
    """Build blocking indices from existing entities.

    Name tokens come from the name and every alias; phonetic codes from the
    name only.
    """
    index = BlockingIndex()

    for entity in entities:
        for name in [entity.name, *(entity.aliases or [])]:
            for token in get_name_tokens(name):
                index.by_name_token[token.lower()].add(entity.id)

        for code in get_phonetic_codes(entity.name):
            index.by_phonetic_code[code].add(entity.id)

        index.by_type[type_key(entity.type)].add(entity.id)

    return index


def get_candidate_ids(cluster: EntityCluster, index: BlockingIndex) -> set[str]:
    """Ids of same-type entities sharing at least one blocking key.

    Keys are the name tokens of the primary name and every alias, plus the
    phonetic codes of the primary name.
    """
    type_matches = index.by_type.get(type_key(cluster.type))
    if not type_matches:
        return set()

    keyed: set[str] = set()

    for name in [cluster.primary_name, *cluster.aliases]:
        for token in get_name_tokens(name):
            keyed |= index.by_name_token.get(token.lower(), set())

    for code in get_phonetic_codes(cluster.primary_name):
        keyed |= index.by_phonetic_code.get(code, set())

    return keyed & type_matches


def filter_by_blocking(
    cluster: EntityCluster,
    existing_entities: Sequence[ExistingEntity],
    index: BlockingIndex,
) -> list[ExistingEntity]:
    """Existing entities (in input order) that pass the blocking keys."""
    candidate_ids = get_candidate_ids(cluster, index)
    if not candidate_ids:
        return []

    return [e for e in existing_entities if e.id in candidate_ids]


def get_blocking_stats(index: BlockingIndex) -> BlockingStats:
    """Summarize index sizes."""
    token_count = len(index.by_name_token)
    total_token_entities = sum(len(ids) for ids in index.by_name_token.values())

    return BlockingStats(
        name_token_count=token_count,
        phonetic_code_count=len(index.by_phonetic_code),
        type_count=len(index.by_type),
        avg_entities_per_token=total_token_entities / token_count if token_count else 0.0,
    )
