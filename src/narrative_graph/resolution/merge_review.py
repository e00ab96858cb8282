"""Post-extraction merge review.

Resolution runs per document, so near-duplicates can still slip into the
graph (two documents, two clusters, neither above the merge threshold).
This pass surfaces same-type entity pairs whose embeddings are close enough
to deserve a second look. It only reports; merging is up to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from narrative_graph.config import settings
from narrative_graph.models.candidate import ExistingEntity
from narrative_graph.models.enums import type_key
from narrative_graph.resolution.similarity import cosine_similarity

logger = logging.getLogger(__name__)


@dataclass
class MergeCandidatePair:
    """Two entities that may be the same."""

    entity1: ExistingEntity
    entity2: ExistingEntity
    similarity: float
    """Cosine similarity of the two embeddings."""


def find_merge_candidates(
    entities: Sequence[ExistingEntity],
    similarity_threshold: float | None = None,
) -> list[MergeCandidatePair]:
    """Find same-type pairs whose embeddings are at least ``similarity_threshold`` apart.

    Entities without an embedding are skipped. Pairs keep input order
    (``entity1`` comes first) and are sorted by similarity, highest first.
    """
    threshold = (
        settings.merge_review_similarity_threshold
        if similarity_threshold is None
        else similarity_threshold
    )
    pairs: list[MergeCandidatePair] = []

    for i, first in enumerate(entities):
        if not first.embedding:
            continue
        for second in entities[i + 1 :]:
            if not second.embedding or type_key(first.type) != type_key(second.type):
                continue

            similarity = cosine_similarity(first.embedding, second.embedding)
            if similarity >= threshold:
                pairs.append(MergeCandidatePair(first, second, similarity))

    pairs.sort(key=lambda p: p.similarity, reverse=True)
    logger.debug("Merge review: %d pairs at or above %.2f", len(pairs), threshold)
    return pairs
