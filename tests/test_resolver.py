"""Tests for the resolution orchestrator."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

import pytest

from narrative_graph.models import EntityType, LegacyDecision, ResolutionDecision
from narrative_graph.resolution import phonetics
from narrative_graph.resolution.clustering import EntityCluster
from narrative_graph.resolution.resolver import (
    EntityResolver,
    ResolverOptions,
    get_resolution_candidates,
    map_to_legacy_decision,
    resolve_entities,
)
from narrative_graph.resolution.similarity import GraphContext
from narrative_graph.resolution.thresholds import ClusterResolutionResult, ResolutionConfig

if TYPE_CHECKING:
    from conftest import MakeCandidate, MakeExisting

E = [0.2, 0.5, 0.1]

# Unit vector at cosine 0.3 from [1, 0]
E_COS_03 = [0.3, math.sqrt(1 - 0.3**2)]


@pytest.fixture
def options() -> ResolverOptions:
    return ResolverOptions(document_id="doc-1", user_id="user-1")


class TestResolveEntities:
    """End-to-end resolution through clustering, blocking and thresholds."""

    def test_full_name_merges_into_short_name(
        self,
        make_candidate: MakeCandidate,
        make_existing: MakeExisting,
        options: ResolverOptions,
    ) -> None:
        outcome = resolve_entities(
            [make_candidate("Harry Potter", embedding=E)],
            [make_existing("e1", "Harry", embedding=E)],
            options,
        )

        assert len(outcome.results) == 1
        result = outcome.results[0]
        assert result.decision == ResolutionDecision.MERGE
        assert result.target_id == "e1"
        assert result.score == pytest.approx(0.87)
        assert outcome.stats.auto_merged == 1
        assert outcome.stats.total_clusters == 1

    def test_phonetic_alias_without_embeddings_creates(
        self,
        make_candidate: MakeCandidate,
        make_existing: MakeExisting,
        options: ResolverOptions,
    ) -> None:
        """Embedding-heavy weights keep a clear phonetic alias below review."""
        outcome = resolve_entities(
            [make_candidate("Drakula")],
            [make_existing("e2", "Dracula")],
            options,
        )

        result = outcome.results[0]
        assert result.decision == ResolutionDecision.CREATE
        assert result.score == pytest.approx(0.355)
        assert result.signals is not None
        assert result.signals.name == pytest.approx(0.85)
        assert result.reason == "No candidates above review threshold"
        assert outcome.stats.created == 1

    def test_loads_phonetics(
        self, make_candidate: MakeCandidate, options: ResolverOptions
    ) -> None:
        assert not phonetics.is_phonetic_ready()

        resolve_entities([make_candidate("Harry")], [], options)

        assert phonetics.is_phonetic_ready()

    def test_no_existing_entities(
        self, make_candidate: MakeCandidate, options: ResolverOptions
    ) -> None:
        outcome = resolve_entities([make_candidate("Harry")], [], options)

        assert outcome.results[0].decision == ResolutionDecision.CREATE
        assert outcome.results[0].reason == "No candidates found"

    def test_no_candidates(self, options: ResolverOptions) -> None:
        outcome = resolve_entities([], [], options)

        assert outcome.results == []
        assert outcome.stats.total_clusters == 0

    def test_aliases_resolved_once(
        self,
        make_candidate: MakeCandidate,
        make_existing: MakeExisting,
        options: ResolverOptions,
    ) -> None:
        outcome = resolve_entities(
            [
                make_candidate("Harry", embedding=E, segment_id="s1"),
                make_candidate("Harry Potter", embedding=E, segment_id="s1"),
                make_candidate("Harry", embedding=E, segment_id="s2"),
                make_candidate("Hogwarts", type=EntityType.LOCATION, segment_id="s2"),
            ],
            [make_existing("e1", "Harry Potter", embedding=E)],
            options,
        )

        assert outcome.stats.total_clusters == 2
        by_name = {r.cluster.primary_name: r for r in outcome.results}
        assert by_name["Harry Potter"].decision == ResolutionDecision.MERGE
        assert by_name["Harry Potter"].target_id == "e1"
        assert by_name["Hogwarts"].decision == ResolutionDecision.CREATE

    def test_blocking_excludes_other_types(
        self,
        make_candidate: MakeCandidate,
        make_existing: MakeExisting,
        options: ResolverOptions,
    ) -> None:
        outcome = resolve_entities(
            [make_candidate("Paris", embedding=E)],
            [make_existing("loc", "Paris", type="location", embedding=E)],
            options,
        )

        result = outcome.results[0]
        assert result.decision == ResolutionDecision.CREATE
        assert result.reason == "No candidates found"

    def test_review_flagged_for_refinement(
        self,
        make_candidate: MakeCandidate,
        make_existing: MakeExisting,
        options: ResolverOptions,
    ) -> None:
        # signals: embedding 0.3, name 1.0, type 1.0 -> score 0.55, confidence ~0.56
        outcome = resolve_entities(
            [make_candidate("Voldemort", embedding=[1.0, 0.0])],
            [make_existing("e1", "Lord Voldemort", embedding=E_COS_03)],
            options,
        )

        result = outcome.results[0]
        assert result.decision == ResolutionDecision.REVIEW
        assert result.score == pytest.approx(0.55)
        assert result.confidence < 0.6
        assert outcome.stats.needs_review == 1
        assert outcome.stats.llm_refinement_needed == 1

    def test_refinement_count_disabled(
        self, make_candidate: MakeCandidate, make_existing: MakeExisting
    ) -> None:
        outcome = resolve_entities(
            [make_candidate("Voldemort", embedding=[1.0, 0.0])],
            [make_existing("e1", "Lord Voldemort", embedding=E_COS_03)],
            ResolverOptions(
                document_id="doc-1",
                user_id="user-1",
                config={"use_llm_refinement": False},
            ),
        )

        assert outcome.stats.needs_review == 1
        assert outcome.stats.llm_refinement_needed == 0

    def test_weight_overrides_honoured(
        self, make_candidate: MakeCandidate, make_existing: MakeExisting
    ) -> None:
        config = {
            "weights_by_type": {
                "character": {"embedding": 0.0, "name": 0.9, "type": 0.1, "graph": 0.0},
            }
        }

        outcome = resolve_entities(
            [make_candidate("Drakula")],
            [make_existing("e2", "Dracula")],
            ResolverOptions(document_id="doc-1", user_id="user-1", config=config),
        )

        result = outcome.results[0]
        assert result.score == pytest.approx(0.865)
        assert result.decision == ResolutionDecision.MERGE

    def test_threshold_overrides_honoured(
        self, make_candidate: MakeCandidate, make_existing: MakeExisting
    ) -> None:
        outcome = resolve_entities(
            [make_candidate("Harry Potter", embedding=E)],
            [make_existing("e1", "Harry", embedding=E)],
            ResolverOptions(
                document_id="doc-1",
                user_id="user-1",
                config={"thresholds": {"auto_merge": 0.95, "review": 0.5}},
            ),
        )

        result = outcome.results[0]
        assert result.decision == ResolutionDecision.MERGE
        assert result.reason.startswith("Moderate score (0.870)")

    def test_async_graph_context_ignored(
        self,
        make_candidate: MakeCandidate,
        make_existing: MakeExisting,
        options: ResolverOptions,
    ) -> None:
        async def _lookup(entity_id: str) -> GraphContext:
            return GraphContext(neighbor_entity_ids=[entity_id])

        outcome = resolve_entities(
            [make_candidate("Harry Potter", embedding=E)],
            [make_existing("e1", "Harry", embedding=E)],
            options,
            get_graph_context=_lookup,
        )

        assert outcome.results[0].signals is not None
        assert outcome.results[0].signals.graph == 0.0

    def test_phonetic_load_failure_propagates(
        self,
        monkeypatch: pytest.MonkeyPatch,
        make_candidate: MakeCandidate,
        options: ResolverOptions,
    ) -> None:
        def _broken_load() -> phonetics.DoubleMetaphoneFn:
            raise ImportError("No module named 'metaphone'")

        monkeypatch.setattr(phonetics, "_load_double_metaphone", _broken_load)

        with pytest.raises(ImportError):
            resolve_entities([make_candidate("Harry")], [], options)
        with pytest.raises(ImportError):
            resolve_entities([make_candidate("Harry")], [], options)


class TestEntityResolver:
    """Tests for the EntityResolver class."""

    def test_default_config_from_settings(self) -> None:
        resolver = EntityResolver()
        assert resolver.config.thresholds.auto_merge == 0.85

    def test_resolve(self, make_candidate: MakeCandidate, make_existing: MakeExisting) -> None:
        resolver = EntityResolver(ResolutionConfig())

        outcome = resolver.resolve(
            [make_candidate("Harry Potter", embedding=E)],
            [make_existing("e1", "Harry", embedding=E)],
            document_id="doc-1",
        )

        assert outcome.results[0].decision == ResolutionDecision.MERGE

    def test_resolution_candidates_same_type_without_blocking(
        self, make_candidate: MakeCandidate, make_existing: MakeExisting
    ) -> None:
        cluster = EntityCluster.from_candidate(make_candidate("Harry", embedding=E))
        existing = [
            make_existing("ron", "Ron", embedding=[0.0, 0.0, 1.0]),
            make_existing("loc", "Harry", type="location", embedding=E),
            make_existing("e1", "Harry", embedding=E),
        ]

        ranked = get_resolution_candidates(cluster, existing)

        assert [s.entity.id for s in ranked] == ["e1", "ron"]


class TestMapToLegacyDecision:
    """Tests for the legacy decision shim."""

    def _result(
        self,
        make_candidate: MakeCandidate,
        decision: ResolutionDecision,
        new_facets: list | None,
    ) -> ClusterResolutionResult:
        return ClusterResolutionResult(
            decision=decision,
            score=0.9,
            confidence=0.9,
            reason="test",
            cluster=EntityCluster.from_candidate(make_candidate("Harry")),
            new_facets=new_facets,
        )

    def test_merge_with_facets(self, make_candidate: MakeCandidate) -> None:
        facets = make_candidate("Harry", facets=[("trait", "brave")]).facets
        result = self._result(make_candidate, ResolutionDecision.MERGE, facets)
        assert map_to_legacy_decision(result) == LegacyDecision.ADD_FACET

    def test_merge_without_facets(self, make_candidate: MakeCandidate) -> None:
        result = self._result(make_candidate, ResolutionDecision.MERGE, [])
        assert map_to_legacy_decision(result) == LegacyDecision.MERGE

    def test_review_is_new(self, make_candidate: MakeCandidate) -> None:
        result = self._result(make_candidate, ResolutionDecision.REVIEW, [])
        assert map_to_legacy_decision(result) == LegacyDecision.NEW

    def test_create_is_new(self, make_candidate: MakeCandidate) -> None:
        result = self._result(make_candidate, ResolutionDecision.CREATE, None)
        assert map_to_legacy_decision(result) == LegacyDecision.NEW
