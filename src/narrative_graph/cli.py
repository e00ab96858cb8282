"""CLI for narrative-graph.

Commands:
    resolve <input>             - Resolve extracted candidates against existing entities
    candidates <input> <name>   - Rank merge targets for one cluster
    inspect-name <name> [other] - Show how a name is normalized and matched
    merge-review <input>        - List near-duplicate existing entities

Input files are JSON:
    {
      "document_id": "...", "user_id": "...",
      "candidates": [EntityCandidate, ...],
      "existing": [ExistingEntity, ...],
      "config": {...}   # optional ResolutionConfig overrides
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from narrative_graph.config import settings
from narrative_graph.models import EntityCandidate, ExistingEntity
from narrative_graph.resolution.alias_patterns import (
    compute_alias_pattern_score,
    extract_epithet,
    extract_title,
    generate_alias_variants,
    get_name_tokens,
    get_phonetic_codes,
    is_likely_epithet,
    normalize_name_for_matching,
)
from narrative_graph.resolution.clustering import cluster_across_segments
from narrative_graph.resolution.merge_review import find_merge_candidates
from narrative_graph.resolution.phonetics import ensure_phonetic_ready
from narrative_graph.resolution.resolver import (
    EntityResolver,
    ResolverOptions,
    map_to_legacy_decision,
    resolve_entities,
)
from narrative_graph.resolution.similarity import score_name_similarity
from narrative_graph.resolution.thresholds import ClusterResolutionResult, ResolutionConfig

app = typer.Typer(
    name="narrative-graph",
    help="narrative-graph: entity resolution for narrative knowledge graphs",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

DECISION_STYLES = {
    "MERGE": "green",
    "REVIEW": "yellow",
    "CREATE": "cyan",
}


def configure_logging(verbose: bool = False) -> None:
    """Send log records to stderr through Rich."""
    level = logging.DEBUG if verbose else settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def load_input(path: Path) -> dict[str, Any]:
    """Read a JSON input file, exiting with an error message on failure."""
    try:
        data = json.loads(path.read_text())
    except OSError as e:
        console.print(f"[red]Error:[/red] Cannot read {path}: {e}")
        raise typer.Exit(1) from None
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] Invalid JSON in {path}: {e}")
        raise typer.Exit(1) from None

    if not isinstance(data, dict):
        console.print(f"[red]Error:[/red] Expected a JSON object in {path}")
        raise typer.Exit(1)

    return data


def parse_entities(
    data: dict[str, Any],
) -> tuple[list[EntityCandidate], list[ExistingEntity]]:
    """Validate the ``candidates`` and ``existing`` lists of an input file."""
    try:
        candidates = [EntityCandidate.model_validate(c) for c in data.get("candidates", [])]
        existing = [ExistingEntity.model_validate(e) for e in data.get("existing", [])]
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid entity data:\n{e}")
        raise typer.Exit(1) from None
    return candidates, existing


def result_to_dict(result: ClusterResolutionResult) -> dict[str, Any]:
    """JSON-ready view of one cluster's resolution."""
    signals = result.signals
    return {
        "primary_name": result.cluster.primary_name,
        "type": result.cluster.type.value,
        "aliases": result.cluster.aliases,
        "member_count": len(result.cluster.members),
        "decision": result.decision.value,
        "legacy_decision": map_to_legacy_decision(result).value,
        "target_id": result.target_id,
        "score": round(result.score, 4),
        "confidence": round(result.confidence, 4),
        "reason": result.reason,
        "signals": (
            {
                "embedding": round(signals.embedding, 4),
                "name": round(signals.name, 4),
                "type": round(signals.type, 4),
                "graph": round(signals.graph, 4),
            }
            if signals
            else None
        ),
        "new_facets": (
            [f.model_dump() for f in result.new_facets] if result.new_facets is not None else None
        ),
    }


@app.command()
def resolve(
    input_file: Annotated[Path, typer.Argument(help="JSON file with candidates and existing entities")],
    as_json: Annotated[
        bool, typer.Option("--json", help="Print machine-readable JSON")
    ] = False,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show debug logging")
    ] = False,
):
    """Resolve extracted candidates against existing entities.

    Clusters the candidates, then decides MERGE / REVIEW / CREATE per cluster.
    """
    configure_logging(verbose)
    data = load_input(input_file)
    candidates, existing = parse_entities(data)

    options = ResolverOptions(
        document_id=str(data.get("document_id", input_file.stem)),
        user_id=str(data.get("user_id", "")),
        config=data.get("config"),
    )

    try:
        outcome = resolve_entities(candidates, existing, options)
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid config overrides:\n{e}")
        raise typer.Exit(1) from None

    stats = outcome.stats

    if as_json:
        payload = {
            "document_id": options.document_id,
            "results": [result_to_dict(r) for r in outcome.results],
            "stats": {
                "total_clusters": stats.total_clusters,
                "auto_merged": stats.auto_merged,
                "needs_review": stats.needs_review,
                "created": stats.created,
                "llm_refinement_needed": stats.llm_refinement_needed,
            },
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    table = Table(title=f"Resolution: {options.document_id}")
    table.add_column("Cluster", style="bold")
    table.add_column("Type")
    table.add_column("Aliases")
    table.add_column("Decision")
    table.add_column("Target")
    table.add_column("Score", justify="right")
    table.add_column("Conf", justify="right")
    table.add_column("Reason")
    table.add_column("Legacy")

    for r in outcome.results:
        style = DECISION_STYLES.get(r.decision.value, "white")
        table.add_row(
            r.cluster.primary_name,
            r.cluster.type.value,
            ", ".join(a for a in r.cluster.aliases if a != r.cluster.primary_name) or "-",
            f"[{style}]{r.decision.value}[/{style}]",
            r.target_id or "-",
            f"{r.score:.3f}",
            f"{r.confidence:.2f}",
            r.reason,
            map_to_legacy_decision(r).value,
        )

    console.print(table)

    panel_content = [
        f"[bold]Clusters:[/bold] {stats.total_clusters} (from {len(candidates)} candidates)",
        f"[bold]Merged:[/bold] {stats.auto_merged}",
        f"[bold]Review:[/bold] {stats.needs_review}",
        f"[bold]Created:[/bold] {stats.created}",
        f"[bold]Refinement recommended:[/bold] {stats.llm_refinement_needed}",
    ]
    console.print(Panel("\n".join(panel_content), title="Stats"))


@app.command()
def candidates(
    input_file: Annotated[Path, typer.Argument(help="JSON file with candidates and existing entities")],
    name: Annotated[str, typer.Argument(help="Primary name or alias of the cluster to inspect")],
    limit: Annotated[int, typer.Option(help="Maximum number of candidates to show")] = 10,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show debug logging")
    ] = False,
):
    """Rank every same-type existing entity as a merge target for one cluster."""
    configure_logging(verbose)
    data = load_input(input_file)
    extracted, existing = parse_entities(data)

    ensure_phonetic_ready()
    try:
        config = ResolutionConfig.from_settings().with_overrides(data.get("config"))
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid config overrides:\n{e}")
        raise typer.Exit(1) from None
    clusters = cluster_across_segments(extracted, config.thresholds)

    wanted = name.lower()
    cluster = next(
        (
            c
            for c in clusters
            if c.primary_name.lower() == wanted or any(a.lower() == wanted for a in c.aliases)
        ),
        None,
    )
    if cluster is None:
        console.print(f"[red]Error:[/red] No cluster named: {name}")
        raise typer.Exit(1)

    ranked = EntityResolver(config).get_resolution_candidates(cluster, existing)

    if not ranked:
        console.print(f"[yellow]No {cluster.type.value} entities to compare with.[/yellow]")
        return

    table = Table(title=f"Candidates for {cluster.primary_name} ({cluster.type.value})")
    table.add_column("ID")
    table.add_column("Name", style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Conf", justify="right")
    table.add_column("Emb", justify="right")
    table.add_column("Name sim", justify="right")
    table.add_column("Type", justify="right")

    for scored in ranked[:limit]:
        table.add_row(
            scored.entity.id,
            scored.entity.name,
            f"{scored.score:.3f}",
            f"{scored.confidence:.2f}",
            f"{scored.signals.embedding:.2f}",
            f"{scored.signals.name:.2f}",
            f"{scored.signals.type:.2f}",
        )

    console.print(table)


@app.command("inspect-name")
def inspect_name(
    name: Annotated[str, typer.Argument(help="Name to inspect")],
    other: Annotated[
        str | None, typer.Argument(help="Optional second name to compare against")
    ] = None,
):
    """Show normalization, tokens and phonetic codes for a name."""
    ensure_phonetic_ready()

    panel_content = [
        f"[bold]Normalized:[/bold] {normalize_name_for_matching(name)}",
        f"[bold]Title:[/bold] {extract_title(name) or '-'}",
        f"[bold]Epithet suffix:[/bold] {extract_epithet(name) or '-'}",
        f"[bold]Tokens:[/bold] {', '.join(get_name_tokens(name)) or '-'}",
        f"[bold]Phonetic codes:[/bold] {', '.join(get_phonetic_codes(name)) or '-'}",
        f"[bold]Alias variants:[/bold] {', '.join(generate_alias_variants(name))}",
        f"[bold]Likely epithet:[/bold] {'yes' if is_likely_epithet(name) else 'no'}",
    ]

    if other is not None:
        panel_content.append("")
        panel_content.append(f"[bold]Compared with:[/bold] {other}")
        panel_content.append(
            f"[bold]Alias pattern score:[/bold] {compute_alias_pattern_score(name, other):.2f}"
        )
        panel_content.append(
            f"[bold]Name similarity:[/bold] {score_name_similarity(name, other):.2f}"
        )

    console.print(Panel("\n".join(panel_content), title=f"Name: {name}"))


@app.command("merge-review")
def merge_review(
    input_file: Annotated[Path, typer.Argument(help="JSON file with existing entities")],
    threshold: Annotated[
        float | None, typer.Option(help="Minimum embedding similarity (default from settings)")
    ] = None,
):
    """List same-type existing entities whose embeddings are near-duplicates."""
    data = load_input(input_file)
    _, existing = parse_entities(data)

    pairs = find_merge_candidates(existing, threshold)

    if not pairs:
        console.print("[yellow]No merge candidates found.[/yellow]")
        return

    table = Table(title="Merge Candidates")
    table.add_column("Entity 1")
    table.add_column("Entity 2")
    table.add_column("Type")
    table.add_column("Similarity", justify="right")

    for pair in pairs:
        table.add_row(
            f"{pair.entity1.name} ({pair.entity1.id})",
            f"{pair.entity2.name} ({pair.entity2.id})",
            pair.entity1.type,
            f"{pair.similarity:.3f}",
        )

    console.print(table)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
