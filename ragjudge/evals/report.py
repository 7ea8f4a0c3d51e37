"""Rich console reports for the CLI commands."""

from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console
from rich.table import Table

from ragjudge.config import QAFilterOptions
from ragjudge.schemas.chunks import FilteredChunk
from ragjudge.schemas.evaluation import PipelineResult, QAPair
from ragjudge.schemas.relationships import Relationship
from ragjudge.schemas.suggestions import SuggestedQuestion

console = Console()


def _fmt(score: float | None) -> str:
    if score is None:
        return "[dim]-[/dim]"
    color = "green" if score >= 0.8 else "yellow" if score >= 0.5 else "red"
    return f"[{color}]{score:.2f}[/{color}]"


def _clip(text: str, width: int = 50) -> str:
    return text[:width] + ("..." if len(text) > width else "")


def _decision(pair: QAPair, thresholds: QAFilterOptions | None) -> str:
    evaluation = pair.evaluation
    if evaluation is None:
        return "[dim]UNSCORED[/dim]"
    if thresholds is None or evaluation.passes_thresholds(
        thresholds.min_faithfulness,
        thresholds.min_relevancy,
        thresholds.min_answerability,
    ):
        return "[green]ACCEPT[/green]"
    return "[red]REJECT[/red]"


def _pair_row(pair: QAPair, decision: str) -> list[str]:
    evaluation = pair.evaluation
    return [
        pair.source_id or "",
        _clip(pair.question),
        _fmt(evaluation.faithfulness if evaluation else None),
        _fmt(evaluation.relevancy if evaluation else None),
        _fmt(evaluation.answerability if evaluation else None),
        _fmt(evaluation.overall_score if evaluation else None),
        decision,
    ]


def print_qa_report(results: Sequence[PipelineResult]) -> None:
    """Print kept QA pairs per source plus aggregate pass rate."""
    kept = [pair for result in results for pair in result.qa_pairs]
    if not kept and not any(result.generated_count for result in results):
        console.print("[yellow]No QA pairs generated.[/yellow]")
        return

    table = Table(title="QA Pairs", show_lines=True)
    table.add_column("Source", style="magenta")
    table.add_column("Question", style="cyan", max_width=50)
    table.add_column("Faithful", justify="center")
    table.add_column("Relevant", justify="center")
    table.add_column("Answerable", justify="center")
    table.add_column("Overall", justify="center")
    table.add_column("Decision", justify="center")

    for pair in kept:
        table.add_row(*_pair_row(pair, _decision(pair, None)))

    console.print(table)

    generated = sum(result.generated_count for result in results)
    unscored = sum(1 for pair in kept if pair.evaluation is None)
    accepted = len(kept) - unscored
    rejected = generated - len(kept)
    console.print("\n[bold]Aggregate Metrics:[/bold]")
    console.print(f"  Sources processed: {len(results)}")
    console.print(f"  Pairs generated: {generated}")
    console.print(
        f"  Decisions: [green]{accepted} ACCEPT[/green] | [red]{rejected} REJECT[/red]"
        + (f" | [dim]{unscored} UNSCORED[/dim]" if unscored else "")
    )
    if generated and not unscored:
        console.print(f"  Pass Rate: {accepted / generated * 100:.0f}%\n")


def print_evaluation_report(
    pairs: Sequence[QAPair], thresholds: QAFilterOptions | None = None
) -> None:
    """Print every pair: ACCEPT or REJECT against ``thresholds``, UNSCORED if never judged."""
    thresholds = thresholds or QAFilterOptions()
    if not pairs:
        console.print("[yellow]No results to display.[/yellow]")
        return

    table = Table(title="Evaluation Results", show_lines=True)
    table.add_column("Source", style="magenta")
    table.add_column("Question", style="cyan", max_width=50)
    table.add_column("Faithful", justify="center")
    table.add_column("Relevant", justify="center")
    table.add_column("Answerable", justify="center")
    table.add_column("Overall", justify="center")
    table.add_column("Decision", justify="center")

    for pair in pairs:
        table.add_row(*_pair_row(pair, _decision(pair, thresholds)))

    console.print(table)


def print_relationship_report(relationships: Sequence[Relationship]) -> None:
    if not relationships:
        console.print("[yellow]No relationships found.[/yellow]")
        return

    table = Table(title="Fragment Relationships", show_lines=True)
    table.add_column("Source", style="cyan")
    table.add_column("Target", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Confidence", justify="center")
    table.add_column("Bidirectional", justify="center")
    table.add_column("Explanation", max_width=60)

    for rel in relationships:
        table.add_row(
            rel.source_id,
            rel.target_id,
            rel.type.value,
            _fmt(rel.confidence),
            "yes" if rel.is_bidirectional else "no",
            rel.explanation or "",
        )

    console.print(table)

    by_type: dict[str, int] = {}
    for rel in relationships:
        by_type[rel.type.value] = by_type.get(rel.type.value, 0) + 1
    console.print("\n[bold]By type:[/bold]")
    for name, count in sorted(by_type.items(), key=lambda item: (-item[1], item[0])):
        console.print(f"  {name}: {count}")
    console.print()


def print_chunk_report(chunks: Sequence[FilteredChunk], total: int) -> None:
    """Print the chunks that passed filtering, out of ``total`` assessed."""
    if not chunks:
        console.print(f"[yellow]No chunks passed filtering (0 of {total}).[/yellow]")
        return

    table = Table(title="Filtered Chunks", show_lines=True)
    table.add_column("Chunk", style="magenta")
    table.add_column("Preview", style="cyan", max_width=50)
    table.add_column("Relevance", justify="center")
    table.add_column("Quality", justify="center")
    table.add_column("Combined", justify="center")
    table.add_column("Confidence", justify="center")
    table.add_column("Reason", max_width=40)

    for chunk in chunks:
        table.add_row(
            chunk.fragment.id,
            _clip(chunk.fragment.content),
            _fmt(chunk.relevance_score),
            _fmt(chunk.quality_score),
            _fmt(chunk.combined_score),
            _fmt(chunk.assessment.confidence),
            chunk.reason,
        )

    console.print(table)
    console.print(f"\n  Kept {len(chunks)} of {total} chunks\n")


def print_suggestion_report(suggestions: Sequence[SuggestedQuestion]) -> None:
    if not suggestions:
        console.print("[yellow]No questions suggested.[/yellow]")
        return

    table = Table(title="Suggested Questions", show_lines=True)
    table.add_column("Question", style="cyan", max_width=60)
    table.add_column("Category", style="magenta")
    table.add_column("Relevance", justify="center")
    table.add_column("Reasoning", max_width=40)

    for suggestion in suggestions:
        table.add_row(
            suggestion.text,
            suggestion.category.value,
            _fmt(suggestion.relevance),
            suggestion.reasoning or "",
        )

    console.print(table)
