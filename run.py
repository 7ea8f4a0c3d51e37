"""CLI entry point for ragjudge.

Usage:
    python run.py qa notes.txt                       # generate + judge QA pairs per paragraph
    python run.py qa notes.txt --skip-filtering      # keep every generated pair
    python run.py judge pairs.jsonl                  # score existing QA pairs
    python run.py relationships notes.txt            # relationships between paragraphs
    python run.py relationships notes.txt --source p1  # one paragraph against the rest
    python run.py chunks notes.txt --query "treaty"  # keep paragraphs relevant to a query
    python run.py suggest notes.txt                  # follow-up questions for a text
    python run.py --config my.toml qa notes.txt      # alternate judge settings
"""

from __future__ import annotations

import argparse
import asyncio
import json
import re
import sys
from pathlib import Path

from ragjudge.config import ChunkFilterOptions, get_settings, load_judge_settings
from ragjudge.evals.chunk_filter import ChunkFilter
from ragjudge.evals.quality_gate import QualityGate
from ragjudge.evals.report import (
    console,
    print_chunk_report,
    print_evaluation_report,
    print_qa_report,
    print_relationship_report,
    print_suggestion_report,
)
from ragjudge.generation.pipeline import GenerationPipeline
from ragjudge.generation.suggestions import QuestionSuggester
from ragjudge.logging_config import setup_logging
from ragjudge.models import create_completion_service
from ragjudge.prompts.library import build_prompt_library
from ragjudge.relationships.engine import RelationshipDiscoveryEngine
from ragjudge.schemas.evaluation import QAPair
from ragjudge.schemas.fragments import Fragment


def read_fragments(path: Path) -> list[Fragment]:
    """Split a text file on blank lines into fragments ``p1``, ``p2``, ..."""
    text = path.read_text(encoding="utf-8")
    paragraphs = [p.strip() for p in re.split(r"\n\s*\n", text) if p.strip()]
    return [
        Fragment(id=f"p{i}", content=paragraph, metadata={"path": str(path), "index": i - 1})
        for i, paragraph in enumerate(paragraphs, 1)
    ]


def read_qa_pairs(path: Path) -> list[QAPair]:
    """Read JSON lines with ``question``, ``answer`` and optional ``context``."""
    pairs: list[QAPair] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        pairs.append(QAPair.model_validate(json.loads(line)))
    return pairs


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="ragjudge: LLM-as-a-judge scoring for RAG datasets"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a ragjudge.toml (defaults to the one next to the package)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit structured logs as JSON lines on stderr",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    qa = sub.add_parser("qa", help="Generate QA pairs per paragraph and judge them")
    qa.add_argument("file", type=Path, help="Text file; paragraphs are separated by blank lines")
    qa.add_argument(
        "--skip-filtering",
        action="store_true",
        help="Keep every generated pair without calling the judges",
    )

    judge = sub.add_parser("judge", help="Score existing QA pairs without filtering")
    judge.add_argument("file", type=Path, help="JSON lines with question/answer/context")

    rel = sub.add_parser("relationships", help="Discover relationships between paragraphs")
    rel.add_argument("file", type=Path, help="Text file; paragraphs are separated by blank lines")
    rel.add_argument(
        "--source",
        default=None,
        help="Analyze only this paragraph id (e.g. p1) against all others",
    )

    chunks = sub.add_parser("chunks", help="Keep the paragraphs that are relevant and well formed")
    chunks.add_argument("file", type=Path, help="Text file; paragraphs are separated by blank lines")
    chunks.add_argument("--query", default=None, help="Query the paragraphs are judged against")
    chunks.add_argument(
        "--max-chunks", type=int, default=None, help="Keep at most this many paragraphs"
    )
    chunks.add_argument(
        "--preserve-order",
        action="store_true",
        help="Report kept paragraphs in document order instead of by score",
    )

    suggest = sub.add_parser("suggest", help="Suggest follow-up questions for a text")
    suggest.add_argument("file", type=Path, help="Text file used as context")

    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    judge_settings = load_judge_settings(args.config)
    setup_logging(settings.log_level, json_logs=args.json_logs)

    completion = create_completion_service(judge_settings, settings)
    prompts = build_prompt_library()

    if args.command == "qa":
        fragments = read_fragments(args.file)
        console.print(f"\n[bold]Generating QA pairs for {len(fragments)} paragraphs...[/bold]\n")
        pipeline = GenerationPipeline.from_completion(completion, prompts)
        results = await pipeline.execute_from_fragments_batch(
            fragments, judge_settings.pipeline_options(skip_filtering=args.skip_filtering)
        )
        print_qa_report(results)
        return 0

    if args.command == "judge":
        pairs = read_qa_pairs(args.file)
        console.print(f"\n[bold]Judging {len(pairs)} QA pairs...[/bold]\n")
        gate = QualityGate.from_completion(completion, prompts)
        evaluated = await gate.evaluate_batch(pairs, judge_settings.evaluation)
        print_evaluation_report(evaluated, judge_settings.qa_filter)
        return 0

    if args.command == "chunks":
        fragments = read_fragments(args.file)
        overrides = {"preserve_order": True} if args.preserve_order else {}
        if args.max_chunks is not None:
            overrides["max_chunks"] = args.max_chunks
        chunk_options = ChunkFilterOptions.model_validate(
            judge_settings.chunk_filter.model_dump() | overrides
        )
        console.print(f"\n[bold]Assessing {len(fragments)} paragraphs...[/bold]\n")
        kept = await ChunkFilter(completion, prompts).filter(fragments, args.query, chunk_options)
        print_chunk_report(kept, len(fragments))
        return 0

    if args.command == "suggest":
        text = args.file.read_text(encoding="utf-8")
        suggester = QuestionSuggester(completion, prompts)
        print_suggestion_report(await suggester.suggest(text, judge_settings.suggestions))
        return 0

    fragments = read_fragments(args.file)
    engine = RelationshipDiscoveryEngine(completion, prompts)
    options = judge_settings.relationships

    if args.source is None:
        console.print(f"\n[bold]Analyzing {len(fragments)} paragraphs pairwise...[/bold]\n")
        print_relationship_report(await engine.discover_all(fragments, options))
        return 0

    source = next((f for f in fragments if f.id == args.source), None)
    if source is None:
        console.print(f"[red]Unknown paragraph id: {args.source}[/red]")
        return 1
    candidates = [f for f in fragments if f.id != source.id]
    analysis = await engine.analyze_relationships(source, candidates, options)
    print_relationship_report(analysis.relationships)
    if not analysis.success:
        console.print(f"[red]Analysis incomplete: {analysis.error_message}[/red]")
        return 1
    return 0


def main() -> None:
    args = parse_args()
    if not args.file.exists():
        console.print(f"[red]File not found: {args.file}[/red]")
        sys.exit(1)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
