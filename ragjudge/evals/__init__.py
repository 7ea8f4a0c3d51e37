"""Evaluation: LLM-as-a-judge quality scoring for generated QA pairs.

Key components:
- scorers: faithfulness, relevancy and answerability judges sharing one contract
- quality_gate: runs the three judges per pair and applies per-metric minimums
- chunk_filter: staged relevance and quality assessment of retrieved chunks
- report: rich tables for CLI output
"""
