"""
Step and issue de-duplication.

The same pattern can match several times over a growing transcript (a
status poll repeated every few seconds, a retried login), so raw
extraction output contains repeats. Merge rules:

- steps: keyed by (name, status); the first occurrence keeps its position,
  but a later occurrence replaces it when the kept one has no message and
  the later one does
- errors / warnings: exact-string membership, first occurrence wins
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from opsboard.deploy.metrics import DeployMetrics, DeployStep


def _merge_step(kept: DeployStep, incoming: DeployStep) -> DeployStep:
    if not kept.message and incoming.message:
        return incoming
    return kept


def dedupe_steps(steps: Iterable[DeployStep]) -> list[DeployStep]:
    """Collapse steps sharing a (name, status) pair, preserving first-seen order."""
    merged: list[DeployStep] = []
    index: dict[tuple[str, str], int] = {}
    for step in steps:
        position = index.get(step.key)
        if position is None:
            index[step.key] = len(merged)
            merged.append(step)
        else:
            merged[position] = _merge_step(merged[position], step)
    return merged


def dedupe_issues(items: Iterable[str]) -> list[str]:
    """Drop repeated strings, keeping first occurrences in order."""
    return list(dict.fromkeys(items))


def dedupe_metrics(metrics: DeployMetrics) -> DeployMetrics:
    """Return a copy of ``metrics`` with steps, errors and warnings de-duplicated."""
    return replace(
        metrics,
        images=list(metrics.images),
        steps=dedupe_steps(metrics.steps),
        errors=dedupe_issues(metrics.errors),
        warnings=dedupe_issues(metrics.warnings),
    )
