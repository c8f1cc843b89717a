"""
Pipeline step resolver.

A service's stage history holds many overlapping records per stage (retries,
re-runs, stale rows from earlier pipelines). The resolver picks the single
authoritative record for each canonical stage using a fixed total order:

1. A running record beats any non-running record
2. Later ``started_at`` wins
3. Later ``completed_at`` wins
4. Larger numeric ``id`` wins
5. Status rank: failed, then success, then pending, then anything else

Missing or unparseable values sort lowest, so malformed rows lose every
tie-break instead of raising. Records equal on every key, status rank
included, are interchangeable; the first one in the input is kept.

Usage:
    from opsboard.pipeline.resolver import resolve_stages

    stages = resolve_stages(raw_step_dicts)
    deploy = stages["deploy"]
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from opsboard.pipeline.progress import ProgressCategory, compute_progress
from opsboard.pipeline.records import PipelineStepRecord, coerce_records
from opsboard.pipeline.stages import (
    CANONICAL_STAGES,
    DEPLOY,
    OPERATE,
    SOURCE,
    normalize_step_name,
)
from opsboard.pipeline_statuses import FAILED, PENDING, RUNNING, SUCCESS, normalize_status
from opsboard.timestamps import LOWEST_SORT_KEY, timestamp_sort_key

logger = logging.getLogger(__name__)

RecordSortKey = tuple[int, float, float, float, int]

# Final tie-break between records with identical times and ids
_STATUS_RANK = {FAILED: 3, SUCCESS: 2, PENDING: 1}


@dataclass(frozen=True)
class ResolvedStage:
    """The record chosen for a canonical stage and its progress display."""

    stage: str
    record: PipelineStepRecord
    percent: float
    category: ProgressCategory

    @property
    def status(self) -> str:
        return normalize_status(self.record.status)

    @property
    def synthesized(self) -> bool:
        return self.record.synthesized

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "status": self.status,
            "percent": self.percent,
            "category": self.category,
            "synthesized": self.synthesized,
            "record": self.record.to_dict(),
        }


def _numeric_id(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return LOWEST_SORT_KEY
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return LOWEST_SORT_KEY
    return number if math.isfinite(number) else LOWEST_SORT_KEY


def record_sort_key(record: PipelineStepRecord) -> RecordSortKey:
    """Sort key where the larger key is the more authoritative record."""
    status = normalize_status(record.status)
    return (
        1 if status == RUNNING else 0,
        timestamp_sort_key(record.started_at),
        timestamp_sort_key(record.completed_at),
        _numeric_id(record.id),
        _STATUS_RANK.get(status, 0),
    )


def select_latest(records: Iterable[PipelineStepRecord]) -> Optional[PipelineStepRecord]:
    """Return the most authoritative record, or None for an empty input."""
    best: Optional[PipelineStepRecord] = None
    best_key: Optional[RecordSortKey] = None
    for record in records:
        key = record_sort_key(record)
        # Strict comparison keeps the earliest record on a full tie
        if best_key is None or key > best_key:
            best, best_key = record, key
    return best


def _source_record() -> PipelineStepRecord:
    return PipelineStepRecord(id=None, step_name=SOURCE, status=SUCCESS, synthesized=True)


def _latest_for(records: list[PipelineStepRecord], stage: str) -> Optional[PipelineStepRecord]:
    candidates = [r for r in records if normalize_step_name(r.step_name) == stage]
    return select_latest(candidates)


def _resolve_record(records: list[PipelineStepRecord], stage: str) -> Optional[PipelineStepRecord]:
    if stage == SOURCE:
        return _source_record()

    chosen = _latest_for(records, stage)
    if chosen is not None or stage != OPERATE:
        return chosen

    # No operate evidence: a successful deploy implies the service is operating
    deploy = _latest_for(records, DEPLOY)
    if deploy is not None and normalize_status(deploy.status) == SUCCESS:
        logger.debug("Synthesizing operate stage from deploy record id=%s", deploy.id)
        return deploy.synthesize_as(OPERATE, SUCCESS)
    return None


def _as_resolved(stage: str, record: Optional[PipelineStepRecord]) -> Optional[ResolvedStage]:
    if record is None:
        return None
    percent, category = compute_progress(record)
    return ResolvedStage(stage=stage, record=record, percent=percent, category=category)


def resolve_stage(records: Any, stage: str) -> Optional[ResolvedStage]:
    """
    Resolve the authoritative record for one canonical stage.

    Args:
        records: Full stage-record history (records or raw dicts; None is empty)
        stage: One of "source", "build", "deploy", "operate"

    Returns:
        ResolvedStage, or None when there is no evidence for the stage

    Raises:
        ValueError: If ``stage`` is not a canonical stage name
    """
    if stage not in CANONICAL_STAGES:
        raise ValueError(f"Unknown pipeline stage: {stage!r}")
    history = coerce_records(records)
    return _as_resolved(stage, _resolve_record(history, stage))


def resolve_stages(records: Any) -> dict[str, Optional[ResolvedStage]]:
    """Resolve every canonical stage, in display order."""
    history = coerce_records(records)
    return {
        stage: _as_resolved(stage, _resolve_record(history, stage))
        for stage in CANONICAL_STAGES
    }
