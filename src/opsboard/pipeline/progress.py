"""Progress-bar percent and category for a resolved stage record."""

from __future__ import annotations

from typing import Literal, Optional

from opsboard.pipeline.records import PipelineStepRecord, optional_number
from opsboard.pipeline_statuses import FAILED, RUNNING, SUCCESS, normalize_status

ProgressCategory = Literal["normal", "active", "success", "exception"]


def raw_percent(record: PipelineStepRecord) -> float:
    """
    Percent reported for a record before the status override.

    Uses the explicit progress field when it is a finite number (clamped to
    0..100), else 100 for successful records, else 0.
    """
    value = optional_number(record.progress_percentage)
    if value is not None:
        return min(max(value, 0.0), 100.0)
    if normalize_status(record.status) == SUCCESS:
        return 100.0
    return 0.0


def compute_progress(record: Optional[PipelineStepRecord]) -> tuple[float, ProgressCategory]:
    """
    Derive (percent, category) for a progress bar.

    A successful stage is always shown full regardless of the reported
    percent; failed, running and any other status keep the raw percent.
    """
    if record is None:
        return 0.0, "normal"

    status = normalize_status(record.status)
    if status == SUCCESS:
        return 100.0, "success"

    percent = raw_percent(record)
    if status == FAILED:
        return percent, "exception"
    if status == RUNNING:
        return percent, "active"
    return percent, "normal"
