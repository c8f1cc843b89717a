"""
Polled pipeline stage records.

The pipeline-status poller returns one record per stage execution, and a
service accumulates many of them across repeated runs. Optional columns
arrive either as plain JSON values or wrapped the way the backend's SQL
driver serializes nullable columns:

    {"String": "2025-03-01T10:15:30Z", "Valid": true}
    {"Float64": 42.0, "Valid": true}
    {"Int64": 0, "Valid": false}

A wrapper with ``Valid`` false means the column is absent.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional

_WRAPPER_VALUE_KEYS = ("String", "Float64", "Int64", "Int32", "Bool", "Time")


def unwrap_nullable(value: Any) -> Any:
    """
    Return the payload of a nullable wrapper, or the value itself.

    Examples:
        >>> unwrap_nullable({"String": "x", "Valid": True})
        'x'
        >>> unwrap_nullable({"Int64": 0, "Valid": False}) is None
        True
        >>> unwrap_nullable(12)
        12
    """
    if isinstance(value, Mapping) and "Valid" in value:
        if not value.get("Valid"):
            return None
        for key in _WRAPPER_VALUE_KEYS:
            if key in value:
                return value[key]
        return None
    return value


def _optional_str(value: Any) -> Optional[str]:
    value = unwrap_nullable(value)
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def optional_number(value: Any) -> Optional[float]:
    """Finite float from a plain or wrapped value, None when absent or invalid."""
    value = unwrap_nullable(value)
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


@dataclass(frozen=True)
class PipelineStepRecord:
    """
    One polled status record for a pipeline stage.

    Attributes:
        id: Backend record id (numeric in practice, compared numerically)
        step_name: Free-form stage name as reported by the backend
        status: Free-form status string
        progress_percentage: Reported progress, None when absent
        started_at: ISO-8601 start time, None when absent
        completed_at: ISO-8601 completion time, None when absent
        duration_seconds: Reported duration, None when absent
        error_message: Failure text, None when absent
        details_data: Opaque backend payload
        synthesized: True for virtual records derived from other stages
    """
    id: Any
    step_name: str
    status: str
    progress_percentage: Optional[float] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_seconds: Optional[float] = None
    error_message: Optional[str] = None
    details_data: Mapping[str, Any] = field(default_factory=dict)
    synthesized: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PipelineStepRecord":
        """Build a record from the poller's JSON, unwrapping nullable columns."""
        details = data.get("details_data")
        return cls(
            id=unwrap_nullable(data.get("id")),
            step_name=_optional_str(data.get("step_name")) or "",
            status=_optional_str(data.get("status")) or "",
            progress_percentage=optional_number(data.get("progress_percentage")),
            started_at=_optional_str(data.get("started_at")),
            completed_at=_optional_str(data.get("completed_at")),
            duration_seconds=optional_number(data.get("duration_seconds")),
            error_message=_optional_str(data.get("error_message")),
            details_data=dict(details) if isinstance(details, Mapping) else {},
        )

    def synthesize_as(self, step_name: str, status: str) -> "PipelineStepRecord":
        """Return a virtual copy of this record for another stage."""
        return replace(self, step_name=step_name, status=status, synthesized=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "step_name": self.step_name,
            "status": self.status,
            "progress_percentage": self.progress_percentage,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_seconds": self.duration_seconds,
            "error_message": self.error_message,
            "details_data": dict(self.details_data),
            "synthesized": self.synthesized,
        }


def coerce_records(records: Any) -> list[PipelineStepRecord]:
    """Accept records or raw dicts (or None) and return a list of records."""
    if not records:
        return []
    coerced: list[PipelineStepRecord] = []
    for record in records:
        if isinstance(record, PipelineStepRecord):
            coerced.append(record)
        elif isinstance(record, Mapping):
            coerced.append(PipelineStepRecord.from_dict(record))
    return coerced
