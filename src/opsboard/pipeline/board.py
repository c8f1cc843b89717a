"""
Stage board: the four-box pipeline strip shown per service.

Builds one view per canonical stage from the resolver output, applying the
display rules of the dashboard strip:

- source is always shown as complete
- build / deploy / operate only show running, success or failed; any other
  status is shown as inactive with an empty bar
- a disabled stage without data is inactive
- the time under each box is completed_at, falling back to started_at
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from opsboard.config import Settings, get_settings
from opsboard.pipeline.progress import ProgressCategory
from opsboard.pipeline.resolver import ResolvedStage, resolve_stages
from opsboard.pipeline.stages import SOURCE
from opsboard.pipeline_statuses import FAILED, INACTIVE, RUNNING, SUCCESS
from opsboard.timestamps import format_timestamp

_SHOWN_STATUSES = (RUNNING, SUCCESS, FAILED)


@dataclass(frozen=True)
class StageView:
    """Display state of one box on the pipeline strip."""

    stage: str
    status: str
    percent: float
    category: ProgressCategory
    last_update: Optional[str] = None
    error_message: Optional[str] = None
    synthesized: bool = False
    disabled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "status": self.status,
            "percent": self.percent,
            "category": self.category,
            "last_update": self.last_update,
            "error_message": self.error_message,
            "synthesized": self.synthesized,
            "disabled": self.disabled,
        }


def _stage_view(
    stage: str,
    resolved: Optional[ResolvedStage],
    disabled: bool,
    settings: Settings,
) -> StageView:
    if stage == SOURCE:
        return StageView(stage=stage, status=SUCCESS, percent=100.0, category="success",
                         synthesized=True, disabled=disabled)

    if resolved is None or resolved.status not in _SHOWN_STATUSES:
        return StageView(stage=stage, status=INACTIVE, percent=0.0, category="normal",
                         disabled=disabled)

    record = resolved.record
    last_update = format_timestamp(
        record.completed_at or record.started_at,
        settings.stage_time_format,
        settings.display_timezone,
    )
    return StageView(
        stage=stage,
        status=resolved.status,
        percent=resolved.percent,
        category=resolved.category,
        last_update=last_update,
        error_message=record.error_message if resolved.status == FAILED else None,
        synthesized=record.synthesized,
        disabled=disabled,
    )


def build_stage_board(
    records: Any,
    disabled: Optional[Mapping[str, bool]] = None,
    settings: Optional[Settings] = None,
) -> list[StageView]:
    """
    Build the display state for every canonical stage.

    Args:
        records: Full stage-record history (records or raw dicts)
        disabled: Stage name -> True for stages the service cannot run
        settings: Formatting settings (defaults to the global settings)

    Returns:
        StageView list in display order (source, build, deploy, operate)
    """
    settings = settings or get_settings()
    disabled = disabled or {}
    return [
        _stage_view(stage, resolved, bool(disabled.get(stage)), settings)
        for stage, resolved in resolve_stages(records).items()
    ]
