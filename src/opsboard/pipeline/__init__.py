"""
Pipeline stage resolution.

Turns the polled stage-record history of a service into one authoritative
record per canonical stage (source, build, deploy, operate).

Usage:
    from opsboard.pipeline import resolve_stage, build_stage_board
"""

from opsboard.pipeline.board import StageView, build_stage_board
from opsboard.pipeline.progress import compute_progress
from opsboard.pipeline.records import PipelineStepRecord, unwrap_nullable
from opsboard.pipeline.resolver import (
    ResolvedStage,
    resolve_stage,
    resolve_stages,
    select_latest,
)
from opsboard.pipeline.stages import CANONICAL_STAGES, normalize_step_name

__all__ = [
    "CANONICAL_STAGES",
    "PipelineStepRecord",
    "ResolvedStage",
    "StageView",
    "build_stage_board",
    "compute_progress",
    "normalize_step_name",
    "resolve_stage",
    "resolve_stages",
    "select_latest",
    "unwrap_nullable",
]
