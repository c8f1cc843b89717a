"""
Reconciling extracted metrics with the backend's own deployment status.

The log transcript is often incomplete (a run killed mid-command leaves no
failing entry). When the caller knows the authoritative status from the
deployment record, ``apply_actual_status`` folds it into the metrics while
keeping failure dominance: a reported success never hides a failed step or
a recorded error.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Iterable, Optional

from opsboard.config import Settings, get_settings
from opsboard.deploy.dedup import dedupe_metrics
from opsboard.deploy.logs import coerce_logs
from opsboard.deploy.metrics import DeployMetrics, DeployStatus, DeployStep
from opsboard.deploy.patterns import DEFAULT_CATALOG, PatternCatalog
from opsboard.pipeline_statuses import FAILED, PENDING, RUNNING, SUCCESS, normalize_status
from opsboard.timestamps import format_timestamp

logger = logging.getLogger(__name__)

_DEPLOY_STATUS: dict[str, DeployStatus] = {
    SUCCESS: "success",
    FAILED: "failed",
    RUNNING: "running",
    PENDING: "pending",
}

DEFAULT_FAILURE_MESSAGE = "Deployment failed (timeout or error)"
DEFAULT_ERROR = "An error occurred during deployment."


def apply_actual_status(
    metrics: DeployMetrics,
    actual_status: Optional[str],
    logs: Optional[Iterable[Any]] = None,
    error_message: Optional[str] = None,
    error_stage: Optional[str] = None,
    catalog: PatternCatalog = DEFAULT_CATALOG,
    settings: Optional[Settings] = None,
) -> DeployMetrics:
    """
    Return metrics whose status reflects the backend-reported status.

    Args:
        metrics: Output of extract_deploy_metrics
        actual_status: Raw backend status (any alias understood by normalize_status)
        logs: The same transcript, used to timestamp a synthesized failure step
        error_message: Failure detail from the deployment record
        error_stage: Stage name the backend blamed for the failure
        catalog: Catalog providing the default execution label
        settings: Formatting settings (defaults to the global settings)

    Returns:
        New DeployMetrics; ``metrics`` is not modified
    """
    status = _DEPLOY_STATUS.get(normalize_status(actual_status))
    if status is None:
        return metrics

    settings = settings or get_settings()
    updated = replace(
        metrics,
        images=list(metrics.images),
        steps=list(metrics.steps),
        errors=list(metrics.errors),
        warnings=list(metrics.warnings),
    )

    if status == "failed" and not updated.has_failed_step:
        entries = coerce_logs(logs)
        timestamp = None
        if entries:
            timestamp = format_timestamp(
                entries[-1].timestamp, settings.stage_time_format, settings.display_timezone,
            )
        updated.steps.append(DeployStep(
            name=error_stage or catalog.label("execution"),
            status="failed",
            message=error_message or DEFAULT_FAILURE_MESSAGE,
            timestamp=timestamp,
        ))
        if not updated.errors:
            if error_message:
                prefix = f"[{error_stage}] " if error_stage else ""
                updated.errors.append(f"{prefix}{error_message}")
            else:
                updated.errors.append(DEFAULT_ERROR)

    if status != "failed" and (updated.has_failed_step or updated.errors):
        logger.debug(
            "Ignoring reported status %r: transcript contains failure evidence",
            actual_status,
        )
        status = "failed"

    updated.status = status
    return dedupe_metrics(updated)
