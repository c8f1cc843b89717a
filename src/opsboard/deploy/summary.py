"""Human-readable summary of deploy metrics for the metrics panel."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

from opsboard.deploy.metrics import DeployMetrics

DetailStatus = Literal["success", "error", "warning", "info"]

STATUS_TEXT = {
    "success": "Deployment succeeded",
    "failed": "Deployment failed",
    "running": "Deployment in progress",
    "pending": "Deployment pending",
}


@dataclass(frozen=True)
class SummaryDetail:
    label: str
    value: str
    status: Optional[DetailStatus] = None

    def to_dict(self) -> dict:
        return {"label": self.label, "value": self.value, "status": self.status}


@dataclass
class DeploySummary:
    summary: str
    details: list[SummaryDetail] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"summary": self.summary, "details": [d.to_dict() for d in self.details]}


def format_duration(seconds: int) -> str:
    """
    Format a duration as minutes and seconds.

    Examples:
        >>> format_duration(42)
        '42s'
        >>> format_duration(125)
        '2m 5s'
    """
    minutes, remainder = divmod(seconds, 60)
    return f"{minutes}m {remainder}s" if minutes > 0 else f"{remainder}s"


def format_deploy_metrics(metrics: DeployMetrics) -> DeploySummary:
    """Build the one-line summary and the labelled detail rows for ``metrics``."""
    details: list[SummaryDetail] = []

    if metrics.status == "success":
        status_level: DetailStatus = "success"
    elif metrics.status == "failed":
        status_level = "error"
    else:
        status_level = "info"
    details.append(SummaryDetail("Deployment status", STATUS_TEXT[metrics.status], status_level))

    if metrics.deploy_time:
        details.append(SummaryDetail("Completed at", metrics.deploy_time, "info"))

    if metrics.duration is not None:
        details.append(SummaryDetail("Duration", format_duration(metrics.duration), "info"))

    if metrics.namespace:
        details.append(SummaryDetail("Kubernetes namespace", metrics.namespace, "info"))

    if metrics.image_name:
        image = metrics.image_name
        if metrics.image_tag:
            image = f"{image}:{metrics.image_tag}"
        details.append(SummaryDetail("Container image", image, "info"))

    total = len(metrics.steps)
    succeeded = metrics.succeeded_steps
    if total > 0:
        details.append(SummaryDetail(
            "Completed steps",
            f"{succeeded} / {total}",
            "success" if succeeded == total else "warning",
        ))

    if metrics.errors:
        details.append(SummaryDetail("Errors", str(len(metrics.errors)), "error"))

    if metrics.warnings:
        details.append(SummaryDetail("Warnings", str(len(metrics.warnings)), "warning"))

    if metrics.status == "success":
        outcome = "succeeded"
    elif metrics.status == "failed":
        outcome = "failed"
    else:
        outcome = "in progress"
    summary = f"Deployment {outcome} ({succeeded}/{total} steps completed)"

    return DeploySummary(summary=summary, details=details)
