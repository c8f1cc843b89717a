"""
Deployment metrics from shell-command transcripts.

Usage:
    from opsboard.deploy import extract_deploy_metrics, format_deploy_metrics

    metrics = extract_deploy_metrics(logs)
    print(format_deploy_metrics(metrics).summary)
"""

from opsboard.deploy.dedup import dedupe_issues, dedupe_metrics, dedupe_steps
from opsboard.deploy.extractor import extract_deploy_metrics, resolve_status
from opsboard.deploy.logs import LogEntry
from opsboard.deploy.metrics import DeployMetrics, DeployStep, ImageRef
from opsboard.deploy.overrides import apply_actual_status
from opsboard.deploy.patterns import (
    CatalogError,
    PatternCatalog,
    PatternRule,
    is_inert_read,
    is_timeout_evidence,
    load_catalog,
)
from opsboard.deploy.summary import DeploySummary, format_deploy_metrics

__all__ = [
    # Extraction
    "extract_deploy_metrics",
    "resolve_status",
    "apply_actual_status",
    "format_deploy_metrics",
    # Types
    "LogEntry",
    "DeployMetrics",
    "DeployStep",
    "DeploySummary",
    "ImageRef",
    # De-duplication
    "dedupe_steps",
    "dedupe_issues",
    "dedupe_metrics",
    # Pattern catalog
    "CatalogError",
    "PatternCatalog",
    "PatternRule",
    "is_inert_read",
    "is_timeout_evidence",
    "load_catalog",
]
