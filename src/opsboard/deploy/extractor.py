"""
Deploy metrics extraction.

Turns the ordered shell-command transcript of one deployment attempt into
``DeployMetrics``. The result is recomputed from the full transcript on
every call; nothing is carried over between calls.

Status precedence (failure evidence always wins):
1. Timeout evidence, a failed step, or any recorded error -> failed
2. At least one step and every step succeeded -> success
3. At least one step -> running
4. Otherwise -> pending

Usage:
    from opsboard.deploy import extract_deploy_metrics

    metrics = extract_deploy_metrics(log_dicts)
    print(metrics.status, [s.name for s in metrics.steps])
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, Optional

from opsboard.config import Settings, get_settings
from opsboard.deploy.dedup import dedupe_metrics
from opsboard.deploy.logs import LogEntry, coerce_logs, first_line
from opsboard.deploy.metrics import DeployMetrics, DeployStatus, DeployStep
from opsboard.deploy.patterns import (
    DEFAULT_CATALOG,
    MatchContext,
    PatternCatalog,
    is_timeout_evidence,
    load_catalog,
)
from opsboard.timestamps import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


def catalog_from_settings(settings: Settings) -> PatternCatalog:
    """Return the configured catalog, or the built-in one when none is set."""
    if settings.pattern_catalog_path:
        return load_catalog(settings.pattern_catalog_path)
    return DEFAULT_CATALOG


def _apply_timing(metrics: DeployMetrics, entries: list[LogEntry], settings: Settings) -> None:
    """Fill duration and deploy_time from the first and last entries, when both parse."""
    start = parse_timestamp(entries[0].timestamp)
    end = parse_timestamp(entries[-1].timestamp)
    if start is None or end is None:
        logger.debug("Skipping deploy duration: unparseable first/last timestamp")
        return

    elapsed = (end - start).total_seconds()
    if elapsed < 0:
        logger.debug("Skipping deploy duration: last entry precedes first (%.3fs)", elapsed)
        return

    deploy_time = format_timestamp(end, settings.deploy_time_format, settings.display_timezone)
    if deploy_time is None:
        return
    metrics.duration = math.floor(elapsed)
    metrics.deploy_time = deploy_time


def _step_time(entry: LogEntry, settings: Settings) -> Optional[str]:
    return format_timestamp(entry.timestamp, settings.stage_time_format, settings.display_timezone)


def resolve_status(
    steps: list[DeployStep],
    errors: list[str],
    has_timeout: bool = False,
) -> DeployStatus:
    """Overall status from the collected evidence; the order of checks is fixed."""
    if has_timeout or any(step.status == "failed" for step in steps) or errors:
        return "failed"
    if steps and all(step.status == "success" for step in steps):
        return "success"
    if steps:
        return "running"
    return "pending"


def extract_deploy_metrics(
    logs: Optional[Iterable[Any]],
    catalog: Optional[PatternCatalog] = None,
    settings: Optional[Settings] = None,
) -> DeployMetrics:
    """
    Extract structured deployment metrics from a log transcript.

    Args:
        logs: Log entries in ascending time order (LogEntry objects or dicts)
        catalog: Recognition rules and labels (defaults to the configured catalog)
        settings: Formatting settings (defaults to the global settings)

    Returns:
        DeployMetrics with de-duplicated steps, errors and warnings
    """
    settings = settings or get_settings()
    catalog = catalog or catalog_from_settings(settings)
    entries = coerce_logs(logs)

    metrics = DeployMetrics()
    if not entries:
        return metrics

    _apply_timing(metrics, entries, settings)

    timeout_entries = [entry for entry in entries if is_timeout_evidence(entry, catalog)]

    for entry in entries:
        ctx = MatchContext(
            entry=entry,
            metrics=metrics,
            catalog=catalog,
            timestamp=_step_time(entry, settings),
        )

        if is_timeout_evidence(entry, catalog):
            metrics.errors.append(f"Timeout error: {entry.message}")

        for rule in catalog.matching_rules(entry):
            rule.handler(ctx)

        if not entry.failed and "warning" in entry.full_output.lower():
            metrics.warnings.append(entry.full_output)

    if timeout_entries and not metrics.has_failed_step:
        offending = timeout_entries[0]
        metrics.steps.append(DeployStep(
            name=catalog.label("execution"),
            status="failed",
            message=f"Timeout: {first_line(offending.message)}",
            timestamp=_step_time(offending, settings),
        ))

    metrics.status = resolve_status(metrics.steps, metrics.errors, bool(timeout_entries))
    result = dedupe_metrics(metrics)

    logger.debug(
        "Extracted deploy metrics: status=%s steps=%d errors=%d warnings=%d",
        result.status, len(result.steps), len(result.errors), len(result.warnings),
    )
    return result
