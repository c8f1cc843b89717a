#!/usr/bin/env python3
"""
Derive dashboard state from a telemetry snapshot.

Reads a JSON snapshot holding a deployment log transcript and the polled
pipeline stage records of one service, and prints the derived deploy
metrics, their summary and the resolved pipeline stages as JSON.

Snapshot format:
    {
        "logs": [{"timestamp": "...", "command": "...", "output": "...",
                  "error": "...", "exit_code": 0}],
        "steps": [{"id": 1, "step_name": "build", "status": "success", ...}]
    }

Usage:
    python scripts/derive_pipeline_state.py --snapshot snapshot.json
    python scripts/derive_pipeline_state.py --snapshot snapshot.json --actual-status failed
    python scripts/derive_pipeline_state.py --snapshot - < snapshot.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from opsboard.config import Settings, get_settings
from opsboard.deploy import (
    CatalogError,
    apply_actual_status,
    extract_deploy_metrics,
    format_deploy_metrics,
    load_catalog,
)
from opsboard.deploy.extractor import catalog_from_settings
from opsboard.pipeline import build_stage_board, resolve_stages

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_BAD_SNAPSHOT = 2

_CONSOLE_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
_LOG_DATE_FORMAT = "%H:%M:%S"


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; messages are escaped with json.dumps."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _configure_logging(settings: Settings) -> None:
    handler = logging.StreamHandler(sys.stderr)
    if settings.log_format == "json":
        handler.setFormatter(JsonLogFormatter(datefmt=_LOG_DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(_CONSOLE_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT))
    logging.basicConfig(level=getattr(logging, settings.log_level), handlers=[handler])


def _load_snapshot(source: str) -> dict[str, Any]:
    """Read the snapshot from a path or stdin ('-')."""
    if source == "-":
        raw = sys.stdin.read()
    else:
        raw = Path(source).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("snapshot must be a JSON object")
    for key in ("logs", "steps"):
        if data.get(key) is not None and not isinstance(data[key], list):
            raise ValueError(f"snapshot '{key}' must be a list")
    return data


def derive_report(
    snapshot: dict[str, Any],
    settings: Settings,
    catalog_path: Optional[str] = None,
    actual_status: Optional[str] = None,
) -> dict[str, Any]:
    """Run every derivation over one snapshot and return a JSON-ready report."""
    catalog = load_catalog(catalog_path) if catalog_path else catalog_from_settings(settings)
    logs = snapshot.get("logs") or []
    steps = snapshot.get("steps") or []

    metrics = extract_deploy_metrics(logs, catalog=catalog, settings=settings)
    if actual_status:
        metrics = apply_actual_status(
            metrics,
            actual_status,
            logs=logs,
            error_message=snapshot.get("error_message"),
            error_stage=snapshot.get("error_stage"),
            catalog=catalog,
            settings=settings,
        )

    resolved = resolve_stages(steps)
    return {
        "metrics": metrics.to_dict(),
        "summary": format_deploy_metrics(metrics).to_dict(),
        "stages": {
            stage: stage_result.to_dict() if stage_result else None
            for stage, stage_result in resolved.items()
        },
        "board": [view.to_dict() for view in build_stage_board(steps, settings=settings)],
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Derive pipeline dashboard state from a snapshot")
    parser.add_argument("--snapshot", required=True, help="Snapshot JSON file, or '-' for stdin")
    parser.add_argument("--catalog", default=None, help="Pattern catalog override JSON file")
    parser.add_argument(
        "--actual-status",
        default=None,
        help="Backend-reported deployment status to reconcile with the logs",
    )
    parser.add_argument("--indent", type=int, default=2, help="JSON indent (default: 2)")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    _configure_logging(settings)

    try:
        snapshot = _load_snapshot(args.snapshot)
    except (OSError, ValueError) as exc:
        logger.error("Could not read snapshot %s: %s", args.snapshot, exc)
        return EXIT_BAD_SNAPSHOT

    try:
        report = derive_report(snapshot, settings, args.catalog, args.actual_status)
    except CatalogError as exc:
        logger.error("%s", exc)
        return EXIT_BAD_SNAPSHOT

    metrics = report["metrics"]
    logger.info(
        "Derived state: deploy=%s steps=%d errors=%d",
        metrics["status"], len(metrics["steps"]), len(metrics["errors"]),
    )
    print(json.dumps(report, indent=args.indent, ensure_ascii=False))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
