"""Shared pipeline-status definitions and helpers.

This module is the single source of truth for mapping the status strings
reported by the different pipeline backends onto the five display
categories used everywhere else (resolver, progress, stage board).
"""

from __future__ import annotations

from typing import Any, Optional

from rapidfuzz import fuzz

from opsboard.config import settings

SUCCESS = "success"
RUNNING = "running"
FAILED = "failed"
PENDING = "pending"
INACTIVE = "inactive"

CANONICAL_STATUSES: tuple[str, ...] = (SUCCESS, RUNNING, FAILED, PENDING, INACTIVE)

# Raw backend spellings for each canonical status.
STATUS_ALIASES: dict[str, tuple[str, ...]] = {
    SUCCESS: ("success", "succeeded", "successed", "successful", "completed", "complete", "done"),
    RUNNING: ("running", "in_progress", "in-progress", "processing", "progress"),
    FAILED: ("failed", "error", "cancelled", "canceled"),
    PENDING: ("pending", "queued", "waiting"),
}

_ALIAS_LOOKUP: dict[str, str] = {
    alias: canonical
    for canonical, aliases in STATUS_ALIASES.items()
    for alias in aliases
}

_NEGATION_PREFIXES = ("un", "in", "non", "not")
_MAX_TYPO_LENGTH_DELTA = 1


def normalize_status(status: Any, *, fuzzy_threshold: Optional[float] = None) -> str:
    """
    Map an arbitrary backend status string to a canonical status.

    Exact aliases are matched case-insensitively. Close misspellings of the
    success aliases (e.g. "sucess", "succeded") are accepted when their
    rapidfuzz ratio reaches ``fuzzy_threshold``. Anything else, including
    None, empty strings and non-string values, maps to "inactive".

    Examples:
        >>> normalize_status("SUCCEEDED")
        'success'
        >>> normalize_status("queued")
        'pending'
        >>> normalize_status(None)
        'inactive'
    """
    if not isinstance(status, str):
        return INACTIVE

    cleaned = status.strip().lower()
    if not cleaned:
        return INACTIVE

    canonical = _ALIAS_LOOKUP.get(cleaned)
    if canonical is not None:
        return canonical

    threshold = settings.status_fuzzy_threshold if fuzzy_threshold is None else fuzzy_threshold
    if _is_success_misspelling(cleaned, threshold):
        return SUCCESS

    return INACTIVE


def _is_success_misspelling(cleaned: str, threshold: float) -> bool:
    """
    Check whether a status is a near miss of one of the success aliases.

    Only typos count: negated forms ("unsuccessful", "not done") and words
    more than one character longer or shorter than the alias are rejected.
    """
    if cleaned.startswith(_NEGATION_PREFIXES):
        return False
    return any(
        abs(len(cleaned) - len(alias)) <= _MAX_TYPO_LENGTH_DELTA
        and fuzz.ratio(cleaned, alias) >= threshold
        for alias in STATUS_ALIASES[SUCCESS]
    )
