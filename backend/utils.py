"""Utility helpers shared across the backend services."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Iterable
from uuid import uuid4

TRUCK_STATUSES: tuple[str, ...] = ("active", "maintenance", "inactive")
SERVICE_TYPES: tuple[str, ...] = ("material_transport", "transport_only")
COST_CATEGORIES: tuple[str, ...] = ("diesel", "maintenance", "repairs", "tires", "oil", "tolls", "other")
PAYMENT_METHODS: tuple[str, ...] = ("cash", "transfer", "check")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Return a fresh identifier such as ``trip-3f9a0c12b7de``."""
    return f"{prefix}-{uuid4().hex[:12]}"


def normalize_choice(value: object, choices: Iterable[str]) -> object:
    """Lower-case and trim *value* when it matches one of *choices*.

    Non-matching values are returned untouched so schema validation can
    report them against the allowed set.
    """
    if not isinstance(value, str):
        return value
    normalized = value.strip().lower().replace(" ", "_")
    return normalized if normalized in set(choices) else value


def parse_calendar_date(raw: str | date | datetime | None) -> date:
    """Reduce a date, datetime or ISO string to its calendar day.

    Aware datetimes are converted to UTC before the day is taken, so
    ``2025-01-03T23:30:00-05:00`` lands on 2025-01-04.
    """
    if isinstance(raw, datetime):
        if raw.tzinfo is not None:
            raw = raw.astimezone(timezone.utc)
        return raw.date()
    if isinstance(raw, date):
        return raw

    if raw is None:
        raise ValueError("date is required")
    if not isinstance(raw, str):
        raise ValueError(f"Expected a date string, got {type(raw).__name__}")

    text = raw.strip()
    if not text:
        raise ValueError("date is required")

    parsers: Iterable[str] = (
        "%Y-%m-%d",
        "%Y-%m-%dT%H:%M:%S.%fZ",
        "%Y-%m-%dT%H:%M:%S.%f",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%d %H:%M",
    )

    # First try Python's ISO parser which covers most cases, then iterate fallbacks.
    try:
        return parse_calendar_date(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass

    for fmt in parsers:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    raise ValueError(f"Unrecognised date '{text}'")


def as_calendar_date(value: object) -> date | None:
    """Lenient variant of :func:`parse_calendar_date` used by aggregations."""
    if value is None:
        return None
    try:
        return parse_calendar_date(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


__all__ = [
    "COST_CATEGORIES",
    "PAYMENT_METHODS",
    "SERVICE_TYPES",
    "TRUCK_STATUSES",
    "as_calendar_date",
    "new_id",
    "normalize_choice",
    "parse_calendar_date",
    "utc_now",
]
