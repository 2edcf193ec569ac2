"""
Date parsing utilities for flexible date format handling.

Spreadsheet dates arrive in whatever format the operator typed. ERPNext
expects ``YYYY-MM-DD``, so everything funnels through ``normalize_date``.
"""

import logging
import re
from datetime import date
from typing import Any, Optional

import pandas as pd

from sheetsync.core.config import settings

logger = logging.getLogger(__name__)

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
FAILED_SAMPLE_LIMIT = 5
SUPPRESSION_NOTICE_EVERY = 100

_failure_stats: dict = {}


def _record_parse_failure(value: Any, context: Optional[str], error: Exception) -> None:
    """
    Collect failure stats and emit limited logs (sampled warnings + periodic summaries).
    """
    key = context or "default"
    stats = _failure_stats.setdefault(key, {"count": 0, "samples": []})
    stats["count"] += 1
    count = stats["count"]

    if len(stats["samples"]) < FAILED_SAMPLE_LIMIT:
        stats["samples"].append(value)
        logger.warning("Failed to parse date%s value '%s': %s", f" ({key})" if context else "", value, error)
        return

    if count == FAILED_SAMPLE_LIMIT + 1 or count % SUPPRESSION_NOTICE_EVERY == 0:
        logger.info(
            "Suppressed additional date parse warnings after %d failures%s; sample values=%s",
            count,
            f" ({key})" if context else "",
            stats["samples"],
        )


def _prefers_dayfirst(value: str) -> Optional[bool]:
    """Guess day-first vs month-first for purely numeric dates like 20/10/2025."""
    match = re.match(r"^(\d{1,2})[/.-](\d{1,2})[/.-]\d{2,4}", value)
    if not match:
        return None
    first, second = int(match.group(1)), int(match.group(2))
    if first > 12 and second <= 12:
        return True
    if second > 12 and first <= 12:
        return False
    return settings.date_default_dayfirst


def parse_date(value: Any, *, log_context: Optional[str] = None, log_failures: bool = True) -> Optional[pd.Timestamp]:
    """
    Parse a date value from various formats.

    Supports ISO 8601, ``DD/MM/YYYY``, ``MM/DD/YYYY``, month names and
    anything else pandas can infer. Numeric day/month ambiguity is resolved
    by magnitude first and ``settings.date_default_dayfirst`` second.

    Returns:
        A UTC ``pd.Timestamp`` or None when the value is empty or unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    if isinstance(value, (pd.Timestamp, date)):
        return pd.Timestamp(value)

    text = str(value).strip()
    if not text:
        return None

    attempts = []
    dayfirst = _prefers_dayfirst(text)
    if dayfirst is not None:
        attempts.append(dayfirst)
        attempts.append(not dayfirst)
    attempts.append(None)

    last_error: Optional[Exception] = None
    for attempt in attempts:
        try:
            if attempt is None:
                parsed = pd.to_datetime(text, utc=True, errors="raise")
            else:
                parsed = pd.to_datetime(text, utc=True, dayfirst=attempt, errors="raise")
        except Exception as exc:
            last_error = exc
            continue
        if parsed is pd.NaT:
            continue
        return parsed

    if log_failures:
        _record_parse_failure(value, log_context, last_error or ValueError("Unable to determine format"))
    return None


def normalize_date(value: Any, *, log_context: Optional[str] = None, log_failures: bool = True) -> Optional[str]:
    """
    Return ``value`` as a ``YYYY-MM-DD`` string.

    Strings already in that shape are returned unchanged. Anything that does
    not parse yields None; this function never raises.
    """
    if isinstance(value, str) and ISO_DATE_PATTERN.match(value.strip()):
        return value.strip()

    parsed = parse_date(value, log_context=log_context, log_failures=log_failures)
    if parsed is None:
        return None
    return parsed.strftime("%Y-%m-%d")


def is_date_like(value: Any) -> bool:
    """True when ``value`` parses as a date."""
    return parse_date(value, log_failures=False) is not None


def today_iso() -> str:
    return date.today().isoformat()
