"""Best-effort record of badge downloads and prints.

Logging a print must never get in the way of the download itself: store
failures are reported through the return value, the module logger and an
optional ``on_error`` callback, and are never raised.

The report side (filtered listing, daily counts) reads through the store.
"""
from __future__ import annotations

import datetime
import logging
from typing import Callable, NamedTuple, Optional
from zoneinfo import ZoneInfo

import config

logger = logging.getLogger(__name__)

ACTIONS = ("download", "print")
PHOTO_ORIGINS = ("supabase", "local", "unknown")

ErrorHandler = Callable[[Exception], None]


def build_print_row(
    full_name: str,
    role_title: str,
    action: str,
    photo_url: Optional[str] = None,
    photo_origin: str = "unknown",
) -> dict:
    if action not in ACTIONS:
        raise ValueError(f"action must be one of {ACTIONS}, got {action!r}")
    if photo_origin not in PHOTO_ORIGINS:
        photo_origin = "unknown"
    return {
        "full_name": full_name,
        "role_title": role_title,
        "action": action,
        "photo_url": photo_url or None,
        "photo_origin": photo_origin,
    }


def photo_origin_for(photo_url: Optional[str], has_local_file: bool) -> str:
    if photo_url and photo_url.startswith(("http://", "https://")):
        return "supabase"
    if has_local_file:
        return "local"
    return "unknown"


def log_badge_print(
    store,
    full_name: str,
    role_title: str,
    action: str,
    photo_url: Optional[str] = None,
    photo_origin: str = "unknown",
    on_error: Optional[ErrorHandler] = None,
) -> bool:
    """Insert a print-log row; ``True`` on success, ``False`` otherwise."""
    row = build_print_row(full_name, role_title, action, photo_url, photo_origin)
    try:
        store.insert_print_log(row)
    except Exception as exc:  # best effort: no store failure may escape
        logger.warning("Badge print log failed: %s", exc)
        if on_error is not None:
            try:
                on_error(exc)
            except Exception as handler_exc:
                logger.warning("Print-log error handler failed: %s", handler_exc)
        return False
    return True


class PrintStats(NamedTuple):
    total: int
    today: int
    last_7_days: int


def print_stats(store, now: Optional[datetime.datetime] = None) -> PrintStats:
    """Counts shown on the print report: all time, today, and the last 7 days.

    Days are calendar days in the badge time zone; the 7-day window starts
    at midnight seven days before today.
    """
    tz = ZoneInfo(config.BADGE_TIMEZONE)
    if now is None:
        now = datetime.datetime.now(tz)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=datetime.timezone.utc)
    today = now.astimezone(tz).date()
    return PrintStats(
        total=store.count_print_log(),
        today=store.count_print_log(since=today, until=today),
        last_7_days=store.count_print_log(since=today - datetime.timedelta(days=7)),
    )


__all__ = [
    "ACTIONS",
    "PHOTO_ORIGINS",
    "PrintStats",
    "build_print_row",
    "log_badge_print",
    "photo_origin_for",
    "print_stats",
]
