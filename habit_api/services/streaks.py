from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date as Date
from datetime import datetime, timezone
from typing import Any


def utc_today() -> Date:
    return datetime.now(timezone.utc).date()


def to_day_marker(value: Any) -> Date | None:
    """Truncate a date, datetime or ISO string to its UTC calendar day.

    Naive datetimes are taken to be UTC. Anything unparseable yields None.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, Date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return Date.fromisoformat(text)
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return to_day_marker(parsed)
    return None


def extract_day_markers(history: Iterable[Any] | None) -> list[Date]:
    if not history:
        return []
    out: list[Date] = []
    for value in history:
        day = to_day_marker(value)
        if day is not None:
            out.append(day)
    return out


def compute_streak(history: Iterable[Any] | None) -> int:
    """Count consecutive days ending at the most recent completion.

    The most recent day is day one regardless of how long ago it was. Same-day
    duplicates are skipped; the first gap longer than a day ends the run.
    """
    days = sorted(extract_day_markers(history), reverse=True)
    if not days:
        return 0

    streak = 1
    for newer, older in zip(days, days[1:]):
        gap = (newer - older).days
        if gap == 1:
            streak += 1
        elif gap > 1:
            break
    return streak


@dataclass(frozen=True)
class CompletionResult:
    accepted: bool
    streak: int
    history: list[Any]


def record_completion(history: Iterable[Any] | None, today: Date) -> CompletionResult:
    existing = list(history or [])
    if today in set(extract_day_markers(existing)):
        return CompletionResult(
            accepted=False, streak=compute_streak(existing), history=existing
        )

    updated = [*existing, today.isoformat()]
    return CompletionResult(accepted=True, streak=compute_streak(updated), history=updated)
