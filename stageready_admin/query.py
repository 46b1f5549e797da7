# backend/stageready_admin/query.py
"""
In-memory browsing pipelines over already-fetched records.

Everything here is a pure function of its arguments: no store access and no
state kept between calls, so the same inputs always give the same output.
"""
import math
import re
from datetime import date, datetime, time, timezone
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel

from .records import Speech, User

ALL = "all"

SPEECH_SORT_KEYS = {
    "date": lambda s: s.created_at,
    "score": lambda s: s.scores.overall,
    "duration": lambda s: s.duration,
    "words": lambda s: s.word_count,
}

USER_SORT_KEYS = ("name", "date", "role")

_LEADING_NUMBER = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")

_END_OF_DAY = time(23, 59, 59, 999000)


class SpeechQuery(BaseModel):
    search: str = ""
    speech_type: str = ALL
    user_id: str = ALL
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    min_score: Any = None
    max_score: Any = None
    sort_by: str = "date"


class SpeechAggregates(BaseModel):
    total_speeches: int = 0
    total_duration: float = 0.0
    avg_overall: float = 0.0
    avg_pace: float = 0.0
    avg_clarity: float = 0.0
    avg_fluency: float = 0.0
    avg_pitch: float = 0.0


class SpeechQueryResult(BaseModel):
    speeches: List[Speech]
    aggregates: SpeechAggregates


class UserQuery(BaseModel):
    search: str = ""
    role: str = ALL
    gender: str = ALL
    sort_by: str = "name"


# ------------------------------
# Helpers
# ------------------------------
def parse_score_bound(value: Any) -> Optional[float]:
    """Leading-number parse of a score bound; None when nothing parses."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    match = _LEADING_NUMBER.match(str(value))
    if not match:
        return None
    return float(match.group(0))


def day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def day_end(day: date) -> datetime:
    return datetime.combine(day, _END_OF_DAY, tzinfo=timezone.utc)


def has_active_filters(query: SpeechQuery) -> bool:
    return bool(
        query.search
        or query.speech_type != ALL
        or query.user_id != ALL
        or query.date_from
        or query.date_to
        or query.min_score not in (None, "")
        or query.max_score not in (None, "")
    )


# ------------------------------
# Speech pipeline
# ------------------------------
def filter_speeches(
    speeches: Iterable[Speech], query: SpeechQuery, users: Iterable[User] = ()
) -> List[Speech]:
    result = list(speeches)

    if query.speech_type != ALL:
        result = [s for s in result if s.speech_type == query.speech_type]

    if query.user_id != ALL:
        result = [s for s in result if s.user_id == query.user_id]

    if query.date_from:
        start = day_start(query.date_from)
        result = [s for s in result if s.created_at >= start]
    if query.date_to:
        end = day_end(query.date_to)
        result = [s for s in result if s.created_at <= end]

    min_score = parse_score_bound(query.min_score)
    max_score = parse_score_bound(query.max_score)
    if min_score is not None:
        result = [s for s in result if s.scores.overall >= min_score]
    if max_score is not None:
        result = [s for s in result if s.scores.overall <= max_score]

    needle = (query.search or "").strip().lower()
    if needle:
        emails = {u.uid: (u.email or "").lower() for u in users}
        result = [
            s
            for s in result
            if needle in (s.user_name or "").lower()
            or needle in emails.get(s.user_id, "")
            or needle in (s.transcript or "").lower()
            or needle in (s.speech_type or "").lower()
        ]

    return result


def sort_speeches(speeches: Iterable[Speech], sort_by: str = "date") -> List[Speech]:
    """Descending on one key; equal keys keep their input order."""
    try:
        key = SPEECH_SORT_KEYS[sort_by]
    except KeyError:
        raise ValueError(
            f"unknown sort key {sort_by!r}, expected one of {', '.join(SPEECH_SORT_KEYS)}"
        ) from None
    return sorted(speeches, key=key, reverse=True)


def aggregate_speeches(speeches: List[Speech]) -> SpeechAggregates:
    if not speeches:
        return SpeechAggregates()

    scored = [s for s in speeches if s.scores.overall > 0]
    n = max(len(scored), 1)

    return SpeechAggregates(
        total_speeches=len(speeches),
        total_duration=sum(s.duration for s in speeches),
        avg_overall=sum(s.scores.overall for s in scored) / n,
        avg_pace=sum(s.scores.speech_pace for s in scored) / n,
        avg_clarity=sum(s.scores.articulation_clarity for s in scored) / n,
        avg_fluency=sum(s.scores.pausing_fluency for s in scored) / n,
        avg_pitch=sum(s.scores.pitch_variation for s in scored) / n,
    )


def run_speech_query(
    speeches: Iterable[Speech], query: SpeechQuery, users: Iterable[User] = ()
) -> SpeechQueryResult:
    filtered = filter_speeches(speeches, query, users)
    ordered = sort_speeches(filtered, query.sort_by)
    return SpeechQueryResult(speeches=ordered, aggregates=aggregate_speeches(ordered))


def speech_types(speeches: Iterable[Speech]) -> List[str]:
    return sorted({s.speech_type for s in speeches})


# ------------------------------
# User pipeline
# ------------------------------
def user_label(user: User) -> str:
    return user.display_name or "Unknown User"


def run_user_query(users: Iterable[User], query: UserQuery) -> List[User]:
    result = list(users)

    needle = (query.search or "").strip().lower()
    if needle:
        result = [
            u
            for u in result
            if needle in (u.first_name or "").lower()
            or needle in (u.last_name or "").lower()
            or needle in (u.email or "").lower()
        ]

    if query.role != ALL:
        result = [u for u in result if (u.role or "user") == query.role]

    if query.gender != ALL:
        gender = query.gender.lower()
        result = [u for u in result if (u.gender or "").lower() == gender]

    if query.sort_by == "name":
        result.sort(key=lambda u: user_label(u).casefold())
    elif query.sort_by == "date":
        result.sort(
            key=lambda u: u.created_at.timestamp() if u.created_at else 0.0,
            reverse=True,
        )
    elif query.sort_by == "role":
        result.sort(key=lambda u: u.role or "user")
    else:
        raise ValueError(
            f"unknown sort key {query.sort_by!r}, expected one of {', '.join(USER_SORT_KEYS)}"
        )

    return result
