# backend/stageready_admin/records.py
"""
Typed records for the admin engine and the mappers that build them from raw
store documents.

Mappers never raise: missing or malformed fields fall back to defaults so
that downstream arithmetic and comparisons never branch on missing values.
Store timestamps are converted here, once; nothing above this module sees
a store Timestamp.
"""
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from .store import EPOCH, DocumentSnapshot, Timestamp

SCORE_FACETS = (
    "speech_pace",
    "pausing_fluency",
    "loudness_control",
    "pitch_variation",
    "articulation_clarity",
    "expressive_emphasis",
    "filler_words",
    "overall",
)


# -----------------------------
# Records
# -----------------------------
class User(BaseModel):
    uid: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    age: Optional[int] = None
    gender: Optional[str] = None
    phone_number: Optional[str] = None
    interests: Optional[List[str]] = None
    bio: Optional[str] = None
    role: str = "user"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class SpeechScores(BaseModel):
    speech_pace: float = 0.0
    pausing_fluency: float = 0.0
    loudness_control: float = 0.0
    pitch_variation: float = 0.0
    articulation_clarity: float = 0.0
    expressive_emphasis: float = 0.0
    filler_words: float = 0.0
    overall: float = 0.0


class Speech(BaseModel):
    id: str
    user_id: str
    # filled in when speeches of several users are joined; never stored
    user_name: Optional[str] = None
    transcript: str = ""
    speech_type: str = "general"
    scores: SpeechScores = Field(default_factory=SpeechScores)
    duration: float = 0.0
    word_count: int = 0
    average_pace: float = 0.0
    created_at: datetime = EPOCH


class Gamification(BaseModel):
    user_id: str
    level: int = 1
    current_xp: int = 0
    total_xp: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: Optional[datetime] = None


class BadgeProgress(BaseModel):
    """Badge list of one user.

    ``total_badges`` and ``unlocked_badges`` are always derived from
    ``badges``; values passed in are overwritten.
    """

    user_id: str
    total_badges: int = 0
    unlocked_badges: int = 0
    badges: List[Dict[str, Any]] = Field(default_factory=list)

    @model_validator(mode="after")
    def derive_counts(self):
        self.total_badges, self.unlocked_badges = badge_counts(self.badges)
        return self

    @property
    def unlocked(self) -> List[Dict[str, Any]]:
        return [b for b in self.badges if b.get("isUnlocked")]

    @property
    def locked(self) -> List[Dict[str, Any]]:
        return [b for b in self.badges if not b.get("isUnlocked")]


class DashboardStats(BaseModel):
    total_users: int = 0
    total_speeches: int = 0
    active_users_last_7_days: int = 0
    average_overall_score: float = 0.0
    total_practice_minutes: int = 0
    speeches_this_week: int = 0
    total_admins: int = 0


def badge_counts(badges) -> tuple:
    """(total, unlocked) over a badge sequence."""
    badges = list(badges or [])
    return len(badges), sum(1 for b in badges if isinstance(b, dict) and b.get("isUnlocked"))


# -----------------------------
# Field coercion
# -----------------------------
def to_datetime(value: Any) -> Optional[datetime]:
    """Converts any timestamp representation found in the store to an aware
    UTC datetime. Already-converted datetimes pass through."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, dict) and "_seconds" in value:
        try:
            value = Timestamp(value["_seconds"], value.get("_nanoseconds", 0))
        except (TypeError, ValueError):
            return None
    if isinstance(value, Timestamp):
        try:
            return value.to_datetime()
        except OverflowError:
            return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_datetime(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def _number(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    # NaN and inf count as missing
    return number if math.isfinite(number) else default


def _int(value: Any, default: int = 0) -> int:
    return int(_number(value, default))


def _int_or_none(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    number = _number(value, float("nan"))
    return int(number) if math.isfinite(number) else None


def _text(value: Any, default: str = "") -> str:
    if value is None or value == "":
        return default
    return value if isinstance(value, str) else str(value)


def _text_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _raw(doc) -> Dict[str, Any]:
    if isinstance(doc, DocumentSnapshot):
        return doc.to_dict() or {}
    return dict(doc or {})


# -----------------------------
# Mappers
# -----------------------------
def map_user(doc, uid: Optional[str] = None) -> User:
    data = _raw(doc)
    if uid is None:
        uid = doc.id if isinstance(doc, DocumentSnapshot) else _text(data.get("uid"))

    interests = data.get("interests")
    if isinstance(interests, (list, tuple)):
        interests = [_text(i) for i in interests]
    else:
        interests = None

    return User(
        uid=uid,
        email=_text(data.get("email")),
        first_name=_text(data.get("firstName")),
        last_name=_text(data.get("lastName")),
        age=_int_or_none(data.get("age")),
        gender=_text_or_none(data.get("gender")),
        phone_number=_text_or_none(data.get("phoneNumber")),
        interests=interests,
        bio=_text_or_none(data.get("bio")),
        role=_text(data.get("role"), "user"),
        created_at=to_datetime(data.get("createdAt")),
        updated_at=to_datetime(data.get("updatedAt")),
    )


def map_speech(doc, user_id: str) -> Speech:
    data = _raw(doc)
    raw_scores = data.get("scores")
    if not isinstance(raw_scores, dict):
        raw_scores = {}

    return Speech(
        id=doc.id if isinstance(doc, DocumentSnapshot) else _text(data.get("id")),
        user_id=user_id,
        transcript=_text(data.get("transcript")),
        speech_type=_text(data.get("speechType"), "general"),
        scores=SpeechScores(
            **{facet: _number(raw_scores.get(facet)) for facet in SCORE_FACETS}
        ),
        duration=_number(data.get("duration")),
        word_count=_int(data.get("wordCount")),
        average_pace=_number(data.get("averagePace")),
        created_at=to_datetime(data.get("createdAt")) or EPOCH,
    )


def map_gamification(doc, user_id: str) -> Gamification:
    data = _raw(doc)
    return Gamification(
        user_id=_text(data.get("userId"), user_id),
        level=_int(data.get("level"), 1) or 1,
        current_xp=_int(data.get("currentXP")),
        total_xp=_int(data.get("totalXP")),
        current_streak=_int(data.get("currentStreak")),
        longest_streak=_int(data.get("longestStreak")),
        last_activity_date=to_datetime(data.get("lastActivityDate")),
    )


def map_badge_progress(doc, user_id: str) -> BadgeProgress:
    data = _raw(doc)
    badges = data.get("badges")
    if not isinstance(badges, list):
        badges = []
    return BadgeProgress(
        user_id=_text(data.get("userId"), user_id),
        badges=[b for b in badges if isinstance(b, dict)],
    )
