# backend/stageready_admin/export.py
"""
CSV exports of the user and speech lists.

Header row is written plain; every data field is quoted and embedded quotes
are doubled, so transcripts with commas, quotes or newlines survive a
spreadsheet import unchanged.
"""
import csv
import io
import re
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional

from .query import user_label
from .records import Speech, User
from .stats import round_half_up

USER_COLUMNS = ["Name", "Email", "Role", "Gender", "Age", "Phone", "Bio", "Joined"]

SPEECH_COLUMNS = [
    "Type", "Overall", "Pace", "Clarity", "Pitch", "Fluency",
    "Loudness", "Emphasis", "Filler Words", "Duration (s)", "Words", "WPM", "Date", "Transcript",
]


def iso_timestamp(dt: datetime) -> str:
    """UTC, millisecond precision, "Z" suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _fixed(value: float, digits: int = 2) -> str:
    return f"{value:.{digits}f}"


def _write_table(header: List[str], rows: Iterable[List[str]]) -> str:
    out = io.StringIO()
    csv.writer(out, lineterminator="\n").writerow(header)
    writer = csv.writer(out, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        writer.writerow(row)
    return out.getvalue().rstrip("\n")


def user_row(user: User) -> List[str]:
    return [
        user_label(user),
        user.email or "",
        user.role or "user",
        user.gender or "",
        str(user.age) if user.age is not None else "",
        user.phone_number or "",
        user.bio or "",
        iso_timestamp(user.created_at) if user.created_at else "",
    ]


def speech_row(speech: Speech, include_user: bool = True) -> List[str]:
    scores = speech.scores
    row = [
        speech.speech_type,
        _fixed(scores.overall),
        _fixed(scores.speech_pace),
        _fixed(scores.articulation_clarity),
        _fixed(scores.pitch_variation),
        _fixed(scores.pausing_fluency),
        _fixed(scores.loudness_control),
        _fixed(scores.expressive_emphasis),
        _fixed(scores.filler_words),
        str(round_half_up(speech.duration)),
        str(speech.word_count),
        str(round_half_up(speech.average_pace)),
        iso_timestamp(speech.created_at),
        speech.transcript or "",
    ]
    if include_user:
        row.insert(0, speech.user_name or speech.user_id)
    return row


def users_csv(users: Iterable[User]) -> str:
    return _write_table(USER_COLUMNS, (user_row(u) for u in users))


def speeches_csv(speeches: Iterable[Speech], include_user: bool = True) -> str:
    header = (["User"] if include_user else []) + SPEECH_COLUMNS
    return _write_table(header, (speech_row(s, include_user) for s in speeches))


def slugify(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "-", name).lower()


def export_filename(subject: str, owner: Optional[str] = None, today: Optional[date] = None) -> str:
    """``stageready-users-2025-01-31.csv`` style download names; with an
    ``owner`` display name, ``speeches-<slug>-2025-01-31.csv``."""
    today = today or datetime.now(timezone.utc).date()
    if owner is not None:
        return f"{subject}-{slugify(owner)}-{today.isoformat()}.csv"
    return f"stageready-{subject}-{today.isoformat()}.csv"
