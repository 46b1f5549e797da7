# backend/stageready_admin/stats.py
import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from flask import current_app

from .records import DashboardStats
from .repository import AdminRepository

ACTIVE_WINDOW = timedelta(days=7)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_dashboard_stats(
    repository: AdminRepository, now: Optional[datetime] = None
) -> DashboardStats:
    """
    Full scan over every user and every speech of every user.

    A speech with overall == 0 has not been scored yet and is left out of
    the average. A user with several speeches in the last 7 days counts
    once in active_users_last_7_days.
    """
    now = now or datetime.now(timezone.utc)
    week_ago = now - ACTIVE_WINDOW

    users = repository.get_all_users()

    total_speeches = 0
    total_duration = 0.0
    total_overall = 0.0
    scored_speeches = 0
    speeches_this_week = 0
    total_admins = 0
    active_user_ids = set()

    for user in users:
        if user.role == "admin":
            total_admins += 1

        speeches = repository.get_user_speeches(user.uid)
        total_speeches += len(speeches)

        for speech in speeches:
            total_duration += speech.duration
            if speech.scores.overall > 0:
                total_overall += speech.scores.overall
                scored_speeches += 1
            if speech.created_at >= week_ago:
                speeches_this_week += 1
                active_user_ids.add(user.uid)

    stats = DashboardStats(
        total_users=len(users),
        total_speeches=total_speeches,
        active_users_last_7_days=len(active_user_ids),
        average_overall_score=(total_overall / scored_speeches) if scored_speeches else 0.0,
        total_practice_minutes=round_half_up(total_duration / 60),
        speeches_this_week=speeches_this_week,
        total_admins=total_admins,
    )
    current_app.logger.debug(f"[dashboard] stats computed over {len(users)} users: {stats}")
    return stats
