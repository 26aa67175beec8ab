"""Leaderboards built from user stats snapshots."""
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import joinedload

from .errors import ValidationError
from .models import Question, QuestionAttempt, UserStats, as_utc, db

METRICS = {
    "questions-solved": "total_correct_answers",
    "daily-points": "total_daily_points",
    "xp": "total_xp",
}
DEFAULT_LIMIT = 100
MAX_LIMIT = 100

_NEVER = datetime.min.replace(tzinfo=timezone.utc)

FALLBACK_STATS = {
    "total_questions": 500,
    "total_users": 1200,
    "questions_answered_today": 350,
}


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    user_id: str
    metric_value: int
    updated_at: Optional[datetime]
    user_email: Optional[str]
    display_name: Optional[str]
    total_xp: int
    current_level: int
    current_title: str
    current_streak: int
    total_correct_answers: int
    total_questions_answered: int
    accuracy_percentage: int

    def to_dict(self):
        data = asdict(self)
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data


def metric_column(metric: str) -> str:
    try:
        return METRICS[metric]
    except KeyError:
        raise ValidationError(f"Unknown leaderboard metric: {metric}") from None


def _accuracy(correct, answered):
    if not answered:
        return 0
    return round(correct / answered * 100)


def _active_since(snapshot, since):
    updated_at = as_utc(snapshot.updated_at)
    return updated_at is not None and updated_at >= since


def _rank_key(snapshot, attr):
    # inactive rows go after active rows with the same metric
    updated_at = as_utc(snapshot.updated_at)
    return (
        -(getattr(snapshot, attr) or 0),
        updated_at is None,
        updated_at or _NEVER,
        str(snapshot.user_id),
    )


def rank_snapshots(snapshots: Iterable, metric: str, since: datetime = None,
                   limit: int = DEFAULT_LIMIT, caller_id: str = None,
                   redact: bool = True) -> List[LeaderboardEntry]:
    """Order stats snapshots into leaderboard entries.

    Highest metric first; ties go to the earlier ``updated_at`` and then to the
    lower ``user_id`` so the order is total. Snapshots updated before
    ``since`` are dropped.
    """
    attr = metric_column(metric)
    since = as_utc(since)
    rows = [s for s in snapshots if since is None or _active_since(s, since)]
    rows.sort(key=lambda s: _rank_key(s, attr))

    entries = []
    for position, snapshot in enumerate(rows[:max(limit, 0)], start=1):
        user = getattr(snapshot, "user", None)
        entries.append(LeaderboardEntry(
            rank=position,
            user_id=snapshot.user_id,
            metric_value=getattr(snapshot, attr) or 0,
            updated_at=as_utc(snapshot.updated_at),
            user_email=snapshot.user_email,
            display_name=getattr(user, "display_name", None),
            total_xp=snapshot.total_xp or 0,
            current_level=snapshot.current_level,
            current_title=snapshot.current_title,
            current_streak=snapshot.current_streak or 0,
            total_correct_answers=snapshot.total_correct_answers or 0,
            total_questions_answered=snapshot.total_questions_answered or 0,
            accuracy_percentage=_accuracy(snapshot.total_correct_answers, snapshot.total_questions_answered),
        ))
    if redact:
        entries = filter_email_privacy(entries, caller_id)
    return entries


def filter_email_privacy(entries, caller_id: str = None):
    """Keep only the caller's own email; without a caller every email goes.

    Accepts ``LeaderboardEntry`` objects or their dict form.
    """
    filtered = []
    for entry in entries:
        if isinstance(entry, dict):
            own = caller_id is not None and entry.get("user_id") == caller_id
            filtered.append(entry if own else {**entry, "user_email": None})
        else:
            own = caller_id is not None and entry.user_id == caller_id
            filtered.append(entry if own else replace(entry, user_email=None))
    return filtered


def build_leaderboard(services, metric: str, time_filter: str = "all-time",
                      limit: int = DEFAULT_LIMIT, caller_id: str = None,
                      redact: bool = True, now: datetime = None) -> List[LeaderboardEntry]:
    attr = metric_column(metric)
    since = services.schedule.period_start(time_filter, now)
    column = getattr(UserStats, attr)

    stmt = select(UserStats).options(joinedload(UserStats.user))
    if since is not None:
        stmt = stmt.where(UserStats.updated_at >= as_utc(since))
    stmt = stmt.order_by(
        column.desc(), UserStats.updated_at.asc().nulls_last(), UserStats.user_id.asc()
    ).limit(limit)

    snapshots = db.session.scalars(stmt).all()
    return rank_snapshots(snapshots, metric, since, limit, caller_id, redact=redact)


def public_stats(services, now: datetime = None) -> dict:
    window = services.schedule.window_at(now)
    total_questions = db.session.scalar(
        select(func.count(Question.id)).where(Question.is_active.is_(True))
    )
    total_users = db.session.scalar(select(func.count(UserStats.id)))
    answered_today = db.session.scalar(
        select(func.count(QuestionAttempt.id)).where(
            QuestionAttempt.answered_at >= window.start_utc,
            QuestionAttempt.answered_at < window.end_utc,
        )
    )
    return {
        "total_questions": total_questions,
        "total_users": total_users,
        "questions_answered_today": answered_today,
    }
