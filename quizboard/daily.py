"""Picks today's question and today's daily quiz.

The choice depends only on the ordered pool and the rotation window's start,
so every request inside one window sees the same item.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import select

from .errors import Unavailable
from .models import QUIZ_DAILY, Question, Quiz, db
from .rotation import RotationWindow


@dataclass(frozen=True)
class DailySelection:
    window: RotationWindow
    seed: int
    item: Optional[Any] = None
    index: Optional[int] = None

    @property
    def available(self) -> bool:
        return self.item is not None

    def require(self, what="daily question"):
        if self.item is None:
            raise Unavailable(f"Today's {what} is not available")
        return self.item


def daily_seed(window_start: datetime, salt: str) -> int:
    """32-bit rolling hash of the window's local date and ``salt``."""
    combined = f"{window_start.strftime('%Y-%m-%d')}-{salt}"
    value = 0
    for char in combined:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


def select_daily_item(pool: Sequence, window: RotationWindow, salt: str) -> DailySelection:
    seed = daily_seed(window.start, salt)
    if not pool:
        return DailySelection(window=window, seed=seed)
    index = seed % len(pool)
    return DailySelection(window=window, seed=seed, item=pool[index], index=index)


def _resolve(selection: DailySelection, model):
    if not selection.available:
        return selection
    return DailySelection(
        window=selection.window,
        seed=selection.seed,
        item=db.session.get(model, selection.item),
        index=selection.index,
    )


def get_daily_question(services, now: datetime = None) -> DailySelection:
    pool = db.session.scalars(
        select(Question.id).where(Question.is_active.is_(True)).order_by(Question.number)
    ).all()
    window = services.schedule.window_at(now)
    return _resolve(select_daily_item(pool, window, services.daily_salt), Question)


def get_daily_quiz(services, now: datetime = None) -> DailySelection:
    pool = db.session.scalars(
        select(Quiz.id)
        .where(Quiz.type == QUIZ_DAILY, Quiz.is_active.is_(True))
        .order_by(Quiz.id)
    ).all()
    window = services.schedule.window_at(now)
    return _resolve(select_daily_item(pool, window, services.daily_salt), Quiz)
