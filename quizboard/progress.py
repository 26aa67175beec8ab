"""Attempt recording and the per-user statistics it feeds.

``Tally.record_answer`` and ``Tally.record_quiz`` define how one answer or one
finished quiz changes ``UserStats``. Backfill folds a user's history through
them in Python. Live submissions apply the same step as a single SQL
``UPDATE`` built by ``answer_changes`` / ``quiz_changes``, so every counter is
incremented by the database and concurrent submissions never overwrite each
other.
"""
import logging
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import List, Optional

from sqlalchemy import case, literal, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .errors import Conflict, Internal, NotFound, ValidationError
from .levels import LEVEL_DATA, level_for_xp
from .models import (
    DAILY_SOURCES,
    OPTION_KEYS,
    SOURCE_DAILY_QUESTION,
    SOURCE_DAILY_QUIZ,
    SOURCE_NORMAL_QUIZ,
    SOURCE_PRACTICE,
    Question,
    QuestionAttempt,
    Quiz,
    QuizAttempt,
    User,
    UserStats,
    as_utc,
    db,
    utcnow,
)

logger = logging.getLogger(__name__)

XP_BY_DIFFICULTY = {"easy": 10, "medium": 25, "hard": 50}
DAILY_POINTS = {"easy": 10, "medium": 25, "hard": 50}


def _bucket(difficulty: str) -> str:
    return difficulty if difficulty in XP_BY_DIFFICULTY else "medium"


def xp_for(difficulty: str) -> int:
    return XP_BY_DIFFICULTY[_bucket(difficulty)]


def daily_points_for(difficulty: str) -> int:
    return DAILY_POINTS[_bucket(difficulty)]


def _later(current, candidate):
    candidate = as_utc(candidate)
    if current is None or candidate > as_utc(current):
        return candidate
    return as_utc(current)


@dataclass
class Tally:
    total_xp: int = 0
    total_questions_answered: int = 0
    total_correct_answers: int = 0
    easy_questions_answered: int = 0
    easy_correct_answers: int = 0
    medium_questions_answered: int = 0
    medium_correct_answers: int = 0
    hard_questions_answered: int = 0
    hard_correct_answers: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    total_daily_points: int = 0
    total_quizzes_taken: int = 0
    daily_quizzes_taken: int = 0
    last_answered_at: Optional[datetime] = None
    # None until the first answer or quiz
    updated_at: Optional[datetime] = None

    def record_answer(self, difficulty: str, is_correct: bool, answered_at: datetime, daily: bool = False) -> int:
        """Fold one graded answer in; returns the XP it earned."""
        bucket = _bucket(difficulty)
        self.total_questions_answered += 1
        setattr(self, f"{bucket}_questions_answered", getattr(self, f"{bucket}_questions_answered") + 1)

        earned = 0
        if is_correct:
            earned = xp_for(bucket)
            self.total_correct_answers += 1
            setattr(self, f"{bucket}_correct_answers", getattr(self, f"{bucket}_correct_answers") + 1)
            self.total_xp += earned
            self.current_streak += 1
            if daily:
                self.total_daily_points += daily_points_for(bucket)
        else:
            self.current_streak = 0
        self.longest_streak = max(self.longest_streak, self.current_streak)

        self.last_answered_at = _later(self.last_answered_at, answered_at)
        self.updated_at = _later(self.updated_at, answered_at)
        return earned

    def record_quiz(self, daily: bool, completed_at: datetime) -> None:
        self.total_quizzes_taken += 1
        if daily:
            self.daily_quizzes_taken += 1
        self.updated_at = _later(self.updated_at, completed_at)

    def write_to(self, stats: UserStats) -> UserStats:
        for name, value in asdict(self).items():
            setattr(stats, name, value)
        threshold = level_for_xp(self.total_xp)
        stats.current_level = threshold.level
        stats.current_title = threshold.title
        return stats


# -----------------------------------------------------------------------------
# SQL form of the Tally step
# -----------------------------------------------------------------------------
def _stamp(column, instant):
    """Later of ``column`` and ``instant``, treating NULL as never."""
    value = literal(as_utc(instant), column.type)
    return case((column.is_(None), value), (column < value, value), else_=column)


def level_columns(xp):
    """``current_level`` and ``current_title`` for the XP expression ``xp``."""
    highest_first = list(reversed(LEVEL_DATA))
    return {
        "current_level": case(
            *[(xp >= t.cumulative_xp_needed, t.level) for t in highest_first],
            else_=LEVEL_DATA[0].level,
        ),
        "current_title": case(
            *[(xp >= t.cumulative_xp_needed, t.title) for t in highest_first],
            else_=LEVEL_DATA[0].title,
        ),
    }


def answer_changes(difficulty: str, is_correct: bool, answered_at: datetime, daily: bool = False) -> dict:
    """Column updates equivalent to ``Tally.record_answer``."""
    bucket = _bucket(difficulty)
    answered = f"{bucket}_questions_answered"
    values = {
        "total_questions_answered": UserStats.total_questions_answered + 1,
        answered: getattr(UserStats, answered) + 1,
        "last_answered_at": _stamp(UserStats.last_answered_at, answered_at),
        "updated_at": _stamp(UserStats.updated_at, answered_at),
    }
    if not is_correct:
        values["current_streak"] = 0
        return values

    correct = f"{bucket}_correct_answers"
    streak = UserStats.current_streak + 1
    new_xp = UserStats.total_xp + xp_for(bucket)
    values.update({
        "total_correct_answers": UserStats.total_correct_answers + 1,
        correct: getattr(UserStats, correct) + 1,
        "total_xp": new_xp,
        "current_streak": streak,
        "longest_streak": case((UserStats.longest_streak < streak, streak), else_=UserStats.longest_streak),
        **level_columns(new_xp),
    })
    if daily:
        values["total_daily_points"] = UserStats.total_daily_points + daily_points_for(bucket)
    return values


def quiz_changes(daily: bool, completed_at: datetime) -> dict:
    """Column updates equivalent to ``Tally.record_quiz``."""
    values = {
        "total_quizzes_taken": UserStats.total_quizzes_taken + 1,
        "updated_at": _stamp(UserStats.updated_at, completed_at),
    }
    if daily:
        values["daily_quizzes_taken"] = UserStats.daily_quizzes_taken + 1
    return values


def _apply(user_id: str, values: dict) -> None:
    # right-hand sides read the stored row, not the session copy
    db.session.execute(
        update(UserStats).where(UserStats.user_id == user_id).values(**values),
        execution_options={"synchronize_session": False},
    )


@dataclass
class AttemptResult:
    question_id: int
    selected_answer: str
    is_correct: bool
    correct_answer: str
    explanation: Optional[str]
    xp_awarded: int
    total_xp: int
    current_level: int
    current_title: str
    leveled_up: bool
    answered_at: datetime

    def to_dict(self):
        data = asdict(self)
        data["answered_at"] = self.answered_at.isoformat()
        return data


@dataclass
class QuizResult:
    quiz_id: int
    score: int
    total_questions: int
    answers: List[dict]
    xp_awarded: int
    total_xp: int
    current_level: int
    current_title: str
    leveled_up: bool
    completed_at: datetime

    def to_dict(self):
        data = asdict(self)
        data["completed_at"] = self.completed_at.isoformat()
        return data


# -----------------------------------------------------------------------------
# Stats rows
# -----------------------------------------------------------------------------
def backfill_tally(user_id: str) -> Tally:
    """Replay a user's history in chronological order."""
    tally = Tally()
    rows = db.session.execute(
        select(QuestionAttempt, Question.difficulty)
        .join(Question, Question.id == QuestionAttempt.question_id)
        .where(QuestionAttempt.user_id == user_id)
        .order_by(QuestionAttempt.answered_at, QuestionAttempt.id)
    ).all()
    for attempt, difficulty in rows:
        tally.record_answer(
            difficulty, attempt.is_correct, attempt.answered_at,
            daily=attempt.source in DAILY_SOURCES,
        )
    quiz_attempts = db.session.scalars(
        select(QuizAttempt)
        .where(QuizAttempt.user_id == user_id)
        .order_by(QuizAttempt.completed_at, QuizAttempt.id)
    ).all()
    for quiz_attempt in quiz_attempts:
        tally.record_quiz(quiz_attempt.window_start is not None, quiz_attempt.completed_at)
    return tally


def _select_stats(user_id: str, lock: bool):
    stmt = select(UserStats).where(UserStats.user_id == user_id)
    if lock:
        stmt = stmt.with_for_update()
    return db.session.scalars(stmt).first()


def ensure_stats(user: User, lock: bool = False) -> UserStats:
    """Load the user's stats row, building it from history when missing.

    Must run before anything else is added to the session: losing the
    creation race rolls the session back and re-reads the winner's row.
    """
    stats = _select_stats(user.id, lock)
    if stats is not None:
        return stats

    tally = backfill_tally(user.id)
    stats = tally.write_to(UserStats(user_id=user.id, user_email=user.email))
    db.session.add(stats)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        stats = _select_stats(user.id, lock)
    else:
        logger.info("created stats for %s from %d answers", user.id, tally.total_questions_answered)
    return stats


def get_user_stats(user: User) -> UserStats:
    stats = ensure_stats(user)
    db.session.commit()
    return stats


def recalculate_all_stats() -> int:
    """Rebuild every stats row from attempts; returns how many were written."""
    user_ids = set(db.session.scalars(select(QuestionAttempt.user_id).distinct()))
    user_ids.update(db.session.scalars(select(QuizAttempt.user_id).distinct()))
    user_ids.update(db.session.scalars(select(UserStats.user_id)))
    for user_id in sorted(user_ids):
        stats = _select_stats(user_id, lock=True)
        if stats is None:
            user = db.session.get(User, user_id)
            stats = UserStats(user_id=user_id, user_email=user.email if user else None)
            db.session.add(stats)
        old_xp = stats.total_xp or 0
        backfill_tally(user_id).write_to(stats)
        if old_xp != stats.total_xp:
            logger.info("user %s: xp %s -> %s (level %s)", user_id, old_xp, stats.total_xp, stats.current_level)
    db.session.commit()
    return len(user_ids)


def stats_dict(stats: UserStats, include_email: bool = True) -> dict:
    data = {f.name: getattr(stats, f.name) for f in fields(Tally)}
    for name in ("last_answered_at", "updated_at"):
        value = as_utc(data[name])
        data[name] = value.isoformat() if value else None
    data.update(
        user_id=stats.user_id,
        user_email=stats.user_email if include_email else None,
        current_level=stats.current_level,
        current_title=stats.current_title,
        accuracy_percentage=stats.accuracy_percentage,
    )
    return data


def sync_stats_email(user: User) -> None:
    """Copy the user's current email onto their stats row, if one exists."""
    _apply(user.id, {"user_email": user.email})


# -----------------------------------------------------------------------------
# Daily eligibility
# -----------------------------------------------------------------------------
def find_daily_question_attempt(user_id: str, question_id: int, window):
    return db.session.scalars(
        select(QuestionAttempt)
        .where(
            QuestionAttempt.user_id == user_id,
            QuestionAttempt.question_id == question_id,
            QuestionAttempt.source == SOURCE_DAILY_QUESTION,
            QuestionAttempt.answered_at >= window.start_utc,
            QuestionAttempt.answered_at < window.end_utc,
        )
        .order_by(QuestionAttempt.answered_at)
    ).first()


def find_daily_quiz_attempt(user_id: str, quiz_id: int, window):
    return db.session.scalars(
        select(QuizAttempt).where(
            QuizAttempt.user_id == user_id,
            QuizAttempt.quiz_id == quiz_id,
            QuizAttempt.completed_at >= window.start_utc,
            QuizAttempt.completed_at < window.end_utc,
        )
    ).first()


def check_quiz_eligibility(services, user: User, quiz: Quiz, now: datetime = None) -> dict:
    if not quiz.is_daily:
        return {"can_take": True, "message": "Quiz available"}
    window = services.schedule.window_at(now)
    recent = find_daily_quiz_attempt(user.id, quiz.id, window)
    return {
        "can_take": recent is None,
        "next_reset_time": window.end_utc.isoformat(),
        "message": "Already completed today" if recent else "Available now",
    }



# -----------------------------------------------------------------------------
# Submissions
# -----------------------------------------------------------------------------
def _validate_option(selected_answer):
    if selected_answer not in OPTION_KEYS:
        raise ValidationError("Invalid answer. Must be A, B, C, or D")


def _progression(stats: UserStats, earned: int) -> dict:
    db.session.refresh(stats)
    return {
        "xp_awarded": earned,
        "total_xp": stats.total_xp,
        "current_level": stats.current_level,
        "current_title": stats.current_title,
        "leveled_up": stats.current_level > level_for_xp(stats.total_xp - earned).level,
    }


def submit_question_attempt(services, user: User, question_id: int, selected_answer: str,
                            daily: bool = False, now: datetime = None) -> AttemptResult:
    _validate_option(selected_answer)
    question = db.session.get(Question, question_id)
    if question is None or not question.is_active:
        raise NotFound("Question not found")

    answered_at = as_utc(now) if now else utcnow()
    window = services.schedule.window_at(answered_at) if daily else None
    if daily and find_daily_question_attempt(user.id, question.id, window):
        raise Conflict("Daily question already answered in this rotation")

    try:
        stats = ensure_stats(user)
        is_correct = selected_answer == question.correct_answer
        db.session.add(QuestionAttempt(
            user_id=user.id,
            question_id=question.id,
            selected_answer=selected_answer,
            is_correct=is_correct,
            source=SOURCE_DAILY_QUESTION if daily else SOURCE_PRACTICE,
            answered_at=answered_at,
            window_start=window.start_utc if daily else None,
        ))
        db.session.flush()

        earned = xp_for(question.difficulty) if is_correct else 0
        _apply(user.id, answer_changes(question.difficulty, is_correct, answered_at, daily=daily))
        progression = _progression(stats, earned)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise Conflict("Daily question already answered in this rotation") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("failed to record attempt for %s on question %s", user.id, question_id)
        raise Internal("Failed to submit answer") from exc

    logger.info("user %s answered question %s (%s, daily=%s)",
                user.id, question.id, "correct" if is_correct else "wrong", daily)
    return AttemptResult(
        question_id=question.id,
        selected_answer=selected_answer,
        is_correct=is_correct,
        correct_answer=question.correct_answer,
        explanation=question.explanation,
        answered_at=answered_at,
        **progression,
    )


def submit_quiz(services, user: User, quiz_id: int, answers, now: datetime = None) -> QuizResult:
    """Grade and record a whole quiz; ``answers`` is a list of (question_id, option)."""
    quiz = db.session.get(Quiz, quiz_id)
    if quiz is None or not quiz.is_active:
        raise NotFound("Quiz not found")

    questions = {q.id: q for q in quiz.questions}
    seen = set()
    for question_id, selected_answer in answers:
        _validate_option(selected_answer)
        if question_id not in questions:
            raise ValidationError(f"Question {question_id} is not part of this quiz")
        if question_id in seen:
            raise ValidationError(f"Question {question_id} answered more than once")
        seen.add(question_id)

    completed_at = as_utc(now) if now else utcnow()
    window = services.schedule.window_at(completed_at) if quiz.is_daily else None
    if quiz.is_daily and find_daily_quiz_attempt(user.id, quiz.id, window):
        raise Conflict("Daily quiz already completed today")

    source = SOURCE_DAILY_QUIZ if quiz.is_daily else SOURCE_NORMAL_QUIZ
    graded = [
        (questions[question_id], selected_answer, selected_answer == questions[question_id].correct_answer)
        for question_id, selected_answer in answers
    ]
    score = sum(1 for _, _, is_correct in graded if is_correct)
    try:
        stats = ensure_stats(user)
        db.session.add_all([
            QuestionAttempt(
                user_id=user.id,
                question_id=question.id,
                selected_answer=selected_answer,
                is_correct=is_correct,
                source=source,
                answered_at=completed_at,
            )
            for question, selected_answer, is_correct in graded
        ])
        db.session.add(QuizAttempt(
            user_id=user.id,
            quiz_id=quiz.id,
            score=score,
            total_questions=len(questions),
            completed_at=completed_at,
            window_start=window.start_utc if window else None,
        ))
        db.session.flush()

        earned = 0
        for question, _, is_correct in graded:
            if is_correct:
                earned += xp_for(question.difficulty)
            _apply(user.id, answer_changes(question.difficulty, is_correct, completed_at, daily=quiz.is_daily))
        _apply(user.id, quiz_changes(quiz.is_daily, completed_at))
        progression = _progression(stats, earned)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise Conflict("Daily quiz already completed today") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("failed to record quiz %s for %s", quiz_id, user.id)
        raise Internal("Failed to submit quiz") from exc

    logger.info("user %s completed quiz %s: %d/%d", user.id, quiz.id, score, len(questions))
    return QuizResult(
        quiz_id=quiz.id,
        score=score,
        total_questions=len(questions),
        answers=[
            {
                "question_id": question.id,
                "selected_answer": selected_answer,
                "is_correct": is_correct,
                "correct_answer": question.correct_answer,
                "explanation": question.explanation,
            }
            for question, selected_answer, is_correct in graded
        ],
        completed_at=completed_at,
        **progression,
    )
