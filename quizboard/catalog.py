"""Question browsing, tags and profile extras built on the attempt history."""
import random

from sqlalchemy import case, func, select

from .errors import NotFound
from .models import Question, QuestionAttempt, Quiz, QuizAttempt, Tag, UserStats, as_utc, db, question_tags

RECENT_ACTIVITY_LIMIT = 20
SNIPPET_LENGTH = 100

_DIFFICULTY_ORDER = case(
    (Question.difficulty == "easy", 0),
    (Question.difficulty == "medium", 1),
    (Question.difficulty == "hard", 2),
    else_=1,
)


def _iso(value):
    value = as_utc(value)
    return value.isoformat() if value else None


def _solved_ids(user_id):
    return select(QuestionAttempt.question_id).where(
        QuestionAttempt.user_id == user_id, QuestionAttempt.is_correct.is_(True)
    )


def _latest_attempts(user_id, question_ids):
    """Most recent attempt per question, keyed by question id."""
    if not question_ids:
        return {}
    latest = {}
    attempts = db.session.scalars(
        select(QuestionAttempt)
        .where(QuestionAttempt.user_id == user_id, QuestionAttempt.question_id.in_(question_ids))
        .order_by(QuestionAttempt.answered_at.desc(), QuestionAttempt.id.desc())
    )
    for attempt in attempts:
        latest.setdefault(attempt.question_id, attempt)
    return latest


def _attempt_dict(attempt):
    if attempt is None:
        return None
    return {
        "selected_answer": attempt.selected_answer,
        "is_correct": attempt.is_correct,
        "source": attempt.source,
        "answered_at": _iso(attempt.answered_at),
    }


def _question_row(question, attempt):
    data = question.public_dict()
    data.update(
        user_attempt=_attempt_dict(attempt),
        has_attempted=attempt is not None,
        is_solved=bool(attempt and attempt.is_correct),
    )
    return data


def browse_questions(user, query, tag_id=None):
    """One page of active questions matching ``query`` (a ``QuestionQuery``)."""
    stmt = select(Question).where(Question.is_active.is_(True))
    if tag_id is not None:
        stmt = stmt.where(Question.tags.any(Tag.id == tag_id))
    if query.tags:
        stmt = stmt.where(Question.tags.any(func.lower(Tag.name).in_(query.tags)))
    if query.difficulty:
        stmt = stmt.where(Question.difficulty.in_(query.difficulty))
    if query.search:
        stmt = stmt.where(Question.text.ilike(f"%{query.search}%"))
    if query.status == "solved":
        stmt = stmt.where(Question.id.in_(_solved_ids(user.id)))
    elif query.status == "unsolved":
        stmt = stmt.where(Question.id.not_in(_solved_ids(user.id)))

    sort_column = {
        "newest": Question.created_at,
        "difficulty": _DIFFICULTY_ORDER,
        "number": Question.number,
    }[query.sort_by]
    if query.sort_order == "asc":
        stmt = stmt.order_by(sort_column.asc(), Question.id.asc())
    else:
        stmt = stmt.order_by(sort_column.desc(), Question.id.desc())

    page = db.paginate(stmt, page=query.page, per_page=query.limit, error_out=False)
    latest = _latest_attempts(user.id, [q.id for q in page.items])
    return {
        "questions": [_question_row(q, latest.get(q.id)) for q in page.items],
        "pagination": {
            "page": query.page,
            "limit": query.limit,
            "total_count": page.total,
            "total_pages": page.pages,
            "has_next_page": page.has_next,
            "has_prev_page": page.has_prev,
        },
    }


def question_detail(user, question_id):
    """A single active question; the answer is only shown once attempted."""
    question = db.session.get(Question, question_id)
    if question is None or not question.is_active:
        raise NotFound("Question not found")
    attempt = _latest_attempts(user.id, [question.id]).get(question.id)
    data = _question_row(question, attempt)
    if attempt is not None:
        data.update(correct_answer=question.correct_answer, explanation=question.explanation)
    return data


def next_unanswered(user, rng=random):
    """A random active question the user has never attempted."""
    attempted = select(QuestionAttempt.question_id).where(QuestionAttempt.user_id == user.id)
    pool = select(Question.id).where(Question.is_active.is_(True), Question.id.not_in(attempted))
    remaining = db.session.scalar(select(func.count()).select_from(pool.subquery()))
    if not remaining:
        return {"question_id": None, "remaining_questions": 0}
    question_id = db.session.scalar(
        pool.order_by(Question.id).offset(rng.randrange(remaining)).limit(1)
    )
    return {"question_id": question_id, "remaining_questions": remaining}


# -----------------------------------------------------------------------------
# Tags
# -----------------------------------------------------------------------------
def get_tag(tag_id):
    tag = db.session.get(Tag, tag_id)
    if tag is None:
        raise NotFound("Tag not found")
    return tag


def tag_stats(user_id, active_only=True):
    """Per-tag progress for ``user_id``; tags without questions are left out."""
    stmt = (
        select(
            Tag.id,
            Tag.name,
            func.count(func.distinct(Question.id)),
            func.count(func.distinct(QuestionAttempt.question_id)),
            func.count(func.distinct(case((QuestionAttempt.is_correct.is_(True), QuestionAttempt.question_id)))),
        )
        .join(question_tags, question_tags.c.tag_id == Tag.id)
        .join(Question, Question.id == question_tags.c.question_id)
        .outerjoin(
            QuestionAttempt,
            (QuestionAttempt.question_id == Question.id) & (QuestionAttempt.user_id == user_id),
        )
        .group_by(Tag.id, Tag.name)
        .order_by(Tag.name)
    )
    if active_only:
        stmt = stmt.where(Question.is_active.is_(True))
    stats = []
    for tag_id, name, total, answered, correct in db.session.execute(stmt):
        stats.append({
            "tag_id": tag_id,
            "tag_name": name,
            "total_questions": total,
            "answered_questions": answered,
            "correct_answers": correct,
            "accuracy_percentage": round(correct / answered * 100) if answered else 0,
        })
    return stats


def list_tags(user=None, include_user_progress=False):
    counts = dict(db.session.execute(
        select(question_tags.c.tag_id, func.count())
        .join(Question, Question.id == question_tags.c.question_id)
        .where(Question.is_active.is_(True))
        .group_by(question_tags.c.tag_id)
    ).all())
    tags = [
        {**tag.to_dict(), "question_count": counts.get(tag.id, 0)}
        for tag in db.session.scalars(select(Tag).order_by(Tag.name))
    ]
    if include_user_progress and user is not None:
        progress = {row["tag_id"]: row for row in tag_stats(user.id)}
        for tag in tags:
            row = progress.get(tag["id"])
            tag["user_progress"] = {
                "answered_questions": row["answered_questions"] if row else 0,
                "correct_answers": row["correct_answers"] if row else 0,
                "accuracy_percentage": row["accuracy_percentage"] if row else 0,
            }
    return tags


# -----------------------------------------------------------------------------
# Profile extras
# -----------------------------------------------------------------------------
def _snippet(text):
    if len(text) <= SNIPPET_LENGTH:
        return text
    return text[:SNIPPET_LENGTH] + "..."


def recent_activity(user_id, limit=RECENT_ACTIVITY_LIMIT):
    """Latest answers and finished quizzes, newest first."""
    answers = db.session.execute(
        select(QuestionAttempt, Question.number, Question.text)
        .join(Question, Question.id == QuestionAttempt.question_id)
        .where(QuestionAttempt.user_id == user_id)
        .order_by(QuestionAttempt.answered_at.desc(), QuestionAttempt.id.desc())
        .limit(limit)
    ).all()
    quizzes = db.session.execute(
        select(QuizAttempt, Quiz.title, Quiz.type)
        .join(Quiz, Quiz.id == QuizAttempt.quiz_id)
        .where(QuizAttempt.user_id == user_id)
        .order_by(QuizAttempt.completed_at.desc(), QuizAttempt.id.desc())
        .limit(limit)
    ).all()

    activities = [
        {
            "type": "question",
            "id": attempt.id,
            "date": as_utc(attempt.answered_at),
            "is_correct": attempt.is_correct,
            "source": attempt.source,
            "question": {"id": attempt.question_id, "number": number, "text": _snippet(text)},
        }
        for attempt, number, text in answers
    ]
    activities.extend(
        {
            "type": "quiz",
            "id": attempt.id,
            "date": as_utc(attempt.completed_at),
            "score": attempt.score,
            "total_questions": attempt.total_questions,
            "quiz": {"id": attempt.quiz_id, "title": title, "type": quiz_type},
        }
        for attempt, title, quiz_type in quizzes
    )
    activities.sort(key=lambda item: item["date"], reverse=True)
    for item in activities:
        item["date"] = item["date"].isoformat()
    return activities[:limit]


def user_rank(stats):
    """1-based XP rank among users with stats, and how many such users exist."""
    ahead = db.session.scalar(
        select(func.count(UserStats.id)).where(UserStats.total_xp > stats.total_xp)
    )
    total = db.session.scalar(select(func.count(UserStats.id)))
    return {"rank": ahead + 1, "total_users": total}
