from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from .. import get_services
from ..cache import cache_key
from ..catalog import (
    browse_questions,
    get_tag,
    list_tags,
    next_unanswered,
    question_detail,
    recent_activity,
    tag_stats,
    user_rank,
)
from ..daily import get_daily_question, get_daily_quiz
from ..errors import NotFound, ValidationError
from ..leaderboard import FALLBACK_STATS, build_leaderboard, filter_email_privacy, public_stats
from ..levels import all_levels, level_summary
from ..models import Quiz, User, db, utcnow
from ..progress import (
    check_quiz_eligibility,
    ensure_stats,
    find_daily_question_attempt,
    get_user_stats,
    stats_dict,
    submit_question_attempt,
    submit_quiz,
)
from ..schemas import AttemptIn, LeaderboardQuery, QuestionQuery, QuizSubmissionIn, TagQuery, parse

api_bp = Blueprint("api", __name__, url_prefix="/api")


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _active_quiz(quiz_id):
    quiz = db.session.get(Quiz, quiz_id)
    if quiz is None or not quiz.is_active:
        raise NotFound("Quiz not found")
    return quiz


def _caller_id():
    return current_user.get_id() if current_user.is_authenticated else None


@api_bp.route("/levels")
def levels():
    return jsonify([threshold._asdict() for threshold in all_levels()])


# ---- Daily question
@api_bp.route("/daily-question")
@login_required
def daily_question():
    services = get_services()
    now = utcnow()
    selection = get_daily_question(services, now)
    question = selection.require()
    attempt = find_daily_question_attempt(current_user.id, question.id, selection.window)
    return {
        "id": question.id,
        "number": question.number,
        "difficulty": question.difficulty,
        "question": question.public_dict(),
        "reset_time": selection.window.end_utc.isoformat(),
        "time_until_reset": services.schedule.time_until_reset(now),
        "has_attempted": attempt is not None,
        "is_completed": bool(attempt and attempt.is_correct),
    }


@api_bp.route("/daily-question/attempt", methods=["POST"])
@login_required
def daily_question_attempt():
    payload = parse(AttemptIn, _json_body())
    services = get_services()
    now = utcnow()
    question = get_daily_question(services, now).require()
    result = submit_question_attempt(
        services, current_user, question.id, payload.selected_answer, daily=True, now=now
    )
    return result.to_dict()


# ---- Practice questions
@api_bp.route("/questions")
@login_required
def questions():
    query = parse(QuestionQuery, request.args.to_dict())
    return browse_questions(current_user, query)


@api_bp.route("/questions/next-unanswered")
@login_required
def questions_next_unanswered():
    return next_unanswered(current_user)


@api_bp.route("/questions/<int:question_id>")
@login_required
def question(question_id):
    return question_detail(current_user, question_id)


@api_bp.route("/questions/<int:question_id>/attempt", methods=["POST"])
@login_required
def question_attempt(question_id):
    payload = parse(AttemptIn, _json_body())
    result = submit_question_attempt(get_services(), current_user, question_id, payload.selected_answer)
    return result.to_dict()


# ---- Tags
@api_bp.route("/tags")
@login_required
def tags():
    query = parse(TagQuery, request.args.to_dict())
    return jsonify(list_tags(current_user, query.include_user_progress))


@api_bp.route("/tags/<int:tag_id>/questions")
@login_required
def tag_questions(tag_id):
    tag = get_tag(tag_id)
    query = parse(QuestionQuery, request.args.to_dict())
    return {"tag": tag.to_dict(), **browse_questions(current_user, query, tag_id=tag.id)}


# ---- Quizzes
@api_bp.route("/quizzes")
def quizzes():
    rows = Quiz.query.filter_by(is_active=True).order_by(Quiz.created_at.desc(), Quiz.id.desc()).all()
    return jsonify([
        {
            "id": quiz.id,
            "title": quiz.title,
            "description": quiz.description,
            "type": quiz.type,
            "question_count": len(quiz.items),
        }
        for quiz in rows
    ])


@api_bp.route("/quiz/<int:quiz_id>")
def quiz_detail(quiz_id):
    quiz = _active_quiz(quiz_id)
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "type": quiz.type,
        "questions": [question.public_dict() for question in quiz.questions],
    }


@api_bp.route("/quiz/<int:quiz_id>/check-daily")
@login_required
def quiz_check_daily(quiz_id):
    quiz = _active_quiz(quiz_id)
    return check_quiz_eligibility(get_services(), current_user, quiz)


@api_bp.route("/daily-quiz/check")
@login_required
def daily_quiz_check():
    services = get_services()
    selection = get_daily_quiz(services)
    if not selection.available:
        return {"can_take": False, "message": "No daily quiz available"}
    eligibility = check_quiz_eligibility(services, current_user, selection.item)
    return {"quiz_id": selection.item.id, **eligibility}


@api_bp.route("/quiz/<int:quiz_id>/submit", methods=["POST"])
@login_required
def quiz_submit(quiz_id):
    payload = parse(QuizSubmissionIn, _json_body())
    result = submit_quiz(get_services(), current_user, quiz_id, payload.pairs())
    return result.to_dict()


# ---- Scoreboards
def _leaderboard_response(metric):
    query = parse(LeaderboardQuery, request.args.to_dict())
    services = get_services()
    rows = services.cache.get_or_compute(
        cache_key(request),
        lambda: [
            entry.to_dict()
            for entry in build_leaderboard(services, metric, query.filter, query.limit, redact=False)
        ],
        fallback=[],
        errors=(SQLAlchemyError,),
    )
    caller_id = _caller_id()
    response = jsonify(filter_email_privacy(rows, caller_id))
    response.headers["Cache-Control"] = services.cache.header(private=caller_id is not None)
    return response


@api_bp.route("/scoreboard/questions-solved")
def scoreboard_questions_solved():
    return _leaderboard_response("questions-solved")


@api_bp.route("/scoreboard/daily-points")
def scoreboard_daily_points():
    return _leaderboard_response("daily-points")


@api_bp.route("/scoreboard/xp")
def scoreboard_xp():
    return _leaderboard_response("xp")


# ---- Profiles
def _profile(stats, user, include_email):
    data = stats_dict(stats, include_email=include_email)
    data.update(level_summary(stats.total_xp))
    data["display_name"] = user.display_name if user else None
    return data


@api_bp.route("/user/stats")
@login_required
def my_stats():
    stats = get_user_stats(current_user)
    data = _profile(stats, current_user, include_email=True)
    data.update(user_rank(stats))
    return data


@api_bp.route("/user/<user_id>/stats")
def user_stats(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User statistics not found")
    stats = ensure_stats(user)
    db.session.commit()
    data = _profile(stats, user, include_email=_caller_id() == user.id)
    data["tag_stats"] = tag_stats(user.id)
    data["recent_activity"] = recent_activity(user.id)
    return data


@api_bp.route("/public/stats")
def stats_overview():
    services = get_services()
    data = services.cache.get_or_compute(
        cache_key(request),
        lambda: public_stats(services),
        fallback=FALLBACK_STATS,
        errors=(SQLAlchemyError,),
    )
    response = jsonify(data)
    response.headers["Cache-Control"] = services.cache.header()
    return response
