import os
import tempfile
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from quizboard import create_app, get_services
from quizboard.models import Question, Quiz, QuizQuestion, Tag, User, db


@pytest.fixture
def app():
    # Use a file-based sqlite DB to keep data across request contexts.
    db_fd, db_path = tempfile.mkstemp()
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "ROTATION_TIMEZONE": "Asia/Ho_Chi_Minh",
        "ROTATION_RESET_HOUR": 8,
    })
    ctx = app.app_context()
    ctx.push()
    try:
        yield app
    finally:
        get_services().close()
        db.session.remove()
        db.drop_all()
        db.engine.dispose()
        ctx.pop()
        os.close(db_fd)
        os.unlink(db_path)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return get_services()


@pytest.fixture
def make_user(app):
    def _make(user_id="user-1", email=None, display_name=None):
        user = User(id=user_id, email=email or f"{user_id}@example.com", display_name=display_name)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def make_question(app):
    counter = {"number": 0}

    def _make(difficulty="medium", correct_answer="A", is_active=True, number=None, tags=(), text=None):
        counter["number"] += 1
        question = Question(
            number=number or counter["number"],
            text=text or f"Question {counter['number']}",
            option_a="alpha",
            option_b="beta",
            option_c="gamma",
            option_d="delta",
            correct_answer=correct_answer,
            explanation="Because.",
            difficulty=difficulty,
            is_active=is_active,
            tags=[Tag.query.filter_by(name=name).first() or Tag(name=name) for name in tags],
        )
        db.session.add(question)
        db.session.commit()
        return question
    return _make


@pytest.fixture
def make_quiz(app):
    def _make(questions, title="Quiz", quiz_type="normal", is_active=True):
        quiz = Quiz(title=title, type=quiz_type, is_active=is_active)
        for order, question in enumerate(questions):
            quiz.items.append(QuizQuestion(question=question, order=order))
        db.session.add(quiz)
        db.session.commit()
        return quiz
    return _make


def identity(user_id="user-1", email=None, name=None):
    """Headers the auth gateway would attach for ``user_id``."""
    headers = {"X-User-Id": user_id, "X-User-Email": email or f"{user_id}@example.com"}
    if name:
        headers["X-User-Name"] = name
    return headers


def local(*args):
    """Aware datetime in the rotation timezone (UTC+7)."""
    return datetime(*args, tzinfo=ZoneInfo("Asia/Ho_Chi_Minh"))


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)
