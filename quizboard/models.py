from datetime import datetime, timezone

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

OPTION_KEYS = ("A", "B", "C", "D")
DIFFICULTIES = ("easy", "medium", "hard")

# QuestionAttempt.source values
SOURCE_PRACTICE = "practice"
SOURCE_DAILY_QUESTION = "daily_question"
SOURCE_NORMAL_QUIZ = "normal_quiz"
SOURCE_DAILY_QUIZ = "daily_quiz"
DAILY_SOURCES = (SOURCE_DAILY_QUESTION, SOURCE_DAILY_QUIZ)

QUIZ_DAILY = "daily"
QUIZ_NORMAL = "normal"


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """Attach UTC to naive datetimes read back from sqlite."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class User(UserMixin, db.Model):
    __tablename__ = "users"
    # id is the identity provider's subject, not generated here
    id = db.Column(db.String(64), primary_key=True)
    email = db.Column(db.String(255), nullable=True)
    display_name = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)


question_tags = db.Table(
    "question_tags",
    db.Column("question_id", db.Integer, db.ForeignKey("questions.id"), primary_key=True),
    db.Column("tag_id", db.Integer, db.ForeignKey("tags.id"), primary_key=True),
)


class Tag(db.Model):
    __tablename__ = "tags"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(60), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "description": self.description}


class Question(db.Model):
    __tablename__ = "questions"
    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.Integer, unique=True, nullable=False)
    text = db.Column(db.Text, nullable=False)
    option_a = db.Column(db.Text, nullable=False)
    option_b = db.Column(db.Text, nullable=False)
    option_c = db.Column(db.Text, nullable=False)
    option_d = db.Column(db.Text, nullable=False)
    correct_answer = db.Column(db.String(1), nullable=False)
    explanation = db.Column(db.Text, nullable=True)
    difficulty = db.Column(db.String(10), nullable=False, default="medium")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    tags = db.relationship("Tag", secondary=question_tags, order_by="Tag.name", backref="questions")

    def options(self):
        return {
            "A": self.option_a,
            "B": self.option_b,
            "C": self.option_c,
            "D": self.option_d,
        }

    def public_dict(self):
        """Question content safe to show before an answer is graded."""
        return {
            "id": self.id,
            "number": self.number,
            "text": self.text,
            "options": self.options(),
            "difficulty": self.difficulty,
            "tags": [tag.name for tag in self.tags],
        }


class Quiz(db.Model):
    __tablename__ = "quizzes"
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(10), nullable=False, default=QUIZ_NORMAL)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    items = db.relationship(
        "QuizQuestion", order_by="QuizQuestion.order", cascade="all, delete-orphan"
    )

    @property
    def is_daily(self):
        return self.type == QUIZ_DAILY

    @property
    def questions(self):
        return [item.question for item in self.items]


class QuizQuestion(db.Model):
    __tablename__ = "quiz_questions"
    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey("quizzes.id"), nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey("questions.id"), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0)

    question = db.relationship("Question")
    __table_args__ = (db.UniqueConstraint("quiz_id", "question_id"),)


class QuestionAttempt(db.Model):
    __tablename__ = "question_attempts"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey("questions.id"), nullable=False)
    selected_answer = db.Column(db.String(1), nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False)
    source = db.Column(db.String(20), nullable=False, default=SOURCE_PRACTICE)
    answered_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    # Only set for daily_question attempts; NULLs never collide.
    window_start = db.Column(db.DateTime(timezone=True), nullable=True)

    question = db.relationship("Question")
    __table_args__ = (db.UniqueConstraint("user_id", "question_id", "window_start"),)


class QuizAttempt(db.Model):
    __tablename__ = "quiz_attempts"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False, index=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey("quizzes.id"), nullable=False)
    score = db.Column(db.Integer, nullable=False, default=0)
    total_questions = db.Column(db.Integer, nullable=False, default=0)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    # Only set for daily quizzes.
    window_start = db.Column(db.DateTime(timezone=True), nullable=True)

    quiz = db.relationship("Quiz")
    __table_args__ = (db.UniqueConstraint("user_id", "quiz_id", "window_start"),)


class UserStats(db.Model):
    __tablename__ = "user_stats"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), db.ForeignKey("users.id"), unique=True, nullable=False)
    user_email = db.Column(db.String(255), nullable=True)

    total_xp = db.Column(db.Integer, nullable=False, default=0)
    current_level = db.Column(db.Integer, nullable=False, default=1)
    current_title = db.Column(db.String(60), nullable=False, default="Newbie")

    total_questions_answered = db.Column(db.Integer, nullable=False, default=0)
    total_correct_answers = db.Column(db.Integer, nullable=False, default=0)
    easy_questions_answered = db.Column(db.Integer, nullable=False, default=0)
    easy_correct_answers = db.Column(db.Integer, nullable=False, default=0)
    medium_questions_answered = db.Column(db.Integer, nullable=False, default=0)
    medium_correct_answers = db.Column(db.Integer, nullable=False, default=0)
    hard_questions_answered = db.Column(db.Integer, nullable=False, default=0)
    hard_correct_answers = db.Column(db.Integer, nullable=False, default=0)

    current_streak = db.Column(db.Integer, nullable=False, default=0)
    longest_streak = db.Column(db.Integer, nullable=False, default=0)
    last_answered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    total_daily_points = db.Column(db.Integer, nullable=False, default=0)
    total_quizzes_taken = db.Column(db.Integer, nullable=False, default=0)
    daily_quizzes_taken = db.Column(db.Integer, nullable=False, default=0)

    # NULL until the first answer or quiz
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    user = db.relationship("User")

    @property
    def accuracy_percentage(self):
        if not self.total_questions_answered:
            return 0
        return round(self.total_correct_answers / self.total_questions_answered * 100)
