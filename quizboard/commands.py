import logging

import click

from .models import QUIZ_DAILY, QUIZ_NORMAL, Question, Quiz, QuizQuestion, Tag, db
from .progress import recalculate_all_stats

logger = logging.getLogger(__name__)

SAMPLE_QUESTIONS = [
    {
        "text": "Which keyword defines a function in Python?",
        "options": ("func", "def", "lambda", "fn"),
        "correct_answer": "B",
        "explanation": "`def` starts a function definition; `lambda` only builds expressions.",
        "difficulty": "easy",
        "tags": ("python",),
    },
    {
        "text": "What does `len({'a': 1, 'b': 2})` return?",
        "options": ("1", "2", "3", "TypeError"),
        "correct_answer": "B",
        "explanation": "len() of a dict counts its keys.",
        "difficulty": "easy",
        "tags": ("python",),
    },
    {
        "text": "Which HTTP status code means the request conflicts with the current state?",
        "options": ("400", "404", "409", "422"),
        "correct_answer": "C",
        "explanation": "409 Conflict.",
        "difficulty": "medium",
        "tags": ("http",),
    },
    {
        "text": "Which SQL isolation level prevents phantom reads?",
        "options": ("READ UNCOMMITTED", "READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE"),
        "correct_answer": "D",
        "explanation": "Only SERIALIZABLE rules out phantoms in the SQL standard.",
        "difficulty": "hard",
        "tags": ("databases",),
    },
    {
        "text": "What is the time complexity of looking up a key in a Python dict on average?",
        "options": ("O(1)", "O(log n)", "O(n)", "O(n log n)"),
        "correct_answer": "A",
        "explanation": "Dicts are hash tables.",
        "difficulty": "medium",
        "tags": ("python", "performance"),
    },
]


def seed_data():
    """Insert sample questions and quizzes into an empty database."""
    if Question.query.count() == 0:
        tags = {}
        for number, item in enumerate(SAMPLE_QUESTIONS, start=1):
            a, b, c, d = item["options"]
            for name in item["tags"]:
                if name not in tags:
                    tags[name] = Tag.query.filter_by(name=name).first() or Tag(name=name)
            db.session.add(Question(
                number=number,
                text=item["text"],
                option_a=a,
                option_b=b,
                option_c=c,
                option_d=d,
                correct_answer=item["correct_answer"],
                explanation=item["explanation"],
                difficulty=item["difficulty"],
                tags=[tags[name] for name in item["tags"]],
            ))
        db.session.flush()

    if Quiz.query.count() == 0:
        questions = Question.query.order_by(Question.number).all()
        daily = Quiz(title="Daily Warm-up", description="Three questions, once per day.", type=QUIZ_DAILY)
        practice = Quiz(title="Python Basics", description="Practice as often as you like.", type=QUIZ_NORMAL)
        for order, question in enumerate(questions[:3]):
            daily.items.append(QuizQuestion(question=question, order=order))
        for order, question in enumerate(questions):
            practice.items.append(QuizQuestion(question=question, order=order))
        db.session.add_all([daily, practice])

    db.session.commit()


def register_commands(app):
    @app.cli.command("seed")
    def seed_command():
        """Load sample questions and quizzes."""
        seed_data()
        click.echo("Seeded questions and quizzes.")

    @app.cli.command("recalculate-stats")
    def recalculate_stats_command():
        """Rebuild every user's XP, level and counters from their attempts."""
        count = recalculate_all_stats()
        logger.info("recalculated stats for %d users", count)
        click.echo(f"Recalculated stats for {count} users.")
