from quizboard import create_app
from quizboard.commands import seed_data
from quizboard.models import Question, Quiz

app = create_app()

if __name__ == "__main__":
    with app.app_context():
        seed_data()
        print(f"Seeded {Question.query.count()} questions.")
        print(f"Seeded {Quiz.query.count()} quizzes.")
