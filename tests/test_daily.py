import pytest

from conftest import local
from quizboard.daily import daily_seed, get_daily_question, get_daily_quiz, select_daily_item
from quizboard.errors import Unavailable
from quizboard.rotation import RotationSchedule

SALT = "test-salt"


@pytest.fixture
def schedule():
    return RotationSchedule("Asia/Ho_Chi_Minh", 8)


def test_same_item_for_whole_window(schedule):
    pool = list(range(1, 38))
    first = select_daily_item(pool, schedule.window_at(local(2024, 3, 14, 8, 0)), SALT)
    last = select_daily_item(pool, schedule.window_at(local(2024, 3, 15, 7, 59)), SALT)
    assert first.item == last.item
    assert first.index == last.index
    assert 0 <= first.index < len(pool)


def test_before_reset_uses_previous_date(schedule):
    window = schedule.window_at(local(2024, 3, 14, 7, 0))
    assert daily_seed(window.start, SALT) == daily_seed(local(2024, 3, 13, 23, 0), SALT)


def test_seed_is_non_negative_and_salted(schedule):
    window = schedule.window_at(local(2024, 3, 14, 9, 0))
    assert daily_seed(window.start, SALT) >= 0
    assert daily_seed(window.start, SALT) != daily_seed(window.start, "other-salt")


def test_seed_changes_between_days(schedule):
    seeds = {daily_seed(local(2024, 3, day, 8, 0), SALT) for day in range(1, 15)}
    assert len(seeds) > 1


def test_empty_pool_is_unavailable(schedule):
    selection = select_daily_item([], schedule.window_at(local(2024, 3, 14, 9, 0)), SALT)
    assert not selection.available
    assert selection.item is None
    with pytest.raises(Unavailable):
        selection.require()


def test_daily_question_from_database(services, make_question):
    for _ in range(5):
        make_question()
    now = local(2024, 3, 14, 12, 0)
    first = get_daily_question(services, now)
    second = get_daily_question(services, local(2024, 3, 15, 6, 0))
    assert first.available
    assert first.item.id == second.item.id
    assert first.item.is_active


def test_inactive_questions_are_not_picked(services, make_question):
    make_question(is_active=False)
    assert not get_daily_question(services, local(2024, 3, 14, 12, 0)).available
    active = make_question()
    assert get_daily_question(services, local(2024, 3, 14, 12, 0)).item.id == active.id


def test_daily_quiz_ignores_normal_quizzes(services, make_question, make_quiz):
    question = make_question()
    make_quiz([question], title="Practice")
    assert not get_daily_quiz(services, local(2024, 3, 14, 12, 0)).available
    daily = make_quiz([question], title="Daily", quiz_type="daily")
    assert get_daily_quiz(services, local(2024, 3, 14, 12, 0)).item.id == daily.id
