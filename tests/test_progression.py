import datetime
import threading

import pytest

from word_garden import achievements, db, progression
from word_garden.errors import NotFoundError, ValidationError
from word_garden.progression import exp_for_level, level_for_exp


def unlocked_ids(user_id):
    return {a["id"] for a in achievements.list_achievements(user_id) if a["unlocked"]}


def stats_row(user_id):
    session = db.get_session()
    try:
        return db.get_or_create_stats(session, user_id)
    finally:
        session.close()


def test_exp_for_level_values():
    assert exp_for_level(1) == 100
    assert exp_for_level(2) == 250
    assert exp_for_level(3) == 400
    assert exp_for_level(5) == 700


def test_exp_for_level_strictly_increasing():
    thresholds = [exp_for_level(level) for level in range(1, 100)]
    assert all(a < b for a, b in zip(thresholds, thresholds[1:]))


def test_level_never_below_one():
    assert level_for_exp(0) == 1
    assert level_for_exp(249) == 1
    assert level_for_exp(250) == 2
    assert level_for_exp(100, start_level=4) == 4


def test_award_below_threshold_keeps_level(user_id):
    progression.award_exp(user_id, 95, "test")
    result = progression.award_exp(user_id, 10, "test")
    assert result.new_exp == 105
    assert result.new_level == 1
    assert not result.leveled_up


def test_award_crossing_threshold_levels_up(user_id):
    result = progression.award_exp(user_id, 250, "test")
    assert result.new_level == 2
    assert result.leveled_up


def test_level_five_unlocks_achievement(user_id):
    result = progression.award_exp(user_id, 700, "test")
    assert result.new_level == 5
    assert "level_5" in unlocked_ids(user_id)
    # Achievement star
    assert stats_row(user_id).total_stars == 1


def test_skipped_level_still_unlocks(user_id):
    assert progression.award_exp(user_id, 640, "test").new_level == 4
    result = progression.award_exp(user_id, 400, "spelling")
    assert result.new_level == 7
    unlocked = unlocked_ids(user_id)
    assert "level_5" in unlocked
    assert "level_10" not in unlocked


def test_concurrent_awards_do_not_lose_updates(user_id):
    progression.award_exp(user_id, 5, "test")
    errors = []

    def worker():
        try:
            for _ in range(10):
                progression.award_exp(user_id, 5, "test")
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert stats_row(user_id).total_exp == 205


def test_exp_and_level_never_decrease(user_id):
    last_exp, last_level = 0, 1
    for amount in (5, 120, 1, 300, 42, 999):
        result = progression.award_exp(user_id, amount, "test")
        assert result.new_exp > last_exp
        assert result.new_level >= last_level
        last_exp, last_level = result.new_exp, result.new_level


@pytest.mark.parametrize("amount", [0, -5, True, 1.5, "10", None])
def test_award_rejects_invalid_amounts(user_id, amount):
    with pytest.raises(ValidationError):
        progression.award_exp(user_id, amount, "test")


def test_award_unknown_user():
    with pytest.raises(NotFoundError):
        progression.award_exp(4242, 10, "test")


def test_award_touches_streak(user_id):
    progression.award_exp(user_id, 10, "test")
    row = stats_row(user_id)
    assert row.consecutive_days == 1
    assert row.last_learn_date == datetime.date.today()


def test_streak_same_day_is_idempotent(user_id):
    day = datetime.date(2026, 3, 1)
    assert progression.touch_streak(user_id, today=day) == 1
    assert progression.touch_streak(user_id, today=day) == 1
    assert stats_row(user_id).consecutive_days == 1


def test_streak_consecutive_and_broken(user_id):
    day = datetime.date(2026, 3, 1)
    assert progression.touch_streak(user_id, today=day) == 1
    assert progression.touch_streak(user_id, today=day + datetime.timedelta(days=1)) == 2
    assert progression.touch_streak(user_id, today=day + datetime.timedelta(days=2)) == 3
    # Skipped a day
    assert progression.touch_streak(user_id, today=day + datetime.timedelta(days=4)) == 1


def test_seven_day_streak_unlocks_once(user_id):
    start = datetime.date(2026, 3, 1)
    for offset in range(9):
        progression.touch_streak(user_id, today=start + datetime.timedelta(days=offset))
    assert "consecutive_7_days" in unlocked_ids(user_id)
    assert stats_row(user_id).total_stars == 1


def test_add_stars(user_id):
    assert progression.add_stars(user_id, 2) == 2
    assert progression.add_stars(user_id, 3) == 5
    with pytest.raises(ValidationError):
        progression.add_stars(user_id, 0)


def test_get_stats_for_new_user(user_id):
    stats = progression.get_stats(user_id)
    assert stats["total_exp"] == 0
    assert stats["current_level"] == 1
    assert stats["total_stars"] == 0
    assert stats["next_level_exp"] == 250
    assert stats["exp_to_next_level"] == 250
    assert stats["level_progress"] == 0.0


def test_get_stats_progress(user_id):
    progression.award_exp(user_id, 95, "test")
    stats = progression.get_stats(user_id)
    assert stats["total_exp"] == 95
    assert stats["exp_to_next_level"] == 155
    assert stats["level_progress"] == 0.38
    assert stats["consecutive_days"] == 1
