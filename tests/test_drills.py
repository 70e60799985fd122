import pytest

from word_garden import drills
from word_garden.errors import NotFoundError, ValidationError


def test_pinyin_chart():
    chart = drills.pinyin_chart()
    assert len(chart["initials"]) == 23
    assert len(chart["finals"]) == 36
    assert "zh" in chart["initials"]
    assert "ü" in chart["finals"]


def test_init_pinyin_is_insert_or_ignore(user_id):
    assert drills.init_pinyin(user_id) == 59
    drills.learn_pinyin(user_id, "b", "initial")
    assert drills.init_pinyin(user_id) == 0

    records = drills.list_pinyin(user_id)
    assert len(records) == 59
    b = next(r for r in records if r["pinyin"] == "b" and r["type"] == "initial")
    assert b["learn_count"] == 1


def test_learn_pinyin_counts(user_id):
    drills.learn_pinyin(user_id, "ang", "final")
    record = drills.learn_pinyin(user_id, "ang", "final")
    assert record["learn_count"] == 2
    assert record["type"] == "final"
    assert record["last_learned_at"] is not None


@pytest.mark.parametrize("symbol,kind", [("b", "tone"), ("ang", "initial"), ("", "final"), (None, "initial")])
def test_learn_pinyin_rejects_unknown(user_id, symbol, kind):
    with pytest.raises(ValidationError):
        drills.learn_pinyin(user_id, symbol, kind)


def test_list_pinyin_sorted_by_type(user_id):
    drills.learn_pinyin(user_id, "m", "initial")
    drills.learn_pinyin(user_id, "a", "final")
    drills.learn_pinyin(user_id, "b", "initial")
    assert [(r["type"], r["pinyin"]) for r in drills.list_pinyin(user_id)] == [
        ("final", "a"), ("initial", "b"), ("initial", "m"),
    ]


def test_english_learn_upsert(user_id):
    first = drills.record_english_learn(user_id, "apple", "beginner")
    second = drills.record_english_learn(user_id, "apple", "beginner")
    assert first["learn_count"] == 1
    assert second["learn_count"] == 2
    assert second["id"] == first["id"]
    drills.record_english_learn(user_id, "apple", "advanced")
    records = drills.list_english_learn(user_id)
    assert [(r["level"], r["word"], r["learn_count"]) for r in records] == [
        ("advanced", "apple", 1), ("beginner", "apple", 2),
    ]


def test_english_learn_validation(user_id):
    with pytest.raises(ValidationError):
        drills.record_english_learn(user_id, "", "beginner")
    with pytest.raises(ValidationError):
        drills.record_english_learn(user_id, "apple", None)


def test_drills_unknown_user():
    with pytest.raises(NotFoundError):
        drills.init_pinyin(321)
    with pytest.raises(NotFoundError):
        drills.list_english_learn(321)
