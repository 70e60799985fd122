import pytest

from word_garden import db, progression, vocabulary
from word_garden.errors import ConflictError, NotFoundError, ValidationError


def stats(user_id):
    return progression.get_stats(user_id)


def mark_mastered(item_id):
    with db.transaction() as session:
        item = session.get(db.VocabularyItem, item_id)
        item.is_mastered = True
        item.mastery_level = 5


def test_add_chinese_word_computes_pinyin(user_id):
    result = vocabulary.add_word(user_id, "chinese", " 你好 ")
    assert result.item["text"] == "你好"
    assert result.item["phonetic"] == "nǐ hǎo"
    assert result.item["practice_count"] == 0
    assert result.item["mastery_level"] == 0
    assert result.previously_deleted is None
    assert result.exp.new_exp == 10

    s = stats(user_id)
    assert s["total_words_learned"] == 1
    # first_word star
    assert s["total_stars"] == 1


def test_add_english_word_keeps_supplied_phonetic(user_id):
    result = vocabulary.add_word(user_id, "english", "cat", phonetic="/kæt/", meaning="猫")
    assert result.item["kind"] == "english"
    assert result.item["phonetic"] == "/kæt/"
    assert result.item["meaning"] == "猫"


def test_same_text_in_both_kinds_is_allowed(user_id):
    vocabulary.add_word(user_id, "chinese", "hi")
    vocabulary.add_word(user_id, "english", "hi")
    assert len(vocabulary.list_words(user_id, "chinese")) == 1
    assert len(vocabulary.list_words(user_id, "english")) == 1


@pytest.mark.parametrize("text", ["", "   ", None, 12])
def test_add_rejects_empty_text(user_id, text):
    with pytest.raises(ValidationError):
        vocabulary.add_word(user_id, "chinese", text)


def test_add_rejects_unknown_kind(user_id):
    with pytest.raises(ValidationError):
        vocabulary.add_word(user_id, "french", "chat")


def test_duplicate_add_leaves_existing_row(user_id):
    item_id = vocabulary.add_word(user_id, "chinese", "月").item["id"]
    vocabulary.record_practice(user_id, item_id)
    with pytest.raises(ConflictError):
        vocabulary.add_word(user_id, "chinese", "月")
    words = vocabulary.list_words(user_id, "chinese")
    assert len(words) == 1
    assert words[0]["id"] == item_id
    assert words[0]["practice_count"] == 1
    assert stats(user_id)["total_words_learned"] == 1


def test_record_practice_rewards_exp(user_id):
    item_id = vocabulary.add_word(user_id, "chinese", "日").item["id"]
    result = vocabulary.record_practice(user_id, item_id)
    assert result["practice_count"] == 1
    assert result["exp"]["new_exp"] == 15


def test_delete_unmastered_word_gives_no_reward(user_id):
    item_id = vocabulary.add_word(user_id, "chinese", "木").item["id"]
    result = vocabulary.delete_word(user_id, item_id)
    assert not result.was_mastered
    assert result.exp is None
    assert result.stars_awarded == 0
    assert stats(user_id)["total_exp"] == 10
    assert vocabulary.list_words(user_id, "chinese") == []
    assert vocabulary.word_stats(user_id, "chinese") == {"unknown_count": 0, "known_count": 1}


def test_delete_mastered_word_rewards(user_id):
    item_id = vocabulary.add_word(user_id, "chinese", "人").item["id"]
    mark_mastered(item_id)
    result = vocabulary.delete_word(user_id, item_id)
    assert result.was_mastered
    assert result.exp.new_exp == 60
    assert result.stars_awarded == 2

    s = stats(user_id)
    assert s["total_exp"] == 60
    # first_word star plus the two for deleting a mastered word
    assert s["total_stars"] == 3

    session = db.get_session()
    tombstone = session.query(db.DeletedVocabularyItem).filter_by(user_id=user_id, text="人").one()
    session.close()
    assert tombstone.is_mastered


def test_delete_removes_mastery_record(user_id):
    from word_garden import mastery
    item_id = vocabulary.add_word(user_id, "chinese", "口").item["id"]
    mastery.record_answer(user_id, item_id, True)
    vocabulary.delete_word(user_id, item_id)
    session = db.get_session()
    assert session.query(db.MasteryRecord).filter_by(item_id=item_id).count() == 0
    session.close()


def test_readd_reports_previous_counters(user_id):
    item_id = vocabulary.add_word(user_id, "chinese", "天").item["id"]
    vocabulary.record_practice(user_id, item_id)
    vocabulary.record_practice(user_id, item_id)
    vocabulary.delete_word(user_id, item_id)

    result = vocabulary.add_word(user_id, "chinese", "天")
    assert result.previously_deleted["practice_count"] == 2
    assert result.previously_deleted["was_mastered"] is False
    assert result.previously_deleted["added_at"] is not None
    assert result.item["practice_count"] == 0
    assert vocabulary.word_stats(user_id, "chinese") == {"unknown_count": 1, "known_count": 0}


def test_second_delete_replaces_tombstone(user_id):
    item_id = vocabulary.add_word(user_id, "english", "sun", phonetic="/sʌn/").item["id"]
    vocabulary.delete_word(user_id, item_id)
    item_id = vocabulary.add_word(user_id, "english", "sun", phonetic="/sʌn/").item["id"]
    vocabulary.record_practice(user_id, item_id)
    vocabulary.delete_word(user_id, item_id)

    session = db.get_session()
    rows = session.query(db.DeletedVocabularyItem).filter_by(user_id=user_id, text="sun").all()
    session.close()
    assert len(rows) == 1
    assert rows[0].practice_count == 1


def test_delete_missing_or_foreign_item(user_id, other_user_id):
    with pytest.raises(NotFoundError):
        vocabulary.delete_word(user_id, 12345)
    item_id = vocabulary.add_word(user_id, "chinese", "火").item["id"]
    with pytest.raises(NotFoundError):
        vocabulary.delete_word(other_user_id, item_id)
    assert len(vocabulary.list_words(user_id, "chinese")) == 1


def test_list_words_newest_first(user_id):
    for text in ("一", "二", "三"):
        vocabulary.add_word(user_id, "chinese", text)
    assert [w["text"] for w in vocabulary.list_words(user_id, "chinese")] == ["三", "二", "一"]
