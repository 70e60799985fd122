import datetime
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Tuple

from . import db, achievements
from .effects import Effect, run_effects

logger = logging.getLogger(__name__)

MAX_LEVEL = 5
MASTERED_MIN_CONSECUTIVE = 10

# (level, minimum attempts, minimum accuracy), highest first
LEVEL_THRESHOLDS: Tuple[Tuple[int, int, float], ...] = (
    (5, 20, 0.95),
    (4, 11, 0.85),
    (3, 6, 0.70),
    (2, 3, 0.50),
    (1, 1, 0.0),
)


@dataclass
class MasteryResult:
    item_id: int
    mastery_level: int
    consecutive_correct: int
    is_mastered: bool
    newly_mastered: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def mastery_level_for(correct_count: int, wrong_count: int) -> int:
    """
    Mastery level (0-5) from the answer history of one word.

    The level is the highest tier whose minimum number of attempts and
    minimum accuracy are both met:

      level 5 – 20+ attempts, 95%+ correct
      level 4 – 11+ attempts, 85%+ correct
      level 3 –  6+ attempts, 70%+ correct
      level 2 –  3+ attempts, 50%+ correct
      level 1 –  any attempt
      level 0 –  never practiced
    """
    total = correct_count + wrong_count
    accuracy = correct_count / total if total > 0 else 0.0
    for level, min_total, min_accuracy in LEVEL_THRESHOLDS:
        if total >= min_total and accuracy >= min_accuracy:
            return level
    return 0


def record_answer(user_id: int, item_id: int, is_correct: bool) -> MasteryResult:
    """Apply one answer to a word's mastery record.

    The record and the cached copy on the vocabulary item are written in one
    transaction. A word becomes mastered once, when it reaches level 5 with at
    least 10 correct answers in a row, and stays mastered.
    """
    now = datetime.datetime.now(datetime.UTC)
    with db.transaction() as session:
        item = db.require_item(session, user_id, item_id)
        record = (
            session.query(db.MasteryRecord)
            .filter_by(user_id=user_id, item_id=item.id)
            .one_or_none()
        )
        if record is None:
            record = db.MasteryRecord(
                user_id=user_id,
                item_id=item.id,
                correct_count=0,
                wrong_count=0,
                consecutive_correct=0,
                mastery_level=0,
            )
            session.add(record)

        was_mastered = bool(item.is_mastered)
        if is_correct:
            record.correct_count = (record.correct_count or 0) + 1
            record.consecutive_correct = (record.consecutive_correct or 0) + 1
        else:
            record.wrong_count = (record.wrong_count or 0) + 1
            record.consecutive_correct = 0

        level = mastery_level_for(record.correct_count, record.wrong_count)
        record.mastery_level = level
        record.last_practiced_at = now

        newly_mastered = (
            not was_mastered
            and level == MAX_LEVEL
            and record.consecutive_correct >= MASTERED_MIN_CONSECUTIVE
        )
        if newly_mastered:
            record.mastered_at = now
            item.is_mastered = True
            item.mastered_at = now
        elif record.mastered_at is None and item.mastered_at is not None:
            # Keep the record in step with an item mastered before it existed
            record.mastered_at = item.mastered_at

        item.mastery_level = level
        item.consecutive_correct = record.consecutive_correct
        result = MasteryResult(
            item_id=item.id,
            mastery_level=level,
            consecutive_correct=record.consecutive_correct,
            is_mastered=bool(item.is_mastered),
            newly_mastered=newly_mastered,
        )

    if newly_mastered:
        logger.info("User %s mastered item %s", user_id, item_id)

    effects: List[Effect] = []
    if result.mastery_level == MAX_LEVEL:
        effects.append(("perfect_mastery", lambda: achievements.check_and_unlock(user_id, "perfect_mastery")))
    if newly_mastered:
        effects.append(("mastered_count", lambda: achievements.check_mastered_count(user_id)))
    run_effects(effects)
    return result
