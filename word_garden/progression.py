import datetime
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from . import db, achievements
from .effects import Effect, run_effects
from .errors import ValidationError

logger = logging.getLogger(__name__)

# Fixed rewards, applied by the callers that perform each action
EXP_ADD_WORD = 10
EXP_READ_ALOUD = 5
EXP_MATCHING_PER_CORRECT = 3
EXP_MATCHING_ALL_CORRECT_BONUS = 10
EXP_LISTENING_PER_CORRECT = 5
EXP_LISTENING_STREAK_BONUS = 5
LISTENING_STREAK_LENGTH = 3
EXP_SPELLING_PER_CORRECT = 8
EXP_DELETE_MASTERED = 50
STARS_DELETE_MASTERED = 2

SOURCE_ADD_WORD = "add_word"
STREAK_ACHIEVEMENT_DAYS = 7


@dataclass
class ExpResult:
    new_exp: int
    new_level: int
    leveled_up: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def exp_for_level(level: int) -> int:
    """Total experience needed to reach ``level``."""
    return level * 100 + (level - 1) * 50


def level_for_exp(exp: int, start_level: int = 1) -> int:
    """Climb from ``start_level`` while the next level's threshold is met."""
    level = max(1, start_level)
    while exp >= exp_for_level(level + 1):
        level += 1
    return level


def award_exp(user_id: int, amount: int, source: str) -> ExpResult:
    """Add experience to a user and apply any level-up.

    After the update commits, the level, word-count and streak checks run as
    best-effort effects.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"Experience amount must be a positive integer, got {amount!r}")

    with db.transaction() as session:
        db.require_user(session, user_id)
        stats = db.get_or_create_stats(session, user_id)
        old_level = stats.current_level or 1
        new_exp = (stats.total_exp or 0) + amount
        new_level = level_for_exp(new_exp, old_level)
        stats.total_exp = new_exp
        stats.current_level = new_level

    result = ExpResult(new_exp=new_exp, new_level=new_level, leveled_up=new_level > old_level)
    logger.debug("User %s +%d exp (%s) -> %d, level %d", user_id, amount, source, new_exp, new_level)

    effects: List[Effect] = []
    # One award can skip several levels; each one passed gets its check
    for level in range(old_level + 1, new_level + 1):
        level_id = f"level_{level}"
        if level_id in achievements.ACHIEVEMENTS:
            effects.append((level_id, lambda aid=level_id: achievements.check_and_unlock(user_id, aid)))
    if source == SOURCE_ADD_WORD:
        effects.append(("word_count", lambda: achievements.check_word_count(user_id)))
    effects.append(("streak", lambda: touch_streak(user_id)))
    run_effects(effects)
    return result


def touch_streak(user_id: int, today: Optional[datetime.date] = None) -> int:
    """Record learning activity for today and return the streak length.

    Repeated calls on the same calendar day change nothing.
    """
    today = today or datetime.date.today()
    with db.transaction() as session:
        stats = db.get_or_create_stats(session, user_id)
        last = stats.last_learn_date
        if last == today:
            return stats.consecutive_days or 0
        if last is not None and last == today - datetime.timedelta(days=1):
            stats.consecutive_days = (stats.consecutive_days or 0) + 1
        else:
            stats.consecutive_days = 1
        stats.last_learn_date = today
        streak = stats.consecutive_days

    if streak >= STREAK_ACHIEVEMENT_DAYS:
        run_effects([
            ("consecutive_7_days", lambda: achievements.check_and_unlock(user_id, "consecutive_7_days")),
        ])
    return streak


def add_stars(user_id: int, stars: int) -> int:
    """Grant stars directly, outside the achievement path. Returns the new total."""
    if isinstance(stars, bool) or not isinstance(stars, int) or stars <= 0:
        raise ValidationError(f"Star amount must be a positive integer, got {stars!r}")
    with db.transaction() as session:
        stats = db.get_or_create_stats(session, user_id)
        stats.total_stars = (stats.total_stars or 0) + stars
        return stats.total_stars


def increment_words_learned(session: Session, user_id: int) -> None:
    stats = db.get_or_create_stats(session, user_id)
    stats.total_words_learned = (stats.total_words_learned or 0) + 1


def get_stats(user_id: int) -> Dict[str, Any]:
    """Read model for the game-stats screen."""
    with db.transaction() as session:
        db.require_user(session, user_id)
        stats = db.get_or_create_stats(session, user_id)
        exp = stats.total_exp or 0
        level = stats.current_level or 1
        result = {
            "total_exp": exp,
            "current_level": level,
            "total_stars": stats.total_stars or 0,
            "consecutive_days": stats.consecutive_days or 0,
            "last_learn_date": stats.last_learn_date.isoformat() if stats.last_learn_date else None,
            "total_words_learned": stats.total_words_learned or 0,
        }

    current_floor = exp_for_level(level) if level > 1 else 0
    next_threshold = exp_for_level(level + 1)
    span = next_threshold - current_floor
    result["next_level_exp"] = next_threshold
    result["exp_to_next_level"] = max(0, next_threshold - exp)
    result["level_progress"] = round(min(1.0, max(0.0, (exp - current_floor) / span)), 3)
    return result
