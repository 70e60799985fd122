"""Achievement catalog and the at-most-once unlock primitive.

The catalog is static. Unlock state lives only in the database, so several
server processes agree on who has what. Callers evaluate conditions
themselves and call :func:`check_and_unlock` when one holds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import db
from .errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

STAR_REWARD = 1


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    icon: str


CATALOG: Tuple[Achievement, ...] = (
    Achievement("first_word", "第一个生字", "Add your first word", "🌱"),
    Achievement("word_collector", "生字收藏家", "Add 50 words", "📚"),
    Achievement("consecutive_7_days", "坚持一周", "Learn 7 days in a row", "🔥"),
    Achievement("level_5", "小学者", "Reach level 5", "⭐"),
    Achievement("level_10", "大学者", "Reach level 10", "🌟"),
    Achievement("level_20", "识字大师", "Reach level 20", "👑"),
    Achievement("perfect_mastery", "完美掌握", "Bring a word to mastery level 5", "💎"),
    Achievement("master_10", "掌握十个", "Master 10 words", "🏅"),
    Achievement("master_50", "掌握五十个", "Master 50 words", "🏆"),
    Achievement("game_rookie", "游戏新手", "Play 10 games", "🎮"),
    Achievement("game_veteran", "游戏达人", "Play 50 games", "🕹️"),
    Achievement("perfect_game", "全对", "Answer every question right in a game of 5 or more", "💯"),
    Achievement("speed_star", "闪电手", "Answer 10 or more questions right within 60 seconds", "⚡"),
)

ACHIEVEMENTS: Dict[str, Achievement] = {a.id: a for a in CATALOG}

WORD_COUNT_THRESHOLDS = ((1, "first_word"), (50, "word_collector"))
MASTERED_COUNT_THRESHOLDS = ((10, "master_10"), (50, "master_50"))
SESSION_COUNT_THRESHOLDS = ((10, "game_rookie"), (50, "game_veteran"))


def check_and_unlock(user_id: int, achievement_id: str) -> bool:
    """Unlock an achievement once and grant its star.

    Returns True only for the call that created the unlock row.
    """
    if achievement_id not in ACHIEVEMENTS:
        raise ValidationError(f"Unknown achievement: {achievement_id}")

    try:
        with db.transaction() as session:
            existing = (
                session.query(db.UnlockedAchievement)
                .filter_by(user_id=user_id, achievement_id=achievement_id)
                .one_or_none()
            )
            if existing is not None:
                return False
            session.add(db.UnlockedAchievement(user_id=user_id, achievement_id=achievement_id))
            stats = db.get_or_create_stats(session, user_id)
            stats.total_stars = (stats.total_stars or 0) + STAR_REWARD
    except StorageError as e:
        if isinstance(e.__cause__, IntegrityError):
            # Another request unlocked it first
            return False
        raise

    logger.info("User %s unlocked achievement %s", user_id, achievement_id)
    return True


def unlock_thresholds(user_id: int, count: int, thresholds: Tuple[Tuple[int, str], ...]) -> List[str]:
    """Unlock every achievement whose threshold ``count`` has reached."""
    unlocked = []
    for threshold, achievement_id in thresholds:
        if count >= threshold and check_and_unlock(user_id, achievement_id):
            unlocked.append(achievement_id)
    return unlocked


def list_achievements(user_id: int) -> List[Dict[str, Any]]:
    """The catalog, annotated with this user's unlock state."""
    session: Session = db.get_session()
    try:
        rows = session.query(db.UnlockedAchievement).filter_by(user_id=user_id).all()
    finally:
        session.close()
    unlocked = {r.achievement_id: r.unlocked_at for r in rows}
    return [
        {
            "id": a.id,
            "name": a.name,
            "description": a.description,
            "icon": a.icon,
            "unlocked": a.id in unlocked,
            "unlocked_at": unlocked[a.id].isoformat() if a.id in unlocked else None,
        }
        for a in CATALOG
    ]


# ----------------------------------------------------------------------
# Counters used by callers to evaluate unlock conditions
# ----------------------------------------------------------------------
def count_words(user_id: int) -> int:
    """Active vocabulary items of both kinds."""
    session: Session = db.get_session()
    try:
        return session.query(func.count(db.VocabularyItem.id)).filter_by(user_id=user_id).scalar() or 0
    finally:
        session.close()


def count_mastered(user_id: int) -> int:
    """Mastered words, counting active items and tombstones."""
    session: Session = db.get_session()
    try:
        active = (
            session.query(func.count(db.VocabularyItem.id))
            .filter_by(user_id=user_id, is_mastered=True)
            .scalar() or 0
        )
        deleted = (
            session.query(func.count(db.DeletedVocabularyItem.id))
            .filter_by(user_id=user_id, is_mastered=True)
            .scalar() or 0
        )
        return active + deleted
    finally:
        session.close()


def count_sessions(user_id: int) -> int:
    session: Session = db.get_session()
    try:
        return session.query(func.count(db.GameSession.id)).filter_by(user_id=user_id).scalar() or 0
    finally:
        session.close()


def check_mastered_count(user_id: int) -> List[str]:
    return unlock_thresholds(user_id, count_mastered(user_id), MASTERED_COUNT_THRESHOLDS)


def check_word_count(user_id: int) -> List[str]:
    return unlock_thresholds(user_id, count_words(user_id), WORD_COUNT_THRESHOLDS)


def check_session_count(user_id: int) -> List[str]:
    return unlock_thresholds(user_id, count_sessions(user_id), SESSION_COUNT_THRESHOLDS)
