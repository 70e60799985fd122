"""Vocabulary lifecycle: add, practice, delete with a recoverable history."""

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import db, achievements, progression
from .effects import run_effects
from .errors import ConflictError, ValidationError
from .phonetics import to_pinyin

logger = logging.getLogger(__name__)


@dataclass
class AddResult:
    item: Dict[str, Any]
    previously_deleted: Optional[Dict[str, Any]]
    exp: Optional[progression.ExpResult] = None


@dataclass
class DeleteResult:
    item_id: int
    was_mastered: bool
    exp: Optional[progression.ExpResult] = None
    stars_awarded: int = 0
    achievements: List[str] = field(default_factory=list)


def _check_kind(kind: str) -> str:
    if kind not in db.KINDS:
        raise ValidationError(f"Unknown vocabulary kind: {kind!r}")
    return kind


def _clean_text(text: Any) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("Missing required field: text")
    return text.strip()


def add_word(user_id: int, kind: str, text: str,
             phonetic: Optional[str] = None, meaning: Optional[str] = None) -> AddResult:
    """Add a word to the user's list.

    Chinese words get their pinyin computed here. English words take the
    phonetic and meaning supplied by the caller, who looks them up before
    calling so no network call happens inside the transaction.

    If the word was deleted before, its old counters are reported back and the
    tombstone is removed.
    """
    kind = _check_kind(kind)
    text = _clean_text(text)
    if kind == "chinese":
        phonetic = to_pinyin(text)

    with db.transaction() as session:
        db.require_user(session, user_id)
        existing = (
            session.query(db.VocabularyItem)
            .filter_by(user_id=user_id, kind=kind, text=text)
            .one_or_none()
        )
        if existing is not None:
            raise ConflictError(f"Word already exists: {text}")

        tombstone = (
            session.query(db.DeletedVocabularyItem)
            .filter_by(user_id=user_id, kind=kind, text=text)
            .one_or_none()
        )
        previously_deleted = None
        if tombstone is not None:
            previously_deleted = {
                "practice_count": tombstone.practice_count or 0,
                "mastery_level": tombstone.mastery_level or 0,
                "was_mastered": bool(tombstone.is_mastered),
                "added_at": tombstone.added_at.isoformat() if tombstone.added_at else None,
                "deleted_at": tombstone.deleted_at.isoformat() if tombstone.deleted_at else None,
            }
            session.delete(tombstone)

        item = db.VocabularyItem(
            user_id=user_id,
            kind=kind,
            text=text,
            phonetic=phonetic or "",
            meaning=meaning or "",
            practice_count=0,
            mastery_level=0,
            consecutive_correct=0,
            is_mastered=False,
        )
        session.add(item)
        progression.increment_words_learned(session, user_id)
        session.flush()
        item_data = item.to_dict()

    logger.info("User %s added %s word %r (%s)", user_id, kind, text, phonetic)
    result = AddResult(item=item_data, previously_deleted=previously_deleted)
    result.exp = progression.award_exp(user_id, progression.EXP_ADD_WORD, progression.SOURCE_ADD_WORD)
    return result


def record_practice(user_id: int, item_id: int) -> Dict[str, Any]:
    """Count one read-aloud (Chinese) or playback (English) and reward it."""
    with db.transaction() as session:
        item = db.require_item(session, user_id, item_id)
        item.practice_count = (item.practice_count or 0) + 1
        count = item.practice_count
    exp = progression.award_exp(user_id, progression.EXP_READ_ALOUD, "read_aloud")
    return {"item_id": int(item_id), "practice_count": count, "exp": exp.to_dict()}


def delete_word(user_id: int, item_id: int) -> DeleteResult:
    """Move a word into the deleted history.

    The tombstone write and the removal of the active row happen in one
    transaction. Deleting a mastered word earns 50 exp and 2 stars.
    """
    with db.transaction() as session:
        item = db.require_item(session, user_id, item_id)
        _move_to_history(session, item)
        was_mastered = bool(item.is_mastered)
        deleted_id = item.id
        text = item.text

    logger.info("User %s deleted word %r (mastered=%s)", user_id, text, was_mastered)
    result = DeleteResult(item_id=deleted_id, was_mastered=was_mastered)
    if not was_mastered:
        return result

    result.exp = progression.award_exp(user_id, progression.EXP_DELETE_MASTERED, "delete_mastered")
    progression.add_stars(user_id, progression.STARS_DELETE_MASTERED)
    result.stars_awarded = progression.STARS_DELETE_MASTERED
    unlocked = run_effects([
        ("mastered_count", lambda: achievements.check_mastered_count(user_id)),
    ])
    result.achievements = unlocked[0] or []
    return result


def _move_to_history(session: Session, item: db.VocabularyItem) -> None:
    # Replace any earlier tombstone for the same word
    session.query(db.DeletedVocabularyItem).filter_by(
        user_id=item.user_id, kind=item.kind, text=item.text
    ).delete(synchronize_session=False)
    session.add(db.DeletedVocabularyItem(
        user_id=item.user_id,
        kind=item.kind,
        text=item.text,
        phonetic=item.phonetic,
        meaning=item.meaning,
        practice_count=item.practice_count or 0,
        mastery_level=item.mastery_level or 0,
        is_mastered=bool(item.is_mastered),
        mastered_at=item.mastered_at,
        added_at=item.created_at,
        deleted_at=datetime.datetime.now(datetime.UTC),
    ))
    session.delete(item)


def list_words(user_id: int, kind: str = "chinese") -> List[Dict[str, Any]]:
    """All active words of one kind, newest first."""
    kind = _check_kind(kind)
    session: Session = db.get_session()
    try:
        rows = (
            session.query(db.VocabularyItem)
            .filter_by(user_id=user_id, kind=kind)
            .order_by(db.VocabularyItem.id.desc())
            .all()
        )
        return [r.to_dict() for r in rows]
    finally:
        session.close()


def word_stats(user_id: int, kind: str = "chinese") -> Dict[str, int]:
    """Words still being learned versus words moved to history."""
    kind = _check_kind(kind)
    session: Session = db.get_session()
    try:
        unknown = (
            session.query(func.count(db.VocabularyItem.id))
            .filter_by(user_id=user_id, kind=kind)
            .scalar() or 0
        )
        known = (
            session.query(func.count(db.DeletedVocabularyItem.id))
            .filter_by(user_id=user_id, kind=kind)
            .scalar() or 0
        )
    finally:
        session.close()
    return {"unknown_count": unknown, "known_count": known}
