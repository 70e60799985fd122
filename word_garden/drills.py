"""Practice counters for the pinyin chart and the graded English word lists."""

import datetime
import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from . import db
from .errors import ValidationError

logger = logging.getLogger(__name__)

INITIALS = (
    "b", "p", "m", "f", "d", "t", "n", "l", "g", "k", "h",
    "j", "q", "x", "zh", "ch", "sh", "r", "z", "c", "s", "y", "w",
)
FINALS = (
    "a", "o", "e", "i", "u", "ü", "er",
    "ai", "ei", "ao", "ou", "an", "en", "ang", "eng", "ong",
    "ia", "ie", "iao", "iu", "ian", "in", "iang", "ing", "iong",
    "ua", "uo", "uai", "ui", "uan", "un", "uang", "ueng",
    "üe", "üan", "ün",
)
PINYIN_TABLE = {"initial": INITIALS, "final": FINALS}


def pinyin_chart() -> Dict[str, List[str]]:
    return {"initials": list(INITIALS), "finals": list(FINALS)}


def _record_dict(row: Any, key: str) -> Dict[str, Any]:
    return {
        "id": row.id,
        key: getattr(row, key),
        "learn_count": row.learn_count or 0,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "last_learned_at": row.last_learned_at.isoformat() if row.last_learned_at else None,
    }


def init_pinyin(user_id: Any) -> int:
    """Create a zero counter for every initial and final; existing rows are kept.

    Returns the number of rows created.
    """
    created = 0
    with db.transaction() as session:
        db.require_user(session, user_id)
        uid = int(user_id)
        existing = {
            (r.pinyin, r.type)
            for r in session.query(db.PinyinRecord).filter_by(user_id=uid).all()
        }
        for kind, symbols in PINYIN_TABLE.items():
            for symbol in symbols:
                if (symbol, kind) in existing:
                    continue
                session.add(db.PinyinRecord(user_id=uid, pinyin=symbol, type=kind, learn_count=0))
                created += 1
    logger.debug("Initialised %d pinyin counters for user %s", created, user_id)
    return created


def learn_pinyin(user_id: Any, symbol: Any, kind: Any) -> Dict[str, Any]:
    if kind not in PINYIN_TABLE:
        raise ValidationError("type must be 'initial' or 'final'")
    if symbol not in PINYIN_TABLE[kind]:
        raise ValidationError(f"Unknown {kind}: {symbol!r}")
    with db.transaction() as session:
        db.require_user(session, user_id)
        uid = int(user_id)
        row = session.query(db.PinyinRecord).filter_by(user_id=uid, pinyin=symbol, type=kind).one_or_none()
        if row is None:
            row = db.PinyinRecord(user_id=uid, pinyin=symbol, type=kind, learn_count=0)
            session.add(row)
        row.learn_count = (row.learn_count or 0) + 1
        row.last_learned_at = datetime.datetime.now(datetime.UTC)
        session.flush()
        data = _record_dict(row, "pinyin")
        data["type"] = row.type
    return data


def list_pinyin(user_id: Any) -> List[Dict[str, Any]]:
    session: Session = db.get_session()
    try:
        db.require_user(session, user_id)
        rows = (
            session.query(db.PinyinRecord)
            .filter_by(user_id=int(user_id))
            .order_by(db.PinyinRecord.type, db.PinyinRecord.pinyin)
            .all()
        )
        result = []
        for r in rows:
            d = _record_dict(r, "pinyin")
            d["type"] = r.type
            result.append(d)
        return result
    finally:
        session.close()


def record_english_learn(user_id: Any, word: Any, level: Any) -> Dict[str, Any]:
    """Count one study of ``word`` at ``level``, creating the counter on first use."""
    if not isinstance(word, str) or not word.strip() or not isinstance(level, str) or not level.strip():
        raise ValidationError("word and level are required")
    word, level = word.strip(), level.strip()
    with db.transaction() as session:
        db.require_user(session, user_id)
        uid = int(user_id)
        row = session.query(db.EnglishLearnRecord).filter_by(user_id=uid, word=word, level=level).one_or_none()
        if row is None:
            row = db.EnglishLearnRecord(user_id=uid, word=word, level=level, learn_count=0)
            session.add(row)
        row.learn_count = (row.learn_count or 0) + 1
        row.last_learned_at = datetime.datetime.now(datetime.UTC)
        session.flush()
        data = _record_dict(row, "word")
        data["level"] = row.level
    return data


def list_english_learn(user_id: Any) -> List[Dict[str, Any]]:
    session: Session = db.get_session()
    try:
        db.require_user(session, user_id)
        rows = (
            session.query(db.EnglishLearnRecord)
            .filter_by(user_id=int(user_id))
            .order_by(db.EnglishLearnRecord.level, db.EnglishLearnRecord.word)
            .all()
        )
        result = []
        for r in rows:
            d = _record_dict(r, "word")
            d["level"] = r.level
            result.append(d)
        return result
    finally:
        session.close()
