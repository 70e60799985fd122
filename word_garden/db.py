from __future__ import annotations
from sqlalchemy import create_engine, event, Date, DateTime, ForeignKey, Integer, String, Text, Boolean, UniqueConstraint
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session, Mapped, mapped_column
from contextlib import contextmanager
import datetime
import logging
import os
from typing import Any, Dict, Iterator, Optional

from .errors import NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

KINDS = ("chinese", "english")


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    # werkzeug hash; rows created before hashing was introduced hold plaintext
    password: Mapped[str] = mapped_column(String, nullable=False)
    api_key_enc: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utcnow)


class VocabularyItem(Base):
    __tablename__ = "vocabulary_items"
    __table_args__ = (UniqueConstraint("user_id", "kind", "text"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String, nullable=False)  # "chinese" or "english"
    text: Mapped[str] = mapped_column(String, nullable=False)  # hanzi or English word
    phonetic: Mapped[Optional[str]] = mapped_column(String)  # pinyin or IPA
    meaning: Mapped[Optional[str]] = mapped_column(Text)  # Chinese gloss of an English word
    practice_count: Mapped[int] = mapped_column(Integer, default=0)  # read aloud / played
    # Cached projection of the MasteryRecord
    mastery_level: Mapped[int] = mapped_column(Integer, default=0)
    consecutive_correct: Mapped[int] = mapped_column(Integer, default=0)
    is_mastered: Mapped[bool] = mapped_column(Boolean, default=False)
    mastered_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "text": self.text,
            "phonetic": self.phonetic or "",
            "meaning": self.meaning or "",
            "practice_count": self.practice_count or 0,
            "mastery_level": self.mastery_level or 0,
            "consecutive_correct": self.consecutive_correct or 0,
            "is_mastered": bool(self.is_mastered),
            "mastered_at": self.mastered_at.isoformat() if self.mastered_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class DeletedVocabularyItem(Base):
    """Tombstone of a deleted vocabulary item, one per (user, kind, text)."""
    __tablename__ = "deleted_vocabulary_items"
    __table_args__ = (UniqueConstraint("user_id", "kind", "text"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    text: Mapped[str] = mapped_column(String, nullable=False)
    phonetic: Mapped[Optional[str]] = mapped_column(String)
    meaning: Mapped[Optional[str]] = mapped_column(Text)
    practice_count: Mapped[int] = mapped_column(Integer, default=0)
    mastery_level: Mapped[int] = mapped_column(Integer, default=0)
    is_mastered: Mapped[bool] = mapped_column(Boolean, default=False)
    mastered_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)
    added_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)
    deleted_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utcnow)


class MasteryRecord(Base):
    __tablename__ = "mastery_records"
    __table_args__ = (UniqueConstraint("user_id", "item_id"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    item_id: Mapped[int] = mapped_column(ForeignKey("vocabulary_items.id", ondelete="CASCADE"), nullable=False, index=True)
    correct_count: Mapped[int] = mapped_column(Integer, default=0)
    wrong_count: Mapped[int] = mapped_column(Integer, default=0)
    consecutive_correct: Mapped[int] = mapped_column(Integer, default=0)
    mastery_level: Mapped[int] = mapped_column(Integer, default=0)
    last_practiced_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)
    mastered_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)


class GameStats(Base):
    __tablename__ = "game_stats"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    total_exp: Mapped[int] = mapped_column(Integer, default=0)
    current_level: Mapped[int] = mapped_column(Integer, default=1)
    total_stars: Mapped[int] = mapped_column(Integer, default=0)
    consecutive_days: Mapped[int] = mapped_column(Integer, default=0)
    last_learn_date: Mapped[Optional[datetime.date]] = mapped_column(Date)
    total_words_learned: Mapped[int] = mapped_column(Integer, default=0)


class UnlockedAchievement(Base):
    __tablename__ = "unlocked_achievements"
    __table_args__ = (UniqueConstraint("user_id", "achievement_id"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    achievement_id: Mapped[str] = mapped_column(String, nullable=False)
    unlocked_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utcnow)


class GameSession(Base):
    """Append-only log, one row per quiz attempt."""
    __tablename__ = "game_sessions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    game_type: Mapped[str] = mapped_column(String, nullable=False)
    score: Mapped[int] = mapped_column(Integer, default=0)
    exp_earned: Mapped[int] = mapped_column(Integer, default=0)
    correct_count: Mapped[int] = mapped_column(Integer, default=0)
    total_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utcnow)


class ChatMessage(Base):
    __tablename__ = "ai_chat_history"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String, nullable=False)  # "user" or "ai"
    content: Mapped[str] = mapped_column(Text, nullable=False)
    image_data: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utcnow)


class PinyinRecord(Base):
    __tablename__ = "pinyin_learn"
    __table_args__ = (UniqueConstraint("user_id", "pinyin", "type"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    pinyin: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, default="initial")  # "initial" or "final"
    learn_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utcnow)
    last_learned_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)


class EnglishLearnRecord(Base):
    __tablename__ = "english_learn"
    __table_args__ = (UniqueConstraint("user_id", "word", "level"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    word: Mapped[str] = mapped_column(String, nullable=False)
    level: Mapped[str] = mapped_column(String, default="beginner")
    learn_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utcnow)
    last_learned_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)


DB_PATH: str = os.environ.get("WORD_GARDEN_DB", "words.db")
# Execution option marking a connection that will write
WRITE_LOCK = "word_garden_write_lock"


def configure_engine(url: str) -> Engine:
    """Bind the module to a database URL.

    Sessions opened by transaction() begin with BEGIN IMMEDIATE, so
    concurrent read-modify-write sequences on the same row are serialized
    instead of losing updates. Plain read sessions use a deferred BEGIN and
    only take a shared lock.
    """
    global engine, SessionLocal
    new_engine = create_engine(url, connect_args={"timeout": 30, "check_same_thread": False})

    @event.listens_for(new_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        # Let the "begin" hook below issue BEGIN itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(new_engine, "begin")
    def _on_begin(conn: Any) -> None:
        if conn.get_execution_options().get(WRITE_LOCK):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    engine = new_engine
    # Prevent attribute expiration on commit so returned objects remain accessible
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    return engine


engine: Engine
SessionLocal: sessionmaker[Session]
configure_engine(f"sqlite:///{DB_PATH}")


def is_db_initialized() -> bool:
    """Check if the database is already initialized by checking if tables exist."""
    from sqlalchemy import inspect
    inspector = inspect(engine)
    table_names = inspector.get_table_names()
    return set(Base.metadata.tables).issubset(set(table_names))


def init_db() -> None:
    """Initialize the database by creating all tables."""
    Base.metadata.create_all(bind=engine)


def get_session() -> Session:
    return SessionLocal()


@contextmanager
def transaction() -> Iterator[Session]:
    """Session that commits on success and rolls back on any error.

    Database failures are re-raised as StorageError.
    """
    session: Session = get_session()
    try:
        session.connection(execution_options={WRITE_LOCK: True})
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Storage failure, transaction rolled back: %s", e)
        raise StorageError("Database operation failed") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_or_create_stats(session: Session, user_id: int) -> GameStats:
    """Return the user's GameStats row, creating it on first use."""
    stats = session.query(GameStats).filter_by(user_id=user_id).one_or_none()
    if stats is None:
        stats = GameStats(
            user_id=user_id,
            total_exp=0,
            current_level=1,
            total_stars=0,
            consecutive_days=0,
            total_words_learned=0,
        )
        session.add(stats)
        session.flush()
    return stats


def require_user(session: Session, user_id: Any) -> User:
    try:
        uid = int(user_id)
    except (TypeError, ValueError):
        raise ValidationError("User is not logged in")
    user = session.get(User, uid)
    if user is None:
        raise NotFoundError(f"User {uid} not found")
    return user


def require_item(session: Session, user_id: int, item_id: Any) -> VocabularyItem:
    """Load a vocabulary item owned by ``user_id``."""
    try:
        iid = int(item_id)
    except (TypeError, ValueError):
        raise ValidationError("Missing or invalid item id")
    item = session.get(VocabularyItem, iid)
    if item is None or item.user_id != user_id:
        raise NotFoundError(f"Vocabulary item {iid} not found")
    return item
