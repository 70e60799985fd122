import random
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from . import db, achievements, mastery, progression
from .effects import Effect, run_effects
from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

GAME_TYPES = ("matching", "listening", "spelling")
DEFAULT_QUESTION_COUNT = 10
MAX_QUESTION_COUNT = 50
DISTRACTOR_COUNT = 3
POINTS_PER_CORRECT = 10

PERFECT_GAME_MIN_QUESTIONS = 5
SPEED_STAR_MIN_QUESTIONS = 10
SPEED_STAR_MAX_SECONDS = 60

# Used to pad matching choices when a user has too few words
FALLBACK_PHONETICS: Dict[str, Tuple[str, ...]] = {
    "chinese": ("mā", "bà", "hǎo", "tiān", "shuǐ", "huǒ", "mù", "rén", "kǒu", "shān", "yuè", "rì"),
    "english": ("/kæt/", "/dɒɡ/", "/sʌn/", "/buk/", "/fɪʃ/", "/tri:/", "/bɔ:l/", "/ʌp/"),
}
PLACEHOLDER_OPTION = "？"


# ----------------------------------------------------------------------
# Question generation
# ----------------------------------------------------------------------
def _load_items(user_id: int, kind: str) -> List[db.VocabularyItem]:
    if kind not in db.KINDS:
        raise ValidationError(f"Unknown vocabulary kind: {kind!r}")
    session: Session = db.get_session()
    try:
        db.require_user(session, user_id)
        return session.query(db.VocabularyItem).filter_by(user_id=user_id, kind=kind).all()
    finally:
        session.close()


def _question_count(count: Any) -> int:
    try:
        n = int(count)
    except (TypeError, ValueError):
        raise ValidationError("count must be an integer")
    if n <= 0:
        raise ValidationError("count must be positive")
    return min(n, MAX_QUESTION_COUNT)


def _phonetic_distractors(correct: str, pool: Sequence[str], kind: str) -> List[str]:
    """Three phonetics different from ``correct``, padded from the fallback list."""
    candidates = list(dict.fromkeys(p for p in pool if p and p != correct))
    chosen = random.sample(candidates, min(DISTRACTOR_COUNT, len(candidates)))
    fallback = [p for p in FALLBACK_PHONETICS[kind] if p != correct and p not in chosen]
    random.shuffle(fallback)
    while len(chosen) < DISTRACTOR_COUNT and fallback:
        chosen.append(fallback.pop())
    return chosen


def generate_matching(user_id: int, kind: str = "chinese", count: Any = DEFAULT_QUESTION_COUNT) -> List[Dict[str, Any]]:
    """Pick the right pronunciation for each word."""
    items = [i for i in _load_items(user_id, kind) if i.phonetic]
    sample = random.sample(items, min(_question_count(count), len(items)))
    pool = [i.phonetic for i in items]
    questions = []
    for item in sample:
        options = _phonetic_distractors(item.phonetic, pool, kind) + [item.phonetic]
        random.shuffle(options)
        questions.append({
            "item_id": item.id,
            "text": item.text,
            "meaning": item.meaning or "",
            "options": options,
        })
    return questions


def generate_listening(user_id: int, kind: str = "chinese", count: Any = DEFAULT_QUESTION_COUNT) -> List[Dict[str, Any]]:
    """Hear a word, then pick it out of four."""
    items = _load_items(user_id, kind)
    sample = random.sample(items, min(_question_count(count), len(items)))
    questions = []
    for item in sample:
        others = [i for i in items if i.id != item.id]
        picked = random.sample(others, min(DISTRACTOR_COUNT, len(others)))
        options = [{"item_id": o.id, "text": o.text} for o in picked]
        while len(options) < DISTRACTOR_COUNT:
            options.append({"item_id": None, "text": PLACEHOLDER_OPTION})
        options.append({"item_id": item.id, "text": item.text})
        random.shuffle(options)
        questions.append({
            "item_id": item.id,
            "audio_text": item.text,
            "options": options,
        })
    return questions


def generate_spelling(user_id: int, kind: str = "chinese", count: Any = DEFAULT_QUESTION_COUNT) -> List[Dict[str, Any]]:
    """Write the word from its pronunciation (and meaning, for English)."""
    items = _load_items(user_id, kind)
    sample = random.sample(items, min(_question_count(count), len(items)))
    return [
        {
            "item_id": item.id,
            "phonetic": item.phonetic or "",
            "meaning": item.meaning or "",
            "length": len(item.text),
        }
        for item in sample
    ]


# ----------------------------------------------------------------------
# Scoring
# ----------------------------------------------------------------------
def matching_exp(results: Sequence[bool]) -> int:
    correct = sum(1 for r in results if r)
    exp = correct * progression.EXP_MATCHING_PER_CORRECT
    if results and correct == len(results):
        exp += progression.EXP_MATCHING_ALL_CORRECT_BONUS
    return exp


def listening_exp(results: Sequence[bool]) -> int:
    """5 per correct answer, plus 5 each time a run of correct answers reaches a multiple of 3."""
    exp = 0
    streak = 0
    for ok in results:
        if ok:
            exp += progression.EXP_LISTENING_PER_CORRECT
            streak += 1
            if streak % progression.LISTENING_STREAK_LENGTH == 0:
                exp += progression.EXP_LISTENING_STREAK_BONUS
        else:
            streak = 0
    return exp


def spelling_exp(results: Sequence[bool]) -> int:
    return sum(1 for r in results if r) * progression.EXP_SPELLING_PER_CORRECT


def _same_item(answer: Any, expected: Any) -> bool:
    try:
        return int(answer) == expected
    except (TypeError, ValueError):
        return False


def _same_text(answer: Any, expected: Any) -> bool:
    return isinstance(answer, str) and answer == expected


# game type -> (correct value of an item, answer comparison, exp formula)
SCORERS: Dict[str, Tuple[Callable[[db.VocabularyItem], Any], Callable[[Any, Any], bool], Callable[[Sequence[bool]], int]]] = {
    "matching": (lambda item: item.phonetic or "", _same_text, matching_exp),
    "listening": (lambda item: item.id, _same_item, listening_exp),
    "spelling": (lambda item: item.text, _same_text, spelling_exp),
}


def _parse_answers(answers: Any) -> List[Tuple[int, Any]]:
    if not isinstance(answers, list) or not answers:
        raise ValidationError("answers must be a non-empty list")
    if len(answers) > MAX_QUESTION_COUNT:
        raise ValidationError(f"at most {MAX_QUESTION_COUNT} answers per game")
    parsed = []
    seen = set()
    for entry in answers:
        if not isinstance(entry, dict) or "item_id" not in entry:
            raise ValidationError("each answer needs an item_id")
        try:
            item_id = int(entry["item_id"])
        except (TypeError, ValueError):
            raise ValidationError(f"invalid item_id: {entry.get('item_id')!r}")
        # A game never asks the same word twice
        if item_id in seen:
            raise ValidationError(f"item {item_id} answered more than once")
        seen.add(item_id)
        parsed.append((item_id, entry.get("answer")))
    return parsed


def submit(game_type: str, user_id: int, answers: Any, duration_seconds: Optional[float] = None) -> Dict[str, Any]:
    """Score a finished game and apply its rewards.

    Every answered word goes through the mastery engine, the session is
    logged, and the earned experience is awarded. Answers for words that no
    longer exist are reported as skipped and not scored.
    """
    if game_type not in SCORERS:
        raise ValidationError(f"Unknown game type: {game_type!r}")
    parsed = _parse_answers(answers)
    correct_value, is_same, exp_formula = SCORERS[game_type]

    session: Session = db.get_session()
    try:
        db.require_user(session, user_id)
        ids = {item_id for item_id, _ in parsed}
        items = {
            i.id: i for i in
            session.query(db.VocabularyItem)
            .filter(db.VocabularyItem.user_id == user_id, db.VocabularyItem.id.in_(ids))
            .all()
        }
    finally:
        session.close()

    results: List[Dict[str, Any]] = []
    outcomes: List[bool] = []
    for item_id, answer in parsed:
        item = items.get(item_id)
        if item is None:
            results.append({"item_id": item_id, "skipped": True, "correct": False, "correct_answer": None})
            continue
        expected = correct_value(item)
        ok = is_same(answer, expected)
        outcomes.append(ok)
        results.append({
            "item_id": item_id,
            "text": item.text,
            "answer": answer,
            "correct": ok,
            "correct_answer": expected,
        })

    correct_count = sum(1 for ok in outcomes if ok)
    score = correct_count * POINTS_PER_CORRECT
    exp_earned = exp_formula(outcomes)

    for entry in results:
        if entry.get("skipped"):
            continue
        try:
            entry["mastery"] = mastery.record_answer(user_id, entry["item_id"], entry["correct"]).to_dict()
        except NotFoundError:
            # Deleted between scoring and the mastery update
            logger.info("Item %s vanished during %s submission", entry["item_id"], game_type)
            entry["mastery"] = None

    with db.transaction() as s:
        s.add(db.GameSession(
            user_id=user_id,
            game_type=game_type,
            score=score,
            exp_earned=exp_earned,
            correct_count=correct_count,
            total_count=len(outcomes),
        ))

    exp_result = None
    effects: List[Effect] = [("session_count", lambda: achievements.check_session_count(user_id))]
    if exp_earned > 0:
        exp_result = progression.award_exp(user_id, exp_earned, game_type)
    else:
        effects.append(("streak", lambda: progression.touch_streak(user_id)))

    all_correct = bool(outcomes) and correct_count == len(outcomes)
    if all_correct and len(outcomes) >= PERFECT_GAME_MIN_QUESTIONS:
        effects.append(("perfect_game", lambda: achievements.check_and_unlock(user_id, "perfect_game")))
    if (all_correct and len(outcomes) >= SPEED_STAR_MIN_QUESTIONS
            and duration_seconds is not None and 0 < duration_seconds <= SPEED_STAR_MAX_SECONDS):
        effects.append(("speed_star", lambda: achievements.check_and_unlock(user_id, "speed_star")))
    run_effects(effects)

    logger.info("User %s finished %s: %d/%d correct, %d exp", user_id, game_type, correct_count, len(outcomes), exp_earned)
    return {
        "game_type": game_type,
        "results": results,
        "correct_count": correct_count,
        "total_count": len(outcomes),
        "score": score,
        "exp_earned": exp_earned,
        "exp": exp_result.to_dict() if exp_result else None,
    }


def submit_matching(user_id: int, answers: Any, duration_seconds: Optional[float] = None) -> Dict[str, Any]:
    return submit("matching", user_id, answers, duration_seconds)


def submit_listening(user_id: int, answers: Any, duration_seconds: Optional[float] = None) -> Dict[str, Any]:
    return submit("listening", user_id, answers, duration_seconds)


def submit_spelling(user_id: int, answers: Any, duration_seconds: Optional[float] = None) -> Dict[str, Any]:
    return submit("spelling", user_id, answers, duration_seconds)


GENERATORS = {
    "matching": generate_matching,
    "listening": generate_listening,
    "spelling": generate_spelling,
}

SUBMITTERS = {
    "matching": submit_matching,
    "listening": submit_listening,
    "spelling": submit_spelling,
}
