"""Phonetic transcription and English dictionary lookup."""

import concurrent.futures
import logging
import os
from typing import Any, Dict

import requests
from pypinyin import pinyin, Style as PinyinStyle

logger = logging.getLogger(__name__)

DICTIONARY_TIMEOUT = float(os.environ.get("DICTIONARY_TIMEOUT", "5"))
YOUDAO_SUGGEST_URL = "https://dict.youdao.com/suggest"
DICTIONARY_API_URL = "https://api.dictionaryapi.dev/api/v2/entries/en/{word}"


def to_pinyin(text: str) -> str:
    """Tone-marked pinyin for Chinese text, one syllable per character."""
    result = pinyin(text, style=PinyinStyle.TONE)
    return " ".join(p[0] for p in result)


def _fetch_chinese_gloss(word: str) -> str:
    try:
        r = requests.get(
            YOUDAO_SUGGEST_URL,
            params={"q": word, "num": 1, "doctype": "json"},
            timeout=DICTIONARY_TIMEOUT,
        )
        r.raise_for_status()
        entries = (r.json().get("data") or {}).get("entries") or []
        if entries:
            return entries[0].get("explain") or ""
    except (requests.RequestException, ValueError, AttributeError) as e:
        logger.warning("Youdao lookup failed for %r: %s", word, e)
    return ""


def _fetch_phonetic(word: str) -> str:
    try:
        r = requests.get(DICTIONARY_API_URL.format(word=word), timeout=DICTIONARY_TIMEOUT)
        r.raise_for_status()
        data: Any = r.json()
        if isinstance(data, list) and data:
            entry = data[0]
            if entry.get("phonetic"):
                return entry["phonetic"]
            for p in entry.get("phonetics") or []:
                if p.get("text"):
                    return p["text"]
    except (requests.RequestException, ValueError, AttributeError) as e:
        logger.warning("Phonetic lookup failed for %r: %s", word, e)
    return ""


def lookup_english(word: str) -> Dict[str, str]:
    """Chinese gloss and IPA for an English word.

    Both services are queried in parallel. A failed lookup leaves its field
    empty instead of failing the request.
    """
    word = (word or "").strip()
    if not word:
        return {"chinese": "", "phonetic": ""}
    with concurrent.futures.ThreadPoolExecutor(max_workers=2) as executor:
        gloss = executor.submit(_fetch_chinese_gloss, word)
        phonetic = executor.submit(_fetch_phonetic, word)
        return {"chinese": gloss.result(), "phonetic": phonetic.result()}
