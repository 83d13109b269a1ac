"""
Language Detection Service

Per-message language detection using langdetect + Unicode script fallback.
Used to tell the LLM which language non-answer replies should be written in.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from langdetect import DetectorFactory, detect_langs
from langdetect.lang_detect_exception import LangDetectException

logger = logging.getLogger("groundwork.common.language")

# Matches any Hangul, Kana, or CJK character
_NON_LATIN_RE = re.compile(
    r'[ᄀ-ᇿ぀-ゟ゠-ヿ㄰-㆏'
    r'㐀-䶿一-鿿가-힯]'
)

# Seed langdetect for deterministic results
DetectorFactory.seed = 0


@dataclass(frozen=True)
class LanguageInfo:
    """Detected language information"""
    code: str           # ISO 639-1: "en", "id", "ko", "ja"
    confidence: float   # 0.0~1.0
    script: str         # "Latin", "Hangul", "CJK", "Kana", "Mixed"

    @property
    def is_english(self) -> bool:
        return self.code == "en"


_ENGLISH = LanguageInfo(code="en", confidence=0.5, script="Latin")

# Unicode range based script detection
_SCRIPT_RANGES = [
    (0xAC00, 0xD7AF, "Hangul", "ko"),    # Hangul Syllables
    (0x1100, 0x11FF, "Hangul", "ko"),    # Hangul Jamo
    (0x3130, 0x318F, "Hangul", "ko"),    # Hangul Compatibility Jamo
    (0x3040, 0x309F, "Kana", "ja"),      # Hiragana
    (0x30A0, 0x30FF, "Kana", "ja"),      # Katakana
    (0x4E00, 0x9FFF, "CJK", "zh"),      # CJK Unified Ideographs
    (0x3400, 0x4DBF, "CJK", "zh"),      # CJK Extension A
]


def _detect_script(text: str) -> tuple[str, Optional[str]]:
    """Detect dominant script from Unicode character ranges.

    Returns:
        (script_name, language_code) or ("Latin", None) for ASCII-dominant text
    """
    script_counts: dict[str, int] = {}
    total = 0

    for ch in text:
        if ch.isspace() or ch in '.,!?;:"\'-()[]{}':
            continue
        total += 1
        cp = ord(ch)
        for start, end, script, _ in _SCRIPT_RANGES:
            if start <= cp <= end:
                script_counts[script] = script_counts.get(script, 0) + 1
                break
        else:
            script_counts["Latin"] = script_counts.get("Latin", 0) + 1

    if total == 0:
        return "Latin", None

    non_latin = {k: v for k, v in script_counts.items() if k != "Latin"}
    if not non_latin:
        return "Latin", None

    # Japanese text mixes CJK + Kana
    if "Kana" in non_latin:
        return "Kana", "ja"

    dominant = max(non_latin, key=non_latin.get)
    if non_latin[dominant] <= total * 0.15:
        return "Latin", None
    if len(non_latin) > 1:
        return "Mixed", None
    return dominant, {"Hangul": "ko", "CJK": "zh"}[dominant]


def detect_language(text: str) -> LanguageInfo:
    """Detect language of input text.

    Uses langdetect with Unicode script-based fallback.
    Short texts (<10 chars) default to English unless the script says otherwise.
    """
    if not text or not text.strip():
        return LanguageInfo(code="en", confidence=1.0, script="Latin")

    cleaned = text.strip()
    script, script_lang = _detect_script(cleaned)

    if len(cleaned) < 10:
        if script_lang:
            return LanguageInfo(code=script_lang, confidence=0.6, script=script)
        return _ENGLISH

    try:
        results = detect_langs(cleaned)
    except LangDetectException as e:
        # Feature-less input (digits, emoji)
        logger.debug("langdetect could not classify %r: %s", cleaned[:40], e)
        results = []

    if results:
        top = results[0]
        # langdetect often mislabels short English text as af/nl/fr; only
        # trust a non-English Latin-script guess when it is confident.
        if top.lang != "en" and not _NON_LATIN_RE.search(cleaned) and top.prob < 0.9:
            return _ENGLISH
        return LanguageInfo(code=top.lang, confidence=round(top.prob, 4), script=script)

    if script_lang:
        return LanguageInfo(code=script_lang, confidence=0.7, script=script)
    return _ENGLISH


def detect_conversation_language(query: str, history: Sequence = ()) -> LanguageInfo:
    """Language of the conversation: the current utterance, else the latest user turn."""
    if query and query.strip():
        return detect_language(query)
    for message in reversed(list(history)):
        if getattr(message, "role", "") == "user" and message.content.strip():
            return detect_language(message.content)
    return _ENGLISH


def language_instruction(info: LanguageInfo) -> str:
    """Prompt line telling the model which language to answer in."""
    if info.is_english:
        return "Match the language the user writes in (it appears to be English)."
    return (
        f"IMPORTANT: The user writes in '{info.code}'. "
        f"Respond in the SAME language ({info.code})."
    )
