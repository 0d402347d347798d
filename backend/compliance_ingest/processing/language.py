"""
Document language tagging.

Detection runs once per document over the full extracted text; the code is
stamped on every chunk. Codes are ISO-639-1 and restricted to the languages
the assistant supports. Anything else, including text with no letters, is
reported as English.

Dhivehi (Thaana) and Burmese (Myanmar) have no model in the statistical
identifier. Both are the only supported languages written in their scripts,
so they are recognised from the script before the identifier runs.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from py3langid.langid import MODEL_FILE, LanguageIdentifier

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"
MIN_DETECTION_CHARS = 10

# Share of letters that must fall in a script block for a script match.
MIN_SCRIPT_SHARE = 0.5

# (code, first code point, last code point)
SCRIPT_LANGUAGES: tuple[tuple[str, int, int], ...] = (
    ("dv", 0x0780, 0x07BF),  # Thaana
    ("my", 0x1000, 0x109F),  # Myanmar
)

SUPPORTED_LANGUAGES: dict[str, dict[str, str]] = {
    "en": {"name": "English",    "native_name": "English"},
    "es": {"name": "Spanish",    "native_name": "Español"},
    "fr": {"name": "French",     "native_name": "Français"},
    "de": {"name": "German",     "native_name": "Deutsch"},
    "zh": {"name": "Chinese",    "native_name": "中文"},
    "ja": {"name": "Japanese",   "native_name": "日本語"},
    "pt": {"name": "Portuguese", "native_name": "Português"},
    "it": {"name": "Italian",    "native_name": "Italiano"},
    "ru": {"name": "Russian",    "native_name": "Русский"},
    "ar": {"name": "Arabic",     "native_name": "العربية"},
    "hi": {"name": "Hindi",      "native_name": "हिन्दी"},
    "ta": {"name": "Tamil",      "native_name": "தமிழ்"},
    "bn": {"name": "Bengali",    "native_name": "বাংলা"},
    "si": {"name": "Sinhala",    "native_name": "සිංහල"},
    "ur": {"name": "Urdu",       "native_name": "اردو"},
    "ne": {"name": "Nepali",     "native_name": "नेपाली"},
    "dv": {"name": "Dhivehi",    "native_name": "ދިވެހި"},
    "ms": {"name": "Malay",      "native_name": "Bahasa Melayu"},
    "id": {"name": "Indonesian", "native_name": "Bahasa Indonesia"},
    "tl": {"name": "Filipino",   "native_name": "Tagalog"},
    "th": {"name": "Thai",       "native_name": "ไทย"},
    "vi": {"name": "Vietnamese", "native_name": "Tiếng Việt"},
    "km": {"name": "Khmer",      "native_name": "ភាសាខ្មែរ"},
    "my": {"name": "Burmese",    "native_name": "ဗမာစာ"},
    "ko": {"name": "Korean",     "native_name": "한국어"},
    "tr": {"name": "Turkish",    "native_name": "Türkçe"},
    "nl": {"name": "Dutch",      "native_name": "Nederlands"},
    "pl": {"name": "Polish",     "native_name": "Polski"},
    "sv": {"name": "Swedish",    "native_name": "Svenska"},
    "da": {"name": "Danish",     "native_name": "Dansk"},
    "fi": {"name": "Finnish",    "native_name": "Suomi"},
    "no": {"name": "Norwegian",  "native_name": "Norsk"},
    "cs": {"name": "Czech",      "native_name": "Čeština"},
    "hu": {"name": "Hungarian",  "native_name": "Magyar"},
    "ro": {"name": "Romanian",   "native_name": "Română"},
    "uk": {"name": "Ukrainian",  "native_name": "Українська"},
    "he": {"name": "Hebrew",     "native_name": "עברית"},
    "el": {"name": "Greek",      "native_name": "Ελληνικά"},
}

# Supported languages the statistical identifier has a model for.
MODEL_LANGUAGES: list[str] = [
    code for code in SUPPORTED_LANGUAGES
    if code not in {script_code for script_code, _, _ in SCRIPT_LANGUAGES}
]


@lru_cache(maxsize=1)
def _identifier() -> LanguageIdentifier:
    identifier = LanguageIdentifier.from_pickled_model(MODEL_FILE, norm_probs=True)
    identifier.set_languages(MODEL_LANGUAGES)
    return identifier


def _classify(text: str) -> tuple[str, float]:
    code, probability = _identifier().classify(text)
    return code, float(probability)


def _script_language(letters: list[str]) -> str | None:
    for code, first, last in SCRIPT_LANGUAGES:
        in_block = sum(1 for ch in letters if first <= ord(ch) <= last)
        if in_block / len(letters) >= MIN_SCRIPT_SHARE:
            return code
    return None


def detect_language(text: str | None) -> str:
    """Return the ISO-639-1 code of the dominant language of ``text``."""
    if not text or len(text.strip()) < MIN_DETECTION_CHARS:
        logger.debug("Text too short for language detection, defaulting to %s", DEFAULT_LANGUAGE)
        return DEFAULT_LANGUAGE

    letters = [ch for ch in text if ch.isalpha()]
    if not letters:
        logger.info("No letters to identify, defaulting to %s", DEFAULT_LANGUAGE)
        return DEFAULT_LANGUAGE

    script_code = _script_language(letters)
    if script_code is not None:
        logger.info("Language | detected=%s by=script", script_code)
        return script_code

    detected, probability = _classify(text)
    code = detected if detected in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE
    logger.info("Language | detected=%s mapped=%s probability=%.2f", detected, code, probability)
    return code


def get_language_info(code: str) -> dict[str, str]:
    """Display metadata for ``code``; unknown codes get English."""
    info = SUPPORTED_LANGUAGES.get(code) or SUPPORTED_LANGUAGES[DEFAULT_LANGUAGE]
    resolved = code if code in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE
    return {"code": resolved, **info}


def is_language_supported(code: str) -> bool:
    return code in SUPPORTED_LANGUAGES


def get_supported_languages() -> list[dict[str, str]]:
    return [{"code": code, **info} for code, info in SUPPORTED_LANGUAGES.items()]
