"""
Deterministic text cleanup for matching.

``normalize`` is the single entry point every matcher uses. It is pure,
never raises, and is idempotent: a second pass changes nothing because
no canonical correction is itself a known variant.

Usage:
    normalize("¿Cuánto cuesta el SANSUNG?")   # "cuanto cuesta el samsung"
    normalize_for_search("precio de un portátil lenobo")   # "laptop lenovo"
    clean_for_echo("  Cuánto   cuesta ")   # "Cuánto cuesta"
"""

import re
import unicodedata
from typing import Optional

from dialogue_router.config import settings
from dialogue_router.logging_context import get_turn_logger
from dialogue_router.nlu.phonetics import similarity
from dialogue_router.nlu.rules import (
    CORRECTION_LOOKUP,
    FUZZY_COMMAND_WORDS,
    SEARCH_SYNONYMS,
    STOPWORDS,
)

logger = get_turn_logger(__name__)

_NON_WORD = re.compile(r"[^a-z0-9\s]")
_SPACES = re.compile(r"\s+")
# Voice fillers carry no meaning for routing.
_FILLERS = frozenset({"mm", "mmm", "ehh", "eh", "um", "umm", "uh", "ah", "ahh", "hm", "em"})


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize(raw: Optional[str]) -> str:
    """Lowercase, strip diacritics and punctuation, and fix known mis-transcriptions."""
    if not raw:
        return ""
    try:
        text = strip_accents(str(raw).lower())
        text = _NON_WORD.sub(" ", text)
        tokens = [
            CORRECTION_LOOKUP.get(token, token)
            for token in text.split()
            if token not in _FILLERS
        ]
        return " ".join(tokens)
    except Exception:
        logger.exception("normalize failed, returning empty text")
        return ""


def clean_for_echo(raw: Optional[str]) -> str:
    """Collapse whitespace only. Diacritics and casing are kept for replies."""
    if not raw:
        return ""
    return _SPACES.sub(" ", str(raw)).strip()


def normalize_for_search(raw: Optional[str]) -> str:
    """Normalize a product query: synonyms folded, stop words removed."""
    text = normalize(raw)
    for pattern, replacement in SEARCH_SYNONYMS:
        text = pattern.sub(replacement, text)
    tokens = [token for token in text.split() if token not in STOPWORDS]
    return " ".join(tokens)


def correct_transcription(raw: Optional[str], min_similarity: Optional[float] = None) -> str:
    """Snap tokens that look like a misheard command word onto that word.

    Exact variant lookup happens in ``normalize``; this pass catches the
    variants nobody has listed yet, using edit-distance similarity.
    Short tokens are left alone since they collide too easily.
    """
    if min_similarity is None:
        min_similarity = settings.intent.fuzzy_similarity
    text = normalize(raw)
    corrected = []
    for token in text.split():
        replacement = token
        if len(token) >= 4 and token not in FUZZY_COMMAND_WORDS:
            best_score = 0.0
            for word in FUZZY_COMMAND_WORDS:
                # inflections like "pedidos" or "confirmar" are not mishearings
                if token.startswith(word[:-1]):
                    continue
                score = similarity(token, word)
                if score >= min_similarity and score > best_score:
                    best_score = score
                    replacement = word
            if replacement != token:
                logger.debug("Transcription corrected: %r -> %r", token, replacement)
        corrected.append(replacement)
    return " ".join(corrected)


def tokenize(raw: Optional[str]) -> list[str]:
    return normalize(raw).split()
